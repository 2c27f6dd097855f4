# threatguard/config/models/__init__.py
from threatguard.config.models.alerting import (
    AlertCondition,
    AlertConfig,
    AlertingConfig,
    EmailChannelConfig,
    WebhookChannelConfig,
)
from threatguard.config.models.behavior import (
    DEFAULT_BEHAVIOR_PATTERNS,
    BehaviorConfig,
    BehaviorPatternConfig,
)
from threatguard.config.models.brute_force import BruteForceConfig
from threatguard.config.models.core import (
    EventLogConfig,
    HttpClientConfig,
    LoggingConfig,
    SchedulerConfig,
)
from threatguard.config.models.detection import (
    DEFAULT_THREAT_PATTERNS,
    ActionsConfig,
    DetectionConfig,
    ThresholdsConfig,
    ThreatPatternConfig,
    TimeWindowsConfig,
)
from threatguard.config.models.geo import GeoBlockingConfig
from threatguard.config.models.rate_limit import RateLimitConfig
from threatguard.config.models.reputation import ReputationConfig, SeverityPenalties

__all__ = [
    "AlertCondition",
    "AlertConfig",
    "AlertingConfig",
    "EmailChannelConfig",
    "WebhookChannelConfig",
    "DEFAULT_BEHAVIOR_PATTERNS",
    "BehaviorConfig",
    "BehaviorPatternConfig",
    "BruteForceConfig",
    "EventLogConfig",
    "HttpClientConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "DEFAULT_THREAT_PATTERNS",
    "ActionsConfig",
    "DetectionConfig",
    "ThresholdsConfig",
    "ThreatPatternConfig",
    "TimeWindowsConfig",
    "GeoBlockingConfig",
    "RateLimitConfig",
    "ReputationConfig",
    "SeverityPenalties",
]
