# threatguard/containers/providers.py
from typing import Dict

from dependency_injector import providers

from threatguard.config.settings import settings
from threatguard.services.alerts import AlertDispatcher, build_alert_channels
from threatguard.services.behavior_service import BehaviorAnalyzer
from threatguard.services.block_list import BlockList
from threatguard.services.brute_force_service import BruteForceDetector
from threatguard.services.event_log import SecurityEventLog
from threatguard.services.geo import GeoBlockingService, build_geo_resolver
from threatguard.services.pattern_matcher import PatternMatcher
from threatguard.services.rate_limiter import RateLimiter
from threatguard.services.rate_tracker import RateTracker
from threatguard.services.reputation_service import ReputationService
from threatguard.services.threat_orchestrator import ThreatOrchestrator


def create_service_providers(
    redis_client: providers.Provider,
    http_client: providers.Provider,
) -> Dict[str, providers.Provider]:
    alert_channels = providers.Singleton(
        build_alert_channels,
        config=settings.alerting,
        http_client=http_client,
    )
    alert_dispatcher = providers.Singleton(
        AlertDispatcher,
        config=settings.alerting,
        channels=alert_channels,
    )
    event_log = providers.Singleton(
        SecurityEventLog,
        redis=redis_client,
        config=settings.event_log,
        dispatcher=alert_dispatcher,
        alerting=settings.alerting,
    )

    pattern_matcher = providers.Singleton(PatternMatcher, patterns=settings.detection.patterns)
    rate_tracker = providers.Singleton(
        RateTracker,
        redis=redis_client,
        windows=settings.detection.time_windows,
    )
    rate_limiter = providers.Singleton(
        RateLimiter,
        redis=redis_client,
        config=settings.rate_limit,
        event_log=event_log,
    )
    reputation_service = providers.Singleton(
        ReputationService,
        redis=redis_client,
        config=settings.reputation,
        event_log=event_log,
    )
    behavior_analyzer = providers.Singleton(
        BehaviorAnalyzer,
        config=settings.behavior,
        event_log=event_log,
    )

    geo_resolver = providers.Singleton(
        build_geo_resolver,
        config=settings.geo_blocking,
        http_client=http_client,
    )
    geo_blocking_service = providers.Singleton(
        GeoBlockingService,
        config=settings.geo_blocking,
        resolver=geo_resolver,
        event_log=event_log,
    )

    threat_block_list = providers.Singleton(
        BlockList,
        redis=redis_client,
        namespace=settings.detection.block_namespace,
    )
    brute_force_block_list = providers.Singleton(
        BlockList,
        redis=redis_client,
        namespace=settings.brute_force.block_namespace,
    )
    brute_force_detector = providers.Singleton(
        BruteForceDetector,
        redis=redis_client,
        config=settings.brute_force,
        event_log=event_log,
        block_list=brute_force_block_list,
    )

    threat_orchestrator = providers.Singleton(
        ThreatOrchestrator,
        config=settings.detection,
        pattern_matcher=pattern_matcher,
        rate_tracker=rate_tracker,
        reputation=reputation_service,
        geo_blocking=geo_blocking_service,
        event_log=event_log,
        block_list=threat_block_list,
        dispatcher=alert_dispatcher,
        behavior=behavior_analyzer,
        alerting=settings.alerting,
    )

    return {
        "alert_channels": alert_channels,
        "alert_dispatcher": alert_dispatcher,
        "event_log": event_log,
        "pattern_matcher": pattern_matcher,
        "rate_tracker": rate_tracker,
        "rate_limiter": rate_limiter,
        "reputation_service": reputation_service,
        "behavior_analyzer": behavior_analyzer,
        "geo_resolver": geo_resolver,
        "geo_blocking_service": geo_blocking_service,
        "threat_block_list": threat_block_list,
        "brute_force_block_list": brute_force_block_list,
        "brute_force_detector": brute_force_detector,
        "threat_orchestrator": threat_orchestrator,
    }
