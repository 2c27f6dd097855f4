# threatguard/config/models/detection.py
import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from threatguard.utils.models import Severity


class ThreatPatternConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    type: str
    pattern: str
    severity: Severity
    category: str
    description: str

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"invalid regular expression {v!r}: {e}")
        return v


DEFAULT_THREAT_PATTERNS: List[ThreatPatternConfig] = [
    ThreatPatternConfig(
        type="sql_injection",
        pattern=(
            r"(\b(select|insert|update|delete|drop|union|exec|where|from|into|values|set)\b"
            r".*\b(from|into|values|set|where)\b)"
            r"|(\b(select|insert|update|delete|drop|union|exec)\b.*['\"`].*['\"`])"
        ),
        severity=Severity.HIGH,
        category="injection",
        description="Potential SQL injection attempt",
    ),
    ThreatPatternConfig(
        type="xss",
        pattern=r"<script.*?>|javascript:|on\w+\s*=|data:(?:text|application)/(?:javascript|ecmascript)",
        severity=Severity.HIGH,
        category="xss",
        description="Potential XSS attack attempt",
    ),
    ThreatPatternConfig(
        type="path_traversal",
        pattern=r"\.\./|\.\.\\|%2e%2e%2f|%252e%252e%252f",
        severity=Severity.MEDIUM,
        category="injection",
        description="Potential path traversal attempt",
    ),
    ThreatPatternConfig(
        type="command_injection",
        pattern=r"[;&|`$]|\b(cat|chmod|curl|wget|bash|sh|python|perl|ruby|php)\b",
        severity=Severity.HIGH,
        category="injection",
        description="Potential command injection attempt",
    ),
    ThreatPatternConfig(
        type="port_scan",
        pattern=r"(?:port\s*=\s*\d+|scan|nmap|masscan)",
        severity=Severity.MEDIUM,
        category="scanning",
        description="Potential port scanning attempt",
    ),
    ThreatPatternConfig(
        type="malware",
        pattern=r"(?:eval\(|base64_decode\(|gzinflate\(|str_rot13\(|preg_replace\(.*/e)",
        severity=Severity.CRITICAL,
        category="malware",
        description="Potential malware code",
    ),
]


class ThresholdsConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    request_rate: float = 100.0     # запросов в секунду в коротком окне
    error_rate: float = 0.1         # доля ошибок в среднем окне
    suspicious_score: float = 50.0  # репутация ниже этого значения = подозрительный
    scan_threshold: int = 50        # запросов в среднем окне


class TimeWindowsConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    short: int = 60
    medium: int = 300
    long: int = 900

    @property
    def largest(self) -> int:
        return max(self.short, self.medium, self.long)


class ActionsConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    block: bool = True
    alert: bool = True
    log: bool = True
    update_reputation: bool = True


class DetectionConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    patterns: List[ThreatPatternConfig] = Field(default_factory=lambda: list(DEFAULT_THREAT_PATTERNS))
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    time_windows: TimeWindowsConfig = Field(default_factory=TimeWindowsConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)

    block_duration_seconds: int = 3600
    block_namespace: str = "threat_block"
    check_timeout_seconds: float = 2.0
    # Общий лимит на действия по угрозам одного запроса (журнал, репутация, блокировка)
    action_timeout_seconds: float = 3.0
