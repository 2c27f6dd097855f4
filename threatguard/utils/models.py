# threatguard/utils/models.py
from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Уровень критичности события"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def is_high(self) -> bool:
        """high и critical требуют блокировки и алерта."""
        return self.rank >= _SEVERITY_RANK[Severity.HIGH]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


# =============================================================================
# ЗАПРОСЫ И УГРОЗЫ
# =============================================================================

class RequestDescriptor(BaseModel):
    """Входящий запрос в том виде, в каком его видит конвейер"""
    method: str
    path: str
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    source_ip: Optional[str] = None
    request_id: Optional[str] = None

    def serialize(self) -> str:
        """Единый текстовый блок, по которому работают шаблоны угроз."""
        return f"{self.method} {self.path} {json.dumps(self.headers)} {self.body or ''}"


class RequestSnapshot(BaseModel):
    """Копия запроса, прикладываемая к событию"""
    method: str
    path: str
    headers: Dict[str, str] = Field(default_factory=dict)


class ThreatDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    description: str
    pattern: Optional[str] = None
    request: Optional[RequestSnapshot] = None
    metrics: Optional[Dict[str, float]] = None


class ThreatEvent(BaseModel):
    """Обнаруженная угроза. Неизменяема после создания."""
    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    timestamp: float = Field(default_factory=time.time)
    source_ip: str
    request_id: Optional[str] = None
    details: ThreatDetails


class SecurityEvent(BaseModel):
    """Запись аудита: смена репутации, гео-блокировка, перебор паролей и т.д."""
    type: str
    severity: Severity
    timestamp: float = Field(default_factory=time.time)
    source_ip: Optional[str] = None
    endpoint: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_threat(cls, threat: ThreatEvent) -> "SecurityEvent":
        return cls(
            type=threat.type,
            severity=threat.severity,
            timestamp=threat.timestamp,
            source_ip=threat.source_ip,
            endpoint=threat.details.request.path if threat.details.request else None,
            details=threat.details.model_dump(exclude_none=True) | {"request_id": threat.request_id},
        )


# =============================================================================
# ЧАСТОТА ЗАПРОСОВ
# =============================================================================

class RateSnapshot(BaseModel):
    short_count: int = 0
    medium_count: int = 0
    long_count: int = 0
    error_count: int = 0
    request_rate: float = 0.0
    error_rate: float = 0.0


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int
    reset: float


class RateLimitStatus(BaseModel):
    current: int = 0
    limit: int
    reset: float


# =============================================================================
# РЕПУТАЦИЯ
# =============================================================================

class ReputationMetadata(BaseModel):
    first_seen: float = Field(default_factory=time.time)
    last_seen: float = Field(default_factory=time.time)
    total_requests: int = 0
    failed_requests: int = 0
    blocked_requests: int = 0


class ReputationEventEntry(BaseModel):
    type: str
    severity: Severity
    timestamp: float
    penalty: float = 0.0


class ReputationRecord(BaseModel):
    """Хранимая запись репутации источника"""
    score: float
    last_update: float
    events: List[ReputationEventEntry] = Field(default_factory=list)
    metadata: ReputationMetadata = Field(default_factory=ReputationMetadata)


class ReputationSnapshot(BaseModel):
    score: float
    is_suspicious: bool
    metadata: ReputationMetadata
    recent_events: List[ReputationEventEntry] = Field(default_factory=list)


class SuspiciousSource(BaseModel):
    ip_address: str
    score: float
    metadata: ReputationMetadata


# =============================================================================
# ПОВЕДЕНЧЕСКИЙ АНАЛИЗ
# =============================================================================

class BehaviorHistoryEntry(BaseModel):
    timestamp: float
    event_type: str
    score: float


class BehaviorProfile(BaseModel):
    source_ip: str
    score: float = 0.0
    patterns: List[str] = Field(default_factory=list)
    last_seen: float = Field(default_factory=time.time)
    history: List[BehaviorHistoryEntry] = Field(default_factory=list)


# =============================================================================
# ГЕОЛОКАЦИЯ
# =============================================================================

class GeoLocation(BaseModel):
    country: str = ""
    country_code: str = ""
    region: str = ""
    city: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    isp: str = ""
    organization: str = ""


class CachedLocation(BaseModel):
    location: GeoLocation
    timestamp: float


# =============================================================================
# ПЕРЕБОР ПАРОЛЕЙ
# =============================================================================

class AttemptResult(BaseModel):
    blocked: bool
    attempts_remaining: int


class AttemptStats(BaseModel):
    attempts: int = 0
    first_attempt: Optional[float] = None
    last_attempt: Optional[float] = None
    blocked: bool = False
    block_time_remaining: float = 0.0


# =============================================================================
# АЛЕРТЫ
# =============================================================================

class DispatchReport(BaseModel):
    alert_id: str
    dispatched: bool
    reason: Optional[str] = None
    results: Dict[str, bool] = Field(default_factory=dict)
