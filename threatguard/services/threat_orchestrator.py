# threatguard/services/threat_orchestrator.py
"""
Конвейер анализа входящего запроса.

Для каждого запроса: учет в окнах частоты, сигнатуры, пороги частоты,
репутация, гео-политика. Найденные угрозы журналируются, снижают
репутацию источника, а high/critical дополнительно блокируют источник
и поднимают алерт.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from threatguard.config.models import AlertCondition, AlertConfig, AlertingConfig, DetectionConfig
from threatguard.services.alerts.dispatcher import AlertDispatcher
from threatguard.services.behavior_service import BehaviorAnalyzer
from threatguard.services.block_list import BlockList
from threatguard.services.event_log import SecurityEventLog
from threatguard.services.geo.service import GeoBlockingService
from threatguard.services.pattern_matcher import PatternMatcher
from threatguard.services.rate_tracker import RateTracker
from threatguard.services.reputation_service import ReputationService
from threatguard.utils.exceptions import ConfigurationError
from threatguard.utils.models import (
    BehaviorProfile,
    RequestDescriptor,
    RequestSnapshot,
    SecurityEvent,
    Severity,
    ThreatDetails,
    ThreatEvent,
)

# Угрозы, выведенные из самой репутации, в нее не возвращаются
REPUTATION_DERIVED_TYPES = frozenset({"suspicious_ip"})

BlockHandler = Callable[[ThreatEvent], Awaitable[None]]


def _deep_merge(base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ThreatOrchestrator:
    def __init__(
        self,
        config: DetectionConfig,
        pattern_matcher: PatternMatcher,
        rate_tracker: RateTracker,
        reputation: ReputationService,
        geo_blocking: Optional[GeoBlockingService] = None,
        event_log: Optional[SecurityEventLog] = None,
        block_list: Optional[BlockList] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        behavior: Optional[BehaviorAnalyzer] = None,
        alerting: Optional[AlertingConfig] = None,
        block_handler: Optional[BlockHandler] = None,
    ):
        self.config = config
        self.pattern_matcher = pattern_matcher
        self.rate_tracker = rate_tracker
        self.reputation = reputation
        self.geo_blocking = geo_blocking
        self.event_log = event_log
        self.block_list = block_list
        self.dispatcher = dispatcher
        self.behavior = behavior
        self.alerting = alerting
        self.block_handler = block_handler

    # ------------------------------------------------------------------
    # Анализ
    # ------------------------------------------------------------------

    async def analyze_request(
        self, ip: str, request_id: str, request: RequestDescriptor
    ) -> List[ThreatEvent]:
        """
        Анализирует запрос и выполняет действия по найденным угрозам.

        Никогда не бросает исключений: упавшая или медленная проверка
        просто не добавляет угроз, ошибка логируется.

        Args:
            ip: Адрес источника
            request_id: Идентификатор запроса для корреляции
            request: Описание запроса

        Returns:
            Все обнаруженные угрозы
        """
        threats: List[ThreatEvent] = []
        try:
            await self._run_check("record", self._record_request(ip))
            threats.extend(self._check_patterns(ip, request_id, request))
            # Репутация читается до того, как угрозы этого запроса ее изменят
            threats.extend(await self._run_check("rates", self._check_rates(ip, request_id)))
            threats.extend(await self._run_check("reputation", self._check_reputation(ip, request_id)))
            threats.extend(await self._run_check("geo", self._check_geo(ip, request_id)))
        except Exception:
            logger.exception(f"❌ Threat analysis failed for request {request_id} from {ip}")

        if threats:
            logger.warning(
                f"🚩 {len(threats)} threat(s) for {request.method} {request.path} from {ip}: "
                f"{[t.type for t in threats]}"
            )
            try:
                await asyncio.wait_for(
                    self._handle_threats(ip, threats), timeout=self.config.action_timeout_seconds
                )
            except asyncio.TimeoutError:
                logger.warning(f"⏱️ Threat actions for request {request_id} from {ip} timed out")
        return threats

    async def _record_request(self, ip: str) -> List[ThreatEvent]:
        await self.rate_tracker.record_request(ip)
        return []

    async def _run_check(self, name: str, check: Awaitable[List[ThreatEvent]]) -> List[ThreatEvent]:
        try:
            return await asyncio.wait_for(check, timeout=self.config.check_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ {name} check timed out, skipping")
        except Exception:
            logger.exception(f"❌ {name} check failed, skipping")
        return []

    def _event(
        self,
        ip: str,
        request_id: str,
        type: str,
        severity: Severity,
        category: str,
        description: str,
        **details: Any,
    ) -> ThreatEvent:
        return ThreatEvent(
            type=type,
            severity=severity,
            timestamp=time.time(),
            source_ip=ip,
            request_id=request_id,
            details=ThreatDetails(category=category, description=description, **details),
        )

    def _check_patterns(self, ip: str, request_id: str, request: RequestDescriptor) -> List[ThreatEvent]:
        snapshot = RequestSnapshot(method=request.method, path=request.path, headers=request.headers)
        return [
            self._event(
                ip, request_id, match.type, match.severity, match.category, match.description,
                pattern=match.pattern, request=snapshot,
            )
            for match in self.pattern_matcher.classify(request)
        ]

    async def _check_rates(self, ip: str, request_id: str) -> List[ThreatEvent]:
        thresholds = self.config.thresholds
        rates = await self.rate_tracker.snapshot(ip)
        threats: List[ThreatEvent] = []

        if rates.request_rate > thresholds.request_rate:
            threats.append(self._event(
                ip, request_id, "high_request_rate", Severity.MEDIUM, "dos",
                "Request rate exceeds threshold",
                metrics={"request_rate": rates.request_rate, "request_count": rates.short_count},
            ))
        if rates.error_rate > thresholds.error_rate:
            threats.append(self._event(
                ip, request_id, "high_error_rate", Severity.MEDIUM, "other",
                "Error rate exceeds threshold",
                metrics={"error_rate": rates.error_rate, "error_count": rates.error_count},
            ))
        if rates.medium_count > thresholds.scan_threshold:
            threats.append(self._event(
                ip, request_id, "potential_scan", Severity.LOW, "scanning",
                "Potential scanning behavior detected",
                metrics={"request_count": rates.medium_count},
            ))
        return threats

    async def _check_reputation(self, ip: str, request_id: str) -> List[ThreatEvent]:
        snapshot = await self.reputation.get_reputation(ip)
        if snapshot.score >= self.config.thresholds.suspicious_score:
            return []
        max_score = self.reputation.config.max_score
        return [self._event(
            ip, request_id, "suspicious_ip", Severity.HIGH, "other",
            "IP has low reputation score",
            metrics={"reputation_score": snapshot.score, "suspicious_score": max_score - snapshot.score},
        )]

    async def _check_geo(self, ip: str, request_id: str) -> List[ThreatEvent]:
        if self.geo_blocking is None or not await self.geo_blocking.is_blocked(ip):
            return []
        return [self._event(
            ip, request_id, "geo_blocked", Severity.MEDIUM, "other",
            "IP is blocked by geographic policy",
        )]

    # ------------------------------------------------------------------
    # Действия
    # ------------------------------------------------------------------

    async def _handle_threats(self, ip: str, threats: List[ThreatEvent]) -> None:
        actions = self.config.actions
        for threat in threats:
            try:
                if actions.log and self.event_log is not None:
                    await self.event_log.track_security_event(SecurityEvent.from_threat(threat), alert=False)
                    await self.event_log.append_threat(threat)

                if actions.update_reputation and threat.type not in REPUTATION_DERIVED_TYPES:
                    await self.reputation.update_reputation(ip, threat)

                if threat.severity.is_high:
                    if actions.block:
                        await self._block(threat)
                    if actions.alert:
                        self._alert(threat)
            except Exception:
                logger.exception(f"❌ Failed to handle threat {threat.type} from {ip}")

    async def _block(self, threat: ThreatEvent) -> None:
        if self.block_handler is not None:
            await self.block_handler(threat)
        elif self.block_list is not None:
            await self.block_list.block(
                threat.source_ip, self.config.block_duration_seconds, reason=threat.type
            )

    def _alert(self, threat: ThreatEvent) -> None:
        if self.dispatcher is None or not self.dispatcher.channels:
            return
        alerting = self.alerting or AlertingConfig()
        alert = AlertConfig(
            id=f"threat:{threat.type}:{threat.source_ip}",
            name=f"Security Threat Detected: {threat.type}",
            type="critical" if threat.severity is Severity.CRITICAL else "error",
            condition=AlertCondition(metric=threat.type, operator="==", threshold=1),
            channels=list(self.dispatcher.channels),
            recipients=alerting.email.recipients,
            cooldown=alerting.cooldown_seconds,
        )
        self.dispatcher.dispatch_in_background(alert, threat.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Вспомогательный API
    # ------------------------------------------------------------------

    async def record_error(self, ip: str) -> None:
        """Учитывает ответ с ошибкой для расчета error_rate."""
        await self.rate_tracker.record_error(ip)

    async def is_blocked(self, ip: str) -> bool:
        if self.block_list is None:
            return False
        return await self.block_list.is_blocked(ip)

    async def profile_source(self, ip: str) -> Optional[BehaviorProfile]:
        """Поведенческий профиль по журналу угроз источника."""
        if self.behavior is None or self.event_log is None:
            return None
        threats = await self.event_log.get_source_threats(ip)
        return await self.behavior.analyze_behavior(ip, threats)

    def get_config(self) -> DetectionConfig:
        return self.config.model_copy(deep=True)

    async def update_config(self, **changes: Any) -> DetectionConfig:
        """
        Частичное (глубокое) обновление конфигурации на лету.

        Raises:
            ConfigurationError: если итоговая конфигурация невалидна
        """
        try:
            new_config = DetectionConfig.model_validate(
                _deep_merge(self.config.model_dump(), changes)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid detection config: {e}") from e

        if "patterns" in changes:
            self.pattern_matcher.replace_patterns(new_config.patterns)
        self.rate_tracker.update_windows(new_config.time_windows)
        self.config = new_config
        logger.info(f"🔄 Detection config updated: {sorted(changes)}")
        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="threat_detection_config_update",
                    severity=Severity.LOW,
                    details={"changes": changes},
                )
            )
        return new_config

    async def clear_counts(self, ip: Optional[str] = None) -> int:
        return await self.rate_tracker.clear(ip)
