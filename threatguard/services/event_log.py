# threatguard/services/event_log.py
"""
Журнал событий безопасности.

Два потока в Redis:
- общий аудит (LIST, ограничен max_events);
- журнал угроз по источнику (LIST с TTL), из которого строится
  поведенческий профиль.
"""
from typing import List, Optional

from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from threatguard.config.models import AlertCondition, AlertConfig, AlertingConfig, EventLogConfig
from threatguard.services.alerts.dispatcher import AlertDispatcher
from threatguard.utils.keys import KeyFactory
from threatguard.utils.models import SecurityEvent, Severity, ThreatEvent

_LOG_LEVELS = {
    Severity.LOW: "INFO",
    Severity.MEDIUM: "WARNING",
    Severity.HIGH: "WARNING",
    Severity.CRITICAL: "CRITICAL",
}

_ALERT_TYPES = {
    Severity.HIGH: "error",
    Severity.CRITICAL: "critical",
}


class SecurityEventLog:
    def __init__(
        self,
        redis: Redis,
        config: EventLogConfig,
        dispatcher: Optional[AlertDispatcher] = None,
        alerting: Optional[AlertingConfig] = None,
    ):
        self.redis = redis
        self.config = config
        self.dispatcher = dispatcher
        self.alerting = alerting
        self.keys = KeyFactory()

    async def track_security_event(self, event: SecurityEvent, alert: bool = True) -> None:
        """
        Записывает событие в аудит и при high/critical поднимает алерт.
        Ошибки записи не прерывают обработку запроса.
        """
        logger.log(
            _LOG_LEVELS[event.severity],
            f"🛡️ Security event {event.type} [{event.severity.value}] source={event.source_ip} details={event.details}",
        )
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lpush(self.keys.security_events(), event.model_dump_json())
                pipe.ltrim(self.keys.security_events(), 0, self.config.max_events - 1)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"❌ Failed to persist security event {event.type}: {e}")

        if alert and event.severity.is_high:
            self._raise_alert(event)

    def _raise_alert(self, event: SecurityEvent) -> None:
        if self.dispatcher is None or not self.dispatcher.channels:
            return
        if self.alerting is not None and not self.alerting.enabled:
            return

        cooldown = self.alerting.cooldown_seconds if self.alerting else 300
        recipients = self.alerting.email.recipients if self.alerting else []
        alert = AlertConfig(
            id=f"security:{event.type}:{event.source_ip or 'global'}",
            name=f"Security Event: {event.type}",
            type=_ALERT_TYPES[event.severity],
            condition=AlertCondition(metric="security_event", operator="==", threshold=1),
            channels=list(self.dispatcher.channels),
            recipients=recipients,
            cooldown=cooldown,
        )
        self.dispatcher.dispatch_in_background(alert, event.model_dump(mode="json"))

    async def append_threat(self, threat: ThreatEvent) -> None:
        """Добавляет угрозу в журнал ее источника (append-only, новые в начале)."""
        key = self.keys.source_threats(threat.source_ip)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lpush(key, threat.model_dump_json())
                pipe.ltrim(key, 0, self.config.per_source_max_events - 1)
                pipe.expire(key, self.config.per_source_ttl_seconds)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"❌ Failed to append threat {threat.type} for {threat.source_ip}: {e}")

    async def get_recent_events(self, limit: int = 50) -> List[SecurityEvent]:
        raw = await self.redis.lrange(self.keys.security_events(), 0, limit - 1)
        return self._parse(raw, SecurityEvent)

    async def get_source_threats(self, ip: str, limit: Optional[int] = None) -> List[ThreatEvent]:
        """Угрозы источника в хронологическом порядке (старые первыми)."""
        end = (limit - 1) if limit else -1
        raw = await self.redis.lrange(self.keys.source_threats(ip), 0, end)
        return list(reversed(self._parse(raw, ThreatEvent)))

    @staticmethod
    def _parse(raw: list, model):
        items = []
        for entry in raw:
            try:
                items.append(model.model_validate_json(entry))
            except ValidationError:
                logger.warning(f"⚠️ Skipping malformed event log entry: {entry!r:.120}")
        return items
