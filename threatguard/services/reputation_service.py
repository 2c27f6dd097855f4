# threatguard/services/reputation_service.py
"""
Репутация источников запросов.

Шкала доверия: max_score = полностью доверенный источник, чем ниже
балл, тем менее он надежен. Балл линейно снижается со временем
(decay) и штрафуется за каждое событие в зависимости от критичности.
"""
import time
from typing import Callable, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from threatguard.config.models import ReputationConfig
from threatguard.services.event_log import SecurityEventLog
from threatguard.utils.exceptions import StoreUnavailable
from threatguard.utils.keys import KeyFactory
from threatguard.utils.models import (
    ReputationEventEntry,
    ReputationMetadata,
    ReputationRecord,
    ReputationSnapshot,
    SecurityEvent,
    Severity,
    SuspiciousSource,
    ThreatEvent,
)

Mutator = Callable[[Optional[ReputationRecord], float], Optional[ReputationRecord]]


class ReputationService:
    def __init__(
        self,
        redis: Redis,
        config: ReputationConfig,
        event_log: Optional[SecurityEventLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.config = config
        self.event_log = event_log
        self.keys = KeyFactory()
        self._clock = clock

    # ------------------------------------------------------------------
    # Расчеты
    # ------------------------------------------------------------------

    def _clamp(self, score: float) -> float:
        return max(self.config.min_score, min(self.config.max_score, score))

    def _decay(self, score: float, elapsed: float) -> float:
        if elapsed <= 0:
            return score
        decay = self.config.decay_rate * elapsed / self.config.update_interval_seconds
        return self._clamp(score - decay)

    def penalty_for(self, severity: Severity) -> float:
        penalties = self.config.penalties
        if severity is Severity.CRITICAL:
            return penalties.critical * penalties.critical_multiplier
        return getattr(penalties, severity.value)

    def _new_record(self, now: float) -> ReputationRecord:
        return ReputationRecord(
            score=self.config.max_score,
            last_update=now,
            metadata=ReputationMetadata(first_seen=now, last_seen=now),
        )

    def _current_score(self, record: ReputationRecord, now: float) -> float:
        return self._decay(record.score, now - record.last_update)

    def _load(self, raw) -> Optional[ReputationRecord]:
        if raw is None:
            return None
        try:
            return ReputationRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"⚠️ Corrupted reputation record ignored: {raw!r:.120}")
            return None

    # ------------------------------------------------------------------
    # Хранилище
    # ------------------------------------------------------------------

    async def _conditional_update(
        self, ip: str, mutate: Mutator
    ) -> Tuple[Optional[ReputationRecord], Optional[ReputationRecord]]:
        """
        Read-modify-write под WATCH: параллельные обновления одного источника
        не затирают друг друга. При конфликте операция повторяется.

        Returns:
            (старая запись, новая запись)
        """
        key = self.keys.ip_reputation(ip)
        async with self.redis.pipeline(transaction=True) as pipe:
            for _ in range(self.config.update_retries):
                try:
                    await pipe.watch(key)
                    previous = self._load(await pipe.get(key))
                    updated = mutate(previous.model_copy(deep=True) if previous else None, self._clock())
                    if updated is None:
                        await pipe.unwatch()
                        return previous, previous
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json(), ex=self.config.record_ttl_seconds)
                    await pipe.execute()
                    return previous, updated
                except WatchError:
                    logger.debug(f"🔁 Reputation record for {ip} changed concurrently, retrying")
                    continue
        raise StoreUnavailable(f"Reputation update for {ip} kept conflicting")

    # ------------------------------------------------------------------
    # Публичный API
    # ------------------------------------------------------------------

    async def get_reputation(self, ip: str) -> ReputationSnapshot:
        """
        Текущая репутация с учетом снижения на момент запроса.
        Чтение ничего не записывает.

        Args:
            ip: Адрес источника

        Returns:
            Снимок репутации; для неизвестного источника max_score
        """
        now = self._clock()
        try:
            record = self._load(await self.redis.get(self.keys.ip_reputation(ip)))
        except RedisError as e:
            logger.error(f"❌ Reputation store unavailable for {ip}, assuming default: {e}")
            record = None

        if record is None:
            record = self._new_record(now)

        score = self._current_score(record, now)
        return ReputationSnapshot(
            score=score,
            is_suspicious=score < self.config.score_threshold,
            metadata=record.metadata,
            recent_events=record.events[-10:],
        )

    async def update_reputation(self, ip: str, event: ThreatEvent | SecurityEvent) -> Optional[ReputationRecord]:
        """
        Применяет снижение и штраф за событие, сохраняет запись.

        Args:
            ip: Адрес источника
            event: Событие с типом и критичностью

        Returns:
            Обновленная запись или None, если хранилище недоступно
        """
        penalty = self.penalty_for(event.severity)

        def mutate(record: Optional[ReputationRecord], now: float) -> ReputationRecord:
            record = record or self._new_record(now)
            record.score = self._clamp(self._current_score(record, now) - penalty)
            record.last_update = now
            record.events.append(
                ReputationEventEntry(
                    type=event.type, severity=event.severity, timestamp=now, penalty=penalty
                )
            )
            record.events = record.events[-self.config.max_events:]

            meta = record.metadata
            meta.last_seen = now
            meta.total_requests += 1
            if event.severity.rank >= Severity.MEDIUM.rank:
                meta.failed_requests += 1
            if event.severity.is_high:
                meta.blocked_requests += 1
            return record

        try:
            previous, updated = await self._conditional_update(ip, mutate)
        except (RedisError, StoreUnavailable) as e:
            logger.error(f"❌ Failed to update reputation for {ip}: {e}")
            return None

        old_score = self._current_score(previous, updated.last_update) if previous else self.config.max_score
        await self._log_change(ip, old_score, updated.score, event.type)
        return updated

    async def _log_change(self, ip: str, old_score: float, new_score: float, reason: str) -> None:
        change = new_score - old_score
        if abs(change) <= self.config.significant_change or self.event_log is None:
            return
        severity = Severity.HIGH if abs(change) >= 2 * self.config.significant_change else Severity.MEDIUM
        await self.event_log.track_security_event(
            SecurityEvent(
                type="ip_reputation_change",
                severity=severity,
                source_ip=ip,
                details={
                    "old_score": round(old_score, 2),
                    "new_score": round(new_score, 2),
                    "change": round(change, 2),
                    "reason": reason,
                },
            )
        )

    async def get_suspicious_ips(self, limit: int = 10) -> List[SuspiciousSource]:
        """Источники ниже порога, от наименее надежного к более надежному."""
        now = self._clock()
        prefix = self.keys.ip_reputation("")
        suspicious: List[SuspiciousSource] = []

        async for key in self.redis.scan_iter(match=self.keys.ip_reputation_pattern()):
            record = self._load(await self.redis.get(key))
            if record is None:
                continue
            score = self._current_score(record, now)
            if score < self.config.score_threshold:
                suspicious.append(
                    SuspiciousSource(ip_address=key[len(prefix):], score=score, metadata=record.metadata)
                )

        suspicious.sort(key=lambda s: s.score)
        return suspicious[:limit]

    async def reset_reputation(self, ip: str) -> None:
        await self.redis.delete(self.keys.ip_reputation(ip))
        logger.info(f"♻️ Reputation for {ip} reset")
        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="ip_reputation_reset",
                    severity=Severity.MEDIUM,
                    source_ip=ip,
                    details={"action": "reset"},
                )
            )

    # ------------------------------------------------------------------
    # Периодический пересчет
    # ------------------------------------------------------------------

    def replay(self, record: ReputationRecord) -> ReputationRecord:
        """
        Пересчитывает балл по сохраненной истории событий: начиная с max_score,
        применяет снижение между событиями и штраф каждого события.
        События, вытесненные из ограниченной истории, больше не учитываются.
        """
        if not record.events:
            return record
        events = sorted(record.events, key=lambda e: e.timestamp)
        score = self.config.max_score
        previous_ts = events[0].timestamp
        for entry in events:
            score = self._clamp(self._decay(score, entry.timestamp - previous_ts) - entry.penalty)
            previous_ts = entry.timestamp
        record.score = score
        record.last_update = previous_ts
        return record

    async def recompute_score(self, ip: str) -> Optional[float]:
        def mutate(record: Optional[ReputationRecord], now: float) -> Optional[ReputationRecord]:
            if record is None or not record.events:
                return None
            return self.replay(record)

        try:
            _, updated = await self._conditional_update(ip, mutate)
        except (RedisError, StoreUnavailable) as e:
            logger.error(f"❌ Failed to recompute reputation for {ip}: {e}")
            return None
        return self._current_score(updated, self._clock()) if updated else None

    async def recompute_all(self) -> int:
        """Пересчитывает все хранимые записи. Возвращает число обработанных."""
        prefix = self.keys.ip_reputation("")
        processed = 0
        async for key in self.redis.scan_iter(match=self.keys.ip_reputation_pattern()):
            if await self.recompute_score(key[len(prefix):]) is not None:
                processed += 1
        logger.info(f"♻️ Reputation recomputed for {processed} source(s)")
        return processed
