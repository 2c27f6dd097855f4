# threatguard/services/brute_force_service.py
"""
Защита чувствительных эндпоинтов от перебора паролей.
"""
import time
import uuid
from typing import Callable, Optional

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from threatguard.config.models import BruteForceConfig
from threatguard.services.block_list import BlockList
from threatguard.services.event_log import SecurityEventLog
from threatguard.utils.keys import KeyFactory
from threatguard.utils.models import AttemptResult, AttemptStats, SecurityEvent, Severity


class BruteForceDetector:
    """
    Считает неудачные попытки в честном скользящем окне (ZSET меток
    времени на пару эндпоинт + источник). Достижение max_attempts ставит
    блокировку на block_duration_seconds. Активная блокировка имеет
    приоритет над счетчиками.
    """

    def __init__(
        self,
        redis: Redis,
        config: BruteForceConfig,
        event_log: Optional[SecurityEventLog] = None,
        block_list: Optional[BlockList] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.config = config
        self.event_log = event_log
        self.block_list = block_list or BlockList(redis, config.block_namespace)
        self.keys = KeyFactory()
        self._clock = clock

    def is_monitored(self, endpoint: str) -> bool:
        return endpoint in self.config.endpoints

    async def track_attempt(self, ip: str, endpoint: str, success: bool) -> AttemptResult:
        """
        Учитывает попытку входа.

        Args:
            ip: Адрес источника
            endpoint: Путь эндпоинта
            success: Была ли попытка успешной

        Returns:
            Заблокирован ли источник и сколько попыток осталось
        """
        max_attempts = self.config.max_attempts
        if not self.is_monitored(endpoint):
            return AttemptResult(blocked=False, attempts_remaining=max_attempts)

        try:
            if await self.block_list.is_blocked(ip):
                return AttemptResult(blocked=True, attempts_remaining=0)

            key = self.keys.brute_force_attempts(endpoint, ip)
            if success:
                await self.redis.delete(key)
                return AttemptResult(blocked=False, attempts_remaining=max_attempts)

            attempts, first_attempt, now = await self._record_failure(key)
        except RedisError as e:
            logger.error(f"❌ Brute force store unavailable for {ip} on {endpoint}: {e}")
            if self.config.fail_open:
                return AttemptResult(blocked=False, attempts_remaining=max_attempts)
            return AttemptResult(blocked=True, attempts_remaining=0)

        if attempts >= max_attempts:
            await self._block(ip, endpoint, key, attempts, first_attempt, now)
            return AttemptResult(blocked=True, attempts_remaining=0)

        return AttemptResult(blocked=False, attempts_remaining=max_attempts - attempts)

    async def _record_failure(self, key: str) -> tuple[int, float, float]:
        now = self._clock()
        window = self.config.window_seconds
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zadd(key, {f"{now:.6f}:{uuid.uuid4().hex[:8]}": now})
            pipe.zremrangebyscore(key, "-inf", now - window)
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, window)
            _, _, attempts, first, _ = await pipe.execute()
        first_attempt = first[0][1] if first else now
        return int(attempts), float(first_attempt), now

    async def _block(
        self, ip: str, endpoint: str, key: str, attempts: int, first_attempt: float, now: float
    ) -> None:
        duration = self.config.block_duration_seconds
        await self.block_list.block(ip, duration, reason=f"brute_force:{endpoint}")
        # После снятия блокировки счет начинается заново
        await self.redis.delete(key)

        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="brute_force_attempt",
                    severity=Severity.HIGH,
                    source_ip=ip,
                    endpoint=endpoint,
                    details={
                        "attempts": attempts,
                        "time_window": self.config.window_seconds,
                        "first_attempt": first_attempt,
                        "last_attempt": now,
                        "block_duration": duration,
                    },
                )
            )

    async def is_blocked(self, ip: str) -> bool:
        return await self.block_list.is_blocked(ip)

    async def get_block_time_remaining(self, ip: str) -> float:
        """Оставшееся время блокировки в секундах."""
        return await self.block_list.time_remaining(ip)

    async def get_attempt_stats(self, ip: str, endpoint: str) -> AttemptStats:
        key = self.keys.brute_force_attempts(endpoint, ip)
        now = self._clock()
        entries = await self.redis.zrangebyscore(
            key, f"({now - self.config.window_seconds}", "+inf", withscores=True
        )
        remaining = await self.block_list.time_remaining(ip)
        return AttemptStats(
            attempts=len(entries),
            first_attempt=entries[0][1] if entries else None,
            last_attempt=entries[-1][1] if entries else None,
            blocked=remaining > 0,
            block_time_remaining=remaining,
        )

    async def reset_attempts(self, ip: str, endpoint: str) -> None:
        await self.redis.delete(self.keys.brute_force_attempts(endpoint, ip))

    async def unblock_ip(self, ip: str) -> bool:
        removed = await self.block_list.unblock(ip)
        logger.info(f"🔓 {ip} manually unblocked (was blocked: {removed})")
        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="brute_force_unblock",
                    severity=Severity.MEDIUM,
                    source_ip=ip,
                    details={"action": "manual_unblock"},
                )
            )
        return removed
