# threatguard/services/rate_tracker.py
"""
Скользящие окна частоты запросов и ошибок на источник.
"""
import math
import time
import uuid
from typing import Callable, Literal, Optional

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from threatguard.config.models import TimeWindowsConfig
from threatguard.utils.keys import KeyFactory
from threatguard.utils.models import RateSnapshot

Scope = Literal["requests", "errors"]


class RateTracker:
    """
    Хранит временные метки событий источника в ZSET (score = unix time).

    Каждая вставка одной транзакцией добавляет метку, обрезает множество
    до самого длинного окна и продлевает TTL ключа. При ошибках Redis
    трекер работает в режиме fail-open: ничего не пишет, считает 0.
    """

    def __init__(
        self,
        redis: Redis,
        windows: TimeWindowsConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.windows = windows
        self.keys = KeyFactory()
        self._clock = clock

    def update_windows(self, windows: TimeWindowsConfig) -> None:
        self.windows = windows

    async def _record(self, ip: str, scope: Scope) -> None:
        now = self._clock()
        key = self.keys.rate_window(ip, scope)
        horizon = self.windows.largest
        member = f"{now:.6f}:{uuid.uuid4().hex[:8]}"
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {member: now})
                pipe.zremrangebyscore(key, "-inf", now - horizon)
                pipe.expire(key, int(math.ceil(horizon)))
                await pipe.execute()
        except RedisError as e:
            logger.warning(f"⚠️ Rate store unavailable, {scope} for {ip} not recorded: {e}")

    async def record_request(self, ip: str) -> None:
        await self._record(ip, "requests")

    async def record_error(self, ip: str) -> None:
        await self._record(ip, "errors")

    async def count(self, ip: str, window_seconds: float, scope: Scope = "requests") -> int:
        """Количество меток строго новее now - window_seconds."""
        now = self._clock()
        try:
            return int(await self.redis.zcount(self.keys.rate_window(ip, scope), f"({now - window_seconds}", "+inf"))
        except RedisError as e:
            logger.warning(f"⚠️ Rate store unavailable, counting {scope} for {ip} as 0: {e}")
            return 0

    async def snapshot(self, ip: str) -> RateSnapshot:
        """
        Все производные метрики разом.

        request_rate = запросы короткого окна / длина окна в секундах;
        error_rate = ошибки / запросы в среднем окне (0, если запросов нет).
        """
        short_count = await self.count(ip, self.windows.short)
        medium_count = await self.count(ip, self.windows.medium)
        long_count = await self.count(ip, self.windows.long)
        error_count = await self.count(ip, self.windows.medium, "errors")

        return RateSnapshot(
            short_count=short_count,
            medium_count=medium_count,
            long_count=long_count,
            error_count=error_count,
            request_rate=short_count / self.windows.short if self.windows.short else 0.0,
            error_rate=error_count / medium_count if medium_count else 0.0,
        )

    async def clear(self, ip: Optional[str] = None) -> int:
        """Сбрасывает окна одного источника или всех. Возвращает число удаленных ключей."""
        if ip is not None:
            keys = [self.keys.rate_window(ip, "requests"), self.keys.rate_window(ip, "errors")]
        else:
            keys = [key async for key in self.redis.scan_iter(match=self.keys.rate_window_pattern())]
        if not keys:
            return 0
        deleted = await self.redis.delete(*keys)
        logger.info(f"🧹 Rate counters cleared ({deleted} keys)")
        return deleted
