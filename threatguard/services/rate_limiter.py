# threatguard/services/rate_limiter.py
"""
Ограничение частоты запросов на тройку источник + эндпоинт + метод.
"""
import time
from typing import Callable, Optional, Tuple

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from threatguard.config.models import RateLimitConfig
from threatguard.services.event_log import SecurityEventLog
from threatguard.utils.keys import KeyFactory
from threatguard.utils.models import RateLimitResult, RateLimitStatus, SecurityEvent, Severity


class RateLimiter:
    """
    Фиксированные окна длиной window_seconds, выровненные по unix time.
    Счетчик окна живет в отдельном ключе: INCR и EXPIRE идут одной
    транзакцией, новое окно начинается с нового ключа.

    Превышение лимита пишет событие rate_limit (high). При ошибках
    Redis запрос пропускается.
    """

    def __init__(
        self,
        redis: Redis,
        config: RateLimitConfig,
        event_log: Optional[SecurityEventLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.config = config
        self.event_log = event_log
        self.keys = KeyFactory()
        self._clock = clock

    def _window(self, now: float) -> Tuple[int, float]:
        window = self.config.window_seconds
        start = int(now // window) * window
        return start, float(start + window)

    async def check(self, ip: str, endpoint: str, method: str) -> RateLimitResult:
        """
        Учитывает запрос и решает, пропускать ли его.

        Args:
            ip: Адрес источника
            endpoint: Путь эндпоинта
            method: HTTP-метод

        Returns:
            Разрешен ли запрос, сколько осталось в окне и когда окно сбросится
        """
        limit = self.config.max_requests
        now = self._clock()
        start, reset = self._window(now)
        key = self.keys.rate_limit(ip, endpoint, method, start)

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.config.window_seconds)
                count, _ = await pipe.execute()
        except RedisError as e:
            logger.error(f"❌ Rate limit store unavailable for {ip} {method} {endpoint}, allowing: {e}")
            return RateLimitResult(allowed=True, remaining=limit, reset=now + self.config.window_seconds)

        count = int(count)
        if count <= limit:
            return RateLimitResult(allowed=True, remaining=limit - count, reset=reset)

        logger.warning(f"🚦 Rate limit exceeded by {ip} on {method} {endpoint}: {count}/{limit}")
        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="rate_limit",
                    severity=Severity.HIGH,
                    source_ip=ip,
                    endpoint=endpoint,
                    details={
                        "method": method,
                        "current_count": count,
                        "max_requests": limit,
                        "window_seconds": self.config.window_seconds,
                    },
                )
            )
        return RateLimitResult(allowed=False, remaining=0, reset=reset)

    async def get_status(self, ip: str, endpoint: str, method: str) -> RateLimitStatus:
        """Текущий счетчик окна без его изменения."""
        limit = self.config.max_requests
        now = self._clock()
        start, reset = self._window(now)
        try:
            raw = await self.redis.get(self.keys.rate_limit(ip, endpoint, method, start))
        except RedisError as e:
            logger.error(f"❌ Rate limit status unavailable for {ip}: {e}")
            return RateLimitStatus(current=0, limit=limit, reset=now + self.config.window_seconds)
        return RateLimitStatus(current=int(raw or 0), limit=limit, reset=reset)

    async def reset(self, ip: str, endpoint: str, method: str) -> int:
        keys = [
            key async for key in self.redis.scan_iter(match=self.keys.rate_limit_pattern(ip, endpoint, method))
        ]
        if not keys:
            return 0
        deleted = await self.redis.delete(*keys)
        logger.info(f"🧹 Rate limit for {ip} {method} {endpoint} reset")
        return deleted
