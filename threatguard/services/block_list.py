# threatguard/services/block_list.py
from typing import Optional

from loguru import logger
from redis.asyncio import Redis

from threatguard.utils.keys import KeyFactory


class BlockList:
    """
    TTL-флаги блокировки источников. Наличие ключа = источник заблокирован,
    снятие блокировки происходит само по истечении TTL.
    """

    def __init__(self, redis: Redis, namespace: str):
        self.redis = redis
        self.namespace = namespace
        self.keys = KeyFactory()

    def _key(self, ip: str) -> str:
        return self.keys.block(self.namespace, ip)

    async def block(self, ip: str, duration_seconds: float, reason: Optional[str] = None) -> None:
        await self.redis.set(self._key(ip), reason or "blocked", px=int(duration_seconds * 1000))
        logger.warning(f"⛔ {ip} blocked in '{self.namespace}' for {duration_seconds:.0f}s (reason: {reason})")

    async def is_blocked(self, ip: str) -> bool:
        return bool(await self.redis.exists(self._key(ip)))

    async def unblock(self, ip: str) -> bool:
        removed = await self.redis.delete(self._key(ip))
        return bool(removed)

    async def time_remaining(self, ip: str) -> float:
        """Оставшееся время блокировки в секундах (0, если блокировки нет)."""
        ttl_ms = await self.redis.pttl(self._key(ip))
        return ttl_ms / 1000 if ttl_ms and ttl_ms > 0 else 0.0
