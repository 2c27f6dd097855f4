# threatguard/services/geo/service.py
"""
Гео-блокировка по политике стран.
"""
import asyncio
import time
from typing import Callable, Dict, List, Optional

from cachetools import TTLCache
from loguru import logger
from pydantic import ValidationError

from threatguard.config.models import GeoBlockingConfig
from threatguard.services.event_log import SecurityEventLog
from threatguard.services.geo.resolvers import GeoResolver
from threatguard.utils.exceptions import ConfigurationError, ResolutionFailure
from threatguard.utils.models import CachedLocation, GeoLocation, SecurityEvent, Severity


class GeoBlockingService:
    """
    Решает, блокировать ли источник по его стране.

    Порядок проверки: страна в blocked_countries; непустой
    allowed_countries без этой страны; неизвестная страна при
    block_unknown_locations. Локации кэшируются на update_interval_seconds.
    Поиск дольше lookup_timeout_seconds не блокирует запрос.
    """

    def __init__(
        self,
        config: GeoBlockingConfig,
        resolver: GeoResolver,
        event_log: Optional[SecurityEventLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.resolver = resolver
        self.event_log = event_log
        self._clock = clock
        self._cache = self._build_cache()

    def _build_cache(self) -> TTLCache:
        return TTLCache(
            maxsize=self.config.cache_size,
            ttl=self.config.update_interval_seconds,
            timer=self._clock,
        )

    async def get_location(self, ip: str) -> GeoLocation:
        """
        Raises:
            ResolutionFailure: если резолвер не справился
        """
        cached: Optional[CachedLocation] = self._cache.get(ip)
        if cached is not None:
            return cached.location

        location = await self.resolver.resolve(ip)
        self._cache[ip] = CachedLocation(location=location, timestamp=self._clock())
        return location

    async def is_blocked(self, ip: str) -> bool:
        """
        Args:
            ip: Адрес источника

        Returns:
            True, если политика требует блокировки
        """
        try:
            location = await asyncio.wait_for(
                self.get_location(ip), timeout=self.config.lookup_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Geo lookup for {ip} timed out, allowing request")
            return False
        except ResolutionFailure as e:
            logger.warning(f"🌍 Geo lookup for {ip} failed: {e.reason}")
            if self.config.block_unknown_locations:
                await self._log_block(ip, GeoLocation(), "location_error", error=e.reason)
                return True
            return False

        reason = self._decide(location)
        if reason is None:
            return False
        await self._log_block(ip, location, reason)
        return True

    def _decide(self, location: GeoLocation) -> Optional[str]:
        code = location.country_code.upper()
        if code and code in self.config.blocked_countries:
            return "blocked_country"
        if code and self.config.allowed_countries and code not in self.config.allowed_countries:
            return "not_allowed_country"
        if not code and self.config.block_unknown_locations:
            return "unknown_location"
        return None

    async def _log_block(self, ip: str, location: GeoLocation, reason: str, **extra) -> None:
        logger.warning(f"⛔ Geo block {ip}: {reason} ({location.country_code or 'unknown'})")
        if self.event_log is None:
            return
        await self.event_log.track_security_event(
            SecurityEvent(
                type="geo_block",
                severity=Severity.MEDIUM,
                source_ip=ip,
                details={"reason": reason, "location": location.model_dump(), **extra},
            )
        )

    async def update_config(self, **changes) -> GeoBlockingConfig:
        """
        Частичное обновление политики. Смена update_interval_seconds
        сбрасывает кэш локаций.

        Raises:
            ConfigurationError: если итоговая конфигурация невалидна
        """
        try:
            new_config = GeoBlockingConfig.model_validate(self.config.model_dump() | changes)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid geo blocking config: {e}") from e
        interval_changed = new_config.update_interval_seconds != self.config.update_interval_seconds
        self.config = new_config
        if interval_changed:
            self._cache = self._build_cache()

        logger.info(f"🔄 Geo blocking config updated: {sorted(changes)}")
        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="geo_block_config_update",
                    severity=Severity.LOW,
                    details={"changes": changes},
                )
            )
        return new_config

    def get_blocked_countries(self) -> List[str]:
        return list(self.config.blocked_countries)

    def get_allowed_countries(self) -> List[str]:
        return list(self.config.allowed_countries)

    def get_location_cache(self) -> Dict[str, GeoLocation]:
        """Только еще действительные записи."""
        self._cache.expire()
        return {ip: entry.location for ip, entry in self._cache.items()}

    def clear_location_cache(self) -> None:
        self._cache.clear()

    def expire(self) -> None:
        self._cache.expire()
