# threatguard/services/geo/resolvers.py
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from threatguard.config.models import GeoBlockingConfig
from threatguard.utils.exceptions import ResolutionFailure
from threatguard.utils.http_client import HTTPClient
from threatguard.utils.models import GeoLocation


class GeoResolver(ABC):
    """Определяет геолокацию IP-адреса."""

    name: str = "base"

    @abstractmethod
    async def resolve(self, ip: str) -> GeoLocation:
        """
        Raises:
            ResolutionFailure: если определить местоположение не удалось
        """


class HttpGeoResolver(GeoResolver):
    """
    Резолвер на базе HTTP API в формате ipapi.co
    (country_name, country_code, region, city, latitude, longitude, org).
    """

    name = "http"

    def __init__(self, http_client: HTTPClient, url_template: str, timeout: Optional[float] = None):
        self.http_client = http_client
        self.url_template = url_template
        self.timeout = timeout

    @staticmethod
    def parse(data: Dict[str, Any]) -> GeoLocation:
        org = data.get("org") or ""
        return GeoLocation(
            country=data.get("country_name") or data.get("country") or "",
            country_code=(data.get("country_code") or "").upper(),
            region=data.get("region") or "",
            city=data.get("city") or "",
            latitude=float(data.get("latitude") or 0.0),
            longitude=float(data.get("longitude") or 0.0),
            isp=data.get("isp") or org,
            organization=org,
        )

    async def resolve(self, ip: str) -> GeoLocation:
        url = self.url_template.format(ip=ip)
        try:
            data = await self.http_client.get(url, timeout=self.timeout)
        except Exception as e:
            raise ResolutionFailure(ip, f"{self.name}: {e}") from e

        if not isinstance(data, dict):
            raise ResolutionFailure(ip, f"{self.name}: unexpected response")
        if data.get("error"):
            # ipapi.co отвечает {"error": true, "reason": "Reserved IP Address"}
            raise ResolutionFailure(ip, f"{self.name}: {data.get('reason', 'error')}")
        return self.parse(data)


class ChainedGeoResolver(GeoResolver):
    """Опрашивает резолверы по порядку до первого успешного ответа."""

    name = "chain"

    def __init__(self, resolvers: Sequence[GeoResolver]):
        self.resolvers = list(resolvers)

    async def resolve(self, ip: str) -> GeoLocation:
        last_error: Optional[ResolutionFailure] = None
        for resolver in self.resolvers:
            try:
                return await resolver.resolve(ip)
            except ResolutionFailure as e:
                logger.debug(f"🌍 Resolver '{resolver.name}' failed for {ip}: {e.reason}")
                last_error = e
        raise last_error or ResolutionFailure(ip, "no resolvers configured")


def build_geo_resolver(config: GeoBlockingConfig, http_client: HTTPClient) -> GeoResolver:
    """Основной резолвер (если задан) и публичный ipapi.co как запасной."""
    resolvers: List[GeoResolver] = []
    if config.primary_url:
        primary = HttpGeoResolver(http_client, config.primary_url, timeout=config.lookup_timeout_seconds)
        primary.name = "primary"
        resolvers.append(primary)
    resolvers.append(HttpGeoResolver(http_client, config.fallback_url, timeout=config.lookup_timeout_seconds))
    return ChainedGeoResolver(resolvers)
