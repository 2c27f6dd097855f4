# threatguard/services/geo/__init__.py
from threatguard.services.geo.resolvers import (
    ChainedGeoResolver,
    GeoResolver,
    HttpGeoResolver,
    build_geo_resolver,
)
from threatguard.services.geo.service import GeoBlockingService

__all__ = [
    "ChainedGeoResolver",
    "GeoBlockingService",
    "GeoResolver",
    "HttpGeoResolver",
    "build_geo_resolver",
]
