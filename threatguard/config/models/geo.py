# threatguard/config/models/geo.py
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class GeoBlockingConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    blocked_countries: List[str] = []
    allowed_countries: List[str] = []
    block_unknown_locations: bool = True

    update_interval_seconds: int = 86400
    lookup_timeout_seconds: float = 2.0
    cache_size: int = 10000

    fallback_url: str = "https://ipapi.co/{ip}/json/"
    primary_url: Optional[str] = None

    @field_validator("blocked_countries", "allowed_countries")
    @classmethod
    def normalize_codes(cls, v: List[str]) -> List[str]:
        return [code.strip().upper() for code in v if code.strip()]
