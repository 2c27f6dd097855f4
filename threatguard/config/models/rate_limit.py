# threatguard/config/models/rate_limit.py
from pydantic import BaseModel, ConfigDict, Field


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    window_seconds: int = Field(default=900, gt=0)
    max_requests: int = Field(default=100, gt=0)
