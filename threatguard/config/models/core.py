# threatguard/config/models/core.py
from typing import List, Literal

from pydantic import BaseModel, ConfigDict


class LoggingConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    level: str = "INFO"
    format: Literal["text", "json"] = "text"
    debug_loggers: List[str] = []


class HttpClientConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    total_timeout: float = 10.0
    connect_timeout: float = 5.0
    connection_limit: int = 100
    connection_limit_per_host: int = 30
    user_agent: str = "threatguard/1.0"


class EventLogConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    max_events: int = 100
    per_source_max_events: int = 200
    per_source_ttl_seconds: int = 86400


class SchedulerConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = True
    reputation_recompute_minutes: int = 15
    cache_sweep_minutes: int = 5
