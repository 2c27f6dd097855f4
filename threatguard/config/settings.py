# threatguard/config/settings.py
import logging
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from threatguard.config.models import (
    AlertingConfig,
    BehaviorConfig,
    BruteForceConfig,
    DetectionConfig,
    EventLogConfig,
    GeoBlockingConfig,
    HttpClientConfig,
    LoggingConfig,
    RateLimitConfig,
    ReputationConfig,
    SchedulerConfig,
)


class Settings(BaseSettings):
    REDIS_URL: str = "redis://localhost:6379/0"

    PORT: int = 8080
    HEALTH_CHECK_ENABLED: bool = True

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    http_client: HttpClientConfig = Field(default_factory=HttpClientConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    event_log: EventLogConfig = Field(default_factory=EventLogConfig)

    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    reputation: ReputationConfig = Field(default_factory=ReputationConfig)
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)
    geo_blocking: GeoBlockingConfig = Field(default_factory=GeoBlockingConfig)
    brute_force: BruteForceConfig = Field(default_factory=BruteForceConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    alerting: AlertingConfig = Field(default_factory=AlertingConfig)

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_dsn(cls, v: Any) -> str:
        if isinstance(v, str) and not v.startswith(("redis://", "rediss://", "unix://")):
            return f"redis://{v}"
        return v

    @property
    def redis_url(self) -> str:
        return self.REDIS_URL

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )


try:
    settings = Settings()
except ValidationError as e:
    # Битые регулярки и неверные веса паттернов попадают сюда же
    logging.critical(
        "❌ КРИТИЧЕСКАЯ ОШИБКА ВАЛИДАЦИИ НАСТРОЕК. Проверьте .env и переменные окружения.\n%s",
        e,
    )
    raise SystemExit("Ошибки валидации конфигурации.")
