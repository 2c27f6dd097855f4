# threatguard/config/models/reputation.py
from pydantic import BaseModel, ConfigDict, Field, model_validator


class SeverityPenalties(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    low: float = 5.0
    medium: float = 10.0
    high: float = 20.0
    critical: float = 30.0
    critical_multiplier: float = 2.0


class ReputationConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    score_threshold: float = 50.0
    max_score: float = 100.0
    min_score: float = 0.0

    # Линейное снижение: decay_rate очков за каждые update_interval_seconds
    decay_rate: float = 1.0
    update_interval_seconds: float = 3600.0

    penalties: SeverityPenalties = Field(default_factory=SeverityPenalties)
    significant_change: float = 20.0

    max_events: int = 100
    record_ttl_seconds: int = 7 * 86400
    update_retries: int = 5

    @model_validator(mode="after")
    def check_bounds(self) -> "ReputationConfig":
        if self.min_score > self.max_score:
            raise ValueError("min_score must not exceed max_score")
        if self.update_interval_seconds <= 0:
            raise ValueError("update_interval_seconds must be positive")
        return self
