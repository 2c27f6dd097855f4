# threatguard/config/models/behavior.py
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

WEIGHT_TOLERANCE = 1e-6


class BehaviorPatternConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    type: str
    weight: float
    description: str
    threshold: float


DEFAULT_BEHAVIOR_PATTERNS: List[BehaviorPatternConfig] = [
    BehaviorPatternConfig(
        type="request_frequency", weight=0.3,
        description="Unusual request frequency", threshold=100,
    ),
    BehaviorPatternConfig(
        type="error_rate", weight=0.2,
        description="High error rate", threshold=0.3,
    ),
    BehaviorPatternConfig(
        type="pattern_repetition", weight=0.25,
        description="Repetitive request patterns", threshold=5,
    ),
    BehaviorPatternConfig(
        type="time_distribution", weight=0.15,
        description="Unusual time distribution", threshold=0.8,
    ),
    BehaviorPatternConfig(
        type="resource_usage", weight=0.1,
        description="Abnormal resource usage", threshold=0.7,
    ),
]


def weights_sum_to_one(patterns: List[BehaviorPatternConfig]) -> bool:
    return abs(sum(p.weight for p in patterns) - 1.0) <= WEIGHT_TOLERANCE


class BehaviorConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    patterns: List[BehaviorPatternConfig] = Field(default_factory=lambda: list(DEFAULT_BEHAVIOR_PATTERNS))
    time_window_seconds: int = 86400
    pattern_threshold: float = 0.7
    significant_change: float = 0.2
    score_history: int = 10
    decay_factor: float = 0.9
    max_history: int = 100
    cache_size: int = 10000
    cache_ttl_seconds: int = 86400

    @field_validator("patterns")
    @classmethod
    def validate_weights(cls, v: List[BehaviorPatternConfig]) -> List[BehaviorPatternConfig]:
        if not weights_sum_to_one(v):
            raise ValueError("behavior pattern weights must sum to 1.0")
        return v
