# threatguard/config/models/brute_force.py
from typing import List

from pydantic import BaseModel, ConfigDict


class BruteForceConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    max_attempts: int = 5
    window_seconds: int = 900
    block_duration_seconds: int = 3600
    endpoints: List[str] = ["/api/auth/login", "/api/auth/reset-password"]
    block_namespace: str = "brute_force_block"

    # Поведение при недоступном Redis: пропускать (True) или блокировать (False)
    fail_open: bool = True
