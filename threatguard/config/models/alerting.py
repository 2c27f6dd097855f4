# threatguard/config/models/alerting.py
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class EmailChannelConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = False
    host: str = "localhost"
    port: int = 587
    use_tls: bool = False
    start_tls: bool = True
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    sender: str = "security@localhost"
    recipients: List[str] = []


class WebhookChannelConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = False
    url: Optional[str] = None
    timeout_seconds: float = 5.0


class AlertingConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = True
    cooldown_seconds: int = 300
    cooldown_cache_size: int = 10000
    channel_timeout_seconds: float = 10.0

    email: EmailChannelConfig = Field(default_factory=EmailChannelConfig)
    webhook: WebhookChannelConfig = Field(default_factory=WebhookChannelConfig)


class AlertCondition(BaseModel):
    metric: str
    operator: Literal[">", "<", ">=", "<=", "=="] = ">="
    threshold: float = 0
    window: int = 0


class AlertConfig(BaseModel):
    """Описание конкретного алерта (ключ антидребезга = id)"""
    id: str
    name: str
    type: Literal["info", "warning", "error", "critical"] = "warning"
    condition: AlertCondition
    channels: List[Literal["email", "webhook"]] = ["email", "webhook"]
    recipients: List[str] = []
    cooldown: int = 300
    enabled: bool = True
