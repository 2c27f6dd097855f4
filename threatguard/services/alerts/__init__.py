# threatguard/services/alerts/__init__.py
from threatguard.services.alerts.channels import (
    AlertChannel,
    EmailAlertChannel,
    WebhookAlertChannel,
    build_alert_channels,
)
from threatguard.services.alerts.dispatcher import AlertDispatcher

__all__ = [
    "AlertChannel",
    "AlertDispatcher",
    "EmailAlertChannel",
    "WebhookAlertChannel",
    "build_alert_channels",
]
