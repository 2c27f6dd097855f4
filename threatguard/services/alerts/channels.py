# threatguard/services/alerts/channels.py
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Any, Dict, List

import aiosmtplib
from loguru import logger

from threatguard.config.models import AlertingConfig, EmailChannelConfig, WebhookChannelConfig
from threatguard.services.alerts.formatters import (
    render_email_html,
    render_plain_text,
    render_webhook_blocks,
)
from threatguard.utils.exceptions import ChannelDispatchFailure
from threatguard.utils.http_client import HTTPClient


class AlertChannel(ABC):
    """Канал доставки алертов."""

    name: str = "base"

    @abstractmethod
    async def send(self, payload: Dict[str, Any], recipients: List[str]) -> None:
        """
        Доставляет алерт.

        Raises:
            ChannelDispatchFailure: если доставка не удалась
        """


class EmailAlertChannel(AlertChannel):
    name = "email"

    def __init__(self, config: EmailChannelConfig):
        self.config = config

    def build_message(self, payload: Dict[str, Any], recipients: List[str]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.config.sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = payload.get("title") or "System Alert"
        message.set_content(render_plain_text(payload))
        message.add_alternative(render_email_html(payload), subtype="html")
        return message

    async def send(self, payload: Dict[str, Any], recipients: List[str]) -> None:
        to = recipients or self.config.recipients
        if not to:
            raise ChannelDispatchFailure(self.name, "no recipients configured")

        message = self.build_message(payload, to)
        smtp = aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            use_tls=self.config.use_tls,
            start_tls=self.config.start_tls and not self.config.use_tls,
        )
        try:
            await smtp.connect()
            if self.config.username and self.config.password:
                await smtp.login(self.config.username, self.config.password.get_secret_value())
            await smtp.send_message(message)
        except aiosmtplib.SMTPException as e:
            raise ChannelDispatchFailure(self.name, str(e)) from e
        finally:
            if smtp.is_connected:
                await smtp.quit()
        logger.debug(f"📧 Alert '{payload.get('title')}' emailed to {len(to)} recipient(s)")


class WebhookAlertChannel(AlertChannel):
    name = "webhook"

    def __init__(self, http_client: HTTPClient, config: WebhookChannelConfig):
        self.http_client = http_client
        self.config = config

    async def send(self, payload: Dict[str, Any], recipients: List[str]) -> None:
        if not self.config.url:
            raise ChannelDispatchFailure(self.name, "webhook url is not configured")
        try:
            await self.http_client.post_json(
                self.config.url,
                {"blocks": render_webhook_blocks(payload)},
                timeout=self.config.timeout_seconds,
            )
        except Exception as e:
            raise ChannelDispatchFailure(self.name, str(e)) from e


def build_alert_channels(config: AlertingConfig, http_client: HTTPClient) -> Dict[str, AlertChannel]:
    """Только включенные в настройках каналы."""
    channels: Dict[str, AlertChannel] = {}
    if config.email.enabled:
        channels[EmailAlertChannel.name] = EmailAlertChannel(config.email)
    if config.webhook.enabled and config.webhook.url:
        channels[WebhookAlertChannel.name] = WebhookAlertChannel(http_client, config.webhook)
    if not channels:
        logger.warning("⚠️ No alert channels enabled, alerts will only be logged")
    return channels
