# threatguard/services/alerts/formatters.py
"""
Форматирование алертов для каналов доставки.
"""
import html
import json
from datetime import datetime, timezone
from typing import Any, Dict, List

from threatguard.config.models import AlertConfig

SEVERITY_COLORS = {
    "critical": "#e74c3c",
    "error": "#e67e22",
    "warning": "#f1c40f",
    "info": "#3498db",
}


def build_payload(config: AlertConfig, data: Dict[str, Any], now: float) -> Dict[str, Any]:
    """Структурированное тело алерта, общее для всех каналов."""
    return {
        "title": config.name,
        "timestamp": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
        "type": config.type,
        "condition": config.condition.model_dump(),
        "data": data,
    }


def format_condition(condition: Dict[str, Any]) -> str:
    text = f"{condition['metric']} {condition['operator']} {condition['threshold']}"
    if condition.get("window"):
        text += f" over {condition['window']}s"
    return text


def format_key(key: str) -> str:
    """camelCase/snake_case -> 'Title Case'."""
    spaced = "".join(f" {c}" if c.isupper() else c for c in key).replace("_", " ")
    return spaced.strip().title()


def format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def render_email_html(payload: Dict[str, Any]) -> str:
    color = SEVERITY_COLORS.get(payload["type"], "#333")
    rows = "".join(
        f"<tr><td><strong>{html.escape(format_key(k))}</strong></td>"
        f"<td>{html.escape(format_value(v))}</td></tr>"
        for k, v in payload["data"].items()
    )
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<div style=\"border: 1px solid #ddd; border-radius: 4px; padding: 20px;\">"
        f"<h2 style=\"color: {color};\">{html.escape(payload['title'])}</h2>"
        f"<p><strong>Type:</strong> {html.escape(payload['type'])}<br>"
        f"<strong>Time:</strong> {html.escape(payload['timestamp'])}<br>"
        f"<strong>Condition:</strong> {html.escape(format_condition(payload['condition']))}</p>"
        f"<table cellpadding=\"4\">{rows}</table>"
        "</div></body></html>"
    )


def render_plain_text(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def render_webhook_blocks(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Блоки в формате Slack Block Kit."""
    blocks: List[Dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": f"🚨 {payload['title']}"}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Type:*\n{payload['type']}"},
                {"type": "mrkdwn", "text": f"*Time:*\n{payload['timestamp']}"},
            ],
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Condition:*\n{format_condition(payload['condition'])}"},
        },
    ]
    if payload["data"]:
        # Slack ограничивает секцию десятью полями
        fields = [
            {"type": "mrkdwn", "text": f"*{format_key(k)}:*\n{format_value(v)}"}
            for k, v in payload["data"].items()
        ][:10]
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "*Details:*"}})
        blocks.append({"type": "section", "fields": fields})
    blocks.append({"type": "divider"})
    return blocks
