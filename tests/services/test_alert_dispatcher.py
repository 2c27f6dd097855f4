import asyncio

import pytest

from threatguard.config.models import AlertCondition, AlertConfig, AlertingConfig, EmailChannelConfig
from threatguard.services.alerts import AlertDispatcher, EmailAlertChannel
from threatguard.services.alerts.formatters import render_email_html, render_webhook_blocks


def _alert(alert_id="high-cpu", cooldown=300, channels=("email", "webhook")):
    return AlertConfig(
        id=alert_id,
        name="High request rate",
        type="warning",
        condition=AlertCondition(metric="request_rate", operator=">", threshold=100, window=60),
        channels=list(channels),
        recipients=["ops@example.com"],
        cooldown=cooldown,
    )

@pytest.fixture
def channels(channel_factory):
    return {"email": channel_factory("email"), "webhook": channel_factory("webhook")}

@pytest.fixture
def dispatcher(channels, clock):
    return AlertDispatcher(config=AlertingConfig(), channels=channels, clock=clock)

@pytest.mark.asyncio
async def test_cooldown_allows_single_dispatch(dispatcher, channels):
    first = await dispatcher.send_alert(_alert(), {"rate": 150})
    second = await dispatcher.send_alert(_alert(), {"rate": 160})

    assert first.dispatched is True
    assert second.dispatched is False and second.reason == "cooldown"
    assert len(channels["email"].sent) == 1
    assert len(channels["webhook"].sent) == 1

@pytest.mark.asyncio
async def test_concurrent_calls_dispatch_once(dispatcher, channels):
    await asyncio.gather(*(dispatcher.send_alert(_alert(), {"n": i}) for i in range(5)))
    assert len(channels["email"].sent) == 1

@pytest.mark.asyncio
async def test_cooldown_expires(dispatcher, channels, clock):
    await dispatcher.send_alert(_alert(cooldown=60), {})
    clock.advance(61)
    report = await dispatcher.send_alert(_alert(cooldown=60), {})
    assert report.dispatched is True
    assert len(channels["email"].sent) == 2

@pytest.mark.asyncio
async def test_multi_day_cooldown_is_honored(dispatcher, channels, clock):
    two_days = 2 * 86400
    await dispatcher.send_alert(_alert(cooldown=two_days), {})

    clock.advance(86401)
    dispatcher.expire()
    inside = await dispatcher.send_alert(_alert(cooldown=two_days), {})
    assert inside.dispatched is False and inside.reason == "cooldown"

    clock.advance(86400)
    dispatcher.expire()
    after = await dispatcher.send_alert(_alert(cooldown=two_days), {})
    assert after.dispatched is True
    assert len(channels["email"].sent) == 2

@pytest.mark.asyncio
async def test_failing_channel_does_not_block_others(clock, channel_factory):
    channels = {"email": channel_factory("email", fail=True), "webhook": channel_factory("webhook")}
    dispatcher = AlertDispatcher(config=AlertingConfig(), channels=channels, clock=clock)

    report = await dispatcher.send_alert(_alert(), {})
    assert report.results == {"email": False, "webhook": True}
    assert len(channels["webhook"].sent) == 1

@pytest.mark.asyncio
async def test_cooldown_set_even_when_all_channels_fail(clock, channel_factory):
    channels = {"email": channel_factory("email", fail=True)}
    dispatcher = AlertDispatcher(config=AlertingConfig(), channels=channels, clock=clock)

    await dispatcher.send_alert(_alert(channels=("email",)), {})
    report = await dispatcher.send_alert(_alert(channels=("email",)), {})
    assert report.dispatched is False
    assert len(channels["email"].sent) == 1

@pytest.mark.asyncio
async def test_disabled_alert_is_skipped(dispatcher, channels):
    alert = _alert().model_copy(update={"enabled": False})
    report = await dispatcher.send_alert(alert, {})
    assert report.reason == "disabled"
    assert channels["email"].sent == []

@pytest.mark.asyncio
async def test_payload_shape(dispatcher, channels):
    await dispatcher.send_alert(_alert(), {"rate": 150})
    payload = channels["webhook"].sent[0]
    assert set(payload) == {"title", "timestamp", "type", "condition", "data"}
    assert payload["title"] == "High request rate"
    assert payload["condition"]["metric"] == "request_rate"
    assert payload["data"] == {"rate": 150}

@pytest.mark.asyncio
async def test_background_dispatch(dispatcher, channels):
    task = dispatcher.dispatch_in_background(_alert(), {"rate": 1})
    assert task is not None
    await dispatcher.aclose()
    assert len(channels["email"].sent) == 1

def test_webhook_blocks_and_email_html():
    payload = {
        "title": "Security Event: brute_force_attempt",
        "timestamp": "2024-01-01T00:00:00+00:00",
        "type": "error",
        "condition": {"metric": "security_event", "operator": "==", "threshold": 1, "window": 0},
        "data": {"sourceIp": "1.1.1.1", "attempts": 5},
    }
    blocks = render_webhook_blocks(payload)
    assert blocks[0]["type"] == "header"
    assert blocks[0]["text"]["text"] == "🚨 Security Event: brute_force_attempt"
    field_texts = [f["text"] for f in blocks[4]["fields"]]
    assert "*Source Ip:*\n1.1.1.1" in field_texts

    html = render_email_html(payload)
    assert "Security Event: brute_force_attempt" in html
    assert "security_event == 1" in html

def test_email_message_has_html_alternative():
    channel = EmailAlertChannel(EmailChannelConfig(sender="guard@example.com"))
    payload = {
        "title": "Alert",
        "timestamp": "2024-01-01T00:00:00+00:00",
        "type": "critical",
        "condition": {"metric": "m", "operator": ">", "threshold": 1, "window": 0},
        "data": {},
    }
    message = channel.build_message(payload, ["a@example.com", "b@example.com"])
    assert message["To"] == "a@example.com, b@example.com"
    assert message["Subject"] == "Alert"
    assert message.get_body(preferencelist=("html",)) is not None
