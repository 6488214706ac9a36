import json
from types import SimpleNamespace

import pytest
from pywebpush import WebPushException

from conftest import make_subscription
from models.schemas import NotificationPayload
from services import notification_service
from services.notification_service import ConsoleChannel, DeliveryResult, WebPushChannel

PAYLOAD = NotificationPayload(title="t", body="b", icon="/i.png", data={"kind": "forecast", "location": "a,b,c"})


@pytest.fixture
def push_calls(monkeypatch):
    calls = []
    outcome = {"raise": None}

    def fake_webpush(**kwargs):
        calls.append(kwargs)
        if outcome["raise"] is not None:
            raise outcome["raise"]
        return SimpleNamespace(status_code=201)

    monkeypatch.setattr(notification_service, "webpush", fake_webpush)
    return calls, outcome


@pytest.mark.asyncio
async def test_webpush_delivers_json_payload_with_vapid_claims(push_calls):
    calls, _ = push_calls
    channel = WebPushChannel("private-key", "mailto:ops@example.com", ttl=600)
    sub = make_subscription()

    result = await channel.send(sub, PAYLOAD)

    assert result is DeliveryResult.DELIVERED
    call = calls[0]
    assert call["subscription_info"] == {"endpoint": sub.endpoint,
                                         "keys": {"p256dh": "BNc-p256dh-key", "auth": "auth-secret"}}
    assert json.loads(call["data"])["data"]["kind"] == "forecast"
    assert call["vapid_private_key"] == "private-key"
    assert call["vapid_claims"] == {"sub": "mailto:ops@example.com"}
    assert call["ttl"] == 600


@pytest.mark.asyncio
@pytest.mark.parametrize("status,expected", [
    (404, DeliveryResult.PERMANENTLY_INVALID),
    (410, DeliveryResult.PERMANENTLY_INVALID),
    (413, DeliveryResult.TRANSIENT_FAILURE),
    (429, DeliveryResult.TRANSIENT_FAILURE),
    (500, DeliveryResult.TRANSIENT_FAILURE),
])
async def test_webpush_maps_push_service_status(push_calls, status, expected):
    _, outcome = push_calls
    outcome["raise"] = WebPushException("Push failed", response=SimpleNamespace(status_code=status, text="err"))
    channel = WebPushChannel("private-key", "mailto:ops@example.com")

    assert await channel.send(make_subscription(), PAYLOAD) is expected


@pytest.mark.asyncio
async def test_webpush_network_error_is_transient(push_calls):
    _, outcome = push_calls
    outcome["raise"] = ConnectionError("no route to host")
    channel = WebPushChannel("private-key", "mailto:ops@example.com")

    assert await channel.send(make_subscription(), PAYLOAD) is DeliveryResult.TRANSIENT_FAILURE


@pytest.mark.asyncio
async def test_console_channel_records_payloads():
    channel = ConsoleChannel()
    sub = make_subscription()

    assert await channel.send(sub, PAYLOAD) is DeliveryResult.DELIVERED
    assert channel.recent_notifications() == [{"endpoint": sub.endpoint, "payload": PAYLOAD.model_dump()}]


@pytest.mark.asyncio
async def test_console_channel_history_is_bounded():
    channel = ConsoleChannel()
    sub = make_subscription()
    for i in range(notification_service.RECENT_HISTORY * 10):
        await channel.send(sub, PAYLOAD.model_copy(update={"title": f"t{i}"}))

    recent = channel.recent_notifications()
    assert len(channel.sent_notifications) == notification_service.RECENT_HISTORY
    assert len(recent) == notification_service.RECENT_HISTORY
    assert recent[-1]["payload"]["title"] == f"t{notification_service.RECENT_HISTORY * 10 - 1}"
