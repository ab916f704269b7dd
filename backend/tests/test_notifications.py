import asyncio
import json

import httpx

from barberqueue.services import notifications
from barberqueue.services.notifications import (
    LogOnlyGateway,
    NotificationGateway,
    WhatsAppGateway,
    build_queue_message,
    dispatch_notifications,
    send_telegram_to_developer,
)

from factories import RecordingGateway, make_notification


def _gateway(handler, **kwargs):
    return WhatsAppGateway(
        "token",
        "12345",
        api_url="https://whatsapp.test",
        timeout=5,
        max_retries=kwargs.pop("max_retries", 3),
        retry_delay=0,
        transport=httpx.MockTransport(handler)
    )


def test_message_mentions_slot_and_deadline():
    text = build_queue_message(make_notification())
    assert "Иван" in text
    assert "14:20" in text
    assert "14:05" in text
    assert "Стрижка" in text


def test_whatsapp_success():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid"}]})

    assert asyncio.run(_gateway(handler).notify(make_notification())) is True

    assert len(requests) == 1
    assert str(requests[0].url) == "https://whatsapp.test/12345/messages"
    assert requests[0].headers["Authorization"] == "Bearer token"
    body = json.loads(requests[0].content)
    assert body["to"] == "79001234567"
    assert body["messaging_product"] == "whatsapp"


def test_whatsapp_retries_server_errors():
    statuses = [500, 503, 200]

    def handler(request):
        return httpx.Response(statuses.pop(0))

    assert asyncio.run(_gateway(handler).notify(make_notification())) is True
    assert statuses == []


def test_whatsapp_client_error_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad phone"})

    assert asyncio.run(_gateway(handler).notify(make_notification())) is False
    assert len(calls) == 1


def test_whatsapp_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert asyncio.run(_gateway(handler, max_retries=2).notify(make_notification())) is False


def test_log_only_gateway():
    assert asyncio.run(LogOnlyGateway().notify(make_notification())) is False


class SlowGateway(NotificationGateway):
    async def notify(self, notification):
        if notification.entry_id == "slow":
            await asyncio.sleep(5)
        if notification.entry_id == "broken":
            raise RuntimeError("boom")
        return True


def test_dispatch_isolates_failures():
    batch = [make_notification("slow"), make_notification("broken"), make_notification("ok")]
    assert asyncio.run(dispatch_notifications(SlowGateway(), batch, timeout=0.05)) == 1


def test_dispatch_all():
    gateway = RecordingGateway()
    batch = [make_notification("a"), make_notification("b")]

    assert asyncio.run(dispatch_notifications(gateway, batch)) == 2
    assert [n.entry_id for n in gateway.sent] == ["a", "b"]


def test_dispatch_empty():
    assert asyncio.run(dispatch_notifications(RecordingGateway(), [])) == 0


def test_telegram_not_configured(monkeypatch):
    monkeypatch.setattr(notifications.settings, "TELEGRAM_BOT_TOKEN", None)
    assert asyncio.run(send_telegram_to_developer("test")) is False


def test_telegram_to_developer(monkeypatch):
    monkeypatch.setattr(notifications.settings, "TELEGRAM_BOT_TOKEN", "bot-token")
    monkeypatch.setattr(notifications.settings, "TELEGRAM_DEV_CHAT_ID", "42")
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    assert asyncio.run(send_telegram_to_developer("<b>сбой</b>", transport=httpx.MockTransport(handler))) is True
    assert sent == [{"chat_id": "42", "text": "<b>сбой</b>", "parse_mode": "HTML"}]
