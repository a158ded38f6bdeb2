from __future__ import annotations

import json

import httpx
import pytest

from clinicflow.integrations.gateway import ChannelGateway, CrmGateway
from clinicflow.integrations.telegram_notify import BookingNotice, TelegramNotifier
from clinicflow.integrations.webhook import WebhookAdapter


def _recording_transport(status_code: int = 200, body: dict | None = None):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, json=body if body is not None else {"ok": True})

    return httpx.MockTransport(handler), seen


@pytest.mark.asyncio
async def test_webhook_posts_json_body():
    transport, seen = _recording_transport()
    adapter = WebhookAdapter({"transport": transport})

    result = await adapter.execute(
        "call",
        {"url": "https://hooks.example.com/a", "method": "PUT", "headers": {"X-Token": "t"}, "body": '{"id": 7}'},
    )

    assert result == {"success": True, "status_code": 200}
    assert seen[0].method == "PUT"
    assert seen[0].headers["X-Token"] == "t"
    assert json.loads(seen[0].content) == {"id": 7}


@pytest.mark.asyncio
async def test_webhook_http_error_status_is_failure():
    transport, _ = _recording_transport(status_code=502)
    result = await WebhookAdapter({"transport": transport}).execute("call", {"url": "https://hooks.example.com/a"})

    assert result["success"] is False
    assert result["error"] == "webhook_http_502"


@pytest.mark.asyncio
async def test_webhook_rejects_non_json_body_without_calling():
    transport, seen = _recording_transport()
    result = await WebhookAdapter({"transport": transport}).execute(
        "call", {"url": "https://hooks.example.com/a", "body": "not json"}
    )

    assert result["success"] is False
    assert "not valid JSON" in result["error"]
    assert seen == []


@pytest.mark.asyncio
async def test_webhook_transport_error_is_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    result = await WebhookAdapter({"transport": httpx.MockTransport(handler)}).execute(
        "call", {"url": "https://hooks.example.com/a"}
    )

    assert result["success"] is False
    assert "refused" in result["error"]


@pytest.mark.asyncio
async def test_gateway_posts_to_action_path():
    transport, seen = _recording_transport(body={"delivered": True})
    gateway = ChannelGateway({"base_url": "https://gw.example.com/", "transport": transport})

    result = await gateway.execute("send_message", {"content": "hi"})

    assert result == {"success": True, "data": {"delivered": True}}
    assert str(seen[0].url) == "https://gw.example.com/send_message"


@pytest.mark.asyncio
async def test_gateway_without_base_url_is_not_configured():
    result = await CrmGateway({}).execute("add_note", {})
    assert result == {"success": False, "error": "crm_gateway_not_configured"}


@pytest.mark.asyncio
async def test_telegram_booking_notice():
    transport, seen = _recording_transport(body={"ok": True, "result": {"message_id": 99}})
    notifier = TelegramNotifier(
        bot_token="T",
        chat_id="-100",
        thread_id=5,
        dashboard_url="https://dash.example.com/",
        transport=transport,
    )

    result = await notifier.send_booking_request(
        BookingNotice(
            booking_request_id="b1",
            tenant_name="Seoul Eye",
            customer_name=None,
            customer_language="ja",
            requested_date="2024-04-01",
            treatment_type="LASIK",
        )
    )

    assert result == {"success": True, "message_id": 99}
    payload = json.loads(seen[0].content)
    assert payload["chat_id"] == "-100"
    assert payload["message_thread_id"] == 5
    assert "고객: 고객님 (ja)" in payload["text"]
    assert "https://dash.example.com/bookings/b1" in payload["text"]


@pytest.mark.asyncio
async def test_telegram_api_error_is_failure():
    transport, _ = _recording_transport(status_code=400, body={"ok": False, "description": "chat not found"})
    result = await TelegramNotifier(bot_token="T", chat_id="x", transport=transport).send_text("hi")

    assert result == {"success": False, "error": "chat not found"}


def test_telegram_from_secrets(monkeypatch):
    monkeypatch.setenv("CLINICFLOW_SECRET_SEOUL_EYE_TELEGRAM_BOT_TOKEN", "tok")
    monkeypatch.setenv("CLINICFLOW_SECRET_SEOUL_EYE_MANAGER_CHAT_ID", "-42")
    monkeypatch.setenv("CLINICFLOW_SECRET_SEOUL_EYE_MANAGER_THREAD_ID", "7")

    notifier = TelegramNotifier.from_secrets("seoul-eye", dashboard_url="https://d")

    assert notifier.bot_token == "tok"
    assert notifier.chat_id == "-42"
    assert notifier.thread_id == 7


def test_telegram_from_secrets_missing_returns_none(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_MANAGER_CHAT_ID", raising=False)

    assert TelegramNotifier.from_secrets("nobody") is None
