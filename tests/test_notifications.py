from __future__ import annotations

import json

import httpx
import pytest

from synthetic_probe.notifications import (
    TELEGRAM_MAX_MESSAGE_LEN,
    Notifier,
    TelegramConfig,
    redact_telegram_response,
    split_telegram_message,
)


def test_split_telegram_message_respects_max_len() -> None:
    text = ("line\n" * 2000).strip()
    parts = split_telegram_message(text, max_len=500)
    assert len(parts) > 1
    assert all(0 < len(p) <= 500 for p in parts)


def test_split_telegram_message_default_limit() -> None:
    text = "a" * (TELEGRAM_MAX_MESSAGE_LEN + 10)
    parts = split_telegram_message(text)
    assert len(parts) == 2
    assert all(len(p) <= TELEGRAM_MAX_MESSAGE_LEN for p in parts)


def test_redacted_response_keeps_only_status_fields() -> None:
    data = {"ok": True, "result": {"message_id": 7, "chat": {"id": 1}, "text": "secret"}}
    assert json.loads(redact_telegram_response(data)) == {"ok": True, "result": {"message_id": 7}}


@pytest.mark.asyncio
async def test_notifier_without_credentials_only_logs() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        notifier = Notifier(http)
        assert notifier.enabled is False
        assert await notifier.send("General is failing") is False


@pytest.mark.asyncio
async def test_notifier_sends_every_chunk() -> None:
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/botbot-token/sendMessage"
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(sent)}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        notifier = Notifier(http, TelegramConfig(bot_token="bot-token", chat_id="42"))
        assert await notifier.send("x" * (TELEGRAM_MAX_MESSAGE_LEN + 1)) is True

    assert [m["chat_id"] for m in sent] == ["42", "42"]
    assert "".join(m["text"] for m in sent) == "x" * (TELEGRAM_MAX_MESSAGE_LEN + 1)


@pytest.mark.asyncio
async def test_notifier_reports_failure_without_leaking_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        config = TelegramConfig(bot_token="bot-token", chat_id="42")
        notifier = Notifier(http, config)
        ok, data = await notifier._send_one(config, "hello")
        assert await notifier.send("hello") is False

    assert ok is False
    assert "bot-token" not in data["error"]
    assert "<redacted>" in data["error"]
