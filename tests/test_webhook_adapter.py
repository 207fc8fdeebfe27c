"""Tests for the generic webhook connector."""

from __future__ import annotations

from typing import Any

import aiohttp
import pytest

from botmaster import ConfigError, TransportError
from botmaster.gateway.adapters import webhook_adapter
from botmaster.gateway.adapters.webhook_adapter import WebhookBot

SEND_URL = "https://chat.example.com/send"


class FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None) -> None:
        self.status = status
        self._payload = payload if payload is not None else {"ok": True}

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def json(self, content_type: str | None = "application/json") -> Any:
        return self._payload


class FakeSession:
    """Stands in for ``aiohttp.ClientSession`` and records every POST."""

    requests: list[dict[str, Any]] = []
    response = FakeResponse()
    error: Exception | None = None

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        if FakeSession.error is not None:
            raise FakeSession.error
        FakeSession.requests.append({"url": url, **kwargs})
        return FakeSession.response


@pytest.fixture
def fake_session(monkeypatch):
    FakeSession.requests = []
    FakeSession.response = FakeResponse()
    FakeSession.error = None
    monkeypatch.setattr(webhook_adapter.aiohttp, "ClientSession", FakeSession)
    return FakeSession


class TestWebhookBotSettings:
    def test_defaults(self):
        bot = WebhookBot(send_url=SEND_URL)
        assert bot.type == "webhook"
        assert bot.requires_webhook
        assert bot.webhook_endpoint == "webhook"
        assert bot.receives == {"text": True}
        assert bot.sends == {"text": True}

    def test_camel_case_settings(self):
        bot = WebhookBot({"sendUrl": SEND_URL, "webhookEndpoint": "incoming", "id": "bot_9"})
        assert bot.send_url == SEND_URL
        assert bot.webhook_endpoint == "incoming"
        assert bot.bot_id == "bot_9"

    def test_caller_settings_beat_connector_defaults(self, botmaster):
        bot = WebhookBot(sendUrl=SEND_URL, requiresWebhook=False, sendTimeout=2.0)
        assert not bot.requires_webhook
        assert bot.send_timeout == 2.0

        botmaster.add_bot(bot)
        assert botmaster.request_listeners == {}

    def test_snake_case_endpoint_beats_default(self, botmaster):
        bot = botmaster.add_bot(WebhookBot(send_url=SEND_URL, webhook_endpoint="inbox"))
        assert botmaster.request_listeners == {"/webhook/inbox": bot}

    def test_send_url_is_required(self):
        with pytest.raises(ConfigError, match="send_url"):
            WebhookBot()


class TestWebhookBotUpdates:
    def test_parse_update(self):
        bot = WebhookBot(send_url=SEND_URL)
        body = {"id": "m1", "sender": 12, "recipient": "bot", "text": "hi", "timestamp": 1.5}

        update = bot.parse_update(body)

        assert update.sender.id == "12"
        assert update.recipient.id == "bot"
        assert update.message.mid == "m1"
        assert update.message.text == "hi"
        assert update.timestamp == 1.5
        assert update.raw == body

    @pytest.mark.asyncio
    async def test_webhook_post_reaches_update_handlers(self, botmaster):
        bot = botmaster.add_bot(WebhookBot(send_url=SEND_URL))
        texts = []
        botmaster.on_update(lambda b, u: texts.append((b, u.message.text)))

        async with botmaster.app.test_app() as test_app:
            client = test_app.test_client()
            response = await client.post(
                "/webhook/webhook", json={"sender": "u1", "text": "hello"}
            )

        assert response.status_code == 200
        assert await response.get_json() == {"status": "ok"}
        assert texts == [(bot, "hello")]

    @pytest.mark.asyncio
    async def test_unusual_field_values_are_accepted(self, botmaster):
        botmaster.add_bot(WebhookBot(send_url=SEND_URL))
        updates = []
        botmaster.on_update(lambda b, u: updates.append(u))

        async with botmaster.app.test_app() as test_app:
            client = test_app.test_client()
            response = await client.post(
                "/webhook/webhook",
                json={"id": 17, "text": "hi", "timestamp": "2024-01-01T00:00:00Z"},
            )

        assert response.status_code == 200
        (update,) = updates
        assert update.timestamp == "2024-01-01T00:00:00Z"
        assert update.message.mid == 17
        assert update.message.text == "hi"


class TestWebhookBotSending:
    @pytest.mark.asyncio
    async def test_posts_message_to_send_url(self, fake_session):
        fake_session.response = FakeResponse(payload={"message_id": "out_1"})
        bot = WebhookBot(send_url=SEND_URL)

        result = await bot.send_text_message_to("u1", "hello")

        assert result == {"message_id": "out_1"}
        (request,) = fake_session.requests
        assert request["url"] == SEND_URL
        assert request["json"] == {
            "recipient": {"id": "u1"},
            "message": {"text": "hello", "attachments": []},
        }
        assert request["timeout"].total == 10.0

    @pytest.mark.asyncio
    async def test_http_error_status(self, fake_session):
        fake_session.response = FakeResponse(status=503)
        bot = WebhookBot(send_url=SEND_URL)

        with pytest.raises(TransportError) as exc_info:
            await bot.send_text_message_to("u1", "hello")
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_client_error(self, fake_session):
        fake_session.error = aiohttp.ClientConnectionError("connection refused")
        bot = WebhookBot(send_url=SEND_URL)

        with pytest.raises(TransportError, match="connection refused"):
            await bot.send_text_message_to("u1", "hello")
