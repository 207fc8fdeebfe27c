"""Shared fixtures: a mock connector and a registry."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from botmaster import BaseBot, Botmaster
from botmaster.message.types import OutgoingMessage, Participant, Update, UpdateMessage


class MockBot(BaseBot):
    """Connector that records what it sends instead of calling a platform."""

    type = "mock"

    def __init__(self, settings: Mapping[str, Any] | None = None, **overrides: Any) -> None:
        config = {**dict(settings or {}), **overrides}
        config.setdefault("receives", {"text": True, "echo": True})
        config.setdefault("sends", {"text": True, "quickReply": True})
        super().__init__(config)
        self.sent: list[OutgoingMessage] = []

    def parse_update(self, body: Mapping[str, Any]) -> Update:
        return Update(
            sender=Participant(id="user_id"),
            recipient=Participant(id="bot_id"),
            message=UpdateMessage(mid="mid_1", text=body.get("text")),
            raw=dict(body),
        )

    async def _raw_send(self, message: OutgoingMessage) -> Any:
        self.sent.append(message)
        return {"sent_message": message}


class FailingBot(MockBot):
    async def _raw_send(self, message: OutgoingMessage) -> Any:
        raise ConnectionResetError("platform went away")


@pytest.fixture
def botmaster() -> Botmaster:
    return Botmaster(middleware_timeout=1.0)


@pytest.fixture
def express_bot() -> MockBot:
    return MockBot(type="express", requires_webhook=True, webhook_endpoint="webhook")
