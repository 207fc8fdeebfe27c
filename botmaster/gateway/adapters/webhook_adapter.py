"""
通用 Webhook 机器人适配器
Generic webhook bot adapter.

适用于通过 JSON POST 推送更新、并在回调地址接收 JSON 回复的平台。
For platforms that POST JSON updates and accept JSON replies at a
callback URL.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from botmaster.errors import ConfigError, TransportError
from botmaster.gateway.base import BaseBot, normalize_settings
from botmaster.message.types import OutgoingMessage, Participant, Update, UpdateMessage

logger = logging.getLogger(__name__)

_WEBHOOK_ALIASES = {"sendUrl": "send_url", "sendTimeout": "send_timeout"}


class WebhookBot(BaseBot):
    """通用 Webhook 机器人 / Generic webhook bot."""

    type = "webhook"

    def __init__(self, settings: Mapping[str, Any] | None = None, **overrides: Any) -> None:
        config = normalize_settings(settings, overrides, aliases=_WEBHOOK_ALIASES)
        self.send_url: str = config.pop("send_url", None) or ""
        self.send_timeout: float = config.pop("send_timeout", 10.0)
        config.setdefault("requires_webhook", True)
        config.setdefault("webhook_endpoint", "webhook")
        config.setdefault("receives", {"text": True})
        config.setdefault("sends", {"text": True})
        super().__init__(config)

        if not self.send_url:
            raise ConfigError("WebhookBot needs a send_url")

    def parse_update(self, body: Mapping[str, Any]) -> Update:
        """
        请求体格式：``{"id", "sender", "recipient", "text", "timestamp"}``
        Body format: ``{"id", "sender", "recipient", "text", "timestamp"}``.
        """
        sender = body.get("sender")
        recipient = body.get("recipient")
        return Update(
            sender=Participant(id=str(sender)) if sender is not None else None,
            recipient=Participant(id=str(recipient)) if recipient is not None else None,
            timestamp=body.get("timestamp"),
            message=UpdateMessage(mid=body.get("id"), text=body.get("text")),
            raw=dict(body),
        )

    async def _raw_send(self, message: OutgoingMessage) -> Any:
        """发送消息到回调地址 / Post the message to the callback URL."""
        payload = message.model_dump(exclude_none=True)
        logger.debug("正在发送消息到 %s", self.send_url)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.send_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.send_timeout),
                ) as resp:
                    if resp.status >= 400:
                        raise TransportError(
                            f"POST {self.send_url} failed with HTTP {resp.status}",
                            status=resp.status,
                        )
                    return await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise TransportError(f"POST {self.send_url} failed: {exc}") from exc
