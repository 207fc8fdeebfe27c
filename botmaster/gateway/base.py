"""
机器人基类 - 所有消息平台连接器的抽象基类
Bot base - abstract base class for all messaging platform connectors.

每个具体平台需要实现 ``_raw_send``，并按需覆盖 ``parse_update``。
机器人可以独立使用（不依赖注册表），也可以挂到 Botmaster 上共享
HTTP 监听器和全局中间件。
Each concrete platform implements ``_raw_send`` and overrides
``parse_update`` as needed. A bot works standalone (no registry) or
attached to a Botmaster that shares the HTTP listener and the global
middleware.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from botmaster.config.defaults import build_default_config
from botmaster.errors import ConfigError, MiddlewareError, TransportError
from botmaster.kernel.middleware import (
    CONTINUE,
    Direction,
    Halt,
    MiddlewareChain,
    StepResult,
    parse_middleware_spec,
    parse_wrapped_specs,
)
from botmaster.kernel.signal_hub import SignalHub, SignalKind
from botmaster.message.types import OutgoingMessage, Update

if TYPE_CHECKING:
    from botmaster.gateway.registry import Botmaster

logger = logging.getLogger(__name__)

# 原始 API 使用的 camelCase 键 -> 构造参数
_SETTING_ALIASES = {
    "requiresWebhook": "requires_webhook",
    "webhookEndpoint": "webhook_endpoint",
    "id": "bot_id",
    "middlewareTimeout": "middleware_timeout",
}


def normalize_settings(
    settings: Mapping[str, Any] | None,
    overrides: Mapping[str, Any] | None = None,
    aliases: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """
    合并设置与覆盖项，并把 camelCase 别名换成规范键名
    Merge settings with overrides and map camelCase aliases to canonical keys.

    子类应先调用它再填充默认值，调用方显式给出的键才不会被默认值覆盖。
    Subclasses call it before filling in defaults, so keys the caller gave
    explicitly are never shadowed by a default.
    """
    table = {**_SETTING_ALIASES, **dict(aliases or {})}
    merged: dict[str, Any] = {}
    for key, value in {**dict(settings or {}), **dict(overrides or {})}.items():
        merged[table.get(key, key)] = value
    return merged


class BaseBot(ABC):
    """
    机器人抽象基类 - 所有平台连接器的父类
    Bot abstract base - parent of all platform connectors.

    设计要求：
    1. 机器人负责把平台请求规范化为 Update
    2. 入站更新依次经过自身中间件链、全局中间件链，最后发出 update 事件
    3. 出站消息依次经过全局中间件链、自身中间件链，最后调用 _raw_send
    """

    # 平台类型标签，可被构造参数覆盖
    type: str = "base"

    def __init__(self, settings: Mapping[str, Any] | None = None, **overrides: Any) -> None:
        config = normalize_settings(settings, overrides)

        self.type = config.get("type", type(self).type)
        self.bot_id: str | None = config.get("bot_id")
        self.requires_webhook = bool(config.get("requires_webhook", False))
        self.webhook_endpoint: str | None = config.get("webhook_endpoint")
        self.receives: dict[str, bool] = dict(config.get("receives") or {})
        self.sends: dict[str, bool] = dict(config.get("sends") or {})
        self.middleware_timeout: float | None = config.get(
            "middleware_timeout", build_default_config()["middleware_timeout"]
        )
        self.settings = config

        if self.requires_webhook and not self.webhook_endpoint:
            raise ConfigError(
                f"Bots of type {self.type} that require a webhook need a webhook_endpoint"
            )

        self._incoming = MiddlewareChain(Direction.INCOMING)
        self._outgoing = MiddlewareChain(Direction.OUTGOING)
        self._hub = SignalHub()
        # 挂载到的注册表，由 Botmaster.add_bot/remove_bot 维护
        self.master: Botmaster | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} type={self.type!r} id={self.bot_id!r}>"

    # ── 中间件 ──────────────────────────────────────────────────────

    @property
    def incoming_chain(self) -> MiddlewareChain:
        return self._incoming

    @property
    def outgoing_chain(self) -> MiddlewareChain:
        return self._outgoing

    def use(self, spec: Any) -> BaseBot:
        """
        添加只作用于本机器人的中间件
        Add a middleware that only applies to this bot.
        """
        entry = parse_middleware_spec(spec).to_entry()
        if entry.direction is Direction.INCOMING:
            self._incoming.add(entry)
        else:
            self._outgoing.add(entry)
        return self

    def use_wrapped(self, incoming: Any, outgoing: Any) -> BaseBot:
        """
        成对添加中间件：入站放在链首，出站放在链尾
        Add a pair of middleware: incoming goes first, outgoing goes last.
        """
        incoming_entry, outgoing_entry = parse_wrapped_specs(incoming, outgoing)
        self._incoming.prepend(incoming_entry)
        self._outgoing.add(outgoing_entry)
        return self

    # ── 事件订阅（独立使用） ────────────────────────────────────────

    def on_update(self, handler: Callable[[Update], Any]) -> Callable[[], None]:
        """订阅 update 事件 / Subscribe to update events: ``handler(update)``."""
        return self._hub.subscribe(SignalKind.UPDATE, handler)

    def on_error(self, handler: Callable[[MiddlewareError], Any]) -> Callable[[], None]:
        """订阅 error 事件 / Subscribe to error events: ``handler(error)``."""
        return self._hub.subscribe(SignalKind.ERROR, handler)

    # ── 入站 ────────────────────────────────────────────────────────

    def parse_update(self, body: Mapping[str, Any]) -> Update:
        """
        将 Webhook 请求体规范化为 Update（平台适配器可覆盖）
        Normalize a webhook body into an Update (platforms may override).
        """
        update = Update.coerce(body)
        if update.raw is None:
            update.raw = dict(body)
        return update

    async def handle_webhook(self, body: Mapping[str, Any]) -> Update | None:
        """
        处理 Webhook 请求体
        Handle a decoded webhook body.

        无法解析的请求体以 400 TransportError 抛给路由绑定器。
        A body the connector cannot parse is raised to the route binder as
        a 400 TransportError.
        """
        try:
            update = self.parse_update(body)
        except TransportError:
            raise
        except Exception as exc:
            logger.warning("机器人 %s 无法解析 Webhook 请求体: %s", self.type, exc)
            raise TransportError(
                f"{self.type} bot could not parse the update: {exc}", status=400
            ) from exc
        return await self.emit_update(update)

    async def emit_update(self, update: Update | Mapping[str, Any]) -> Update | None:
        """
        让一条更新通过入站中间件并发出 update 事件
        Run an update through the incoming middleware and emit it.

        中间件错误以 error 事件上报，不会抛出。被 Halt 终止或出错时返回 None。
        Middleware errors are reported as error events, never raised.
        Returns None when the update was halted or failed.

        传入映射时会包装成新的 Update，中间件的修改体现在返回值上，
        原映射保持不变。
        A mapping is wrapped into a new Update: middleware mutations show up
        on the returned update, the mapping itself is left untouched.
        """
        update = Update.coerce(update)
        master = self.master
        try:
            result = await self._incoming.run(self, update, timeout=self._timeout(master))
            if result is CONTINUE and master is not None:
                result = await master.run_incoming(self, update)
        except MiddlewareError as err:
            logger.warning("机器人 %s 的入站中间件出错: %s", self.type, err)
            await self._emit_error(err, master)
            return None

        if isinstance(result, Halt):
            logger.debug("更新被中间件终止: %s", result.reason)
            return None

        await self._hub.emit_new(SignalKind.UPDATE, update, source=self.type)
        if master is not None:
            await master.notify_update(self, update)
        return update

    # ── 出站 ────────────────────────────────────────────────────────

    async def send_message(
        self,
        message: OutgoingMessage | Mapping[str, Any],
        *,
        update: Update | None = None,
        ignore_middleware: bool = False,
    ) -> Any:
        """
        发送消息：全局出站中间件 -> 自身出站中间件 -> _raw_send
        Send a message: global outgoing -> own outgoing -> ``_raw_send``.

        返回连接器的发送结果；被中间件终止时返回对应的 Halt。
        中间件错误会发出 error 事件并抛给调用方。
        Returns the connector's send result, or the Halt that stopped the
        chain. Middleware errors are emitted and raised to the caller.
        """
        message = OutgoingMessage.coerce(message)
        master = self.master

        if not ignore_middleware:
            result: StepResult = CONTINUE
            try:
                if master is not None:
                    result = await master.run_outgoing(self, update, message)
                if result is CONTINUE:
                    result = await self._outgoing.run(
                        self, update, message, timeout=self._timeout(master)
                    )
            except MiddlewareError as err:
                logger.warning("机器人 %s 的出站中间件出错: %s", self.type, err)
                await self._emit_error(err, master)
                raise
            if isinstance(result, Halt):
                logger.debug("消息被中间件终止: %s", result.reason)
                return result

        try:
            return await self._raw_send(message)
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(f"{self.type} bot failed to send message: {exc}") from exc

    async def reply(self, update: Update, text: str, **kwargs: Any) -> Any:
        """
        回复一条更新的发送者
        Reply to the sender of an update.
        """
        sender_id = getattr(update.sender, "id", None)
        if sender_id is None:
            raise TransportError("Cannot reply to an update without a sender id")
        message = OutgoingMessage.text_to(sender_id, text)
        return await self.send_message(message, update=update, **kwargs)

    async def send_text_message_to(self, recipient_id: str, text: str, **kwargs: Any) -> Any:
        """发送文本消息 / Send a text message to a recipient."""
        return await self.send_message(OutgoingMessage.text_to(recipient_id, text), **kwargs)

    def with_update(self, update: Update) -> BoundBot:
        """
        返回一个发送时自动携带该更新的视图
        Return a view whose sends carry this update to outgoing middleware.
        """
        return BoundBot(self, update)

    @abstractmethod
    async def _raw_send(self, message: OutgoingMessage) -> Any:
        """
        调用平台的原始发送接口
        Call the platform's raw send primitive.
        """
        ...

    # ── 内部 ────────────────────────────────────────────────────────

    def _timeout(self, master: Botmaster | None) -> float | None:
        if master is not None:
            return master.middleware_timeout
        return self.middleware_timeout

    async def _emit_error(self, err: MiddlewareError, master: Botmaster | None) -> None:
        await self._hub.emit_new(SignalKind.ERROR, err, source=self.type)
        if master is not None:
            await master.notify_error(self, err)


class BoundBot:
    """
    绑定了更新的机器人视图
    Bot view bound to an update.

    通过它发送的消息会把该更新传给出站中间件。
    Messages sent through it hand the update to outgoing middleware.
    """

    def __init__(self, bot: BaseBot, update: Update) -> None:
        self._bot = bot
        self.update = update

    def __getattr__(self, name: str) -> Any:
        return getattr(self._bot, name)

    async def send_message(self, message: OutgoingMessage | Mapping[str, Any], **kwargs: Any) -> Any:
        kwargs.setdefault("update", self.update)
        return await self._bot.send_message(message, **kwargs)

    async def reply(self, text: str, **kwargs: Any) -> Any:
        """回复绑定更新的发送者 / Reply to the sender of the bound update."""
        return await self._bot.reply(self.update, text, **kwargs)

    async def send_text_message_to(self, recipient_id: str, text: str, **kwargs: Any) -> Any:
        kwargs.setdefault("update", self.update)
        return await self._bot.send_text_message_to(recipient_id, text, **kwargs)
