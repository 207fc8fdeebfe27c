"""
机器人注册表 - 管理机器人的挂载、全局中间件和事件分发
Bot registry - manages attached bots, global middleware and event dispatch.

所有机器人共享一个 Quart 应用作为 HTTP 监听器，每个需要 Webhook 的
机器人在添加时挂载自己的路径，移除时卸载。
All bots share one Quart app as the HTTP listener; each bot that needs a
webhook mounts its path when added and unmounts it when removed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from quart import Quart

from botmaster.config.defaults import build_default_config
from botmaster.config.manager import ConfigManager
from botmaster.errors import ConfigError, DuplicateBotError, MiddlewareError
from botmaster.gateway.base import BaseBot
from botmaster.gateway.route_binder import RouteBinder, normalize_path
from botmaster.kernel.logging import setup_logging
from botmaster.kernel.middleware import (
    Direction,
    MiddlewareChain,
    StepResult,
    parse_middleware_spec,
    parse_wrapped_specs,
)
from botmaster.kernel.signal_hub import SignalHub, SignalKind
from botmaster.message.types import OutgoingMessage, Update

logger = logging.getLogger(__name__)


class Botmaster:
    """
    机器人注册表 / 分发器
    Bot registry and dispatcher.

    执行顺序：
    - 入站：机器人自身入站链 -> 全局入站链 -> update 事件
    - 出站：全局出站链 -> 机器人自身出站链 -> 原始发送
    中间件在执行时才检查链成员，因此 add_bot 前后调用 use 都对之后的更新生效。
    Chain membership is checked at run time, so ``use`` calls made before or
    after ``add_bot`` both apply to all future updates.
    """

    def __init__(
        self,
        settings: Mapping[str, Any] | None = None,
        *,
        app: Quart | None = None,
        config_path: str | None = None,
        **overrides: Any,
    ) -> None:
        self._config = ConfigManager(defaults=build_default_config(), config_path=config_path)
        self._config.load()
        self._config.update(settings or {})
        self._config.update(overrides)

        # 共享监听器可以由外部传入，注册表只引用不拥有
        self.app = app if app is not None else Quart(__name__)
        self.hub = SignalHub()
        self._binder = RouteBinder(self.app)
        self._bots: list[BaseBot] = []
        self._request_listeners: dict[str, BaseBot] = {}
        self._incoming = MiddlewareChain(Direction.INCOMING)
        self._outgoing = MiddlewareChain(Direction.OUTGOING)
        self._listening = False
        self._shutdown_event: asyncio.Event | None = None

        self.app.before_serving(self._on_before_serving)
        self.app.after_serving(self._on_after_serving)

    # ── 配置 ────────────────────────────────────────────────────────

    @property
    def config(self) -> ConfigManager:
        return self._config

    @property
    def settings(self) -> dict[str, Any]:
        """当前生效的设置（副本）/ Effective settings (a copy)."""
        return self._config.as_dict()

    def save_config(self) -> Path:
        """
        把当前设置写回 config_path，之后用同一路径构造即可恢复
        Persist the current settings to ``config_path`` so a registry built
        with the same path starts from them.
        """
        return self._config.save()

    @property
    def use_default_mount_path_prepend(self) -> bool:
        return bool(self._config.get("use_default_mount_path_prepend", True))

    @property
    def middleware_timeout(self) -> float | None:
        return self._config.get("middleware_timeout")

    # ── 机器人管理 ──────────────────────────────────────────────────

    def mount_path_for(self, bot: BaseBot) -> str:
        """
        计算机器人的挂载路径
        Compute a bot's mount path.

        默认以 ``/<type>`` 为前缀；关闭前缀时直接使用 webhook_endpoint。
        Prefixed with ``/<type>`` by default; the endpoint is used verbatim
        when prefixing is disabled.
        """
        endpoint = normalize_path(bot.webhook_endpoint or "")
        if self.use_default_mount_path_prepend:
            return f"/{bot.type}{endpoint}"
        return endpoint

    def add_bot(self, bot: BaseBot) -> BaseBot:
        """
        添加机器人并挂载其 Webhook 路由
        Add a bot and mount its webhook route.
        """
        if any(existing is bot for existing in self._bots):
            raise DuplicateBotError(f"{bot!r} was already added to this Botmaster")
        if bot.master is not None:
            raise DuplicateBotError(f"{bot!r} is already attached to another Botmaster")

        if bot.requires_webhook:
            # 路径冲突时 mount 抛出 RouteConflictError，机器人不会被注册
            path = self._binder.mount(self.mount_path_for(bot), bot.handle_webhook)
            self._request_listeners[path] = bot

        self._bots.append(bot)
        bot.master = self
        logger.info("已添加机器人: %r", bot)
        return bot

    def remove_bot(self, bot: BaseBot) -> None:
        """
        移除机器人并卸载其路由；未添加的机器人直接忽略
        Remove a bot and unmount its route; unknown bots are ignored.
        """
        if not any(existing is bot for existing in self._bots):
            return

        for path, owner in list(self._request_listeners.items()):
            if owner is bot:
                self._binder.unmount(path)
                del self._request_listeners[path]

        self._bots = [existing for existing in self._bots if existing is not bot]
        bot.master = None
        logger.info("已移除机器人: %r", bot)

    @property
    def bots(self) -> list[BaseBot]:
        """已添加的机器人（按添加顺序）/ Attached bots, in insertion order."""
        return list(self._bots)

    @property
    def request_listeners(self) -> dict[str, BaseBot]:
        """挂载路径 -> 机器人 / Mount path -> bot."""
        return dict(self._request_listeners)

    def get_bot(self, bot_id: str | None = None, bot_type: str | None = None) -> BaseBot | None:
        """
        按 ID 和/或类型查找第一个匹配的机器人
        Find the first bot matching the id and/or type.
        """
        if bot_id is None and bot_type is None:
            raise ConfigError("get_bot needs at least one of bot_id or bot_type")
        for bot in self._bots:
            if bot_id is not None and bot.bot_id != bot_id:
                continue
            if bot_type is not None and bot.type != bot_type:
                continue
            return bot
        return None

    def get_bots(self, bot_type: str) -> list[BaseBot]:
        """获取某一类型的全部机器人 / All bots of a given type."""
        return [bot for bot in self._bots if bot.type == bot_type]

    # ── 全局中间件 ──────────────────────────────────────────────────

    @property
    def incoming_chain(self) -> MiddlewareChain:
        return self._incoming

    @property
    def outgoing_chain(self) -> MiddlewareChain:
        return self._outgoing

    def use(self, spec: Any) -> Botmaster:
        """
        添加对所有机器人生效的全局中间件
        Add a global middleware applied to every bot's traffic.
        """
        entry = parse_middleware_spec(spec).to_entry()
        if entry.direction is Direction.INCOMING:
            self._incoming.add(entry)
        else:
            self._outgoing.add(entry)
        return self

    def use_wrapped(self, incoming: Any, outgoing: Any) -> Botmaster:
        """
        成对添加全局中间件：入站放在链首，出站放在链尾
        Add a global pair: incoming goes first, outgoing goes last.
        """
        incoming_entry, outgoing_entry = parse_wrapped_specs(incoming, outgoing)
        self._incoming.prepend(incoming_entry)
        self._outgoing.add(outgoing_entry)
        return self

    async def run_incoming(self, bot: BaseBot, update: Update) -> StepResult:
        return await self._incoming.run(bot, update, timeout=self.middleware_timeout)

    async def run_outgoing(
        self, bot: BaseBot, update: Update | None, message: OutgoingMessage
    ) -> StepResult:
        return await self._outgoing.run(bot, update, message, timeout=self.middleware_timeout)

    # ── 事件 ────────────────────────────────────────────────────────

    def on_listening(self, handler: Callable[[], Any], once: bool = False) -> Callable[[], None]:
        """订阅监听器就绪事件 / Subscribe to ``listening``: ``handler()``."""
        return self.hub.subscribe(SignalKind.LISTENING, handler, once=once)

    def on_update(self, handler: Callable[[BaseBot, Update], Any]) -> Callable[[], None]:
        """订阅 update 事件 / Subscribe to ``update``: ``handler(bot, update)``."""
        return self.hub.subscribe(SignalKind.UPDATE, handler)

    def on_error(self, handler: Callable[[BaseBot, MiddlewareError], Any]) -> Callable[[], None]:
        """订阅 error 事件 / Subscribe to ``error``: ``handler(bot, error)``."""
        return self.hub.subscribe(SignalKind.ERROR, handler)

    async def notify_update(self, bot: BaseBot, update: Update) -> None:
        await self.hub.emit_new(SignalKind.UPDATE, bot, update, source=bot.type)

    async def notify_error(self, bot: BaseBot, error: MiddlewareError) -> None:
        await self.hub.emit_new(SignalKind.ERROR, bot, error, source=bot.type)

    # ── 监听器生命周期 ──────────────────────────────────────────────

    @property
    def is_listening(self) -> bool:
        return self._listening

    async def _on_before_serving(self) -> None:
        self._listening = True
        logger.info("共享 HTTP 监听器已就绪")
        await self.hub.emit_new(SignalKind.LISTENING, source="botmaster")

    async def _on_after_serving(self) -> None:
        self._listening = False
        logger.info("共享 HTTP 监听器已关闭")

    async def start(self) -> None:
        """
        启动共享 HTTP 监听器，直到 close() 被调用
        Serve the shared HTTP listener until ``close()`` is called.
        """
        from hypercorn.asyncio import serve
        from hypercorn.config import Config

        setup_logging(self._config.get("log_level", "INFO"), self._config.get("log_dir"))

        host = self._config.get("host", "0.0.0.0")
        port = self._config.get("port", 3000)
        config = Config()
        config.bind = [f"{host}:{port}"]
        config.accesslog = None

        self._shutdown_event = asyncio.Event()
        logger.info("Botmaster 运行在 http://%s:%d", host, port)

        try:
            await serve(self.app, config, shutdown_trigger=self._shutdown_event.wait)
        except Exception:
            logger.exception("HTTP 监听器出错")

    async def close(self) -> None:
        """
        关闭共享 HTTP 监听器
        Shut down the shared HTTP listener.
        """
        if self._shutdown_event is not None:
            self._shutdown_event.set()
