"""
信号中枢 - 基于发布/订阅模式的类型化事件通道
Signal Hub - typed event channels based on publish/subscribe.

每个注册表（以及每个独立运行的机器人）拥有自己的信号中枢，
不存在进程级的全局事件发射器。每个通道允许多个处理器，
订阅时返回取消订阅函数，避免在反复添加/移除机器人时泄漏处理器。
Each registry (and each standalone bot) owns its own hub; there is no
process-wide emitter. Every channel is multi-listener and subscribing
returns an unsubscribe function so repeated add/remove cycles do not
leak handlers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    """
    预定义的信号类型 / Predefined signal kinds.
    """

    # 共享 HTTP 监听器已就绪
    LISTENING = "listening"
    # 一条更新通过了全部入站中间件
    UPDATE = "update"
    # 中间件出错
    ERROR = "error"


@dataclass
class Signal:
    """
    信号对象 - 在系统中传递的事件载体
    Signal object - the event carrier.

    ``args`` 按位置传给订阅者。
    ``args`` are passed positionally to subscribers.
    """

    kind: SignalKind
    args: tuple[Any, ...] = ()
    source: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SlotBinding:
    """
    槽绑定 - 将处理器绑定到信号上
    Slot binding - binds a handler to a signal.
    """

    signal_kind: SignalKind
    handler: Callable[..., Any]
    slot_id: str = ""
    # 是否只触发一次
    once: bool = False


class SignalHub:
    """
    信号中枢 - 管理信号的订阅和分发
    Signal hub - manages subscriptions and dispatching.

    处理器可以是同步或异步函数。处理器抛出的异常会被记录，
    但不会影响其他处理器，也不会回流到分发路径。
    Handlers may be sync or async. A failing handler is logged and does
    not affect other handlers or the dispatch path.
    """

    def __init__(self) -> None:
        self._slots: dict[SignalKind, list[SlotBinding]] = {}
        self._counter = 0

    def connect(
        self,
        signal_kind: SignalKind,
        handler: Callable[..., Any],
        once: bool = False,
    ) -> str:
        """
        连接处理器到信号
        Connect a handler to a signal kind.

        返回 slot_id，可用于 disconnect。
        Returns slot_id for later disconnection.
        """
        self._counter += 1
        slot_id = f"slot_{self._counter}"
        binding = SlotBinding(
            signal_kind=signal_kind, handler=handler, slot_id=slot_id, once=once
        )
        self._slots.setdefault(signal_kind, []).append(binding)
        logger.debug("已连接槽 %s 到信号 %s", slot_id, signal_kind.value)
        return slot_id

    def subscribe(
        self,
        signal_kind: SignalKind,
        handler: Callable[..., Any],
        once: bool = False,
    ) -> Callable[[], None]:
        """
        订阅信号，返回取消订阅函数
        Subscribe to a signal; returns a function that unsubscribes.
        """
        slot_id = self.connect(signal_kind, handler, once=once)

        def unsubscribe() -> None:
            self.disconnect(slot_id)

        return unsubscribe

    def disconnect(self, slot_id: str) -> bool:
        """
        断开指定 slot 的连接
        Disconnect a specific slot.
        """
        for bindings in self._slots.values():
            for binding in bindings:
                if binding.slot_id == slot_id:
                    bindings.remove(binding)
                    logger.debug("已断开槽 %s", slot_id)
                    return True
        return False

    async def emit(self, signal: Signal) -> Signal:
        """
        发射信号，触发所有匹配的处理器
        Emit a signal, triggering all connected handlers.
        """
        # 快照，处理器中订阅/取消订阅不影响本次分发
        bindings = list(self._slots.get(signal.kind, []))

        for binding in bindings:
            if binding.once:
                self.disconnect(binding.slot_id)
            try:
                result = binding.handler(*signal.args)
                if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                    await result
            except Exception:
                logger.exception(
                    "信号处理器 %s 处理 %s 时出错",
                    binding.slot_id,
                    signal.kind.value,
                )

        return signal

    async def emit_new(
        self,
        kind: SignalKind,
        *args: Any,
        source: str = "",
        **metadata: Any,
    ) -> Signal:
        """
        便捷方法：创建并发射一个新信号
        Convenience: create and emit a new signal.
        """
        signal = Signal(kind=kind, args=args, source=source, metadata=metadata)
        return await self.emit(signal)

    def slot_count(self, signal_kind: SignalKind | None = None) -> int:
        """获取槽绑定数量 / Get the number of slot bindings."""
        if signal_kind is None:
            return sum(len(bindings) for bindings in self._slots.values())
        return len(self._slots.get(signal_kind, []))

    def clear(self) -> None:
        """清除所有槽绑定 / Clear all slot bindings."""
        self._slots.clear()
