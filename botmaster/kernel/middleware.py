"""
中间件链 - 可过滤的有序消息处理中间件系统
Middleware chain - ordered, filterable message processing middleware system.

每个中间件步骤返回 ``CONTINUE``（或 ``None``）继续处理，
或返回 ``Halt(reason)`` 明确终止处理链。不存在“忘记调用 next”
导致的静默挂起；卡住的步骤由超时转换为 ``MiddlewareError``。
Each middleware step returns ``CONTINUE`` (or ``None``) to proceed, or
``Halt(reason)`` to stop the chain explicitly. There is no silent stall
from a forgotten ``next``; a stuck step is turned into a
``MiddlewareError`` by the timeout.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from botmaster.errors import ConfigError, MiddlewareError

logger = logging.getLogger(__name__)

INVALID_TYPE_MESSAGE = (
    "invalid middleware type. Type should be either 'incoming' or 'outgoing'"
)
BOTH_DIRECTIONS_MESSAGE = (
    '"use" should be called with only one of incoming or outgoing. '
    "Use use_wrapped instead"
)
EXCLUSIVE_TYPES_MESSAGE = (
    "Please use only one of bot_types_to_include and bot_types_to_exclude"
)


class Direction(str, Enum):
    """中间件方向 / Middleware direction."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class Continue:
    """继续执行下一个中间件 / Proceed to the next middleware."""

    _instance: Continue | None = None

    def __new__(cls) -> Continue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CONTINUE"


CONTINUE = Continue()


@dataclass(frozen=True)
class Halt:
    """终止处理链 / Stop the chain."""

    reason: str = ""


StepResult = Continue | Halt

# 中间件回调：incoming 为 (bot, update)，outgoing 为 (bot, update, message)
Callback = Callable[..., Any]


class FilterOptions(BaseModel):
    """
    过滤选项 - 决定中间件对哪些机器人生效
    Filter options - decide which bots a middleware applies to.

    包含与排除集合互斥。单个字符串视为只含一个元素的集合。
    Include and exclude sets are mutually exclusive. A bare string is
    treated as a one-element set.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    bot_types_to_include: frozenset[str] | None = Field(
        default=None, alias="botTypesToInclude"
    )
    bot_types_to_exclude: frozenset[str] | None = Field(
        default=None, alias="botTypesToExclude"
    )
    bot_receives: str | None = Field(default=None, alias="botReceives")
    bot_sends: str | None = Field(default=None, alias="botSends")

    @field_validator("bot_types_to_include", "bot_types_to_exclude", mode="before")
    @classmethod
    def _single_type_as_set(cls, value: Any) -> Any:
        if isinstance(value, str):
            return frozenset({value})
        return value

    @model_validator(mode="after")
    def _check_exclusive(self) -> FilterOptions:
        if self.bot_types_to_include is not None and self.bot_types_to_exclude is not None:
            raise ValueError(EXCLUSIVE_TYPES_MESSAGE)
        return self

    @classmethod
    def parse(cls, options: FilterOptions | Mapping[str, Any] | None) -> FilterOptions:
        """
        校验并构造过滤选项，失败时抛出 ConfigError
        Validate and build filter options, raising ConfigError on failure.
        """
        if options is None:
            return cls()
        if isinstance(options, FilterOptions):
            return options
        if not isinstance(options, Mapping):
            raise ConfigError(
                f"options can't be of type {type(options).__name__}. "
                "It needs to be a mapping"
            )
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            raise ConfigError(_validation_message(exc)) from None

    def admits(self, bot: Any) -> bool:
        """判断该机器人是否通过过滤 / Whether the bot passes this filter."""
        if self.bot_types_to_include is not None and bot.type not in self.bot_types_to_include:
            return False
        if self.bot_types_to_exclude is not None and bot.type in self.bot_types_to_exclude:
            return False
        if self.bot_receives is not None and not bot.receives.get(self.bot_receives, False):
            return False
        if self.bot_sends is not None and not bot.sends.get(self.bot_sends, False):
            return False
        return True


def _validation_message(exc: ValidationError) -> str:
    error = exc.errors()[0]
    cause = error.get("ctx", {}).get("error")
    if isinstance(cause, ValueError):
        return str(cause)
    location = ".".join(str(part) for part in error["loc"])
    return f"invalid option {location}: {error['msg']}"


@dataclass(frozen=True)
class MiddlewareEntry:
    """
    中间件条目 - 添加后不可变
    Middleware entry - immutable once added.
    """

    direction: Direction
    callback: Callback
    options: FilterOptions = field(default_factory=FilterOptions)
    name: str = ""

    def applies_to(self, bot: Any) -> bool:
        return self.options.admits(bot)


@dataclass(frozen=True)
class _MiddlewareSpec:
    cb: Callback
    options: FilterOptions | Mapping[str, Any] | None = None
    name: str | None = None

    direction: ClassVar[Direction]

    def to_entry(self) -> MiddlewareEntry:
        """
        校验规格并生成中间件条目
        Validate the spec and build a middleware entry.
        """
        if not callable(self.cb):
            raise ConfigError(
                f"middleware callback can't be of type {type(self.cb).__name__}. "
                "It needs to be callable"
            )
        options = FilterOptions.parse(self.options)
        name = self.name or getattr(self.cb, "__name__", type(self.cb).__name__)
        return MiddlewareEntry(
            direction=self.direction, callback=self.cb, options=options, name=name
        )


@dataclass(frozen=True)
class Incoming(_MiddlewareSpec):
    """入站中间件规格 / Incoming middleware spec: ``cb(bot, update)``."""

    direction: ClassVar[Direction] = Direction.INCOMING


@dataclass(frozen=True)
class Outgoing(_MiddlewareSpec):
    """出站中间件规格 / Outgoing middleware spec: ``cb(bot, update, message)``."""

    direction: ClassVar[Direction] = Direction.OUTGOING


MiddlewareSpec = Incoming | Outgoing

_SPEC_TYPES: dict[str, type[_MiddlewareSpec]] = {
    Direction.INCOMING.value: Incoming,
    Direction.OUTGOING.value: Outgoing,
}


def _spec_from_body(direction: str, body: Any) -> MiddlewareSpec:
    spec_cls = _SPEC_TYPES[direction]
    if isinstance(body, spec_cls):
        return body
    if isinstance(body, Mapping):
        return spec_cls(cb=body.get("cb"), options=body.get("options"), name=body.get("name"))
    # 非映射的规格体没有可用的回调
    return spec_cls(cb=None)


def parse_middleware_spec(spec: Any) -> MiddlewareSpec:
    """
    将 ``use`` 参数解析为带标签的规格
    Parse a ``use`` argument into a tagged spec.

    接受 ``Incoming``/``Outgoing`` 实例，或映射形式
    ``{"incoming": {"cb": fn, "options": {...}}}``。
    Accepts ``Incoming``/``Outgoing`` instances, or the mapping form
    ``{"incoming": {"cb": fn, "options": {...}}}``.
    """
    if isinstance(spec, (Incoming, Outgoing)):
        return spec
    if not isinstance(spec, Mapping):
        raise ConfigError(INVALID_TYPE_MESSAGE)

    keys = set(spec)
    directions = keys & set(_SPEC_TYPES)
    if len(directions) > 1:
        raise ConfigError(BOTH_DIRECTIONS_MESSAGE)
    if not directions or keys - directions:
        raise ConfigError(INVALID_TYPE_MESSAGE)

    direction = directions.pop()
    return _spec_from_body(direction, spec[direction])


def parse_wrapped_specs(incoming: Any, outgoing: Any) -> tuple[MiddlewareEntry, MiddlewareEntry]:
    """
    解析 use_wrapped 的一对规格
    Parse the pair of specs given to ``use_wrapped``.
    """
    if incoming is None or outgoing is None:
        raise ConfigError(
            "use_wrapped needs both an incoming and an outgoing middleware"
        )
    incoming_entry = _spec_from_body(Direction.INCOMING.value, incoming).to_entry()
    outgoing_entry = _spec_from_body(Direction.OUTGOING.value, outgoing).to_entry()
    return incoming_entry, outgoing_entry


class MiddlewareChain:
    """
    中间件链 - 管理和执行一个方向上的中间件序列
    Middleware chain - manages and executes the middleware of one direction.

    支持：
    - 按声明顺序执行
    - 按机器人类型与能力过滤
    - 显式终止（Halt）与超时
    """

    def __init__(self, direction: Direction) -> None:
        self._direction = direction
        self._entries: list[MiddlewareEntry] = []

    @property
    def direction(self) -> Direction:
        return self._direction

    def add(self, entry: MiddlewareEntry) -> MiddlewareChain:
        """
        追加中间件到链尾
        Append a middleware to the end of the chain.
        """
        self._check_direction(entry)
        self._entries.append(entry)
        logger.debug("已添加%s中间件: %s", self._direction.value, entry.name)
        return self

    def prepend(self, entry: MiddlewareEntry) -> MiddlewareChain:
        """
        插入中间件到链首（不改变已有条目的相对顺序）
        Insert a middleware at the front (existing entries keep their order).
        """
        self._check_direction(entry)
        self._entries.insert(0, entry)
        logger.debug("已前置%s中间件: %s", self._direction.value, entry.name)
        return self

    def _check_direction(self, entry: MiddlewareEntry) -> None:
        if entry.direction is not self._direction:
            raise ConfigError(
                f"cannot add {entry.direction.value} middleware "
                f"to the {self._direction.value} chain"
            )

    async def run(
        self,
        bot: Any,
        *args: Any,
        timeout: float | None = None,
    ) -> StepResult:
        """
        对一条更新/消息执行整个中间件链
        Execute the chain over one update or message.

        回调抛出的异常或超时会被包装为 MiddlewareError，链的剩余部分被放弃。
        Exceptions or a timeout are wrapped in MiddlewareError and the rest
        of the chain is abandoned.
        """
        # 每次执行时快照条目并求值过滤器
        active = [entry for entry in self._entries if entry.applies_to(bot)]
        if timeout is None:
            return await self._execute(active, bot, args)
        try:
            return await asyncio.wait_for(self._execute(active, bot, args), timeout)
        except asyncio.TimeoutError:
            cause = TimeoutError(f"middleware timed out after {timeout}s")
            raise MiddlewareError(bot, self._direction.value, cause) from cause

    async def _execute(
        self,
        entries: list[MiddlewareEntry],
        bot: Any,
        args: tuple[Any, ...],
    ) -> StepResult:
        for entry in entries:
            try:
                result = entry.callback(bot, *args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                logger.debug("中间件 %s 抛出了错误: %r", entry.name, exc)
                raise MiddlewareError(bot, self._direction.value, exc) from exc

            if isinstance(result, Halt):
                logger.debug("中间件 %s 终止了处理链: %s", entry.name, result.reason)
                return result
        return CONTINUE

    def remove(self, name: str) -> bool:
        """
        按名称移除中间件
        Remove a middleware by name.
        """
        for i, entry in enumerate(self._entries):
            if entry.name == name:
                self._entries.pop(i)
                logger.debug("已移除中间件: %s", name)
                return True
        return False

    @property
    def entries(self) -> tuple[MiddlewareEntry, ...]:
        return tuple(self._entries)

    @property
    def count(self) -> int:
        """中间件数量 / Number of middlewares."""
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
