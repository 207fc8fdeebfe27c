"""
Botmaster - 多平台聊天机器人聚合框架
Botmaster - multi-platform chat bot aggregation framework.

把各个平台连接器挂到同一套中间件与事件 API 后面。
Puts independent platform connectors behind one middleware and event API.
"""

from botmaster.config.defaults import VERSION
from botmaster.errors import (
    BotmasterError,
    ConfigError,
    DuplicateBotError,
    MiddlewareError,
    RouteConflictError,
    TransportError,
)
from botmaster.gateway.base import BaseBot
from botmaster.gateway.registry import Botmaster
from botmaster.kernel.middleware import CONTINUE, FilterOptions, Halt, Incoming, Outgoing
from botmaster.message.types import OutgoingMessage, Update, UpdateMessage

__version__ = VERSION

__all__ = [
    "BaseBot",
    "Botmaster",
    "BotmasterError",
    "CONTINUE",
    "ConfigError",
    "DuplicateBotError",
    "FilterOptions",
    "Halt",
    "Incoming",
    "MiddlewareError",
    "Outgoing",
    "OutgoingMessage",
    "RouteConflictError",
    "TransportError",
    "Update",
    "UpdateMessage",
]
