"""
错误类型 - 框架的异常分类
Error types - the framework's exception taxonomy.

配置错误和注册表错误同步抛给调用方；中间件错误按更新隔离，
通过 error 事件上报。
Config and registry errors are raised synchronously to the caller;
middleware errors are isolated per update and reported via error events.
"""

from __future__ import annotations

from typing import Any


class BotmasterError(Exception):
    """框架异常基类 / Base class for all framework errors."""


class ConfigError(BotmasterError):
    """
    配置错误 - use 参数形状/类型非法，或互斥选项同时出现
    Configuration error - invalid ``use`` spec shape, type, or mutually
    exclusive options.
    """


class DuplicateBotError(BotmasterError):
    """同一个机器人实例被重复添加 / The same bot instance was added twice."""


class RouteConflictError(BotmasterError):
    """挂载路径已被其他机器人占用 / Mount path already taken by another bot."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Route {path} is already mounted")
        self.path = path


class MiddlewareError(BotmasterError):
    """
    中间件错误 - 处理链中的回调抛出了异常或超时
    Middleware error - a chain callback raised or timed out.

    原始异常保存在 ``__cause__`` 中。
    The original exception is kept as ``__cause__``.
    """

    def __init__(self, bot: Any, phase: str, cause: BaseException) -> None:
        super().__init__(f'"{_describe(cause)}". In {phase} middleware')
        self.bot = bot
        self.phase = phase
        self.__cause__ = cause


class TransportError(BotmasterError):
    """
    传输错误 - Webhook 路由不存在，或连接器发送失败
    Transport error - webhook route not found, or connector send failed.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def _describe(cause: BaseException) -> str:
    text = str(cause)
    if text:
        return text
    return type(cause).__name__
