"""
内核模块 - 中间件链与信号中枢
Kernel module - middleware chain and signal hub.
"""

from botmaster.kernel.middleware import (
    CONTINUE,
    Direction,
    FilterOptions,
    Halt,
    Incoming,
    MiddlewareChain,
    MiddlewareEntry,
    Outgoing,
)
from botmaster.kernel.signal_hub import SignalHub, SignalKind

__all__ = [
    "CONTINUE",
    "Direction",
    "FilterOptions",
    "Halt",
    "Incoming",
    "MiddlewareChain",
    "MiddlewareEntry",
    "Outgoing",
    "SignalHub",
    "SignalKind",
]
