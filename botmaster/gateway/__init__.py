"""
网关模块 - 机器人、路由绑定与注册表
Gateway module - bots, route binding and the registry.
"""

from botmaster.gateway.base import BaseBot, BoundBot
from botmaster.gateway.registry import Botmaster
from botmaster.gateway.route_binder import RouteBinder

__all__ = ["BaseBot", "BoundBot", "Botmaster", "RouteBinder"]
