"""
路由绑定器 - 把机器人的 Webhook 路径挂载到共享 HTTP 监听器
Route binder - mounts bot webhook paths on the shared HTTP listener.

Quart 不支持在运行时删除路由，因此绑定器注册一个 before_request 钩子，
按请求路径查表分发。挂载/卸载只修改这张表，可以反复执行；
应用上的其他路由不受影响。
Quart cannot drop routes at runtime, so the binder installs a
before_request hook and dispatches POSTs on the request path. Mounting
and unmounting only touch that table and can be repeated freely; other
routes of the shared app are left alone.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from quart import Quart, jsonify, request

from botmaster.errors import RouteConflictError, TransportError

logger = logging.getLogger(__name__)

WebhookHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]


def normalize_path(path: str) -> str:
    """保证路径以 / 开头 / Make sure the path starts with a slash."""
    if not path.startswith("/"):
        return f"/{path}"
    return path


class RouteBinder:
    """
    路由绑定器 - 路径 -> 处理器
    Route binder - path -> handler.
    """

    def __init__(self, app: Quart) -> None:
        self._app = app
        self._handlers: dict[str, WebhookHandler] = {}
        self._install()

    def _install(self) -> None:
        """注册分发钩子 / Install the dispatch hook."""
        self._app.before_request(self._dispatch)

    def mount(self, path: str, handler: WebhookHandler) -> str:
        """
        挂载处理器，路径已被占用时抛出 RouteConflictError
        Mount a handler; raises RouteConflictError if the path is taken.
        """
        path = normalize_path(path)
        if path in self._handlers:
            raise RouteConflictError(path)
        self._handlers[path] = handler
        logger.info("已挂载 Webhook 路由: POST %s", path)
        return path

    def unmount(self, path: str) -> bool:
        """
        卸载路径，未挂载时什么也不做
        Unmount a path; a no-op when it is not mounted.
        """
        path = normalize_path(path)
        if self._handlers.pop(path, None) is None:
            return False
        logger.info("已卸载 Webhook 路由: POST %s", path)
        return True

    async def _dispatch(self) -> Any:
        if request.method != "POST":
            return None

        route = request.path
        handler = self._handlers.get(route)
        if handler is None:
            if request.url_rule is not None:
                # 交给应用上的其他路由处理
                return None
            logger.debug("收到未挂载路径的请求: POST %s", route)
            return jsonify({"message": f"Couldn't POST {route}"}), 404

        body = await request.get_json(force=True, silent=True)
        if not isinstance(body, Mapping):
            return jsonify({"message": "Invalid JSON body"}), 400

        try:
            await handler(body)
        except TransportError as exc:
            logger.warning("处理 Webhook %s 失败: %s", route, exc)
            return jsonify({"message": str(exc)}), exc.status or 400
        return jsonify({"status": "ok"})
