"""
默认配置 - 注册表的所有默认配置值
Default configuration - all default settings of the registry.
"""

from __future__ import annotations

from typing import Any

# 框架版本
VERSION = "1.0.0"

# 原始 API 使用的 camelCase 键 -> 配置键
SETTING_ALIASES = {
    "useDefaultMountPathPrepend": "use_default_mount_path_prepend",
    "middlewareTimeout": "middleware_timeout",
    "logLevel": "log_level",
}


def build_default_config() -> dict[str, Any]:
    """
    构建默认配置
    Build the default configuration.
    """
    return {
        # 共享 HTTP 监听器
        "host": "0.0.0.0",
        "port": 3000,
        # 挂载路径是否以 /<type> 为前缀
        "use_default_mount_path_prepend": True,
        # 单次中间件链执行的超时（秒），None 表示不限制
        "middleware_timeout": 30.0,
        "log_level": "INFO",
        "log_dir": None,
    }
