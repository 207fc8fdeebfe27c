"""
配置管理器 - 注册表设置的来源
Config manager - where the registry's settings come from.

优先级从低到高：默认值 < JSON 配置文件 < 构造参数。
Precedence, lowest first: defaults < JSON config file < constructor
arguments.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from botmaster.config.defaults import SETTING_ALIASES
from botmaster.errors import ConfigError

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    配置管理器
    Config manager.

    键名支持点号路径（如 "server.port"），camelCase 别名在写入时统一换成规范键名。
    Keys may be dotted paths (``"server.port"``); camelCase aliases are
    mapped to canonical keys on write.
    """

    def __init__(
        self,
        defaults: Mapping[str, Any] | None = None,
        config_path: str | Path | None = None,
    ) -> None:
        self._values: dict[str, Any] = copy.deepcopy(dict(defaults or {}))
        self._path = Path(config_path) if config_path is not None else None

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self) -> bool:
        """
        从配置文件读取设置，覆盖默认值；文件缺失或损坏时保留现有值
        Read settings from the config file over the defaults. A missing or
        broken file leaves the current values in place.
        """
        if self._path is None:
            return False
        if not self._path.exists():
            logger.info("未找到配置文件 %s，使用默认值", self._path)
            return False
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("读取配置文件 %s 失败，使用默认值: %s", self._path, exc)
            return False
        if not isinstance(data, Mapping):
            logger.warning("配置文件 %s 的顶层不是对象，已忽略", self._path)
            return False
        self.update(data)
        logger.info("配置已从 %s 加载", self._path)
        return True

    def save(self) -> Path:
        """
        把当前设置写回配置文件
        Write the current settings back to the config file.
        """
        if self._path is None:
            raise ConfigError("ConfigManager has no config_path to save to")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(self._values, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        logger.info("配置已保存到 %s", self._path)
        return self._path

    def update(self, values: Mapping[str, Any]) -> None:
        """批量写入（接受 camelCase 别名）/ Write in bulk (camelCase aliases accepted)."""
        for key, value in values.items():
            self.set(SETTING_ALIASES.get(key, key), value)

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self._values
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return default if node is None else node

    def set(self, key: str, value: Any) -> None:
        *parents, leaf = key.split(".")
        node = self._values
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value

    def as_dict(self) -> dict[str, Any]:
        """当前设置的深拷贝 / Deep copy of the current settings."""
        return copy.deepcopy(self._values)
