"""
配置模块
Configuration module.
"""

from botmaster.config.defaults import VERSION, build_default_config
from botmaster.config.manager import ConfigManager

__all__ = ["ConfigManager", "VERSION", "build_default_config"]
