"""Tests for the config layer and registry settings."""

from __future__ import annotations

import json
import logging

import pytest

from botmaster import Botmaster, ConfigError
from botmaster.config import ConfigManager, build_default_config
from botmaster.kernel.logging import set_level, setup_logging
from tests.conftest import MockBot


class TestConfigManager:
    def test_defaults_are_merged(self):
        manager = ConfigManager(defaults=build_default_config())
        assert manager.get("port") == 3000
        assert manager.get("use_default_mount_path_prepend") is True
        assert manager.get("middleware_timeout") == 30.0

    def test_camel_case_aliases(self):
        manager = ConfigManager(defaults=build_default_config())
        manager.update({"useDefaultMountPathPrepend": False, "middlewareTimeout": 5})
        assert manager.get("use_default_mount_path_prepend") is False
        assert manager.get("middleware_timeout") == 5

    def test_nested_keys(self):
        manager = ConfigManager()
        manager.set("server.tls.enabled", True)
        assert manager.get("server.tls.enabled") is True
        assert manager.get("server.tls.missing", "fallback") == "fallback"
        assert manager.as_dict() == {"server": {"tls": {"enabled": True}}}

    def test_load_and_save(self, tmp_path):
        path = tmp_path / "conf" / "botmaster.json"
        manager = ConfigManager(defaults=build_default_config(), config_path=str(path))
        manager.set("port", 4000)
        assert manager.save() == path

        assert json.loads(path.read_text(encoding="utf-8"))["port"] == 4000

        reloaded = ConfigManager(defaults=build_default_config(), config_path=str(path))
        reloaded.load()
        assert reloaded.get("port") == 4000

    def test_save_without_path(self):
        with pytest.raises(ConfigError, match="config_path"):
            ConfigManager(defaults=build_default_config()).save()

    def test_as_dict_is_a_copy(self):
        manager = ConfigManager(defaults={"server": {"port": 1}})
        snapshot = manager.as_dict()
        snapshot["server"]["port"] = 2
        assert manager.get("server.port") == 1

    def test_broken_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "botmaster.json"
        path.write_text("{not json", encoding="utf-8")
        manager = ConfigManager(defaults=build_default_config(), config_path=str(path))
        manager.load()
        assert manager.get("port") == 3000

    def test_missing_file_keeps_defaults(self, tmp_path):
        manager = ConfigManager(
            defaults=build_default_config(), config_path=str(tmp_path / "absent.json")
        )
        manager.load()
        assert manager.get("host") == "0.0.0.0"


class TestBotmasterSettings:
    def test_settings_and_overrides(self):
        botmaster = Botmaster({"port": 4100}, middleware_timeout=2.5)
        assert botmaster.config.get("port") == 4100
        assert botmaster.middleware_timeout == 2.5

    def test_file_settings_are_overridden_by_arguments(self, tmp_path):
        path = tmp_path / "botmaster.json"
        path.write_text(json.dumps({"port": 4200, "useDefaultMountPathPrepend": False}))

        botmaster = Botmaster(config_path=str(path), port=4300)

        assert botmaster.config.get("port") == 4300
        assert not botmaster.use_default_mount_path_prepend

    def test_save_config_round_trip(self, tmp_path):
        path = tmp_path / "botmaster.json"
        botmaster = Botmaster(config_path=str(path), useDefaultMountPathPrepend=False, port=4400)

        assert botmaster.save_config() == path

        restored = Botmaster(config_path=str(path))
        assert restored.settings == botmaster.settings
        assert restored.config.get("port") == 4400
        assert not restored.use_default_mount_path_prepend

    def test_settings_is_a_copy(self):
        botmaster = Botmaster()
        botmaster.settings["port"] = 1
        assert botmaster.config.get("port") == 3000

    def test_mount_path(self):
        bot = MockBot(requires_webhook=True, webhook_endpoint="hook")
        assert Botmaster().mount_path_for(bot) == "/mock/hook"
        assert Botmaster(useDefaultMountPathPrepend=False).mount_path_for(bot) == "/hook"

    def test_bot_timeout_defaults_to_registry_default(self):
        assert MockBot().middleware_timeout == build_default_config()["middleware_timeout"]
        assert MockBot(middlewareTimeout=3).middleware_timeout == 3


class TestLogging:
    def test_setup_logging_replaces_handlers(self, tmp_path):
        logger = setup_logging("DEBUG", tmp_path)
        first = list(logger.handlers)
        assert len(first) == 2
        assert (tmp_path / "botmaster.log").exists()

        logger = setup_logging("WARNING")
        assert len(logger.handlers) == 1
        assert logger.handlers[0] not in first
        assert logger.handlers[0].level == logging.WARNING

        set_level("error")
        assert logger.handlers[0].level == logging.ERROR

        setup_logging()
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
