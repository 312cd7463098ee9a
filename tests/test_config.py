"""
Tests for configuration, timeouts and logging setup.
"""

import json
import logging

import pytest

from featurewarden.config import (
    DEFAULT_TIMEOUTS,
    WardenConfig,
    get_config_path,
    get_timeout,
    load_config,
    parse_timeout,
    save_config,
)
from featurewarden.log import SUBSYSTEMS, configure_logging, enabled_subsystems


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "FEATUREWARDEN_TIMEOUT_VERIFY",
        "FEATUREWARDEN_TIMEOUT_CAPABILITY",
        "FEATUREWARDEN_TIMEOUT_DEFAULT",
        "FEATUREWARDEN_AGENTS",
        "FEATUREWARDEN_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestWardenConfig:
    """Tests for WardenConfig."""

    def test_defaults(self, clean_env):
        config = WardenConfig()
        assert config.agents == ["claude", "codex", "gemini"]
        assert config.parallel_checks is False
        assert config.check_timeout_seconds == 300
        assert config.timeout("AI_VERIFICATION") == 300000
        assert config.timeout("AI_CAPABILITY_DISCOVERY") == 120000

    def test_serialization_roundtrip(self):
        config = WardenConfig(agents=["codex"], parallel_checks=True, check_timeout_seconds=60)
        restored = WardenConfig.from_dict(config.to_dict())
        assert restored == config

    def test_from_dict_ignores_bad_timeouts(self):
        config = WardenConfig.from_dict({"timeouts": {"AI_VERIFICATION": -5, "AI_DEFAULT": 1000, "OTHER": 7}})
        assert config.timeouts["AI_VERIFICATION"] == DEFAULT_TIMEOUTS["AI_VERIFICATION"]
        assert config.timeouts["AI_DEFAULT"] == 1000
        assert "OTHER" not in config.timeouts

    def test_env_timeout_override(self, clean_env):
        clean_env.setenv("FEATUREWARDEN_TIMEOUT_VERIFY", "45000")
        assert get_timeout("AI_VERIFICATION") == 45000

    def test_invalid_env_timeout_is_ignored(self, clean_env):
        clean_env.setenv("FEATUREWARDEN_TIMEOUT_CAPABILITY", "soon")
        assert get_timeout("AI_CAPABILITY_DISCOVERY") == 120000

    def test_agent_order_env_override(self, clean_env):
        clean_env.setenv("FEATUREWARDEN_AGENTS", "gemini, claude")
        assert WardenConfig().agent_order() == ["gemini", "claude"]

    @pytest.mark.parametrize("value,expected", [
        ("1000", 1000), ("0", None), ("-1", None), ("abc", None), ("", None), (None, None),
    ])
    def test_parse_timeout(self, value, expected):
        assert parse_timeout(value) == expected


class TestConfigFile:
    """Tests for .featurewarden/config.json."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(str(tmp_path)) == WardenConfig()

    def test_save_and_load(self, tmp_path):
        save_config(str(tmp_path), WardenConfig(agents=["codex"], parallel_checks=True))

        assert get_config_path(str(tmp_path)) == tmp_path / ".featurewarden" / "config.json"
        loaded = load_config(str(tmp_path))
        assert loaded.agents == ["codex"]
        assert loaded.parallel_checks is True

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / ".featurewarden" / "config.json"
        path.parent.mkdir()
        path.write_text("{oops")
        assert load_config(str(tmp_path)) == WardenConfig()

    def test_partial_file(self, tmp_path):
        path = tmp_path / ".featurewarden" / "config.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"parallel_checks": True}))

        config = load_config(str(tmp_path))
        assert config.parallel_checks is True
        assert config.agents == ["claude", "codex", "gemini"]


class TestLogging:
    """Tests for FEATUREWARDEN_DEBUG handling."""

    def test_enabled_subsystems(self):
        assert enabled_subsystems("cache, store") == ["cache", "store"]
        assert enabled_subsystems("bogus") == []
        assert enabled_subsystems("") == []

    def test_wildcard(self):
        assert enabled_subsystems("*") == list(SUBSYSTEMS)
        assert enabled_subsystems("all") == list(SUBSYSTEMS)

    def test_reads_environment(self, clean_env):
        clean_env.setenv("FEATUREWARDEN_DEBUG", "git")
        assert enabled_subsystems() == ["git"]

    def test_configure_logging(self):
        enabled = configure_logging("store")

        assert enabled == ["store"]
        assert logging.getLogger("featurewarden").level == logging.WARNING
        assert logging.getLogger("featurewarden.store").level == logging.DEBUG
        assert logging.getLogger("featurewarden").handlers

        logging.getLogger("featurewarden.store").setLevel(logging.NOTSET)
