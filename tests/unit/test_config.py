#
# tests/unit/test_config.py
#
"""
Tests for RunOptions validation and the layered config loader.
"""

from pathlib import Path

import pytest

from gauntlet.config import DEFAULT_SLOW_MS, DEFAULT_TIMEOUT_MS, NodeConfig, RunOptions, load_config
from gauntlet.exceptions import ConfigurationError


class TestRunOptions:
    def test_defaults(self) -> None:
        options = RunOptions()
        assert options.timeout_ms == DEFAULT_TIMEOUT_MS == 2000
        assert options.slow_ms == DEFAULT_SLOW_MS == 75
        assert options.retries == 0
        assert options.defaults == NodeConfig(timeout_ms=2000, slow_ms=75, retries=0)

    def test_grep_and_fgrep_are_exclusive(self) -> None:
        with pytest.raises(ValueError, match="mutually exclusive"):
            RunOptions(grep="a", fgrep="b")

    def test_invalid_regex(self) -> None:
        with pytest.raises(ValueError, match="regular expression"):
            RunOptions(grep="(")

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValueError, match="log_level"):
            RunOptions(log_level="LOUD")


class TestLoadConfig:
    def test_defaults_without_sources(self) -> None:
        assert load_config(env={}) == RunOptions()

    def test_precedence(self, tmp_path: Path) -> None:
        config_file = tmp_path / "gauntlet.toml"
        config_file.write_text('[run]\ntimeout_ms = 500\nretries = 1\nreporter = "json"\n')

        options = load_config(
            config_file,
            env={"GAUNTLET_RETRIES": "3", "GAUNTLET_BAIL": "yes", "UNRELATED": "x"},
            reporter="log",
            grep=None,
        )

        assert options.timeout_ms == 500  # file
        assert options.retries == 3  # env beats file
        assert options.bail is True
        assert options.reporter == "log"  # override beats file
        assert options.grep is None

    def test_float_env_value(self) -> None:
        assert load_config(env={"GAUNTLET_SLOW_MS": "12.5"}).slow_ms == 12.5

    def test_unknown_key_in_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "gauntlet.toml"
        config_file.write_text("[run]\ntimeout = 10\n")
        with pytest.raises(ConfigurationError, match="Unknown run option"):
            load_config(config_file, env={})

    def test_invalid_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "broken.toml"
        config_file.write_text("[run\n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_config(config_file, env={})

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.toml", env={})

    def test_bad_boolean(self) -> None:
        with pytest.raises(ConfigurationError, match="expects a boolean"):
            load_config(env={"GAUNTLET_BAIL": "sometimes"})

    def test_validation_errors_are_wrapped(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid run options"):
            load_config(env={}, grep="a", fgrep="b")

# 🧪⚙️
