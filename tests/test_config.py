"""Unit tests for configuration management module."""

import os
from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from src.config import (
    AppConfig,
    InputConfig,
    LayoutConfig,
    SessionConfig,
    get_config,
    load_config,
    reset_config,
)


@pytest.fixture
def valid_config_dict() -> dict[str, Any]:
    """Fixture providing valid configuration dictionary."""
    return {
        "layout": {
            "margin": 120,
            "gap": 24,
            "lane_height": 90,
            "converge": True,
        },
        "session": {"history_limit": 50},
        "input": {"patterns": ["*.json"], "encoding": "utf-8"},
        "logging_level": "DEBUG",
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, valid_config_dict: dict[str, Any]) -> Path:
    """Fixture providing temporary YAML config file."""
    config_path = tmp_path / "threadflow.yaml"
    with config_path.open("w") as f:
        yaml.dump(valid_config_dict, f)
    return config_path


@pytest.fixture(autouse=True)
def reset_config_singleton():
    """Reset configuration singleton before and after each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def clean_env_vars(monkeypatch):
    """Clean environment variables before each test."""
    for key in list(os.environ.keys()):
        if key.startswith("THREADFLOW_"):
            monkeypatch.delenv(key, raising=False)


class TestLayoutConfig:
    """Tests for LayoutConfig model."""

    def test_defaults(self):
        config = LayoutConfig()

        assert config.margin == 200
        assert config.min_width == 40
        assert config.gap == 40
        assert config.lane_height == 110
        assert (config.min_scale, config.max_scale) == (60, 320)
        assert config.epsilon == 0.5
        assert config.converge is True

    def test_negative_gap_rejected(self):
        with pytest.raises(ValidationError):
            LayoutConfig(gap=-1)

    def test_zero_min_width_rejected(self):
        with pytest.raises(ValidationError):
            LayoutConfig(min_width=0)

    def test_scale_bounds_ordered(self):
        with pytest.raises(ValidationError, match="min_scale must not exceed max_scale"):
            LayoutConfig(min_scale=400, max_scale=100)


class TestSessionAndInputConfig:
    """Tests for SessionConfig and InputConfig models."""

    def test_history_limit_default(self):
        assert SessionConfig().history_limit == 100

    def test_history_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            SessionConfig(history_limit=0)

    def test_input_defaults(self):
        config = InputConfig()

        assert config.patterns == ["*.json", "*.yaml", "*.yml"]
        assert config.encoding == "utf-8"

    def test_empty_patterns_rejected(self):
        with pytest.raises(ValidationError):
            InputConfig(patterns=[])


class TestAppConfig:
    """Tests for AppConfig loading."""

    def test_defaults(self):
        config = AppConfig()

        assert config.logging_level == "INFO"
        assert config.layout == LayoutConfig()

    def test_invalid_logging_level(self):
        with pytest.raises(ValidationError):
            AppConfig(logging_level="VERBOSE")

    def test_from_yaml(self, temp_config_file):
        config = AppConfig.from_yaml(temp_config_file)

        assert config.layout.margin == 120
        assert config.layout.gap == 24
        assert config.layout.min_width == 40
        assert config.session.history_limit == 50
        assert config.input.patterns == ["*.json"]
        assert config.logging_level == "DEBUG"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Configuration file not found"):
            AppConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="empty"):
            AppConfig.from_yaml(path)

    def test_from_yaml_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            AppConfig.from_yaml(path)

    def test_from_yaml_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("layout: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.from_yaml(path)

    def test_from_yaml_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("session:\n  history_limit: -3\n")

        with pytest.raises(ValidationError):
            AppConfig.from_yaml(path)


class TestEnvironmentOverrides:
    """Tests for THREADFLOW_* environment overrides."""

    def test_overrides_file_values(self, temp_config_file, monkeypatch):
        monkeypatch.setenv("THREADFLOW_LAYOUT_GAP", "12.5")
        monkeypatch.setenv("THREADFLOW_SESSION_HISTORY_LIMIT", "7")

        config = AppConfig.from_yaml(temp_config_file)

        assert config.layout.gap == 12.5
        assert config.session.history_limit == 7

    def test_from_env_without_file(self, monkeypatch):
        monkeypatch.setenv("THREADFLOW_LAYOUT_CONVERGE", "no")
        monkeypatch.setenv("THREADFLOW_LAYOUT_MIN_WIDTH", "30")
        monkeypatch.setenv("THREADFLOW_LOGGING_LEVEL", "WARNING")

        config = AppConfig.from_env()

        assert config.layout.converge is False
        assert config.layout.min_width == 30
        assert config.logging_level == "WARNING"

    def test_invalid_override_rejected(self, monkeypatch):
        monkeypatch.setenv("THREADFLOW_SESSION_HISTORY_LIMIT", "lots")

        with pytest.raises(ValueError):
            AppConfig.from_env()


class TestValidateConfig:
    """Tests for configuration warnings."""

    def test_defaults_have_no_warnings(self):
        assert AppConfig().validate_config() == []

    def test_single_pass_warning(self):
        config = AppConfig(layout=LayoutConfig(converge=False))

        assert any("convergence" in w for w in config.validate_config())

    def test_zero_gap_warning(self):
        config = AppConfig(layout=LayoutConfig(gap=0))

        assert any("gap is zero" in w for w in config.validate_config())

    def test_wide_canvas_warning(self):
        config = AppConfig(layout=LayoutConfig(min_scale=300, min_total_time=100))

        assert any("wide timelines" in w for w in config.validate_config())

    def test_large_history_warning(self):
        config = AppConfig(session=SessionConfig(history_limit=5000))

        assert any("History limit" in w for w in config.validate_config())


class TestConfigManager:
    """Tests for load_config and the singleton accessor."""

    def test_load_explicit_path(self, temp_config_file):
        assert load_config(temp_config_file).layout.margin == 120

    def test_load_missing_explicit_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_load_default_file_from_cwd(self, temp_config_file, monkeypatch):
        monkeypatch.chdir(temp_config_file.parent)

        assert load_config().session.history_limit == 50

    def test_load_without_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert load_config() == AppConfig()

    def test_get_config_is_cached(self, temp_config_file):
        first = get_config(temp_config_file)
        second = get_config()

        assert first is second

    def test_get_config_reload(self, temp_config_file):
        first = get_config(temp_config_file)

        reloaded = get_config(temp_config_file, reload=True)

        assert reloaded is not first
        assert reloaded == first
