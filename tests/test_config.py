"""Tests for engine configuration loading."""

from pathlib import Path

import pytest

from taskhue.config import (
    EngineConfig,
    SchedulerConfig,
    StoreKeys,
    default_config_path,
    load_config,
)


def test_load_config_with_overrides(tmp_path: Path) -> None:
    """Test loading a config that overrides some timings and table names."""
    config_path = tmp_path / "taskhue.yaml"
    config_path.write_text(
        """
keys:
  manual_colors: cf.taskColors
cache:
  ttl_seconds: 5
scheduler:
  max_retries: 2
  navigation_repaint_delays: [0.1]
  periodic_interval_seconds: null
remote:
  request_timeout_seconds: 3
"""
    )

    config = load_config(config_path)

    assert config.keys.manual_colors == "cf.taskColors"
    assert config.keys.list_colors == "taskListColors"
    assert config.cache.ttl_seconds == 5
    assert config.scheduler.max_retries == 2
    assert config.scheduler.navigation_repaint_delays == [0.1]
    assert config.scheduler.periodic_interval_seconds is None
    assert config.remote.request_timeout_seconds == 3


def test_empty_config_uses_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "empty.yaml"
    config_path.write_text("")

    config = load_config(config_path)

    assert config == EngineConfig()
    assert config.cache.ttl_seconds == 30.0
    assert config.scheduler.max_cycles_per_burst == 15
    assert config.remote.auto_sync_after_seconds == 30 * 60


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        load_config(tmp_path / "missing.yaml")


def test_config_must_be_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "list.yaml"
    config_path.write_text("- one\n- two\n")

    with pytest.raises(ValueError, match="expected mapping"):
        load_config(config_path)


def test_invalid_config_values(tmp_path: Path) -> None:
    config_path = tmp_path / "bad.yaml"
    config_path.write_text("cache:\n  ttl_seconds: -1\n")

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(config_path)


def test_scheduler_intervals_are_validated() -> None:
    with pytest.raises(ValueError, match="slow_interval"):
        SchedulerConfig(fast_interval=0.5, slow_interval=0.1)


def test_burst_cap_is_validated() -> None:
    with pytest.raises(ValueError, match="max_cycles_per_burst"):
        SchedulerConfig(slow_after_cycles=10, max_cycles_per_burst=5)


def test_store_key_groups() -> None:
    keys = StoreKeys()
    assert keys.replicated() == [
        "taskColors",
        "recurringTaskColors",
        "taskListColors",
        "taskListTextColors",
        "settings",
    ]
    assert keys.local() == ["taskToListMap", "calendarEventMapping"]


def test_default_config_path_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKHUE_CONFIG", "/tmp/taskhue.yaml")
    assert default_config_path() == Path("/tmp/taskhue.yaml")

    monkeypatch.delenv("TASKHUE_CONFIG")
    assert default_config_path() is None
