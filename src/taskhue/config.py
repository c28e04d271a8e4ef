"""Engine configuration schema and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

# Load environment variables from .env file
load_dotenv()

CONFIG_ENV_VAR = "TASKHUE_CONFIG"
STORE_ENV_VAR = "TASKHUE_STORE"


class StoreKeys(BaseModel):
    """Durable table names.

    The first five live in the replicated tier, the last two in the
    device-local tier.
    """

    manual_colors: str = "taskColors"
    recurring_colors: str = "recurringTaskColors"
    list_colors: str = "taskListColors"
    list_text_colors: str = "taskListTextColors"
    settings: str = "settings"
    task_to_list: str = "taskToListMap"
    event_mapping: str = "calendarEventMapping"

    def replicated(self) -> list[str]:
        """Keys refreshed together from the replicated tier."""
        return [
            self.manual_colors,
            self.recurring_colors,
            self.list_colors,
            self.list_text_colors,
            self.settings,
        ]

    def local(self) -> list[str]:
        """Keys held in the device-local tier."""
        return [self.task_to_list, self.event_mapping]


class CacheConfig(BaseModel):
    """Lifetimes of the in-memory mirrors."""

    ttl_seconds: float = Field(default=30.0, ge=0)
    event_mapping_ttl_seconds: float = Field(default=30.0, ge=0)
    manual_colors_ttl_seconds: float = Field(default=1.0, ge=0)  # Writers' read-modify-write copy


class SchedulerConfig(BaseModel):
    """Repaint throttling, retry and debounce timings (seconds)."""

    # Throttling
    fast_interval: float = 0.025
    slow_interval: float = 0.1
    slow_after_cycles: int = 5  # Cycles in a burst before the slow interval applies
    max_cycles_per_burst: int = 15  # Regular requests beyond this are dropped
    burst_reset_seconds: float = 1.0
    frame_delay: float = 0.016  # Delay before a queued regular request runs

    # Retry while the host has not rendered any items yet
    max_retries: int = 20
    retry_delay: float = 0.2

    # New-item lookups
    lookup_debounce_seconds: float = 0.5

    # Structural changes
    mutation_debounce_seconds: float = 0.05
    navigation_batch_threshold: int = 3  # More batches than this in a row means navigation
    large_batch_nodes: int = 5  # A batch adding more nodes than this means navigation
    navigation_repaint_delays: list[float] = Field(default_factory=lambda: [0.01, 0.05, 0.15])
    navigation_settle_seconds: float = 0.5
    url_change_repaint_delays: list[float] = Field(default_factory=lambda: [0.1, 0.3])

    periodic_interval_seconds: float | None = 3.0  # None disables periodic repaints

    def model_post_init(self, __context: Any) -> None:
        """Validate configuration after initialization."""
        if self.slow_interval < self.fast_interval:
            raise ValueError(
                f"slow_interval ({self.slow_interval}) must not be shorter than "
                f"fast_interval ({self.fast_interval})"
            )
        if self.max_cycles_per_burst < self.slow_after_cycles:
            raise ValueError("max_cycles_per_burst must be >= slow_after_cycles")


class RemoteConfig(BaseModel):
    """Remote-resolution channel settings."""

    request_timeout_seconds: float = 10.0
    token_lifetime_seconds: float = 55 * 60  # Tokens last an hour; refresh early
    auto_sync_after_seconds: float = 30 * 60
    post_sync_repaint_delay: float = 0.5


class EngineConfig(BaseModel):
    """Complete engine configuration."""

    keys: StoreKeys = Field(default_factory=StoreKeys)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)


def load_config(config_path: Path | str) -> EngineConfig:
    """Load engine configuration from a YAML file.

    Args:
        config_path: Path to the YAML file

    Returns:
        EngineConfig; defaults for an empty file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        data: Any = yaml.safe_load(f)

    if not data:
        return EngineConfig()

    if not isinstance(data, dict):
        raise ValueError(f"Invalid config format: expected mapping, got {type(data).__name__}")

    try:
        return EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e


def default_config_path() -> Path | None:
    """Config path from the environment, if set."""
    value = os.getenv(CONFIG_ENV_VAR)
    return Path(value) if value else None


def default_store_path() -> Path | None:
    """Store snapshot path from the environment, if set."""
    value = os.getenv(STORE_ENV_VAR)
    return Path(value) if value else None
