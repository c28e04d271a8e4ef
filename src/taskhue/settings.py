"""User settings model and provider."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import StoreKeys
from .exceptions import StoreError
from .logger import get_logger
from .models import CompletedStyling
from .store import DurableStore, StoreArea, StoreChange

logger = get_logger()


class TaskColoringSettings(BaseModel):
    """Per-instance (manual) task coloring."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True


class TaskListColoringSettings(BaseModel):
    """List-default task coloring, which needs remote list data."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True
    oauth_granted: bool = Field(default=False, alias="oauthGranted")
    last_sync: float | None = Field(default=None, alias="lastSync")  # Epoch milliseconds
    pending_text_colors: dict[str, str] = Field(default_factory=dict, alias="pendingTextColors")
    text_colors: dict[str, str] = Field(default_factory=dict, alias="textColors")
    completed_styling: dict[str, CompletedStyling] = Field(
        default_factory=dict, alias="completedStyling"
    )

    @field_validator("pending_text_colors", "text_colors", "completed_styling", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Stored nulls read as empty maps."""
        return {} if v is None else v

    def legacy_text_colors(self) -> dict[str, str]:
        """Text colors kept in settings by earlier releases."""
        return dict(self.pending_text_colors or self.text_colors)


class Settings(BaseModel):
    """Settings read by the engine (never written)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    task_coloring: TaskColoringSettings = Field(
        default_factory=TaskColoringSettings, alias="taskColoring"
    )
    task_list_coloring: TaskListColoringSettings = Field(
        default_factory=TaskListColoringSettings, alias="taskListColoring"
    )

    @property
    def any_coloring_enabled(self) -> bool:
        """Whether either coloring feature is on."""
        return self.task_coloring.enabled or self.task_list_coloring.enabled


def parse_settings(raw: Any) -> Settings:
    """Parse a stored settings object, degrading to defaults when unreadable."""
    if not raw:
        return Settings()
    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Unreadable settings, using defaults: {e.error_count()} error(s)")
        return Settings()


SettingsListener = Callable[[Settings], None]


class SettingsProvider(Protocol):
    """Source of user settings."""

    async def get_settings(self) -> Settings:
        """Current settings."""
        ...

    def on_change(self, callback: SettingsListener) -> Callable[[], None]:
        """Subscribe to settings changes; returns an unsubscribe callable."""
        ...


class StoreSettingsProvider:
    """Settings read from the replicated tier's settings table."""

    def __init__(self, store: DurableStore, keys: StoreKeys | None = None) -> None:
        self.store = store
        self.keys = keys or StoreKeys()
        self._deliveries: set[asyncio.Task[None]] = set()

    async def get_settings(self) -> Settings:
        try:
            data = await self.store.get(StoreArea.SYNC, [self.keys.settings])
        except StoreError as e:
            logger.warning(f"Settings read failed, using defaults: {e}")
            return Settings()
        return parse_settings(data.get(self.keys.settings))

    def on_change(self, callback: SettingsListener) -> Callable[[], None]:
        settings_key = self.keys.settings

        def listener(change: StoreChange) -> None:
            if change.area is not StoreArea.SYNC or settings_key not in change.keys:
                return
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("Settings changed outside an event loop; not delivered")
                return
            task = loop.create_task(self._deliver(callback))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)

        return self.store.on_change(listener)

    async def _deliver(self, callback: SettingsListener) -> None:
        callback(await self.get_settings())
