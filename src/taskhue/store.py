"""Durable key-value store interface and implementations.

The store has two tiers: a small-quota replicated tier holding user color
preferences, and a larger device-local tier holding task-to-list mappings.
Writes fire change notifications naming the tier and the keys touched.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, cast

import yaml

from .exceptions import QuotaExceededError, StoreError
from .logger import get_logger

logger = get_logger()

# Per-item byte quota of the replicated tier
SYNC_QUOTA_BYTES_PER_ITEM = 8192

Table = dict[str, Any]


class StoreArea(str, Enum):
    """Storage tier."""

    SYNC = "sync"  # Replicated across devices, small quota
    LOCAL = "local"  # Device-local, larger quota


@dataclass(frozen=True)
class StoreChange:
    """A change notification: which keys of which tier were written."""

    area: StoreArea
    keys: frozenset[str]


ChangeListener = Callable[[StoreChange], None]


class DurableStore(Protocol):
    """Interface of the platform key-value store."""

    async def get(self, area: StoreArea, keys: Iterable[str]) -> Table:
        """Read keys from a tier; absent keys are omitted from the result."""
        ...

    async def set(self, area: StoreArea, values: Table) -> None:
        """Write keys to a tier."""
        ...

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to change notifications; returns an unsubscribe callable."""
        ...


def _item_size(key: str, value: Any) -> int:
    return len(key) + len(json.dumps(value, separators=(",", ":")))


class MemoryStore:
    """In-process two-tier store.

    Values are deep-copied on the way in and out, so callers never share
    mutable state with the store.
    """

    def __init__(
        self,
        data: dict[StoreArea, Table] | None = None,
        *,
        sync_quota_bytes_per_item: int | None = SYNC_QUOTA_BYTES_PER_ITEM,
    ) -> None:
        self._data: dict[StoreArea, Table] = {area: {} for area in StoreArea}
        for area, values in (data or {}).items():
            self._data[StoreArea(area)].update(copy.deepcopy(values))
        self.sync_quota_bytes_per_item = sync_quota_bytes_per_item
        self._listeners: list[ChangeListener] = []

    async def get(self, area: StoreArea, keys: Iterable[str]) -> Table:
        tier = self._data[area]
        return {key: copy.deepcopy(tier[key]) for key in keys if key in tier}

    async def set(self, area: StoreArea, values: Table) -> None:
        if area is StoreArea.SYNC and self.sync_quota_bytes_per_item is not None:
            for key, value in values.items():
                size = _item_size(key, value)
                if size > self.sync_quota_bytes_per_item:
                    raise QuotaExceededError(
                        f"Item '{key}' is {size} bytes, quota is "
                        f"{self.sync_quota_bytes_per_item} bytes"
                    )
        self._data[area].update(copy.deepcopy(values))
        self._persist()
        self._notify(StoreChange(area=area, keys=frozenset(values)))

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> dict[str, Table]:
        """Copy of all data keyed by tier name."""
        return {area.value: copy.deepcopy(values) for area, values in self._data.items()}

    def _persist(self) -> None:
        """Hook for subclasses that keep a durable copy."""

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            listener(change)


class YamlFileStore(MemoryStore):
    """Two-tier store persisted to a YAML file.

    File layout::

        sync:
          taskColors: {...}
        local:
          taskToListMap: {...}
    """

    def __init__(
        self,
        path: Path | str,
        *,
        sync_quota_bytes_per_item: int | None = SYNC_QUOTA_BYTES_PER_ITEM,
    ) -> None:
        self.path = Path(path)
        super().__init__(
            read_store_file(self.path) if self.path.exists() else None,
            sync_quota_bytes_per_item=sync_quota_bytes_per_item,
        )

    def _persist(self) -> None:
        try:
            with self.path.open("w") as f:
                yaml.safe_dump(self.snapshot(), f, default_flow_style=False, sort_keys=True)
        except OSError as e:
            raise StoreError(f"Failed to write store file {self.path}: {e}") from e


def read_store_file(path: Path) -> dict[StoreArea, Table]:
    """Load a YAML store snapshot.

    Raises:
        StoreError: If the file cannot be read or has the wrong shape
    """
    try:
        with path.open() as f:
            raw_data: Any = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise StoreError(f"Failed to read store file {path}: {e}") from e

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise StoreError(f"Invalid store file format: expected dict, got {type(raw_data)}")

    data = cast(dict[str, Any], raw_data)
    result: dict[StoreArea, Table] = {}
    for name, values in data.items():
        try:
            area = StoreArea(name)
        except ValueError:
            logger.warning(f"Ignoring unknown store tier '{name}' in {path}")
            continue
        if not isinstance(values, dict):
            raise StoreError(f"Store tier '{name}' must be a dict")
        result[area] = cast(Table, values)
    return result
