"""In-memory mirror of the durable color tables.

The durable store is ground truth. The mirror only shortens read latency:
every table has a TTL after which it is refetched, and store-change
notifications invalidate it early. Writers update the mirror immediately
after a read-modify-write so readers see their own writes.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .config import CacheConfig, StoreKeys
from .exceptions import StoreError
from .logger import get_logger
from .models import CompletedStyling
from .settings import Settings, parse_settings
from .store import DurableStore, StoreArea, StoreChange, Table

logger = get_logger()

Clock = Callable[[], float]


@dataclass
class ColorTables:
    """Snapshot of every table the resolver reads."""

    task_to_list: dict[str, str] = field(default_factory=dict)
    list_colors: dict[str, str] = field(default_factory=dict)
    list_text_colors: dict[str, str] = field(default_factory=dict)
    completed_styling: dict[str, CompletedStyling] = field(default_factory=dict)
    manual_colors: dict[str, str] = field(default_factory=dict)
    recurring_colors: dict[str, str] = field(default_factory=dict)
    settings: Settings = field(default_factory=Settings)


def _as_table(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _as_str_table(value: Any) -> dict[str, str]:
    return {str(k): v for k, v in _as_table(value).items() if isinstance(v, str) and v}


class CacheManager:
    """TTL-bounded mirror of the durable tables.

    The color tables are refreshed together in one fan-out of parallel reads.
    The foreign-event mapping and the writers' copy of the manual-color table
    have their own lifetimes.
    """

    def __init__(
        self,
        store: DurableStore,
        config: CacheConfig | None = None,
        keys: StoreKeys | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.store = store
        self.config = config or CacheConfig()
        self.keys = keys or StoreKeys()
        self.clock = clock

        self._tables: ColorTables | None = None
        self._refreshed_at: float | None = None
        self._inflight: asyncio.Task[ColorTables] | None = None
        self._generation = 0  # Bumped on invalidation and writes; stale fetches are discarded

        self._event_mapping: dict[str, dict[str, Any]] | None = None
        self._event_mapping_at: float | None = None

        self._writer_tables: dict[str, dict[str, str]] = {}
        self._writer_tables_at: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Color tables

    def _fresh(self, stamp: float | None, ttl: float) -> bool:
        return stamp is not None and self.clock() - stamp < ttl

    async def refresh(self) -> ColorTables:
        """Return the color tables, reading the store only when stale.

        Concurrent callers during a refetch share a single read.
        """
        if self._tables is not None and self._fresh(self._refreshed_at, self.config.ttl_seconds):
            return self._tables

        if self._inflight is None:
            self._inflight = asyncio.get_running_loop().create_task(
                self._fetch_tables(self._generation)
            )
        inflight = self._inflight
        try:
            return await asyncio.shield(inflight)
        finally:
            if self._inflight is inflight and inflight.done():
                self._inflight = None

    async def _fetch_tables(self, generation: int) -> ColorTables:
        keys = self.keys
        started = self.clock()
        try:
            local_data, sync_data = await asyncio.gather(
                self.store.get(StoreArea.LOCAL, [keys.task_to_list]),
                self.store.get(StoreArea.SYNC, keys.replicated()),
            )
        except StoreError as e:
            # Degrade to "no colors"; the next call tries again
            logger.warning(f"Color table read failed: {e}")
            return ColorTables()

        settings = parse_settings(sync_data.get(keys.settings))
        list_settings = settings.task_list_coloring
        tables = ColorTables(
            task_to_list=_as_str_table(local_data.get(keys.task_to_list)),
            list_colors=_as_str_table(sync_data.get(keys.list_colors)),
            list_text_colors={
                **list_settings.legacy_text_colors(),
                **_as_str_table(sync_data.get(keys.list_text_colors)),
            },
            completed_styling=dict(list_settings.completed_styling),
            manual_colors=_as_str_table(sync_data.get(keys.manual_colors)),
            recurring_colors=_as_str_table(sync_data.get(keys.recurring_colors)),
            settings=settings,
        )

        if generation == self._generation:
            self._tables = tables
            self._refreshed_at = started
        logger.debug(
            f"Refreshed color tables: {len(tables.task_to_list)} mapped tasks, "
            f"{len(tables.manual_colors)} manual colors"
        )
        return tables

    def invalidate(self) -> None:
        """Drop every mirrored table, forcing the next read to hit the store."""
        self._tables = None
        self._refreshed_at = None
        self._inflight = None
        self._generation += 1
        self._writer_tables.clear()
        self._writer_tables_at.clear()
        self.invalidate_event_mapping()
        logger.changes("Color cache invalidated")

    def teardown(self) -> None:
        """Release all mirrored state."""
        self.invalidate()

    def watched_keys(self) -> dict[StoreArea, frozenset[str]]:
        """Keys whose changes invalidate the mirror."""
        return {
            StoreArea.SYNC: frozenset(self.keys.replicated()),
            StoreArea.LOCAL: frozenset(self.keys.local()),
        }

    def handle_store_change(self, change: StoreChange) -> bool:
        """Invalidate on a change to any watched key.

        Returns:
            True if the change touched a watched key
        """
        if not change.keys & self.watched_keys()[change.area]:
            return False
        self.invalidate()
        return True

    async def is_task_known(self, task_id: str) -> bool:
        """Whether the authoritative task-to-list map has the task."""
        return task_id in (await self.refresh()).task_to_list

    # ------------------------------------------------------------------
    # Foreign-event mapping (device-local tier)

    async def refresh_event_mapping(self) -> dict[str, dict[str, Any]]:
        """Return the foreign-event-id mapping, reading the store only when stale."""
        if self._event_mapping is not None and self._fresh(
            self._event_mapping_at, self.config.event_mapping_ttl_seconds
        ):
            return self._event_mapping

        now = self.clock()
        try:
            data = await self.store.get(StoreArea.LOCAL, [self.keys.event_mapping])
        except StoreError as e:
            logger.warning(f"Event mapping read failed: {e}")
            return {}

        raw = _as_table(data.get(self.keys.event_mapping))
        self._event_mapping = {k: v for k, v in raw.items() if isinstance(v, dict)}
        self._event_mapping_at = now
        return self._event_mapping

    async def lookup_event(self, event_id: str) -> str | None:
        """Cached task fragment for a foreign event id."""
        entry = (await self.refresh_event_mapping()).get(event_id)
        if not entry:
            return None
        fragment = entry.get("taskFragment") or entry.get("taskApiId")
        return fragment if isinstance(fragment, str) and fragment else None

    def remember_event(self, event_id: str, task_fragment: str) -> None:
        """Record a remote resolution in the mirror (not the store)."""
        if self._event_mapping is None:
            return
        self._event_mapping[event_id] = {
            "taskApiId": task_fragment,
            "taskFragment": task_fragment,
        }

    def invalidate_event_mapping(self) -> None:
        """Drop the foreign-event mapping mirror."""
        self._event_mapping = None
        self._event_mapping_at = None

    # ------------------------------------------------------------------
    # Writers' copies

    async def load_for_write(self, key: str) -> dict[str, str]:
        """Current contents of a replicated color table for read-modify-write.

        Uses a short-lived copy so back-to-back writes avoid a store read.
        A failed read yields an empty table.
        """
        cached = self._writer_tables.get(key)
        if cached is not None and self._fresh(
            self._writer_tables_at.get(key), self.config.manual_colors_ttl_seconds
        ):
            return dict(cached)

        now = self.clock()
        try:
            data = await self.store.get(StoreArea.SYNC, [key])
        except StoreError as e:
            logger.warning(f"Read of '{key}' for write failed: {e}")
            data = {}
        table = _as_str_table(data.get(key))
        self._writer_tables[key] = table
        self._writer_tables_at[key] = now
        return dict(table)

    def apply_write(self, key: str, table: Table) -> None:
        """Publish a writer's result to every mirror holding that table.

        A fetch still in flight read the store before this write, so its
        result is discarded.
        """
        self._writer_tables[key] = dict(table)
        self._writer_tables_at[key] = self.clock()
        self._generation += 1
        self._inflight = None
        if self._tables is None:
            return
        if key == self.keys.manual_colors:
            self._tables.manual_colors = dict(table)
        elif key == self.keys.recurring_colors:
            self._tables.recurring_colors = dict(table)
