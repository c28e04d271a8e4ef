"""Coloring engine: wires resolution, caching and scheduling together.

One repaint cycle walks every visible item, resolves it to a task id,
resolves that task's styling and hands the result (or None) to the painter.
Items whose task is unknown to the task-to-list map trigger a debounced
remote lookup; a successful lookup invalidates the cache and repaints.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Protocol

from .cache import CacheManager, Clock
from .color_writer import ColorWriter
from .config import EngineConfig
from .fingerprint import FingerprintMap, extract_fingerprint
from .identifiers import ForeignEventResolver, IdentifierResolver
from .logger import get_logger
from .messaging import MessageChannel, MessageType, request
from .models import ItemNode, StyleResult
from .resolver import ColorContext, ColorResolver
from .scheduler import CycleResult, RepaintScheduler
from .settings import Settings, SettingsProvider, StoreSettingsProvider
from .store import DurableStore, StoreChange

logger = get_logger()


class Painter(Protocol):
    """Applies computed styles to the presentation layer."""

    def paint(self, item: ItemNode, style: StyleResult | None) -> None:
        """Style an item; None means restore the host's own rendering."""
        ...


class ItemSource(Protocol):
    """Supplies the currently rendered, addressable items."""

    def items(self) -> Sequence[ItemNode]:
        """Items carrying an event id or task id attribute, in document order."""
        ...


class ColoringEngine:
    """Task coloring overlay for one rendered calendar.

    Args:
        store: Durable two-tier store
        painter: Receives every computed style
        items: Source of rendered items
        channel: Message channel to the remote side; None disables remote lookups
        settings: Settings provider; defaults to reading the store
        config: Engine configuration
        clock: Monotonic seconds, for cache lifetimes and throttling
        wall_clock: Epoch seconds, for sync staleness
    """

    def __init__(
        self,
        store: DurableStore,
        painter: Painter,
        items: ItemSource,
        channel: MessageChannel | None = None,
        settings: SettingsProvider | None = None,
        config: EngineConfig | None = None,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
    ) -> None:
        self.config = config or EngineConfig()
        self.store = store
        self.painter = painter
        self.items = items
        self.channel = channel
        self.settings = settings or StoreSettingsProvider(store, self.config.keys)
        self.wall_clock = wall_clock

        self.cache = CacheManager(store, self.config.cache, self.config.keys, clock)
        self.writer = ColorWriter(store, self.cache)
        self.fingerprints = FingerprintMap()
        self.identifiers = IdentifierResolver(
            ForeignEventResolver(self.cache, channel, self.config.remote.request_timeout_seconds)
        )
        self.resolver = ColorResolver(self.cache, self.fingerprints)
        self.scheduler = RepaintScheduler(
            self.run_cycle,
            self.config.scheduler,
            clock,
            on_navigation=self._on_navigation,
        )

        self.references: dict[str, ItemNode] = {}
        self.resetting = False
        self.started = False
        self._unsubscribers: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        """Subscribe to changes, start periodic repaints and paint once.

        Starting an already started engine only requests a repaint.
        Must be called from within a running event loop.
        """
        if self.started:
            self.scheduler.request()
            return
        self.started = True

        self._unsubscribers.append(self.store.on_change(self._on_store_change))
        self._unsubscribers.append(self.settings.on_change(self._on_settings_change))
        self.scheduler.start()
        self.scheduler.spawn(self.maybe_auto_sync())
        self.scheduler.request()
        logger.changes("Coloring engine started")

    def teardown(self) -> None:
        """Stop all work and drop every cache and item reference."""
        self.resetting = True
        try:
            for unsubscribe in self._unsubscribers:
                unsubscribe()
            self._unsubscribers.clear()
            self.scheduler.reset()
            self.cache.teardown()
            self.fingerprints.clear()
            self.references.clear()
            self.started = False
        finally:
            self.resetting = False
        logger.changes("Coloring engine torn down")

    async def reset_colors(self) -> None:
        """Remove every manual color without repainting mid-reset, then repaint once."""
        self.resetting = True
        try:
            await asyncio.gather(*self.writer.clear_all())
            self.cache.invalidate()
        finally:
            self.resetting = False
        self.scheduler.request(immediate=True)

    # ------------------------------------------------------------------
    # Repaint cycle

    async def run_cycle(self) -> CycleResult | None:
        """Style every visible item once.

        Remembered items are processed first; no task id is processed twice
        in one cycle.

        Returns:
            Items seen, or None when every coloring feature is disabled
        """
        settings = await self.settings.get_settings()
        if not settings.any_coloring_enabled:
            return None
        list_coloring = settings.task_list_coloring.enabled

        processed: set[str] = set()
        for task_id, item in list(self.references.items()):
            if not item.connected:
                del self.references[task_id]
                continue
            self.painter.paint(item, await self.style_for(task_id, item))
            processed.add(task_id)

        visible = list(self.items.items())
        for item in visible:
            if item.in_dialog():
                continue
            task_id = await self.identifiers.resolve_item(item)
            if not task_id or task_id in processed:
                continue
            processed.add(task_id)

            style = await self.style_for(task_id, item)
            self.painter.paint(item, style)
            if style is not None:
                self.references.setdefault(task_id, item)
            elif list_coloring and task_id not in self.references:
                self.references[task_id] = item
                await self._check_new_task(task_id)

        logger.debug(f"Repaint cycle: {len(visible)} items, {len(processed)} tasks")
        return CycleResult(items=len(visible), list_coloring_enabled=list_coloring)

    async def style_for(self, task_id: str, item: ItemNode) -> StyleResult | None:
        """Resolve the styling of one rendered instance of a task."""
        context = ColorContext(
            fingerprint=extract_fingerprint(item.text),
            is_completed=item.completed,
        )
        return await self.resolver.resolve(task_id, context)

    def repaint(self, immediate: bool = False) -> None:
        """Request a repaint."""
        self.scheduler.request(immediate)

    # ------------------------------------------------------------------
    # New tasks

    async def _check_new_task(self, task_id: str) -> None:
        if self.channel is None or await self.cache.is_task_known(task_id):
            return
        self.scheduler.schedule_lookup(task_id, lambda: self.lookup_new_task(task_id))

    async def lookup_new_task(self, task_id: str) -> bool:
        """Ask the remote side which list a new task belongs to.

        Returns:
            True if a list was found and a repaint requested
        """
        settings = await self.settings.get_settings()
        if not settings.task_list_coloring.enabled or self.channel is None:
            return False

        reply = await request(
            self.channel,
            {"type": MessageType.NEW_TASK_DETECTED.value, "taskId": task_id},
            self.config.remote.request_timeout_seconds,
        )
        if not reply or not reply.get("listId"):
            return False

        logger.changes(f"New task {task_id} belongs to list {reply['listId']}")
        self.cache.invalidate()
        self.scheduler.request(immediate=True)
        return True

    # ------------------------------------------------------------------
    # Sync

    async def maybe_auto_sync(self) -> bool:
        """Ask the remote side to sync task lists when the last sync is stale.

        Returns:
            True if a sync was requested and succeeded
        """
        settings = await self.settings.get_settings()
        list_settings = settings.task_list_coloring
        if not list_settings.enabled or not list_settings.oauth_granted or self.channel is None:
            return False

        remote = self.config.remote
        last_sync = list_settings.last_sync
        age_ms = self.wall_clock() * 1000 - last_sync if last_sync else None
        if age_ms is not None and age_ms <= remote.auto_sync_after_seconds * 1000:
            return False

        reply = await request(
            self.channel,
            {"type": MessageType.SYNC_TASK_LISTS.value, "fullSync": False},
            remote.request_timeout_seconds,
        )
        if not reply:
            return False

        logger.changes("Task lists synced")

        def refresh() -> None:
            self.cache.invalidate()
            self.scheduler.request()

        self.scheduler.call_later(remote.post_sync_repaint_delay, refresh)
        return True

    # ------------------------------------------------------------------
    # Notifications

    def _on_store_change(self, change: StoreChange) -> None:
        if not self.cache.handle_store_change(change):
            return
        if not self.resetting:
            self.scheduler.request()

    def _on_settings_change(self, settings: Settings) -> None:
        if not self.resetting and settings.any_coloring_enabled:
            self.scheduler.request()

    def _on_navigation(self) -> None:
        logger.changes(f"Navigation: forgetting {len(self.references)} item references")
        self.references.clear()

    def notify_mutations(self, added_counts: Sequence[int]) -> bool:
        """Report a batch of structural changes to the rendered tree."""
        return self.scheduler.notify_mutations(added_counts)

    def notify_url_change(self) -> None:
        """Report that the host's location changed."""
        self.scheduler.notify_url_change()
