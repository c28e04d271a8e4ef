"""Manual color writes.

Every write is a read-modify-write of a whole replicated table, so writes to
the same table go through the write queue: read current, apply the mutation,
publish to the cache, write back. Two writes to one table never interleave.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from .cache import CacheManager
from .exceptions import StoreError
from .logger import get_logger
from .store import DurableStore, StoreArea
from .write_queue import WriteQueue

logger = get_logger()

Mutation = Callable[[dict[str, str]], None]


class ColorWriter:
    """Sets and clears per-instance and recurring-group manual colors.

    Each method enqueues its write immediately and returns a task that
    completes with the table as written. Write order is call order.
    """

    def __init__(
        self,
        store: DurableStore,
        cache: CacheManager,
        queue: WriteQueue | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.queue = queue or WriteQueue()

    def set_task_color(self, task_id: str, color: str) -> asyncio.Task[dict[str, str]]:
        """Set the manual color of one task instance."""

        def mutation(table: dict[str, str]) -> None:
            table[task_id] = color

        logger.changes(f"Set color of task {task_id} to {color}")
        return self._enqueue(self.cache.keys.manual_colors, mutation)

    def clear_task_color(self, task_id: str) -> asyncio.Task[dict[str, str]]:
        """Remove the manual color of one task instance."""

        def mutation(table: dict[str, str]) -> None:
            table.pop(task_id, None)

        logger.changes(f"Clear color of task {task_id}")
        return self._enqueue(self.cache.keys.manual_colors, mutation)

    def set_recurring_color(self, fingerprint: str, color: str) -> asyncio.Task[dict[str, str]]:
        """Set the manual color shared by every instance with a fingerprint."""

        def mutation(table: dict[str, str]) -> None:
            table[fingerprint] = color

        logger.changes(f"Set recurring color of '{fingerprint}' to {color}")
        return self._enqueue(self.cache.keys.recurring_colors, mutation)

    def clear_recurring_color(self, fingerprint: str) -> asyncio.Task[dict[str, str]]:
        """Remove the recurring-group color for a fingerprint."""

        def mutation(table: dict[str, str]) -> None:
            table.pop(fingerprint, None)

        logger.changes(f"Clear recurring color of '{fingerprint}'")
        return self._enqueue(self.cache.keys.recurring_colors, mutation)

    def clear_all(self) -> list[asyncio.Task[dict[str, str]]]:
        """Remove every per-instance and recurring-group manual color."""
        logger.changes("Clear all manual colors")
        keys = self.cache.keys
        return [
            self._enqueue(keys.manual_colors, dict.clear),
            self._enqueue(keys.recurring_colors, dict.clear),
        ]

    def _enqueue(self, key: str, mutation: Mutation) -> asyncio.Task[dict[str, str]]:
        async def operation() -> dict[str, str]:
            return await self._read_modify_write(key, mutation)

        return self.queue.enqueue(key, operation)

    async def _read_modify_write(self, key: str, mutation: Mutation) -> dict[str, str]:
        table = await self.cache.load_for_write(key)
        mutation(table)
        self.cache.apply_write(key, table)
        try:
            await self.store.set(StoreArea.SYNC, {key: table})
        except StoreError as e:
            # The cache already holds the new table; a later refresh reconciles
            logger.warning(f"Write of '{key}' failed: {e}")
        return table
