"""Repaint scheduling.

The host renders asynchronously and repaints often, so repaint cycles are
requested from many places (store changes, structural changes, navigation,
timers) and must be coalesced and throttled:

- Regular requests coalesce: while one is queued, more are no-ops.
  Immediate requests bypass both coalescing and throttling.
- Within a burst, cycles are spaced by a fast interval, then by a slow
  interval once a few have run; past a cap, regular requests are dropped
  until the burst resets a moment after the last cycle.
- A cycle that finds nothing to style while list coloring is on is retried
  a bounded number of times, since the host may not have rendered yet.
- New-item lookups are debounced per task id.
- Bursts of large structural changes are treated as navigation.

Cycles never overlap. Everything runs on one event loop.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import SchedulerConfig
from .logger import get_logger

logger = get_logger()

Clock = Callable[[], float]


class CycleState(str, Enum):
    """Where the repaint pipeline is."""

    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"


@dataclass(frozen=True)
class CycleResult:
    """What a repaint cycle observed."""

    items: int  # Addressable items found
    list_coloring_enabled: bool = False


CycleFunction = Callable[[], Awaitable[CycleResult | None]]


class RepaintScheduler:
    """Decides when repaint cycles run.

    Args:
        run_cycle: Coroutine function performing one full cycle; returns None
            when the cycle was skipped (e.g. every feature disabled)
        config: Timing configuration
        clock: Monotonic seconds, injectable for tests
        on_navigation: Called once when a navigation is detected
    """

    def __init__(
        self,
        run_cycle: CycleFunction,
        config: SchedulerConfig | None = None,
        clock: Clock = time.monotonic,
        on_navigation: Callable[[], None] | None = None,
    ) -> None:
        self._cycle = run_cycle
        self.config = config or SchedulerConfig()
        self.clock = clock
        self.on_navigation = on_navigation

        self._lock = asyncio.Lock()
        self._queued = False
        self._running = 0
        self._burst_cycles = 0
        self._last_cycle_at: float | None = None
        self._retry_count = 0

        self._tasks: set[asyncio.Task[Any]] = set()
        self._burst_reset: asyncio.TimerHandle | None = None
        self._periodic: asyncio.Task[None] | None = None

        self._lookup_timers: dict[str, asyncio.Task[None]] = {}
        self._lookups_in_flight: set[str] = set()

        self._mutation_batches = 0
        self._mutation_timer: asyncio.Task[None] | None = None
        self._settle_timer: asyncio.TimerHandle | None = None
        self.navigating = False

    # ------------------------------------------------------------------
    # State

    @property
    def state(self) -> CycleState:
        if self._queued:
            return CycleState.QUEUED
        if self._running:
            return CycleState.RUNNING
        return CycleState.IDLE

    @property
    def burst_cycles(self) -> int:
        return self._burst_cycles

    @property
    def retry_count(self) -> int:
        return self._retry_count

    # ------------------------------------------------------------------
    # Requests

    def request(self, immediate: bool = False) -> asyncio.Task[Any] | None:
        """Request a repaint.

        Args:
            immediate: Run now, bypassing coalescing and throttling

        Returns:
            The task that will run the cycle, or None when coalesced into an
            already queued request
        """
        if immediate:
            return self.spawn(self.run_cycle(bypass_throttle=True))
        if self._queued:
            return None
        self._queued = True
        return self.spawn(self._run_queued())

    async def _run_queued(self) -> None:
        try:
            await asyncio.sleep(self.config.frame_delay)
        finally:
            self._queued = False
        await self.run_cycle(bypass_throttle=False)

    async def run_cycle(self, bypass_throttle: bool = False) -> CycleResult | None:
        """Run one cycle now, subject to throttling unless bypassed.

        Returns:
            The cycle's result, or None when throttled, dropped or skipped
        """
        async with self._lock:
            if not bypass_throttle and not self._admit():
                return None

            self._burst_cycles += 1
            self._last_cycle_at = self.clock()
            self._running += 1
            try:
                result = await self._cycle()
            finally:
                self._running -= 1
                self._schedule_burst_reset()

        self._after_cycle(result)
        return result

    def _admit(self) -> bool:
        cfg = self.config
        if self._burst_cycles >= cfg.max_cycles_per_burst:
            logger.debug(f"Repaint dropped: {self._burst_cycles} cycles in this burst")
            return False
        if self._last_cycle_at is not None:
            interval = (
                cfg.slow_interval if self._burst_cycles >= cfg.slow_after_cycles else cfg.fast_interval
            )
            if self.clock() - self._last_cycle_at < interval:
                logger.debug("Repaint throttled")
                return False
        return True

    def _after_cycle(self, result: CycleResult | None) -> None:
        if result is None:
            return
        if result.items > 0:
            self._retry_count = 0
            return
        if not result.list_coloring_enabled:
            return
        if self._retry_count >= self.config.max_retries:
            logger.debug("No items after every retry; giving up")
            return
        self._retry_count += 1
        logger.debug(f"No items yet, retry {self._retry_count}/{self.config.max_retries}")
        self.call_later(self.config.retry_delay, lambda: self.run_cycle(bypass_throttle=True))

    def _schedule_burst_reset(self) -> None:
        if self._burst_reset is not None:
            self._burst_reset.cancel()
        self._burst_reset = asyncio.get_running_loop().call_later(
            self.config.burst_reset_seconds, self._reset_burst
        )

    def _reset_burst(self) -> None:
        self._burst_reset = None
        self._burst_cycles = 0

    # ------------------------------------------------------------------
    # New-item lookups

    def schedule_lookup(self, task_id: str, lookup: Callable[[], Awaitable[Any]]) -> bool:
        """Run a lookup for a task id once requests for it go quiet.

        A later request for the same id restarts the quiet period. Requests
        arriving while that id's lookup is in flight are ignored.

        Returns:
            False if the request was ignored
        """
        if task_id in self._lookups_in_flight:
            return False
        timer = self._lookup_timers.pop(task_id, None)
        if timer is not None:
            timer.cancel()

        async def fire() -> None:
            await asyncio.sleep(self.config.lookup_debounce_seconds)
            self._lookup_timers.pop(task_id, None)
            self._lookups_in_flight.add(task_id)
            try:
                await lookup()
            finally:
                self._lookups_in_flight.discard(task_id)

        self._lookup_timers[task_id] = self.spawn(fire())
        return True

    def lookup_pending(self, task_id: str) -> bool:
        """Whether a lookup for the id is waiting or in flight."""
        return task_id in self._lookup_timers or task_id in self._lookups_in_flight

    # ------------------------------------------------------------------
    # Structural changes

    def notify_mutations(self, added_counts: Sequence[int]) -> bool:
        """Report one batch of structural changes.

        Args:
            added_counts: Nodes added by each change in the batch

        Returns:
            True if the batch started a navigation
        """
        cfg = self.config
        self._mutation_batches += 1
        large = any(count > cfg.large_batch_nodes for count in added_counts)
        likely_navigation = self._mutation_batches > cfg.navigation_batch_threshold or large

        if likely_navigation and not self.navigating:
            self.navigating = True
            logger.changes("Navigation detected")
            if self.on_navigation is not None:
                self.on_navigation()
            self.request()
            for delay in cfg.navigation_repaint_delays:
                self.call_later(delay, self.request)
            self._settle_timer = asyncio.get_running_loop().call_later(
                cfg.navigation_settle_seconds, self._settle
            )
            return True

        if not self.navigating:
            if self._mutation_timer is not None:
                self._mutation_timer.cancel()
            self._mutation_timer = self.call_later(cfg.mutation_debounce_seconds, self.request)
        return False

    def _settle(self) -> None:
        self._settle_timer = None
        self.navigating = False
        self._mutation_batches = 0

    def notify_url_change(self) -> None:
        """Report that the host's location changed."""
        self.request()
        for delay in self.config.url_change_repaint_delays:
            self.call_later(delay, self.request)

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        """Start periodic repaints, if configured."""
        interval = self.config.periodic_interval_seconds
        if interval is None or self._periodic is not None:
            return

        async def periodic() -> None:
            while True:
                await asyncio.sleep(interval)
                self.request()

        self._periodic = self.spawn(periodic())

    def reset(self) -> None:
        """Cancel every timer, retry and pending lookup and forget all state."""
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()
        for handle in (self._burst_reset, self._settle_timer):
            if handle is not None:
                handle.cancel()

        self._burst_reset = None
        self._settle_timer = None
        self._periodic = None
        self._mutation_timer = None
        self._lookup_timers.clear()
        self._lookups_in_flight.clear()
        self._queued = False
        self._burst_cycles = 0
        self._last_cycle_at = None
        self._retry_count = 0
        self._mutation_batches = 0
        self.navigating = False

    async def wait_idle(self) -> None:
        """Wait for every spawned task except periodic repaints to finish."""
        while True:
            pending = [t for t in self._tasks if t is not self._periodic and not t.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    # ------------------------------------------------------------------
    # Tasks

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run a coroutine as a task that ``reset`` cancels."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def call_later(self, delay: float, action: Callable[[], Any]) -> asyncio.Task[None]:
        """Run an action (plain or coroutine function) after a delay."""

        async def fire() -> None:
            await asyncio.sleep(delay)
            result = action()
            if asyncio.iscoroutine(result):
                await result

        return self.spawn(fire())
