"""Per-resource write serialization.

Each logical resource (a durable table) has a chain of pending operations.
An enqueued operation starts only after every operation enqueued before it
for the same resource has finished, successfully or not. Resources are
independent of each other.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .logger import get_logger

logger = get_logger()

T = TypeVar("T")


class WriteQueue:
    """FIFO single-writer queue keyed by resource name."""

    def __init__(self) -> None:
        self._tails: dict[str, asyncio.Future[Any]] = {}

    def enqueue(self, resource: str, operation: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Append an operation to the resource's chain.

        Ordering is fixed at call time, not when the returned task first runs.
        Must be called from within a running event loop.

        Args:
            resource: Logical resource name
            operation: Zero-argument coroutine function performing the write

        Returns:
            Task completing with the operation's result. A failure is raised
            to this task's awaiter only; later operations still run.
        """
        previous = self._tails.get(resource)
        task = asyncio.get_running_loop().create_task(self._run_after(previous, operation))
        self._tails[resource] = task
        task.add_done_callback(lambda done: self._release(resource, done))
        return task

    async def run(self, resource: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Enqueue an operation and wait for it to complete."""
        return await self.enqueue(resource, operation)

    def is_busy(self, resource: str) -> bool:
        """Whether any operation is pending for the resource."""
        return resource in self._tails

    async def drain(self, resource: str) -> None:
        """Wait until everything enqueued so far for the resource has finished."""
        tail = self._tails.get(resource)
        if tail is not None:
            await asyncio.wait([tail])

    @staticmethod
    async def _run_after(
        previous: asyncio.Future[Any] | None, operation: Callable[[], Awaitable[T]]
    ) -> T:
        if previous is not None and not previous.done():
            # asyncio.wait never raises the awaited task's exception
            await asyncio.wait([previous])
        return await operation()

    def _release(self, resource: str, done: asyncio.Future[Any]) -> None:
        if self._tails.get(resource) is done:
            del self._tails[resource]
        if not done.cancelled() and done.exception() is not None:
            logger.debug(f"Write on '{resource}' failed: {done.exception()!r}")
