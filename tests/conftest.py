"""Pytest configuration and fixtures for taskhue tests."""

from __future__ import annotations

import base64
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import pytest

from taskhue.config import SchedulerConfig
from taskhue.exceptions import StoreError
from taskhue.logger import reset_logger
from taskhue.models import EVENT_ID_ATTR, TASK_ID_ATTR, ItemNode, StyleResult
from taskhue.store import MemoryStore, StoreArea, Table


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingStore(MemoryStore):
    """Memory store that records every read and write."""

    def __init__(self, data: dict[StoreArea, Table] | None = None, **kwargs: Any) -> None:
        super().__init__(data, **kwargs)
        self.reads: list[tuple[StoreArea, tuple[str, ...]]] = []
        self.writes: list[tuple[StoreArea, Table]] = []

    async def get(self, area: StoreArea, keys: Iterable[str]) -> Table:
        keys = tuple(keys)
        self.reads.append((area, keys))
        return await super().get(area, keys)

    async def set(self, area: StoreArea, values: Table) -> None:
        self.writes.append((area, values))
        await super().set(area, values)


class FailingStore(CountingStore):
    """Store whose reads and/or writes raise StoreError on demand."""

    def __init__(self, *args: Any, fail_reads: bool = False, fail_writes: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def get(self, area: StoreArea, keys: Iterable[str]) -> Table:
        if self.fail_reads:
            raise StoreError("read failed")
        return await super().get(area, keys)

    async def set(self, area: StoreArea, values: Table) -> None:
        if self.fail_writes:
            raise StoreError("write failed")
        await super().set(area, values)


class FakeChannel:
    """Scripted message channel.

    ``replies`` maps a message type to a reply dict, an exception instance to
    raise, or a callable taking the message.
    """

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies = replies or {}
        self.sent: list[dict[str, Any]] = []

    async def send(self, message: dict[str, Any]) -> dict[str, Any] | None:
        self.sent.append(message)
        reply = self.replies.get(message["type"])
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(message)
        return reply

    def sent_of(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == message_type]


class RecordingPainter:
    """Painter that records every style it receives."""

    def __init__(self) -> None:
        self.painted: list[tuple[ItemNode, StyleResult | None]] = []

    def paint(self, item: ItemNode, style: StyleResult | None) -> None:
        self.painted.append((item, style))

    def styles_for(self, item: ItemNode) -> list[StyleResult | None]:
        return [style for painted, style in self.painted if painted is item]


class ListItemSource:
    """Item source backed by a plain list."""

    def __init__(self, nodes: Sequence[ItemNode] = ()) -> None:
        self.nodes = list(nodes)

    def items(self) -> Sequence[ItemNode]:
        return list(self.nodes)


def b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


def make_item(
    event_id: str | None = None,
    *,
    task_id: str | None = None,
    text: str = "",
    completed: bool = False,
    parent: ItemNode | None = None,
    role: str | None = None,
) -> ItemNode:
    attributes = {}
    if event_id is not None:
        attributes[EVENT_ID_ATTR] = event_id
    if task_id is not None:
        attributes[TASK_ID_ATTR] = task_id
    return ItemNode(
        attributes=attributes, parent=parent, role=role, text=text, completed=completed
    )


@pytest.fixture(autouse=True)
def _clean_logger() -> Iterable[None]:
    """Keep logger configuration from leaking between tests."""
    yield
    reset_logger()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_scheduler_config() -> SchedulerConfig:
    """Scheduler timings shrunk to milliseconds."""
    return SchedulerConfig(
        fast_interval=0.0,
        slow_interval=0.0,
        frame_delay=0.0,
        retry_delay=0.001,
        max_retries=3,
        lookup_debounce_seconds=0.01,
        mutation_debounce_seconds=0.001,
        navigation_repaint_delays=[0.001, 0.002],
        navigation_settle_seconds=0.02,
        url_change_repaint_delays=[0.001],
        burst_reset_seconds=0.05,
        periodic_interval_seconds=None,
    )


@pytest.fixture
def item_factory() -> Callable[..., ItemNode]:
    return make_item
