"""Resolve rendered items to stable task identifiers.

Items are addressed by one of two schemes:

- direct: ``data-eventid="tasks.<id>"`` or ``"tasks_<id>"`` embeds the task id
- indirect: ``data-eventid="ttb_<base64>"`` embeds a foreign calendar event id
  that must be resolved through the event-mapping cache or the remote side

Direct ids resolve immediately; indirect ids resolve later. Both are returned
as a ``TaskRef`` and normalized with ``await_task_id``.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, Union

from .cache import CacheManager
from .exceptions import DecodeError
from .logger import get_logger
from .messaging import MessageChannel, MessageType, request
from .models import EVENT_ID_ATTR, TASK_ID_ATTR, ItemNode

logger = get_logger()

DIRECT_PREFIXES = ("tasks.", "tasks_")
INDIRECT_PREFIX = "ttb_"

V = TypeVar("V")


# ============================================================================
# Base64 helpers
# ============================================================================


def b64_decode_text(value: str) -> str:
    """Decode base64 text, tolerating missing padding.

    Raises:
        DecodeError: If the value is not valid base64 or not UTF-8 text
    """
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Not base64 text: {value!r}") from e


def b64_encode_text(value: str) -> str:
    """Encode text as base64.

    Raises:
        DecodeError: If the text has characters outside Latin-1
    """
    try:
        return base64.b64encode(value.encode("latin-1")).decode("ascii")
    except UnicodeEncodeError as e:
        raise DecodeError(f"Cannot base64-encode {value!r}") from e


def lookup_with_base64_fallback(table: Mapping[str, V] | None, key: str | None) -> V | None:
    """Look a key up directly, then as its decoded form, then as its encoded form.

    Producers store task ids either raw or base64-encoded, so both spellings
    address the same entry.
    """
    if not table or not key:
        return None

    if table.get(key):
        return table[key]

    try:
        decoded = b64_decode_text(key)
    except DecodeError:
        decoded = None
    if decoded and decoded != key and table.get(decoded):
        return table[decoded]

    try:
        encoded = b64_encode_text(key)
    except DecodeError:
        encoded = None
    if encoded and encoded != key and table.get(encoded):
        return table[encoded]

    return None


def decode_indirect_id(raw: str | None) -> str | None:
    """Decode an indirect identifier to its foreign event id.

    Args:
        raw: ``"ttb_" + base64("<event id> <owner>")``

    Returns:
        The event id, or None for anything malformed
    """
    if not raw or not raw.startswith(INDIRECT_PREFIX):
        return None
    try:
        decoded = b64_decode_text(raw[len(INDIRECT_PREFIX) :])
    except DecodeError as e:
        logger.warning(f"Failed to decode indirect id {raw!r}: {e}")
        return None
    return decoded.split(" ", 1)[0] or None


def strip_direct_prefix(raw: str | None) -> str | None:
    """Task id embedded in a direct identifier, if it is one."""
    if not raw:
        return None
    for prefix in DIRECT_PREFIXES:
        if raw.startswith(prefix):
            return raw[len(prefix) :] or None
    return None


# ============================================================================
# Resolved | Pending
# ============================================================================


@dataclass(frozen=True)
class Resolved:
    """A task id known immediately."""

    task_id: str


@dataclass(frozen=True)
class Pending:
    """A task id that needs an asynchronous lookup."""

    lookup: Awaitable[str | None]


TaskRef = Union[Resolved, Pending, None]


async def await_task_id(ref: TaskRef) -> str | None:
    """Normalize any TaskRef to a task id (or None)."""
    if ref is None:
        return None
    if isinstance(ref, Resolved):
        return ref.task_id
    return await ref.lookup


# ============================================================================
# Resolution
# ============================================================================


class ForeignEventResolver:
    """Resolve foreign calendar event ids to task fragments.

    The device-local mapping is consulted first; on a miss the remote side is
    asked over the message channel. Every failure is reported as None.
    """

    def __init__(
        self,
        cache: CacheManager,
        channel: MessageChannel | None,
        timeout: float | None = None,
    ) -> None:
        self.cache = cache
        self.channel = channel
        self.timeout = timeout

    async def resolve(self, event_id: str) -> str | None:
        cached = await self.cache.lookup_event(event_id)
        if cached:
            return cached
        if self.channel is None:
            return None

        reply = await request(
            self.channel,
            {"type": MessageType.RESOLVE_CALENDAR_EVENT.value, "calendarEventId": event_id},
            self.timeout,
        )
        fragment: Any = reply.get("taskFragment") if reply else None
        if not isinstance(fragment, str) or not fragment:
            return None

        self.cache.remember_event(event_id, fragment)
        logger.changes(f"Resolved event {event_id} to task {fragment}")
        return fragment


class IdentifierResolver:
    """Map rendered items to task ids."""

    def __init__(self, events: ForeignEventResolver) -> None:
        self.events = events

    def resolve_task_id(self, item: ItemNode) -> TaskRef:
        """Resolve an item without waiting.

        Checks the item itself, then its ancestors up to the root boundary,
        for a direct id, an indirect id, then an explicit task id attribute.
        Items inside a dialog are never resolved.
        """
        if item.in_dialog():
            return None

        for node in item.lineage():
            ref = self._resolve_node(node)
            if ref is not None:
                return ref
        return None

    async def resolve_item(self, item: ItemNode) -> str | None:
        """Resolve an item, waiting for a remote lookup if one is needed."""
        return await await_task_id(self.resolve_task_id(item))

    def _resolve_node(self, node: ItemNode) -> TaskRef:
        event_id_attr = node.get(EVENT_ID_ATTR)

        task_id = strip_direct_prefix(event_id_attr)
        if task_id:
            return Resolved(task_id)

        if event_id_attr and event_id_attr.startswith(INDIRECT_PREFIX):
            event_id = decode_indirect_id(event_id_attr)
            if event_id:
                return Pending(self.events.resolve(event_id))

        explicit = node.get(TASK_ID_ATTR)
        if explicit:
            return Resolved(explicit)
        return None
