"""Remote side of the message channel.

Answers the engine's requests using injected transports: an event fetcher
for the calendar API, a task-list finder and a list syncer for the tasks
API. Every API call needs an access token; ``TokenManager`` makes sure only
one acquisition is ever in flight.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from .cache import Clock
from .config import StoreKeys
from .exceptions import AuthError, TaskhueError
from .identifiers import b64_encode_text, lookup_with_base64_fallback
from .logger import get_logger
from .messaging import LocalChannel, Message, MessageType
from .store import DurableStore, StoreArea

logger = get_logger()

TASK_LINK_PATTERN = re.compile(r"tasks\.google\.com/task/([A-Za-z0-9_-]+)")

TokenAcquirer = Callable[[], Awaitable[str | None]]
EventFetcher = Callable[[str, str], Awaitable[dict[str, Any] | None]]
ListFinder = Callable[[str, str], Awaitable[str | None]]
ListSyncer = Callable[[str, bool], Awaitable[dict[str, str]]]


class TokenManager:
    """Caches an access token and serializes its acquisition.

    Concurrent callers that find no valid token share one acquisition: the
    first takes the lock and acquires, the rest wait and reuse its result.
    """

    def __init__(
        self,
        acquire: TokenAcquirer,
        lifetime_seconds: float = 55 * 60,
        clock: Clock = time.monotonic,
    ) -> None:
        self._acquire = acquire
        self.lifetime_seconds = lifetime_seconds
        self.clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _cached(self) -> str | None:
        if self._token is not None and self.clock() < self._expires_at:
            return self._token
        return None

    async def get_token(self) -> str:
        """Return a valid token, acquiring one if needed.

        Raises:
            AuthError: If no token could be acquired
        """
        cached = self._cached()
        if cached is not None:
            return cached

        async with self._lock:
            # Another caller may have refreshed while we waited
            cached = self._cached()
            if cached is not None:
                return cached

            try:
                token = await self._acquire()
            except AuthError:
                raise
            except Exception as e:
                raise AuthError(f"Token acquisition failed: {e}") from e
            if not token:
                raise AuthError("Access not granted")

            self._token = token
            self._expires_at = self.clock() + self.lifetime_seconds
            logger.changes("Access token acquired")
            return token

    def clear(self) -> None:
        """Forget the cached token."""
        self._token = None
        self._expires_at = 0.0


def extract_task_fragment(description: str | None) -> str | None:
    """Task fragment from the task link in a calendar event description."""
    if not description:
        return None
    match = TASK_LINK_PATTERN.search(description)
    return match.group(1) if match else None


def _error(message: str) -> Message:
    return {"success": False, "error": message}


class CalendarEventService:
    """Handlers for the engine's remote requests.

    Args:
        store: Durable store holding the device-local mappings
        tokens: Access token source
        fetch_event: ``(event_id, token)`` -> calendar event dict, or None
        find_task_list: ``(task_id, token)`` -> list id, or None
        sync_lists: ``(token, full_sync)`` -> task id to list id map
        keys: Durable table names
        wall_clock: Epoch seconds, for sync and verification stamps
    """

    def __init__(
        self,
        store: DurableStore,
        tokens: TokenManager,
        fetch_event: EventFetcher,
        find_task_list: ListFinder | None = None,
        sync_lists: ListSyncer | None = None,
        keys: StoreKeys | None = None,
        wall_clock: Clock = time.time,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.fetch_event = fetch_event
        self.find_task_list = find_task_list
        self.sync_lists = sync_lists
        self.keys = keys or StoreKeys()
        self.wall_clock = wall_clock

    def register(self, channel: LocalChannel) -> None:
        """Register every available handler on a channel."""
        channel.register(MessageType.RESOLVE_CALENDAR_EVENT, self.handle_resolve)
        channel.register(MessageType.NEW_TASK_DETECTED, self.handle_new_task)
        if self.sync_lists is not None:
            channel.register(MessageType.SYNC_TASK_LISTS, self.handle_sync)

    async def _local_table(self, key: str) -> dict[str, Any]:
        data = await self.store.get(StoreArea.LOCAL, [key])
        table = data.get(key)
        return dict(table) if isinstance(table, dict) else {}

    async def handle_resolve(self, message: Message) -> Message:
        """Resolve a calendar event id to a task fragment."""
        event_id = message.get("calendarEventId")
        if not event_id:
            return _error("No calendar event ID provided")

        try:
            mapping = await self._local_table(self.keys.event_mapping)
            cached = mapping.get(event_id)
            if isinstance(cached, dict) and cached.get("taskFragment"):
                return {
                    "success": True,
                    "taskApiId": cached.get("taskApiId"),
                    "taskFragment": cached["taskFragment"],
                }

            token = await self.tokens.get_token()
            event = await self.fetch_event(event_id, token)
            fragment = extract_task_fragment((event or {}).get("description"))
            if not fragment:
                logger.warning(f"No task link in calendar event {event_id}")
                return _error("Could not resolve calendar event to task ID")

            task_api_id = b64_encode_text(fragment)
            mapping[event_id] = {
                "taskApiId": task_api_id,
                "taskFragment": fragment,
                "lastVerified": datetime.fromtimestamp(self.wall_clock(), timezone.utc).isoformat(),
            }
            await self.store.set(StoreArea.LOCAL, {self.keys.event_mapping: mapping})
        except TaskhueError as e:
            logger.warning(f"Resolving calendar event {event_id} failed: {e}")
            return _error(str(e))

        logger.changes(f"Mapped calendar event {event_id} to task {fragment}")
        return {"success": True, "taskApiId": task_api_id, "taskFragment": fragment}

    async def handle_new_task(self, message: Message) -> Message:
        """Find the list of a newly seen task and record the association."""
        task_id = message.get("taskId")
        if not task_id:
            return _error("No task ID provided")

        try:
            mapping = await self._local_table(self.keys.task_to_list)
            list_id = lookup_with_base64_fallback(mapping, task_id)

            if not list_id and self.find_task_list is not None:
                token = await self.tokens.get_token()
                list_id = await self.find_task_list(task_id, token)
                if list_id:
                    mapping[task_id] = list_id
                    await self.store.set(StoreArea.LOCAL, {self.keys.task_to_list: mapping})
                    logger.changes(f"Task {task_id} found in list {list_id}")

            if not list_id:
                return _error("TASK_NOT_FOUND")

            colors = await self.store.get(
                StoreArea.SYNC, [self.keys.list_colors, self.keys.list_text_colors]
            )
        except TaskhueError as e:
            logger.warning(f"New task lookup for {task_id} failed: {e}")
            return _error(str(e))

        list_colors = colors.get(self.keys.list_colors)
        text_colors = colors.get(self.keys.list_text_colors)
        return {
            "success": True,
            "listId": list_id,
            "backgroundColor": list_colors.get(list_id) if isinstance(list_colors, dict) else None,
            "textColor": text_colors.get(list_id) if isinstance(text_colors, dict) else None,
        }

    async def handle_sync(self, message: Message) -> Message:
        """Refresh the task-to-list map from the tasks API."""
        if self.sync_lists is None:
            return _error("Sync not available")
        full_sync = bool(message.get("fullSync"))

        try:
            token = await self.tokens.get_token()
            synced = await self.sync_lists(token, full_sync)
            mapping = {} if full_sync else await self._local_table(self.keys.task_to_list)
            mapping.update(synced)
            await self.store.set(StoreArea.LOCAL, {self.keys.task_to_list: mapping})
        except TaskhueError as e:
            logger.warning(f"Task list sync failed: {e}")
            return _error(str(e))

        logger.changes(f"Synced {len(synced)} task(s) ({'full' if full_sync else 'incremental'})")
        return {"success": True, "taskCount": len(synced), "syncedAt": self.wall_clock() * 1000}
