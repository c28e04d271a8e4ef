"""Asynchronous message channel to the remote-resolution side.

Requests are plain dicts with a ``type`` key. Replies are dicts carrying
``success`` plus a payload or an ``error``. The requester treats a missing
reply, an error reply and a channel failure the same way: as no answer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

from .exceptions import ChannelError
from .logger import get_logger

logger = get_logger()

Message = dict[str, Any]
Handler = Callable[[Message], Awaitable[Message | None]]


class MessageType(str, Enum):
    """Request types understood by the remote side."""

    RESOLVE_CALENDAR_EVENT = "RESOLVE_CALENDAR_EVENT"
    NEW_TASK_DETECTED = "NEW_TASK_DETECTED"
    SYNC_TASK_LISTS = "SYNC_TASK_LISTS"


class MessageChannel(Protocol):
    """Transport to the remote side."""

    async def send(self, message: Message) -> Message | None:
        """Deliver a request and return the reply, if any."""
        ...


async def request(
    channel: MessageChannel, message: Message, timeout: float | None = None
) -> Message | None:
    """Send a request and return a successful reply.

    Args:
        channel: Transport to use
        message: Request with a ``type`` key
        timeout: Seconds to wait for a reply; None waits indefinitely

    Returns:
        The reply when it reports success, otherwise None. Never raises
        for transport problems.
    """
    message_type = message.get("type")
    try:
        reply = await asyncio.wait_for(channel.send(message), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{message_type} timed out after {timeout}s")
        return None
    except Exception as e:  # Any transport failure reads as no answer
        logger.warning(f"{message_type} failed: {e}")
        return None

    if not isinstance(reply, dict):
        logger.warning(f"{message_type} got no reply")
        return None
    if not reply.get("success"):
        logger.warning(f"{message_type} reported an error: {reply.get('error', 'unknown')}")
        return None
    return reply


class LocalChannel:
    """In-process channel dispatching to registered handlers by message type."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, message_type: MessageType | str, handler: Handler) -> None:
        """Register the handler for a message type, replacing any previous one."""
        self._handlers[MessageType(message_type).value] = handler

    async def send(self, message: Message) -> Message | None:
        message_type = message.get("type")
        if isinstance(message_type, MessageType):
            message_type = message_type.value
        handler = self._handlers.get(message_type) if isinstance(message_type, str) else None
        if handler is None:
            raise ChannelError(f"No handler for message type {message_type!r}")
        return await handler(message)
