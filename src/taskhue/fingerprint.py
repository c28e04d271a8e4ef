"""Recurring-instance fingerprints.

The backend cannot enumerate every occurrence of a recurring task, so some
rendered instances have identifiers no table knows. A fingerprint built
from the rendered title and time lets those instances share styling with
visually identical instances that were resolved authoritatively.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .logger import get_logger

logger = get_logger()

# Rendered label format: "task: <title>, <status>, <date>, <time>"
TITLE_PATTERN = re.compile(r"task:\s*([^,]+)")
TIME_PATTERN = re.compile(r"(\d+(?::\d+)?(?:am|pm))\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class Fingerprint:
    """Title and time parsed from a rendered label."""

    title: str | None = None
    time: str | None = None

    @property
    def key(self) -> str | None:
        """``"<title>|<time>"``, or None when either part is missing."""
        if not self.title or not self.time:
            return None
        return f"{self.title}|{self.time}"


def extract_fingerprint(rendered_text: str | None) -> Fingerprint:
    """Parse a rendered label into a fingerprint.

    Args:
        rendered_text: e.g. ``"task: Standup, Not completed, December 7, 2025, 10:30am"``

    Returns:
        Fingerprint; parts that cannot be found are None
    """
    if not rendered_text:
        return Fingerprint()

    title_match = TITLE_PATTERN.search(rendered_text)
    title = title_match.group(1).strip() if title_match else None

    time_match = TIME_PATTERN.search(rendered_text)
    time = time_match.group(1).lower() if time_match else None

    return Fingerprint(title=title or None, time=time)


class FingerprintMap:
    """Advisory fingerprint-to-list associations.

    Non-authoritative and in-memory only: rebuilt from authoritative
    resolutions as items are seen, consulted only after every authoritative
    lookup misses, and never persisted. Last writer wins.
    """

    def __init__(self) -> None:
        self._lists: dict[str, str] = {}

    def remember(self, fingerprint: str | None, list_id: str | None) -> None:
        """Associate a fingerprint with the list an instance resolved to."""
        if not fingerprint or not list_id:
            return
        if self._lists.get(fingerprint) != list_id:
            logger.checks(f"Remembered fingerprint '{fingerprint}' -> list {list_id}")
        self._lists[fingerprint] = list_id

    def lookup(self, fingerprint: str | None) -> str | None:
        """List previously associated with the fingerprint."""
        if not fingerprint:
            return None
        return self._lists.get(fingerprint)

    def clear(self) -> None:
        """Forget every association."""
        self._lists.clear()

    def __len__(self) -> int:
        return len(self._lists)
