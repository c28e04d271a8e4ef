"""Data models for Taskhue."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Rendered-item attribute names
EVENT_ID_ATTR = "data-eventid"
TASK_ID_ATTR = "data-taskid"
DIALOG_ROLE = "dialog"


class CompletedMode(str, Enum):
    """How a list styles its completed tasks."""

    HOST_DEFAULT = "host-default"  # Host's faded rendering, optional opacity overrides
    INHERIT_PENDING = "inherit-pending"  # The list's pending colors, faded
    CUSTOM = "custom"  # Dedicated completed colors


# Mode names written by earlier releases
_LEGACY_MODES = {"google": CompletedMode.HOST_DEFAULT, "inherit": CompletedMode.INHERIT_PENDING}


def _real_number_or_none(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


class CompletedStyling(BaseModel):
    """Per-list configuration for completed tasks.

    Field names follow the stored camelCase keys. Garbage opacities are read
    as unset and unknown modes as no mode.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    mode: CompletedMode | None = None
    bg_color: str | None = Field(default=None, alias="bgColor")
    text_color: str | None = Field(default=None, alias="textColor")
    bg_opacity: float | None = Field(default=None, alias="bgOpacity")
    text_opacity: float | None = Field(default=None, alias="textOpacity")

    @field_validator("mode", mode="before")
    @classmethod
    def accept_legacy_mode(cls, v: Any) -> Any:
        """Map legacy mode names and drop unknown ones."""
        if v is None or isinstance(v, CompletedMode):
            return v
        if v in _LEGACY_MODES:
            return _LEGACY_MODES[v]
        try:
            return CompletedMode(v)
        except ValueError:
            return None

    @field_validator("bg_opacity", "text_opacity", mode="before")
    @classmethod
    def drop_non_numeric(cls, v: Any) -> Any:
        """Treat non-numeric opacities as unset."""
        return _real_number_or_none(v)

    @field_validator("bg_color", "text_color", mode="before")
    @classmethod
    def drop_empty_color(cls, v: Any) -> Any:
        """Treat empty or non-string colors as unset."""
        return v if isinstance(v, str) and v else None

    @property
    def effective_mode(self) -> CompletedMode:
        """Mode in force; host-default when none was chosen."""
        return self.mode or CompletedMode.HOST_DEFAULT

    @property
    def has_opacity_overrides(self) -> bool:
        """Whether either opacity was configured."""
        return self.bg_opacity is not None or self.text_opacity is not None

    @property
    def has_any_setting(self) -> bool:
        """Whether anything at all was configured for completed tasks."""
        return bool(self.mode or self.bg_color or self.text_color or self.has_opacity_overrides)


@dataclass(frozen=True)
class StyleResult:
    """Styling computed for one item.

    Colors may be the transparent sentinel, meaning "use the host's observed
    original color for this channel".
    """

    background_color: str
    text_color: str
    bg_opacity: float
    text_opacity: float

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the painter's camelCase keys."""
        return {
            "backgroundColor": self.background_color,
            "textColor": self.text_color,
            "bgOpacity": self.bg_opacity,
            "textOpacity": self.text_opacity,
        }


@dataclass
class ObservedColors:
    """Host colors captured once per item before any styling is applied."""

    background: str | None = None
    text: str | None = None
    border: str | None = None
    was_completed: bool = False  # Background was captured from a completed (pre-faded) item


@dataclass(eq=False)
class ItemNode:
    """One node of the rendered calendar tree.

    Nodes are supplied by the observer layer; the engine only reads them.
    ``is_root`` marks the boundary where ancestor walks stop.
    """

    attributes: dict[str, str] = field(default_factory=dict)
    parent: ItemNode | None = None
    role: str | None = None
    text: str = ""
    completed: bool = False
    connected: bool = True
    is_root: bool = False
    observed: ObservedColors | None = None

    def get(self, name: str) -> str | None:
        """Get an attribute value."""
        return self.attributes.get(name)

    def lineage(self) -> Iterator[ItemNode]:
        """Yield this node and its ancestors up to (excluding) the root boundary."""
        node: ItemNode | None = self
        while node is not None and not node.is_root:
            yield node
            node = node.parent

    def in_dialog(self) -> bool:
        """Whether the node sits inside a dialog (an editor, not the grid)."""
        return any(node.role == DIALOG_ROLE for node in self.lineage())

    def capture_observed(
        self,
        background: str | None,
        text: str | None = None,
        border: str | None = None,
    ) -> bool:
        """Record the host's colors the first time they are seen.

        Returns:
            True if the snapshot was recorded, False if one already existed
        """
        if self.observed is not None and self.observed.background:
            return False
        self.observed = ObservedColors(
            background=background,
            text=text,
            border=border,
            was_completed=self.completed,
        )
        return True
