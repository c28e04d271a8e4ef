"""Priority color resolution.

For one task the first matching source wins:

1. Per-instance manual color
2. Recurring-group manual color, by fingerprint
3. List default styling, when the task's list is known (from the
   task-to-list map, else from a remembered fingerprint)
4. Nothing: the host's own rendering stands

Manual colors on completed tasks keep their background and are only faded
with the list's completed opacities. List styling on completed tasks follows
the list's completed styling mode.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .cache import CacheManager, ColorTables
from .colors import (
    NEUTRAL_COMPLETED_TEXT,
    NEUTRAL_PENDING_TEXT,
    TRANSPARENT_BACKGROUND,
    TRANSPARENT_TEXT,
    normalize_opacity,
    pick_contrasting_text,
)
from .fingerprint import Fingerprint, FingerprintMap
from .identifiers import lookup_with_base64_fallback
from .logger import get_logger
from .models import CompletedMode, CompletedStyling, StyleResult

logger = get_logger()

# Default opacity for every completed-task channel, matching the host's fade
COMPLETED_OPACITY = 0.3


@dataclass(frozen=True)
class ColorContext:
    """What is known about the rendered instance being styled."""

    fingerprint: Fingerprint | None = None
    is_completed: bool = False
    text_override: str | None = None

    @property
    def fingerprint_key(self) -> str | None:
        return self.fingerprint.key if self.fingerprint else None


def completed_opacities(
    completed: CompletedStyling | None,
    all_completed: Mapping[str, CompletedStyling] | None = None,
) -> tuple[float, float]:
    """Background and text opacity for a manually colored completed task.

    With the task's list known, that list's configured opacities apply. With
    no list, the highest opacity configured on any list applies, never less
    than the default.

    Returns:
        (bg_opacity, text_opacity)
    """
    if completed is not None:
        bg = COMPLETED_OPACITY
        text = COMPLETED_OPACITY
        if completed.bg_opacity is not None:
            bg = normalize_opacity(completed.bg_opacity, COMPLETED_OPACITY)
        if completed.text_opacity is not None:
            text = normalize_opacity(completed.text_opacity, COMPLETED_OPACITY)
        return bg, text

    bg = text = COMPLETED_OPACITY
    for styling in (all_completed or {}).values():
        if styling.bg_opacity is not None:
            bg = max(bg, normalize_opacity(styling.bg_opacity, COMPLETED_OPACITY))
        if styling.text_opacity is not None:
            text = max(text, normalize_opacity(styling.text_opacity, COMPLETED_OPACITY))
    return bg, text


def _configured_opacities(completed: CompletedStyling | None) -> tuple[float, float]:
    bg = completed.bg_opacity if completed else None
    text = completed.text_opacity if completed else None
    return (
        normalize_opacity(bg, COMPLETED_OPACITY),
        normalize_opacity(text, COMPLETED_OPACITY),
    )


def build_style(
    base_color: str | None,
    list_text_color: str | None,
    text_override: str | None,
    is_completed: bool,
    completed: CompletedStyling | None,
) -> StyleResult | None:
    """Compute styling from list-level inputs.

    Args:
        base_color: The list's pending background color, if any
        list_text_color: The list's pending text color, if any
        text_override: Explicit text color that beats every computed one
        is_completed: Whether the instance is marked completed
        completed: The list's completed styling, if any

    Returns:
        StyleResult, or None to leave the host's rendering untouched
    """
    if is_completed:
        if completed is None:
            return None
        mode = completed.effective_mode

        if mode is CompletedMode.HOST_DEFAULT:
            if not completed.has_opacity_overrides:
                return None
            bg_opacity, text_opacity = _configured_opacities(completed)
            return StyleResult(
                background_color=TRANSPARENT_BACKGROUND,
                text_color=text_override or TRANSPARENT_TEXT,
                bg_opacity=bg_opacity,
                text_opacity=text_opacity,
            )

        if mode is CompletedMode.INHERIT_PENDING:
            if not base_color and not list_text_color and not text_override:
                return None
            if text_override or list_text_color:
                text = text_override or list_text_color
            else:
                text = pick_contrasting_text(base_color) if base_color else TRANSPARENT_TEXT
            bg_opacity, text_opacity = _configured_opacities(completed)
            return StyleResult(
                background_color=base_color or TRANSPARENT_BACKGROUND,
                text_color=text,
                bg_opacity=bg_opacity,
                text_opacity=text_opacity,
            )

        # Custom always styles once selected
        background = completed.bg_color or base_color or TRANSPARENT_BACKGROUND
        text = text_override or completed.text_color or list_text_color
        if not text:
            if background == TRANSPARENT_BACKGROUND:
                text = NEUTRAL_COMPLETED_TEXT
            else:
                text = pick_contrasting_text(background)
        bg_opacity, text_opacity = _configured_opacities(completed)
        return StyleResult(
            background_color=background,
            text_color=text,
            bg_opacity=bg_opacity,
            text_opacity=text_opacity,
        )

    if not base_color and not list_text_color and not text_override:
        return None
    if base_color:
        text = text_override or list_text_color or pick_contrasting_text(base_color)
    else:
        text = text_override or list_text_color or NEUTRAL_PENDING_TEXT
    return StyleResult(
        background_color=base_color or TRANSPARENT_BACKGROUND,
        text_color=text,
        bg_opacity=1.0 if base_color else 0.0,
        text_opacity=1.0,
    )


class ColorResolver:
    """Computes the styling for a task from the cached color tables."""

    def __init__(self, cache: CacheManager, fingerprints: FingerprintMap | None = None) -> None:
        self.cache = cache
        self.fingerprints = fingerprints if fingerprints is not None else FingerprintMap()

    async def resolve(
        self, task_id: str, context: ColorContext | None = None
    ) -> StyleResult | None:
        """Resolve a task's styling.

        Args:
            task_id: Stable task id
            context: Rendering context (completed flag, fingerprint, text override)

        Returns:
            StyleResult, or None when no source applies
        """
        context = context or ColorContext()
        tables = await self.cache.refresh()
        fingerprint = context.fingerprint_key

        list_id = lookup_with_base64_fallback(tables.task_to_list, task_id)
        authoritative = list_id is not None
        if list_id is None and fingerprint:
            list_id = self.fingerprints.lookup(fingerprint)
            if list_id:
                logger.checks(f"Task {task_id}: list {list_id} from fingerprint '{fingerprint}'")

        completed = tables.completed_styling.get(list_id) if list_id else None

        manual = lookup_with_base64_fallback(tables.manual_colors, task_id)
        if manual:
            logger.checks(f"Task {task_id}: manual color {manual}")
            return self._manual_style(manual, context, completed, tables)

        if fingerprint:
            recurring = tables.recurring_colors.get(fingerprint)
            if recurring:
                logger.checks(f"Task {task_id}: recurring color {recurring}")
                return self._manual_style(recurring, context, completed, tables)

        if list_id:
            return self._list_style(task_id, list_id, context, completed, tables, authoritative)

        logger.checks(f"Task {task_id}: no color")
        return None

    def _manual_style(
        self,
        color: str,
        context: ColorContext,
        completed: CompletedStyling | None,
        tables: ColorTables,
    ) -> StyleResult | None:
        if context.is_completed:
            bg_opacity, text_opacity = completed_opacities(completed, tables.completed_styling)
            return StyleResult(
                background_color=color,
                text_color=context.text_override or pick_contrasting_text(color),
                bg_opacity=bg_opacity,
                text_opacity=text_opacity,
            )
        # List text colors never apply over a manual background
        return build_style(color, None, context.text_override, False, None)

    def _list_style(
        self,
        task_id: str,
        list_id: str,
        context: ColorContext,
        completed: CompletedStyling | None,
        tables: ColorTables,
        authoritative: bool,
    ) -> StyleResult | None:
        list_color = tables.list_colors.get(list_id)
        list_text = tables.list_text_colors.get(list_id)
        has_completed_setting = (
            context.is_completed and completed is not None and completed.has_any_setting
        )
        if not (list_color or list_text or has_completed_setting):
            logger.checks(f"Task {task_id}: list {list_id} has no styling")
            return None

        if authoritative:
            self.fingerprints.remember(context.fingerprint_key, list_id)

        logger.checks(f"Task {task_id}: list {list_id} default styling")
        return build_style(
            list_color, list_text, context.text_override, context.is_completed, completed
        )
