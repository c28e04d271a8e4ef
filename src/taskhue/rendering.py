"""Final paint values for a resolved style.

A ``StyleResult`` may defer to the host's own colors through the transparent
sentinel. The painter needs concrete values, so the sentinel is replaced by
the colors observed on the item before any styling was applied. Backgrounds
are flattened onto white so nothing underneath shows through.
"""

from __future__ import annotations

from dataclasses import dataclass

from .colors import (
    NEUTRAL_COMPLETED_TEXT,
    WHITE,
    color_to_rgba,
    flatten_on_white,
    is_transparent_sentinel,
    unfade,
)
from .models import ObservedColors, StyleResult


@dataclass(frozen=True)
class RenderedStyle:
    """Concrete colors to paint.

    ``background`` None means restore the host's own background.
    """

    background: str | None
    text: str


def _original_background(observed: ObservedColors | None) -> str:
    if observed is None or not observed.background:
        return WHITE
    if observed.was_completed:
        # The host had already faded it; recover the pending color
        return unfade(observed.background)
    return observed.background


def render_style(style: StyleResult, observed: ObservedColors | None = None) -> RenderedStyle:
    """Turn a resolved style into paintable colors.

    Args:
        style: Resolver output
        observed: Host colors captured before styling, if any

    Returns:
        Opaque background (or None) and an rgba text color
    """
    if style.bg_opacity <= 0:
        background = None
    else:
        source = style.background_color
        if is_transparent_sentinel(source):
            source = _original_background(observed)
        background = flatten_on_white(source, style.bg_opacity)

    text_source = style.text_color
    if is_transparent_sentinel(text_source):
        text_source = observed.text if observed and observed.text else NEUTRAL_COMPLETED_TEXT
    text = color_to_rgba(text_source, style.text_opacity)

    return RenderedStyle(background=background, text=text)
