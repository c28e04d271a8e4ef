"""Color math for task styling.

Pure functions over CSS-style color strings. Every function accepts hex
(``#rgb`` / ``#rrggbb``) or functional ``rgb()`` / ``rgba()`` notation and never
raises on malformed input.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

# Constants for color calculations
HEX_COLOR_SHORT_LENGTH = 3  # Length of shorthand hex colors (#RGB)
HEX_COLOR_FULL_LENGTH = 6  # Length of full hex colors (#RRGGBB)
CHANNEL_MAX = 255
CONTRAST_THRESHOLD = 0.6  # Relative luminance above which dark text is used
DEFAULT_FADE_FACTOR = 0.3  # Share of the original color the host keeps for completed tasks

LIGHT_TEXT = "#fff"
DARK_TEXT = "#111"
WHITE = "#ffffff"
NEUTRAL_COMPLETED_TEXT = "#5f6368"
NEUTRAL_PENDING_TEXT = "#202124"

# Reserved values meaning "use the host's own color for this channel"
TRANSPARENT_BACKGROUND = "rgba(255, 255, 255, 0)"
TRANSPARENT_TEXT = "rgba(0, 0, 0, 0)"
_TRANSPARENT_FORMS = frozenset({"rgba(255,255,255,0)", "rgba(0,0,0,0)", "transparent"})

_FUNCTIONAL_PATTERN = re.compile(r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)", re.IGNORECASE)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


@dataclass(frozen=True)
class RGB:
    """An opaque color as three 0-255 channels."""

    r: int
    g: int
    b: int

    def css(self) -> str:
        """Format as functional ``rgb()`` notation."""
        return f"rgb({self.r}, {self.g}, {self.b})"


FALLBACK_RGB = RGB(66, 133, 244)  # Host's default task blue


def _round_half_up(value: float) -> int:
    # Builtin round() is banker's rounding; channels round half up
    return math.floor(value + 0.5)


def _clamp_channel(value: float) -> int:
    return min(CHANNEL_MAX, max(0, _round_half_up(value)))


def parse_to_rgb(color: str | None) -> RGB:
    """Parse a color string to RGB channels.

    Args:
        color: Hex (3 or 6 digit, ``#`` optional) or ``rgb()``/``rgba()`` string

    Returns:
        Parsed channels, or FALLBACK_RGB when the input cannot be parsed
    """
    if not color:
        return FALLBACK_RGB

    value = color.strip()
    if value.lower().startswith("rgb"):
        match = _FUNCTIONAL_PATTERN.match(value)
        if not match:
            return FALLBACK_RGB
        r, g, b = (min(CHANNEL_MAX, int(part)) for part in match.groups())
        return RGB(r, g, b)

    hex_color = value.lstrip("#")
    if len(hex_color) == HEX_COLOR_SHORT_LENGTH:
        hex_color = "".join(c * 2 for c in hex_color)
    if len(hex_color) != HEX_COLOR_FULL_LENGTH or not set(hex_color) <= _HEX_DIGITS:
        return FALLBACK_RGB

    n = int(hex_color, 16)
    return RGB((n >> 16) & 0xFF, (n >> 8) & 0xFF, n & 0xFF)


def pick_contrasting_text(color: str | None) -> str:
    """Pick a readable text color for a background.

    Uses the simple (non-gamma) relative luminance
    ``(0.2126 r + 0.7152 g + 0.0722 b) / 255`` with a 0.6 threshold.

    Returns:
        DARK_TEXT on light backgrounds, LIGHT_TEXT otherwise
    """
    rgb = parse_to_rgb(color)
    luminance = (0.2126 * rgb.r + 0.7152 * rgb.g + 0.0722 * rgb.b) / CHANNEL_MAX
    return DARK_TEXT if luminance > CONTRAST_THRESHOLD else LIGHT_TEXT


def normalize_opacity(value: object, fallback: float = 1.0) -> float:
    """Normalize an opacity to ``[0, 1]``.

    Values above 1 are read as percentages. Out-of-range values are clamped.

    Args:
        value: Candidate opacity
        fallback: Returned when value is not a real number

    Returns:
        Opacity in [0, 1]
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return fallback
    if value > 1:
        return min(max(float(value), 0.0), 100.0) / 100
    return min(max(float(value), 0.0), 1.0)


def color_to_rgba(color: str | None, opacity: object = 1.0) -> str:
    """Format a color with an alpha channel."""
    rgb = parse_to_rgb(color)
    alpha = normalize_opacity(opacity, 1.0)
    return f"rgba({rgb.r}, {rgb.g}, {rgb.b}, {alpha:g})"


def normalize_color(color: str | None) -> str:
    """Canonical ``rgb()`` form of a color."""
    return parse_to_rgb(color).css()


def flatten_on_white(color: str | None, opacity: object = 1.0) -> str:
    """Composite a color at an opacity over white into an opaque color.

    ``result = color * opacity + white * (1 - opacity)`` per channel, so a
    translucent-looking color can be painted without letting underlying
    content show through.
    """
    rgb = parse_to_rgb(color)
    alpha = normalize_opacity(opacity, 1.0)
    white_mix = CHANNEL_MAX * (1 - alpha)
    return RGB(
        _clamp_channel(rgb.r * alpha + white_mix),
        _clamp_channel(rgb.g * alpha + white_mix),
        _clamp_channel(rgb.b * alpha + white_mix),
    ).css()


def unfade(color: str | None, fade_factor: float = DEFAULT_FADE_FACTOR) -> str:
    """Invert the host's white blend applied to completed items.

    ``original = (faded - white * (1 - fade)) / fade``, clamped per channel.
    Only meaningful for colors known to have been pre-faded by the host.
    """
    if fade_factor <= 0:
        return normalize_color(color)
    rgb = parse_to_rgb(color)
    white_mix = CHANNEL_MAX * (1 - fade_factor)
    return RGB(
        _clamp_channel((rgb.r - white_mix) / fade_factor),
        _clamp_channel((rgb.g - white_mix) / fade_factor),
        _clamp_channel((rgb.b - white_mix) / fade_factor),
    ).css()


def is_transparent_sentinel(color: str | None) -> bool:
    """Check for the reserved "defer to the host's color" value.

    A missing color counts as the sentinel.
    """
    if not color:
        return True
    return re.sub(r"\s", "", color.lower()) in _TRANSPARENT_FORMS
