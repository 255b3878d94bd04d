"""Color helpers — hex parsing, WCAG contrast, and tone ramps."""

from __future__ import annotations

import logging
import math
import re
from enum import Enum

logger = logging.getLogger(__name__)

# ─── Constants ──────────────────────────────────────────────────────────────

WCAG_AA_CONTRAST = 4.5
DEFAULT_LIGHT_TEXT = "#f0f0f0"
DEFAULT_DARK_TEXT = "#333333"
DEFAULT_FALLBACK = "#aabbc8"

# brighter(k) scales channels by (1/0.7)^k, darker(k) by 0.7^k
_DARKER = 0.7
_BRIGHTER = 1 / _DARKER

_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class TextClass(str, Enum):
    LIGHT = "text-light"
    DARK = "text-dark"


# ─── Parsing / Formatting ───────────────────────────────────────────────────


def parse_hex(value: str | None) -> tuple[int, int, int] | None:
    """Parse ``#rgb`` or ``#rrggbb`` into an RGB triple, or None if invalid."""
    if not isinstance(value, str):
        return None
    m = _HEX_RE.match(value.strip())
    if not m:
        return None
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    rgb = int(digits, 16)
    return (rgb >> 16) & 0xFF, (rgb >> 8) & 0xFF, rgb & 0xFF


def _channel(value: float) -> int:
    # round half up, then clamp into a byte
    if not math.isfinite(value):
        return 0
    return max(0, min(255, math.floor(value + 0.5)))


def format_hex(r: float, g: float, b: float) -> str:
    return f"#{_channel(r):02x}{_channel(g):02x}{_channel(b):02x}"


# ─── Contrast ───────────────────────────────────────────────────────────────


def relative_luminance(hex_color: str | None) -> float:
    """WCAG relative luminance in [0, 1]. Invalid colors count as black."""
    rgb = parse_hex(hex_color)
    if rgb is None:
        return 0.0

    def linear(v: int) -> float:
        s = v / 255.0
        return s / 12.92 if s <= 0.03928 else ((s + 0.055) / 1.055) ** 2.4

    r, g, b = (linear(v) for v in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(a: str | None, b: str | None) -> float:
    la = relative_luminance(a)
    lb = relative_luminance(b)
    return (max(la, lb) + 0.05) / (min(la, lb) + 0.05)


def contrasting_text_class(
    background: str | None,
    light: str = DEFAULT_LIGHT_TEXT,
    dark: str = DEFAULT_DARK_TEXT,
) -> TextClass:
    """Pick the text color class that reads best on ``background``.

    Whichever candidate clears the AA threshold wins; when both or neither do,
    the higher-contrast one wins (dark on ties).
    """
    if not background:
        return TextClass.DARK
    with_light = contrast_ratio(background, light)
    with_dark = contrast_ratio(background, dark)

    dark_ok = with_dark >= WCAG_AA_CONTRAST
    light_ok = with_light >= WCAG_AA_CONTRAST
    if dark_ok and not light_ok:
        return TextClass.DARK
    if light_ok and not dark_ok:
        return TextClass.LIGHT
    return TextClass.DARK if with_dark >= with_light else TextClass.LIGHT


# ─── Tones ──────────────────────────────────────────────────────────────────


def brighter(hex_color: str, k: float = 1.0) -> str | None:
    rgb = parse_hex(hex_color)
    if rgb is None:
        return None
    f = _BRIGHTER**k
    return format_hex(*(c * f for c in rgb))


def darker(hex_color: str, k: float = 1.0) -> str | None:
    rgb = parse_hex(hex_color)
    if rgb is None:
        return None
    f = _DARKER**k
    return format_hex(*(c * f for c in rgb))


def color_tones(
    base: str,
    count: int,
    step: float = 0.7,
    direction: str = "brighter",
    fallback: str = DEFAULT_FALLBACK,
) -> list[str]:
    """Generate ``count`` tones starting at ``base``.

    Tone ``i`` is the base brightened (or darkened) by ``step * i``, always
    measured from the original base. An invalid base yields ``count`` copies
    of ``fallback``.
    """
    if count <= 0:
        return []
    base_rgb = parse_hex(base)
    if base_rgb is None:
        logger.error("Invalid base color %r, using fallback %s", base, fallback)
        return [fallback] * count

    shift = darker if direction == "darker" else brighter
    tones = [format_hex(*base_rgb)]
    for i in range(1, count):
        tones.append(shift(base, step * i) or fallback)
    return tones
