"""Color parsing helpers used when rendering process steps and exports."""

from __future__ import annotations

import math
import random
import re

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)
RGB_COLOR_PATTERN = re.compile(
    r"^rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)$", re.IGNORECASE
)
RGBA_COLOR_PATTERN = re.compile(
    r"^rgba\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(0|1|0?\.\d+)\s*\)$",
    re.IGNORECASE,
)

FALLBACK_STEP_FILL_ALPHA = 0.12


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _format_alpha(alpha: float) -> str:
    # 1.0 -> "1", 0.5 -> "0.5"
    return f"{alpha:g}"


def to_rgba(color: str | None, alpha: float, fallback: str) -> str:
    """Convert a hex, ``rgb()`` or ``rgba()`` color to ``rgba(r, g, b, a)``.

    The alpha of an ``rgba()`` input is replaced by ``alpha``. Empty or
    unrecognized colors yield ``fallback`` unchanged.
    """
    if not color:
        return fallback

    try:
        finite = math.isfinite(alpha)
    except TypeError:
        finite = False
    normalized_alpha = clamp(alpha if finite else FALLBACK_STEP_FILL_ALPHA, 0, 1)
    alpha_text = _format_alpha(normalized_alpha)

    if HEX_COLOR_PATTERN.match(color):
        red = int(color[1:3], 16)
        green = int(color[3:5], 16)
        blue = int(color[5:7], 16)
        return f"rgba({red}, {green}, {blue}, {alpha_text})"

    match = RGB_COLOR_PATTERN.match(color) or RGBA_COLOR_PATTERN.match(color)
    if match:
        red, green, blue = (int(part) for part in match.group(1, 2, 3))
        return f"rgba({red}, {green}, {blue}, {alpha_text})"

    return fallback


def generate_random_hex_color() -> str:
    """Random pastel color; every channel falls in [128, 255)."""
    channels = [128 + math.floor(random.random() * 127) for _ in range(3)]
    return "#" + "".join(f"{channel:02X}" for channel in channels)
