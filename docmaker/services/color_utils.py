"""
Colour helpers for slide design: WCAG luminance and contrast, lightness
nudging, and design-system palette repair.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

MAX_FIX_ATTEMPTS = 20

Rgb = Tuple[int, int, int]


def hex_to_rgb(hex_color: str) -> Optional[Rgb]:
    """Parse ``#rgb``, ``#rrggbb`` or ``#rrggbbaa`` (alpha ignored); None if invalid."""
    clean = (hex_color or "").replace("#", "")
    if len(clean) == 3:
        clean = "".join(c * 2 for c in clean)
    if len(clean) == 8:
        clean = clean[:6]
    if len(clean) != 6:
        return None
    try:
        return int(clean[0:2], 16), int(clean[2:4], 16), int(clean[4:6], 16)
    except ValueError:
        return None


def relative_luminance(r: int, g: int, b: int) -> float:
    def channel(c: int) -> float:
        s = c / 255
        return s / 12.92 if s <= 0.03928 else ((s + 0.055) / 1.055) ** 2.4

    return 0.2126 * channel(r) + 0.7152 * channel(g) + 0.0722 * channel(b)


def hex_to_luminance(hex_color: str) -> float:
    """Luminance of *hex_color*; unparseable colours are treated as dark (0.2)."""
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        return 0.2
    return relative_luminance(*rgb)


def contrast_ratio(hex1: str, hex2: str) -> float:
    """WCAG contrast ratio; 1 when either colour cannot be parsed."""
    c1 = hex_to_rgb(hex1)
    c2 = hex_to_rgb(hex2)
    if c1 is None or c2 is None:
        return 1.0
    l1 = relative_luminance(*c1)
    l2 = relative_luminance(*c2)
    return (max(l1, l2) + 0.05) / (min(l1, l2) + 0.05)


def adjust_lightness(hex_color: str, amount: float) -> str:
    """Shift every channel by ``amount * 255`` (clamped).  Invalid input is returned as-is."""
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        return hex_color

    def adjust(v: int) -> int:
        return min(255, max(0, round(v + amount * 255)))

    return "#" + "".join(f"{adjust(v):02x}" for v in rgb)


def validate_and_fix_colors(colors: Dict[str, str]) -> Dict[str, str]:
    """
    Lighten text, accent and muted colours until they reach their minimum
    contrast against the background (4.5, 3 and 3), and separate cardBg
    from the background.  Each colour gets at most MAX_FIX_ATTEMPTS steps.
    """
    fixed = dict(colors)
    background = fixed.get("background", "#000000")

    def lift(key: str, minimum: float, step_for) -> None:
        if key not in fixed:
            return
        attempts = 0
        ratio = contrast_ratio(fixed[key], background)
        while ratio < minimum and attempts < MAX_FIX_ATTEMPTS:
            fixed[key] = adjust_lightness(fixed[key], step_for(ratio))
            ratio = contrast_ratio(fixed[key], background)
            attempts += 1

    lift("text", 4.5, lambda ratio: 0.1 if ratio < 2 else 0.03)
    lift("accent", 3, lambda ratio: 0.05)

    if "cardBg" in fixed and contrast_ratio(fixed["cardBg"], background) < 1.1:
        fixed["cardBg"] = adjust_lightness(fixed["cardBg"], 0.06)

    lift("muted", 3, lambda ratio: 0.04)
    return fixed
