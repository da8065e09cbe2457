"""
Color space helpers shared by every engine module.
RGB <-> HSL and hex conversions, distances, blending and palette lookup.
"""

from __future__ import annotations

import math
import re
from typing import Sequence, Tuple

from .errors import ColorParseError
from .raster import RGBA

RGB = Tuple[int, int, int]

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def clamp(value: float, low: float = 0, high: float = 255) -> float:
    return max(low, min(high, value))


def clamp_channel(value: float) -> int:
    return int(clamp(round(value), 0, 255))


def parse_hex(value: str) -> RGBA:
    """Parse `#RRGGBB` or `#RRGGBBAA` (the `#` is optional). Alpha defaults to 255."""
    if not isinstance(value, str):
        raise ColorParseError(f"expected hex color string, got {type(value).__name__}")
    m = _HEX_RE.match(value.strip())
    if not m:
        raise ColorParseError(f"invalid hex color: {value!r} (expected #RRGGBB or #RRGGBBAA)")
    digits = m.group(1)
    r = int(digits[0:2], 16)
    g = int(digits[2:4], 16)
    b = int(digits[4:6], 16)
    a = int(digits[6:8], 16) if len(digits) == 8 else 255
    return (r, g, b, a)


def to_hex(color: Sequence[int]) -> str:
    r, g, b = color[0], color[1], color[2]
    a = color[3] if len(color) > 3 else 255
    return f"#{r:02X}{g:02X}{b:02X}{a:02X}"


def to_hex_rgb(color: Sequence[int]) -> str:
    return f"#{color[0]:02X}{color[1]:02X}{color[2]:02X}"


def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """Return (hue degrees in [0, 360), saturation [0, 1], lightness [0, 1])."""
    rf, gf, bf = r / 255.0, g / 255.0, b / 255.0
    hi = max(rf, gf, bf)
    lo = min(rf, gf, bf)
    delta = hi - lo
    lightness = (hi + lo) / 2.0

    if delta == 0:
        return 0.0, 0.0, lightness

    if lightness < 0.5:
        saturation = delta / (hi + lo)
    else:
        saturation = delta / (2.0 - hi - lo)

    if hi == rf:
        hue = (gf - bf) / delta
        if gf < bf:
            hue += 6.0
    elif hi == gf:
        hue = (bf - rf) / delta + 2.0
    else:
        hue = (rf - gf) / delta + 4.0

    hue *= 60.0
    if hue >= 360.0:
        hue -= 360.0
    return hue, saturation, lightness


def hsl_to_rgb(h: float, s: float, l: float) -> RGB:
    h = h % 360.0
    s = clamp(s, 0.0, 1.0)
    l = clamp(l, 0.0, 1.0)
    if s == 0:
        v = clamp_channel(l * 255.0)
        return (v, v, v)

    q = l * (1 + s) if l < 0.5 else l + s - l * s
    p = 2 * l - q
    hk = h / 360.0

    def channel(t: float) -> float:
        t %= 1.0
        if t < 1 / 6:
            return p + (q - p) * 6 * t
        if t < 1 / 2:
            return q
        if t < 2 / 3:
            return p + (q - p) * (2 / 3 - t) * 6
        return p

    return (
        clamp_channel(channel(hk + 1 / 3) * 255.0),
        clamp_channel(channel(hk) * 255.0),
        clamp_channel(channel(hk - 1 / 3) * 255.0),
    )


def hue_distance(a: float, b: float) -> float:
    """Circular distance between two hues, always in [0, 180]."""
    diff = abs(a - b) % 360.0
    return min(diff, 360.0 - diff)


def rotate_hue_toward(hue: float, target: float, degrees: float) -> float:
    """Rotate `hue` by at most `degrees` along the shorter arc toward `target`."""
    signed = ((target - hue + 540.0) % 360.0) - 180.0
    step = min(degrees, abs(signed))
    if signed < 0:
        step = -step
    return (hue + step) % 360.0


def luminance(r: int, g: int, b: int) -> float:
    # Rec. 709 luma
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def distance(c1: Sequence[int], c2: Sequence[int]) -> float:
    dr = c1[0] - c2[0]
    dg = c1[1] - c2[1]
    db = c1[2] - c2[2]
    return math.sqrt(dr * dr + dg * dg + db * db)


def weighted_distance(c1: Sequence[int], c2: Sequence[int]) -> float:
    """Red-mean weighted RGB distance, closer to perceived difference than plain Euclidean."""
    rmean = (c1[0] + c2[0]) / 2.0
    dr = c1[0] - c2[0]
    dg = c1[1] - c2[1]
    db = c1[2] - c2[2]
    return math.sqrt((2 + rmean / 256.0) * dr * dr + 4 * dg * dg + (2 + (255 - rmean) / 256.0) * db * db)


def blend(c1: RGBA, c2: RGBA, weight: float = 0.5) -> RGBA:
    """
    Mix two colors channel by channel, alpha included.

    weight=0 returns c1, weight=1 returns c2. Results are floored, so the
    midpoint of 0 and 255 is 127 and equal channels always come back unchanged.
    """
    w = clamp(weight, 0.0, 1.0)
    return tuple(int(math.floor(a + (b - a) * w + 1e-9)) for a, b in zip(c1, c2))  # type: ignore[return-value]


def nearest_in_palette(color: RGBA, palette: Sequence[RGBA]) -> RGBA:
    """Closest palette entry by Euclidean RGB distance; first entry wins ties."""
    if not palette:
        return color
    best = palette[0]
    best_dist = distance(color, best)
    for entry in palette[1:]:
        d = distance(color, entry)
        if d < best_dist:
            best_dist = d
            best = entry
    return best


def nearest_index(color: Sequence[int], palette: Sequence[Sequence[int]]) -> int:
    best_idx = -1
    best_dist = math.inf
    for idx, entry in enumerate(palette):
        dr = color[0] - entry[0]
        dg = color[1] - entry[1]
        db = color[2] - entry[2]
        d = dr * dr + dg * dg + db * db
        if d < best_dist:
            best_dist = d
            best_idx = idx
    return best_idx
