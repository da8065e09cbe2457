"""
Directional auto-shading.

Each flat-colored region gets a shadow/base/highlight ramp derived from its
own color, and pixels pick a step from how directly they face the light.
Palette-constrained shading does the same over a region but only ever writes
colors from a caller-supplied darkest-to-lightest palette.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .colorspace import (
    blend,
    clamp,
    hsl_to_rgb,
    luminance,
    nearest_index,
    parse_hex,
    rgb_to_hsl,
    rotate_hue_toward,
    to_hex,
    to_hex_rgb,
)
from .dither import DitherPattern, threshold
from .errors import ConfigurationError, ParameterError, require_range
from .raster import RGBA, Raster, Region

logger = logging.getLogger(__name__)

SHADOW_HUE = 240.0
HIGHLIGHT_HUE = 60.0
MAX_HUE_SHIFT = 10.0
LIGHTNESS_STEP = 0.3
MAX_PALETTE_SIZE = 256


def _parse_name(value: str) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


class LightDirection(str, Enum):
    TOP_LEFT = "top_left"
    TOP = "top"
    TOP_RIGHT = "top_right"
    LEFT = "left"
    RIGHT = "right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM = "bottom"
    BOTTOM_RIGHT = "bottom_right"

    @classmethod
    def parse(cls, value: "LightDirection | str") -> "LightDirection":
        if isinstance(value, cls):
            return value
        try:
            return cls(_parse_name(value))
        except ValueError:
            raise ConfigurationError(
                f"unknown light direction: {value!r}",
                error_code="UNKNOWN_DIRECTION",
                field="light_direction",
            ) from None

    @property
    def vector(self) -> Tuple[float, float]:
        """Unit vector pointing toward the light, y grows downward."""
        name = self.value
        vx = -1.0 if "left" in name else (1.0 if "right" in name else 0.0)
        vy = -1.0 if "top" in name else (1.0 if "bottom" in name else 0.0)
        norm = math.hypot(vx, vy)
        return vx / norm, vy / norm


class ShadingStyle(str, Enum):
    CELL = "cell"
    SMOOTH = "smooth"
    SOFT = "soft"

    @classmethod
    def parse(cls, value: "ShadingStyle | str") -> "ShadingStyle":
        if isinstance(value, cls):
            return value
        try:
            return cls(_parse_name(value))
        except ValueError:
            raise ConfigurationError(
                f"unknown shading style: {value!r}",
                error_code="UNKNOWN_STYLE",
                field="style",
            ) from None


@dataclass
class ShadingResult:
    raster: Raster
    generated_colors: List[str] = field(default_factory=list)
    regions_shaded: int = 0


@dataclass(frozen=True)
class Ramp:
    shadow: RGBA
    base: RGBA
    highlight: RGBA


def build_ramp(base: RGBA, intensity: float, hue_shift: bool) -> Ramp:
    if intensity == 0:
        return Ramp(shadow=base, base=base, highlight=base)
    h, s, l = rgb_to_hsl(base[0], base[1], base[2])
    shadow_l = l * (1.0 - LIGHTNESS_STEP * intensity)
    highlight_l = l + (1.0 - l) * LIGHTNESS_STEP * intensity
    shadow_h = highlight_h = h
    if hue_shift and intensity > 0:
        shadow_h = rotate_hue_toward(h, SHADOW_HUE, MAX_HUE_SHIFT)
        highlight_h = rotate_hue_toward(h, HIGHLIGHT_HUE, MAX_HUE_SHIFT)
    alpha = base[3]
    return Ramp(
        shadow=hsl_to_rgb(shadow_h, s, shadow_l) + (alpha,),
        base=base,
        highlight=hsl_to_rgb(highlight_h, s, highlight_l) + (alpha,),
    )


def find_regions(raster: Raster) -> List[List[Tuple[int, int]]]:
    """4-connected runs of identical visible colors, in row-major order of their first pixel."""
    w, h = raster.width, raster.height
    seen = [[False] * w for _ in range(h)]
    regions = []
    for y in range(h):
        for x in range(w):
            if seen[y][x]:
                continue
            color = raster.get(x, y)
            seen[y][x] = True
            if color[3] == 0:
                continue
            members = []
            queue = deque([(x, y)])
            while queue:
                cx, cy = queue.popleft()
                members.append((cx, cy))
                for nx, ny in ((cx + 1, cy), (cx - 1, cy), (cx, cy + 1), (cx, cy - 1)):
                    if 0 <= nx < w and 0 <= ny < h and not seen[ny][nx] and raster.get(nx, ny) == color:
                        seen[ny][nx] = True
                        queue.append((nx, ny))
            regions.append(members)
    return regions


def facing_scores(members: List[Tuple[int, int]], light: Tuple[float, float]) -> Dict[Tuple[int, int], float]:
    """Dot product of each pixel's centroid offset (scaled by region radius) with the light vector."""
    cx = sum(x for x, _ in members) / len(members)
    cy = sum(y for _, y in members) / len(members)
    radius = max(math.hypot(x - cx, y - cy) for x, y in members)
    if radius == 0:
        return {p: 0.0 for p in members}
    lx, ly = light
    return {(x, y): max(-1.0, min(1.0, ((x - cx) * lx + (y - cy) * ly) / radius)) for x, y in members}


def _pick(style: ShadingStyle, ramp: Ramp, score: float, intensity: float, x: int, y: int) -> RGBA:
    if style is ShadingStyle.CELL:
        if score < -1 / 3:
            return ramp.shadow
        if score > 1 / 3:
            return ramp.highlight
        return ramp.base
    if style is ShadingStyle.SMOOTH:
        stops = (ramp.shadow, ramp.base, ramp.highlight)
        t = score + 1.0
        seg = min(int(t), 1)
        frac = t - seg
        if threshold(DitherPattern.BAYER_4X4, x, y) < frac:
            return stops[seg + 1]
        return stops[seg]
    target = ramp.highlight if score > 0 else ramp.shadow
    return blend(ramp.base, target, abs(score) * intensity)


def _hex(color: RGBA) -> str:
    return to_hex_rgb(color) if color[3] == 255 else to_hex(color)


def shade(
    raster: Raster,
    light_direction: "LightDirection | str" = LightDirection.TOP_LEFT,
    intensity: float = 0.5,
    style: "ShadingStyle | str" = ShadingStyle.CELL,
    hue_shift: bool = True,
) -> ShadingResult:
    """Shade every flat region of `raster` and report the colors introduced."""
    require_range("intensity", intensity, 0.0, 1.0)
    direction = LightDirection.parse(light_direction)
    style = ShadingStyle.parse(style)
    out = raster.copy()
    light = direction.vector

    generated: List[str] = []
    seen_colors = set()
    shaded = 0
    ramps: Dict[RGBA, Ramp] = {}

    for members in find_regions(raster):
        if len(members) < 2:
            continue
        shaded += 1
        base = raster.get(*members[0])
        ramp = ramps.get(base)
        if ramp is None:
            ramp = ramps[base] = build_ramp(base, intensity, hue_shift)
        scores = facing_scores(members, light)
        for x, y in sorted(members, key=lambda p: (p[1], p[0])):
            color = _pick(style, ramp, scores[(x, y)], intensity, x, y)
            if color == base:
                continue
            out.set(x, y, color)
            if color not in seen_colors:
                seen_colors.add(color)
                generated.append(_hex(color))

    logger.info(
        "shade: %s/%s intensity=%.2f shaded %d regions, %d new colors",
        style.value,
        direction.value,
        intensity,
        shaded,
        len(generated),
    )
    return ShadingResult(raster=out, generated_colors=generated, regions_shaded=shaded)


# Palette-constrained shading


class PaletteShadingStyle(str, Enum):
    HARD = "hard"
    SMOOTH = "smooth"
    PILLOW = "pillow"

    @classmethod
    def parse(cls, value: "PaletteShadingStyle | str") -> "PaletteShadingStyle":
        if isinstance(value, cls):
            return value
        try:
            return cls(_parse_name(value))
        except ValueError:
            raise ConfigurationError(
                f"unknown palette shading style: {value!r}",
                error_code="UNKNOWN_STYLE",
                field="style",
            ) from None


@dataclass
class PaletteShadingResult:
    raster: Raster
    pixels_shaded: int = 0


def _palette_entries(palette: Sequence) -> List[Tuple[int, int, int]]:
    if not 1 <= len(palette) <= MAX_PALETTE_SIZE:
        raise ParameterError(
            f"palette must hold 1 to {MAX_PALETTE_SIZE} colors, got {len(palette)}", field="palette"
        )
    entries = []
    for entry in palette:
        color = parse_hex(entry) if isinstance(entry, str) else tuple(entry)
        entries.append((color[0], color[1], color[2]))
    return entries


def _palette_pick(
    style: PaletteShadingStyle,
    entries: List[Tuple[int, int, int]],
    color: RGBA,
    factor: float,
    intensity: float,
) -> Tuple[int, int, int]:
    if style is PaletteShadingStyle.HARD:
        idx = int(factor * (len(entries) - 1))
        return entries[max(0, min(len(entries) - 1, idx))]

    r, g, b = color[0], color[1], color[2]
    if style is PaletteShadingStyle.SMOOTH:
        mix = intensity * 0.5
        gain = factor / max(0.01, luminance(r, g, b) / 255.0)
        shaded = [c * (1.0 - mix) + c * gain * mix for c in (r, g, b)]
    else:
        # pillow: brightest where the light factor is mid-range, regardless of direction
        pillow = 1.0 - math.hypot(factor - 0.5, factor - 0.5)
        shaded = [c * (1.0 + pillow * intensity) for c in (r, g, b)]
    rgb = tuple(int(clamp(math.floor(v), 0, 255)) for v in shaded)
    return entries[nearest_index(rgb, entries)]


def shade_with_palette(
    raster: Raster,
    palette: Sequence,
    region: Optional[Region] = None,
    light_direction: "LightDirection | str" = LightDirection.TOP_LEFT,
    intensity: float = 0.5,
    style: "PaletteShadingStyle | str" = PaletteShadingStyle.SMOOTH,
) -> PaletteShadingResult:
    """
    Shade the visible pixels of `region` using only colors from `palette`.

    `palette` is ordered darkest to lightest. Every visible pixel in the region
    gets a light factor in [0, 1] from how directly it faces the light, measured
    against the centroid of all visible pixels in the region.

    - hard: picks the palette step matching the light factor.
    - smooth: scales the pixel toward the light factor's brightness, then snaps
      to the nearest palette color.
    - pillow: brightens around the middle of the factor range, then snaps.

    Alpha is kept and fully transparent pixels are never touched.
    """
    require_range("intensity", intensity, 0.0, 1.0)
    entries = _palette_entries(palette)
    direction = LightDirection.parse(light_direction)
    style = PaletteShadingStyle.parse(style)

    out = raster.copy()
    if raster.is_empty:
        return PaletteShadingResult(raster=out)
    if region is None:
        region = Region(0, 0, raster.width, raster.height)

    work = raster.crop(region)
    members = [(p.x, p.y) for p in work.iter_pixels() if p.color[3] > 0]
    if not members:
        return PaletteShadingResult(raster=out)

    scores = facing_scores(members, direction.vector)
    for x, y in members:
        color = work.get(x, y)
        factor = (scores[(x, y)] + 1.0) / 2.0
        work.set(x, y, _palette_pick(style, entries, color, factor, intensity) + (color[3],))
    out.paste(work, region.x, region.y)

    logger.info(
        "shade_with_palette: %s/%s intensity=%.2f shaded %d pixels with %d colors",
        style.value,
        direction.value,
        intensity,
        len(members),
        len(entries),
    )
    return PaletteShadingResult(raster=out, pixels_shaded=len(members))
