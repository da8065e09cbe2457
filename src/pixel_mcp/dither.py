"""
Two-color region fills: ordered Bayer matrices, checkerboard, texture masks
and Floyd-Steinberg error diffusion.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Sequence, Tuple, Union

from .colorspace import parse_hex
from .errors import ConfigurationError, require_range
from .raster import RGBA, Raster, Region

logger = logging.getLogger(__name__)

ColorInput = Union[str, Sequence[int]]


class DitherPattern(str, Enum):
    BAYER_2X2 = "bayer_2x2"
    BAYER_4X4 = "bayer_4x4"
    BAYER_8X8 = "bayer_8x8"
    CHECKERBOARD = "checkerboard"
    FLOYD_STEINBERG = "floyd_steinberg"
    GRASS = "grass"
    WATER = "water"
    STONE = "stone"
    CLOUD = "cloud"
    BRICK = "brick"
    DOTS = "dots"
    DIAGONAL = "diagonal"
    CROSS = "cross"
    NOISE = "noise"
    HORIZONTAL_LINES = "horizontal_lines"
    VERTICAL_LINES = "vertical_lines"

    @classmethod
    def parse(cls, value: "DitherPattern | str") -> "DitherPattern":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"unknown dither pattern: {value!r}",
                error_code="UNKNOWN_PATTERN",
                field="pattern",
            ) from None

    @property
    def is_texture(self) -> bool:
        return self.value in TEXTURE_MASKS


_BRICK_MORTAR = [1, 1, 1, 1, 1, 1, 1, 1]

TEXTURE_MASKS: Dict[str, List[List[int]]] = {
    "grass": [
        [1, 0, 1, 0, 1, 0],
        [0, 1, 1, 0, 0, 1],
        [1, 1, 0, 1, 0, 0],
        [0, 1, 0, 1, 1, 0],
        [1, 0, 0, 0, 1, 1],
        [0, 0, 1, 1, 0, 1],
    ],
    "water": [
        [0, 0, 1, 1, 0, 0],
        [0, 1, 1, 1, 1, 0],
        [1, 1, 0, 0, 1, 1],
        [1, 0, 0, 0, 0, 1],
        [0, 1, 1, 1, 1, 0],
        [0, 0, 1, 1, 0, 0],
    ],
    "stone": [
        [0, 0, 0, 1, 1, 0],
        [0, 1, 0, 0, 1, 1],
        [0, 0, 1, 1, 0, 0],
        [1, 1, 0, 0, 0, 1],
        [1, 0, 0, 1, 1, 0],
        [0, 1, 1, 0, 0, 0],
    ],
    "cloud": [
        [0, 0, 0, 0, 1, 1],
        [0, 0, 0, 1, 1, 1],
        [0, 0, 1, 1, 1, 0],
        [0, 1, 1, 1, 0, 0],
        [1, 1, 1, 0, 0, 0],
        [1, 1, 0, 0, 0, 0],
    ],
    "brick": [
        [0, 0, 0, 0, 1, 0, 0, 0],
        [0, 0, 0, 0, 1, 0, 0, 0],
        _BRICK_MORTAR,
        [0, 0, 1, 0, 0, 0, 0, 1],
        [0, 0, 1, 0, 0, 0, 0, 1],
        _BRICK_MORTAR,
        [0, 0, 0, 0, 1, 0, 0, 0],
        [0, 0, 0, 0, 1, 0, 0, 0],
    ],
    "dots": [
        [1, 0, 0, 0],
        [0, 0, 0, 0],
        [0, 0, 1, 0],
        [0, 0, 0, 0],
    ],
    "diagonal": [
        [1, 0, 0, 0],
        [0, 1, 0, 0],
        [0, 0, 1, 0],
        [0, 0, 0, 1],
    ],
    "cross": [
        [0, 1, 0],
        [1, 1, 1],
        [0, 1, 0],
    ],
    "noise": [
        [1, 0, 1, 0, 0, 1],
        [0, 1, 0, 1, 1, 0],
        [1, 0, 0, 1, 0, 1],
        [0, 1, 1, 0, 1, 0],
        [0, 0, 1, 0, 1, 1],
        [1, 1, 0, 1, 0, 0],
    ],
    "horizontal_lines": [
        [1, 1, 1, 1],
        [0, 0, 0, 0],
        [1, 1, 1, 1],
        [0, 0, 0, 0],
    ],
    "vertical_lines": [
        [1, 0, 1, 0],
        [1, 0, 1, 0],
        [1, 0, 1, 0],
        [1, 0, 1, 0],
    ],
}


@lru_cache(maxsize=None)
def bayer_matrix(size: int) -> Tuple[Tuple[int, ...], ...]:
    """Index matrix of the given power-of-two size, values 0..size*size-1."""
    if size < 1 or size & (size - 1):
        raise ValueError(f"bayer matrix size must be a power of two, got {size}")
    matrix = [[0]]
    n = 1
    while n < size:
        bigger = [[0] * (2 * n) for _ in range(2 * n)]
        for y in range(n):
            for x in range(n):
                v = 4 * matrix[y][x]
                bigger[y][x] = v
                bigger[y][x + n] = v + 2
                bigger[y + n][x] = v + 3
                bigger[y + n][x + n] = v + 1
        matrix = bigger
        n *= 2
    return tuple(tuple(row) for row in matrix)


@lru_cache(maxsize=None)
def texture_thresholds(name: str) -> Tuple[Tuple[float, ...], ...]:
    """
    Turn a binary mask into rank thresholds.

    Mask cells take the lowest ranks in row-major order, so the mask shape
    appears first as density grows and density 1 still covers every cell.
    """
    mask = TEXTURE_MASKS[name]
    height = len(mask)
    width = len(mask[0])
    cells = [(x, y) for y in range(height) for x in range(width)]
    order = [c for c in cells if mask[c[1]][c[0]]] + [c for c in cells if not mask[c[1]][c[0]]]
    total = float(len(cells))
    ranks = [[0.0] * width for _ in range(height)]
    for rank, (x, y) in enumerate(order):
        ranks[y][x] = rank / total
    return tuple(tuple(row) for row in ranks)


_BAYER_SIZES = {
    DitherPattern.BAYER_2X2: 2,
    DitherPattern.BAYER_4X4: 4,
    DitherPattern.BAYER_8X8: 8,
}


def threshold(pattern: "DitherPattern | str", x: int, y: int) -> float:
    """Ordered-dither threshold in [0, 1) for local coordinate (x, y)."""
    pattern = DitherPattern.parse(pattern)
    if pattern in _BAYER_SIZES:
        n = _BAYER_SIZES[pattern]
        return bayer_matrix(n)[y % n][x % n] / float(n * n)
    if pattern is DitherPattern.CHECKERBOARD:
        return ((x + y) % 2) * 0.5
    if pattern.is_texture:
        table = texture_thresholds(pattern.value)
        return table[y % len(table)][x % len(table[0])]
    raise ConfigurationError(
        f"{pattern.value} is not an ordered pattern",
        error_code="UNKNOWN_PATTERN",
        field="pattern",
    )


def to_rgba(color: ColorInput) -> RGBA:
    if isinstance(color, str):
        return parse_hex(color)
    values = tuple(int(c) for c in color)
    if len(values) == 3:
        return values + (255,)  # type: ignore[return-value]
    if len(values) != 4:
        raise ValueError(f"expected RGB or RGBA tuple, got {color!r}")
    return values  # type: ignore[return-value]


def fill_dither(
    region: Region,
    color1: ColorInput,
    color2: ColorInput,
    pattern: "DitherPattern | str" = DitherPattern.BAYER_4X4,
    density: float = 0.5,
) -> Raster:
    """
    Fill a region-sized raster with a two-color pattern.

    Coordinates are local to the region, so the same fill is produced wherever
    the region sits. `density` is the share of `color2`.
    """
    require_range("density", density, 0.0, 1.0)
    pattern = DitherPattern.parse(pattern)
    c1 = to_rgba(color1)
    c2 = to_rgba(color2)
    out = Raster(region.width, region.height, fill=c1)

    if pattern is DitherPattern.FLOYD_STEINBERG:
        _floyd_steinberg(out, c1, c2, density)
        return out

    for y in range(region.height):
        for x in range(region.width):
            if threshold(pattern, x, y) < density:
                out.set(x, y, c2)
    logger.debug("fill_dither: %s %dx%d density=%.2f", pattern.value, region.width, region.height, density)
    return out


def _floyd_steinberg(out: Raster, c1: RGBA, c2: RGBA, density: float) -> None:
    w, h = out.width, out.height
    errors = [[0.0] * w for _ in range(h)]

    def carry(x: int, y: int, amount: float) -> None:
        errors[y][x] = max(-1.0, min(1.0, errors[y][x] + amount))

    for y in range(h):
        for x in range(w):
            value = density + errors[y][x]
            if value >= 0.5:
                out.set(x, y, c2)
                err = value - 1.0
            else:
                out.set(x, y, c1)
                err = value
            if x + 1 < w:
                carry(x + 1, y, err * 7 / 16)
            if y + 1 < h:
                if x > 0:
                    carry(x - 1, y + 1, err * 3 / 16)
                carry(x, y + 1, err * 5 / 16)
                if x + 1 < w:
                    carry(x + 1, y + 1, err * 1 / 16)
