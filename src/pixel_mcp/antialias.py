"""
Diagonal staircase detection.

Finds 2x2 L-shaped steps (three pixels of one color around a transparent
corner) and proposes a blended fill for the corner.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .colorspace import blend, nearest_in_palette, parse_hex, to_hex
from .errors import require_range
from .models import EdgeSuggestion
from .raster import RGBA, TRANSPARENT, Raster, Region

logger = logging.getLogger(__name__)

Coord = Tuple[int, int]

DIAGONAL_NE = "diagonal_ne"
DIAGONAL_NW = "diagonal_nw"
DIAGONAL_SE = "diagonal_se"
DIAGONAL_SW = "diagonal_sw"


class PixelGrid:
    """Sparse pixel map keyed by (x, y). Absent or alpha 0 means transparent."""

    def __init__(self, pixels: Optional[Dict[Coord, RGBA]] = None):
        self._pixels: Dict[Coord, RGBA] = dict(pixels or {})

    @classmethod
    def from_raster(cls, raster: Raster) -> "PixelGrid":
        return cls({(p.x, p.y): p.color for p in raster.iter_pixels() if p.color[3] > 0})

    def set(self, x: int, y: int, color: RGBA) -> None:
        self._pixels[(x, y)] = color

    def raw(self, x: int, y: int) -> RGBA:
        """Stored color, or fully transparent black when nothing is stored."""
        return self._pixels.get((x, y), TRANSPARENT)

    def filled(self, x: int, y: int) -> Optional[RGBA]:
        color = self._pixels.get((x, y))
        if color is None or color[3] == 0:
            return None
        return color

    def bounds(self) -> Optional[Region]:
        if not self._pixels:
            return None
        xs = [x for x, _ in self._pixels]
        ys = [y for _, y in self._pixels]
        x0, y0 = max(0, min(xs)), max(0, min(ys))
        return Region(x0, y0, max(xs) - x0 + 1, max(ys) - y0 + 1)

    def __len__(self) -> int:
        return len(self._pixels)


def _match(grid: PixelGrid, region: Region, x: int, y: int) -> Iterable[Tuple[str, Coord, RGBA]]:
    """Yield (direction, corner, color) for every pattern anchored at (x, y)."""

    def inside(*coords: Coord) -> bool:
        return all(region.contains(cx, cy) for cx, cy in coords)

    def empty(cx: int, cy: int) -> bool:
        return grid.filled(cx, cy) is None

    here = grid.filled(x, y)
    if here is not None:
        if (
            inside((x + 1, y), (x, y + 1), (x + 1, y + 1))
            and grid.filled(x + 1, y) == here
            and empty(x, y + 1)
            and grid.filled(x + 1, y + 1) == here
        ):
            yield DIAGONAL_NE, (x, y + 1), here
        if (
            inside((x - 1, y), (x, y + 1), (x - 1, y + 1))
            and grid.filled(x - 1, y) == here
            and empty(x, y + 1)
            and grid.filled(x - 1, y + 1) == here
        ):
            yield DIAGONAL_NW, (x, y + 1), here
        return

    right = grid.filled(x + 1, y)
    if (
        right is not None
        and inside((x + 1, y), (x, y + 1), (x + 1, y + 1))
        and grid.filled(x, y + 1) == right
        and grid.filled(x + 1, y + 1) == right
    ):
        yield DIAGONAL_SE, (x, y), right
    left = grid.filled(x - 1, y)
    if (
        left is not None
        and inside((x - 1, y), (x - 1, y + 1), (x, y + 1))
        and grid.filled(x - 1, y + 1) == left
        and grid.filled(x, y + 1) == left
    ):
        yield DIAGONAL_SW, (x, y), left


def suggest(
    grid: PixelGrid,
    region: Optional[Region] = None,
    threshold: int = 128,
    use_palette: bool = False,
    palette: Sequence = (),
) -> List[EdgeSuggestion]:
    """
    Propose corner fills for diagonal stair steps inside `region`.

    `threshold` is validated but detection is an exact pattern match.
    With `use_palette`, the blended color snaps to the nearest palette entry.
    """
    require_range("threshold", threshold, 0, 255)
    if region is None:
        region = grid.bounds()
        if region is None:
            return []
    entries: List[RGBA] = [parse_hex(c) if isinstance(c, str) else tuple(c) for c in palette]

    seen = set()
    out: List[EdgeSuggestion] = []
    for y in range(region.y, region.bottom):
        for x in range(region.x, region.right):
            for direction, corner, color in _match(grid, region, x, y):
                if corner in seen:
                    continue
                seen.add(corner)
                original = grid.raw(*corner)
                suggested = blend(color, original)
                if use_palette and entries:
                    suggested = nearest_in_palette(suggested, entries)
                out.append(
                    EdgeSuggestion(
                        x=corner[0],
                        y=corner[1],
                        current_color=to_hex(original),
                        neighbor_color=to_hex(color),
                        suggested_color=to_hex(suggested),
                        direction=direction,
                    )
                )
    logger.debug("antialias: %d suggestions in %s", len(out), region)
    return out


def apply_suggestions(raster: Raster, suggestions: Iterable[EdgeSuggestion]) -> Raster:
    """Return a copy of `raster` with every in-bounds suggestion written."""
    out = raster.copy()
    for s in suggestions:
        if out.in_bounds(s.x, s.y):
            out.set(s.x, s.y, parse_hex(s.suggested_color))
    return out
