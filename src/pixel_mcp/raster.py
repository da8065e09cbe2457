"""
In-memory RGBA raster buffers.
Pillow is only used at the edges to decode and encode image files.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from PIL import Image

RGBA = Tuple[int, int, int, int]

TRANSPARENT: RGBA = (0, 0, 0, 0)


@dataclass(frozen=True)
class Region:
    """Rectangular area in pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError(f"region origin must be non-negative, got ({self.x}, {self.y})")
        if self.width < 1 or self.height < 1:
            raise ValueError(f"region size must be at least 1x1, got {self.width}x{self.height}")

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom


@dataclass(frozen=True)
class Pixel:
    x: int
    y: int
    color: RGBA


class Raster:
    """Dense row-major RGBA pixel buffer."""

    __slots__ = ("width", "height", "_pixels")

    def __init__(self, width: int, height: int, fill: RGBA = TRANSPARENT, pixels: Optional[List[RGBA]] = None):
        if width < 0 or height < 0:
            raise ValueError(f"raster size must be non-negative, got {width}x{height}")
        self.width = width
        self.height = height
        if pixels is None:
            self._pixels = [fill] * (width * height)
        else:
            if len(pixels) != width * height:
                raise ValueError(f"expected {width * height} pixels, got {len(pixels)}")
            self._pixels = [tuple(int(c) for c in p) for p in pixels]

    @classmethod
    def from_rows(cls, rows: List[List[RGBA]]) -> "Raster":
        height = len(rows)
        width = len(rows[0]) if rows else 0
        flat: list[RGBA] = []
        for row in rows:
            if len(row) != width:
                raise ValueError("all rows must have the same width")
            flat.extend(row)
        return cls(width, height, pixels=flat)

    @classmethod
    def from_image(cls, image: Image.Image) -> "Raster":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        w, h = image.size
        data = image.get_flattened_data() if hasattr(image, "get_flattened_data") else image.getdata()
        return cls(w, h, pixels=list(data))

    def to_image(self) -> Image.Image:
        img = Image.new("RGBA", (self.width, self.height))
        if self._pixels:
            img.putdata(self._pixels)
        return img

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> RGBA:
        if not self.in_bounds(x, y):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} raster")
        return self._pixels[y * self.width + x]

    def set(self, x: int, y: int, color: RGBA) -> None:
        if not self.in_bounds(x, y):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} raster")
        self._pixels[y * self.width + x] = color

    def pixels(self) -> List[RGBA]:
        """Row-major copy of the pixel list."""
        return list(self._pixels)

    def iter_pixels(self) -> Iterator[Pixel]:
        w = self.width
        for idx, color in enumerate(self._pixels):
            yield Pixel(idx % w, idx // w, color)

    def copy(self) -> "Raster":
        return Raster(self.width, self.height, pixels=self._pixels)

    def crop(self, region: Region) -> "Raster":
        out = Raster(region.width, region.height)
        for y in range(region.height):
            for x in range(region.width):
                sx, sy = region.x + x, region.y + y
                if self.in_bounds(sx, sy):
                    out.set(x, y, self.get(sx, sy))
        return out

    def paste(self, other: "Raster", x: int, y: int) -> int:
        """Write `other` at (x, y), clipping at the edges. Returns pixels written."""
        written = 0
        for oy in range(other.height):
            for ox in range(other.width):
                tx, ty = x + ox, y + oy
                if self.in_bounds(tx, ty):
                    self.set(tx, ty, other.get(ox, oy))
                    written += 1
        return written

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Raster):
            return NotImplemented
        return self.size == other.size and self._pixels == other._pixels

    def __repr__(self) -> str:
        return f"Raster({self.width}x{self.height})"


def load_raster(path: Path) -> Raster:
    with Image.open(path) as img:
        return Raster.from_image(img)


def save_raster(raster: Raster, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    raster.to_image().save(path, "PNG")
    return path
