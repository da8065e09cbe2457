from __future__ import annotations

from pixel_mcp.raster import TRANSPARENT, Raster, Region


def numbered(width: int, height: int) -> Raster:
    return Raster(width, height, pixels=[(i, 0, 0, 255) for i in range(width * height)])


def test_crop_copies_the_region() -> None:
    out = numbered(4, 3).crop(Region(1, 1, 2, 2))
    assert out.size == (2, 2)
    assert out.pixels() == [(5, 0, 0, 255), (6, 0, 0, 255), (9, 0, 0, 255), (10, 0, 0, 255)]


def test_crop_past_the_edge_is_transparent() -> None:
    out = numbered(3, 3).crop(Region(2, 2, 2, 2))
    assert out.get(0, 0) == (8, 0, 0, 255)
    assert out.get(1, 0) == TRANSPARENT
    assert out.get(0, 1) == TRANSPARENT
    assert out.get(1, 1) == TRANSPARENT


def test_crop_does_not_alias_the_source() -> None:
    raster = numbered(2, 2)
    out = raster.crop(Region(0, 0, 2, 2))
    out.set(0, 0, (99, 99, 99, 255))
    assert raster.get(0, 0) == (0, 0, 0, 255)


def test_paste_clips_and_counts_written_pixels() -> None:
    target = Raster(3, 3)
    written = target.paste(Raster(2, 2, fill=(1, 2, 3, 255)), 2, 2)
    assert written == 1
    assert target.get(2, 2) == (1, 2, 3, 255)
    assert target.get(1, 1) == TRANSPARENT
