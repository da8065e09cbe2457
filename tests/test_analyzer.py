from __future__ import annotations

import pytest

from pixel_mcp.analyzer import (
    analyze,
    brightness_map,
    classify_contrast,
    classify_harmony,
    detect_edges,
    dominant_hue,
    downsample,
    extract_palette,
    thirds,
)
from pixel_mcp.colorspace import hue_distance
from pixel_mcp.config import EngineConfig
from pixel_mcp.errors import ParameterError
from pixel_mcp.models import PaletteColor
from pixel_mcp.raster import Raster

BLACK = (0, 0, 0, 255)
WHITE = (255, 255, 255, 255)


def split_raster(size: int = 10) -> Raster:
    """Black left half, white right half."""
    rows = [[BLACK if x < size // 2 else WHITE for x in range(size)] for _ in range(size)]
    return Raster.from_rows(rows)


def entry(hue: float, lightness: float = 0.5, usage: float = 10.0) -> PaletteColor:
    return PaletteColor(color="#000000", hue=hue, saturation=0.8, lightness=lightness, usage_percent=usage)


def test_thirds_round_to_nearest() -> None:
    assert thirds(100) == [33, 67]
    assert thirds(10) == [3, 7]
    assert thirds(0) == [0, 0]


def test_palette_is_sorted_and_usage_sums_to_hundred() -> None:
    pixels = [(255, 0, 0, 255)] * 30 + [(0, 0, 255, 255)] * 50 + [(0, 200, 0, 255)] * 20
    palette = extract_palette(Raster(10, 10, pixels=pixels), 8)

    assert [p.color for p in palette] == ["#FF0000", "#00C800", "#0000FF"]
    assert [p.usage_percent for p in palette] == pytest.approx([30.0, 20.0, 50.0])
    assert sum(p.usage_percent for p in palette) == pytest.approx(100.0)


def test_palette_ignores_transparent_pixels() -> None:
    raster = Raster(2, 1, pixels=[(255, 0, 0, 255), (0, 255, 0, 0)])
    palette = extract_palette(raster, 5)
    assert [p.color for p in palette] == ["#FF0000"]
    assert extract_palette(Raster(3, 3), 5) == []


def test_palette_roles_follow_lightness() -> None:
    palette = extract_palette(split_raster(), 16)
    assert [p.color for p in palette] == ["#000000", "#FFFFFF"]
    assert [p.role for p in palette] == ["dark_shadow", "highlight"]


def test_brightness_legend_uses_level_midpoints(solid) -> None:
    bmap = brightness_map(solid(4, 4, WHITE), 2, 2, 4)
    assert bmap.legend == {0: 32, 1: 96, 2: 160, 3: 224}
    assert bmap.grid == [[3, 3], [3, 3]]
    assert bmap.labels[0] == "darkest"
    assert bmap.labels[3] == "lightest"


def test_brightness_map_area_averages() -> None:
    bmap = brightness_map(split_raster(), 2, 1, 2)
    assert bmap.grid == [[0, 1]]


def test_downsample_averages_partial_cells() -> None:
    out = downsample([[0.0, 30.0, 60.0]], 2, 1)
    assert out[0] == pytest.approx([10.0, 50.0])


def test_transparent_pixels_are_dark(solid) -> None:
    bmap = brightness_map(solid(3, 3, (255, 255, 255, 0)), 1, 1, 5)
    assert bmap.grid == [[0]]


def test_edges_found_on_boundary_only() -> None:
    edges = detect_edges(split_raster(), 30)
    for y, row in enumerate(edges.grid):
        for x, on in enumerate(row):
            assert on == (x in (4, 5) and 1 <= y <= 8)

    assert len(edges.major_edges) == 2
    first, second = edges.major_edges
    assert (first.start.x, first.start.y, first.end.x, first.end.y) == (4, 1, 4, 8)
    assert (second.start.x, second.end.x) == (5, 5)
    assert first.strength == pytest.approx(100.0)


def test_edge_lines_serialize_with_from_and_to() -> None:
    line = detect_edges(split_raster(), 30).major_edges[0]
    dumped = line.model_dump(by_alias=True)
    assert dumped["from"] == {"x": 4, "y": 1}
    assert dumped["to"] == {"x": 4, "y": 8}


def test_short_runs_are_not_major_edges() -> None:
    config = EngineConfig(major_edge_min_length=9)
    assert detect_edges(split_raster(), 30, config).major_edges == []


def test_threshold_filters_weak_edges() -> None:
    dim = (10, 10, 10, 255)
    raster = Raster.from_rows([[BLACK if x < 3 else dim for x in range(6)] for _ in range(6)])
    assert any(any(row) for row in detect_edges(raster, 30).grid)
    assert not any(any(row) for row in detect_edges(raster, 50).grid)


def test_composition_on_split_image() -> None:
    result = analyze(split_raster(), 5, 5)
    comp = result.composition
    assert comp.rule_of_thirds.vertical_lines == [3, 7]
    assert comp.rule_of_thirds.horizontal_lines == [3, 7]
    assert len(comp.rule_of_thirds.intersections) == 4
    assert 1 <= len(comp.focal_points) <= 3
    assert comp.focal_points[0].strength == pytest.approx(1.0)
    assert all(0 < fp.strength <= 1 for fp in comp.focal_points)
    assert (comp.dominant_region.x, comp.dominant_region.width) == (2, 5)


def test_metadata_on_split_image() -> None:
    meta = analyze(split_raster(), 5, 4).metadata
    assert (meta.source_width, meta.source_height) == (10, 10)
    assert (meta.target_width, meta.target_height) == (5, 4)
    assert meta.scale_factor == pytest.approx(0.5)
    assert meta.contrast_ratio == "high"


def test_gradient_zone_from_rising_row() -> None:
    pixels = [(20 + 40 * x, 20 + 40 * x, 20 + 40 * x, 255) for x in range(6)]
    result = analyze(Raster(6, 1, pixels=pixels), 6, 1, brightness_levels=6)

    assert result.brightness_map.grid == [[0, 1, 2, 3, 4, 5]]
    assert len(result.dithering_zones) == 1
    zone = result.dithering_zones[0]
    assert zone.type == "gradient"
    assert zone.pattern == "bayer_4x4"
    assert (zone.region.x, zone.region.y, zone.region.width, zone.region.height) == (0, 0, 6, 1)
    assert zone.colors == ["#141414", "#3C3C3C"]


def test_texture_zone_on_flat_area(solid) -> None:
    raster = solid(12, 12, (128, 128, 128, 255))
    raster.set(0, 0, (130, 120, 128, 255))
    zones = analyze(raster, 3, 3).dithering_zones

    assert len(zones) == 1
    zone = zones[0]
    assert zone.type == "texture"
    assert zone.pattern == "checkerboard"
    assert zone.region.width == zone.region.height == 3
    assert zone.colors == ["#808080", "#827880"]


def test_zone_count_is_capped(solid) -> None:
    raster = solid(12, 12, (128, 128, 128, 255))
    raster.set(0, 0, (130, 120, 128, 255))
    config = EngineConfig(max_dithering_zones=0)
    assert analyze(raster, 3, 3, config=config).dithering_zones == []


def test_empty_image_is_not_an_error() -> None:
    result = analyze(Raster(0, 0), 4, 4)
    assert result.palette == []
    assert result.brightness_map.grid == [[0] * 4 for _ in range(4)]
    assert result.edge_map.major_edges == []
    assert result.composition.focal_points == []
    assert result.composition.dominant_region is None
    assert result.metadata.scale_factor == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"target_width": 0, "target_height": 4},
        {"target_width": 4, "target_height": 4, "palette_size": 4},
        {"target_width": 4, "target_height": 4, "brightness_levels": 11},
        {"target_width": 4, "target_height": 4, "edge_threshold": 256},
    ],
)
def test_parameters_validated(kwargs) -> None:
    with pytest.raises(ParameterError):
        analyze(split_raster(), **kwargs)


def test_classify_harmony() -> None:
    assert classify_harmony([entry(10)]) == "monochromatic"
    assert classify_harmony([entry(10), entry(40)]) == "analogous"
    assert classify_harmony([entry(0), entry(180)]) == "complementary"
    assert classify_harmony([entry(0), entry(100), entry(130)]) == "diverse"
    assert classify_harmony([entry(10), entry(130), entry(250)]) == "triadic"


def test_classify_contrast() -> None:
    assert classify_contrast([entry(0, 0.4), entry(0, 0.5)]) == "low"
    assert classify_contrast([entry(0, 0.2), entry(0, 0.7)]) == "medium"
    assert classify_contrast([entry(0, 0.1), entry(0, 0.9)]) == "high"


def test_dominant_hue_wraps_around_red() -> None:
    hue = dominant_hue([entry(350, usage=50), entry(10, usage=50)])
    assert hue_distance(hue, 0) < 1e-6
    assert dominant_hue([entry(100, usage=10), entry(140, usage=30)]) == pytest.approx(130, abs=1)
