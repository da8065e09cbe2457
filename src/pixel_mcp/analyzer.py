"""
Reference image analysis.

Extracts a sorted palette, a quantized brightness map, a Sobel edge map,
composition guides and dithering-zone suggestions from an arbitrary image.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import List, Sequence, Tuple

from .colorspace import hue_distance, luminance, nearest_index, rgb_to_hsl, to_hex_rgb
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .errors import ParameterError, require_range
from .models import (
    AnalysisMetadata,
    BrightnessMap,
    Composition,
    DitheringZone,
    EdgeLine,
    EdgeMap,
    FocalPoint,
    Intersection,
    PaletteColor,
    Point,
    ReferenceAnalysis,
    RegionModel,
    RuleOfThirds,
)
from .quantizer import kmeans_centroids
from .raster import Raster

logger = logging.getLogger(__name__)

_ROLE_NAMES = ["dark_shadow", "shadow", "midtone", "light", "highlight"]
_LEVEL_NAMES = ["darkest", "dark", "mid", "light", "lightest"]


def _ratio_name(ratio: float, names: Sequence[str]) -> str:
    for limit, name in zip((0.2, 0.4, 0.6, 0.8), names):
        if ratio < limit:
            return name
    return names[-1]


# Palette


def extract_palette(raster: Raster, palette_size: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> List[PaletteColor]:
    """k-means palette over visible pixels, sorted by hue then lightness."""
    histogram = Counter((r, g, b) for r, g, b, a in raster.pixels() if a > 0)
    total = sum(histogram.values())
    if not total:
        return []
    centroids = kmeans_centroids(
        dict(histogram),
        palette_size,
        max_iterations=config.kmeans_max_iterations,
        epsilon=config.kmeans_epsilon,
    )
    usage = [0] * len(centroids)
    for color, count in histogram.items():
        usage[nearest_index(color, centroids)] += count

    entries = []
    for color, used in zip(centroids, usage):
        h, s, l = rgb_to_hsl(*color)
        entries.append(
            PaletteColor(
                color=to_hex_rgb(color),
                hue=h,
                saturation=s,
                lightness=l,
                usage_percent=used * 100.0 / total,
            )
        )
    entries.sort(key=lambda e: (e.hue, e.lightness))

    by_lightness = sorted(range(len(entries)), key=lambda i: (entries[i].lightness, i))
    span = max(1, len(entries) - 1)
    for rank, idx in enumerate(by_lightness):
        ratio = rank / span if len(entries) > 1 else 0.5
        entries[idx].role = _ratio_name(ratio, _ROLE_NAMES)
    return entries


# Brightness


def luminance_grid(raster: Raster) -> List[List[float]]:
    """Rec. 709 luminance composited over black."""
    rows = []
    for y in range(raster.height):
        row = []
        for x in range(raster.width):
            r, g, b, a = raster.get(x, y)
            row.append(luminance(r, g, b) * a / 255.0)
        rows.append(row)
    return rows


def _area_weights(src: int, dst: int) -> List[List[Tuple[int, float]]]:
    """For each destination cell, the source indices it covers and their share."""
    scale = src / dst
    weights = []
    for d in range(dst):
        lo = d * scale
        hi = (d + 1) * scale
        cell = []
        s = int(math.floor(lo))
        while s < hi and s < src:
            overlap = min(hi, s + 1) - max(lo, s)
            if overlap > 0:
                cell.append((s, overlap / scale))
            s += 1
        weights.append(cell)
    return weights


def downsample(values: List[List[float]], target_width: int, target_height: int) -> List[List[float]]:
    """Separable area-average resample."""
    src_h = len(values)
    src_w = len(values[0]) if src_h else 0
    if not src_w:
        return [[0.0] * target_width for _ in range(target_height)]
    xw = _area_weights(src_w, target_width)
    yw = _area_weights(src_h, target_height)
    horizontal = [[sum(row[s] * w for s, w in cell) for cell in xw] for row in values]
    return [
        [sum(horizontal[s][tx] * w for s, w in yw[ty]) for tx in range(target_width)]
        for ty in range(target_height)
    ]


def brightness_map(raster: Raster, target_width: int, target_height: int, levels: int) -> BrightnessMap:
    require_range("brightness_levels", levels, 2, 10)
    small = downsample(luminance_grid(raster), target_width, target_height)
    grid = [[min(int(v * levels / 256.0), levels - 1) for v in row] for row in small]
    legend = {lvl: min(255, int((lvl + 0.5) * 256 / levels)) for lvl in range(levels)}
    labels = {lvl: _ratio_name(lvl / (levels - 1), _LEVEL_NAMES) for lvl in range(levels)}
    return BrightnessMap(grid=grid, legend=legend, labels=labels)


# Edges


def sobel_magnitudes(gray: List[List[float]]) -> List[List[float]]:
    h = len(gray)
    w = len(gray[0]) if h else 0
    mags = [[0.0] * w for _ in range(h)]
    for y in range(1, h - 1):
        above, row, below = gray[y - 1], gray[y], gray[y + 1]
        for x in range(1, w - 1):
            gx = -above[x - 1] + above[x + 1] - 2 * row[x - 1] + 2 * row[x + 1] - below[x - 1] + below[x + 1]
            gy = -above[x - 1] - 2 * above[x] - above[x + 1] + below[x - 1] + 2 * below[x] + below[x + 1]
            mags[y][x] = math.sqrt(gx * gx + gy * gy)
    return mags


def _edge_strength(total: float, length: int) -> float:
    return min(100.0, total / length / 255.0 * 100.0)


def find_major_edges(grid: List[List[bool]], mags: List[List[float]], min_length: int) -> List[EdgeLine]:
    """Horizontal then vertical runs of edge pixels at least `min_length` long."""
    h = len(grid)
    w = len(grid[0]) if h else 0
    lines: List[EdgeLine] = []

    for y in range(h):
        start = None
        for x in range(w + 1):
            on = x < w and grid[y][x]
            if on and start is None:
                start = x
            elif not on and start is not None:
                if x - start >= min_length:
                    total = sum(mags[y][start:x])
                    lines.append(
                        EdgeLine(start=Point(x=start, y=y), end=Point(x=x - 1, y=y), strength=_edge_strength(total, x - start))
                    )
                start = None

    for x in range(w):
        start = None
        for y in range(h + 1):
            on = y < h and grid[y][x]
            if on and start is None:
                start = y
            elif not on and start is not None:
                if y - start >= min_length:
                    total = sum(mags[i][x] for i in range(start, y))
                    lines.append(
                        EdgeLine(start=Point(x=x, y=start), end=Point(x=x, y=y - 1), strength=_edge_strength(total, y - start))
                    )
                start = None
    return lines


def detect_edges(raster: Raster, edge_threshold: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> EdgeMap:
    """Sobel edge map at source resolution. Border pixels are never edges."""
    require_range("edge_threshold", edge_threshold, 0, 255)
    mags = sobel_magnitudes(luminance_grid(raster))
    grid = [[m > edge_threshold for m in row] for row in mags]
    return EdgeMap(grid=grid, major_edges=find_major_edges(grid, mags, config.major_edge_min_length))


# Composition


def thirds(length: int) -> List[int]:
    return [int(length / 3 + 0.5), int(2 * length / 3 + 0.5)]


def _summed_area(grid: List[List[bool]]) -> List[List[int]]:
    h = len(grid)
    w = len(grid[0]) if h else 0
    sat = [[0] * (w + 1) for _ in range(h + 1)]
    for y in range(h):
        running = 0
        for x in range(w):
            running += 1 if grid[y][x] else 0
            sat[y + 1][x + 1] = sat[y][x + 1] + running
    return sat


def find_focal_points(edge_grid: List[List[bool]], config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> List[FocalPoint]:
    """
    Local maxima of edge density over a sliding window.

    Windows advance by half their size. A window is a maximum when its density
    is at least that of every neighbor and strictly greater than neighbors that
    come earlier in row-major order, so plateaus report one point.
    """
    h = len(edge_grid)
    w = len(edge_grid[0]) if h else 0
    if not w or not h:
        return []
    window = config.focal_window or max(3, min(w, h) // 8)
    window = min(window, w, h)
    step = max(1, window // 2)
    sat = _summed_area(edge_grid)
    area = float(window * window)

    xs = list(range(0, w - window + 1, step))
    ys = list(range(0, h - window + 1, step))
    density = [
        [
            (sat[y0 + window][x0 + window] - sat[y0][x0 + window] - sat[y0 + window][x0] + sat[y0][x0]) / area
            for x0 in xs
        ]
        for y0 in ys
    ]

    candidates = []
    for j in range(len(ys)):
        for i in range(len(xs)):
            d = density[j][i]
            if d <= 0:
                continue
            is_peak = True
            for dj in (-1, 0, 1):
                for di in (-1, 0, 1):
                    if not dj and not di:
                        continue
                    nj, ni = j + dj, i + di
                    if not (0 <= nj < len(ys) and 0 <= ni < len(xs)):
                        continue
                    other = density[nj][ni]
                    earlier = (nj, ni) < (j, i)
                    if other > d or (earlier and other == d):
                        is_peak = False
            if is_peak:
                candidates.append((d, xs[i] + window // 2, ys[j] + window // 2))

    if not candidates:
        return []
    candidates.sort(key=lambda c: -c[0])
    top = candidates[0][0]
    return [FocalPoint(x=x, y=y, strength=d / top) for d, x, y in candidates[: config.max_focal_points]]


def analyze_composition(width: int, height: int, edge_map: EdgeMap, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> Composition:
    verticals = thirds(width)
    horizontals = thirds(height)
    focal_points = find_focal_points(edge_map.grid, config)

    intersections = []
    for vx in verticals:
        for hy in horizontals:
            near = any(math.hypot(vx - fp.x, hy - fp.y) < width / 6.0 for fp in focal_points)
            intersections.append(Intersection(x=vx, y=hy, has_focal_point=near))

    dominant = None
    if width and height:
        dominant = RegionModel(x=width // 4, y=height // 4, width=max(1, width // 2), height=max(1, height // 2))

    return Composition(
        rule_of_thirds=RuleOfThirds(horizontal_lines=horizontals, vertical_lines=verticals, intersections=intersections),
        focal_points=focal_points,
        dominant_region=dominant,
    )


# Dithering zones


def _gray_hex(level_value: int) -> str:
    return to_hex_rgb((level_value, level_value, level_value))


def _nearest_by_lightness(palette: List[PaletteColor], lightness: float, count: int) -> List[PaletteColor]:
    ranked = sorted(range(len(palette)), key=lambda i: (abs(palette[i].lightness - lightness), i))
    return [palette[i] for i in ranked[:count]]


def suggest_dithering_zones(
    palette: List[PaletteColor],
    bmap: BrightnessMap,
    edge_grid: List[List[bool]],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> List[DitheringZone]:
    grid = bmap.grid
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    src_h = len(edge_grid)
    src_w = len(edge_grid[0]) if src_h else 0
    limit = config.max_dithering_zones
    zones: List[DitheringZone] = []
    if not rows or not cols or limit == 0:
        return zones

    for y in range(rows):
        start = 0
        for x in range(1, cols + 1):
            if x < cols and grid[y][x] > grid[y][x - 1]:
                continue
            if x - start >= 3:
                level = grid[y][start]
                low_mid = bmap.legend[level] / 255.0
                high_mid = bmap.legend[level + 1] / 255.0
                colors = [_gray_hex(bmap.legend[level]), _gray_hex(bmap.legend[level + 1])]
                if palette:
                    low = _nearest_by_lightness(palette, low_mid, 1)[0]
                    high = _nearest_by_lightness(palette, high_mid, 1)[0]
                    if low.color != high.color:
                        colors = [low.color, high.color]
                zones.append(
                    DitheringZone(
                        region=RegionModel(x=start, y=y, width=x - start, height=1),
                        type="gradient",
                        colors=colors,
                        pattern="bayer_4x4",
                        reason=f"brightness rises across {x - start} cells",
                    )
                )
                if len(zones) >= limit:
                    return zones
            start = x

    if len(palette) < 2 or not src_w:
        return zones

    for y0 in range(0, rows - 2, 3):
        for x0 in range(0, cols - 2, 3):
            level = grid[y0][x0]
            if any(grid[y0 + dy][x0 + dx] != level for dy in range(3) for dx in range(3)):
                continue
            sx0 = x0 * src_w // cols
            sx1 = max(sx0 + 1, min(src_w, -(-(x0 + 3) * src_w // cols)))
            sy0 = y0 * src_h // rows
            sy1 = max(sy0 + 1, min(src_h, -(-(y0 + 3) * src_h // rows)))
            edges = sum(1 for sy in range(sy0, sy1) for sx in range(sx0, sx1) if edge_grid[sy][sx])
            if edges / float((sx1 - sx0) * (sy1 - sy0)) >= 0.1:
                continue
            pair = _nearest_by_lightness(palette, bmap.legend[level] / 255.0, 2)
            zones.append(
                DitheringZone(
                    region=RegionModel(x=x0, y=y0, width=3, height=3),
                    type="texture",
                    colors=[pair[0].color, pair[1].color],
                    pattern="checkerboard",
                    reason="flat area with uniform brightness",
                )
            )
            if len(zones) >= limit:
                return zones
    return zones


# Metadata


def dominant_hue(palette: List[PaletteColor]) -> float:
    """Usage-weighted circular mean of the palette hues."""
    sx = sy = 0.0
    for entry in palette:
        rad = math.radians(entry.hue)
        sx += math.cos(rad) * entry.usage_percent
        sy += math.sin(rad) * entry.usage_percent
    if abs(sx) < 1e-9 and abs(sy) < 1e-9:
        return 0.0
    return math.degrees(math.atan2(sy, sx)) % 360.0


def classify_harmony(palette: List[PaletteColor]) -> str:
    if len(palette) < 2:
        return "monochromatic"
    hues = [p.hue for p in palette]
    spread = max(
        hue_distance(hues[i], hues[j]) for i in range(len(hues)) for j in range(i + 1, len(hues))
    )
    if 150 <= spread <= 210:
        return "complementary"
    if spread < 60:
        return "analogous"
    if len(hues) >= 3:
        segments = {min(int(h // 120), 2) for h in hues}
        if len(segments) == 3:
            return "triadic"
    return "diverse"


def classify_contrast(palette: List[PaletteColor]) -> str:
    if not palette:
        return "low"
    lightness = [p.lightness for p in palette]
    spread = (max(lightness) - min(lightness)) * 100.0
    if spread < 30:
        return "low"
    if spread > 60:
        return "high"
    return "medium"


def analyze(
    raster: Raster,
    target_width: int,
    target_height: int,
    palette_size: int = 16,
    brightness_levels: int = 5,
    edge_threshold: int = 30,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> ReferenceAnalysis:
    """Run every analysis pass over `raster`."""
    if target_width < 1 or target_height < 1:
        raise ParameterError(
            f"target size must be positive, got {target_width}x{target_height}", field="target_width"
        )
    require_range("palette_size", palette_size, 5, 32)
    require_range("brightness_levels", brightness_levels, 2, 10)
    require_range("edge_threshold", edge_threshold, 0, 255)

    palette = extract_palette(raster, palette_size, config)
    bmap = brightness_map(raster, target_width, target_height, brightness_levels)
    edges = detect_edges(raster, edge_threshold, config)
    composition = analyze_composition(raster.width, raster.height, edges, config)
    zones = suggest_dithering_zones(palette, bmap, edges.grid, config)

    metadata = AnalysisMetadata(
        source_width=raster.width,
        source_height=raster.height,
        target_width=target_width,
        target_height=target_height,
        scale_factor=target_width / raster.width if raster.width else 0.0,
        dominant_hue=dominant_hue(palette),
        color_harmony=classify_harmony(palette),
        contrast_ratio=classify_contrast(palette),
    )
    logger.info(
        "analyze: %dx%d -> %dx%d, %d colors, %d edges, %d zones",
        raster.width,
        raster.height,
        target_width,
        target_height,
        len(palette),
        len(edges.major_edges),
        len(zones),
    )
    return ReferenceAnalysis(
        palette=palette,
        brightness_map=bmap,
        edge_map=edges,
        composition=composition,
        dithering_zones=zones,
        metadata=metadata,
    )
