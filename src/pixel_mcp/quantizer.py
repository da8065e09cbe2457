"""
Palette quantization.

Three interchangeable strategies reduce an image to at most N representative
colors: median cut, k-means and octree. All of them work on the histogram of
unique RGB colors, weighted by pixel count, so results depend only on the
image content and never on iteration order of a hash map.
"""

from __future__ import annotations

import heapq
import logging
from abc import ABC, abstractmethod
import math
from collections import Counter
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .colorspace import RGB, clamp, nearest_index, rgb_to_hsl, to_hex_rgb
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .errors import ConfigurationError, require_range
from .models import QuantizationResult
from .raster import RGBA, Raster

logger = logging.getLogger(__name__)

MIN_COLORS = 2
MAX_COLORS = 256


class QuantizeAlgorithm(str, Enum):
    MEDIAN_CUT = "median_cut"
    KMEANS = "kmeans"
    OCTREE = "octree"

    @classmethod
    def parse(cls, value: "QuantizeAlgorithm | str") -> "QuantizeAlgorithm":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(a.value for a in cls)
            raise ConfigurationError(
                f"unknown algorithm: {value!r} (must be one of {names})",
                error_code="UNKNOWN_ALGORITHM",
                field="algorithm",
            ) from None


def _round_half_up(total: float, count: float) -> int:
    return int(math.floor(total / count + 0.5))


def _weighted_mean(colors: Iterable[Tuple[RGB, int]]) -> RGB:
    sr = sg = sb = n = 0
    for (r, g, b), count in colors:
        sr += r * count
        sg += g * count
        sb += b * count
        n += count
    # integer half-up rounding, avoids float drift on large images
    return ((2 * sr + n) // (2 * n), (2 * sg + n) // (2 * n), (2 * sb + n) // (2 * n))


def _dedupe(colors: Iterable[RGB]) -> List[RGB]:
    seen = set()
    out = []
    for c in colors:
        if c not in seen:
            seen.add(c)
            out.append(c)
    return out


class QuantizerStrategy(ABC):
    """Builds a palette from a weighted histogram of unique RGB colors."""

    algorithm: QuantizeAlgorithm

    def __init__(self, config: EngineConfig = DEFAULT_ENGINE_CONFIG):
        self.config = config

    @abstractmethod
    def build_palette(self, histogram: Dict[RGB, int], target_colors: int) -> List[RGB]:
        ...


# Median cut


class _Bucket:
    __slots__ = ("colors", "population")

    def __init__(self, colors: List[Tuple[RGB, int]]):
        self.colors = colors
        self.population = sum(count for _, count in colors)

    @property
    def splittable(self) -> bool:
        return len(self.colors) > 1

    def widest_channel(self) -> int:
        best_channel = 0
        best_range = -1
        for ch in range(3):
            values = [c[ch] for c, _ in self.colors]
            spread = max(values) - min(values)
            if spread > best_range:
                best_range = spread
                best_channel = ch
        return best_channel

    def split(self) -> Tuple["_Bucket", "_Bucket"]:
        ch = self.widest_channel()
        ordered = sorted(self.colors, key=lambda item: (item[0][ch], item[0]))
        half = self.population / 2.0
        running = 0
        median = ordered[-1][0][ch]
        for color, count in ordered:
            running += count
            if running >= half:
                median = color[ch]
                break

        left = [item for item in ordered if item[0][ch] < median]
        if left:
            right = [item for item in ordered if item[0][ch] >= median]
        else:
            left = [item for item in ordered if item[0][ch] <= median]
            right = [item for item in ordered if item[0][ch] > median]
        return _Bucket(left), _Bucket(right)


class MedianCutStrategy(QuantizerStrategy):
    algorithm = QuantizeAlgorithm.MEDIAN_CUT

    def build_palette(self, histogram: Dict[RGB, int], target_colors: int) -> List[RGB]:
        if not histogram:
            return []
        buckets = [_Bucket(sorted(histogram.items()))]
        while len(buckets) < target_colors:
            idx = -1
            best = -1
            for i, bucket in enumerate(buckets):
                if bucket.splittable and bucket.population > best:
                    best = bucket.population
                    idx = i
            if idx < 0:
                break
            left, right = buckets[idx].split()
            buckets[idx] = left
            buckets.insert(idx + 1, right)
        return _dedupe(_weighted_mean(b.colors) for b in buckets)


# K-means


def _sq_dist(a: Sequence[float], b: Sequence[float]) -> float:
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    return dr * dr + dg * dg + db * db


def _farthest_point(points: Sequence[RGB], centroids: Sequence[Sequence[float]]) -> RGB:
    best = points[0]
    best_dist = -1.0
    for p in points:
        d = min(_sq_dist(p, c) for c in centroids)
        if d > best_dist:
            best_dist = d
            best = p
    return best


def kmeans_centroids(
    histogram: Dict[RGB, int],
    k: int,
    *,
    max_iterations: int = 100,
    epsilon: float = 0.5,
) -> List[RGB]:
    """
    Lloyd's algorithm over unique colors weighted by pixel count.

    Seeds are evenly spaced picks from the unique colors sorted by lightness,
    so the same histogram always yields the same centroids.
    """
    if not histogram or k < 1:
        return []
    points = sorted(histogram)
    weights = [histogram[p] for p in points]
    k = min(k, len(points))

    by_lightness = sorted(points, key=lambda c: (rgb_to_hsl(*c)[2], c))
    if k == 1:
        seeds = [by_lightness[len(by_lightness) // 2]]
    else:
        n = len(by_lightness)
        seeds = [by_lightness[i * (n - 1) // (k - 1)] for i in range(k)]
    centroids: List[List[float]] = [[float(v) for v in s] for s in seeds]

    for iteration in range(max_iterations):
        sums = [[0.0, 0.0, 0.0] for _ in range(k)]
        totals = [0] * k
        for p, w in zip(points, weights):
            idx = nearest_index(p, centroids)
            sums[idx][0] += p[0] * w
            sums[idx][1] += p[1] * w
            sums[idx][2] += p[2] * w
            totals[idx] += w

        new_centroids: List[List[float]] = []
        for idx in range(k):
            if totals[idx]:
                new_centroids.append([s / totals[idx] for s in sums[idx]])
            else:
                new_centroids.append(list(centroids[idx]))
        for idx in range(k):
            if not totals[idx]:
                reseed = _farthest_point(points, new_centroids)
                logger.debug("kmeans: reseeding empty cluster %d to %s", idx, reseed)
                new_centroids[idx] = [float(v) for v in reseed]

        movement = max(math.sqrt(_sq_dist(a, b)) for a, b in zip(centroids, new_centroids))
        centroids = new_centroids
        if movement < epsilon:
            logger.debug("kmeans: converged after %d iterations", iteration + 1)
            break

    rounded = [
        tuple(int(clamp(math.floor(v + 0.5), 0, 255)) for v in c)
        for c in centroids
    ]
    return _dedupe(rounded)  # type: ignore[arg-type]


class KMeansStrategy(QuantizerStrategy):
    algorithm = QuantizeAlgorithm.KMEANS

    def build_palette(self, histogram: Dict[RGB, int], target_colors: int) -> List[RGB]:
        return kmeans_centroids(
            histogram,
            target_colors,
            max_iterations=self.config.kmeans_max_iterations,
            epsilon=self.config.kmeans_epsilon,
        )


# Octree

_OCTREE_DEPTH = 8


class _OctreeNode:
    __slots__ = ("level", "seq", "parent", "children", "is_leaf", "r", "g", "b", "count")

    def __init__(self, level: int, seq: int, parent: Optional["_OctreeNode"]):
        self.level = level
        self.seq = seq
        self.parent = parent
        self.children: List[Optional[_OctreeNode]] = [None] * 8
        self.is_leaf = level == _OCTREE_DEPTH
        self.r = self.g = self.b = self.count = 0

    def child_nodes(self) -> List["_OctreeNode"]:
        return [c for c in self.children if c is not None]

    def reducible(self) -> bool:
        kids = self.child_nodes()
        return not self.is_leaf and bool(kids) and all(c.is_leaf for c in kids)


class OctreeStrategy(QuantizerStrategy):
    algorithm = QuantizeAlgorithm.OCTREE

    def build_palette(self, histogram: Dict[RGB, int], target_colors: int) -> List[RGB]:
        if not histogram:
            return []
        seq = 0
        root = _OctreeNode(0, seq, None)
        internal: List[_OctreeNode] = [root]
        leaves = 0

        for (r, g, b), count in sorted(histogram.items()):
            node = root
            node.r += r * count
            node.g += g * count
            node.b += b * count
            node.count += count
            for level in range(_OCTREE_DEPTH):
                bit = 7 - level
                idx = (((r >> bit) & 1) << 2) | (((g >> bit) & 1) << 1) | ((b >> bit) & 1)
                child = node.children[idx]
                if child is None:
                    seq += 1
                    child = _OctreeNode(level + 1, seq, node)
                    node.children[idx] = child
                    if child.is_leaf:
                        leaves += 1
                    else:
                        internal.append(child)
                child.r += r * count
                child.g += g * count
                child.b += b * count
                child.count += count
                node = child

        heap = [(n.count, -n.level, n.seq, n) for n in internal if n.reducible()]
        heapq.heapify(heap)
        while leaves > target_colors and heap:
            _, _, _, node = heapq.heappop(heap)
            kids = node.child_nodes()
            node.children = [None] * 8
            node.is_leaf = True
            leaves -= len(kids) - 1
            parent = node.parent
            if parent is not None and parent.reducible():
                heapq.heappush(heap, (parent.count, -parent.level, parent.seq, parent))

        palette: List[RGB] = []
        stack = [root]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                palette.append(
                    (
                        _round_half_up(node.r, node.count),
                        _round_half_up(node.g, node.count),
                        _round_half_up(node.b, node.count),
                    )
                )
                continue
            # reversed so child 0 is visited first
            stack.extend(reversed(node.child_nodes()))
        return _dedupe(palette)


STRATEGIES = {
    QuantizeAlgorithm.MEDIAN_CUT: MedianCutStrategy,
    QuantizeAlgorithm.KMEANS: KMeansStrategy,
    QuantizeAlgorithm.OCTREE: OctreeStrategy,
}


def get_strategy(algorithm: "QuantizeAlgorithm | str", config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> QuantizerStrategy:
    return STRATEGIES[QuantizeAlgorithm.parse(algorithm)](config)


def count_unique_colors(raster: Raster, ignore_transparent: bool = False) -> int:
    """Number of distinct RGBA values, optionally skipping fully transparent pixels."""
    if ignore_transparent:
        return len({p for p in raster.pixels() if p[3] > 0})
    return len(set(raster.pixels()))


def sample_pixels(pixels: List[RGBA], max_samples: Optional[int]) -> List[RGBA]:
    """Uniform stride subsample, keeping the first pixel."""
    if not max_samples or len(pixels) <= max_samples:
        return pixels
    step = len(pixels) / max_samples
    return [pixels[int(i * step)] for i in range(max_samples)]


def color_histogram(pixels: Iterable[RGBA], preserve_transparency: bool = True) -> Dict[RGB, int]:
    counts: Counter = Counter()
    for r, g, b, a in pixels:
        if preserve_transparency and a == 0:
            continue
        counts[(r, g, b)] += 1
    return dict(counts)


def quantize(
    raster: Raster,
    target_colors: int,
    algorithm: "QuantizeAlgorithm | str" = QuantizeAlgorithm.MEDIAN_CUT,
    preserve_transparency: bool = True,
    max_samples: Optional[int] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> QuantizationResult:
    """
    Reduce `raster` to at most `target_colors` representative colors.

    Fully transparent pixels are left out of clustering when
    `preserve_transparency` is set. The palette may be shorter than requested
    when the image has fewer distinct colors.
    """
    require_range("target_colors", target_colors, MIN_COLORS, MAX_COLORS)
    algo = QuantizeAlgorithm.parse(algorithm)
    if max_samples is None:
        max_samples = config.max_samples

    pixels = raster.pixels()
    original = len(set(pixels))
    if not pixels:
        return QuantizationResult(palette=[], original_color_count=0, quantized_color_count=0, algorithm_used=algo.value)

    if preserve_transparency:
        pixels = [p for p in pixels if p[3] > 0]
    pixels = sample_pixels(pixels, max_samples)
    histogram = color_histogram(pixels, preserve_transparency)

    strategy = STRATEGIES[algo](config)
    colors = strategy.build_palette(histogram, target_colors)
    palette = [to_hex_rgb(c) for c in colors]
    logger.debug(
        "quantize: %s reduced %d unique colors to %d",
        algo.value,
        len(histogram),
        len(palette),
    )
    return QuantizationResult(
        palette=palette,
        original_color_count=original,
        quantized_color_count=len(palette),
        algorithm_used=algo.value,
    )


def remap(raster: Raster, palette: Sequence[Sequence[int]], dither: bool = False) -> Raster:
    """
    Map every visible pixel to its nearest palette entry.

    Fully transparent pixels pass through untouched and the source alpha is
    kept. With `dither`, Floyd-Steinberg error diffusion runs on RGB with the
    working values clamped to [0, 255].
    """
    out = raster.copy()
    if not palette or raster.is_empty:
        return out
    entries = [tuple(int(v) for v in c[:3]) for c in palette]
    w, h = raster.width, raster.height

    if not dither:
        cache: Dict[RGB, RGB] = {}
        for y in range(h):
            for x in range(w):
                r, g, b, a = raster.get(x, y)
                if a == 0:
                    continue
                key = (r, g, b)
                if key not in cache:
                    cache[key] = entries[nearest_index(key, entries)]
                out.set(x, y, cache[key] + (a,))
        return out

    work = [[float(c) for c in raster.get(x, y)[:3]] for y in range(h) for x in range(w)]

    def diffuse(idx: int, err: Tuple[float, float, float], factor: float) -> None:
        cell = work[idx]
        for ch in range(3):
            cell[ch] = clamp(cell[ch] + err[ch] * factor, 0.0, 255.0)

    for y in range(h):
        for x in range(w):
            a = raster.get(x, y)[3]
            if a == 0:
                continue
            idx = y * w + x
            old = work[idx]
            new = entries[nearest_index(old, entries)]
            out.set(x, y, new + (a,))
            err = (old[0] - new[0], old[1] - new[1], old[2] - new[2])
            if x + 1 < w:
                diffuse(idx + 1, err, 7 / 16)
            if y + 1 < h:
                if x > 0:
                    diffuse(idx + w - 1, err, 3 / 16)
                diffuse(idx + w, err, 5 / 16)
                if x + 1 < w:
                    diffuse(idx + w + 1, err, 1 / 16)
    return out
