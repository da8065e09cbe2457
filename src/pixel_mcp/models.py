"""
Data models for engine results and tool requests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .colorspace import parse_hex
from .raster import Region


class RegionModel(BaseModel):
    """Rectangle in pixel coordinates."""

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(ge=1)
    height: int = Field(ge=1)

    @classmethod
    def from_region(cls, region: Region) -> "RegionModel":
        return cls(x=region.x, y=region.y, width=region.width, height=region.height)

    def to_region(self) -> Region:
        return Region(self.x, self.y, self.width, self.height)


class QuantizationResult(BaseModel):
    palette: list[str] = Field(default_factory=list, description="Representative colors as #RRGGBB")
    original_color_count: int = Field(ge=0, description="Distinct RGBA colors in the source")
    quantized_color_count: int = Field(ge=0)
    algorithm_used: str


class PaletteColor(BaseModel):
    color: str
    hue: float = Field(ge=0, lt=360)
    saturation: float = Field(ge=0, le=1)
    lightness: float = Field(ge=0, le=1)
    usage_percent: float = Field(ge=0, le=100)
    role: str = "midtone"


class BrightnessMap(BaseModel):
    grid: list[list[int]]
    legend: dict[int, int]
    labels: dict[int, str] = Field(default_factory=dict)


class Point(BaseModel):
    x: int
    y: int


class EdgeLine(BaseModel):
    start: Point = Field(serialization_alias="from")
    end: Point = Field(serialization_alias="to")
    strength: float = Field(ge=0, le=100)


class EdgeMap(BaseModel):
    grid: list[list[bool]]
    major_edges: list[EdgeLine] = Field(default_factory=list)


class Intersection(BaseModel):
    x: int
    y: int
    has_focal_point: bool = False


class RuleOfThirds(BaseModel):
    horizontal_lines: list[int]
    vertical_lines: list[int]
    intersections: list[Intersection] = Field(default_factory=list)


class FocalPoint(BaseModel):
    x: int
    y: int
    strength: float = Field(ge=0, le=1)


class Composition(BaseModel):
    rule_of_thirds: RuleOfThirds
    focal_points: list[FocalPoint] = Field(default_factory=list)
    dominant_region: Optional[RegionModel] = None


class DitheringZone(BaseModel):
    region: RegionModel
    type: Literal["gradient", "texture"]
    colors: list[str]
    pattern: str
    reason: str


class AnalysisMetadata(BaseModel):
    source_width: int
    source_height: int
    target_width: int
    target_height: int
    scale_factor: float
    dominant_hue: float
    color_harmony: str
    contrast_ratio: str


class ReferenceAnalysis(BaseModel):
    palette: list[PaletteColor]
    brightness_map: BrightnessMap
    edge_map: EdgeMap
    composition: Composition
    dithering_zones: list[DitheringZone] = Field(default_factory=list)
    metadata: AnalysisMetadata


class EdgeSuggestion(BaseModel):
    """Proposed fill for the empty corner at (x, y).

    current_color is what the corner holds now; neighbor_color is the color of
    the three pixels forming the stair step.
    """

    x: int
    y: int
    current_color: str
    neighbor_color: str
    suggested_color: str
    direction: str


class ComplementaryPair(BaseModel):
    color1: str
    color2: str
    hue_distance: float
    contrast: float = 0.0
    description: str = ""


class HueGroup(BaseModel):
    colors: list[str]
    hues: list[float]
    score: float = 0.0
    description: str = ""


class TemperatureSummary(BaseModel):
    warm: list[str] = Field(default_factory=list)
    cool: list[str] = Field(default_factory=list)
    neutral: list[str] = Field(default_factory=list)
    dominant: str = "neutral"
    description: str = ""


class HarmonyAnalysis(BaseModel):
    complementary: list[ComplementaryPair] = Field(default_factory=list)
    triadic: list[HueGroup] = Field(default_factory=list)
    analogous: list[HueGroup] = Field(default_factory=list)
    temperature: TemperatureSummary = Field(default_factory=TemperatureSummary)


# Tool request models


def _lower(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _check_hex(value: str) -> str:
    parse_hex(value)
    return value


class ImageRequest(BaseModel):
    input_path: Path
    output_path: Optional[Path] = None
    allow_external_paths: bool = False


class QuantizeRequest(ImageRequest):
    target_colors: int = Field(default=16, ge=2, le=256)
    algorithm: str = Field(default="median_cut")
    preserve_transparency: bool = True
    remap: bool = Field(default=False, description="Write a copy mapped onto the palette")
    dither: bool = Field(default=False, description="Use error diffusion when remapping")
    max_samples: Optional[int] = Field(default=None, ge=1)

    @field_validator("algorithm", mode="before")
    @classmethod
    def _normalize_algorithm(cls, value):
        return _lower(value)


class AnalyzeRequest(ImageRequest):
    target_width: int = Field(ge=1, le=4096)
    target_height: int = Field(ge=1, le=4096)
    palette_size: int = Field(default=16, ge=5, le=32)
    brightness_levels: int = Field(default=5, ge=2, le=10)
    edge_threshold: int = Field(default=30, ge=0, le=255)
    include_grids: bool = Field(default=True, description="Include brightness/edge grids in the response")


class DitherRequest(ImageRequest):
    region: RegionModel
    color1: str
    color2: str
    pattern: str = "bayer_4x4"
    density: float = Field(default=0.5, ge=0, le=1)

    @field_validator("pattern", mode="before")
    @classmethod
    def _normalize_pattern(cls, value):
        return _lower(value)

    @field_validator("color1", "color2")
    @classmethod
    def _check_colors(cls, value: str) -> str:
        return _check_hex(value)


class AntialiasRequest(ImageRequest):
    region: Optional[RegionModel] = None
    threshold: int = Field(default=128, ge=0, le=255)
    use_palette: bool = False
    palette: list[str] = Field(default_factory=list)
    auto_apply: bool = False

    @field_validator("palette")
    @classmethod
    def _check_palette(cls, value: list[str]) -> list[str]:
        for entry in value:
            parse_hex(entry)
        return value


class ShadeRequest(ImageRequest):
    light_direction: str = "top_left"
    intensity: float = Field(default=0.5, ge=0, le=1)
    style: str = "cell"
    hue_shift: bool = True

    @field_validator("light_direction", "style", mode="before")
    @classmethod
    def _normalize_names(cls, value):
        return _lower(value)


class HarmonyRequest(BaseModel):
    palette: list[str] = Field(min_length=1)

    @field_validator("palette")
    @classmethod
    def _check_palette(cls, value: list[str]) -> list[str]:
        for entry in value:
            parse_hex(entry)
        return value


class PaletteShadeRequest(ImageRequest):
    palette: list[str] = Field(min_length=1, max_length=256, description="Hex colors ordered darkest to lightest")
    region: Optional[RegionModel] = Field(default=None, description="Area to shade (default: whole image)")
    light_direction: str = "top_left"
    intensity: float = Field(default=0.5, ge=0, le=1)
    style: str = Field(default="smooth", description="hard, smooth or pillow")

    @field_validator("light_direction", "style", mode="before")
    @classmethod
    def _normalize_names(cls, value):
        return _lower(value)

    @field_validator("palette")
    @classmethod
    def _check_palette(cls, value: list[str]) -> list[str]:
        for entry in value:
            parse_hex(entry)
        return value


class SortPaletteRequest(BaseModel):
    palette: list[str] = Field(min_length=1)
    method: str = Field(default="hue", description="hue, saturation, brightness or luminance")
    ascending: bool = True

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value):
        return _lower(value)

    @field_validator("palette")
    @classmethod
    def _check_palette(cls, value: list[str]) -> list[str]:
        for entry in value:
            parse_hex(entry)
        return value
