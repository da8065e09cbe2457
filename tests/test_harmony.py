from __future__ import annotations

import pytest

from pixel_mcp.errors import ColorParseError, ConfigurationError
from pixel_mcp.harmony import analyze_harmonies, classify_temperature, sort_palette


def test_complementary_pair_detected() -> None:
    result = analyze_harmonies(["#FF0000", "#00FFFF"])
    assert len(result.complementary) == 1
    pair = result.complementary[0]
    assert (pair.color1, pair.color2) == ("#FF0000", "#00FFFF")
    assert pair.hue_distance == pytest.approx(180)
    assert pair.contrast == pytest.approx(0.5)


def test_near_hues_are_not_complementary() -> None:
    assert analyze_harmonies(["#FF0000", "#FF8000"]).complementary == []


def test_triadic_set_detected() -> None:
    result = analyze_harmonies(["#FF0000", "#00FF00", "#0000FF"])
    assert len(result.triadic) == 1
    group = result.triadic[0]
    assert group.colors == ["#FF0000", "#00FF00", "#0000FF"]
    assert group.score == pytest.approx(1.0)


def test_analogous_groups_need_three_colors() -> None:
    result = analyze_harmonies(["#FF0000", "#FF4000", "#FF8000"])
    assert result.analogous
    assert all(len(g.colors) >= 3 for g in result.analogous)
    assert "#FF4000" in result.analogous[0].colors

    assert analyze_harmonies(["#FF0000", "#FF4000"]).analogous == []


def test_identical_hues_are_not_analogous() -> None:
    assert analyze_harmonies(["#FF0000", "#800000", "#FF0000"]).analogous == []


@pytest.mark.parametrize(
    ("hue", "saturation", "expected"),
    [
        (10, 0.9, "warm"),
        (330, 0.9, "warm"),
        (200, 0.9, "cool"),
        (120, 0.9, "neutral"),
        (10, 0.1, "neutral"),
    ],
)
def test_classify_temperature(hue: float, saturation: float, expected: str) -> None:
    assert classify_temperature(hue, saturation) == expected


def test_temperature_summary_and_dominant() -> None:
    result = analyze_harmonies(["#FF0000", "#FF8000", "#0000FF", "#808080"])
    temp = result.temperature
    assert temp.warm == ["#FF0000", "#FF8000"]
    assert temp.cool == ["#0000FF"]
    assert temp.neutral == ["#808080"]
    assert temp.dominant == "warm"


def test_dominant_requires_strict_majority() -> None:
    result = analyze_harmonies(["#FF0000", "#0000FF"])
    assert result.temperature.dominant == "neutral"


def test_invalid_color_rejected() -> None:
    with pytest.raises(ColorParseError):
        analyze_harmonies(["#FF0000", "blue"])


def test_sort_palette_by_hue() -> None:
    palette = ["#0000FF", "#FF0000", "#00FF00"]
    assert sort_palette(palette) == ["#FF0000", "#00FF00", "#0000FF"]
    assert sort_palette(palette, ascending=False) == ["#0000FF", "#00FF00", "#FF0000"]
    assert palette == ["#0000FF", "#FF0000", "#00FF00"]


def test_sort_palette_by_saturation_and_lightness() -> None:
    assert sort_palette(["#FF0000", "#808080", "#C04040"], "saturation") == ["#808080", "#C04040", "#FF0000"]
    assert sort_palette(["#FFFFFF", "#000000", "#808080"], "Luminance") == ["#000000", "#808080", "#FFFFFF"]
    assert sort_palette(["#FFFFFF", "#000000"], "brightness") == ["#000000", "#FFFFFF"]


def test_sort_palette_keeps_ties_in_input_order() -> None:
    assert sort_palette(["#FF0000", "#800000"], "hue") == ["#FF0000", "#800000"]
    assert sort_palette(["#FF0000", "#800000"], "hue", ascending=False) == ["#FF0000", "#800000"]


def test_sort_palette_unknown_method() -> None:
    with pytest.raises(ConfigurationError) as exc:
        sort_palette(["#FF0000"], "warmth")
    assert exc.value.error_code == "UNKNOWN_SORT_METHOD"
    assert exc.value.field == "method"
