"""
Color-theory relationships inside a palette.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .colorspace import hue_distance, parse_hex, rgb_to_hsl
from .errors import ConfigurationError
from .models import ComplementaryPair, HarmonyAnalysis, HueGroup, TemperatureSummary

logger = logging.getLogger(__name__)

NEUTRAL_SATURATION = 0.2

# HSL component used by each sort method
SORT_KEYS = {"hue": 0, "saturation": 1, "brightness": 2, "luminance": 2}


def classify_temperature(hue: float, saturation: float) -> str:
    if saturation < NEUTRAL_SATURATION:
        return "neutral"
    if hue <= 60 or hue >= 300:
        return "warm"
    if 180 <= hue < 300:
        return "cool"
    return "neutral"


def analyze_harmonies(palette: Sequence[str]) -> HarmonyAnalysis:
    """Complementary pairs, triadic sets, analogous groups and temperature balance."""
    colors = []
    for hex_color in palette:
        r, g, b, _ = parse_hex(hex_color)
        h, s, l = rgb_to_hsl(r, g, b)
        colors.append((hex_color, h, s, l))

    complementary: List[ComplementaryPair] = []
    for i in range(len(colors)):
        for j in range(i + 1, len(colors)):
            dist = hue_distance(colors[i][1], colors[j][1])
            if dist >= 150:
                complementary.append(
                    ComplementaryPair(
                        color1=colors[i][0],
                        color2=colors[j][0],
                        hue_distance=dist,
                        contrast=(colors[i][3] + colors[j][3]) / 2.0,
                        description=f"High contrast pair ({dist:.0f} degrees apart)",
                    )
                )

    triadic: List[HueGroup] = []
    for i in range(len(colors)):
        for j in range(i + 1, len(colors)):
            for k in range(j + 1, len(colors)):
                gaps = (
                    hue_distance(colors[i][1], colors[j][1]),
                    hue_distance(colors[j][1], colors[k][1]),
                    hue_distance(colors[k][1], colors[i][1]),
                )
                if all(abs(gap - 120) <= 30 for gap in gaps):
                    balance = 1.0 - abs(sum(gaps) / 3.0 - 120) / 120.0
                    triadic.append(
                        HueGroup(
                            colors=[colors[i][0], colors[j][0], colors[k][0]],
                            hues=[colors[i][1], colors[j][1], colors[k][1]],
                            score=balance,
                            description=f"Triadic set ({balance:.2f} balance)",
                        )
                    )

    analogous: List[HueGroup] = []
    for i, anchor in enumerate(colors):
        group = [anchor]
        for j, other in enumerate(colors):
            if i != j and 0 < hue_distance(anchor[1], other[1]) <= 60:
                group.append(other)
        if len(group) >= 3:
            analogous.append(
                HueGroup(
                    colors=[c[0] for c in group],
                    hues=[c[1] for c in group],
                    score=1.0 / len(group),
                    description=f"Adjacent hues around {anchor[0]} ({len(group)} colors)",
                )
            )

    buckets = {"warm": [], "cool": [], "neutral": []}
    for hex_color, h, s, _ in colors:
        buckets[classify_temperature(h, s)].append(hex_color)
    warm, cool, neutral = len(buckets["warm"]), len(buckets["cool"]), len(buckets["neutral"])
    dominant = "neutral"
    if warm > cool and warm > neutral:
        dominant = "warm"
    elif cool > warm and cool > neutral:
        dominant = "cool"

    logger.debug("harmonies: %d complementary, %d triadic, %d analogous", len(complementary), len(triadic), len(analogous))
    return HarmonyAnalysis(
        complementary=complementary,
        triadic=triadic,
        analogous=analogous,
        temperature=TemperatureSummary(
            warm=buckets["warm"],
            cool=buckets["cool"],
            neutral=buckets["neutral"],
            dominant=dominant,
            description=f"Palette is predominantly {dominant} ({warm} warm, {cool} cool, {neutral} neutral)",
        ),
    )


def sort_palette(palette: Sequence[str], method: str = "hue", ascending: bool = True) -> List[str]:
    """Order hex colors by hue, saturation or lightness. Equal keys keep their input order."""
    name = str(method).strip().lower()
    if name not in SORT_KEYS:
        raise ConfigurationError(
            f"unknown sort method: {method!r} (expected one of {', '.join(SORT_KEYS)})",
            error_code="UNKNOWN_SORT_METHOD",
            field="method",
        )
    component = SORT_KEYS[name]

    def key(hex_color: str) -> float:
        r, g, b, _ = parse_hex(hex_color)
        return rgb_to_hsl(r, g, b)[component]

    return sorted(palette, key=key, reverse=not ascending)
