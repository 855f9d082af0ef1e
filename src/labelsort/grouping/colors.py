"""Color family classification.

Raw color samples are bucketed into a fixed list of perceptual families using
hue/saturation/lightness ranges. Families are tried in list order and the
first matching range wins.
"""

from __future__ import annotations

import colorsys
import math
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from labelsort.state.models import MAX_COLORS, ColorSample

LOGGER = logging.getLogger(__name__)

_HEX = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class HSLRange:
    """Inclusive hue/saturation/lightness bounds; hue wraps when ``hue[0] > hue[1]``."""

    hue: tuple[int, int]
    saturation: tuple[int, int]
    lightness: tuple[int, int]

    def contains(self, hue: int, saturation: int, lightness: int) -> bool:
        low, high = self.hue
        if low <= high:
            hue_ok = low <= hue <= high
        else:
            hue_ok = hue >= low or hue <= high
        return (
            hue_ok
            and self.saturation[0] <= saturation <= self.saturation[1]
            and self.lightness[0] <= lightness <= self.lightness[1]
        )


@dataclass(frozen=True)
class ColorFamily:
    name: str
    ranges: tuple[HSLRange, ...]


COLOR_FAMILIES: tuple[ColorFamily, ...] = (
    ColorFamily(
        "red",
        (
            HSLRange((0, 30), (30, 100), (20, 80)),
            HSLRange((330, 360), (30, 100), (20, 80)),
        ),
    ),
    ColorFamily("orange", (HSLRange((15, 45), (40, 100), (30, 80)),)),
    ColorFamily("yellow", (HSLRange((45, 75), (30, 100), (40, 90)),)),
    ColorFamily("green", (HSLRange((75, 165), (25, 100), (20, 80)),)),
    ColorFamily("blue", (HSLRange((180, 260), (30, 100), (20, 80)),)),
    ColorFamily("purple", (HSLRange((260, 330), (30, 100), (20, 80)),)),
    ColorFamily("brown", (HSLRange((15, 45), (20, 80), (15, 50)),)),
    ColorFamily("beige", (HSLRange((30, 60), (10, 40), (60, 90)),)),
    ColorFamily("tan", (HSLRange((25, 45), (15, 50), (50, 75)),)),
    ColorFamily("gray", (HSLRange((0, 360), (0, 20), (20, 80)),)),
    ColorFamily("black", (HSLRange((0, 360), (0, 100), (0, 25)),)),
    ColorFamily("white", (HSLRange((0, 360), (0, 20), (80, 100)),)),
)

# Label backgrounds photograph as beige/tan and say nothing about the sample.
IGNORED_FAMILIES = frozenset({"beige", "tan"})
NEUTRAL_FAMILIES = frozenset({"white", "black", "gray"})

_INTENSITY_MODIFIERS = re.compile(r"\b(light|dark|bright|deep|pale|vivid)\s+")
_NAME_SYNONYMS: dict[str, str] = {
    "brown": "brown",
    "chocolate": "brown",
    "sienna": "brown",
    "tan": "tan",
    "beige": "beige",
    "cream": "white",
    "ivory": "white",
    "white": "white",
    "orange": "orange",
    "tangerine": "orange",
    "amber": "orange",
    "red": "red",
    "crimson": "red",
    "scarlet": "red",
    "pink": "red",
    "rose": "red",
    "salmon": "red",
    "blue": "blue",
    "navy": "blue",
    "azure": "blue",
    "green": "green",
    "lime": "green",
    "forest": "green",
    "yellow": "yellow",
    "gold": "yellow",
    "golden": "yellow",
    "purple": "purple",
    "violet": "purple",
    "magenta": "purple",
    "gray": "gray",
    "grey": "gray",
    "silver": "gray",
    "black": "black",
    "charcoal": "black",
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 becomes 3)."""
    return math.floor(value + 0.5)


def hex_to_hsl(value: str) -> tuple[int, int, int]:
    """Convert ``#rrggbb`` (or ``#rgb``) into integer hue/saturation/lightness.

    Returns:
        tuple[int, int, int]: Hue in degrees (0-360), saturation and lightness
        as percentages (0-100), each rounded half up to the nearest integer.

    Raises:
        ValueError: If ``value`` is not a hex color.
    """
    match = _HEX.match(value.strip())
    if match is None:
        raise ValueError(f"Not a hex color: {value!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    red, green, blue = (int(digits[i : i + 2], 16) / 255 for i in (0, 2, 4))
    hue, lightness, saturation = colorsys.rgb_to_hls(red, green, blue)
    return (
        round_half_up(hue * 360),
        round_half_up(saturation * 100),
        round_half_up(lightness * 100),
    )


def classify(color_value: Optional[str]) -> Optional[str]:
    """Return the family name for ``color_value`` or ``None`` when nothing matches."""
    if not color_value:
        return None
    try:
        hue, saturation, lightness = hex_to_hsl(color_value)
    except ValueError:
        LOGGER.debug("Unable to classify color %r", color_value)
        return None
    for family in COLOR_FAMILIES:
        if any(r.contains(hue, saturation, lightness) for r in family.ranges):
            return family.name
    return None


def family_from_name(color_name: Optional[str]) -> Optional[str]:
    """Map a free-text color name such as ``dark orange`` onto a family."""
    if not color_name:
        return None
    normalized = _INTENSITY_MODIFIERS.sub("", color_name.lower()).strip()
    if normalized in _NAME_SYNONYMS:
        return _NAME_SYNONYMS[normalized]
    for word in reversed(normalized.split()):
        if word in _NAME_SYNONYMS:
            return _NAME_SYNONYMS[word]
    return None


def sample_family(sample: ColorSample) -> Optional[str]:
    """Classify a sample by value, falling back to its name."""
    return classify(sample.color_value) or family_from_name(sample.color_name)


def is_ignored(family: Optional[str]) -> bool:
    return family is None or family in IGNORED_FAMILIES


def is_neutral(family: Optional[str]) -> bool:
    return family in NEUTRAL_FAMILIES


def meaningful_families(colors: Sequence[ColorSample]) -> list[str]:
    """Return non-neutral, non-ignored families of the top colors."""
    families = (classify(sample.color_value) for sample in colors[:MAX_COLORS])
    return [f for f in families if f is not None and not is_ignored(f) and not is_neutral(f)]


def neutral_families(colors: Sequence[ColorSample]) -> list[str]:
    """Return the neutral families of the top colors."""
    families = (classify(sample.color_value) for sample in colors[:MAX_COLORS])
    return [f for f in families if f is not None and is_neutral(f)]


def families_match(first: Sequence[ColorSample], second: Sequence[ColorSample]) -> Optional[str]:
    """Return a shared family when the two color lists match, else ``None``.

    Meaningful families are compared first. Neutral families are only compared
    when neither side has a meaningful family, so a colorful sample never
    matches a purely neutral one.
    """
    if not first or not second:
        return None

    meaningful_a = meaningful_families(first)
    meaningful_b = meaningful_families(second)
    if meaningful_a and meaningful_b:
        return _first_shared(meaningful_a, meaningful_b)
    if meaningful_a or meaningful_b:
        return None
    return _first_shared(neutral_families(first), neutral_families(second))


def overlap_ratio(first: Sequence[ColorSample], second: Sequence[ColorSample]) -> float:
    """Return the share of top colors with a family present on the other side."""
    families_a = [sample_family(s) for s in first[:MAX_COLORS]]
    families_b = [sample_family(s) for s in second[:MAX_COLORS]]
    if not families_a or not families_b:
        return 0.0
    known_b = {family for family in families_b if family is not None}
    matches = sum(1 for family in families_a if family is not None and family in known_b)
    return matches / max(len(families_a), len(families_b))


def _first_shared(first: Iterable[str], second: Iterable[str]) -> Optional[str]:
    others = set(second)
    for family in first:
        if family in others:
            return family
    return None


__all__ = [
    "COLOR_FAMILIES",
    "IGNORED_FAMILIES",
    "NEUTRAL_FAMILIES",
    "hex_to_hsl",
    "round_half_up",
    "classify",
    "family_from_name",
    "sample_family",
    "is_ignored",
    "is_neutral",
    "meaningful_families",
    "neutral_families",
    "families_match",
    "overlap_ratio",
]
