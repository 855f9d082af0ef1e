"""Sample code formats and validation.

Each pattern is described segment by segment so new formats can be added
without writing regular expressions. A code is valid when it matches any
enabled pattern after trimming and upper-casing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Literal, Optional, Sequence

SegmentKind = Literal["fixed", "letters", "range", "range_with_letter"]

_LETTER_SUFFIX = re.compile(r"^(\d+)([A-Z])$")


@dataclass(frozen=True)
class CodeSegment:
    """One separator-delimited segment of a code.

    Attributes:
        name: Human-readable segment name.
        kind: ``fixed`` (one of ``values``), ``letters`` (``length`` A-Z letters),
            ``range`` (integer within ``minimum..maximum``), or
            ``range_with_letter`` (integer within range followed by one of ``values``).
        values: Accepted literal values or suffix letters.
        minimum: Inclusive lower bound for numeric segments.
        maximum: Inclusive upper bound for numeric segments.
        length: Letter count for ``letters`` segments.
    """

    name: str
    kind: SegmentKind
    values: tuple[str, ...] = ()
    minimum: int = 0
    maximum: int = 0
    length: int = 0

    def matches(self, token: str) -> bool:
        if self.kind == "fixed":
            return token in self.values
        if self.kind == "letters":
            return len(token) == self.length and token.isascii() and token.isalpha()
        if self.kind == "range":
            if not (token.isascii() and token.isdigit()):
                return False
            return self.minimum <= int(token) <= self.maximum
        match = _LETTER_SUFFIX.match(token)
        if match is None:
            return False
        number, letter = int(match.group(1)), match.group(2)
        return self.minimum <= number <= self.maximum and letter in self.values

    def describe(self) -> str:
        if self.kind == "fixed":
            return "|".join(self.values)
        if self.kind == "letters":
            return f"[A-Z]{{{self.length}}}"
        if self.kind == "range":
            return f"[{self.minimum}-{self.maximum}]"
        return f"[{self.minimum}-{self.maximum}][{self.values[0]}-{self.values[-1]}]"


@dataclass(frozen=True)
class CodePattern:
    """A complete code format."""

    id: str
    name: str
    example: str
    segments: tuple[CodeSegment, ...]
    separator: str = "."
    notes: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, code: str) -> bool:
        tokens = code.split(self.separator)
        if len(tokens) != len(self.segments):
            return False
        return all(segment.matches(token) for segment, token in zip(self.segments, tokens))

    def describe(self) -> str:
        return self.separator.join(segment.describe() for segment in self.segments)


def _range(name: str, minimum: int, maximum: int) -> CodeSegment:
    return CodeSegment(name=name, kind="range", minimum=minimum, maximum=maximum)


def _fixed(name: str, *values: str) -> CodeSegment:
    return CodeSegment(name=name, kind="fixed", values=values)


SAMPLE_CODE_PATTERNS: tuple[CodePattern, ...] = (
    CodePattern(
        id="generic_3_digit",
        name="Generic 3-Digit Country Code",
        example="AGO.1.0",
        segments=(
            CodeSegment(name="Country", kind="letters", length=3),
            _range("Segment 1", 0, 9),
            _range("Segment 2", 0, 9),
        ),
    ),
    CodePattern(
        id="mwi_type_1",
        name="MWI Type 1",
        example="MWI.1.2.15.7B.12.8",
        segments=(
            _fixed("Country", "MWI"),
            _fixed("Study Type", "1"),
            _range("Region", 1, 3),
            _range("Area", 1, 24),
            CodeSegment(
                name="Sample",
                kind="range_with_letter",
                minimum=1,
                maximum=10,
                values=("A", "B", "C", "D"),
            ),
            _range("Batch", 1, 30),
            _range("Month", 1, 12),
        ),
        notes=("Common D/0 case: MWI.1.1.18.1D.7.11 (NOT MWI.1.1.18.10.7.11)",),
    ),
    CodePattern(
        id="mwi_type_0",
        name="MWI Type 0",
        example="MWI.0.1.4.10.15.7",
        segments=(
            _fixed("Country", "MWI"),
            _fixed("Study Type", "0"),
            _range("Region", 1, 3),
            _range("Area", 1, 6),
            _range("Sample", 1, 13),
            _range("Batch", 1, 27),
            _range("Month", 1, 12),
        ),
    ),
    CodePattern(
        id="ken_type_0",
        name="KEN Type 0",
        example="KEN.0.2.3.5.8.11",
        segments=(
            _fixed("Country", "KEN"),
            _fixed("Study Type", "0"),
            _range("Region", 1, 2),
            _range("Area", 1, 9),
            _range("Sample", 1, 8),
            _range("Batch", 1, 11),
            _range("Month", 1, 12),
        ),
    ),
    CodePattern(
        id="kenya_new_format",
        name="Kenya New Format",
        example="NBO-12345-1-C",
        separator="-",
        segments=(
            _fixed("City", "NBO", "BUS"),
            _range("Household", 10000, 99999),
            _range("Sample", 1, 9),
            _fixed("Type", "C", "F", "P", "G"),
        ),
    ),
)


def normalize_code(code: str) -> str:
    """Return ``code`` trimmed and upper-cased."""
    return code.strip().upper()


def enabled_patterns(ids: Optional[Iterable[str]] = None) -> tuple[CodePattern, ...]:
    """Return the built-in patterns, optionally restricted to ``ids``."""
    if ids is None:
        return SAMPLE_CODE_PATTERNS
    wanted = set(ids)
    return tuple(pattern for pattern in SAMPLE_CODE_PATTERNS if pattern.id in wanted)


def match_pattern(
    code: Optional[str], patterns: Optional[Sequence[CodePattern]] = None
) -> Optional[CodePattern]:
    """Return the first pattern ``code`` satisfies, or ``None``."""
    if not code or not code.strip():
        return None
    normalized = normalize_code(code)
    for pattern in patterns if patterns is not None else SAMPLE_CODE_PATTERNS:
        if pattern.matches(normalized):
            return pattern
    return None


def is_valid_code(code: Optional[str], patterns: Optional[Sequence[CodePattern]] = None) -> bool:
    """Return whether ``code`` matches any of ``patterns`` (all built-ins by default)."""
    return match_pattern(code, patterns) is not None


def describe_patterns(patterns: Optional[Sequence[CodePattern]] = None) -> str:
    """Return a numbered, human-readable list of accepted formats."""
    lines = []
    if patterns is None:
        patterns = SAMPLE_CODE_PATTERNS
    for index, pattern in enumerate(patterns, start=1):
        lines.append(f"{index}. {pattern.describe()}")
        lines.append(f"   Example: {pattern.example}")
        lines.extend(f"   {note}" for note in pattern.notes)
    return "\n".join(lines)


__all__ = [
    "CodeSegment",
    "CodePattern",
    "SAMPLE_CODE_PATTERNS",
    "normalize_code",
    "enabled_patterns",
    "match_pattern",
    "is_valid_code",
    "describe_patterns",
]
