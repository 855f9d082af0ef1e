"""Description tokenization and similarity scoring."""

from __future__ import annotations

import re
from typing import Optional

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "from", "up", "about", "into", "through", "during", "before",
        "after", "above", "below", "off", "down", "out", "over", "under", "again",
        "further", "then", "once", "here", "there", "when", "where", "why", "how",
        "all", "any", "both", "each", "few", "more", "most", "other", "some", "such",
        "no", "nor", "not", "only", "own", "same", "so", "than", "too", "very", "s",
        "t", "can", "will", "just", "don", "should", "now",
    }
)  # fmt: skip

MIN_WORD_LENGTH = 3

_WORD = re.compile(r"[a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")


def normalize_description(text: Optional[str]) -> str:
    """Return ``text`` lower-cased with whitespace collapsed."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.lower()).strip()


def meaningful_words(text: Optional[str]) -> list[str]:
    """Return lowercase alphanumeric words minus stop words and short words.

    Order is preserved and duplicates are dropped.
    """
    words = _WORD.findall(normalize_description(text))
    kept = (word for word in words if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS)
    return list(dict.fromkeys(kept))


def shared_words(first: Optional[str], second: Optional[str]) -> list[str]:
    """Return meaningful words present in both descriptions, in ``first`` order."""
    others = set(meaningful_words(second))
    return [word for word in meaningful_words(first) if word in others]


def word_overlap(first: Optional[str], second: Optional[str]) -> float:
    """Return shared meaningful words divided by the longer word list (0..1).

    Identical normalized descriptions always score 1.0.
    """
    if not first or not second:
        return 0.0
    if normalize_description(first) == normalize_description(second):
        return 1.0
    words_a = meaningful_words(first)
    words_b = meaningful_words(second)
    if not words_a or not words_b:
        return 0.0
    return len(shared_words(first, second)) / max(len(words_a), len(words_b))


def graded_similarity(first: Optional[str], second: Optional[str]) -> tuple[float, Optional[str]]:
    """Return the tiered description score and its label.

    Returns:
        tuple[float, Optional[str]]: ``(0.8, "identical ...")`` for an overlap of
        at least 0.8, ``0.6`` for at least 0.6, ``0.3`` for at least 0.4, and
        ``(0.0, None)`` below that.
    """
    ratio = word_overlap(first, second)
    if ratio >= 0.8:
        return 0.8, "identical object description"
    if ratio >= 0.6:
        return 0.6, "similar object description"
    if ratio >= 0.4:
        return 0.3, "partial object description match"
    return 0.0, None


__all__ = [
    "STOP_WORDS",
    "MIN_WORD_LENGTH",
    "normalize_description",
    "meaningful_words",
    "shared_words",
    "word_overlap",
    "graded_similarity",
]
