"""Group inference for items without a legible code."""

from .colors import classify, families_match
from .matcher import MatchResult, Matcher, StrictMatcher, WeightedMatcher, build_matcher

__all__ = [
    "classify",
    "families_match",
    "MatchResult",
    "Matcher",
    "StrictMatcher",
    "WeightedMatcher",
    "build_matcher",
]
