"""Similarity matchers that infer a group for an item without a code.

Two strategies share one interface:

* ``StrictMatcher`` accepts a candidate only when the descriptions share enough
  meaningful words *and* the color families match. Batch inference over
  ungrouped items uses it.
* ``WeightedMatcher`` sums graded description, color-overlap and
  time-proximity scores and keeps the best candidate above a threshold, so one
  strong signal can compensate for a weak one. Proactive matching uses it.

Both are pure queries; applying the result is the caller's job.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from labelsort.config.models import MatchingSettings
from labelsort.state.models import ItemRecord

from . import colors, text

LOGGER = logging.getLogger(__name__)

COLOR_OVERLAP_THRESHOLD = 0.5
COLOR_WEIGHT = 0.6
TIME_WEIGHT = 0.2
MAX_INFERRED_CONFIDENCE = 0.99


class MatchResult(BaseModel):
    """Outcome of a successful match.

    Attributes:
        group: Group inherited from the chosen candidate.
        confidence: Strictly below 1.0; inferred groups are never authoritative.
        reason: Human-readable list of the signals that fired.
        source_id: Identifier of the candidate the group was inherited from.
        strategy: Name of the strategy that produced the match.
    """

    group: str
    confidence: float = Field(ge=0, lt=1)
    reason: str
    source_id: str
    strategy: str


class Matcher(Protocol):
    """Interface shared by the matching strategies."""

    name: str

    @property
    def window(self) -> timedelta: ...

    def find_group(
        self, target: ItemRecord, pool: Iterable[ItemRecord]
    ) -> Optional[MatchResult]: ...


def format_delta(delta: timedelta) -> str:
    """Render a time difference as ``45s apart`` or ``1m5s apart``."""
    total = abs(delta.total_seconds())
    minutes, seconds = divmod(int(round(total)), 60)
    if minutes:
        return f"{minutes}m{seconds}s apart"
    return f"{seconds}s apart"


class _WindowedMatcher:
    """Shared candidate filtering for the concrete strategies."""

    name = "base"

    def __init__(self, settings: Optional[MatchingSettings] = None) -> None:
        self.settings = settings or MatchingSettings()

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.settings.window_seconds)

    def candidates(self, target: ItemRecord, pool: Iterable[ItemRecord]) -> list[ItemRecord]:
        """Return grouped pool items strictly inside the time window of ``target``."""
        if target.is_grouped:
            raise ValueError(f"Item {target.id} already belongs to group {target.group!r}.")

        window = self.window
        selected: list[ItemRecord] = []
        for candidate in pool:
            if candidate.id == target.id or not candidate.is_grouped:
                continue
            if (
                candidate.status == "invalid-group"
                and not self.settings.inherit_from_invalid_groups
            ):
                continue
            if abs(candidate.captured_at - target.captured_at) < window:
                selected.append(candidate)
        return selected

    @staticmethod
    def _recency_key(target: ItemRecord, candidate: ItemRecord) -> tuple:
        # Most recent first, then nearest in time, then id for determinism.
        return (
            -candidate.captured_at.timestamp(),
            abs(candidate.captured_at - target.captured_at),
            candidate.id,
        )


class StrictMatcher(_WindowedMatcher):
    """Require both a description match and a color-family match."""

    name = "strict"

    def find_group(
        self, target: ItemRecord, pool: Iterable[ItemRecord]
    ) -> Optional[MatchResult]:
        """Return the group of the most recent accepted candidate, if any.

        Args:
            target: Ungrouped item to match.
            pool: Grouped items to consider; anything outside the window is skipped.

        Returns:
            Optional[MatchResult]: Inherited group, or ``None`` when no candidate
            satisfies both signals.
        """
        accepted: list[tuple[ItemRecord, list[str], str]] = []
        for candidate in self.candidates(target, pool):
            words = text.shared_words(target.description, candidate.description)
            if len(words) < self.settings.min_shared_words:
                continue
            family = colors.families_match(target.colors, candidate.colors)
            if family is None:
                continue
            accepted.append((candidate, words, family))

        if not accepted:
            return None

        best, words, family = min(
            accepted, key=lambda entry: self._recency_key(target, entry[0])
        )
        reason = ", ".join(
            [
                f"{len(words)} shared words ({', '.join(words)})",
                f"color family {family}",
                format_delta(best.captured_at - target.captured_at),
            ]
        )
        LOGGER.debug("Strict match for %s via %s: %s", target.id, best.id, reason)
        return MatchResult(
            group=best.group or "",
            confidence=self.settings.inferred_confidence,
            reason=reason,
            source_id=best.id,
            strategy=self.name,
        )


class WeightedMatcher(_WindowedMatcher):
    """Score description, color overlap and time proximity; keep the best."""

    name = "weighted"

    def score(self, target: ItemRecord, candidate: ItemRecord) -> tuple[float, list[str]]:
        """Return the combined score for ``candidate`` and the reasons behind it."""
        total = 0.0
        reasons: list[str] = []

        description_score, label = text.graded_similarity(
            target.description, candidate.description
        )
        if label is not None:
            total += description_score
            reasons.append(label)

        overlap = colors.overlap_ratio(target.colors, candidate.colors)
        if overlap >= COLOR_OVERLAP_THRESHOLD:
            total += overlap * COLOR_WEIGHT
            reasons.append(f"{round(overlap * 100)}% color similarity")

        delta = candidate.captured_at - target.captured_at
        proximity = max(0.0, 1 - abs(delta) / self.window) * TIME_WEIGHT
        total += proximity
        if proximity > TIME_WEIGHT / 2:
            reasons.append(format_delta(delta))

        return total, reasons

    def find_group(
        self, target: ItemRecord, pool: Iterable[ItemRecord]
    ) -> Optional[MatchResult]:
        """Return the group of the highest scoring candidate above ``min_score``."""
        scored: list[tuple[float, ItemRecord, list[str]]] = []
        for candidate in self.candidates(target, pool):
            total, reasons = self.score(target, candidate)
            if total > self.settings.min_score:
                scored.append((total, candidate, reasons))

        if not scored:
            return None

        total, best, reasons = min(
            scored, key=lambda entry: (-entry[0], *self._recency_key(target, entry[1]))
        )
        reason = ", ".join(reasons)
        LOGGER.debug(
            "Weighted match for %s via %s (score %.2f): %s", target.id, best.id, total, reason
        )
        return MatchResult(
            group=best.group or "",
            confidence=min(total, MAX_INFERRED_CONFIDENCE),
            reason=reason,
            source_id=best.id,
            strategy=self.name,
        )


_STRATEGIES: dict[str, type[_WindowedMatcher]] = {
    StrictMatcher.name: StrictMatcher,
    WeightedMatcher.name: WeightedMatcher,
}


def available_strategies() -> Sequence[str]:
    return tuple(_STRATEGIES)


def build_matcher(name: str, settings: Optional[MatchingSettings] = None) -> Matcher:
    """Instantiate the matcher registered under ``name``.

    Raises:
        ValueError: If ``name`` is not a known strategy.
    """
    try:
        factory = _STRATEGIES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown matching strategy: {name!r}") from exc
    return factory(settings)  # type: ignore[return-value]


__all__ = [
    "MatchResult",
    "Matcher",
    "StrictMatcher",
    "WeightedMatcher",
    "build_matcher",
    "available_strategies",
    "format_delta",
]
