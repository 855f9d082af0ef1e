"""Grouping service that applies extraction results, edits, and sweeps to a pool."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

from labelsort.codes import enabled_patterns, match_pattern, normalize_code
from labelsort.config import LabelsortConfig
from labelsort.grouping.matcher import Matcher, MatchResult, build_matcher
from labelsort.naming import AllocationError, NameAllocator, PersistFailure, ResequenceReport
from labelsort.naming.allocator import PersistCallback, capture_order
from labelsort.state import ItemRecord, PoolState, UnknownItemError, parse_colors

from .window import CaptureWindow

LOGGER = logging.getLogger(__name__)

WATCHED_FIELDS = ("group", "assigned_name", "group_confidence", "status")
INFERENCE_TARGETS = frozenset({"extracted", "pending-match", "unmatched"})
AUTO_GROUPING_TARGETS = frozenset({"pending-match", "unmatched"})


@dataclass(slots=True)
class ItemUpdate:
    """Notification describing the watched fields that changed on one item.

    Attributes:
        item_id: Identifier of the changed item.
        changes: Mapping of field name to its new value.
    """

    item_id: str
    changes: dict[str, Any]


@dataclass(slots=True)
class EditOutcome:
    """Result of applying an extraction result or an edit.

    Attributes:
        item: Item after the change.
        reports: Re-sequencing reports for every group whose membership changed.
        match: Matcher result when the group was inferred.
        failures: Failed writes of the edited item itself.
    """

    item: ItemRecord
    reports: list[ResequenceReport] = field(default_factory=list)
    match: Optional[MatchResult] = None
    failures: list[PersistFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Return whether any write of the edit could not be persisted."""
        return bool(self.failures) or any(report.partial for report in self.reports)


@dataclass(slots=True)
class SweepResult:
    """Outcome metadata describing a matching sweep.

    Attributes:
        strategy: Matching strategy used by the sweep.
        examined: Number of target items evaluated.
        matches: Mapping of item id to the applied match.
        reports: Re-sequencing reports produced while applying matches.
        failures: Failed writes of the swept items themselves.
        cancelled: Whether the sweep stopped early.
    """

    strategy: str
    examined: int = 0
    matches: dict[str, MatchResult] = field(default_factory=dict)
    reports: list[ResequenceReport] = field(default_factory=list)
    failures: list[PersistFailure] = field(default_factory=list)
    cancelled: bool = False


class GroupingService:
    """Collaborator-facing API over an in-memory item pool.

    Every group/name write pair happens under one re-entrant allocation lock.
    Matching itself is a read-only scan and runs outside the lock.
    """

    def __init__(
        self,
        state: PoolState,
        config: Optional[LabelsortConfig] = None,
        *,
        persist: Optional[PersistCallback] = None,
    ) -> None:
        """Initialize the service.

        Args:
            state: Pool to operate on; mutated in place.
            config: Loaded configuration; defaults are used when omitted.
            persist: Optional per-item persistence hook invoked after each write.
        """
        self._state = state
        self._items = state.items
        self._config = config or LabelsortConfig()
        self._persist = persist
        self._patterns = enabled_patterns(self._config.codes.enabled_patterns)
        self._allocator = NameAllocator(self._items, self._config.naming)
        self._lock = threading.RLock()
        self._sweeps: set[threading.Event] = set()
        self._observers: list[Callable[[ItemUpdate], None]] = []

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def allocator(self) -> NameAllocator:
        return self._allocator

    def subscribe(self, observer: Callable[[ItemUpdate], None]) -> Callable[[], None]:
        """Register ``observer`` for item updates and return an unsubscribe callable."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def get(self, item_id: str) -> ItemRecord:
        """Return the item with ``item_id``.

        Raises:
            UnknownItemError: If the pool has no such item.
        """
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise UnknownItemError(f"Unknown item: {item_id}") from exc

    def items(self) -> list[ItemRecord]:
        """Return every item in capture order."""
        with self._lock:
            return capture_order(self._items.values())

    def register(self, item: ItemRecord) -> ItemRecord:
        """Add a freshly ingested item to the pool.

        Raises:
            ValueError: If an item with the same id already exists.
        """
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"Item {item.id} is already registered.")
            item.status = "unprocessed"
            item.group = None
            item.assigned_name = ""
            item.group_confidence = 0.0
            self._items[item.id] = item
            self._store(item)
            self._emit(item.id, {name: getattr(item, name) for name in WATCHED_FIELDS})
        return item

    def register_file(self, path: Path, captured_at: Optional[datetime] = None) -> ItemRecord:
        """Register ``path`` as a new item, using its mtime when no capture time is given."""
        if captured_at is None:
            captured_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        record = ItemRecord(id=uuid.uuid4().hex, origin=path.name, captured_at=captured_at)
        return self.register(record)

    def mark_extracting(self, item_id: str) -> ItemRecord:
        """Flag ``item_id`` as currently being processed by the vision step."""
        with self._lock:
            item = self.get(item_id)
            with self._tracking([item.id]):
                item.status = "extracting"
                self._store(item)
        return item

    def on_extraction_result(
        self,
        item_id: str,
        code: Optional[str],
        description: Optional[str],
        colors: Any,
    ) -> EditOutcome:
        """Apply the output of the vision step to an item.

        A code matching a known format becomes the item's group with confidence
        1.0. A code that does not match is still used as the group but flagged
        ``invalid-group``. Without a code the item is left ungrouped and, when
        ``matching.match_on_extraction`` is set, matched right away.

        Args:
            item_id: Item the result belongs to.
            code: Extracted code, if any.
            description: Short object description, if any.
            colors: Dominant colors in any form accepted by ``parse_colors``.

        Returns:
            EditOutcome: Updated item, re-sequencing reports and any match.
        """
        cleaned = code.strip() if code and code.strip() else None
        with self._lock:
            item = self.get(item_id)
            item.code = cleaned
            item.description = description.strip() if description and description.strip() else None
            item.colors = parse_colors(colors)

            if cleaned is not None:
                valid = match_pattern(cleaned, self._patterns) is not None
                group = normalize_code(cleaned) if valid else cleaned
                outcome = self._move(
                    item,
                    group,
                    status="extracted" if valid else "invalid-group",
                    confidence=1.0 if valid else 0.0,
                )
                if valid:
                    LOGGER.info("Valid code extracted for %s: %s", item.id, group)
                else:
                    LOGGER.warning("Invalid code structure for %s: %s", item.id, cleaned)
                return outcome

            if item.is_grouped:
                with self._tracking([item.id]):
                    self._store(item)
                return EditOutcome(item=item)

            with self._tracking([item.id]):
                item.status = "pending-match"
                item.group_confidence = 0.0
                self._store(item)

        if self._config.matching.match_on_extraction:
            return self.match_item(item_id, strategy=self._config.matching.proactive_strategy)
        return EditOutcome(item=item)

    def on_manual_group_edit(self, item_id: str, new_group: Optional[str]) -> EditOutcome:
        """Apply a human group edit.

        An empty value clears the group and the name. A value matching a code
        format is authoritative (``human-grouped``); any other value is kept but
        tagged ``invalid-group``. Both the old and the new group are
        re-sequenced.
        """
        value = (new_group or "").strip()
        with self._lock:
            item = self.get(item_id)
            if not value:
                return self._move(item, None, status="pending-match", confidence=0.0)
            if match_pattern(value, self._patterns) is not None:
                return self._move(
                    item, normalize_code(value), status="human-grouped", confidence=1.0
                )
            return self._move(item, value, status="invalid-group", confidence=1.0)

    def rename_group(self, old_group: str, new_group: str) -> list[EditOutcome]:
        """Apply ``new_group`` as a manual edit to every member of ``old_group``."""
        with self._lock:
            members = self._allocator.members(old_group)
            return [self.on_manual_group_edit(member.id, new_group) for member in members]

    def resequence_group(self, group: str) -> ResequenceReport:
        """Recompute names for every member of ``group``."""
        with self._lock:
            ids = [member.id for member in self._allocator.members(group)]
            with self._tracking(ids):
                return self._allocator.resequence_group(group, persist=self._persist)

    def matcher(self, strategy: str) -> Matcher:
        """Return a matcher for ``strategy`` configured from the matching settings."""
        return build_matcher(strategy, self._config.matching)

    def match_item(self, item_id: str, *, strategy: Optional[str] = None) -> EditOutcome:
        """Try to infer a group for one ungrouped item and apply the result."""
        strategy = strategy or self._config.matching.proactive_strategy
        matcher = self.matcher(strategy)
        with self._lock:
            target = self.get(item_id)
            if target.is_grouped:
                return EditOutcome(item=target)
            snapshot = target.model_copy()
            pool = [item for item in self._items.values() if item.is_grouped]

        result = matcher.find_group(snapshot, pool)
        with self._lock:
            return self._apply_match(target, result, mark_unmatched=True)

    def run_inference(self, *, strategy: Optional[str] = None) -> SweepResult:
        """Sweep every ungrouped item once with the strict strategy.

        Items that stay unmatched keep their status.
        """
        return self._sweep(
            strategy or self._config.matching.inference_strategy,
            INFERENCE_TARGETS,
            mark_progress=False,
        )

    def run_auto_grouping(self, *, strategy: Optional[str] = None) -> SweepResult:
        """Sweep items awaiting a group with the weighted strategy.

        Each target moves through ``matching`` to ``matched`` or ``unmatched``.
        """
        return self._sweep(
            strategy or self._config.matching.proactive_strategy,
            AUTO_GROUPING_TARGETS,
            mark_progress=True,
        )

    def cancel(self) -> None:
        """Ask every running sweep to stop after its current item.

        Sweeps started after the call are not affected.
        """
        with self._lock:
            for event in self._sweeps:
                event.set()

    def clear(self) -> None:
        """Cancel running sweeps and remove every item from the pool."""
        self.cancel()
        with self._lock:
            self._items.clear()
            self._allocator.index.rebuild([])
        LOGGER.info("Pool cleared.")

    def resolve_duplicate_names(self) -> list[ResequenceReport]:
        """Repair a pool in which several items share a name.

        The earliest captured holder keeps a contested name; the groups of the
        others are re-sequenced and ungrouped holders lose their name.
        """
        reports: list[ResequenceReport] = []
        with self._lock:
            duplicates = self._allocator.index.rebuild(self._items.values())
            if not duplicates:
                return reports
            LOGGER.info("Resolving %d duplicate name(s).", len(duplicates))
            groups: list[str] = []
            for item in duplicates:
                if item.is_grouped and item.group not in groups:
                    groups.append(item.group or "")
                elif not item.is_grouped:
                    with self._tracking([item.id]):
                        item.assigned_name = ""
                        self._store(item)
            for group in groups:
                reports.append(self.resequence_group(group))
        return reports

    def check_consistency(self) -> list[str]:
        """Return human-readable descriptions of invariant violations in the pool."""
        problems: list[str] = []
        with self._lock:
            owners: dict[str, str] = {}
            for item in capture_order(self._items.values()):
                if item.assigned_name:
                    if item.assigned_name in owners:
                        problems.append(
                            f"{item.id} shares name {item.assigned_name} with "
                            f"{owners[item.assigned_name]}"
                        )
                    owners.setdefault(item.assigned_name, item.id)
                if item.is_grouped and not item.assigned_name:
                    problems.append(f"{item.id} has group {item.group!r} but no name")
                if not item.is_grouped and item.assigned_name:
                    problems.append(f"{item.id} has name {item.assigned_name} but no group")
        return problems

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _sweep(
        self, strategy: str, statuses: frozenset[str], *, mark_progress: bool
    ) -> SweepResult:
        matcher = self.matcher(strategy)
        window = matcher.window
        result = SweepResult(strategy=strategy)
        cancelled = threading.Event()

        with self._lock:
            self._sweeps.add(cancelled)
            targets = capture_order(
                item
                for item in self._items.values()
                if not item.is_grouped and item.status in statuses
            )
            candidates = CaptureWindow(item for item in self._items.values() if item.is_grouped)

        LOGGER.info(
            "Starting %s sweep: %d target(s), %d candidate(s).",
            strategy,
            len(targets),
            len(candidates),
        )
        try:
            for target in targets:
                if cancelled.is_set():
                    result.cancelled = True
                    LOGGER.info("Sweep cancelled after %d item(s).", result.examined)
                    break

                if mark_progress:
                    with self._lock:
                        if target.id not in self._items or target.is_grouped:
                            continue
                        with self._tracking([target.id]):
                            target.status = "matching"
                            self._store_or_report(target, result.failures)

                snapshot = target.model_copy()
                window_items = candidates.around(snapshot.captured_at, window)
                match = matcher.find_group(snapshot, window_items)
                result.examined += 1
                with self._lock:
                    if target.id not in self._items:
                        continue
                    outcome = self._apply_match(target, match, mark_unmatched=mark_progress)
                result.failures.extend(outcome.failures)
                if outcome.match is not None:
                    result.matches[target.id] = outcome.match
                    result.reports.extend(outcome.reports)
        finally:
            with self._lock:
                self._sweeps.discard(cancelled)

        LOGGER.info(
            "%s sweep complete: %d/%d item(s) grouped.",
            strategy.capitalize(),
            len(result.matches),
            result.examined,
        )
        return result

    def _apply_match(
        self, target: ItemRecord, match: Optional[MatchResult], *, mark_unmatched: bool
    ) -> EditOutcome:
        if target.is_grouped or target.id not in self._items:
            return EditOutcome(item=target)
        if match is None:
            outcome = EditOutcome(item=target)
            if mark_unmatched:
                with self._tracking([target.id]):
                    target.status = "unmatched"
                    target.group_confidence = 0.0
                    self._store_or_report(target, outcome.failures)
            return outcome

        outcome = self._move(
            target,
            match.group,
            status="matched",
            confidence=match.confidence,
            reason=match.reason,
        )
        outcome.match = match
        LOGGER.info(
            "Inferred group %s for %s as %s (%s)",
            match.group,
            target.origin,
            target.assigned_name,
            match.reason,
        )
        return outcome

    def _move(
        self,
        item: ItemRecord,
        group: Optional[str],
        *,
        status: str,
        confidence: float,
        reason: Optional[str] = None,
    ) -> EditOutcome:
        """Set the group of ``item`` and re-sequence every affected group.

        Group and name are both written in memory before anything is persisted.
        Failed writes end up in the outcome; an ``AllocationError`` reverts the
        item to its previous group before propagating.
        """
        previous = item.group if item.is_grouped else None
        prior = (item.group, item.status, item.group_confidence, item.match_reason)
        affected = [g for g in dict.fromkeys([previous, group]) if g]
        ids = [item.id]
        for name in affected:
            ids.extend(member.id for member in self._allocator.members(name))

        outcome = EditOutcome(item=item)
        with self._tracking(ids):
            item.group = group
            item.status = status  # type: ignore[assignment]
            item.group_confidence = confidence
            item.match_reason = reason
            if group != previous:
                self._allocator.clear_name(item)
            try:
                for name in affected:
                    outcome.reports.append(
                        self._allocator.resequence_group(name, persist=self._persist)
                    )
            except AllocationError:
                LOGGER.warning("Reverting %s to group %s.", item.id, previous)
                item.group, item.status, item.group_confidence, item.match_reason = prior
                for name in affected:
                    self._allocator.resequence_group(name, persist=self._persist)
                raise
            renamed = {change.item_id for report in outcome.reports for change in report.changes}
            if item.id not in renamed:
                self._store_or_report(item, outcome.failures)
        for report in outcome.reports:
            if report.partial:
                LOGGER.warning(
                    "Re-sequencing %s left %d stale name(s).", report.group, len(report.failures)
                )
        return outcome

    def _store(self, item: ItemRecord) -> None:
        if self._persist is not None:
            self._persist(item)

    def _store_or_report(self, item: ItemRecord, failures: list[PersistFailure]) -> None:
        """Persist ``item``, recording a failure instead of raising."""
        try:
            self._store(item)
        except Exception as exc:
            LOGGER.warning("Failed to persist %s: %s", item.id, exc)
            failures.append(
                PersistFailure(item_id=item.id, name=item.assigned_name, error=str(exc))
            )

    @contextmanager
    def _tracking(self, item_ids: Iterable[str]) -> Iterator[None]:
        """Emit an ``ItemUpdate`` for each tracked item whose watched fields changed."""
        ids = list(dict.fromkeys(item_ids))
        before = {item_id: self._snapshot(item_id) for item_id in ids}
        try:
            yield
        finally:
            for item_id in ids:
                after = self._snapshot(item_id)
                changes = {
                    name: value
                    for name, value in after.items()
                    if before[item_id].get(name) != value
                }
                if changes:
                    self._emit(item_id, changes)

    def _snapshot(self, item_id: str) -> dict[str, Any]:
        item = self._items.get(item_id)
        if item is None:
            return {}
        return {name: getattr(item, name) for name in WATCHED_FIELDS}

    def _emit(self, item_id: str, changes: dict[str, Any]) -> None:
        update = ItemUpdate(item_id=item_id, changes=changes)
        for observer in list(self._observers):
            try:
                observer(update)
            except Exception as exc:  # pragma: no cover
                LOGGER.warning("Observer %r failed for %s: %s", observer, item_id, exc)


__all__ = [
    "GroupingService",
    "ItemUpdate",
    "EditOutcome",
    "SweepResult",
    "INFERENCE_TARGETS",
    "AUTO_GROUPING_TARGETS",
]
