"""Collision-free file name allocation for grouped items."""

from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Callable, Iterable, Mapping, Optional, Sequence

from labelsort.config.models import NamingSettings
from labelsort.state.models import ItemRecord

from .errors import AllocationError
from .models import NameChange, PersistFailure, ResequenceReport

LOGGER = logging.getLogger(__name__)

_ILLEGAL_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")
_UNDERSCORES = re.compile(r"_+")

PersistCallback = Callable[[ItemRecord], None]


def sanitize_group(group: str, placeholder: str = "untitled") -> str:
    """Return a filesystem-safe base token for ``group``.

    Whitespace runs become a single underscore, characters that are illegal in
    file names are dropped, repeated underscores collapse, and leading or
    trailing underscores are stripped. ``placeholder`` is returned when
    nothing is left.
    """
    token = _WHITESPACE.sub("_", group.strip())
    token = _ILLEGAL_CHARS.sub("", token)
    token = _UNDERSCORES.sub("_", token).strip("_")
    return token or placeholder


def extension_for(origin: str) -> str:
    """Return the extension of ``origin`` including the dot (may be empty)."""
    return PurePath(origin.replace("\\", "/")).suffix


def capture_order(items: Iterable[ItemRecord]) -> list[ItemRecord]:
    """Sort items by capture time, breaking ties by id."""
    return sorted(items, key=lambda item: (item.captured_at, item.id))


class NameIndex:
    """Lookup of assigned names to the item that owns them."""

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    def owner(self, name: str) -> Optional[str]:
        return self._owners.get(name)

    def is_free(self, name: str, item_id: str) -> bool:
        owner = self._owners.get(name)
        return owner is None or owner == item_id

    def claim(self, name: str, item_id: str) -> None:
        if not self.is_free(name, item_id):
            raise AllocationError(f"{name} is already assigned to {self._owners[name]}.")
        self._owners[name] = item_id

    def release(self, name: str, item_id: str) -> None:
        if name and self._owners.get(name) == item_id:
            del self._owners[name]

    def rebuild(self, items: Iterable[ItemRecord]) -> list[ItemRecord]:
        """Index ``items`` in capture order and return those whose name is taken.

        The earliest captured item keeps a contested name.
        """
        self._owners.clear()
        duplicates: list[ItemRecord] = []
        for item in capture_order(items):
            if not item.assigned_name:
                continue
            if item.assigned_name in self._owners:
                duplicates.append(item)
                continue
            self._owners[item.assigned_name] = item.id
        return duplicates


class NameAllocator:
    """Compute and apply names for grouped items over a shared item pool."""

    def __init__(
        self,
        items: Mapping[str, ItemRecord],
        settings: Optional[NamingSettings] = None,
    ) -> None:
        """Initialize the allocator and index the names already in ``items``.

        Args:
            items: Live mapping of item id to record; the allocator reads it on
                every call so additions are picked up automatically.
            settings: Naming settings.
        """
        self._items = items
        self.settings = settings or NamingSettings()
        self.index = NameIndex()
        self.duplicates = self.index.rebuild(items.values())
        if self.duplicates:
            LOGGER.warning(
                "Pool contains %d item(s) with duplicate names.", len(self.duplicates)
            )

    def members(self, group: str, *, exclude: Optional[str] = None) -> list[ItemRecord]:
        """Return items carrying ``group`` in capture order."""
        return capture_order(
            item for item in self._items.values() if item.group == group and item.id != exclude
        )

    def candidate_name(
        self, group: str, item: ItemRecord, others_in_group: Sequence[ItemRecord]
    ) -> str:
        """Return the preferred name for ``item`` before collision checks."""
        base = sanitize_group(group, self.settings.placeholder)
        extension = extension_for(item.origin)
        if others_in_group and any(other.code for other in others_in_group):
            return f"{base}_{len(others_in_group) + 1}{extension}"
        return f"{base}{extension}"

    def assign_name(
        self,
        group: str,
        item: ItemRecord,
        others_in_group: Optional[Sequence[ItemRecord]] = None,
    ) -> str:
        """Compute a unique name for ``item`` in ``group`` and write it onto the item.

        Args:
            group: Group the item is joining or already carries.
            item: Item to name.
            others_in_group: Other members, in capture order. Defaults to every
                other item currently carrying ``group``.

        Returns:
            str: The name assigned to ``item``.

        Raises:
            AllocationError: If no free name exists within ``naming.max_counter``.
        """
        if others_in_group is None:
            others_in_group = self.members(group, exclude=item.id)

        self.index.release(item.assigned_name, item.id)
        name = self._unique(
            self.candidate_name(group, item, others_in_group),
            sanitize_group(group, self.settings.placeholder),
            extension_for(item.origin),
            item.id,
        )
        self.index.claim(name, item.id)
        item.assigned_name = name
        return name

    def clear_name(self, item: ItemRecord) -> None:
        """Release and clear the name of ``item``."""
        self.index.release(item.assigned_name, item.id)
        item.assigned_name = ""

    def resequence_group(
        self, group: str, persist: Optional[PersistCallback] = None
    ) -> ResequenceReport:
        """Recompute the names of every member of ``group`` in capture order.

        Member names are released first, then each member is allocated with the
        previously allocated members as its siblings, so the earliest member
        gets the primary name and re-running on an unchanged pool reproduces
        the same names.

        Args:
            group: Group to re-sequence.
            persist: Called for every item whose name changed. Failures are
                collected in the report and the pass continues.

        Returns:
            ResequenceReport: Final names, changes, and persistence failures.
        """
        members = self.members(group)
        report = ResequenceReport(group=group)
        previous = {member.id: member.assigned_name for member in members}
        for member in members:
            self.clear_name(member)

        allocated: list[ItemRecord] = []
        try:
            for member in members:
                name = self.assign_name(group, member, allocated)
                allocated.append(member)
                report.names.append(name)
                if name == previous[member.id]:
                    continue
                report.changes.append(
                    NameChange(item_id=member.id, previous=previous[member.id], current=name)
                )
                if persist is None:
                    continue
                try:
                    persist(member)
                except Exception as exc:
                    LOGGER.warning("Failed to persist name %s for %s: %s", name, member.id, exc)
                    report.failures.append(
                        PersistFailure(item_id=member.id, name=name, error=str(exc))
                    )
        except AllocationError:
            done = {member.id for member in allocated}
            self._restore([m for m in members if m.id not in done], previous)
            raise

        if report.changes:
            LOGGER.info("Re-sequenced %s: %d name(s) changed.", group, len(report.changes))
        return report

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _unique(self, candidate: str, base: str, extension: str, item_id: str) -> str:
        if self.index.is_free(candidate, item_id):
            return candidate
        for counter in range(2, self.settings.max_counter + 1):
            name = f"{base}_{counter}{extension}"
            if self.index.is_free(name, item_id):
                return name
        raise AllocationError(
            f"No free name for {base}{extension} after {self.settings.max_counter} attempts."
        )

    def _restore(self, members: Iterable[ItemRecord], previous: Mapping[str, str]) -> None:
        for member in members:
            name = previous.get(member.id, "")
            if name and self.index.is_free(name, member.id):
                self.index.claim(name, member.id)
                member.assigned_name = name


__all__ = [
    "NameAllocator",
    "NameIndex",
    "PersistCallback",
    "sanitize_group",
    "extension_for",
    "capture_order",
]
