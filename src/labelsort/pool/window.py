"""Capture-time index used to bound candidate scans during sweeps."""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta
from typing import Iterable

from labelsort.naming.allocator import capture_order
from labelsort.state.models import ItemRecord


class CaptureWindow:
    """Items sorted by capture time with range lookups."""

    def __init__(self, items: Iterable[ItemRecord]) -> None:
        self._items = capture_order(items)
        self._stamps = [item.captured_at.timestamp() for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def around(self, moment: datetime, width: timedelta) -> list[ItemRecord]:
        """Return items captured within ``width`` of ``moment`` (edges inclusive)."""
        center = moment.timestamp()
        seconds = width.total_seconds()
        low = bisect_left(self._stamps, center - seconds)
        high = bisect_right(self._stamps, center + seconds)
        return self._items[low:high]


__all__ = ["CaptureWindow"]
