"""Tests for the grouping service."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from labelsort.config import LabelsortConfig, MatchingSettings, NamingSettings
from labelsort.naming import AllocationError
from labelsort.pool import CaptureWindow, GroupingService, ItemUpdate
from labelsort.state import ItemRecord, PoolState, UnknownItemError

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
RED = [{"color_value": "#cc2222", "color_name": "red"}]
BLUE = [{"color_value": "#2255cc", "color_name": "blue"}]


def _service(*, match_on_extraction: bool = True, **kwargs: Any) -> GroupingService:
    config = LabelsortConfig(matching=MatchingSettings(match_on_extraction=match_on_extraction))
    return GroupingService(PoolState(root="/pool"), config, **kwargs)


def _register(service: GroupingService, item_id: str, seconds: float) -> ItemRecord:
    return service.register(
        ItemRecord(id=item_id, origin=f"{item_id}.jpg", captured_at=T0 + timedelta(seconds=seconds))
    )


def test_register_rejects_duplicates_and_unknown_ids() -> None:
    service = _service()
    _register(service, "a", 0)

    with pytest.raises(ValueError):
        _register(service, "a", 10)
    with pytest.raises(UnknownItemError):
        service.get("missing")


def test_register_file_uses_modification_time(tmp_path: Path) -> None:
    photo = tmp_path / "IMG_0001.jpg"
    photo.write_bytes(b"jpeg")
    os.utime(photo, (T0.timestamp(), T0.timestamp()))
    service = _service()

    item = service.register_file(photo)

    assert item.origin == "IMG_0001.jpg"
    assert item.captured_at == T0
    assert item.status == "unprocessed"
    assert service.get(item.id) is item


def test_valid_code_becomes_group() -> None:
    service = _service()
    _register(service, "a", 0)
    service.mark_extracting("a")

    outcome = service.on_extraction_result("a", " ago.1.0 ", "red plastic bottle", RED)

    item = outcome.item
    assert item.group == "AGO.1.0"
    assert item.status == "extracted"
    assert item.group_confidence == 1.0
    assert item.assigned_name == "AGO.1.0.jpg"
    assert item.colors[0].color_value == "#cc2222"


def test_invalid_code_is_kept_but_flagged() -> None:
    service = _service()
    _register(service, "a", 0)

    outcome = service.on_extraction_result("a", "LAB-7", None, "not json")

    assert outcome.item.group == "LAB-7"
    assert outcome.item.status == "invalid-group"
    assert outcome.item.group_confidence == 0.0
    assert outcome.item.assigned_name == "LAB-7.jpg"
    assert outcome.item.colors == []


def test_missing_code_is_matched_on_extraction() -> None:
    service = _service()
    _register(service, "a", 0)
    _register(service, "b", 60)
    service.on_extraction_result("a", "AGO.1.0", "red plastic bottle", RED)

    outcome = service.on_extraction_result("b", None, "red plastic bottle", RED)

    item = outcome.item
    assert outcome.match is not None
    assert item.group == "AGO.1.0"
    assert item.status == "matched"
    assert 0 < item.group_confidence < 1
    assert item.assigned_name == "AGO.1.0_2.jpg"
    assert "identical object description" in (item.match_reason or "")


def test_missing_code_without_neighbours_is_unmatched() -> None:
    service = _service()
    _register(service, "a", 0)

    outcome = service.on_extraction_result("a", "", "red plastic bottle", RED)

    assert outcome.match is None
    assert outcome.item.status == "unmatched"
    assert outcome.item.group is None
    assert outcome.item.assigned_name == ""


def test_missing_code_waits_when_proactive_matching_disabled() -> None:
    service = _service(match_on_extraction=False)
    _register(service, "a", 0)

    outcome = service.on_extraction_result("a", None, "red plastic bottle", RED)

    assert outcome.item.status == "pending-match"


def test_names_follow_capture_order_when_code_arrives_later() -> None:
    service = _service()
    _register(service, "a", 0)
    _register(service, "b", 60)
    service.on_manual_group_edit("b", "LAB-7")
    service.on_manual_group_edit("a", "LAB-7")

    assert service.get("a").assigned_name == "LAB-7.jpg"
    assert service.get("b").assigned_name == "LAB-7_2.jpg"

    service.on_extraction_result("a", "LAB-7", None, None)

    assert service.get("a").assigned_name == "LAB-7.jpg"
    assert service.get("b").assigned_name == "LAB-7_2.jpg"


def test_manual_edit_statuses() -> None:
    service = _service()
    _register(service, "a", 0)
    _register(service, "b", 10)

    valid = service.on_manual_group_edit("a", "ken.0.2.3.5.8.11").item
    assert valid.group == "KEN.0.2.3.5.8.11"
    assert valid.status == "human-grouped"
    assert valid.group_confidence == 1.0

    invalid = service.on_manual_group_edit("b", "my group").item
    assert invalid.group == "my group"
    assert invalid.status == "invalid-group"
    assert invalid.group_confidence == 1.0
    assert invalid.assigned_name == "my_group.jpg"


def test_clearing_group_clears_name_and_resequences_old_group() -> None:
    service = _service()
    _register(service, "a", 0)
    _register(service, "b", 60)
    service.on_manual_group_edit("a", "LAB-7")
    service.on_manual_group_edit("b", "LAB-7")

    outcome = service.on_manual_group_edit("a", "   ")

    cleared = outcome.item
    assert cleared.group is None
    assert cleared.assigned_name == ""
    assert cleared.status == "pending-match"
    assert cleared.group_confidence == 0.0
    assert service.get("b").assigned_name == "LAB-7.jpg"
    assert [report.group for report in outcome.reports] == ["LAB-7"]
    assert service.check_consistency() == []


def test_moving_between_groups_resequences_both() -> None:
    service = _service()
    for index, item_id in enumerate("abc"):
        _register(service, item_id, index * 10)
        service.on_manual_group_edit(item_id, "LAB-7")

    outcome = service.on_manual_group_edit("a", "LAB-8")

    assert [report.group for report in outcome.reports] == ["LAB-7", "LAB-8"]
    assert service.get("a").assigned_name == "LAB-8.jpg"
    assert service.get("b").assigned_name == "LAB-7.jpg"
    assert service.get("c").assigned_name == "LAB-7_2.jpg"


def test_rename_group_moves_every_member() -> None:
    service = _service()
    _register(service, "a", 0)
    _register(service, "b", 60)
    service.on_manual_group_edit("a", "LAB-7")
    service.on_manual_group_edit("b", "LAB-7")

    outcomes = service.rename_group("LAB-7", "AGO.1.0")

    assert len(outcomes) == 2
    assert [item.assigned_name for item in service.items()] == ["AGO.1.0.jpg", "AGO.1.0_2.jpg"]
    assert {item.status for item in service.items()} == {"human-grouped"}


def test_observers_receive_changed_fields() -> None:
    service = _service()
    updates: list[ItemUpdate] = []
    unsubscribe = service.subscribe(updates.append)
    _register(service, "a", 0)
    updates.clear()

    service.on_manual_group_edit("a", "LAB-7")

    assert len(updates) == 1
    assert updates[0].item_id == "a"
    assert updates[0].changes == {
        "group": "LAB-7",
        "assigned_name": "LAB-7.jpg",
        "group_confidence": 1.0,
        "status": "invalid-group",
    }

    unsubscribe()
    service.on_manual_group_edit("a", "")
    assert len(updates) == 1


def test_resequence_persistence_failures_are_partial() -> None:
    failing: set[str] = set()

    def _persist(item: ItemRecord) -> None:
        if item.id in failing:
            raise OSError("read-only")

    service = _service(persist=_persist)
    _register(service, "a", 0)
    _register(service, "b", 60)
    service.on_manual_group_edit("a", "LAB-7")
    service.on_manual_group_edit("b", "LAB-7")
    failing.add("b")

    outcome = service.on_manual_group_edit("a", None)

    assert outcome.partial
    assert outcome.reports[0].failures[0].item_id == "b"
    assert service.get("b").assigned_name == "LAB-7.jpg"


def test_failed_write_of_edited_item_is_partial_not_fatal() -> None:
    failing: set[str] = set()

    def _persist(item: ItemRecord) -> None:
        if item.id in failing:
            raise OSError("read-only")

    service = _service(persist=_persist)
    updates: list[ItemUpdate] = []
    service.subscribe(updates.append)
    _register(service, "a", 0)
    _register(service, "b", 60)
    service.on_manual_group_edit("a", "LAB-7")
    failing.add("b")
    updates.clear()

    joined = service.on_manual_group_edit("b", "LAB-7")

    assert joined.partial
    assert joined.reports[0].failures[0].item_id == "b"
    assert service.get("b").group == "LAB-7"
    assert service.get("b").assigned_name == "LAB-7_2.jpg"
    assert [update.item_id for update in updates] == ["b"]

    left = service.on_manual_group_edit("b", None)

    assert left.partial
    assert [failure.item_id for failure in left.failures] == ["b"]
    assert service.get("b").group is None
    assert service.get("b").assigned_name == ""
    assert service.check_consistency() == []


def test_allocation_failure_reverts_the_edit() -> None:
    config = LabelsortConfig(naming=NamingSettings(max_counter=2))
    service = GroupingService(PoolState(root="/pool"), config)
    for index, item_id in enumerate(["i0", "i1", "i2"]):
        _register(service, item_id, index * 10)
    service.on_manual_group_edit("i0", "LAB")
    service.on_manual_group_edit("i1", "LAB")
    service.on_manual_group_edit("i2", "OTHER")
    before = service.get("i2").model_copy()

    with pytest.raises(AllocationError):
        service.on_manual_group_edit("i2", "LAB")

    reverted = service.get("i2")
    assert reverted.group == "OTHER"
    assert reverted.assigned_name == "OTHER.jpg"
    assert reverted.status == before.status
    assert reverted.group_confidence == before.group_confidence
    assert [service.get(i).assigned_name for i in ("i0", "i1")] == ["LAB.jpg", "LAB_2.jpg"]
    assert service.check_consistency() == []


def test_run_inference_uses_strict_matcher() -> None:
    service = _service(match_on_extraction=False)
    _register(service, "a", 0)
    _register(service, "b", 60)
    _register(service, "c", 900)
    service.on_extraction_result("a", "AGO.1.0", "red plastic bottle", RED)
    service.on_extraction_result("b", None, "small red bottle", RED)
    service.on_extraction_result("c", None, "red plastic bottle", RED)

    result = service.run_inference()

    assert result.strategy == "strict"
    assert result.examined == 2
    assert list(result.matches) == ["b"]
    b = service.get("b")
    assert b.group == "AGO.1.0"
    assert b.group_confidence == pytest.approx(0.7)
    assert b.status == "matched"
    assert b.assigned_name == "AGO.1.0_2.jpg"
    assert service.get("c").status == "pending-match"


def test_run_auto_grouping_marks_misses_unmatched() -> None:
    service = _service(match_on_extraction=False)
    _register(service, "a", 0)
    _register(service, "b", 30)
    _register(service, "c", 30)
    service.on_extraction_result("a", "AGO.1.0", "red plastic bottle", RED)
    service.on_extraction_result("b", None, "red plastic bottle", RED)
    service.on_extraction_result("c", None, "blue cardboard box", BLUE)

    result = service.run_auto_grouping()

    assert result.strategy == "weighted"
    assert list(result.matches) == ["b"]
    assert service.get("b").status == "matched"
    assert service.get("c").status == "unmatched"
    assert service.get("c").group is None


def test_cancel_stops_sweep_between_items() -> None:
    service = _service(match_on_extraction=False)
    _register(service, "a", 0)
    service.on_extraction_result("a", "AGO.1.0", "red plastic bottle", RED)
    for index in range(1, 4):
        _register(service, f"t{index}", index * 10)
        service.on_extraction_result(f"t{index}", None, "red plastic bottle", RED)

    def _cancel_on_first_match(update: ItemUpdate) -> None:
        if update.changes.get("status") == "matching":
            service.cancel()

    service.subscribe(_cancel_on_first_match)
    result = service.run_auto_grouping()

    assert result.cancelled
    assert result.examined == 1
    assert service.get("t1").status == "matched"
    assert service.get("t2").status == "pending-match"
    assert service.check_consistency() == []


def test_cancel_only_reaches_sweeps_already_running() -> None:
    service = _service(match_on_extraction=False)
    _register(service, "a", 0)
    service.on_extraction_result("a", "AGO.1.0", "red plastic bottle", RED)
    for index in range(1, 4):
        _register(service, f"t{index}", index * 10)
        service.on_extraction_result(f"t{index}", None, "red plastic bottle", RED)
    nested: list[Any] = []

    def _cancel_then_sweep_again(update: ItemUpdate) -> None:
        if update.changes.get("status") == "matching" and not nested:
            service.cancel()
            nested.append(service.run_inference())

    service.subscribe(_cancel_then_sweep_again)
    result = service.run_auto_grouping()

    assert result.cancelled
    assert result.examined == 1
    assert not nested[0].cancelled
    assert sorted(nested[0].matches) == ["t2", "t3"]
    assert {service.get(f"t{index}").status for index in range(1, 4)} == {"matched"}
    assert service.check_consistency() == []


def test_sweep_persists_transient_matching_status() -> None:
    written: list[tuple[str, str]] = []

    def _persist(item: ItemRecord) -> None:
        written.append((item.id, item.status))

    service = _service(match_on_extraction=False, persist=_persist)
    _register(service, "a", 0)
    service.on_extraction_result("a", None, "blue cardboard box", BLUE)
    written.clear()

    service.run_auto_grouping()

    assert written == [("a", "matching"), ("a", "unmatched")]


def test_clear_empties_pool() -> None:
    service = _service()
    _register(service, "a", 0)
    service.on_manual_group_edit("a", "LAB-7")

    service.clear()

    assert service.items() == []
    assert len(service.allocator.index) == 0


def test_resolve_duplicate_names_keeps_earliest_holder() -> None:
    items = {
        "a": ItemRecord(
            id="a", origin="a.jpg", captured_at=T0, group="LAB-7", assigned_name="LAB-7.jpg"
        ),
        "b": ItemRecord(
            id="b",
            origin="b.jpg",
            captured_at=T0 + timedelta(seconds=30),
            group="LAB-7",
            assigned_name="LAB-7.jpg",
        ),
    }
    service = GroupingService(PoolState(root="/pool", items=items))
    assert service.check_consistency()

    reports = service.resolve_duplicate_names()

    assert [report.group for report in reports] == ["LAB-7"]
    assert service.get("a").assigned_name == "LAB-7.jpg"
    assert service.get("b").assigned_name == "LAB-7_2.jpg"
    assert service.check_consistency() == []


def test_names_stay_unique_across_many_edits() -> None:
    service = _service()
    for index in range(12):
        _register(service, f"i{index}", index * 5)
    for index in range(12):
        service.on_manual_group_edit(f"i{index}", ["LAB 7", "LAB_7", "LAB-8"][index % 3])
    service.on_manual_group_edit("i0", "LAB-8")
    service.on_manual_group_edit("i4", "")

    names = [item.assigned_name for item in service.items() if item.assigned_name]
    assert len(names) == len(set(names)) == 11
    assert service.check_consistency() == []


def test_capture_window_bounds_are_inclusive() -> None:
    items = [
        ItemRecord(id=str(s), origin="x.jpg", captured_at=T0 + timedelta(seconds=s))
        for s in (0, 60, 120, 300)
    ]
    window = CaptureWindow(items)

    around = window.around(T0 + timedelta(seconds=60), timedelta(seconds=60))

    assert [item.id for item in around] == ["0", "60", "120"]
    assert len(window) == 4
