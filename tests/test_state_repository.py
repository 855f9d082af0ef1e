"""State repository tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from labelsort.state import (
    DEFAULT_STATE_DIRNAME,
    ItemRecord,
    MissingStateError,
    PoolState,
    StateError,
    StateRepository,
    parse_colors,
)


def _state(tmp_path: Path) -> PoolState:
    """Return a sample pool with one grouped item.

    Args:
        tmp_path: Temporary directory provided by pytest.

    Returns:
        PoolState: Pool populated with one item record.
    """
    item = ItemRecord(
        id="a",
        origin="IMG_0001.jpg",
        captured_at=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
        code="AGO.1.0",
        description="red plastic bottle",
        colors=[{"color_value": "#cc2222", "color_name": "red"}],
        group="AGO.1.0",
        assigned_name="AGO.1.0.jpg",
        group_confidence=1.0,
        status="extracted",
    )
    return PoolState(root=str(tmp_path), items={item.id: item})


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    """Ensure save followed by load returns the same pool.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    repo = StateRepository()
    state = _state(tmp_path)

    repo.save(tmp_path, state)
    loaded = repo.load(tmp_path)

    assert repo.state_path(tmp_path) == tmp_path / DEFAULT_STATE_DIRNAME / "state.json"
    assert loaded.root == state.root
    assert loaded.items["a"] == state.items["a"]
    assert not (tmp_path / DEFAULT_STATE_DIRNAME / "state.json.tmp").exists()


def test_load_missing_state_raises(tmp_path: Path) -> None:
    repo = StateRepository()

    with pytest.raises(MissingStateError):
        repo.load(tmp_path)

    fresh = repo.load_or_create(tmp_path)
    assert fresh.items == {}
    assert fresh.root == str(tmp_path)


def test_load_invalid_state_raises(tmp_path: Path) -> None:
    repo = StateRepository()
    path = repo.state_path(tmp_path)
    path.parent.mkdir(parents=True)

    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StateError):
        repo.load(tmp_path)

    path.write_text('{"items": []}', encoding="utf-8")
    with pytest.raises(StateError):
        repo.load(tmp_path)


def test_colors_are_parsed_leniently() -> None:
    samples = parse_colors('[{"colorValue": "#ffffff", "colorName": "white"}, 7]')
    assert [(s.color_value, s.color_name) for s in samples] == [("#ffffff", "white")]

    assert parse_colors("not json") == []
    assert parse_colors({"color": "#fff"}) == []
    assert parse_colors(None) == []

    many = parse_colors([{"color": f"#{i}{i}{i}"} for i in range(5)])
    assert len(many) == 3


def test_item_record_normalizes_timestamps_and_colors() -> None:
    item = ItemRecord(
        id="b",
        origin="b.jpg",
        captured_at=datetime(2024, 5, 1, 9, 30),
        colors="garbage",
    )

    assert item.captured_at.tzinfo == timezone.utc
    assert item.colors == []
    assert item.status == "unprocessed"
    assert not item.is_grouped

    item.group = "   "
    assert not item.is_grouped
