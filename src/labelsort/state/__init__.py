"""State persistence helpers for labelsort collections."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from .errors import MissingStateError, StateError, UnknownItemError
from .models import ColorSample, ItemRecord, ItemStatus, PoolState, parse_colors

DEFAULT_STATE_DIRNAME = ".labelsort"
STATE_FILENAME = "state.json"


class StateRepository:
    """Persist the item pool of a collection as JSON."""

    def __init__(self, base_dirname: str = DEFAULT_STATE_DIRNAME) -> None:
        """Initialize the repository.

        Args:
            base_dirname: Name of the directory that stores pool state.
        """
        self._base_dirname = base_dirname

    @property
    def base_dirname(self) -> str:
        """Return the directory name used for pool metadata."""
        return self._base_dirname

    def state_path(self, root: Path) -> Path:
        """Return the location of the state file for ``root``."""
        return root / self._base_dirname / STATE_FILENAME

    def exists(self, root: Path) -> bool:
        """Return whether a state file has been written for ``root``."""
        return self.state_path(root).exists()

    def load(self, root: Path) -> PoolState:
        """Load the pool state for the given root.

        Args:
            root: Root path of the collection.

        Returns:
            PoolState: Deserialized pool.

        Raises:
            MissingStateError: If no state file is present.
            StateError: If stored data cannot be parsed.
        """
        path = self.state_path(root)
        if not path.exists():
            raise MissingStateError(f"No pool state found at {path}")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateError(f"Invalid pool state data: {exc}") from exc

        try:
            return PoolState.model_validate(data)
        except ValueError as exc:
            raise StateError(f"Pool state does not match the expected schema: {exc}") from exc

    def load_or_create(self, root: Path) -> PoolState:
        """Return the stored pool for ``root`` or a fresh empty one."""
        try:
            return self.load(root)
        except MissingStateError:
            return PoolState(root=str(root))

    def save(self, root: Path, state: PoolState) -> None:
        """Persist the pool state for the given root.

        Args:
            root: Root path of the collection.
            state: Pool to serialize.
        """
        directory = root / self._base_dirname
        directory.mkdir(parents=True, exist_ok=True)
        state.updated_at = datetime.now(timezone.utc)
        payload = state.model_dump(mode="json")
        tmp_path = directory / f"{STATE_FILENAME}.tmp"
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp_path.replace(self.state_path(root))


__all__ = [
    "StateRepository",
    "DEFAULT_STATE_DIRNAME",
    "ColorSample",
    "ItemRecord",
    "ItemStatus",
    "PoolState",
    "parse_colors",
    "StateError",
    "MissingStateError",
    "UnknownItemError",
]
