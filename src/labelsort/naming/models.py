"""Data models describing name allocation outcomes."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class NameChange(BaseModel):
    """A single item whose assigned name changed."""

    item_id: str
    previous: str
    current: str


class PersistFailure(BaseModel):
    """An item whose new name could not be persisted."""

    item_id: str
    name: str
    error: str


class ResequenceReport(BaseModel):
    """Outcome of re-sequencing one group.

    Attributes:
        group: Group that was re-sequenced.
        names: Final names in capture order.
        changes: Items whose name changed during the pass.
        failures: Items whose name update could not be persisted.
    """

    group: str
    names: List[str] = Field(default_factory=list)
    changes: List[NameChange] = Field(default_factory=list)
    failures: List[PersistFailure] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Return whether any persistence call failed during the pass."""
        return bool(self.failures)
