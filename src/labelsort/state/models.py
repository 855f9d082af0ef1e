"""State data models for photographed samples and the item pool."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

LOGGER = logging.getLogger(__name__)

MAX_COLORS = 3

ItemStatus = Literal[
    "unprocessed",
    "extracting",
    "extracted",
    "pending-match",
    "matching",
    "matched",
    "unmatched",
    "human-grouped",
    "invalid-group",
]


class ColorSample(BaseModel):
    """One dominant color reported by the vision step.

    Attributes:
        color_value: Hex color string such as ``#cc2222``.
        color_name: Free-text name such as ``dark red``.
    """

    model_config = ConfigDict(populate_by_name=True)

    color_value: str = Field(validation_alias=AliasChoices("color_value", "colorValue", "color"))
    color_name: str = Field(
        default="", validation_alias=AliasChoices("color_name", "colorName", "name")
    )


class ItemRecord(BaseModel):
    """A single photographed sample tracked by the pool.

    Attributes:
        id: Opaque stable identifier.
        origin: Original file name; its extension is reused for ``assigned_name``.
        captured_at: Capture timestamp, the ordering key for grouping and naming.
        code: Identifier extracted from the label, if any.
        description: Short description of the photographed object.
        colors: Up to three dominant colors, most dominant first.
        group: Logical group key; ``None`` when ungrouped.
        assigned_name: File name computed by the allocator.
        group_confidence: 1.0 for code-derived or human groups, lower when inferred.
        status: Lifecycle status.
        match_reason: Explanation recorded when the group was inferred.
    """

    id: str
    origin: str
    captured_at: datetime
    code: Optional[str] = None
    description: Optional[str] = None
    colors: List[ColorSample] = Field(default_factory=list)
    group: Optional[str] = None
    assigned_name: str = ""
    group_confidence: float = 0.0
    status: ItemStatus = "unprocessed"
    match_reason: Optional[str] = None

    @field_validator("captured_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("colors", mode="before")
    @classmethod
    def _lenient_colors(cls, value: Any) -> List[ColorSample]:
        return parse_colors(value)

    @property
    def is_grouped(self) -> bool:
        """Return whether the item carries a non-empty group."""
        return bool(self.group and self.group.strip())


class PoolState(BaseModel):
    """Aggregate state for every item in a collection."""

    root: str
    items: Dict[str, ItemRecord] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def parse_colors(raw: Any) -> List[ColorSample]:
    """Return the dominant colors encoded in ``raw``.

    ``raw`` may be ``None``, a JSON string, or a list of mappings/``ColorSample``
    objects. Anything unparsable yields an empty list; individual malformed
    entries are skipped. At most ``MAX_COLORS`` samples are kept.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.debug("Ignoring unparsable color payload %r", raw)
            return []
    if not isinstance(raw, (list, tuple)):
        LOGGER.debug("Ignoring color payload of type %s", type(raw).__name__)
        return []

    samples: List[ColorSample] = []
    for entry in raw:
        if isinstance(entry, ColorSample):
            samples.append(entry)
            continue
        if not isinstance(entry, dict):
            continue
        try:
            samples.append(ColorSample.model_validate(entry))
        except ValidationError:
            LOGGER.debug("Skipping malformed color entry %r", entry)
    return samples[:MAX_COLORS]


__all__ = ["ColorSample", "ItemRecord", "ItemStatus", "PoolState", "parse_colors", "MAX_COLORS"]
