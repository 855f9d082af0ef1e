"""Pool-level grouping service."""

from .service import (
    AUTO_GROUPING_TARGETS,
    INFERENCE_TARGETS,
    EditOutcome,
    GroupingService,
    ItemUpdate,
    SweepResult,
)
from .window import CaptureWindow

__all__ = [
    "GroupingService",
    "ItemUpdate",
    "EditOutcome",
    "SweepResult",
    "CaptureWindow",
    "INFERENCE_TARGETS",
    "AUTO_GROUPING_TARGETS",
]
