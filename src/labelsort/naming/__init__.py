"""File name allocation for grouped items."""

from .allocator import NameAllocator, NameIndex, extension_for, sanitize_group
from .errors import AllocationError
from .models import NameChange, PersistFailure, ResequenceReport

__all__ = [
    "NameAllocator",
    "NameIndex",
    "extension_for",
    "sanitize_group",
    "AllocationError",
    "NameChange",
    "PersistFailure",
    "ResequenceReport",
]
