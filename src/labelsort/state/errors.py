"""State management errors."""


class StateError(Exception):
    """Base exception for pool state operations."""


class MissingStateError(StateError):
    """Raised when no pool state exists for a collection root."""


class UnknownItemError(StateError):
    """Raised when an operation references an item id that is not in the pool."""
