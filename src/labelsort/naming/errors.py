"""Name allocation errors."""


class AllocationError(Exception):
    """Raised when no unique name can be found within the configured counter limit."""
