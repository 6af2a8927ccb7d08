"""
Exception types raised by the device database.
"""

from typing import List, Optional


class UdevDBError(Exception):
    """Base class for all device database errors."""
    pass


class InvalidArgument(UdevDBError, ValueError):
    """Raised for missing, oversized or malformed input, before any engine call."""
    pass


class NotFound(UdevDBError, LookupError):
    """Raised when a requested key is absent."""
    pass


class CorruptRecord(UdevDBError):
    """Raised when a stored value does not match its expected layout."""
    pass


class EngineUnavailable(UdevDBError):
    """Raised when the key-value engine cannot be opened or is not open."""
    pass


class EngineFailure(UdevDBError):
    """Raised when a fetch, upsert or delete fails inside the engine."""
    pass


class StoreFailure(EngineFailure):
    """
    Raised when one write of a multi-write sequence fails.

    Writes that completed before the failing one are left in place unless
    the caller asked for a rollback.
    """

    def __init__(
        self,
        stage: str,
        completed: Optional[List[str]] = None,
        rolled_back: bool = False,
        message: Optional[str] = None,
    ):
        self.stage = stage
        self.completed = list(completed or [])
        self.rolled_back = rolled_back
        if message is None:
            message = f"{stage} write failed (completed: {', '.join(self.completed) or 'none'})"
            if rolled_back:
                message += ", rolled back"
        super().__init__(message)
