"""
Error taxonomy for time tracking operations.

All of these are rejected operations on otherwise intact state. They derive
from ValueError so callers that only care about "the request was refused"
can keep catching ValueError.
"""
from typing import Optional


class TimeEntryError(ValueError):
    status_code = 400


class ConflictError(TimeEntryError):
    """A timer is already running for the user."""

    status_code = 409


class InvalidStateError(TimeEntryError):
    """The entry is not in the state the operation expects, or is not the caller's."""

    status_code = 409


class NotFoundError(TimeEntryError):
    status_code = 404


class EntryValidationError(TimeEntryError):
    """Malformed entry fields. `field` names the offending input."""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field
