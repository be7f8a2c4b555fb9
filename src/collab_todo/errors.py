"""
Domain error taxonomy shared by the directory, registry, task store and
visibility resolver. The HTTP layer maps these onto status codes in main.py.
"""
from __future__ import annotations


# PUBLIC_INTERFACE
class TodoError(Exception):
    """Base class for all domain failures surfaced to the caller."""

    status_code: int = 400
    error: str = "Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(TodoError):
    """Entity absent, or present but invisible to the caller."""

    status_code = 404
    error = "NotFound"


class Forbidden(TodoError):
    """Entity visible, but the caller may not perform this mutation."""

    status_code = 403
    error = "Forbidden"


class Conflict(TodoError):
    """Uniqueness or state-invariant violation."""

    status_code = 409
    error = "Conflict"


class InvalidState(TodoError):
    """Operation not valid for the entity's current kind or lifecycle state."""

    status_code = 400
    error = "InvalidState"


class Expired(NotFound):
    """Undo attempted after the tombstone expired. Reported to clients as NotFound."""
