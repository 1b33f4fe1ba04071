"""
Storage-level exceptions raised by the persistence gateway.
"""

from __future__ import annotations

from typing import Sequence, Tuple


class PersistenceError(Exception):
    """Raised when a unit of work could not be committed."""


class UniqueViolationError(PersistenceError):
    """A unique constraint rejected the write.

    ``fields`` names the offending column(s) when the driver reports them,
    and is empty otherwise.
    """

    def __init__(self, fields: Sequence[str] = (), message: str = "") -> None:
        self.fields: Tuple[str, ...] = tuple(fields)
        super().__init__(message or f"Unique constraint violated on {', '.join(self.fields) or 'unknown field'}")
