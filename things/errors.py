"""
Domain errors for thing persistence.

Every repository failure surfaces as a ThingsError carrying one ErrorKind.
Callers branch on the kind, never on the underlying store error, which is
kept in ``cause`` (and chained via ``__cause__``) for diagnostics.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error kinds exposed by the repository."""

    MALFORMED_ENTITY = "malformed entity specification"
    CONFLICT = "entity already exists"
    NOT_FOUND = "non-existent entity"
    CREATE_ENTITY = "failed to create entity in the db"
    UPDATE_ENTITY = "failed to update entity in the db"
    SELECT_ENTITY = "failed to select entity from the db"
    REMOVE_ENTITY = "failed to remove entity from the db"


class ThingsError(Exception):
    """Base error. Compared by ``kind``, not by identity."""

    kind: ErrorKind = ErrorKind.SELECT_ENTITY

    def __init__(self, cause: BaseException | None = None, message: str | None = None):
        self.cause = cause
        text = message or self.kind.value
        if cause is not None:
            text = f"{text}: {cause}"
        super().__init__(text)

    def is_kind(self, kind: ErrorKind) -> bool:
        return self.kind is kind


class MalformedEntityError(ThingsError):
    kind = ErrorKind.MALFORMED_ENTITY


class ConflictError(ThingsError):
    kind = ErrorKind.CONFLICT


class NotFoundError(ThingsError):
    kind = ErrorKind.NOT_FOUND


class CreateEntityError(ThingsError):
    kind = ErrorKind.CREATE_ENTITY


class UpdateEntityError(ThingsError):
    kind = ErrorKind.UPDATE_ENTITY


class SelectEntityError(ThingsError):
    kind = ErrorKind.SELECT_ENTITY


class RemoveEntityError(ThingsError):
    kind = ErrorKind.REMOVE_ENTITY


_ERRORS_BY_KIND: dict[ErrorKind, type[ThingsError]] = {
    cls.kind: cls
    for cls in (
        MalformedEntityError,
        ConflictError,
        NotFoundError,
        CreateEntityError,
        UpdateEntityError,
        SelectEntityError,
        RemoveEntityError,
    )
}


def new_error(kind: ErrorKind, cause: BaseException | None = None) -> ThingsError:
    """Build the error class registered for ``kind``."""
    return _ERRORS_BY_KIND[kind](cause)


__all__ = [
    "ErrorKind",
    "ThingsError",
    "MalformedEntityError",
    "ConflictError",
    "NotFoundError",
    "CreateEntityError",
    "UpdateEntityError",
    "SelectEntityError",
    "RemoveEntityError",
    "new_error",
]
