"""
Store error translation.

The classifier turns a driver exception into a driver-neutral
StoreErrorCode; ``translate`` maps that code to an ErrorKind. Supporting
another store only needs another classifier.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

import psycopg2
from psycopg2 import errors

from ..errors import ErrorKind, ThingsError, new_error

logger = logging.getLogger("things.db.translator")


class StoreErrorCode(str, Enum):
    INVALID_ENCODING = "invalid_text_representation"
    TRUNCATION = "string_data_right_truncation"
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    NO_ROWS = "no_rows"
    QUERY_CANCELED = "query_canceled"


class StoreErrorClassifier(Protocol):
    def classify(self, exc: BaseException) -> StoreErrorCode | None:
        """Return the code for ``exc`` or None if it is not recognised."""
        ...


class PostgresErrorClassifier:
    """Classifies psycopg2 errors by SQLSTATE."""

    CODES = {
        "22P02": StoreErrorCode.INVALID_ENCODING,
        "22001": StoreErrorCode.TRUNCATION,
        "23505": StoreErrorCode.UNIQUE_VIOLATION,
        "23503": StoreErrorCode.FOREIGN_KEY_VIOLATION,
        "P0002": StoreErrorCode.NO_ROWS,
        "57014": StoreErrorCode.QUERY_CANCELED,
    }

    def classify(self, exc: BaseException) -> StoreErrorCode | None:
        if not isinstance(exc, psycopg2.Error):
            return None
        pgcode = getattr(exc, "pgcode", None)
        if pgcode in self.CODES:
            return self.CODES[pgcode]
        # Errors raised client-side carry no pgcode, only their class
        for sqlstate, code in self.CODES.items():
            if isinstance(exc, errors.lookup(sqlstate)):
                return code
        return None


_KINDS = {
    StoreErrorCode.INVALID_ENCODING: ErrorKind.MALFORMED_ENTITY,
    StoreErrorCode.TRUNCATION: ErrorKind.MALFORMED_ENTITY,
    StoreErrorCode.UNIQUE_VIOLATION: ErrorKind.CONFLICT,
    StoreErrorCode.FOREIGN_KEY_VIOLATION: ErrorKind.NOT_FOUND,
    StoreErrorCode.NO_ROWS: ErrorKind.NOT_FOUND,
}


def translate(
    code: StoreErrorCode | None,
    fallback: ErrorKind,
    overrides: dict[StoreErrorCode, ErrorKind] | None = None,
) -> ErrorKind:
    """
    Map a store error code to a domain kind, ``fallback`` when unmapped.

    ``overrides`` replaces the default kind of individual codes for one
    operation.
    """
    if code is None:
        return fallback
    if overrides and code in overrides:
        return overrides[code]
    return _KINDS.get(code, fallback)


class ErrorTranslator:
    """Builds domain errors from raw store exceptions."""

    def __init__(self, classifier: StoreErrorClassifier | None = None):
        self.classifier = classifier or PostgresErrorClassifier()

    def kind_of(
        self,
        exc: BaseException,
        fallback: ErrorKind,
        overrides: dict[StoreErrorCode, ErrorKind] | None = None,
    ) -> ErrorKind:
        code = self.classifier.classify(exc)
        kind = translate(code, fallback, overrides)
        logger.debug("Store error %s classified as %s -> %s", type(exc).__name__, code, kind.name)
        return kind

    def to_domain(
        self,
        exc: BaseException,
        fallback: ErrorKind,
        overrides: dict[StoreErrorCode, ErrorKind] | None = None,
    ) -> ThingsError:
        return new_error(self.kind_of(exc, fallback, overrides), exc)


__all__ = [
    "StoreErrorCode",
    "StoreErrorClassifier",
    "PostgresErrorClassifier",
    "ErrorTranslator",
    "translate",
]
