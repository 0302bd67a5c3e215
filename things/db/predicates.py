"""
Composable SQL predicates for listing queries.

Each optional filter maps its value to a Predicate (a WHERE fragment plus
the named parameters it binds). An absent filter yields the neutral
predicate, so filters can always be conjoined without special cases.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models import Metadata
from .codec import encode_metadata

NEUTRAL_CLAUSE = "TRUE"


@dataclass(frozen=True)
class Predicate:
    clause: str = NEUTRAL_CLAUSE
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def neutral(cls) -> Predicate:
        return cls()

    @property
    def is_neutral(self) -> bool:
        return self.clause == NEUTRAL_CLAUSE

    def __and__(self, other: Predicate) -> Predicate:
        if self.is_neutral:
            return other
        if other.is_neutral:
            return self
        overlap = self.params.keys() & other.params.keys()
        if overlap:
            raise ValueError(f"conflicting predicate parameters: {sorted(overlap)}")
        return Predicate(
            clause=f"({self.clause}) AND ({other.clause})",
            params={**self.params, **other.params},
        )


def combine(*predicates: Predicate) -> Predicate:
    """Conjoin predicates; no predicates at all is the neutral one."""
    result = Predicate.neutral()
    for predicate in predicates:
        result = result & predicate
    return result


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def name_filter(name: str | None, column: str = "name") -> Predicate:
    """Case-insensitive substring match on the thing name."""
    if not name:
        return Predicate.neutral()
    pattern = f"%{_escape_like(name.lower())}%"
    return Predicate(clause=f"LOWER({column}) LIKE %(name)s", params={"name": pattern})


def metadata_filter(metadata: Metadata | None, column: str = "metadata") -> Predicate:
    """
    Stored metadata contains ``metadata`` (filter is a subset of the document).

    Raises:
        MalformedEntityError: if the filter cannot be serialized.
    """
    if not metadata:
        return Predicate.neutral()
    return Predicate(
        clause=f"{column} @> %(metadata)s::jsonb",
        params={"metadata": encode_metadata(metadata)},
    )
