"""
Pydantic models for things and their listings.

This module defines the entities exchanged with the thing repository
and the payloads reported by the health endpoint.
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Metadata = dict[str, Any]


# --- Entities ---


class Thing(BaseModel):
    """A registered device or resource owned by a principal."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Caller-supplied UUID, immutable")
    owner: str = Field(..., description="Owning principal, immutable")
    name: str = Field(default="", description="Human-readable label")
    key: str = Field(default="", description="Authentication secret, unique when set")
    metadata: Metadata = Field(default_factory=dict)


class PageMetadata(BaseModel):
    """Window of a listing and the unwindowed number of matches."""

    total: int = Field(default=0, ge=0)
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=0, ge=0)


class Page(BaseModel):
    """Things ordered by id ascending plus their page metadata."""

    things: list[Thing] = Field(default_factory=list)
    page_metadata: PageMetadata = Field(default_factory=PageMetadata)


# --- Health ---


class CheckStatus(BaseModel):
    """Individual health check status."""

    status: Literal["ok", "error", "skipped"]
    detail: str | None = None


class HealthzResponse(BaseModel):
    """Health check response (RFC 7807 Problem Details)."""

    type: str = Field(
        default="https://example.com/problems/dependency-check",
        description="Problem type URI",
    )
    title: str = Field(..., description="Short summary of the problem")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    checks: dict[str, CheckStatus] = Field(
        default_factory=dict,
        description="Individual dependency check results",
    )
    errors: list[str] = Field(
        default_factory=list,
        description="List of error messages (empty if healthy)",
    )


_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def is_valid_uuid(value: str) -> bool:
    """Return True if ``value`` is a UUID in canonical 8-4-4-4-12 form."""
    return isinstance(value, str) and _UUID_RE.fullmatch(value) is not None
