"""
Health check endpoint.

Provides system health status following RFC 7807 Problem Details.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..db import check_connection
from ..models import CheckStatus, HealthzResponse

router = APIRouter(tags=["Health"])
logger = logging.getLogger("things.healthz")


@router.get(
    "/healthz",
    response_model=HealthzResponse,
    responses={
        200: {
            "description": "Health check results",
            "content": {"application/problem+json": {}},
        }
    },
    summary="Health check endpoint",
    description="Checks connectivity to the thing database.",
)
def healthz() -> JSONResponse:
    """
    Check health of all dependencies.

    Returns RFC 7807 Problem Details format with individual check results.
    Always returns 200 to allow monitoring of degraded states.
    """
    errors: list[str] = []
    checks: dict[str, CheckStatus] = {}

    is_healthy, error_msg = check_connection()
    if is_healthy:
        checks["db"] = CheckStatus(status="ok")
    else:
        logger.warning("Database health check failed: %s", error_msg)
        errors.append(f"DB not reachable or unauthorized: {error_msg}")
        checks["db"] = CheckStatus(status="error", detail=error_msg)

    body = HealthzResponse(
        title="Dependency check failed" if errors else "OK",
        status=200,
        detail="One or more dependencies are not healthy." if errors else "All dependencies are healthy.",
        checks=checks,
        errors=errors,
    )
    return JSONResponse(
        status_code=200,
        media_type="application/problem+json",
        content=body.model_dump(),
    )
