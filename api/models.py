"""
API response models for TalentsPal REST endpoints.

Every response, success or failure, uses the same envelope so clients parse
one shape:

    {success, message, data?, errors?, error?, stack?}

errors carries the per-field validation map. error and stack are filled
only when DEBUG is on. Unset optional keys are omitted from the JSON rather
than sent as null.

Request models live in auth/schemas.py next to the flows that use them.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict


class Envelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    data: Optional[dict[str, Any]] = None
    errors: Optional[dict[str, str]] = None
    error: Optional[str] = None
    stack: Optional[str] = None


class HealthResponse(BaseModel):
    """Response body for GET /api/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str] = {}


def envelope_response(
    status_code: int,
    success: bool,
    message: str,
    *,
    data: dict[str, Any] | None = None,
    errors: dict[str, str] | None = None,
    error: str | None = None,
    stack: str | None = None,
    no_store: bool = False,
) -> JSONResponse:
    """Render an Envelope as a JSONResponse.

    no_store adds Cache-Control: no-store; set it on anything carrying tokens.
    """
    body = Envelope(success=success, message=message, data=data, errors=errors, error=error, stack=stack)
    response = JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))
    if no_store:
        response.headers["Cache-Control"] = "no-store"
    return response


def success_response(message: str, data: dict[str, Any] | None = None, status_code: int = 200, **kwargs) -> JSONResponse:
    return envelope_response(status_code, True, message, data=data, **kwargs)
