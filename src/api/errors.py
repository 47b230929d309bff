"""Rendering of governance rejections as JSON error responses."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.models.schemas import ErrorResponse
from src.core.exceptions import GovernanceError, ValidationFailedError
from src.core.logging import get_logger

log = get_logger(__name__)


def error_body(exc: GovernanceError) -> dict[str, Any]:
    details: dict[str, Any] = dict(exc.context)
    if isinstance(exc, ValidationFailedError) and exc.violations:
        details["violations"] = [
            {"field": v.field, "message": v.message} for v in exc.violations
        ]
    body = ErrorResponse(
        statusCode=exc.status_code,
        message=exc.message,
        code=exc.error_code.value,
        details=details or None,
    )
    return body.model_dump(exclude_none=True)


async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    log.info(
        "request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.error_code.value,
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


def register_error_handlers(app: FastAPI) -> None:
    """Install the ``GovernanceError`` handler on ``app``."""
    app.add_exception_handler(GovernanceError, governance_error_handler)  # type: ignore[arg-type]
