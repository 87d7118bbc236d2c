"""Member Node API error handling.

Every error response uses the same JSON envelope::

    {"code": ..., "message": ..., "details": ..., "request_id": ...}

with the request ID echoed in the X-Request-Id header.

Global exception handlers:
- MemberNodeError: protocol errors, ``code`` is the DataONE error name
- HTTPException: Starlette HTTP exceptions (FastAPI's subclass included)
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (fail closed, no stack traces)
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from membernode.api.middleware.request_id import REQUEST_ID_HEADER
from membernode.errors import MemberNodeError

logger = logging.getLogger(__name__)

HTTP_STATUS_TO_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    501: "NOT_IMPLEMENTED",
}


class ErrorResponse(BaseModel):
    """Error envelope schema."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str | None = None


def _get_request_id(request: Request) -> str:
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is not None:
        return str(request_id)

    header_id = request.headers.get(REQUEST_ID_HEADER)
    if header_id:
        return header_id

    return str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build an error envelope response carrying the request ID."""
    request_id = _get_request_id(request)
    body = ErrorResponse(code=code, message=message, details=details, request_id=request_id)

    response = JSONResponse(status_code=http_status, content=body.model_dump())
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def member_node_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map protocol errors to their HTTP status and DataONE error name."""
    assert isinstance(exc, MemberNodeError)

    if exc.http_status >= 500:
        logger.error("%s: %s", exc.name, exc)
    else:
        logger.info("%s: %s", exc.name, exc)

    return make_error_response(
        request,
        code=exc.name,
        message=exc.message,
        http_status=exc.http_status,
        details={"identifier": exc.identifier} if exc.identifier else None,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)

    return make_error_response(
        request,
        code=HTTP_STATUS_TO_CODE.get(exc.status_code, "ERROR"),
        message=str(exc.detail) if exc.detail else f"HTTP {exc.status_code}",
        http_status=exc.status_code,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map Pydantic validation errors to the envelope without raw internals."""
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: fail closed with a generic 500, log the traceback."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope handlers on an application."""
    app.add_exception_handler(MemberNodeError, member_node_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
