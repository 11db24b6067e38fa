"""Exception handlers that render every failure in the response envelope.

Failures share the ``{code, message, data, details}`` shape of successful
responses, with ``data`` always ``null``.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.loan_errors import LoanWorkflowError

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    HTTPStatus.BAD_REQUEST: "bad_request",
    HTTPStatus.UNAUTHORIZED: "unauthorized",
    HTTPStatus.FORBIDDEN: "forbidden",
    HTTPStatus.NOT_FOUND: "not_found",
    HTTPStatus.METHOD_NOT_ALLOWED: "method_not_allowed",
    HTTPStatus.CONFLICT: "conflict",
    HTTPStatus.UNPROCESSABLE_ENTITY: "unprocessable_entity",
    HTTPStatus.TOO_MANY_REQUESTS: "rate_limited",
}
_REQUEST_SECTIONS = {"body", "query", "path", "header"}


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    if details is None:
        details = {}
    elif isinstance(details, list):
        details = {"errors": details}
    elif not isinstance(details, dict):
        details = {"detail": str(details)}
    body = {"code": code, "message": message, "data": None, "details": details}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors to ``{field, message, type}`` triples."""
    flattened = []
    for error in exc.errors():
        path = [str(part) for part in error.get("loc", ()) if part not in _REQUEST_SECTIONS]
        flattened.append(
            {
                "field": ".".join(path),
                "message": str(error.get("msg", "Invalid value")),
                "type": str(error.get("type", "value_error")),
            }
        )
    return flattened


async def handle_loan_workflow_error(request: Request, exc: LoanWorkflowError) -> JSONResponse:
    logger.info(
        "Rejected %s %s with %s: %s",
        request.method,
        request.url.path,
        exc.code,
        exc.message,
    )
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, "http_error")
    message, details = _phrase(exc.status_code), None
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", code)
        message = exc.detail.get("message", message)
        details = exc.detail.get("details")
    elif isinstance(exc.detail, str):
        message = exc.detail
    return error_response(exc.status_code, code, message, details, getattr(exc, "headers", None))


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _field_errors(exc)
    if not errors:
        message = "Validation failed"
    elif errors[0]["field"]:
        message = f"{errors[0]['field']}: {errors[0]['message']}"
    else:
        message = errors[0]["message"]
    return error_response(HTTPStatus.UNPROCESSABLE_ENTITY, "validation_error", message, {"errors": errors})


async def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    return error_response(
        HTTPStatus.TOO_MANY_REQUESTS,
        "rate_limited",
        f"Rate limit exceeded: {exc.detail}",
        headers=headers if isinstance(headers, dict) else None,
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, "internal_server_error", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LoanWorkflowError, handle_loan_workflow_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(RateLimitExceeded, handle_rate_limit)
    app.add_exception_handler(Exception, handle_unexpected)
