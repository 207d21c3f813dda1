"""Uniform error responses.

Every failure leaves the API as ``{error, message, request_id, details}`` so
clients parse one shape regardless of where the error was raised.
"""

from __future__ import annotations

import logging
from typing import cast

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from todosync_backend.domain.errors import ClientGroupAccessError, ProtocolViolationError
from todosync_backend.schemas_common import ErrorResponse

logger = logging.getLogger(__name__)


def _map_http_status_to_error(status_code: int) -> str:
    mapping: dict[int, str] = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "validation_error",
    }
    return mapping.get(status_code, f"http_{status_code}")


def _error_response(
    request: Request,
    *,
    status_code: int,
    error: str,
    message: str,
    details: object | None = None,
) -> JSONResponse:
    payload = ErrorResponse(
        error=error,
        message=message,
        request_id=getattr(request.state, "request_id", None),
        details=details,
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload, exclude_none=True))


async def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(StarletteHTTPException, exc)

    details: object | None = None
    message = str(http_exc.detail)
    if isinstance(http_exc.detail, dict):
        # Convention: {'message': str, 'details': object}
        msg = http_exc.detail.get("message")
        if isinstance(msg, str):
            message = msg
            details = http_exc.detail.get("details")
        else:
            details = http_exc.detail
    elif isinstance(http_exc.detail, list):
        details = http_exc.detail

    response = _error_response(
        request,
        status_code=http_exc.status_code,
        error=_map_http_status_to_error(http_exc.status_code),
        message=message,
        details=details,
    )
    headers = getattr(http_exc, "headers", None)
    if headers:
        response.headers.update(headers)
    return response


async def _validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    validation_exc = cast(RequestValidationError, exc)
    return _error_response(
        request,
        status_code=422,
        error="validation_error",
        message="Request validation error",
        details=validation_exc.errors(),
    )


async def _protocol_violation_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(
        "push aborted request_id=%s: %s", getattr(request.state, "request_id", None), exc
    )
    return _error_response(request, status_code=400, error="protocol_violation", message=str(exc))


async def _client_group_access_handler(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(request, status_code=403, error="forbidden", message=str(exc))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    logger.exception(
        "unhandled exception request_id=%s method=%s path=%s",
        request_id,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error_response(
        request, status_code=500, error="internal_error", message="Internal server error"
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(ProtocolViolationError, _protocol_violation_handler)
    app.add_exception_handler(ClientGroupAccessError, _client_group_access_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
