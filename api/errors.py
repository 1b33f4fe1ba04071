"""
Exception handlers. Every error leaves the API in one shape::

    {statusCode, error, message, path, method, requestId, timestamp[, details]}
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.middleware import REQUEST_ID_HEADER
from auth.errors import AuthError
from database.errors import PersistenceError

logger = logging.getLogger(__name__)


def _payload(
    request: Request, status_code: int, message: str, details: Optional[Any] = None
) -> Dict[str, Any]:
    try:
        error = HTTPStatus(status_code).phrase
    except ValueError:
        error = "Error"
    body: Dict[str, Any] = {
        "statusCode": status_code,
        "error": error,
        "message": message,
        "path": request.url.path,
        "method": request.method,
        "requestId": getattr(request.state, "request_id", None),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        body["details"] = details
    return body


def _respond(request: Request, status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(_payload(request, status_code, message, details)),
    )
    # 500s are sent from outside the request-id middleware, so set it here too
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        return _respond(request, exc.status_code, exc.message, exc.details or None)

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("Unhandled persistence error on %s %s: %s", request.method, request.url.path, exc)
        return _respond(request, 500, "Internal server error")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _respond(request, exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _respond(request, 422, "Validation failed", exc.errors())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _respond(request, 500, "Internal server error")
