"""
Error handling - every failure leaves the API as {"success": false, "message": ...}.

Usage:
    from app.core.exceptions import APIError

    if not fee:
        raise APIError("Fee not found", 404)
"""

import logging
from typing import Any, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Application error carrying its HTTP status."""

    def __init__(self, message: str, status_code: int = 400, data: Optional[Any] = None):
        self.message = message
        self.status_code = status_code
        self.data = data
        super().__init__(message)


def error_body(message: str, data: Any = None) -> dict:
    body = {"success": False, "message": message}
    if data is not None:
        body["data"] = data
    return body


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return ", ".join(messages) or "Validation error"


async def api_error_handler(request: Request, exc: APIError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.data))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(message)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body(_format_validation_errors(exc)))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    logger.warning(f"Duplicate key on {request.url.path}: {exc.details}")
    return JSONResponse(status_code=400, content=error_body("Duplicate field value entered"))


async def invalid_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=404, content=error_body("Resource not found"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = str(exc) if get_settings().debug else "Server Error"
    return JSONResponse(status_code=500, content=error_body(message or "Server Error"))


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all error handlers to the app."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(InvalidId, invalid_id_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
