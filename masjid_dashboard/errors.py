"""
Domain errors and the JSON error envelope.
Every failed API call answers {"success": false, "message": ..., "code": ...}.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"
VALIDATION_FAILED = "VALIDATION_FAILED"
UNAUTHORIZED = "UNAUTHORIZED"
FORBIDDEN = "FORBIDDEN"
BAD_REQUEST = "BAD_REQUEST"
INTERNAL_ERROR = "INTERNAL_ERROR"

_STATUS_CODES = {
    400: BAD_REQUEST,
    401: UNAUTHORIZED,
    403: FORBIDDEN,
    404: NOT_FOUND,
    422: VALIDATION_FAILED,
}


class ActivityLogError(Exception):
    """Base class for activity log failures."""


class LogWriteError(ActivityLogError):
    """An activity could not be persisted. Never raised to callers."""


class ActivityQueryError(ActivityLogError):
    """Reading or aggregating activities failed."""


class RetentionError(ActivityLogError):
    """A bulk deletion failed."""


def error_body(message: str, code: str) -> dict:
    return {"success": False, "message": message, "code": code}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = _STATUS_CODES.get(exc.status_code, INTERNAL_ERROR)
        return JSONResponse(
            error_body(str(exc.detail), code),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"
        return JSONResponse(error_body(message, VALIDATION_FAILED), status_code=422)

    @app.exception_handler(ActivityLogError)
    async def activity_exception_handler(request: Request, exc: ActivityLogError):
        logger.error("Activity log failure on %s: %s", request.url.path, exc)
        return JSONResponse(error_body(str(exc), INTERNAL_ERROR), status_code=500)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(error_body(str(exc), INTERNAL_ERROR), status_code=500)
