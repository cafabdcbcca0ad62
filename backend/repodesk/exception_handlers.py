"""
JSON error responses for the chat front end.

Every AppException raised in a route, a dependency or a service becomes

    {"detail": "<message shown to the user>", "error_code": "<CODE>"}

with the exception's status code. Anything else is a 500 with a generic
message; the traceback only goes to the log.

Registered in main.py:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from repodesk.exceptions import AppException, RateLimitError

logger = logging.getLogger(__name__)

RATE_LIMIT_RETRY_AFTER = "60"


def _request_extra(request: Request, **kwargs) -> dict:
    return {
        "session_id": request.path_params.get("session_id", ""),
        "path": request.url.path,
        "method": request.method,
        **kwargs,
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    # Unknown paths and missing tokens are routine in a chat; only 5xx is an error
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        level,
        f"{exc.error_code}: {exc.message}",
        extra=_request_extra(request, status_code=exc.status_code),
    )

    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": RATE_LIMIT_RETRY_AFTER}

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        extra=_request_extra(request, error=str(exc)),
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"},
    )
