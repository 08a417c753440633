"""
Exception handlers that render errors as ``{"error": message}`` JSON bodies.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from piper_tracking.core.exceptions import AppError

logger = logging.getLogger(__name__)


async def handle_app_error(request: Request, error: AppError) -> JSONResponse:
    """Handle structured application errors"""
    if error.status_code >= 500:
        logger.error(
            "Application error on %s %s: %s",
            request.method,
            request.url.path,
            error.message,
            exc_info=error.__cause__ or error,
        )
    else:
        logger.warning(
            "Request rejected on %s %s: %s",
            request.method,
            request.url.path,
            error.message,
        )

    content = {"error": error.message}
    if error.details:
        content["details"] = error.details
    return JSONResponse(status_code=error.status_code, content=content)


async def handle_validation_error(request: Request, error: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors"""
    details = []
    for err in error.errors():
        # Drop the leading "body"/"query"/"path" location segment
        loc = [str(part) for part in err["loc"][1:]] or [str(part) for part in err["loc"]]
        details.append({"field": ".".join(loc), "message": err["msg"]})

    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, details)

    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": details},
    )


async def handle_unexpected_error(request: Request, error: Exception) -> JSONResponse:
    """Catch-all for unexpected errors"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def setup_error_handlers(app: FastAPI) -> None:
    """Register the JSON error handlers on the app."""
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
