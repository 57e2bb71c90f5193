from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from files_manager.api.schemas import ErrorBody
from files_manager.logging import get_logger
from files_manager.service.errors import ServiceError

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def _error_response(status_code: int, message: str) -> JSONResponse:
    """Create the ``{"error": message}`` body used by every failing route."""
    return JSONResponse(status_code=status_code, content=ErrorBody(error=message).model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Install exception handlers mapping domain errors to JSON error bodies."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
        )
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(
            "request_validation_error",
            path=request.url.path,
            method=request.method,
            errors=len(exc.errors()),
        )
        return _error_response(400, "Invalid request body")

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "http error"
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        return _error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return _error_response(500, INTERNAL_ERROR_MESSAGE)
