from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from files_manager.api.error_handling import register_exception_handlers
from files_manager.api.routes import router
from files_manager.logging import bind_request_id, get_logger
from files_manager.service.errors import ConnectionTimeoutError
from files_manager.service.runtime import get_runtime, set_runtime

logger = get_logger(__name__)

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wait for the persistent store before serving; close the stores on exit."""
    runtime = get_runtime()
    try:
        attempts = await runtime.wait_until_ready()
    except ConnectionTimeoutError as exc:
        logger.error("startup_store_timeout", error=exc.message)
        await runtime.close()
        set_runtime(None)
        raise
    logger.info("startup_complete", readiness_attempts=attempts)

    yield

    try:
        await runtime.close()
    finally:
        set_runtime(None)
        logger.info("shutdown_complete")


app = FastAPI(title="Files Manager", version=__version__, lifespan=lifespan)


@app.middleware("http")
async def add_request_id(request, call_next):
    """Bind a request id to every log event emitted while serving the request.

    Taken from the ``X-Request-ID`` header when the client sends one, otherwise
    generated, and echoed back in the response header.
    """
    request_id = bind_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


register_exception_handlers(app)
app.include_router(router)