from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, Optional

import structlog

# Event fields that may carry credentials or contact details
REDACTED_FIELDS = frozenset(
    {"authorization", "email", "password", "password_digest", "token", "x_token"}
)


def bind_request_id(request_id: Optional[str] = None) -> str:
    """Start a fresh log context for one request and return its id."""
    request_id = request_id or str(uuid.uuid4())
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def _redact(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in REDACTED_FIELDS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _configure_structlog(log_level: str, json_output: bool) -> None:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


_configure_structlog(
    log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    json_output=os.getenv("LOG_JSON", "true").lower() in {"1", "true", "yes", "on"},
)


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
