"""Structured logging setup and per-request ids."""

import logging
import uuid
from contextvars import ContextVar

import structlog

# Context variable to store the id of the search being processed
_request_id: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Get current request id from context."""
    return _request_id.get()


def new_request_id() -> str:
    """Generate a new request id."""
    return uuid.uuid4().hex[:16]


def bind_request_id(request_id: str | None = None) -> str:
    """Set the request id in context and return it."""
    request_id = request_id or new_request_id()
    _request_id.set(request_id)
    return request_id


def add_request_id(logger, method_name, event_dict):
    """Structlog processor to add the request id."""
    request_id = get_request_id()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Configure stdlib logging and structlog.

    Args:
        level: Log level name
        json_logs: Render JSON lines (otherwise a console renderer)
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_request_id,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
