"""Structured logging configuration using structlog."""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from rich.logging import RichHandler

from job_tracker.config import settings


def configure_logging() -> None:
    """Configure structured logging with rich output."""
    level = getattr(logging, settings.log_level.upper())

    # Standard library loggers (uvicorn, sqlalchemy) go through rich
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        handlers=[RichHandler(rich_tracebacks=True, markup=True)],
    )
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_request_context(request_id: str, method: str, path: str, actor_id: Optional[str] = None) -> None:
    """Replace the context-local log fields with those of a new API request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        component="api",
        request_id=request_id,
        method=method,
        path=path,
        actor_id=actor_id,
    )


def log_actor(actor: Any) -> Dict[str, Any]:
    """Create a log context for the acting user."""
    return {
        "actor_id": getattr(actor, "id", None),
        "actor_role": getattr(getattr(actor, "role", None), "value", None),
    }
