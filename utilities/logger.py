"""
Structured logging for the API server.

Every event carries the request context bound by the HTTP middleware
(request id, method, path), so log lines from the routes, the auth gate
and the collection store can be correlated per request.
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.stdlib import LoggerFactory


def _shared_processors(debug: bool) -> List:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ))
    return processors


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Route structlog events through the standard library root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" for deployments, "console" for local development
        log_file: Optional file that receives a copy of every event
        debug: Add module, function and line number to every event
    """
    level = getattr(logging, log_level.upper())

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=_shared_processors(debug) + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # uvicorn's access log duplicates the "Request handled" events.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=log_level,
        format=log_format,
        file=log_file,
        debug=debug
    )


def bind_request_context(method: str, path: str, request_id: Optional[str] = None) -> str:
    """
    Attach request details to every event logged while handling a request.

    Returns:
        The request id, generated when the client did not send one
    """
    request_id = request_id or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)
    return request_id


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
