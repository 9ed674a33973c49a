"""
Structured logging for the content proxy.

Every event carries the service name and, inside a request, the request id
and path so cache decisions can be traced per request.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Request correlation
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
request_path_var: ContextVar[Optional[str]] = ContextVar("request_path", default=None)


def configure_logging(service_name: str, log_level: str = "info", *, json_output: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module."""

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _service_context(service_name),
            add_correlation_context,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    # httpx logs every request at INFO; remote calls are logged by the adapters
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _service_context(service_name: str):
    def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service_context


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the current request id and path, when inside a request."""
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    path = request_path_var.get()
    if path:
        event_dict.setdefault("path", path)

    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context, generating one when the caller sent none."""
    if not request_id:
        request_id = uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


def set_request_path(path: str) -> None:
    request_path_var.set(path)


def clear_context():
    """Clear request correlation."""
    request_id_var.set(None)
    request_path_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
