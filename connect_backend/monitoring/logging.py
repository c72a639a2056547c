"""
Structured logging configuration.

structlog builds the event (request context from contextvars, app name and
environment, exception text) and hands it to the stdlib logger as ``extra``
fields. A single python-json-logger handler on the root logger then writes
one flat JSON object per line, so uvicorn and Stripe SDK records share the
same shape as application events:

    {"@timestamp": "...", "level": "INFO", "logger": "...", "message": "identity_resolved", ...}
"""
import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from pythonjsonlogger.json import JsonFormatter

from connect_backend.config import get_settings


def add_app_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Stamp every event with the service name and environment."""
    settings = get_settings()
    event_dict["app_name"] = settings.app_name
    event_dict["app_env"] = settings.app_env
    return event_dict


def build_formatter() -> JsonFormatter:
    """Root handler formatter; level, logger name and timestamp come from the LogRecord."""
    return JsonFormatter(
        "%(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
        timestamp="@timestamp",
    )


def setup_logging(stream: Optional[TextIO] = None) -> None:
    """
    Configure structlog and the root logger.

    Args:
        stream: Destination for log lines (stdout when omitted)
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_app_context,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(build_formatter())
    root_logger.addHandler(handler)

    # The SDK logs every request at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )
