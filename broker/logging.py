"""Structured logging configuration."""
import logging
import structlog
from broker.config import settings

# Event keys whose values must never reach a log sink.
REDACTED_KEYS = frozenset({
    "value",
    "secret",
    "secret_value",
    "token",
    "vault_token",
    "secret_key",
    "session_token",
    "authorization",
})


def redact_sensitive(_logger, _method_name, event_dict):
    """Replace values of sensitive keys before rendering."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "<redacted>"
    return event_dict


def configure_logging(log_level: str | None = None, debug: bool | None = None):
    """
    Configure structured logging with structlog.

    Args:
        log_level: Override for settings.log_level
        debug: Override for settings.debug (console rendering when true)
    """
    # Map string log level to logging constant
    level_name = (log_level or settings.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    render_console = settings.debug if debug is None else debug

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if render_console else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str):
    """Get a logger instance."""
    return structlog.get_logger(name)
