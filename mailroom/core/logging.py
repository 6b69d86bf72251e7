"""
Structured logging for the mail pipeline.

Events are snake_case names with keyword context, for example
``log.info("notification_delivered", session_id=..., external_id=...)``.
Context bound with bind_context() (the session being ingested, say) is added
to every event logged from the same task until clear_context().
"""

import logging
import sys

import structlog

# Libraries whose INFO chatter drowns out pipeline events
_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "uvicorn.access")


def _add_service(logger, method_name, event_dict):
    event_dict.setdefault("service", "mailroom")
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines for production, colored console output otherwise
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, usually with the calling module's __name__."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Attach key/values to every event logged from the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop everything bound with bind_context()."""
    structlog.contextvars.clear_contextvars()
