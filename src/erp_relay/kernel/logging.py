"""
Structured logging for erp-relay.

Key/value events via structlog, console output in development and JSON in
production. Every failure the pipeline survives (webhook miss, upstream
outage, per-record rollback) is logged with enough context to replay it:
tenant, record id and channel.
"""

import contextvars
import logging
import os
import sys
import time
from typing import Any

import structlog

# Context variable for the active delivery channel ("webhook", "poll", "tick")
channel_var: contextvars.ContextVar[str] = contextvars.ContextVar("channel", default="")


def set_channel(channel: str) -> contextvars.Token[str]:
    """Tag subsequent log events in this context with a channel name."""
    return channel_var.set(channel)


def reset_channel(token: contextvars.Token[str]) -> None:
    channel_var.reset(token)


def add_channel(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add the active channel to log events that don't already carry one."""
    channel = channel_var.get()
    if channel and "channel" not in event_dict:
        event_dict["channel"] = channel
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    log_level: str = "INFO",
) -> None:
    """
    Configure structured logging for the application.

    Args:
        json_output: If True, output JSON logs (for production).
                    If False, output human-readable console logs (for development).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    # Werkzeug logs every request line; keep only problems
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_channel,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def is_production() -> bool:
    """True when ENVIRONMENT=production (JSON logs, no stack traces)."""
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


class LogOperation:
    """Context manager for logging operations with automatic timing."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        """
        Args:
            logger: Structured logger instance
            operation: Operation name (e.g., "simulator_tick", "poll_cycle")
            **context: Additional context to include in logs
        """
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: float = 0.0

    def __enter__(self) -> "LogOperation":
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"{self.operation} started",
            operation=self.operation,
            **self.context,
        )
        return self

    def add(self, **context: Any) -> None:
        """Attach results discovered during the operation to the completion log."""
        self.context.update(context)

    @property
    def duration_seconds(self) -> float:
        return time.perf_counter() - self.start_time

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = self.duration_seconds * 1000

        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                **self.context,
            )
        else:
            self.logger.error(
                f"{self.operation} failed",
                operation=self.operation,
                duration_ms=round(duration_ms, 2),
                exc_info=not is_production(),
                **self.context,
            )
