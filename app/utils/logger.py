"""Structured logging for EventDesk (structlog).

Every log line is a structured event with keyword fields. While a request is
being handled its ``request_id`` (bound by RequestIdMiddleware) is attached
automatically.

  configure_logging()        — processors + renderer, called once from main.py
  settings_from_env()        — (level, json) from LOG_LEVEL / DEBUG / JSON_LOGS
  get_logger(__name__)       — module logger
  bind_request_id() / reset_request_id() — per-request correlation
  OperationTimer             — logs the duration of a store-bound operation
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextvars import ContextVar, Token
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def add_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def settings_from_env() -> tuple[str, bool]:
    """Return ``(log_level, json_output)``.

    DEBUG=true lowers the default level to DEBUG; LOG_LEVEL wins when set.
    JSON_LOGS=false switches to the coloured console renderer.
    """
    debug = os.getenv("DEBUG", "false").lower() == "true"
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO")
    json_output = os.getenv("JSON_LOGS", "true").lower() == "true"
    return log_level, json_output


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the whole process.

    Args:
        log_level:   DEBUG, INFO, WARNING, ERROR or CRITICAL. Unknown values fall
                     back to INFO.
        json_output: JSON lines (production) or console output (development).
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    level = getattr(logging, log_level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "eventdesk") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_id(request_id: str) -> Token:
    """Attach ``request_id`` to every log line in the current context."""
    return request_id_var.set(request_id)


def reset_request_id(token: Token) -> None:
    request_id_var.reset(token)


class OperationTimer:
    """Context manager that logs how long a store-bound operation took.

    Completions slower than ``slow_ms`` are logged at warning, the rest at debug.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        slow_ms: float = 250.0,
    ) -> None:
        self.operation = operation
        self.logger = logger or get_logger()
        self.slow_ms = slow_ms
        self.duration_ms: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "OperationTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_ms=round(self.duration_ms, 2),
                error=str(exc_val),
            )
            return
        log_method = self.logger.warning if self.duration_ms > self.slow_ms else self.logger.debug
        log_method(
            "Operation completed",
            operation=self.operation,
            duration_ms=round(self.duration_ms, 2),
        )


# Sensible defaults until main.py reconfigures from the environment
configure_logging()
