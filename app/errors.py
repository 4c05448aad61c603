"""Internal exception hierarchy for EventDesk operations.

These exceptions are raised inside the guard/validation/store layers and are
caught at each operation boundary (KeyLifecycleManager, EventService), where
they are converted into ``Err`` results. They never reach the HTTP layer.
"""

from __future__ import annotations

from typing import Optional

from app.models.result import Err, ErrorKind
from app.utils.logger import get_logger

logger = get_logger(__name__)


class OperationError(Exception):
    """Base for errors converted to an ``Err`` result at the operation boundary."""

    kind: ErrorKind = ErrorKind.STORE_FAILURE

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(OperationError):
    """Malformed or missing field. The message is safe to show to the caller."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str = "Invalid input data.") -> None:
        super().__init__(message)


class NotFoundError(OperationError):
    """Referenced event or key does not exist."""

    kind = ErrorKind.NOT_FOUND


class EventNotFoundError(NotFoundError):
    def __init__(self, message: str = "Event not found.") -> None:
        super().__init__(message)


class KeyNotFoundError(NotFoundError):
    def __init__(self, message: str = "Key not found.") -> None:
        super().__init__(message)


class RateLimitedError(OperationError):
    """Caller exceeded the rate class budget for this operation."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, reset_at: float, message: Optional[str] = None) -> None:
        super().__init__(message or "Too many requests.")
        self.reset_at = reset_at


class OriginRejectedError(OperationError):
    """Origin Guard rejected the request. Surfaced only as the generic failure."""

    kind = ErrorKind.ORIGIN_REJECTED


class StoreError(OperationError):
    """Unexpected persistence failure."""

    kind = ErrorKind.STORE_FAILURE


class DuplicateKeyCodeError(StoreError):
    """The store rejected a batch because a code violated the UNIQUE constraint.

    The whole batch is rolled back; the caller may regenerate and retry.
    """


# ─── Operation boundary ───────────────────────────────────────────────────────


def error_result(exc: Exception, operation: str, generic_message: str) -> Err:
    """Convert any exception raised inside an operation into an ``Err``.

    InvalidInput, NotFound and RateLimited keep their own message. Origin
    rejections and every other failure collapse to ``generic_message`` so the
    caller cannot tell them apart. Unexpected failures are logged in full.
    """
    if isinstance(exc, RateLimitedError):
        return Err(ErrorKind.RATE_LIMITED, exc.message, reset_at=exc.reset_at)
    if isinstance(exc, (InvalidInputError, NotFoundError)):
        return Err(exc.kind, exc.message)
    if isinstance(exc, OriginRejectedError):
        return Err(ErrorKind.ORIGIN_REJECTED, generic_message)
    logger.exception("Operation failed", operation=operation, error=str(exc))
    return Err(ErrorKind.STORE_FAILURE, generic_message)
