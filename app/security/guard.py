"""Request guard: Origin Guard then Rate Limiter, in that order.

Every mutating key/event operation calls ``RequestGuard.enforce()`` before it
touches input or the store. Rejections are raised as OriginRejectedError or
RateLimitedError and converted to ``Err`` results by the operation itself.

Rejections are logged with the operation and rate class only. Headers and the
client identifier stay out of the log line.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Mapping

from app.constants import UNKNOWN_CLIENT
from app.errors import OriginRejectedError, RateLimitedError
from app.security.origin import OriginGuard
from app.security.rate_limiter import RateLimitClass, RateLimiter, build_identifier
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """What the guards need to know about the caller of an operation."""

    headers: Mapping[str, str] = field(default_factory=dict)
    client_id: str = UNKNOWN_CLIENT


def format_reset_time(reset_at: float) -> str:
    """Render an epoch reset time as ``HH:MM:SS`` (UTC) for user messages."""
    return time.strftime("%H:%M:%S", time.gmtime(reset_at))


class RequestGuard:
    def __init__(self, origin_guard: OriginGuard, rate_limiter: RateLimiter) -> None:
        self.origin_guard = origin_guard
        self.rate_limiter = rate_limiter

    def enforce(
        self,
        ctx: RequestContext,
        operation: str,
        limit_class: RateLimitClass,
    ) -> None:
        """Raise if the request must not proceed.

        Raises:
            OriginRejectedError: Origin Guard verdict was negative.
            RateLimitedError:    The caller's budget for ``operation`` is spent.
        """
        if not self.origin_guard.verify_origin(ctx.headers):
            logger.warning("Origin check rejected request", operation=operation)
            raise OriginRejectedError()
        self.check_rate(ctx, operation, limit_class)

    def check_rate(
        self,
        ctx: RequestContext,
        operation: str,
        limit_class: RateLimitClass,
    ) -> None:
        """Rate limiter only, for read operations that skip the origin check."""
        decision = self.rate_limiter.check_and_consume(
            build_identifier(operation, ctx.client_id), limit_class
        )
        if not decision.allowed:
            reset_at = decision.reset_at if decision.reset_at is not None else time.time()
            logger.info(
                "Rate limit exceeded",
                operation=operation,
                limit_class=limit_class.value,
            )
            raise RateLimitedError(
                reset_at,
                f"Too many requests. Please try again after {format_reset_time(reset_at)}.",
            )
