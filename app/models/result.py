"""Tagged operation results.

Every public lifecycle/event operation returns ``Ok(value)`` or
``Err(kind, message)``. No exception crosses the operation boundary; callers
branch on the tag:

    result = await manager.revoke(ctx, key_id)
    if isinstance(result, Err):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure taxonomy for operation results."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    ORIGIN_REJECTED = "origin_rejected"
    STORE_FAILURE = "store_failure"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    """User-facing message. Never contains internal detail."""
    reset_at: Optional[float] = None
    """Epoch seconds when the rate-limit window resets (RATE_LIMITED only)."""

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.message}
        if self.reset_at is not None:
            payload["reset_at"] = self.reset_at
        return payload


Result = Union[Ok[T], Err]
