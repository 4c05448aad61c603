"""Runtime environment flag.

Passed explicitly into the OriginGuard and RateLimiter constructors rather than
read from process state at call time, so both branches are testable.
"""

from __future__ import annotations

from enum import Enum


class Environment(str, Enum):
    """Deployment mode. Changes fail-open/fail-closed behaviour of the guards."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def is_development(self) -> bool:
        return self is Environment.DEVELOPMENT

    @classmethod
    def parse(cls, value: str) -> "Environment":
        """Parse a config/env string (case-insensitive). Raises ValueError on unknown values."""
        return cls(value.strip().lower())
