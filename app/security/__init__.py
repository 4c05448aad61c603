"""EventDesk request guards.

Public API:
  - RateLimiter / RateLimitClass — fixed-window throttle per "<operation>:<client>"
  - OriginGuard                  — Referer/Origin vs Host same-site check
  - RequestGuard / RequestContext — origin check then rate limit, per operation
  - sanitize_text(), validate_image_extension(), validate_encoded_size(),
    sanitize_identifier_for_path(), sanitize_filename() — pure input sanitizers
"""

from __future__ import annotations

from app.security.guard import RequestContext, RequestGuard
from app.security.origin import OriginGuard
from app.security.rate_limiter import (
    RateLimitClass,
    RateLimitDecision,
    RateLimiter,
    build_identifier,
)
from app.security.sanitizer import (
    sanitize_filename,
    sanitize_identifier_for_path,
    sanitize_text,
    validate_encoded_size,
    validate_image_extension,
)

__all__ = [
    "OriginGuard",
    "RateLimitClass",
    "RateLimitDecision",
    "RateLimiter",
    "RequestContext",
    "RequestGuard",
    "build_identifier",
    "sanitize_filename",
    "sanitize_identifier_for_path",
    "sanitize_text",
    "validate_encoded_size",
    "validate_image_extension",
]
