"""EventDesk access key lifecycle.

Public API:
  - KeyLifecycleManager — generate / list / revoke / restore / delete / export
  - KeyListInvalidator  — per-event key list generation counters
  - generate_code(), event_prefix_from_name(), KEY_CODE_RE — code format
"""

from __future__ import annotations

from app.keys.codes import KEY_CODE_RE, event_prefix_from_name, generate_code
from app.keys.invalidation import KeyListInvalidator
from app.keys.manager import GENERIC_ERROR_MESSAGES, KeyLifecycleManager

__all__ = [
    "GENERIC_ERROR_MESSAGES",
    "KEY_CODE_RE",
    "KeyLifecycleManager",
    "KeyListInvalidator",
    "event_prefix_from_name",
    "generate_code",
]
