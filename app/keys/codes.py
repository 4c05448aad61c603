"""Access key code generation.

Code format (human-facing contract): ``{PREFIX}{YY}-{RANDOM6}-{SPORT3}``

  PREFIX   first two ASCII letters of the event name, upper-cased, X-padded
  YY       current year, last two digits
  RANDOM6  six characters from ``secrets`` over KEY_CODE_ALPHABET
           (no 0/O, 1/I/l) — 57**6 ≈ 3.4e10 combinations
  SPORT3   first three ASCII letters/digits of the sport id, upper-cased, X-padded

e.g. ``SU26-K7X9Qm-SWI`` for "Summer Games" / "swimming".

The generator has no knowledge of global uniqueness: collisions are detected
by the store's UNIQUE constraint and retried by the lifecycle manager.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from app.constants import (
    CODE_FILLER_CHAR,
    EVENT_PREFIX_LENGTH,
    KEY_CODE_ALPHABET,
    KEY_RANDOM_LENGTH,
    SPORT_CODE_LENGTH,
)

KEY_CODE_RE = re.compile(r"^[A-Z]{2}\d{2}-[A-Za-z0-9]{6}-[A-Z0-9]{3}$")

_NON_LETTER_RE = re.compile(r"[^A-Z]")
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")


def event_prefix_from_name(name: str) -> str:
    """First two ASCII letters of the event name, upper-cased and X-padded."""
    prefix = _NON_LETTER_RE.sub("", name.upper())[:EVENT_PREFIX_LENGTH]
    return prefix.ljust(EVENT_PREFIX_LENGTH, CODE_FILLER_CHAR)


def sport_code(sport_id: str) -> str:
    """First three ASCII letters or digits of the sport id, upper-cased and X-padded."""
    code = _NON_ALNUM_RE.sub("", sport_id.upper())[:SPORT_CODE_LENGTH]
    return code.ljust(SPORT_CODE_LENGTH, CODE_FILLER_CHAR)


def random_segment(
    length: int = KEY_RANDOM_LENGTH,
    choice: Callable[[str], str] = secrets.choice,
) -> str:
    """Cryptographically secure random string over the unambiguous alphabet."""
    return "".join(choice(KEY_CODE_ALPHABET) for _ in range(length))


def generate_code(
    event_prefix: str,
    sport_id: str,
    year: Optional[int] = None,
    choice: Callable[[str], str] = secrets.choice,
) -> str:
    """Build one access key code.

    Args:
        event_prefix: Two-character prefix (see ``event_prefix_from_name``).
        sport_id:     Sport identifier, e.g. ``"swimming"``.
        year:         Four- or two-digit year; defaults to the current UTC year.
        choice:       Random selector. Tests may inject a deterministic one.
    """
    if year is None:
        year = datetime.now(timezone.utc).year
    yy = f"{year % 100:02d}"
    return f"{event_prefix}{yy}-{random_segment(choice=choice)}-{sport_code(sport_id)}"
