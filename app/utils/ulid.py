"""ULID generation for EventDesk record identifiers.

Access keys receive a ULID as their opaque ``id`` when the store creates them,
and each HTTP request gets one as its ``request_id`` for log correlation.

ULIDs are 26-character Crockford Base32 strings (48-bit millisecond timestamp
+ 80 random bits), URL-safe and unique without a round trip to the database.

Uses the `python-ulid` library (see pyproject.toml) — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Example::

        key_id = generate_ulid()
        # "01KJ0JRVHYA7KX32VPN5ZSCTMV"
        assert len(key_id) == 26
    """
    return str(ULID())
