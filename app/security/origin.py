"""Same-site origin verification for EventDesk mutating operations.

Compares the host of the request's ``Referer`` (or, failing that, ``Origin``)
header to its ``Host`` header. A lightweight CSRF deterrent, not a token-based
defense.

  - PRODUCTION  → fail closed: a mismatch, a missing header or an unparseable
                  header rejects the request.
  - DEVELOPMENT → fail open: the same comparison runs and a mismatch is logged,
                  but the request is allowed.
"""

from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import urlsplit

from app.models.environment import Environment
from app.utils.logger import get_logger

logger = get_logger(__name__)

_DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


def _url_host(value: str) -> Optional[str]:
    """Return ``host[:port]`` of an absolute URL, or None if it does not parse.

    Userinfo is dropped and the hostname lowercased. A non-default port is
    kept, so ``https://app.example:8443/x`` yields ``app.example:8443`` while
    ``https://app.example:443/x`` yields ``app.example``.
    """
    try:
        parts = urlsplit(value.strip())
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    if port is None or _DEFAULT_PORTS.get(parts.scheme.lower()) == port:
        return hostname
    return f"{hostname}:{port}"


class OriginGuard:
    """Verify that a mutating request originates from the serving host."""

    def __init__(self, environment: Environment) -> None:
        self.environment = environment

    def check(self, headers: Mapping[str, str]) -> Optional[bool]:
        """Environment-independent verdict.

        Returns True/False when a usable Referer/Origin + Host pair exists,
        None when there is nothing usable to compare.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        host = (lowered.get("host") or "").strip().lower()
        if not host:
            return None

        for name in ("referer", "origin"):
            value = lowered.get(name)
            if not value:
                continue
            declared = _url_host(value)
            if declared is None:
                return None
            return declared == host

        return None

    def verify_origin(self, headers: Mapping[str, str]) -> bool:
        verdict = self.check(headers)
        if verdict is True:
            return True
        if self.environment.is_development:
            if verdict is False:
                logger.debug("Origin mismatch allowed in development")
            return True
        return False
