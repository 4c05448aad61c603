"""Client identifier resolution for rate limiting.

By default the direct connection address is the identifier, the same source
slowapi's ``get_remote_address`` uses. Proxy headers are honoured only when
``server.trust_proxy_headers`` is set, i.e. when EventDesk runs behind a
reverse proxy that overwrites them; otherwise any client could pick a fresh
rate-limit bucket per request by changing a header.

Never raises: anything unresolvable becomes the shared ``"unknown"`` bucket.
"""

from __future__ import annotations

from typing import Mapping, Optional

from app.constants import UNKNOWN_CLIENT

_IP_HEADERS: tuple[str, ...] = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
)


def resolve_client_id(
    headers: Mapping[str, str],
    peer_host: Optional[str] = None,
    trust_proxy_headers: bool = False,
) -> str:
    """Return the best-effort client IP for a request.

    With ``trust_proxy_headers``:

    1. ``X-Forwarded-For`` — first IP in the list
    2. ``X-Real-IP``
    3. ``CF-Connecting-IP``

    then, and otherwise only, the socket peer address, then ``"unknown"``.
    """
    if trust_proxy_headers:
        lowered = {key.lower(): value for key, value in headers.items()}
        for header in _IP_HEADERS:
            value = lowered.get(header)
            if value:
                candidate = value.split(",")[0].strip()
                if candidate:
                    return candidate
    if peer_host:
        return peer_host
    return UNKNOWN_CLIENT
