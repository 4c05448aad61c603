"""Coordinate → IANA timezone lookup for the event form.

The dashboard picks a venue on a map and asks the backend for its timezone, so
the third-party API key never reaches the browser. The lookup is rate limited
under DEFAULT per client. Like the other reads it skips the origin check.

Results are kept in a small TTL'd LRU keyed by rounded coordinates; a
timezone does not move, and the cache bounds spend on the upstream API.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Optional

import httpx

from app.constants import (
    TIMEZONE_API_URL,
    TIMEZONE_CACHE_MAXSIZE,
    TIMEZONE_CACHE_TTL_SECONDS,
    TIMEZONE_COORDINATE_PRECISION,
    TIMEZONE_HTTP_TIMEOUT,
)
from app.errors import InvalidInputError, NotFoundError, OperationError, error_result
from app.models.result import Ok, Result
from app.security.guard import RequestContext, RequestGuard
from app.security.rate_limiter import RateLimitClass
from app.utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to fetch timezone. Please try again."
COORDINATES_MESSAGE = "Invalid coordinates."
NO_RESULT_MESSAGE = "No timezone found for these coordinates."


class TimezoneLookupError(OperationError):
    """Upstream API unreachable, unconfigured or returned an error status."""


def create_timezone_client() -> httpx.AsyncClient:
    """Shared client for the timezone API. Created once per application."""
    return httpx.AsyncClient(timeout=httpx.Timeout(TIMEZONE_HTTP_TIMEOUT))


def _validate_coordinates(lat: object, lng: object) -> tuple[float, float]:
    for value in (lat, lng):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidInputError(COORDINATES_MESSAGE)
    lat_f, lng_f = float(lat), float(lng)  # type: ignore[arg-type]
    if not (-90 <= lat_f <= 90 and -180 <= lng_f <= 180):
        raise InvalidInputError(COORDINATES_MESSAGE)
    return lat_f, lng_f


class TimezoneService:
    """Resolve coordinates to a timezone id through the Google Time Zone API.

    Args:
        http_client: Shared httpx.AsyncClient (MockTransport-backed in tests).
        guard:       RequestGuard; only its rate limiter is consulted.
        api_key:     API key. Lookups fail with the generic message when unset.
        api_url:     Endpoint, overridable for tests.
        clock:       Monotonic seconds for cache expiry.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        guard: RequestGuard,
        api_key: Optional[str],
        api_url: str = TIMEZONE_API_URL,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = TIMEZONE_CACHE_MAXSIZE,
    ) -> None:
        self._http = http_client
        self._guard = guard
        self._api_key = api_key
        self._api_url = api_url
        self._clock = clock
        self._maxsize = maxsize
        self._cache: OrderedDict[tuple[float, float], tuple[str, float]] = OrderedDict()

    async def lookup(self, ctx: RequestContext, lat: object, lng: object) -> Result[str]:
        try:
            self._guard.check_rate(ctx, "timezone", RateLimitClass.DEFAULT)
            lat_f, lng_f = _validate_coordinates(lat, lng)

            key = (
                round(lat_f, TIMEZONE_COORDINATE_PRECISION),
                round(lng_f, TIMEZONE_COORDINATE_PRECISION),
            )
            cached = self._cache_get(key)
            if cached is not None:
                return Ok(cached)

            timezone_id = await self._fetch(lat_f, lng_f)
            self._cache_set(key, timezone_id)
            return Ok(timezone_id)
        except Exception as exc:
            return error_result(exc, "timezone", GENERIC_ERROR_MESSAGE)

    async def _fetch(self, lat: float, lng: float) -> str:
        if not self._api_key:
            raise TimezoneLookupError("Timezone API key not configured")
        params = {
            "location": f"{lat},{lng}",
            "timestamp": str(int(time.time())),
            "key": self._api_key,
        }
        try:
            response = await self._http.get(self._api_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            # the request URL carries the API key; keep it out of logged tracebacks
            raise TimezoneLookupError(f"Timezone API request failed: {type(exc).__name__}") from None

        status = data.get("status") if isinstance(data, dict) else None
        if status == "OK" and data.get("timeZoneId"):
            logger.debug("Timezone resolved", timezone=data["timeZoneId"])
            return str(data["timeZoneId"])
        if status == "ZERO_RESULTS":
            raise NotFoundError(NO_RESULT_MESSAGE)
        raise TimezoneLookupError(f"Timezone API returned status {status!r}")

    # ── cache ─────────────────────────────────────────────────────────────────

    def _cache_get(self, key: tuple[float, float]) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        timezone_id, expires_at = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return timezone_id

    def _cache_set(self, key: tuple[float, float], timezone_id: str) -> None:
        self._cache.pop(key, None)
        if len(self._cache) >= self._maxsize:
            self._cache.popitem(last=False)
        self._cache[key] = (timezone_id, self._clock() + TIMEZONE_CACHE_TTL_SECONDS)
