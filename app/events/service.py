"""Event CRUD behind the same request guards as key mutations.

  - create_event()  — DEFAULT, or UPLOAD when logos are attached
  - list_events()   — newest first, no guard
  - get_event()     — no guard
  - delete_event()  — STRICT; removes the event's keys too

Event ids are assigned by the store (``EVT-001``, ``EVT-002``, ...). The logo
is fully validated before the event row is written, so an invalid upload never
leaves a half-created event behind. A disk failure while storing a valid logo
does not fail the creation: the event is kept without a logo URL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from app.constants import (
    MAX_EVENT_NAME_LENGTH,
    MAX_ID_LENGTH,
    MAX_LOCATION_LENGTH,
    MAX_PARTICIPANTS,
    MAX_SPONSOR_LOGOS,
    MAX_SPORT_EMOJI_LENGTH,
    MAX_SPORT_NAME_LENGTH,
)
from app.errors import EventNotFoundError, InvalidInputError, error_result
from app.keys.invalidation import KeyListInvalidator
from app.models.event import Event, EventDraft, SportCategory
from app.models.result import Ok, Result
from app.security.guard import RequestContext, RequestGuard
from app.security.rate_limiter import RateLimitClass
from app.security.sanitizer import sanitize_text
from app.storage.logos import LocalLogoStorage, LogoUpload, SponsorUploadResult, decode_logo
from app.store.protocol import EventStore
from app.utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGES: dict[str, str] = {
    "create_event": "Failed to create event. Please try again.",
    "list_events": "Failed to fetch events. Please try again.",
    "get_event": "Failed to fetch event. Please try again.",
    "delete_event": "Failed to delete event. Please try again.",
}

_EVENT_TYPES = ("single", "multi")
_VISIBILITIES = ("public", "private")


@dataclass
class EventInput:
    """Unvalidated event creation input as received from the client."""

    name: str
    type: str
    sports: Sequence[SportCategory]
    location_city: str
    location_timezone: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    max_participants: int
    total_keys: int = 0
    visibility: str = "public"
    location_venue: Optional[str] = None
    logo: Optional[LogoUpload] = None
    sponsor_logos: Sequence[LogoUpload] = field(default_factory=list)


@dataclass
class CreatedEvent:
    event: Event
    sponsor_uploads: Optional[SponsorUploadResult] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"event": self.event.to_dict()}
        if self.sponsor_uploads is not None:
            data["sponsor_uploads"] = self.sponsor_uploads.to_dict()
        return data


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _clean_sports(sports: Sequence[SportCategory]) -> list[SportCategory]:
    cleaned: list[SportCategory] = []
    seen: set[str] = set()
    for sport in sports:
        sport_id = sanitize_text(sport.id, MAX_ID_LENGTH)
        label = sanitize_text(sport.label, MAX_SPORT_NAME_LENGTH)
        if not sport_id or not label:
            raise InvalidInputError("Every sport needs an id and a label.")
        if sport_id in seen:
            continue
        seen.add(sport_id)
        cleaned.append(SportCategory(sport_id, label, sanitize_text(sport.emoji, MAX_SPORT_EMOJI_LENGTH)))
    return cleaned


def build_draft(data: EventInput) -> EventDraft:
    """Sanitize and validate creation input.

    Raises:
        InvalidInputError: With a field-specific message.
    """
    name = sanitize_text(data.name, MAX_EVENT_NAME_LENGTH)
    if not name:
        raise InvalidInputError("Event name is required.")
    city = sanitize_text(data.location_city, MAX_LOCATION_LENGTH)
    if not city:
        raise InvalidInputError("Location is required.")
    timezone_name = sanitize_text(data.location_timezone, MAX_LOCATION_LENGTH)
    if not timezone_name:
        raise InvalidInputError("Timezone is required.")
    if data.type not in _EVENT_TYPES:
        raise InvalidInputError("Event type must be 'single' or 'multi'.")
    if data.visibility not in _VISIBILITIES:
        raise InvalidInputError("Visibility must be 'public' or 'private'.")
    if data.start_date is None:
        raise InvalidInputError("Start date is required.")
    if data.end_date is None:
        raise InvalidInputError("End date is required.")
    start_date = _as_utc(data.start_date)
    end_date = _as_utc(data.end_date)
    if end_date < start_date:
        raise InvalidInputError("End date must not be before start date.")
    if not 1 <= data.max_participants <= MAX_PARTICIPANTS:
        raise InvalidInputError(f"Max participants must be between 1 and {MAX_PARTICIPANTS}.")
    if data.total_keys < 0:
        raise InvalidInputError("Total keys must not be negative.")

    sports = _clean_sports(data.sports)
    if not sports:
        raise InvalidInputError("At least 1 sport is required.")
    if data.type == "single" and len(sports) != 1:
        raise InvalidInputError("A single-sport event must have exactly 1 sport.")

    venue = sanitize_text(data.location_venue, MAX_LOCATION_LENGTH) or None
    return EventDraft(
        name=name,
        type=data.type,  # type: ignore[arg-type]
        sports=sports,
        location_city=city,
        location_timezone=timezone_name,
        start_date=start_date,
        end_date=end_date,
        max_participants=data.max_participants,
        total_keys=data.total_keys,
        visibility=data.visibility,  # type: ignore[arg-type]
        location_venue=venue,
    )


class EventService:
    def __init__(
        self,
        event_store: EventStore,
        guard: RequestGuard,
        logo_storage: LocalLogoStorage,
        key_invalidator: Optional[KeyListInvalidator] = None,
    ) -> None:
        self._events = event_store
        self._guard = guard
        self._logos = logo_storage
        self._key_invalidator = key_invalidator

    async def create_event(self, ctx: RequestContext, data: EventInput) -> Result[CreatedEvent]:
        has_uploads = data.logo is not None or bool(data.sponsor_logos)
        limit_class = RateLimitClass.UPLOAD if has_uploads else RateLimitClass.DEFAULT
        try:
            self._guard.enforce(ctx, "create_event", limit_class)
            draft = build_draft(data)
            if data.logo is not None:
                decode_logo(data.logo)
            if len(data.sponsor_logos) > MAX_SPONSOR_LOGOS:
                raise InvalidInputError(f"At most {MAX_SPONSOR_LOGOS} sponsor logos are allowed.")

            event = await self._events.create_event(draft)
            logger.info("Event created", event_id=event.event_id, sports=len(draft.sports))

            sponsor_result: Optional[SponsorUploadResult] = None
            if has_uploads:
                logo_url: Optional[str] = None
                if data.logo is not None:
                    try:
                        logo_url = await self._logos.save_event_logo(event.event_id, data.logo)
                    except OSError as exc:
                        logger.error(
                            "Event logo upload failed; event kept without logo",
                            event_id=event.event_id,
                            error=str(exc),
                        )
                if data.sponsor_logos:
                    sponsor_result = await self._logos.upload_sponsor_logos(
                        event.event_id, data.sponsor_logos
                    )
                sponsors = sponsor_result.uploaded if sponsor_result is not None else []
                if logo_url is not None or sponsors:
                    await self._events.set_logo_urls(event.event_id, logo_url, sponsors)
                    event.logo_url = logo_url
                    event.sponsor_logos = sponsors

            return Ok(CreatedEvent(event=event, sponsor_uploads=sponsor_result))
        except Exception as exc:
            return error_result(exc, "create_event", GENERIC_ERROR_MESSAGES["create_event"])

    async def list_events(self) -> Result[list[Event]]:
        try:
            return Ok(await self._events.list_events())
        except Exception as exc:
            return error_result(exc, "list_events", GENERIC_ERROR_MESSAGES["list_events"])

    async def get_event(self, event_id: str) -> Result[Event]:
        try:
            clean_id = sanitize_text(event_id, MAX_ID_LENGTH)
            if not clean_id:
                raise InvalidInputError()
            event = await self._events.find_by_event_id(clean_id)
            if event is None:
                raise EventNotFoundError()
            return Ok(event)
        except Exception as exc:
            return error_result(exc, "get_event", GENERIC_ERROR_MESSAGES["get_event"])

    async def delete_event(self, ctx: RequestContext, event_id: str) -> Result[str]:
        """Delete an event and all of its keys."""
        try:
            self._guard.enforce(ctx, "delete_event", RateLimitClass.STRICT)
            clean_id = sanitize_text(event_id, MAX_ID_LENGTH)
            if not clean_id:
                raise InvalidInputError()
            if not await self._events.delete_event(clean_id):
                raise EventNotFoundError()
            if self._key_invalidator is not None:
                self._key_invalidator.invalidate(clean_id)
            logger.info("Event deleted", event_id=clean_id)
            return Ok(clean_id)
        except Exception as exc:
            return error_result(exc, "delete_event", GENERIC_ERROR_MESSAGES["delete_event"])
