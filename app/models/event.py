"""Event dataclasses.

Events are the parents of access keys. The key lifecycle only reads them
(existence check + name for the code prefix); EventService owns their CRUD.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

EventType = Literal["single", "multi"]
EventStatus = Literal["active", "inactive", "upcoming", "ongoing", "completed", "archived"]
Visibility = Literal["public", "private"]


@dataclass(frozen=True)
class SportCategory:
    """A sport offered at an event (e.g. ``SportCategory("swimming", "Swimming", "🏊")``)."""

    id: str
    label: str
    emoji: str


@dataclass
class EventDraft:
    """Validated, sanitized input for creating an event."""

    name: str
    type: EventType
    sports: list[SportCategory]
    location_city: str
    location_timezone: str
    start_date: datetime
    end_date: datetime
    max_participants: int
    total_keys: int = 0
    visibility: Visibility = "public"
    location_venue: Optional[str] = None


@dataclass
class Event:
    """A persisted sport event."""

    event_id: str
    """Sequential identifier, ``EVT-001``, ``EVT-002``, ..."""
    name: str
    type: EventType
    status: EventStatus
    sports: list[SportCategory]
    location_city: str
    location_timezone: str
    start_date: datetime
    end_date: datetime
    max_participants: int
    created_at: datetime
    used_keys: int = 0
    total_keys: int = 0
    visibility: Visibility = "public"
    location_venue: Optional[str] = None
    logo_url: Optional[str] = None
    sponsor_logos: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        data["end_date"] = self.end_date.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data
