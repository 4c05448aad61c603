"""AccessKey dataclass and status enum.

An access key grants one participant scoped access to one sport within one
event. Keys are created in batches, mutated only through revoke/restore and
destroyed only through explicit deletion.

IMPORTANT — immutability contract:
    code, event_id, sport_id, sport_name, sport_emoji and created_at never
    change after creation. Regeneration always inserts new rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class KeyStatus(str, Enum):
    """Lifecycle state of an access key.

    CLAIMED is written by the participant-facing claim flow, never by this
    service. The lifecycle manager preserves it but does not set it.
    """

    AVAILABLE = "AVAILABLE"
    CLAIMED = "CLAIMED"
    REVOKED = "REVOKED"


@dataclass(frozen=True)
class NewAccessKey:
    """A key row ready for insertion. The store assigns id and created_at."""

    code: str
    event_id: str
    sport_id: str
    sport_name: str
    sport_emoji: str
    status: KeyStatus = KeyStatus.AVAILABLE


@dataclass
class AccessKey:
    """A persisted access key."""

    id: str
    """Opaque ULID assigned by the store on creation."""
    code: str
    """Human-shareable code, globally unique (e.g. ``EV26-K7X9Qm-SWI``)."""
    event_id: str
    sport_id: str
    sport_name: str
    sport_emoji: str
    status: KeyStatus
    created_at: datetime
    claimed_by_id: Optional[str] = None
    """Participant who claimed the key. Stale after a revoke+restore cycle."""
    claimed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation used by the HTTP layer."""
        return {
            "id": self.id,
            "code": self.code,
            "event_id": self.event_id,
            "sport_id": self.sport_id,
            "sport_name": self.sport_name,
            "sport_emoji": self.sport_emoji,
            "status": self.status.value,
            "claimed_by_id": self.claimed_by_id,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "created_at": self.created_at.isoformat(),
        }
