"""KeyStore / EventStore Protocols.

The lifecycle manager and event service depend only on these structural
interfaces. LocalSQLiteStore (store/sqlite_backend.py) implements both.

All methods are async and may raise on unexpected persistence errors; callers
convert those to StoreFailure results at their operation boundary.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from app.models.event import Event, EventDraft
from app.models.keys import AccessKey, KeyStatus, NewAccessKey


@runtime_checkable
class KeyStore(Protocol):
    """Persistent table of access keys. ``code`` is UNIQUE across the store."""

    async def create_many(self, rows: Sequence[NewAccessKey]) -> int:
        """Insert a batch atomically. Returns the number of rows inserted.

        Raises DuplicateKeyCodeError (and inserts nothing) when any code
        collides with an existing row or another row of the batch.
        """
        ...

    async def find_by_event(self, event_id: str) -> list[AccessKey]:
        """All keys of an event, newest first."""
        ...

    async def get_key(self, key_id: str) -> Optional[AccessKey]:
        ...

    async def update_status(self, key_id: str, status: KeyStatus) -> bool:
        """Set a key's status. Returns False if no row matched."""
        ...

    async def delete_key(self, key_id: str) -> bool:
        """Permanently delete a key. Returns False if no row matched."""
        ...


@runtime_checkable
class EventStore(Protocol):
    """Persistent table of events."""

    async def find_by_event_id(self, event_id: str) -> Optional[Event]:
        ...

    async def create_event(self, draft: EventDraft) -> Event:
        """Insert an event under the next sequential id (status ``upcoming``)."""
        ...

    async def list_events(self) -> list[Event]:
        """All events, newest first."""
        ...

    async def delete_event(self, event_id: str) -> bool:
        """Delete an event and its keys. Returns False if no row matched."""
        ...

    async def set_logo_urls(
        self,
        event_id: str,
        logo_url: Optional[str],
        sponsor_logos: Sequence[dict[str, str]],
    ) -> None:
        ...

    async def next_event_id(self) -> str:
        """Next sequential id (``EVT-001`` when the table is empty)."""
        ...
