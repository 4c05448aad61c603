"""EventDesk persistence.

Public API:
  - KeyStore / EventStore — structural interfaces the services depend on
  - LocalSQLiteStore      — aiosqlite implementation of both
"""

from __future__ import annotations

from app.store.protocol import EventStore, KeyStore
from app.store.sqlite_backend import LocalSQLiteStore

__all__ = ["EventStore", "KeyStore", "LocalSQLiteStore"]
