"""Access key lifecycle: generate, list, revoke, restore, delete, export.

Implements:
  - generate()       — batch-create AVAILABLE keys for one event/sport (UPLOAD)
  - list_by_event()  — all keys of an event, newest first (no guard)
  - revoke()         — status → REVOKED (DEFAULT)
  - restore()        — status → AVAILABLE, unconditionally (DEFAULT)
  - delete()         — permanent removal (DEFAULT)
  - export_csv()     — CSV text of an event's keys (LENIENT)

Every mutating operation runs, in order: Origin Guard → Rate Limiter →
sanitize/validate → store → key list invalidation.

Listings and exports always read the store. Claims are written by another
collaborator directly to the same store, so nothing here may serve a copy.

No exception crosses an operation boundary. Each operation returns ``Ok`` or
``Err``; origin rejections and unexpected store failures surface only as the
operation's generic message.

CLAIMED is never written here. Restore does not touch claimed_by_id or
claimed_at, so a claimed-then-revoked key keeps stale claim metadata.
"""

from __future__ import annotations

import csv
import io
import secrets
from dataclasses import replace
from typing import Callable, Optional

from app.constants import (
    MAX_CODE_GENERATION_ATTEMPTS,
    MAX_ID_LENGTH,
    MAX_KEYS_PER_BATCH,
    MAX_SPORT_EMOJI_LENGTH,
    MAX_SPORT_NAME_LENGTH,
    MIN_KEYS_PER_BATCH,
)
from app.errors import (
    DuplicateKeyCodeError,
    EventNotFoundError,
    InvalidInputError,
    KeyNotFoundError,
    StoreError,
    error_result,
)
from app.keys.invalidation import KeyListInvalidator
from app.keys.codes import event_prefix_from_name, generate_code
from app.models.keys import AccessKey, KeyStatus, NewAccessKey
from app.models.result import Ok, Result
from app.security.guard import RequestContext, RequestGuard
from app.security.rate_limiter import RateLimitClass
from app.security.sanitizer import sanitize_text
from app.store.protocol import EventStore, KeyStore
from app.utils.logger import OperationTimer, get_logger

logger = get_logger(__name__)

# ─── User-facing messages ─────────────────────────────────────────────────────

GENERIC_ERROR_MESSAGES: dict[str, str] = {
    "generate": "Failed to generate keys. Please try again.",
    "list": "Failed to fetch keys. Please try again.",
    "revoke": "Failed to revoke key. Please try again.",
    "restore": "Failed to restore key. Please try again.",
    "delete": "Failed to delete key. Please try again.",
    "export": "Failed to export keys. Please try again.",
}

QUANTITY_MESSAGE = f"Quantity must be between {MIN_KEYS_PER_BATCH} and {MAX_KEYS_PER_BATCH}."

CSV_COLUMNS = (
    "code",
    "sport_id",
    "sport_name",
    "status",
    "claimed_by_id",
    "claimed_at",
    "created_at",
)


def _require_id(value: Optional[str]) -> str:
    cleaned = sanitize_text(value, MAX_ID_LENGTH)
    if not cleaned:
        raise InvalidInputError()
    return cleaned


class KeyLifecycleManager:
    """Orchestrates access key use cases behind the request guards.

    Args:
        key_store:   KeyStore implementation (code column UNIQUE).
        event_store: EventStore, used for existence checks and the code prefix.
        guard:       RequestGuard (origin check + rate limiter).
        invalidator: Per-event key list generation counters. A fresh one is
                     created if None.
        choice:      Random selector passed to the code generator. Tests may
                     inject a deterministic one to force collisions.
    """

    def __init__(
        self,
        key_store: KeyStore,
        event_store: EventStore,
        guard: RequestGuard,
        invalidator: Optional[KeyListInvalidator] = None,
        choice: Callable[[str], str] = secrets.choice,
    ) -> None:
        self._keys = key_store
        self._events = event_store
        self._guard = guard
        self._invalidator = invalidator if invalidator is not None else KeyListInvalidator()
        self._choice = choice

    @property
    def invalidator(self) -> KeyListInvalidator:
        return self._invalidator

    # ── generate ──────────────────────────────────────────────────────────────

    async def generate(
        self,
        ctx: RequestContext,
        event_id: str,
        sport_id: str,
        sport_name: str,
        sport_emoji: str,
        quantity: int,
    ) -> Result[list[AccessKey]]:
        """Create ``quantity`` AVAILABLE keys and return the event's refreshed list."""
        try:
            self._guard.enforce(ctx, "generate", RateLimitClass.UPLOAD)

            clean_event_id = sanitize_text(event_id, MAX_ID_LENGTH)
            clean_sport_id = sanitize_text(sport_id, MAX_ID_LENGTH)
            clean_sport_name = sanitize_text(sport_name, MAX_SPORT_NAME_LENGTH)
            clean_emoji = sanitize_text(sport_emoji, MAX_SPORT_EMOJI_LENGTH)
            if not clean_event_id or not clean_sport_id or not clean_sport_name:
                raise InvalidInputError()
            if (
                isinstance(quantity, bool)
                or not isinstance(quantity, int)
                or not MIN_KEYS_PER_BATCH <= quantity <= MAX_KEYS_PER_BATCH
            ):
                raise InvalidInputError(QUANTITY_MESSAGE)

            event = await self._events.find_by_event_id(clean_event_id)
            if event is None:
                raise EventNotFoundError()

            prefix = event_prefix_from_name(event.name)
            with OperationTimer("generate_keys", logger):
                await self._insert_batch(
                    prefix, clean_event_id, clean_sport_id, clean_sport_name, clean_emoji, quantity
                )
            self._invalidator.invalidate(clean_event_id)

            keys = await self._keys.find_by_event(clean_event_id)
            logger.info(
                "Access keys generated",
                event_id=clean_event_id,
                sport_id=clean_sport_id,
                quantity=quantity,
            )
            return Ok(keys)
        except Exception as exc:
            return error_result(exc, "generate", GENERIC_ERROR_MESSAGES["generate"])

    async def _insert_batch(
        self,
        prefix: str,
        event_id: str,
        sport_id: str,
        sport_name: str,
        sport_emoji: str,
        quantity: int,
    ) -> None:
        """Insert one batch, regenerating every code after a UNIQUE violation.

        Raises StoreError once MAX_CODE_GENERATION_ATTEMPTS batches collided.
        """
        for attempt in range(1, MAX_CODE_GENERATION_ATTEMPTS + 1):
            rows = [
                NewAccessKey(
                    code=generate_code(prefix, sport_id, choice=self._choice),
                    event_id=event_id,
                    sport_id=sport_id,
                    sport_name=sport_name,
                    sport_emoji=sport_emoji,
                )
                for _ in range(quantity)
            ]
            try:
                await self._keys.create_many(rows)
                return
            except DuplicateKeyCodeError:
                logger.warning(
                    "Access key code collision, regenerating batch",
                    event_id=event_id,
                    attempt=attempt,
                )
        raise StoreError(
            f"Code collision persisted after {MAX_CODE_GENERATION_ATTEMPTS} attempts"
        )

    # ── list ──────────────────────────────────────────────────────────────────

    async def list_by_event(self, event_id: str) -> Result[list[AccessKey]]:
        """All keys for an event, newest first. Read-only, so no guards run."""
        try:
            clean_event_id = _require_id(event_id)
            return Ok(await self._keys.find_by_event(clean_event_id))
        except Exception as exc:
            return error_result(exc, "list", GENERIC_ERROR_MESSAGES["list"])

    # ── status transitions ────────────────────────────────────────────────────

    async def revoke(self, ctx: RequestContext, key_id: str) -> Result[AccessKey]:
        return await self._set_status(ctx, key_id, KeyStatus.REVOKED, "revoke")

    async def restore(self, ctx: RequestContext, key_id: str) -> Result[AccessKey]:
        return await self._set_status(ctx, key_id, KeyStatus.AVAILABLE, "restore")

    async def _set_status(
        self,
        ctx: RequestContext,
        key_id: str,
        status: KeyStatus,
        operation: str,
    ) -> Result[AccessKey]:
        try:
            self._guard.enforce(ctx, operation, RateLimitClass.DEFAULT)
            clean_key_id = _require_id(key_id)

            key = await self._keys.get_key(clean_key_id)
            if key is None:
                raise KeyNotFoundError()
            # Last write wins when two requests race on the same key
            if not await self._keys.update_status(clean_key_id, status):
                raise KeyNotFoundError()
            self._invalidator.invalidate(key.event_id)

            logger.info(
                "Access key status changed",
                key_id=clean_key_id,
                event_id=key.event_id,
                old_status=key.status.value,
                new_status=status.value,
            )
            return Ok(replace(key, status=status))
        except Exception as exc:
            return error_result(exc, operation, GENERIC_ERROR_MESSAGES[operation])

    # ── delete ────────────────────────────────────────────────────────────────

    async def delete(self, ctx: RequestContext, key_id: str) -> Result[str]:
        """Permanently delete a key. A second delete of the same id is NotFound."""
        try:
            self._guard.enforce(ctx, "delete", RateLimitClass.DEFAULT)
            clean_key_id = _require_id(key_id)

            key = await self._keys.get_key(clean_key_id)
            if key is None:
                raise KeyNotFoundError()
            if not await self._keys.delete_key(clean_key_id):
                raise KeyNotFoundError()
            self._invalidator.invalidate(key.event_id)

            logger.info("Access key deleted", key_id=clean_key_id, event_id=key.event_id)
            return Ok(clean_key_id)
        except Exception as exc:
            return error_result(exc, "delete", GENERIC_ERROR_MESSAGES["delete"])

    # ── export ────────────────────────────────────────────────────────────────

    async def export_csv(self, ctx: RequestContext, event_id: str) -> Result[str]:
        """Render the event's keys (newest first) as CSV with a header row."""
        try:
            self._guard.enforce(ctx, "export", RateLimitClass.LENIENT)
            clean_event_id = _require_id(event_id)

            if await self._events.find_by_event_id(clean_event_id) is None:
                raise EventNotFoundError()
            keys = await self._keys.find_by_event(clean_event_id)

            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(CSV_COLUMNS)
            for key in keys:
                writer.writerow(
                    [
                        key.code,
                        key.sport_id,
                        key.sport_name,
                        key.status.value,
                        key.claimed_by_id or "",
                        key.claimed_at.isoformat() if key.claimed_at else "",
                        key.created_at.isoformat(),
                    ]
                )
            logger.info("Access keys exported", event_id=clean_event_id, rows=len(keys))
            return Ok(buffer.getvalue())
        except Exception as exc:
            return error_result(exc, "export", GENERIC_ERROR_MESSAGES["export"])
