"""Unit tests for KeyLifecycleManager against a real LocalSQLiteStore.

Covers:
  - generate: quantity bounds, N AVAILABLE rows matching the code format,
    unknown event, missing fields, collision regeneration and give-up
  - revoke / restore / delete and their NotFound paths
  - Origin Guard and Rate Limiter rejections surfaced as Err results
  - listings read the store; every mutation bumps the invalidation generation
  - CSV export
"""

from __future__ import annotations

import asyncio
import csv
import io
from typing import Optional, Sequence

import pytest

from app.errors import DuplicateKeyCodeError
from app.keys.codes import KEY_CODE_RE
from app.keys.manager import CSV_COLUMNS, GENERIC_ERROR_MESSAGES, QUANTITY_MESSAGE, KeyLifecycleManager
from app.models.environment import Environment
from app.models.keys import KeyStatus, NewAccessKey
from app.models.result import Err, ErrorKind, Ok
from app.security.guard import RequestContext
from app.security.rate_limiter import RateLimitClass, RateLimiter


class FlakyKeyStore:
    """Delegates to a real store but reports a duplicate code for the first N batches."""

    def __init__(self, inner, failures: int) -> None:
        self._inner = inner
        self.failures = failures
        self.batches: list[list[str]] = []

    async def create_many(self, rows: Sequence[NewAccessKey]) -> int:
        self.batches.append([row.code for row in rows])
        if self.failures > 0:
            self.failures -= 1
            raise DuplicateKeyCodeError("collision")
        return await self._inner.create_many(rows)

    def __getattr__(self, name: str):
        return getattr(self._inner, name)


@pytest.fixture
async def event_id(store, make_draft) -> str:
    event = await store.create_event(make_draft("Summer Games"))
    return event.event_id


@pytest.fixture
def manager(store, make_guard) -> KeyLifecycleManager:
    return KeyLifecycleManager(store, store, make_guard())


async def _generate(manager: KeyLifecycleManager, ctx, event_id: str, quantity: int = 5):
    return await manager.generate(ctx, event_id, "swimming", "Swimming", "🏊", quantity)


# ─── generate ─────────────────────────────────────────────────────────────────


class TestGenerate:
    async def test_creates_available_keys(self, manager, store, ctx, event_id) -> None:
        result = await _generate(manager, ctx, event_id, quantity=5)

        assert isinstance(result, Ok)
        assert len(result.value) == 5
        for key in result.value:
            assert key.status is KeyStatus.AVAILABLE
            assert KEY_CODE_RE.match(key.code)
            assert key.code.startswith("SU")
            assert key.code.endswith("-SWI")
            assert key.event_id == event_id
            assert key.sport_name == "Swimming"
        assert len(await store.find_by_event(event_id)) == 5

    async def test_returns_whole_event_listing(self, manager, ctx, event_id) -> None:
        await _generate(manager, ctx, event_id, quantity=2)
        result = await _generate(manager, ctx, event_id, quantity=3)
        assert isinstance(result, Ok)
        assert len(result.value) == 5

    @pytest.mark.parametrize("quantity", [0, -1, 1001])
    async def test_quantity_out_of_range(self, manager, store, ctx, event_id, quantity) -> None:
        result = await _generate(manager, ctx, event_id, quantity=quantity)

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.INVALID_INPUT
        assert result.message == QUANTITY_MESSAGE
        assert await store.find_by_event(event_id) == []

    @pytest.mark.parametrize("quantity", [1, 1000])
    async def test_quantity_bounds_inclusive(self, manager, ctx, event_id, quantity) -> None:
        result = await _generate(manager, ctx, event_id, quantity=quantity)
        assert isinstance(result, Ok)
        assert len(result.value) == quantity

    @pytest.mark.parametrize("quantity", ["5", 2.5, True, None])
    async def test_non_integer_quantity_rejected(self, manager, ctx, event_id, quantity) -> None:
        result = await _generate(manager, ctx, event_id, quantity=quantity)
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.INVALID_INPUT

    async def test_missing_sport_fields_rejected(self, manager, ctx, event_id) -> None:
        result = await manager.generate(ctx, event_id, "  ", "Swimming", "🏊", 1)
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.INVALID_INPUT
        assert result.message == "Invalid input data."

    async def test_unknown_event(self, manager, ctx) -> None:
        result = await _generate(manager, ctx, "EVT-999")
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.NOT_FOUND
        assert result.message == "Event not found."

    async def test_sport_name_truncated(self, manager, ctx, event_id) -> None:
        result = await manager.generate(ctx, event_id, "swimming", "S" * 300, "🏊", 1)
        assert isinstance(result, Ok)
        assert len(result.value[0].sport_name) == 100


class TestCodeCollisions:
    async def test_batch_regenerated_after_collision(self, store, make_guard, ctx, event_id) -> None:
        flaky = FlakyKeyStore(store, failures=2)
        manager = KeyLifecycleManager(flaky, store, make_guard())

        result = await _generate(manager, ctx, event_id, quantity=3)

        assert isinstance(result, Ok)
        assert len(result.value) == 3
        assert len(flaky.batches) == 3
        assert all(len(batch) == 3 for batch in flaky.batches)

    async def test_gives_up_after_five_attempts(self, store, make_guard, ctx, event_id) -> None:
        flaky = FlakyKeyStore(store, failures=100)
        manager = KeyLifecycleManager(flaky, store, make_guard())

        result = await _generate(manager, ctx, event_id, quantity=2)

        assert isinstance(result, Err)
        assert result.kind is ErrorKind.STORE_FAILURE
        assert result.message == GENERIC_ERROR_MESSAGES["generate"]
        assert len(flaky.batches) == 5
        assert await store.find_by_event(event_id) == []

    async def test_constant_codes_collide_inside_batch(self, store, make_guard, ctx, event_id) -> None:
        manager = KeyLifecycleManager(store, store, make_guard(), choice=lambda s: s[0])

        first = await _generate(manager, ctx, event_id, quantity=1)
        assert isinstance(first, Ok)
        assert first.value[0].code.split("-")[1] == "222222"

        second = await _generate(manager, ctx, event_id, quantity=1)
        assert isinstance(second, Err)
        assert second.message == GENERIC_ERROR_MESSAGES["generate"]
        assert len(await store.find_by_event(event_id)) == 1


# ─── revoke / restore / delete ────────────────────────────────────────────────


class TestStatusTransitions:
    async def test_revoke_then_restore_scenario(self, manager, ctx, event_id) -> None:
        generated = await _generate(manager, ctx, event_id, quantity=5)
        target = generated.value[0]

        revoked = await manager.revoke(ctx, target.id)
        assert isinstance(revoked, Ok)
        assert revoked.value.status is KeyStatus.REVOKED
        assert revoked.value.code == target.code

        listing = (await manager.list_by_event(event_id)).value
        statuses = sorted(k.status.value for k in listing)
        assert statuses == ["AVAILABLE"] * 4 + ["REVOKED"]

        restored = await manager.restore(ctx, target.id)
        assert isinstance(restored, Ok)
        assert restored.value.status is KeyStatus.AVAILABLE

        listing = (await manager.list_by_event(event_id)).value
        assert [k.status for k in listing] == [KeyStatus.AVAILABLE] * 5
        assert {k.code for k in listing} == {k.code for k in generated.value}

    async def test_revoke_is_idempotent(self, manager, ctx, event_id) -> None:
        key = (await _generate(manager, ctx, event_id, quantity=1)).value[0]
        await manager.revoke(ctx, key.id)
        again = await manager.revoke(ctx, key.id)
        assert isinstance(again, Ok)
        assert again.value.status is KeyStatus.REVOKED

    async def test_restore_keeps_claim_metadata(self, manager, store, ctx, event_id) -> None:
        key = (await _generate(manager, ctx, event_id, quantity=1)).value[0]
        await store._conn.execute(
            "UPDATE access_keys SET status = 'CLAIMED', claimed_by_id = 'user-1', "
            "claimed_at = '2026-07-02T10:00:00+00:00' WHERE id = ?",
            (key.id,),
        )
        await store._conn.commit()

        assert isinstance(await manager.revoke(ctx, key.id), Ok)
        restored = await manager.restore(ctx, key.id)

        assert isinstance(restored, Ok)
        assert restored.value.status is KeyStatus.AVAILABLE
        assert restored.value.claimed_by_id == "user-1"
        assert restored.value.claimed_at is not None

    @pytest.mark.parametrize("operation", ["revoke", "restore", "delete"])
    async def test_unknown_key(self, manager, ctx, operation) -> None:
        result = await getattr(manager, operation)(ctx, "01HZZZZZZZZZZZZZZZZZZZZZZZ")
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.NOT_FOUND
        assert result.message == "Key not found."

    @pytest.mark.parametrize("operation", ["revoke", "restore", "delete"])
    async def test_empty_key_id(self, manager, ctx, operation) -> None:
        result = await getattr(manager, operation)(ctx, "   ")
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.INVALID_INPUT

    async def test_delete_twice(self, manager, store, ctx, event_id) -> None:
        key = (await _generate(manager, ctx, event_id, quantity=2)).value[0]

        deleted = await manager.delete(ctx, key.id)
        assert deleted == Ok(key.id)
        assert len(await store.find_by_event(event_id)) == 1

        again = await manager.delete(ctx, key.id)
        assert isinstance(again, Err)
        assert again.kind is ErrorKind.NOT_FOUND


# ─── Guards ───────────────────────────────────────────────────────────────────


class TestGuards:
    FOREIGN = RequestContext(
        headers={"host": "app.example", "referer": "https://evil.example/x"},
        client_id="198.51.100.2",
    )

    async def test_origin_rejection_is_generic(self, manager, store, event_id) -> None:
        result = await _generate(manager, self.FOREIGN, event_id)
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.ORIGIN_REJECTED
        assert result.message == GENERIC_ERROR_MESSAGES["generate"]
        assert await store.find_by_event(event_id) == []

    async def test_origin_rejection_precedes_validation(self, manager, event_id) -> None:
        result = await _generate(manager, self.FOREIGN, event_id, quantity=0)
        assert result.kind is ErrorKind.ORIGIN_REJECTED

    async def test_development_accepts_foreign_origin(self, store, make_guard, event_id) -> None:
        manager = KeyLifecycleManager(store, store, make_guard(Environment.DEVELOPMENT))
        result = await _generate(manager, self.FOREIGN, event_id, quantity=1)
        assert isinstance(result, Ok)

    async def test_rate_limited_after_upload_budget(self, store, make_guard, ctx, event_id, clock) -> None:
        limiter = RateLimiter({RateLimitClass.UPLOAD: "2/minute"})
        manager = KeyLifecycleManager(store, store, make_guard(rate_limiter=limiter))

        for _ in range(2):
            assert isinstance(await _generate(manager, ctx, event_id, quantity=1), Ok)
        limited = await _generate(manager, ctx, event_id, quantity=1)

        assert isinstance(limited, Err)
        assert limited.kind is ErrorKind.RATE_LIMITED
        assert limited.reset_at == clock.now + 60
        assert limited.message.startswith("Too many requests. Please try again after ")
        assert len(await store.find_by_event(event_id)) == 2

    async def test_rate_limit_is_per_operation(self, store, make_guard, ctx, event_id, clock) -> None:
        limiter = RateLimiter({RateLimitClass.DEFAULT: "1/minute"})
        manager = KeyLifecycleManager(store, store, make_guard(rate_limiter=limiter))
        keys = (await _generate(manager, ctx, event_id, quantity=2)).value

        assert isinstance(await manager.revoke(ctx, keys[0].id), Ok)
        assert isinstance(await manager.restore(ctx, keys[0].id), Ok)
        second_revoke = await manager.revoke(ctx, keys[1].id)
        assert second_revoke.kind is ErrorKind.RATE_LIMITED

    async def test_listing_is_not_guarded(self, manager, event_id) -> None:
        result = await manager.list_by_event(event_id)
        assert result == Ok([])


# ─── Listing freshness and invalidation ───────────────────────────────────────


class SlowListingStore:
    """Delegates to a real store but holds find_by_event until released."""

    def __init__(self, inner) -> None:
        self._inner = inner
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def find_by_event(self, event_id: str):
        keys = await self._inner.find_by_event(event_id)
        self.entered.set()
        await self.release.wait()
        return keys

    def __getattr__(self, name: str):
        return getattr(self._inner, name)


async def _mark_claimed(store, key_id: str) -> None:
    await store._conn.execute(
        "UPDATE access_keys SET status = 'CLAIMED', claimed_by_id = 'user-9', "
        "claimed_at = '2026-07-03T08:00:00+00:00' WHERE id = ?",
        (key_id,),
    )
    await store._conn.commit()


class TestListingFreshness:
    async def test_listing_sees_claim_written_to_store(self, manager, store, ctx, event_id) -> None:
        key = (await _generate(manager, ctx, event_id, quantity=1)).value[0]
        await manager.list_by_event(event_id)

        await _mark_claimed(store, key.id)

        listed = (await manager.list_by_event(event_id)).value[0]
        assert listed.status is KeyStatus.CLAIMED
        assert listed.claimed_by_id == "user-9"

    async def test_export_sees_claim_written_to_store(self, manager, store, ctx, event_id) -> None:
        key = (await _generate(manager, ctx, event_id, quantity=1)).value[0]
        await manager.export_csv(ctx, event_id)

        await _mark_claimed(store, key.id)

        rows = _parse_csv((await manager.export_csv(ctx, event_id)).value)
        assert rows[1][3] == "CLAIMED"
        assert rows[1][4] == "user-9"

    async def test_revoke_during_slow_listing_is_not_lost(self, store, make_guard, ctx, event_id) -> None:
        slow = SlowListingStore(store)
        guard = make_guard()
        key = (await _generate(KeyLifecycleManager(store, store, guard), ctx, event_id, 1)).value[0]
        slow_manager = KeyLifecycleManager(slow, store, guard)
        fast_manager = KeyLifecycleManager(store, store, guard, slow_manager.invalidator)

        pending = asyncio.create_task(slow_manager.list_by_event(event_id))
        await slow.entered.wait()
        assert isinstance(await fast_manager.revoke(ctx, key.id), Ok)
        slow.release.set()

        assert (await pending).value[0].status is KeyStatus.AVAILABLE
        assert (await fast_manager.list_by_event(event_id)).value[0].status is KeyStatus.REVOKED


class TestInvalidation:
    async def test_generate_bumps_generation(self, manager, ctx, event_id) -> None:
        await _generate(manager, ctx, event_id, quantity=2)
        assert manager.invalidator.generation(event_id) == 1

    @pytest.mark.parametrize("operation", ["revoke", "restore", "delete"])
    async def test_mutation_bumps_generation(self, manager, ctx, event_id, operation) -> None:
        key = (await _generate(manager, ctx, event_id, quantity=1)).value[0]
        before = manager.invalidator.generation(event_id)

        assert isinstance(await getattr(manager, operation)(ctx, key.id), Ok)
        assert manager.invalidator.generation(event_id) == before + 1

    async def test_listing_does_not_bump_generation(self, manager, event_id) -> None:
        await manager.list_by_event(event_id)
        assert manager.invalidator.generation(event_id) == 0

    async def test_rejected_mutation_does_not_bump_generation(self, manager, ctx, event_id) -> None:
        result = await manager.revoke(ctx, "01HZZZZZZZZZZZZZZZZZZZZZZZ")
        assert result.kind is ErrorKind.NOT_FOUND
        assert manager.invalidator.generation(event_id) == 0


# ─── export ───────────────────────────────────────────────────────────────────


def _parse_csv(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


class TestExport:
    async def test_header_and_rows(self, manager, ctx, event_id) -> None:
        keys = (await _generate(manager, ctx, event_id, quantity=3)).value
        await manager.revoke(ctx, keys[0].id)

        result = await manager.export_csv(ctx, event_id)

        assert isinstance(result, Ok)
        rows = _parse_csv(result.value)
        assert rows[0] == list(CSV_COLUMNS)
        assert len(rows) == 4
        by_code = {row[0]: row for row in rows[1:]}
        assert by_code[keys[0].code][3] == "REVOKED"
        assert by_code[keys[1].code][1:4] == ["swimming", "Swimming", "AVAILABLE"]

    async def test_empty_event_exports_header_only(self, manager, ctx, event_id) -> None:
        result = await manager.export_csv(ctx, event_id)
        assert _parse_csv(result.value) == [list(CSV_COLUMNS)]

    async def test_unknown_event(self, manager, ctx) -> None:
        result = await manager.export_csv(ctx, "EVT-404")
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.NOT_FOUND

    async def test_origin_rejected(self, manager, event_id) -> None:
        result = await manager.export_csv(RequestContext(), event_id)
        assert isinstance(result, Err)
        assert result.message == GENERIC_ERROR_MESSAGES["export"]


class _BrokenStore:
    async def find_by_event(self, event_id: str):
        raise RuntimeError("disk I/O error")

    async def get_key(self, key_id: str) -> Optional[object]:
        raise RuntimeError("disk I/O error")


class TestStoreFailure:
    async def test_list_failure_is_generic(self, make_guard, store) -> None:
        manager = KeyLifecycleManager(_BrokenStore(), store, make_guard())
        result = await manager.list_by_event("EVT-001")
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.STORE_FAILURE
        assert result.message == GENERIC_ERROR_MESSAGES["list"]
        assert "disk" not in result.message

    async def test_revoke_failure_is_generic(self, make_guard, store, ctx) -> None:
        manager = KeyLifecycleManager(_BrokenStore(), store, make_guard())
        result = await manager.revoke(ctx, "01HZZZZZZZZZZZZZZZZZZZZZZZ")
        assert result == Err(ErrorKind.STORE_FAILURE, GENERIC_ERROR_MESSAGES["revoke"])
