"""Unit tests for the per-event key list generation counters."""

from __future__ import annotations

from app.keys.invalidation import KeyListInvalidator


class TestKeyListInvalidator:
    def test_unknown_event_is_generation_zero(self) -> None:
        assert KeyListInvalidator().generation("EVT-001") == 0

    def test_invalidate_bumps_generation(self) -> None:
        invalidator = KeyListInvalidator()
        assert invalidator.invalidate("EVT-001") == 1
        assert invalidator.invalidate("EVT-001") == 2
        assert invalidator.generation("EVT-001") == 2

    def test_events_are_independent(self) -> None:
        invalidator = KeyListInvalidator()
        invalidator.invalidate("EVT-001")
        assert invalidator.generation("EVT-002") == 0

    def test_forgets_least_recently_bumped(self) -> None:
        invalidator = KeyListInvalidator(maxsize=2)
        invalidator.invalidate("EVT-001")
        invalidator.invalidate("EVT-002")
        invalidator.invalidate("EVT-001")
        invalidator.invalidate("EVT-003")

        assert len(invalidator) == 2
        assert invalidator.generation("EVT-001") == 2
        assert invalidator.generation("EVT-002") == 0
        assert invalidator.generation("EVT-003") == 1

    def test_clear(self) -> None:
        invalidator = KeyListInvalidator()
        invalidator.invalidate("EVT-001")
        invalidator.clear()
        assert len(invalidator) == 0
        assert invalidator.generation("EVT-001") == 0
