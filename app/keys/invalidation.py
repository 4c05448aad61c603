"""Per-event key list invalidation signal.

Listings are never held in memory: every list_by_event() and export_csv()
reads the store, so claims written by other processes are always visible.
What this module keeps is a generation counter per event, bumped whenever
this process mutates that event's keys. A UI layer compares generations to
decide whether its own cached view needs a refetch.

Counters live in an OrderedDict bounded to ``maxsize`` events; the least
recently bumped event is forgotten first and reads as generation 0 again.
"""

from __future__ import annotations

from collections import OrderedDict

from app.constants import KEY_LIST_GENERATIONS_MAXSIZE
from app.utils.logger import get_logger

logger = get_logger(__name__)


class KeyListInvalidator:
    def __init__(self, maxsize: int = KEY_LIST_GENERATIONS_MAXSIZE) -> None:
        self._maxsize = maxsize
        self._generations: OrderedDict[str, int] = OrderedDict()

    def generation(self, event_id: str) -> int:
        """Current generation of an event's key list (0 if never invalidated)."""
        return self._generations.get(event_id, 0)

    def invalidate(self, event_id: str) -> int:
        """Bump the event's generation and return the new value."""
        generation = self._generations.pop(event_id, 0) + 1
        if len(self._generations) >= self._maxsize:
            self._generations.popitem(last=False)  # forget the least-recently-bumped event
        self._generations[event_id] = generation
        logger.debug("Key list invalidated", event_id=event_id, generation=generation)
        return generation

    def clear(self) -> None:
        self._generations.clear()

    def __len__(self) -> int:
        return len(self._generations)
