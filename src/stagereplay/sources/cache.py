"""
Local transition cache.

While a session is live, every stage transition is also appended to a local
store. When the authoritative log is missing at export time, this history is
the fallback. The cache is bounded; the oldest entries are evicted first.
"""

import json
import logging

from pydantic import ValidationError

from stagereplay.schema import TransitionEvent
from stagereplay.sources.base import FallbackTransitionCache
from stagereplay.store import LocalStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "stagereplay:stage-events:"
MAX_EVENTS = 2000


class StoreTransitionCache(FallbackTransitionCache):
    """
    Bounded transition history of one room on a LocalStore.

    Attributes:
        store: Backing store
        room_id: Room whose history this is
        max_events: Entries kept; older ones are dropped on append
    """

    def __init__(self, store: LocalStore, room_id: str, max_events: int = MAX_EVENTS) -> None:
        self.store = store
        self.room_id = room_id
        self.max_events = max_events

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX}{self.room_id}"

    def _load_raw(self) -> list[dict]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt transition cache for room %s", self.room_id)
            return []
        return [entry for entry in parsed if isinstance(entry, dict)] if isinstance(parsed, list) else []

    def append(self, event: TransitionEvent) -> None:
        """Record one transition, evicting the oldest beyond the bound."""
        entries = self._load_raw()
        entries.append(event.model_dump(mode="json", by_alias=True))
        if len(entries) > self.max_events:
            del entries[: len(entries) - self.max_events]
        self.store.set(self.key, json.dumps(entries, ensure_ascii=False))

    def load_transitions(self) -> list[TransitionEvent]:
        events = []
        for entry in self._load_raw():
            try:
                events.append(TransitionEvent.from_row(entry))
            except (ValidationError, KeyError):
                logger.debug("Skipping malformed cached transition: %r", entry)
        return events

    def clear(self) -> None:
        """Forget the room's history."""
        self.store.remove(self.key)
