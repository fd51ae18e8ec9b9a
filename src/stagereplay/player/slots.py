"""
Save slots.

A bundle's save slots live in the injected LocalStore as one JSON array of
``slot_count`` entries under ``stagereplay:saves:<room>``, where ``<room>`` is
the room id (or the room name for bundles exported without one). Slots are
overwritten in place.

Corrupt data never raises: an unparsable array reads as all-empty and an
unparsable entry reads as an empty slot. A store that fails reads as
all-empty too, and a write it rejects is dropped with a warning.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from stagereplay.errors import SaveSlotRangeError, StorageError
from stagereplay.schema import BundleData, SaveSlot
from stagereplay.store import LocalStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "stagereplay:saves:"
DEFAULT_SLOT_COUNT = 10


class SaveSlotStore:
    """
    Fixed-size save slot array for one bundle.

    Example:
        slots = SaveSlotStore.for_bundle(store, data)
        slots.write(SaveSlot(index=0, step_index=12, saved_at=now))
        slot = slots.read(0)
    """

    def __init__(self, store: LocalStore, room_key: str, slot_count: int = DEFAULT_SLOT_COUNT) -> None:
        self.store = store
        self.room_key = room_key
        self.slot_count = slot_count

    @classmethod
    def for_bundle(
        cls,
        store: LocalStore,
        data: BundleData,
        slot_count: int = DEFAULT_SLOT_COUNT,
    ) -> "SaveSlotStore":
        return cls(store, data.room_id or data.room_name, slot_count)

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX}{self.room_key}"

    def check_index(self, index: int) -> None:
        """Raise SaveSlotRangeError unless 0 <= index < slot_count."""
        if not 0 <= index < self.slot_count:
            raise SaveSlotRangeError(index=index, slot_count=self.slot_count)

    def _entries(self) -> list[Any]:
        raw = self.store.get(self.key)
        entries: list[Any] = []
        if raw:
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Save data for %s is corrupt; treating every slot as empty", self.room_key)
                parsed = None
            if isinstance(parsed, list):
                entries = parsed[: self.slot_count]
        return entries + [None] * (self.slot_count - len(entries))

    def _load_raw(self) -> list[Any]:
        try:
            return self._entries()
        except StorageError as e:
            logger.warning("Could not read save slots for %s: %s", self.room_key, e.message)
            return [None] * self.slot_count

    def read_all(self) -> list[SaveSlot | None]:
        """Every slot in index order; empty and corrupt slots are None."""
        slots: list[SaveSlot | None] = []
        for index, entry in enumerate(self._load_raw()):
            slots.append(self._parse(index, entry))
        return slots

    def read(self, index: int) -> SaveSlot | None:
        self.check_index(index)
        return self._parse(index, self._load_raw()[index])

    def write(self, slot: SaveSlot) -> None:
        """Overwrite one slot, keeping the others."""
        self.check_index(slot.index)
        try:
            entries = self._entries()
            entries[slot.index] = slot.model_dump(mode="json", by_alias=True)
            self.store.set(self.key, json.dumps(entries, ensure_ascii=False))
        except StorageError as e:
            logger.warning("Could not write save slot %d for %s: %s", slot.index, self.room_key, e.message)

    def _parse(self, index: int, entry: Any) -> SaveSlot | None:
        if not isinstance(entry, dict):
            return None
        try:
            slot = SaveSlot.model_validate(entry)
        except ValidationError:
            logger.debug("Ignoring corrupt save slot %d of %s", index, self.room_key)
            return None
        return slot if slot.index == index else slot.model_copy(update={"index": index})
