"""
Session dump directory.

A session dump is a directory of JSON files exported from the hosted backend:

    room.json                 room record (name, stage, characters, ...)
    messages.json             message rows
    stage_events.json         authoritative transition rows (optional)
    stage_events_local.json   transitions cached by the live session (optional)
    markups.json              bookmark rows (optional)

Rows may use the backend's snake_case columns (``created_at``,
``speaker_name``, ``kind``) or the bundle's camelCase keys.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from stagereplay.errors import SourceFormatError, SourceUnavailableError
from stagereplay.schema import Bookmark, MessageEvent, RoomSnapshot, TransitionEvent
from stagereplay.sources.base import (
    BookmarkReader,
    FallbackTransitionCache,
    MessageLogReader,
    RoomReader,
    TransitionLogReader,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROOM_FILE = "room.json"
MESSAGES_FILE = "messages.json"
TRANSITIONS_FILE = "stage_events.json"
LOCAL_TRANSITIONS_FILE = "stage_events_local.json"
BOOKMARKS_FILE = "markups.json"


def _message_from_row(row: dict[str, Any]) -> MessageEvent:
    if "created_at" in row:
        return MessageEvent.from_row(row)
    return MessageEvent.model_validate(row)


def _bookmark_from_row(row: dict[str, Any]) -> Bookmark:
    if "message_id" in row:
        return Bookmark.from_row(row)
    return Bookmark.model_validate(row)


class SessionDirectory(
    RoomReader,
    MessageLogReader,
    TransitionLogReader,
    FallbackTransitionCache,
    BookmarkReader,
):
    """
    Every collaborator reader backed by one session dump directory.

    Example:
        session = SessionDirectory("./dumps/room-1")
        room = session.read_room()
        messages = session.read_messages()
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"SessionDirectory({str(self.path)!r})"

    def _read_json(self, name: str) -> Any:
        file_path = self.path / name
        if not file_path.is_file():
            raise SourceUnavailableError(source=name, reason="file not found")
        try:
            with file_path.open(encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise SourceFormatError(source=name, underlying_error=str(e)) from e
        except OSError as e:
            raise SourceUnavailableError(source=name, reason=str(e)) from e

    def _read_rows(self, name: str, parse: Callable[[dict[str, Any]], T]) -> list[T]:
        data = self._read_json(name)
        if not isinstance(data, list):
            raise SourceFormatError(source=name, underlying_error="expected a JSON array")
        try:
            return [parse(row) for row in data]
        except (ValidationError, KeyError, TypeError) as e:
            raise SourceFormatError(source=name, underlying_error=str(e)) from e

    def read_room(self) -> RoomSnapshot:
        data = self._read_json(ROOM_FILE)
        try:
            return RoomSnapshot.model_validate(data)
        except ValidationError as e:
            raise SourceFormatError(source=ROOM_FILE, underlying_error=str(e)) from e

    def read_messages(self) -> list[MessageEvent]:
        return self._read_rows(MESSAGES_FILE, _message_from_row)

    def read_transitions(self) -> list[TransitionEvent]:
        return self._read_rows(TRANSITIONS_FILE, TransitionEvent.from_row)

    def load_transitions(self) -> list[TransitionEvent]:
        try:
            return self._read_rows(LOCAL_TRANSITIONS_FILE, TransitionEvent.from_row)
        except SourceUnavailableError:
            return []
        except SourceFormatError as e:
            logger.warning("Ignoring unreadable local transition cache: %s", e.message)
            return []

    def read_bookmarks(self) -> list[Bookmark]:
        return self._read_rows(BOOKMARKS_FILE, _bookmark_from_row)
