"""
Collaborator interfaces of the exporter.

The exporter never talks to a backend directly. It reads the room and the
session logs through the readers below and downloads media through a
ResourceFetcher, so a session can be exported from a dump directory, a test
fixture or any other source that implements them.

Design Principles:
    - Readers raise SourceUnavailableError when a log cannot be read at all;
      the exporter decides whether that is fatal
    - Fetchers return FetchResult and never raise for expected failures
      (HTTP errors, timeouts, oversize responses)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from stagereplay.schema import Bookmark, MessageEvent, RoomSnapshot, TransitionEvent


@dataclass(frozen=True)
class FetchResult:
    """
    Outcome of downloading one asset.

    Attributes:
        success: Whether the asset was downloaded
        data: Response body
        content_type: Media type reported by the server, if any
        error: Error message if success is False
        metadata: Additional details (final URL, status code, sizes)
    """

    success: bool
    data: bytes = b""
    content_type: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: bytes, content_type: str | None = None, **metadata: Any) -> "FetchResult":
        """Create a successful result."""
        return cls(success=True, data=data, content_type=content_type, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "FetchResult":
        """Create a failed result."""
        return cls(success=False, error=error, metadata=metadata)


class RoomReader(ABC):
    """Reads the room record."""

    @abstractmethod
    def read_room(self) -> RoomSnapshot:
        """
        Read the room's name, last-known stage, characters and participants.

        Raises:
            SourceUnavailableError: If the room cannot be read
        """
        ...


class MessageLogReader(ABC):
    """Reads the message log."""

    @abstractmethod
    def read_messages(self) -> list[MessageEvent]:
        """Read every recorded message, in recorded order."""
        ...


class TransitionLogReader(ABC):
    """Reads the authoritative stage transition log."""

    @abstractmethod
    def read_transitions(self) -> list[TransitionEvent]:
        """
        Read every recorded stage transition.

        Raises:
            SourceUnavailableError: If the log does not exist (older rooms
                were recorded without one)
        """
        ...


class FallbackTransitionCache(ABC):
    """Transitions recorded locally by the live session."""

    @abstractmethod
    def load_transitions(self) -> list[TransitionEvent]:
        """Load cached transitions; an empty or unreadable cache yields []."""
        ...


class BookmarkReader(ABC):
    """Reads the GM's bookmarks."""

    @abstractmethod
    def read_bookmarks(self) -> list[Bookmark]:
        """
        Read every bookmark of the room.

        Raises:
            SourceUnavailableError: If bookmarks cannot be read
        """
        ...


class ResourceFetcher(ABC):
    """Downloads remote assets."""

    @abstractmethod
    def fetch(self, url: str) -> FetchResult:
        """
        Download one URL.

        Must be safe to call from several threads at once.
        """
        ...

    def close(self) -> None:
        """Release network resources."""

    def __enter__(self) -> "ResourceFetcher":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
