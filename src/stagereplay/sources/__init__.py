"""
Collaborator sources for the exporter.

Readers for the room, the message log, the transition log (with its local
fallback cache) and bookmarks, plus the fetcher that downloads media.
"""

from stagereplay.sources.base import (
    BookmarkReader,
    FallbackTransitionCache,
    FetchResult,
    MessageLogReader,
    ResourceFetcher,
    RoomReader,
    TransitionLogReader,
)
from stagereplay.sources.cache import StoreTransitionCache
from stagereplay.sources.directory import SessionDirectory
from stagereplay.sources.http import HttpResourceFetcher, is_remote_url

__all__ = [
    "BookmarkReader",
    "FallbackTransitionCache",
    "FetchResult",
    "HttpResourceFetcher",
    "MessageLogReader",
    "ResourceFetcher",
    "RoomReader",
    "SessionDirectory",
    "StoreTransitionCache",
    "TransitionLogReader",
    "is_remote_url",
]
