"""
Export pipeline for Stagereplay.

The ReplayExporter turns one recorded session into a replay bundle. It
coordinates between:
- Sources: the room, the message log, the transition log and bookmarks
- Timeline Merger: one ordered, viewer-filtered event sequence
- Asset Virtualizer: downloads media and rewrites references
- Bundle Serializer: writes the archive

Export Flow:
    1. Read the room, then the message log
    2. Read the transition log; if unavailable or empty, use the local
       fallback cache
    3. Read bookmarks (unavailable bookmarks are not fatal)
    4. Merge and filter for the viewer
    5. Derive the initial stage and the title screen, assemble the draft
    6. Download every asset and rewrite the draft
    7. Serialize and write the archive

Design Principles:
    - Sequential: each stage completes before the next begins; only asset
      downloads run in parallel, inside the virtualizer
    - Degrade, don't abort: missing logs and failed downloads are logged and
      the export carries on; only a bundle that cannot be written is fatal
    - Confidential by construction: filtered messages never reach the draft
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from stagereplay.assets import AssetVirtualizer, RewriteTable
from stagereplay.bundle import build_initial_snapshot, write_bundle
from stagereplay.errors import SourceUnavailableError
from stagereplay.schema import (
    Bookmark,
    BundleData,
    CharacterSummary,
    ExportConfig,
    RoomSnapshot,
    TransitionEvent,
    TransitionSource,
)
from stagereplay.sources import (
    BookmarkReader,
    FallbackTransitionCache,
    HttpResourceFetcher,
    MessageLogReader,
    ResourceFetcher,
    RoomReader,
    SessionDirectory,
    StoreTransitionCache,
    TransitionLogReader,
)
from stagereplay.store import LocalStore
from stagereplay.timeline import Timeline, merge_timeline
from stagereplay.title import title_screen_for_room

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """
    Result of exporting a session.

    Attributes:
        path: The written bundle
        room_name: Name of the exported room
        event_count: Events in the data file
        message_count: Messages included for the viewer
        dropped_messages: Secret messages excluded for the viewer
        transition_source: Where the stage transitions came from
        bookmark_count: Bookmarks included
        fetched_assets: Assets downloaded into the bundle
        failed_assets: URL -> error for downloads that failed
        duration_ms: Total export time in milliseconds
    """

    path: Path
    room_name: str
    event_count: int = 0
    message_count: int = 0
    dropped_messages: int = 0
    transition_source: TransitionSource = TransitionSource.NONE
    bookmark_count: int = 0
    fetched_assets: int = 0
    failed_assets: dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def complete(self) -> bool:
        """Whether every asset made it into the bundle."""
        return not self.failed_assets

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "room_name": self.room_name,
            "event_count": self.event_count,
            "message_count": self.message_count,
            "dropped_messages": self.dropped_messages,
            "transition_source": self.transition_source.value,
            "bookmark_count": self.bookmark_count,
            "fetched_assets": self.fetched_assets,
            "failed_assets": dict(self.failed_assets),
            "duration_ms": round(self.duration_ms, 1),
        }


@dataclass
class ExportDraft:
    """Everything the pipeline computed before writing the archive."""

    data: BundleData
    table: RewriteTable
    timeline: Timeline


class ReplayExporter:
    """
    Export pipeline.

    Usage:
        with ReplayExporter.from_directory("./session", config) as exporter:
            result = exporter.export("replay.zip")
            print(f"{result.event_count} events, {result.fetched_assets} assets")

    Attributes:
        config: Export configuration (viewer, fetch limits, player settings)
        fetcher: Asset fetcher
    """

    def __init__(
        self,
        room: RoomReader,
        messages: MessageLogReader,
        transitions: TransitionLogReader,
        fallback: FallbackTransitionCache | None = None,
        bookmarks: BookmarkReader | None = None,
        config: ExportConfig | None = None,
        fetcher: ResourceFetcher | None = None,
        cache_store: LocalStore | None = None,
    ) -> None:
        """
        Initialize the exporter.

        Args:
            room: Room reader
            messages: Message log reader
            transitions: Authoritative transition log reader
            fallback: Transitions recorded locally, used when the log is missing
            bookmarks: Bookmark reader; None exports without bookmarks
            config: Export configuration (defaults if None)
            fetcher: Asset fetcher; an HttpResourceFetcher is created (and
                closed with the exporter) if None
            cache_store: Store holding the live session's transition cache;
                consulted before ``fallback``
        """
        self.room_reader = room
        self.message_reader = messages
        self.transition_reader = transitions
        self.fallback = fallback
        self.bookmark_reader = bookmarks
        self.cache_store = cache_store
        self.config = config or ExportConfig()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or HttpResourceFetcher(self.config.fetch)

    @classmethod
    def from_directory(
        cls,
        path: str | Path,
        config: ExportConfig | None = None,
        fetcher: ResourceFetcher | None = None,
        cache_store: LocalStore | None = None,
    ) -> "ReplayExporter":
        """Exporter reading every log from a session dump directory."""
        session = SessionDirectory(path)
        return cls(
            room=session,
            messages=session,
            transitions=session,
            fallback=session,
            bookmarks=session,
            config=config,
            fetcher=fetcher,
            cache_store=cache_store,
        )

    def close(self) -> None:
        """Close the fetcher if the exporter created it."""
        if self._owns_fetcher:
            self.fetcher.close()

    def __enter__(self) -> "ReplayExporter":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()

    # =========================================================================
    # Pipeline stages
    # =========================================================================

    def _read_transitions(self) -> list[TransitionEvent] | None:
        try:
            return self.transition_reader.read_transitions()
        except SourceUnavailableError as e:
            logger.warning("%s", e.message)
            return None

    def _load_fallback(self, room: RoomSnapshot) -> list[TransitionEvent]:
        if self.cache_store is not None:
            cached = StoreTransitionCache(self.cache_store, room.id).load_transitions()
            if cached:
                return cached
        if self.fallback is not None:
            return self.fallback.load_transitions()
        return []

    def _read_bookmarks(self) -> list[Bookmark]:
        if self.bookmark_reader is None:
            return []
        try:
            return self.bookmark_reader.read_bookmarks()
        except SourceUnavailableError as e:
            logger.warning("Exporting without bookmarks: %s", e.message)
            return []

    def build(self, exported_at: datetime | None = None) -> ExportDraft:
        """
        Run every stage except writing the archive.

        Args:
            exported_at: Export timestamp (now if None)

        Returns:
            The rewritten data file, the rewrite table and the timeline
        """
        room = self.room_reader.read_room()
        messages = self.message_reader.read_messages()
        transitions = self._read_transitions()
        fallback = self._load_fallback(room) if not transitions else []
        bookmarks = self._read_bookmarks()

        timeline = merge_timeline(messages, transitions, self.config.viewer, fallback)
        initial_background, initial_portraits = build_initial_snapshot(timeline.events, room.stage)

        kept_bookmarks = [b for b in bookmarks if b.message_id in timeline.message_ids]
        if len(kept_bookmarks) < len(bookmarks):
            logger.info(
                "Dropped %d bookmarks pointing at excluded messages",
                len(bookmarks) - len(kept_bookmarks),
            )

        draft = BundleData(
            room_id=room.id,
            room_name=room.name,
            exported_at=exported_at or datetime.now(UTC),
            events=timeline.events,
            initial_background=initial_background,
            initial_portraits=initial_portraits,
            characters=[CharacterSummary(name=c.name, is_npc=c.is_npc) for c in room.characters],
            participants=room.participants,
            markups=kept_bookmarks,
            title_screen=title_screen_for_room(room),
        )

        virtualizer = AssetVirtualizer(self.fetcher, self.config.fetch.max_concurrent)
        data, table = virtualizer.virtualize(draft)
        return ExportDraft(data=data, table=table, timeline=timeline)

    def export(self, out_path: str | Path, exported_at: datetime | None = None) -> ExportResult:
        """
        Export the session to a bundle.

        Args:
            out_path: Target .zip path
            exported_at: Export timestamp (now if None)

        Returns:
            ExportResult with counts and the failed downloads

        Raises:
            SourceUnavailableError: If the room or message log cannot be read
            SourceFormatError: If a log is malformed
            BundleSerializationError: If the data file cannot be encoded
            BundleWriteError: If the archive cannot be written
        """
        started = time.perf_counter()
        draft = self.build(exported_at)
        path = write_bundle(out_path, draft.data, draft.table.files, self.config.player)
        result = ExportResult(
            path=path,
            room_name=draft.data.room_name,
            event_count=len(draft.data.events),
            message_count=draft.timeline.kept_messages,
            dropped_messages=draft.timeline.dropped_messages,
            transition_source=draft.timeline.transition_source,
            bookmark_count=len(draft.data.markups),
            fetched_assets=draft.table.fetched_count,
            failed_assets=dict(draft.table.failed),
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        logger.info(
            "Exported %s: %d events, %d assets (%d failed)",
            result.room_name,
            result.event_count,
            result.fetched_assets,
            len(result.failed_assets),
        )
        return result
