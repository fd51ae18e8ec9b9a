"""
Exception hierarchy for Stagereplay.

All Stagereplay exceptions inherit from StageReplayError, allowing callers to
catch every library-specific failure with a single except clause.

Exception Categories:
    - SourceError: A session log could not be read
    - BundleError: The replay bundle could not be written or read
    - PlayerError: An invalid player transition or save slot access
    - StorageError: The local persistent store failed

Expected degradations are NOT exceptions: a failed asset fetch is recorded in
the rewrite table, a missing transition log falls back to the local cache, an
empty save slot loads as a no-op. Exceptions are reserved for conditions the
caller has to surface.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Source errors: 1xxx
ERROR_SOURCE_UNAVAILABLE = 1001
ERROR_SOURCE_FORMAT = 1002

# Asset errors: 2xxx
ERROR_ASSET_FETCH_FAILED = 2001

# Bundle errors: 3xxx
ERROR_BUNDLE_SERIALIZATION = 3001
ERROR_BUNDLE_WRITE = 3002
ERROR_BUNDLE_LOAD = 3003

# Player errors: 4xxx
ERROR_PLAYER_STATE = 4001
ERROR_SAVE_SLOT_RANGE = 4002

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class StageReplayError(Exception):
    """
    Base exception for all Stagereplay errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Source Errors
# =============================================================================


@dataclass
class SourceError(StageReplayError):
    """
    Base class for collaborator read failures.

    Attributes:
        source: Which log was being read (e.g. "messages", "stage_events")
    """

    source: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["source"] = self.source


@dataclass
class SourceUnavailableError(SourceError):
    """Raised when a log cannot be read at all (missing table, missing file)."""

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Source unavailable: {self.source}"
            if self.reason:
                self.message += f" ({self.reason})"
        if self.code == 0:
            self.code = ERROR_SOURCE_UNAVAILABLE
        super().__post_init__()
        self.context["reason"] = self.reason


@dataclass
class SourceFormatError(SourceError):
    """Raised when a log exists but its rows cannot be parsed."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Malformed {self.source} data: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_SOURCE_FORMAT
        if not self.suggestion:
            self.suggestion = "Re-dump the session or fix the offending rows"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Asset Errors
# =============================================================================


@dataclass
class AssetFetchError(StageReplayError):
    """
    Raised by a fetcher for an unexpected failure on one URL.

    The virtualizer records this as a failed fetch; it never aborts an export.
    """

    url: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to fetch {self.url}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_ASSET_FETCH_FAILED
        self.context.update({
            "url": self.url,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Bundle Errors
# =============================================================================


@dataclass
class BundleError(StageReplayError):
    """
    Base class for bundle errors.

    Attributes:
        path: Archive or directory involved, if any
    """

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["path"] = self.path


@dataclass
class BundleSerializationError(BundleError):
    """Raised when the data file cannot be serialized. Fatal to the export."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Could not serialize replay data: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BUNDLE_SERIALIZATION
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class BundleWriteError(BundleError):
    """Raised when the archive cannot be written."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Could not write bundle {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BUNDLE_WRITE
        if not self.suggestion:
            self.suggestion = "Check that the output directory exists and is writable"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class BundleLoadError(BundleError):
    """Raised when a bundle is missing or its data file is malformed."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Could not load bundle {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_BUNDLE_LOAD
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Player Errors
# =============================================================================


@dataclass
class PlayerError(StageReplayError):
    """Base class for player errors."""

    state: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["state"] = self.state


@dataclass
class PlayerStateError(PlayerError):
    """Raised when a transition is not valid in the current state."""

    action: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot {self.action} while in state {self.state}"
        if self.code == 0:
            self.code = ERROR_PLAYER_STATE
        super().__post_init__()
        self.context["action"] = self.action


@dataclass
class SaveSlotRangeError(PlayerError):
    """Raised when a save slot index is outside [0, slot_count)."""

    index: int = 0
    slot_count: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Save slot {self.index} out of range (0..{self.slot_count - 1})"
        if self.code == 0:
            self.code = ERROR_SAVE_SLOT_RANGE
        super().__post_init__()
        self.context.update({
            "index": self.index,
            "slot_count": self.slot_count,
        })


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(StageReplayError):
    """
    Base class for local store errors.

    Attributes:
        operation: The operation that failed (e.g., "get", "set")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when the store cannot be opened."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to open local store: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the store path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Store write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Store read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
