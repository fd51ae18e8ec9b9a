"""
Player context.

The player's whole state is one immutable PlayerContext. Transition functions
in ``stagereplay.player.machine`` take a context and return a new one plus
the effects a presentation must perform; nothing else is mutated.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from stagereplay.schema import BundleData, TitleScreenDescriptor
from stagereplay.timeline.steps import Step

DEFAULT_AUTOPLAY_INTERVAL_MS = 3000


class PlayerState(str, Enum):
    """States of the player automaton."""

    TITLE_SCREEN = "title_screen"
    PLAYING = "playing"
    SECRET_PROMPT = "secret_prompt"
    END = "end"
    FAILED = "failed"


class Choice(str, Enum):
    """Answers to a secret prompt."""

    VIEW = "view"
    SKIP = "skip"


@dataclass(frozen=True)
class PlayerContext:
    """
    Immutable player state.

    Attributes:
        data: The loaded bundle; None when the bundle failed to load
        steps: Steps folded from the bundle's events
        state: Current automaton state
        cursor: Index of the current step; -1 before playback starts and
            len(steps) at the end
        viewed: Secret segments the viewer chose to view
        autoplay: Whether autoplay is on
        timer_handle: Handle of the live autoplay timer
        next_handle: Handle the next timer will get
        autoplay_interval_ms: Autoplay period
        bgm: Background music currently playing (title or session)
        error: Load error shown in the FAILED state
    """

    data: BundleData | None
    steps: tuple[Step, ...] = ()
    state: PlayerState = PlayerState.PLAYING
    cursor: int = -1
    viewed: frozenset[int] = frozenset()
    autoplay: bool = False
    timer_handle: int | None = None
    next_handle: int = 1
    autoplay_interval_ms: int = DEFAULT_AUTOPLAY_INTERVAL_MS
    bgm: str | None = None
    error: str | None = None

    @property
    def current_step(self) -> Step | None:
        if 0 <= self.cursor < len(self.steps):
            return self.steps[self.cursor]
        return None

    @property
    def title_screen(self) -> TitleScreenDescriptor | None:
        """The bundle's title screen, if it has anything to show."""
        if self.data is None or self.data.title_screen is None:
            return None
        return self.data.title_screen if self.data.title_screen.has_content else None

    @property
    def participant_names(self) -> dict[str, str]:
        if self.data is None:
            return {}
        return {p.id: p.name for p in self.data.participants}

    def evolve(self, **changes: Any) -> "PlayerContext":
        """Copy with changes applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class BacklogEntry:
    """A line of the backlog."""

    step_index: int
    speaker: str
    text: str
    secret: bool = False


@dataclass(frozen=True)
class BacklogGroup:
    """Consecutive secret lines, collapsed together in the backlog."""

    entries: tuple[BacklogEntry, ...] = field(default_factory=tuple)
