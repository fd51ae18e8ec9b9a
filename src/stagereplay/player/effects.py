"""
Player effects.

Transitions describe what should happen on screen and in the speakers as a
tuple of effects. A rendering adapter (see ``stagereplay.player.terminal``)
performs them in order.
"""

from dataclasses import dataclass

from stagereplay.schema import Bookmark, SaveSlot, TitleScreenDescriptor
from stagereplay.timeline.steps import Step


@dataclass(frozen=True)
class ShowStep:
    """Render a message step."""

    step: Step
    text: str


@dataclass(frozen=True)
class ShowSecretPrompt:
    """Ask whether to view the upcoming secret segment."""

    step: Step
    viewer_names: tuple[str, ...]


@dataclass(frozen=True)
class ShowTitle:
    title: TitleScreenDescriptor


@dataclass(frozen=True)
class ShowEnd:
    pass


@dataclass(frozen=True)
class ShowError:
    message: str


@dataclass(frozen=True)
class PickerBookmark:
    """A bookmark that resolves to a step of this bundle."""

    bookmark: Bookmark
    step_index: int


@dataclass(frozen=True)
class ShowPicker:
    """
    Offer save slots and bookmarks to load.

    ``slots`` has one entry per slot; empty slots are None.
    """

    slots: tuple[SaveSlot | None, ...]
    bookmarks: tuple[PickerBookmark, ...]


@dataclass(frozen=True)
class PlayBgm:
    url: str


@dataclass(frozen=True)
class StopBgm:
    pass


@dataclass(frozen=True)
class PlaySe:
    url: str


@dataclass(frozen=True)
class StartTimer:
    """Start a repeating timer that calls ``tick(ctx, handle)``."""

    handle: int
    interval_ms: int


@dataclass(frozen=True)
class CancelTimer:
    handle: int


@dataclass(frozen=True)
class Notice:
    """Transient message for the viewer."""

    message: str


Effect = (
    ShowStep
    | ShowSecretPrompt
    | ShowTitle
    | ShowEnd
    | ShowError
    | ShowPicker
    | PlayBgm
    | StopBgm
    | PlaySe
    | StartTimer
    | CancelTimer
    | Notice
)
