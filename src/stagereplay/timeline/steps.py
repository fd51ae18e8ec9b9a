"""
The Step fold.

Replays an ordered merged event sequence into render-worthy Steps. Both the
exporter (for reporting and bookmark resolution) and the player (for
playback) derive their steps with this one function, so a bundle folds to
the same sequence wherever it is opened.

Fold state carried forward across events:
    - current background and portraits
    - secret flag, its allow-list and the current segment number
    - background music in force (``[bgm:]`` commands, ``stop`` clears it)

Steps are never persisted; only the events are.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from stagereplay.commands import BGM_STOP, scan_audio, strip_commands
from stagereplay.schema import (
    BundleData,
    EventType,
    MergedEvent,
    PortraitPlacement,
    SlotSnapshot,
    parse_portraits,
)

# Speaker name of the live tool's internal messages; never shown in playback.
SYSTEM_SPEAKER = "システム"


class StepKind(str, Enum):
    """Kinds of steps."""

    MESSAGE = "message"
    SECRET_PROMPT = "secret_prompt"


@dataclass(frozen=True)
class StepMessage:
    """Message payload of a message step."""

    id: str
    speaker: str
    text: str
    kind: str
    channel: str
    portrait_url: str | None = None
    dice_payload: dict[str, Any] | None = None

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "StepMessage":
        dice = data.get("dicePayload")
        return cls(
            id=str(data.get("id") or ""),
            speaker=str(data.get("speaker") or ""),
            text=data.get("text") if isinstance(data.get("text"), str) else "",
            kind=str(data.get("type") or "speech"),
            channel=str(data.get("channel") or "public"),
            portrait_url=data.get("portraitUrl"),
            dice_payload=dice if isinstance(dice, dict) else None,
        )


@dataclass(frozen=True)
class Step:
    """
    One point of the replayed timeline.

    Attributes:
        index: Position in the step sequence
        kind: message or secret_prompt
        timestamp: Timestamp of the originating event
        background: Background in force
        portraits: Portraits in force
        secret_active: Whether a secret segment is active
        secret_allow_list: Allow-list of the active (or prompted) segment
        segment: Secret segment number, None outside segments
        message: Message payload for message steps
        display_text: Message text with commands stripped
        bgm: Background music in force after this step
        sounds: One-shot sounds fired by this step
        visible: Whether playback stops on this step
    """

    index: int
    kind: StepKind
    timestamp: datetime
    background: str | None
    portraits: tuple[PortraitPlacement, ...]
    secret_active: bool
    secret_allow_list: tuple[str, ...]
    segment: int | None
    message: StepMessage | None = None
    display_text: str = ""
    bgm: str | None = None
    sounds: tuple[str, ...] = ()
    visible: bool = False

    @property
    def is_prompt(self) -> bool:
        return self.kind == StepKind.SECRET_PROMPT

    def snapshot(self) -> SlotSnapshot:
        """Stage snapshot stored with a save slot."""
        return SlotSnapshot(background=self.background, portraits=list(self.portraits))


def _is_visible(message: StepMessage, display_text: str) -> bool:
    if message.speaker == SYSTEM_SPEAKER:
        return False
    return bool(display_text) or message.dice_payload is not None


def build_steps(
    events: Iterable[MergedEvent],
    initial_background: str | None = None,
    initial_portraits: Sequence[PortraitPlacement] = (),
) -> list[Step]:
    """
    Fold merged events into steps.

    A secretPrompt marker opens a new segment and yields a prompt step. A
    rising secret transition without a preceding marker opens one too, so
    hand-assembled event lists fold the same way as exported ones.

    Args:
        events: Ordered merged events
        initial_background: Background before the first event
        initial_portraits: Portraits before the first event

    Returns:
        The step sequence
    """
    steps: list[Step] = []
    background = initial_background
    portraits = tuple(initial_portraits)
    secret_active = False
    allow_list: tuple[str, ...] = ()
    segment: int | None = None
    segment_count = 0
    prompt_pending = False
    bgm: str | None = None

    def open_segment(event: MergedEvent, prompt_allow: tuple[str, ...]) -> None:
        nonlocal segment_count
        steps.append(
            Step(
                index=len(steps),
                kind=StepKind.SECRET_PROMPT,
                timestamp=event.timestamp,
                background=background,
                portraits=portraits,
                secret_active=False,
                secret_allow_list=prompt_allow,
                segment=segment_count,
                bgm=bgm,
            )
        )
        segment_count += 1

    for event in events:
        data = event.data or {}
        if event.type == EventType.BACKGROUND:
            url = data.get("url")
            background = url if isinstance(url, str) and url else None
        elif event.type == EventType.PORTRAITS:
            portraits = tuple(parse_portraits(data.get("portraits")))
        elif event.type == EventType.SECRET_PROMPT:
            open_segment(event, _allow_list(data))
            prompt_pending = True
        elif event.type == EventType.SECRET:
            next_active = data.get("isSecret") is True or data.get("is_secret") is True
            if next_active and not secret_active:
                if not prompt_pending:
                    open_segment(event, _allow_list(data))
                segment = segment_count - 1
            elif not next_active:
                segment = None
            prompt_pending = False
            secret_active = next_active
            allow_list = _allow_list(data) if next_active else ()
        elif event.type == EventType.MESSAGE:
            message = StepMessage.from_data(data)
            bgm_command, sounds = scan_audio(message.text)
            if bgm_command == BGM_STOP:
                bgm = None
            elif bgm_command is not None:
                bgm = bgm_command
            display_text = strip_commands(message.text)
            steps.append(
                Step(
                    index=len(steps),
                    kind=StepKind.MESSAGE,
                    timestamp=event.timestamp,
                    background=background,
                    portraits=portraits,
                    secret_active=secret_active,
                    secret_allow_list=allow_list,
                    segment=segment,
                    message=message,
                    display_text=display_text,
                    bgm=bgm,
                    sounds=tuple(sounds),
                    visible=_is_visible(message, display_text),
                )
            )
    return steps


def build_bundle_steps(data: BundleData) -> list[Step]:
    """Fold the events of a bundle from its initial stage snapshot."""
    return build_steps(data.events, data.initial_background, data.initial_portraits)


def step_index_for_message(steps: Sequence[Step], message_id: str) -> int | None:
    """Index of the step carrying a message, or None if it is not in the timeline."""
    for step in steps:
        if step.message is not None and step.message.id == message_id:
            return step.index
    return None


def segment_end(steps: Sequence[Step], prompt_index: int) -> int:
    """
    First index after a prompt that lies outside the prompted segment.

    Returns len(steps) when the segment runs to the end.
    """
    segment = steps[prompt_index].segment
    for index in range(prompt_index + 1, len(steps)):
        if steps[index].segment != segment:
            return index
    return len(steps)


def _allow_list(data: dict[str, Any]) -> tuple[str, ...]:
    raw = data.get("secretAllowList", data.get("secret_allow_list"))
    return tuple(str(x) for x in raw) if isinstance(raw, list) else ()
