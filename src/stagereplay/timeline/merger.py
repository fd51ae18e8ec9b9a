"""
Timeline merger.

Reconciles the message log and the stage transition log into one ordered,
viewer-filtered sequence of MergedEvent entries.

Merge Rules:
    1. Each stream is stable-sorted by timestamp (recorded order breaks ties)
    2. The streams are merged with a two-pointer merge
    3. On equal timestamps a transition is ordered BEFORE a message, so a
       message always sees the stage that was active when it was sent
    4. Secret messages the viewer may not see are dropped here, before any
       later stage can touch them
    5. A secretPrompt marker is synthesized at every rising edge of the
       secret flag, immediately before the transition that raised it

Transition Source Selection:
    authoritative log -> local fallback cache -> none (static snapshot)
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from stagereplay.schema import (
    EventType,
    MergedEvent,
    MessageEvent,
    TransitionEvent,
    TransitionSource,
    TransitionType,
    ViewerConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class Timeline:
    """
    Result of merging the session logs.

    Attributes:
        events: Ordered merged events
        transition_source: Where the transitions came from
        kept_messages: Messages included for the viewer
        dropped_messages: Secret messages excluded for the viewer
        message_ids: Ids of the included messages
    """

    events: list[MergedEvent]
    transition_source: TransitionSource
    kept_messages: int = 0
    dropped_messages: int = 0
    message_ids: set[str] = field(default_factory=set)

    @property
    def has_transitions(self) -> bool:
        """Whether any stage transition made it into the timeline."""
        return any(e.type.is_transition for e in self.events)


def select_transitions(
    log: Sequence[TransitionEvent] | None,
    cache: Sequence[TransitionEvent],
) -> tuple[list[TransitionEvent], TransitionSource]:
    """
    Pick the transition stream to replay.

    Args:
        log: The authoritative log, or None when it was unavailable
        cache: Transitions recorded locally during the live session

    Returns:
        (transitions, source)
    """
    if log:
        return list(log), TransitionSource.LOG
    if cache:
        logger.warning(
            "Transition log %s; using %d locally cached transitions",
            "unavailable" if log is None else "empty",
            len(cache),
        )
        return list(cache), TransitionSource.CACHE
    logger.warning("No stage transitions recorded; replay uses the static stage snapshot")
    return [], TransitionSource.NONE


def filter_messages(
    messages: Iterable[MessageEvent],
    viewer: ViewerConfig,
) -> tuple[list[MessageEvent], int]:
    """
    Drop the secret messages the viewer is not allowed to see.

    Returns:
        (kept messages in input order, number dropped)
    """
    kept: list[MessageEvent] = []
    dropped = 0
    for message in messages:
        if viewer.can_see(message):
            kept.append(message)
        else:
            dropped += 1
    if dropped:
        logger.info("Excluded %d secret messages from the export", dropped)
    return kept, dropped


def transition_events(transitions: Iterable[TransitionEvent]) -> list[MergedEvent]:
    """
    Convert transitions to merged events and insert secret prompt markers.

    The secret flag starts inactive; every inactive -> active change gets a
    secretPrompt marker carrying the allow-list that became active.
    """
    events: list[MergedEvent] = []
    secret_active = False
    for transition in _stable_sorted(transitions):
        if transition.type == TransitionType.SECRET:
            rising = transition.is_secret and not secret_active
            if rising:
                events.append(
                    MergedEvent(
                        timestamp=transition.timestamp,
                        type=EventType.SECRET_PROMPT,
                        data={"secretAllowList": transition.allow_list},
                    )
                )
            secret_active = transition.is_secret
        events.append(
            MergedEvent(
                timestamp=transition.timestamp,
                type=EventType(transition.type.value),
                data=transition.to_event_data(),
            )
        )
    return events


def message_events(messages: Iterable[MessageEvent]) -> list[MergedEvent]:
    """Convert messages to merged events."""
    return [
        MergedEvent(
            timestamp=message.timestamp,
            type=EventType.MESSAGE,
            data=message.to_event_data(),
        )
        for message in _stable_sorted(messages)
    ]


def merge_streams(
    transitions: Sequence[MergedEvent],
    messages: Sequence[MergedEvent],
) -> list[MergedEvent]:
    """
    Two-pointer merge of two timestamp-ordered streams.

    A transition wins every tie against a message.
    """
    merged: list[MergedEvent] = []
    i = 0
    j = 0
    while i < len(transitions) and j < len(messages):
        if transitions[i].timestamp <= messages[j].timestamp:
            merged.append(transitions[i])
            i += 1
        else:
            merged.append(messages[j])
            j += 1
    merged.extend(transitions[i:])
    merged.extend(messages[j:])
    return merged


def order_events(events: Iterable[MergedEvent]) -> list[MergedEvent]:
    """
    Order an arbitrary mix of merged events with the merge rules.

    Transitions keep their relative order, messages keep theirs.
    """
    events = list(events)
    transitions = _stable_sorted(e for e in events if e.type.is_transition)
    messages = _stable_sorted(e for e in events if not e.type.is_transition)
    return merge_streams(transitions, messages)


def merge_timeline(
    messages: Iterable[MessageEvent],
    transitions: Sequence[TransitionEvent] | None,
    viewer: ViewerConfig,
    fallback: Sequence[TransitionEvent] = (),
) -> Timeline:
    """
    Build the viewer's timeline from the session logs.

    Args:
        messages: The message log
        transitions: The authoritative transition log, None if unavailable
        viewer: Confidentiality scope of the export
        fallback: Locally cached transitions

    Returns:
        Timeline with the ordered events and bookkeeping
    """
    selected, source = select_transitions(transitions, fallback)
    kept, dropped = filter_messages(messages, viewer)
    events = merge_streams(transition_events(selected), message_events(kept))
    logger.debug(
        "Merged %d transitions (%s) and %d messages into %d events",
        len(selected),
        source.value,
        len(kept),
        len(events),
    )
    return Timeline(
        events=events,
        transition_source=source,
        kept_messages=len(kept),
        dropped_messages=dropped,
        message_ids={m.id for m in kept},
    )


def _stable_sorted(items):
    return sorted(items, key=lambda item: item.timestamp)
