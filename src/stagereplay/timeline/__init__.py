"""Timeline merge and the Step fold."""

from stagereplay.timeline.merger import Timeline, merge_timeline, order_events
from stagereplay.timeline.steps import (
    SYSTEM_SPEAKER,
    Step,
    StepKind,
    StepMessage,
    build_bundle_steps,
    build_steps,
    segment_end,
    step_index_for_message,
)

__all__ = [
    "SYSTEM_SPEAKER",
    "Step",
    "StepKind",
    "StepMessage",
    "Timeline",
    "build_bundle_steps",
    "build_steps",
    "merge_timeline",
    "order_events",
    "segment_end",
    "step_index_for_message",
]
