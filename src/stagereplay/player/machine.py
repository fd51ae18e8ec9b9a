"""
Player state machine.

Every operation is a pure function ``f(ctx, ...) -> (ctx, effects)``. The
functions never touch a screen, a speaker or a clock except through the
effects they return (and the SaveSlotStore they are handed), so a replay
behaves the same on every run and in every presentation.

State Flow:
    TITLE_SCREEN (only when the bundle has a title screen)
        -> PLAYING <-> SECRET_PROMPT
        -> END
    END is left only by a load or by ``retreat``,
    which steps back to the last message like the page player's previous
    key. ``advance``, ``tick`` and autoplay do nothing there.
    FAILED when the bundle could not be loaded

Secret Segments:
    Every secret segment begins with a prompt step. Playback halts on a
    prompt until the viewer chooses. VIEW records the segment as viewed and
    continues into it; SKIP jumps past it and records nothing, so the next
    segment prompts again.

Autoplay:
    Turning autoplay on emits StartTimer with a fresh handle. ``tick`` only
    acts on the live handle. Any manual transition, a prompt, the end and
    the title screen cancel the timer.

Audio:
    Each step knows the background music in force. Moving to a step emits
    PlayBgm/StopBgm when that differs from what is playing, and PlaySe for
    every step passed over on the way. The title screen's music replaces the
    session's while it is shown.
"""

import logging
from datetime import UTC, datetime

from stagereplay.errors import PlayerStateError
from stagereplay.player.context import (
    DEFAULT_AUTOPLAY_INTERVAL_MS,
    BacklogEntry,
    BacklogGroup,
    Choice,
    PlayerContext,
    PlayerState,
)
from stagereplay.player.dice import format_dice
from stagereplay.player.effects import (
    CancelTimer,
    Effect,
    Notice,
    PickerBookmark,
    PlayBgm,
    PlaySe,
    ShowEnd,
    ShowError,
    ShowPicker,
    ShowSecretPrompt,
    ShowStep,
    ShowTitle,
    StartTimer,
    StopBgm,
)
from stagereplay.player.slots import SaveSlotStore
from stagereplay.schema import BundleData, SaveSlot
from stagereplay.timeline.steps import Step, build_bundle_steps, segment_end, step_index_for_message

logger = logging.getLogger(__name__)

Transition = tuple[PlayerContext, tuple[Effect, ...]]


# =============================================================================
# Helpers
# =============================================================================


def step_text(step: Step) -> str:
    """Text shown for a message step: the roll for dice messages, else the stripped text."""
    if step.message is not None and step.message.dice_payload is not None:
        return format_dice(step.message.dice_payload)
    return step.display_text


def _set_bgm(ctx: PlayerContext, url: str | None, effects: list[Effect]) -> PlayerContext:
    if url == ctx.bgm:
        return ctx
    effects.append(PlayBgm(url) if url else StopBgm())
    return ctx.evolve(bgm=url)


def _cancel_autoplay(ctx: PlayerContext, effects: list[Effect]) -> PlayerContext:
    if not ctx.autoplay:
        return ctx
    if ctx.timer_handle is not None:
        effects.append(CancelTimer(ctx.timer_handle))
    return ctx.evolve(autoplay=False, timer_handle=None)


def _enter_title(ctx: PlayerContext, effects: list[Effect]) -> PlayerContext:
    title = ctx.title_screen
    effects.append(ShowTitle(title))
    ctx = _set_bgm(ctx, title.bgm_url, effects)
    return ctx.evolve(state=PlayerState.TITLE_SCREEN)


def _seek(ctx: PlayerContext, start: int, effects: list[Effect]) -> PlayerContext:
    """
    Move forward from ``start`` to the next place playback stops.

    Stops at the first visible step, or at a prompt of an unviewed segment.
    Steps of an unviewed segment entered without its prompt are passed over.
    """
    steps = ctx.steps
    i = max(start, 0)
    while i < len(steps):
        step = steps[i]
        if step.is_prompt:
            if step.segment in ctx.viewed:
                i += 1
                continue
            ctx = _set_bgm(ctx, step.bgm, effects)
            ctx = _cancel_autoplay(ctx, effects)
            names = ctx.participant_names
            effects.append(
                ShowSecretPrompt(step, tuple(names.get(pid, pid) for pid in step.secret_allow_list))
            )
            return ctx.evolve(state=PlayerState.SECRET_PROMPT, cursor=i)
        if step.segment is not None and step.segment not in ctx.viewed:
            i = segment_end(steps, i)
            continue
        ctx = _set_bgm(ctx, step.bgm, effects)
        effects.extend(PlaySe(url) for url in step.sounds)
        if step.visible:
            effects.append(ShowStep(step, step_text(step)))
            return ctx.evolve(state=PlayerState.PLAYING, cursor=i)
        i += 1

    ctx = _cancel_autoplay(ctx, effects)
    effects.append(ShowEnd())
    return ctx.evolve(state=PlayerState.END, cursor=len(steps))


def _jump(ctx: PlayerContext, target: int, effects: list[Effect]) -> PlayerContext:
    """
    Resume playback at ``target``.

    Decisions are reset. The segment containing the target counts as viewed,
    so a target on a prompt (or inside a segment) does not prompt again.
    """
    ctx = _cancel_autoplay(ctx, effects)
    step = ctx.steps[target]
    viewed = frozenset({step.segment}) if step.segment is not None else frozenset()
    ctx = ctx.evolve(viewed=viewed)
    return _seek(ctx, target + 1 if step.is_prompt else target, effects)


# =============================================================================
# Opening
# =============================================================================


def open_player(
    data: BundleData,
    autoplay_interval_ms: int = DEFAULT_AUTOPLAY_INTERVAL_MS,
) -> Transition:
    """
    Open a loaded bundle.

    Shows the title screen when the bundle has one, otherwise starts
    playback at the first visible step.
    """
    ctx = PlayerContext(
        data=data,
        steps=tuple(build_bundle_steps(data)),
        state=PlayerState.TITLE_SCREEN,
        autoplay_interval_ms=autoplay_interval_ms,
    )
    effects: list[Effect] = []
    if ctx.title_screen is not None:
        ctx = _enter_title(ctx, effects)
    else:
        ctx = _seek(ctx, 0, effects)
    logger.debug("Opened replay with %d steps in state %s", len(ctx.steps), ctx.state.value)
    return ctx, tuple(effects)


def open_failed(message: str) -> Transition:
    """Player for a bundle that could not be loaded: shows the error, nothing else."""
    ctx = PlayerContext(data=None, state=PlayerState.FAILED, error=message)
    return ctx, (ShowError(message),)


def start(ctx: PlayerContext) -> Transition:
    """Leave the title screen, resuming where playback left off (or at the beginning)."""
    if ctx.state != PlayerState.TITLE_SCREEN:
        raise PlayerStateError(state=ctx.state.value, action="start")
    effects: list[Effect] = []
    ctx = _seek(ctx, max(ctx.cursor, 0), effects)
    return ctx, tuple(effects)


def return_to_title(ctx: PlayerContext) -> Transition:
    """Show the title screen again; ``start`` resumes at the current step."""
    if ctx.title_screen is None:
        raise PlayerStateError(state=ctx.state.value, action="return to title")
    if ctx.state in (PlayerState.TITLE_SCREEN, PlayerState.FAILED):
        return ctx, ()
    effects: list[Effect] = []
    ctx = _cancel_autoplay(ctx, effects)
    ctx = _enter_title(ctx, effects)
    return ctx, tuple(effects)


# =============================================================================
# Navigation
# =============================================================================


def advance(ctx: PlayerContext) -> Transition:
    """Next visible step. Does nothing outside PLAYING (a prompt needs a choice)."""
    if ctx.state != PlayerState.PLAYING:
        return ctx, ()
    effects: list[Effect] = []
    ctx = _cancel_autoplay(ctx, effects)
    ctx = _seek(ctx, ctx.cursor + 1, effects)
    return ctx, tuple(effects)


def choose(ctx: PlayerContext, choice: Choice | str) -> Transition:
    """
    Answer the secret prompt.

    Raises:
        PlayerStateError: If no prompt is showing
    """
    choice = Choice(choice)
    if ctx.state != PlayerState.SECRET_PROMPT:
        raise PlayerStateError(state=ctx.state.value, action=f"choose {choice.value}")
    prompt = ctx.steps[ctx.cursor]
    effects: list[Effect] = []
    if choice == Choice.VIEW:
        ctx = ctx.evolve(viewed=ctx.viewed | {prompt.segment})
        ctx = _seek(ctx, ctx.cursor + 1, effects)
    else:
        ctx = _seek(ctx, segment_end(ctx.steps, ctx.cursor), effects)
    return ctx, tuple(effects)


def retreat(ctx: PlayerContext) -> Transition:
    """Back to the previous visible step, never into a segment that was not viewed."""
    if ctx.state not in (PlayerState.PLAYING, PlayerState.SECRET_PROMPT, PlayerState.END):
        return ctx, ()
    effects: list[Effect] = []
    ctx = _cancel_autoplay(ctx, effects)
    for i in range(min(ctx.cursor, len(ctx.steps)) - 1, -1, -1):
        step = ctx.steps[i]
        if step.is_prompt or not step.visible:
            continue
        if step.segment is not None and step.segment not in ctx.viewed:
            continue
        ctx = _set_bgm(ctx, step.bgm, effects)
        effects.append(ShowStep(step, step_text(step)))
        return ctx.evolve(state=PlayerState.PLAYING, cursor=i), tuple(effects)
    effects.append(Notice("Already at the first message"))
    return ctx, tuple(effects)


def jump_to(ctx: PlayerContext, step_index: int) -> Transition:
    """Resume at a step picked from the backlog."""
    if ctx.state == PlayerState.FAILED:
        return ctx, ()
    if not 0 <= step_index < len(ctx.steps):
        return ctx, (Notice(f"No step {step_index} in this replay"),)
    effects: list[Effect] = []
    ctx = _jump(ctx, step_index, effects)
    return ctx, tuple(effects)


# =============================================================================
# Autoplay
# =============================================================================


def toggle_autoplay(ctx: PlayerContext) -> Transition:
    """Turn autoplay on (PLAYING only) or off."""
    effects: list[Effect] = []
    if ctx.autoplay:
        ctx = _cancel_autoplay(ctx, effects)
        return ctx, tuple(effects)
    if ctx.state != PlayerState.PLAYING:
        return ctx, ()
    handle = ctx.next_handle
    ctx = ctx.evolve(autoplay=True, timer_handle=handle, next_handle=handle + 1)
    return ctx, (StartTimer(handle, ctx.autoplay_interval_ms),)


def tick(ctx: PlayerContext, handle: int) -> Transition:
    """Autoplay timer fired. Ticks of cancelled timers are ignored."""
    if not ctx.autoplay or handle != ctx.timer_handle or ctx.state != PlayerState.PLAYING:
        return ctx, ()
    effects: list[Effect] = []
    ctx = _seek(ctx, ctx.cursor + 1, effects)
    return ctx, tuple(effects)


# =============================================================================
# Save / Load
# =============================================================================


def save_slot(
    ctx: PlayerContext,
    slots: SaveSlotStore,
    index: int,
    now: datetime | None = None,
) -> Transition:
    """
    Save the current step to a slot.

    Raises:
        SaveSlotRangeError: If index is outside [0, slot_count)
        PlayerStateError: If there is no current step to save
    """
    slots.check_index(index)
    step = ctx.current_step
    if ctx.state not in (PlayerState.PLAYING, PlayerState.SECRET_PROMPT) or step is None:
        raise PlayerStateError(state=ctx.state.value, action="save")
    slots.write(
        SaveSlot(
            index=index,
            step_index=ctx.cursor,
            saved_at=now or datetime.now(UTC),
            snapshot=step.snapshot(),
        )
    )
    return ctx, (Notice(f"Saved to slot {index + 1}"),)


def open_load_picker(ctx: PlayerContext, slots: SaveSlotStore) -> Transition:
    """List the save slots and the bookmarks that resolve to a step."""
    if ctx.state == PlayerState.FAILED or ctx.data is None:
        return ctx, ()
    effects: list[Effect] = []
    ctx = _cancel_autoplay(ctx, effects)
    bookmarks = []
    for bookmark in ctx.data.markups:
        index = step_index_for_message(ctx.steps, bookmark.message_id)
        if index is not None:
            bookmarks.append(PickerBookmark(bookmark, index))
    effects.append(ShowPicker(tuple(slots.read_all()), tuple(bookmarks)))
    return ctx, tuple(effects)


def load_slot(ctx: PlayerContext, slots: SaveSlotStore, index: int) -> Transition:
    """
    Resume at a saved step.

    Empty, corrupt and stale slots leave the context unchanged and emit a
    Notice.

    Raises:
        SaveSlotRangeError: If index is outside [0, slot_count)
    """
    slot = slots.read(index)
    if ctx.state == PlayerState.FAILED:
        return ctx, ()
    if slot is None:
        return ctx, (Notice(f"Slot {index + 1} is empty"),)
    if slot.step_index >= len(ctx.steps):
        logger.warning("Save slot %d points past the end of this replay", index)
        return ctx, (Notice(f"Slot {index + 1} does not match this replay"),)
    effects: list[Effect] = []
    ctx = _jump(ctx, slot.step_index, effects)
    effects.append(Notice(f"Loaded slot {index + 1}"))
    return ctx, tuple(effects)


def load_bookmark(ctx: PlayerContext, bookmark_id: str) -> Transition:
    """Resume at a bookmarked message."""
    if ctx.state == PlayerState.FAILED or ctx.data is None:
        return ctx, ()
    bookmark = next((b for b in ctx.data.markups if b.id == bookmark_id), None)
    if bookmark is None:
        return ctx, (Notice(f"Unknown bookmark {bookmark_id}"),)
    index = step_index_for_message(ctx.steps, bookmark.message_id)
    if index is None:
        return ctx, (Notice(f"Bookmark {bookmark.label!r} is not part of this replay"),)
    effects: list[Effect] = []
    ctx = _jump(ctx, index, effects)
    return ctx, tuple(effects)


# =============================================================================
# Backlog
# =============================================================================


def backlog(ctx: PlayerContext) -> tuple[BacklogEntry | BacklogGroup, ...]:
    """
    Visible lines up to the current step.

    Consecutive secret lines (secret channel or blind rolls) are grouped so
    a presentation can collapse them.
    """
    items: list[BacklogEntry | BacklogGroup] = []
    group: list[BacklogEntry] = []
    last = min(ctx.cursor, len(ctx.steps) - 1)
    for step in ctx.steps[: last + 1]:
        if not step.visible or step.message is None:
            continue
        dice = step.message.dice_payload
        secret = step.message.channel == "secret" or bool(dice and dice.get("blind"))
        entry = BacklogEntry(step.index, step.message.speaker, step_text(step), secret)
        if secret:
            group.append(entry)
            continue
        if group:
            items.append(BacklogGroup(tuple(group)))
            group = []
        items.append(entry)
    if group:
        items.append(BacklogGroup(tuple(group)))
    return tuple(items)
