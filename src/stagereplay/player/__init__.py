"""
Replay player.

The player is a pure state machine over the steps of a loaded bundle.
Transitions (``stagereplay.player.machine``) return a new PlayerContext and
the effects a presentation performs; ``TerminalPlayer`` is the Rich
presentation used by ``stagereplay play``. The bundle's own replay.js
implements the same machine in the browser.

Example:
    from stagereplay.player import machine, SaveSlotStore
    from stagereplay.store import MemoryStore

    ctx, effects = machine.open_player(data)
    ctx, effects = machine.advance(ctx)
    ctx, effects = machine.save_slot(ctx, SaveSlotStore.for_bundle(MemoryStore(), data), 0)
"""

from stagereplay.player import machine
from stagereplay.player.context import (
    BacklogEntry,
    BacklogGroup,
    Choice,
    PlayerContext,
    PlayerState,
)
from stagereplay.player.dice import format_dice
from stagereplay.player.slots import SaveSlotStore
from stagereplay.player.terminal import TerminalPlayer

__all__ = [
    "BacklogEntry",
    "BacklogGroup",
    "Choice",
    "PlayerContext",
    "PlayerState",
    "SaveSlotStore",
    "TerminalPlayer",
    "format_dice",
    "machine",
]
