"""
Terminal player.

A Rich rendering adapter for the player state machine. It feeds commands
typed by the viewer into the transition functions and performs the effects
they return: panels for steps and prompts, one-line notes for audio, a table
for the load picker.

Commands:
    Enter / n   next message (or start, on the title screen)
    b           previous message
    v / s       view or skip a secret scene
    a           toggle autoplay (Ctrl-C stops it)
    l           backlog
    w N         save to slot N
    r           list save slots and bookmarks
    r N         load slot N
    m ID        jump to bookmark ID
    j N         jump to step N
    t           title screen
    q           quit
"""

import logging
import time
from collections.abc import Callable, Iterable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from stagereplay.errors import StageReplayError
from stagereplay.player import machine
from stagereplay.player.context import BacklogGroup, Choice, PlayerContext, PlayerState
from stagereplay.player.effects import (
    CancelTimer,
    Effect,
    Notice,
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

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "[dim]Enter[/dim] next  [dim]b[/dim] back  [dim]v/s[/dim] view/skip  "
    "[dim]a[/dim] auto  [dim]l[/dim] log  [dim]w N[/dim] save  [dim]r [N][/dim] load  "
    "[dim]m ID[/dim] bookmark  [dim]j N[/dim] jump  [dim]t[/dim] title  [dim]q[/dim] quit"
)


class TerminalPlayer:
    """
    Interactive replay in the terminal.

    Usage:
        ctx, effects = machine.open_player(bundle.data, bundle.player.autoplay_interval_ms)
        player = TerminalPlayer(ctx, slots)
        player.perform(effects)
        player.run()

    Attributes:
        ctx: Current player context
        slots: Save slots for this bundle
        timer: Handle of the autoplay timer the adapter is running, if any
    """

    def __init__(
        self,
        ctx: PlayerContext,
        slots: SaveSlotStore | None = None,
        console: Console | None = None,
        read_line: Callable[[str], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ctx = ctx
        self.slots = slots
        self.console = console or Console()
        self._read_line = read_line or (lambda prompt: self.console.input(prompt))
        self._sleep = sleep
        self.timer: int | None = None
        self.timer_interval_ms = 0

    # =========================================================================
    # Effects
    # =========================================================================

    def apply(self, transition: machine.Transition) -> None:
        """Adopt a transition's context and perform its effects."""
        self.ctx, effects = transition
        self.perform(effects)

    def perform(self, effects: Iterable[Effect]) -> None:
        for effect in effects:
            self._perform_one(effect)

    def _perform_one(self, effect: Effect) -> None:
        console = self.console
        if isinstance(effect, ShowStep):
            self._show_step(effect)
        elif isinstance(effect, ShowSecretPrompt):
            names = ", ".join(effect.viewer_names) or "nobody"
            console.print(
                Panel(
                    f"A secret scene for [bold]{escape(names)}[/bold] follows.\n"
                    "[dim]v[/dim] view it  [dim]s[/dim] skip it",
                    title="Secret",
                    border_style="magenta",
                )
            )
        elif isinstance(effect, ShowTitle):
            labels = ", ".join(image.label for image in effect.title.images)
            body = escape(self.ctx.data.room_name) if self.ctx.data is not None else ""
            if labels:
                body += f"\n[dim]{escape(labels)}[/dim]"
            console.print(Panel(body, title="Title", subtitle="Enter to start", border_style="cyan"))
        elif isinstance(effect, ShowEnd):
            console.print(Panel("End of replay", border_style="dim"))
        elif isinstance(effect, ShowError):
            console.print(Panel(f"[red]{escape(effect.message)}[/red]", title="Cannot play", border_style="red"))
        elif isinstance(effect, ShowPicker):
            self._show_picker(effect)
        elif isinstance(effect, PlayBgm):
            console.print(f"[dim]♪ BGM: {effect.url}[/dim]")
        elif isinstance(effect, StopBgm):
            console.print("[dim]♪ BGM stopped[/dim]")
        elif isinstance(effect, PlaySe):
            console.print(f"[dim]♪ SE: {effect.url}[/dim]")
        elif isinstance(effect, StartTimer):
            self.timer = effect.handle
            self.timer_interval_ms = effect.interval_ms
            console.print("[dim]Autoplay on (Ctrl-C to stop)[/dim]")
        elif isinstance(effect, CancelTimer):
            if self.timer == effect.handle:
                self.timer = None
                console.print("[dim]Autoplay off[/dim]")
        elif isinstance(effect, Notice):
            console.print(f"[yellow]{escape(effect.message)}[/yellow]")

    def _show_step(self, effect: ShowStep) -> None:
        step = effect.step
        speaker = step.message.speaker if step.message else ""
        border = "magenta" if step.segment is not None else "green"
        if step.background:
            self.console.print(f"[dim]Background: {step.background}[/dim]")
        self.console.print(
            Panel(
                escape(effect.text),
                title=escape(speaker),
                title_align="left",
                subtitle=f"{step.index + 1}/{len(self.ctx.steps)}",
                border_style=border,
            )
        )

    def _show_picker(self, effect: ShowPicker) -> None:
        table = Table(title="Load", show_header=True, header_style="bold")
        table.add_column("Slot", justify="right")
        table.add_column("Step", justify="right")
        table.add_column("Saved")
        for index, slot in enumerate(effect.slots):
            if slot is None:
                table.add_row(str(index + 1), "[dim]empty[/dim]", "")
            else:
                table.add_row(str(index + 1), str(slot.step_index), slot.saved_at.strftime("%Y-%m-%d %H:%M"))
        self.console.print(table)
        if effect.bookmarks:
            marks = Table(title="Bookmarks", show_header=True, header_style="bold")
            marks.add_column("ID", style="cyan")
            marks.add_column("Label")
            marks.add_column("Step", justify="right")
            for entry in effect.bookmarks:
                marks.add_row(entry.bookmark.id, entry.bookmark.label, str(entry.step_index))
            self.console.print(marks)

    def show_backlog(self) -> None:
        """Print the backlog; secret lines are grouped under a rule."""
        items = machine.backlog(self.ctx)
        if not items:
            self.console.print("[dim]Backlog is empty[/dim]")
            return
        for item in items:
            if isinstance(item, BacklogGroup):
                self.console.rule("[magenta]secret[/magenta]", style="magenta")
                for entry in item.entries:
                    self.console.print(f"  [dim]{entry.step_index:>4}[/dim] [magenta]{escape(entry.speaker)}[/magenta]: {escape(entry.text)}")
                self.console.rule(style="magenta")
            else:
                self.console.print(f"  [dim]{item.step_index:>4}[/dim] [cyan]{escape(item.speaker)}[/cyan]: {escape(item.text)}")

    # =========================================================================
    # Commands
    # =========================================================================

    def _require_slots(self) -> SaveSlotStore | None:
        if self.slots is None:
            self.console.print("[yellow]Save slots are not available[/yellow]")
        return self.slots

    def dispatch(self, line: str) -> bool:
        """
        Run one command.

        Returns:
            False when the viewer quits
        """
        parts = line.strip().split(maxsplit=1)
        command = parts[0].lower() if parts else ""
        arg = parts[1].strip() if len(parts) > 1 else ""

        if command in ("q", "quit"):
            return False
        try:
            self._dispatch(command, arg)
        except StageReplayError as e:
            self.console.print(f"[red]{escape(e.message)}[/red]")
            if e.suggestion:
                self.console.print(f"[dim]{escape(e.suggestion)}[/dim]")
        except ValueError:
            self.console.print(f"[red]Expected a number, got {escape(repr(arg))}[/red]")
        return True

    def _dispatch(self, command: str, arg: str) -> None:
        ctx = self.ctx
        if command in ("", "n"):
            if ctx.state == PlayerState.TITLE_SCREEN:
                self.apply(machine.start(ctx))
            elif ctx.state == PlayerState.SECRET_PROMPT:
                self.console.print("[yellow]Choose v (view) or s (skip)[/yellow]")
            else:
                self.apply(machine.advance(ctx))
        elif command == "b":
            self.apply(machine.retreat(ctx))
        elif command in ("v", "s"):
            self.apply(machine.choose(ctx, Choice.VIEW if command == "v" else Choice.SKIP))
        elif command == "a":
            self.apply(machine.toggle_autoplay(ctx))
        elif command == "l":
            self.show_backlog()
        elif command == "w":
            slots = self._require_slots()
            if slots is not None:
                self.apply(machine.save_slot(ctx, slots, int(arg) - 1))
        elif command == "r":
            slots = self._require_slots()
            if slots is None:
                return
            if arg:
                self.apply(machine.load_slot(ctx, slots, int(arg) - 1))
            else:
                self.apply(machine.open_load_picker(ctx, slots))
        elif command == "m":
            self.apply(machine.load_bookmark(ctx, arg))
        elif command == "j":
            self.apply(machine.jump_to(ctx, int(arg)))
        elif command == "t":
            self.apply(machine.return_to_title(ctx))
        elif command in ("?", "h", "help"):
            self.console.print(HELP_TEXT)
        else:
            self.console.print(f"[yellow]Unknown command {escape(repr(command))}[/yellow]  (? for help)")

    # =========================================================================
    # Loop
    # =========================================================================

    def _run_autoplay(self) -> None:
        """Fire ticks until the machine cancels the timer or the viewer interrupts."""
        try:
            while self.timer is not None:
                self._sleep(self.timer_interval_ms / 1000)
                self.apply(machine.tick(self.ctx, self.timer))
        except KeyboardInterrupt:
            self.apply(machine.toggle_autoplay(self.ctx))

    def run(self) -> None:
        """Read commands until the viewer quits or input ends."""
        if self.ctx.state == PlayerState.FAILED:
            return
        self.console.print(HELP_TEXT)
        while True:
            if self.timer is not None:
                self._run_autoplay()
                continue
            try:
                line = self._read_line("> ")
            except (EOFError, KeyboardInterrupt):
                break
            if not self.dispatch(line):
                break
        logger.debug("Player stopped at step %d in state %s", self.ctx.cursor, self.ctx.state.value)
