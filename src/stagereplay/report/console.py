"""
Console report generator for Stagereplay.

Prints a bundle overview with Rich: the room header, a step timeline and a
summary that calls out media the bundle could not capture.

Design Principles:
    - Human-readable first: optimize for quick scanning
    - Secrets at a glance: prompts and secret lines are colored
    - Progressive detail: invisible steps only with verbose
"""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from stagereplay.bundle import LoadedBundle
from stagereplay.report.json import build_report_dict
from stagereplay.timeline import Step, build_bundle_steps

# Step icons
ICON_MESSAGE = "[green]●[/green]"
ICON_PROMPT = "[magenta]?[/magenta]"
ICON_SECRET = "[magenta]●[/magenta]"
ICON_HIDDEN = "[dim]○[/dim]"


def generate_console_report(
    bundle: LoadedBundle,
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a console report for a bundle.

    Args:
        bundle: The loaded bundle
        console: Rich Console instance (creates one if not provided)
        verbose: Whether to list steps playback passes over
    """
    if console is None:
        console = Console()

    report = build_report_dict(bundle, include_steps=False)
    steps = build_bundle_steps(bundle.data)

    _print_header(console, report)
    console.print()
    _print_timeline(console, steps, verbose)
    console.print()
    _print_summary(console, report)


def _print_header(console: Console, report: dict) -> None:
    room = report["room"]
    header = Text()
    header.append(" Replay ", style="bold")
    header.append(room["name"], style="bold cyan")
    if room["id"]:
        header.append(" │ ", style="dim")
        header.append(room["id"], style="dim")
    if room["has_title_screen"]:
        header.append(" │ ", style="dim")
        header.append("TITLE", style="bold magenta")
    console.print(Panel(header, expand=False))
    console.print(f"  [dim]Exported:[/dim] {room['exported_at']}")
    console.print(f"  [dim]Bundle:[/dim]   {escape(report['bundle']['path'])}")


def _print_timeline(console: Console, steps: list[Step], verbose: bool) -> None:
    console.print("[bold]Timeline[/bold]")
    console.print()

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("#", style="dim", width=5, justify="right")
    table.add_column("", width=2, justify="center")
    table.add_column("Speaker", style="cyan", width=16)
    table.add_column("Seg", width=4, justify="right")
    table.add_column("Text", overflow="fold")

    for step in steps:
        if step.is_prompt:
            names = ", ".join(step.secret_allow_list) or "nobody"
            table.add_row(str(step.index), ICON_PROMPT, "", str(step.segment), f"[magenta]secret for {escape(names)}[/magenta]")
            continue
        if not step.visible and not verbose:
            continue
        if not step.visible:
            icon = ICON_HIDDEN
        elif step.segment is not None:
            icon = ICON_SECRET
        else:
            icon = ICON_MESSAGE
        speaker = step.message.speaker if step.message else ""
        segment = "" if step.segment is None else str(step.segment)
        table.add_row(str(step.index), icon, escape(speaker), segment, escape(_truncate(step.display_text, 80)))

    console.print(table)


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    s = s.replace("\n", " ")
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _print_summary(console: Console, report: dict) -> None:
    console.print("[bold]Summary[/bold]")
    console.print()

    summary = report["summary"]
    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column("Metric", style="dim")
    stats_table.add_column("Value")
    stats_table.add_row("Events", str(summary["events"]))
    stats_table.add_row("Steps", str(summary["steps"]))
    stats_table.add_row("Visible", f"[green]{summary['visible_steps']}[/green]")
    stats_table.add_row(
        "Secret segments",
        f"[magenta]{summary['secret_segments']}[/magenta]" if summary["secret_segments"] else "0",
    )
    stats_table.add_row("Bookmarks", str(summary["bookmarks"]))
    stats_table.add_row("Files", str(report["bundle"]["files"]))
    console.print(stats_table)

    unresolved = report["unresolved"]
    if unresolved["remote"] or unresolved["missing"]:
        console.print()
        console.print("[bold]Unresolved Media[/bold]")
        console.print()
        for label, urls in (("Not downloaded", unresolved["remote"]), ("Missing files", unresolved["missing"])):
            if not urls:
                continue
            console.print(f"  [dim]{label} ({len(urls)}):[/dim]")
            for url in urls[:5]:
                console.print(f"    [yellow]• {escape(url)}[/yellow]")
            if len(urls) > 5:
                console.print(f"    [dim]... and {len(urls) - 5} more[/dim]")
