"""
Unit tests for bundle reports.

Tests cover:
- JSON report structure and counts
- Bookmark resolution to steps
- Unresolved media (remote and missing files)
- Console report rendering
"""

import io
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from rich.console import Console

from stagereplay.bundle import DATA_NAME, HTML_NAME, LoadedBundle
from stagereplay.report import (
    build_report_dict,
    generate_console_report,
    generate_json_report,
    unresolved_references,
)
from stagereplay.schema import Bookmark, BundleData, EventType, MergedEvent, Participant

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


# =============================================================================
# Fixtures
# =============================================================================


def ev(kind: EventType, seconds: int, **data: Any) -> MergedEvent:
    return MergedEvent(timestamp=T0 + timedelta(seconds=seconds), type=kind, data=data)


def make_bundle(files: list[str] | None = None) -> LoadedBundle:
    data = BundleData(
        room_id="room-1",
        room_name="霧の館",
        exported_at=T0,
        initial_background="assets/image_1.png",
        events=[
            ev(EventType.BACKGROUND, 0, url="assets/image_1.png"),
            ev(EventType.MESSAGE, 1, id="m1", speaker="GM", text="[bgm:https://cdn.example/theme.mp3]Hi [sic]"),
            ev(EventType.SECRET_PROMPT, 2, secretAllowList=["p2"]),
            ev(EventType.SECRET, 2, isSecret=True, secretAllowList=["p2"]),
            ev(EventType.MESSAGE, 3, id="m2", speaker="GM", text="psst", channel="secret"),
            ev(EventType.SECRET, 4, isSecret=False),
            ev(EventType.MESSAGE, 5, id="m3", speaker="システム", text="joined"),
            ev(EventType.MESSAGE, 6, id="m4", speaker="Bob", text="[se:assets/image_2.wav]Bye"),
        ],
        participants=[Participant(id="p2", name="Bob")],
        markups=[
            Bookmark(id="b1", message_id="m2", label="Secret", created_at=T0),
            Bookmark(id="b2", message_id="gone", label="Gone", created_at=T0),
        ],
    )
    if files is None:
        files = [HTML_NAME, DATA_NAME, "assets/image_1.png"]
    return LoadedBundle(path=Path("replay.zip"), data=data, files=files)


class TestJsonReport:
    """Tests for the JSON report."""

    def test_summary(self) -> None:
        """Counts cover events, steps, segments and bookmarks."""
        report = build_report_dict(make_bundle())

        assert report["room"]["name"] == "霧の館"
        assert report["room"]["has_title_screen"] is False
        assert report["summary"] == {
            "events": 8,
            "event_types": {"background": 1, "message": 4, "secret": 2, "secretPrompt": 1},
            "steps": 5,
            "visible_steps": 3,
            "secret_segments": 1,
            "bookmarks": 2,
        }
        assert report["bundle"]["save_slots"] == 10

    def test_bookmarks_resolved(self) -> None:
        """Bookmarks name their step, or None when the message is absent."""
        report = build_report_dict(make_bundle())
        assert [(b["id"], b["step_index"]) for b in report["bookmarks"]] == [("b1", 2), ("b2", None)]

    def test_steps(self) -> None:
        """Steps list what playback would show."""
        steps = build_report_dict(make_bundle())["steps"]
        assert steps[0]["text"] == "Hi [sic]"
        assert steps[0]["bgm"] == "https://cdn.example/theme.mp3"
        assert steps[1]["kind"] == "secret_prompt"
        assert steps[1]["allow_list"] == ["p2"]
        assert steps[2]["segment"] == 0
        assert steps[3]["visible"] is False
        assert steps[4]["sounds"] == ["assets/image_2.wav"]

    def test_without_steps(self) -> None:
        assert "steps" not in build_report_dict(make_bundle(), include_steps=False)

    def test_generate_is_json(self) -> None:
        parsed = json.loads(generate_json_report(make_bundle()))
        assert parsed["report_version"] == "1.0"
        assert parsed["room"]["exported_at"] == "2024-05-01T10:00:00+00:00"


class TestUnresolved:
    """Tests for unresolved media."""

    def test_remote_and_missing(self) -> None:
        """Remote URLs and bundle paths without a file are reported."""
        assert unresolved_references(make_bundle()) == {
            "remote": ["https://cdn.example/theme.mp3"],
            "missing": ["assets/image_2.wav"],
        }

    def test_bare_data_file(self) -> None:
        """Without the archive, bundle paths cannot be checked."""
        assert unresolved_references(make_bundle(files=["replay.json"]))["missing"] == []


class TestConsoleReport:
    """Tests for the console report."""

    def render(self, verbose: bool = False) -> str:
        buffer = io.StringIO()
        console = Console(file=buffer, width=120, color_system=None)
        generate_console_report(make_bundle(), console=console, verbose=verbose)
        return buffer.getvalue()

    def test_contents(self) -> None:
        """Header, timeline and unresolved media are shown."""
        output = self.render()
        assert "霧の館" in output
        assert "Hi [sic]" in output
        assert "secret for p2" in output
        assert "Unresolved Media" in output
        assert "https://cdn.example/theme.mp3" in output
        assert "joined" not in output

    def test_verbose_lists_hidden_steps(self) -> None:
        assert "joined" in self.render(verbose=True)
