"""
Pytest configuration and fixtures for Stagereplay tests.

This module provides shared fixtures used across unit and integration
tests: a temporary directory, a recorded session dump and an in-process
asset fetcher.
"""

import json
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from stagereplay.sources import FetchResult, ResourceFetcher

CDN = "https://cdn.example"


class FakeFetcher(ResourceFetcher):
    """Serves ``b"asset:" + url`` for every URL except the ones told to fail."""

    def __init__(self, failing: set[str] | None = None, content_types: dict[str, str] | None = None) -> None:
        self.failing = failing or set()
        self.content_types = content_types or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls.append(url)
        if url in self.failing:
            return FetchResult.fail("HTTP 404", url=url, status_code=404)
        return FetchResult.ok(f"asset:{url}".encode(), content_type=self.content_types.get(url))


def _session_rows() -> dict[str, Any]:
    return {
        "room.json": {
            "id": "room-1",
            "name": "霧の館",
            "stage": {"backgroundUrl": f"{CDN}/static.png", "activePortraits": []},
            "characters": [
                {"id": "c1", "name": "Alice", "isNpc": False},
                {"id": "c2", "name": "Villain", "isNpc": True},
            ],
            "participants": [
                {"id": "p1", "name": "GM", "role": "GM"},
                {"id": "p2", "name": "Bob"},
                {"id": "p3", "name": "Carol"},
            ],
            "assets": [
                {
                    "id": "a1",
                    "characterId": "c1",
                    "kind": "portrait",
                    "url": f"{CDN}/alice_smile.png",
                    "label": "Smile",
                    "tag": "smile",
                },
            ],
            "titleScreen": {
                "images": [{"id": "logo", "url": f"{CDN}/logo.png", "x": 600, "y": 0.5, "z": 2}],
                "pc": {"c1": {"tag": "smile", "x": 0.2, "y": 0.6, "z": 1}},
                "bgmUrl": f"{CDN}/title.mp3",
            },
        },
        "messages.json": [
            {
                "id": "m1",
                "created_at": "2024-05-01T10:00:00Z",
                "speaker_name": "GM",
                "text": f"[bg:{CDN}/hall.png]\n[bgm:{CDN}/theme.mp3]\nWelcome.",
            },
            {"id": "m2", "created_at": "2024-05-01T10:00:10Z", "speaker_name": "Bob", "text": "Hello!"},
            {
                "id": "m3",
                "created_at": "2024-05-01T10:00:30Z",
                "speaker_name": "GM",
                "text": "Only Bob sees this",
                "channel": "secret",
                "secret_allow_list": ["p2"],
            },
            {
                "id": "m4",
                "created_at": "2024-05-01T10:00:40Z",
                "speaker_name": "GM",
                "text": "Only Carol sees this",
                "channel": "secret",
                "secret_allow_list": ["p3"],
            },
            {
                "id": "m5",
                "created_at": "2024-05-01T10:01:00Z",
                "speaker_name": "システム",
                "text": "Bob joined",
                "type": "system",
            },
            {
                "id": "m6",
                "created_at": "2024-05-01T10:01:10Z",
                "speaker_name": "Bob",
                "text": "",
                "type": "dice",
                "dice_payload": {"expression": "1d100", "rolls": [42], "total": 42, "result": "success"},
            },
            {
                "id": "m7",
                "created_at": "2024-05-01T10:01:20Z",
                "speaker_name": "GM",
                "text": f"[se:{CDN}/door.wav]The door opens.",
            },
        ],
        "stage_events.json": [
            {"created_at": "2024-05-01T10:00:00Z", "kind": "background", "data": {"url": f"{CDN}/hall.png"}},
            {
                "created_at": "2024-05-01T10:00:05Z",
                "kind": "portraits",
                "data": {"portraits": [{"characterId": "c1", "url": f"{CDN}/alice_smile.png", "position": "left"}]},
            },
            {
                "created_at": "2024-05-01T10:00:20Z",
                "kind": "secret",
                "data": {"isSecret": True, "secretAllowList": ["p2"]},
            },
            {"created_at": "2024-05-01T10:00:50Z", "kind": "secret", "data": {"isSecret": False}},
        ],
        "markups.json": [
            {"id": "b1", "message_id": "m2", "label": "Greeting", "created_at": "2024-05-01T11:00:00Z"},
            {"id": "b2", "message_id": "m4", "label": "Carol's secret", "created_at": "2024-05-01T11:00:00Z"},
        ],
    }


def write_session(path: Path, rows: dict[str, Any]) -> Path:
    """Write session dump files; a value of None leaves the file out."""
    path.mkdir(parents=True, exist_ok=True)
    for name, content in rows.items():
        if content is None:
            continue
        (path / name).write_text(json.dumps(content, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def session_rows() -> dict[str, Any]:
    """Rows of a small recorded session; tests may edit before writing."""
    return _session_rows()


@pytest.fixture
def session_dir(temp_dir: Path, session_rows: dict[str, Any]) -> Path:
    """The sample session written as a dump directory."""
    return write_session(temp_dir / "session", session_rows)


@pytest.fixture
def session_writer(temp_dir: Path) -> Callable[[dict[str, Any]], Path]:
    """Write edited session rows as the dump directory."""
    return lambda rows: write_session(temp_dir / "session", rows)


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    """Fetcher that serves every asset."""
    return FakeFetcher()


@pytest.fixture
def make_fetcher() -> type[FakeFetcher]:
    """The FakeFetcher class, for tests that need failing URLs or content types."""
    return FakeFetcher
