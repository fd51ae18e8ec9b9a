"""
Unit tests for the bundle serializer.

Tests cover:
- Initial stage derivation
- Script-safe JSON embedding
- Page rendering and player settings
- Archive contents and atomic writes
"""

import json
import zipfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from stagereplay.bundle import (
    CSS_NAME,
    DATA_NAME,
    HTML_NAME,
    JS_NAME,
    build_initial_snapshot,
    embed_json,
    render_html,
    serialize_data,
    write_bundle,
)
from stagereplay.errors import BundleSerializationError, BundleWriteError
from stagereplay.schema import (
    BundleData,
    EventType,
    MergedEvent,
    PlayerConfig,
    PortraitPlacement,
    StageSnapshot,
)

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


def event(type_: EventType, **data) -> MergedEvent:
    return MergedEvent(timestamp=T0, type=type_, data=data)


ROOM_STAGE = StageSnapshot(
    background_url="last.png",
    active_portraits=[PortraitPlacement(character_id="c9", url="last_face.png")],
)


class TestInitialSnapshot:
    """Tests for build_initial_snapshot."""

    def test_first_in_stream_values(self) -> None:
        """The first background and portrait set are used."""
        events = [
            event(EventType.MESSAGE, id="m1", text="hi"),
            event(EventType.BACKGROUND, url="first.png"),
            event(EventType.PORTRAITS, portraits=[{"characterId": "c1", "url": "a.png", "position": "left"}]),
            event(EventType.BACKGROUND, url="second.png"),
        ]
        background, portraits = build_initial_snapshot(events, ROOM_STAGE)
        assert background == "first.png"
        assert [(p.character_id, p.url, p.position) for p in portraits] == [("c1", "a.png", "left")]

    def test_room_stage_without_transitions(self) -> None:
        """With no transitions at all the room's last stage is used."""
        background, portraits = build_initial_snapshot([event(EventType.MESSAGE, text="hi")], ROOM_STAGE)
        assert background == "last.png"
        assert portraits[0].url == "last_face.png"

    def test_transitions_suppress_room_stage(self) -> None:
        """A secret transition alone means the stage starts blank."""
        events = [event(EventType.SECRET, isSecret=True, secretAllowList=[])]
        assert build_initial_snapshot(events, ROOM_STAGE) == (None, [])

    def test_nothing_known(self) -> None:
        assert build_initial_snapshot([], None) == (None, [])


def circular_data() -> BundleData:
    """Data whose event payload contains itself."""
    looped = event(EventType.MESSAGE, id="m1", text="loop")
    looped.data["self"] = looped.data
    return BundleData(room_name="Room", exported_at=T0, events=[looped])


class TestSerializeData:
    """Tests for serialize_data."""

    def test_camel_case_keys(self) -> None:
        text = serialize_data(BundleData(room_name="Room", exported_at=T0, initial_background="bg.png"))
        stored = json.loads(text)
        assert stored["roomName"] == "Room"
        assert stored["initialBackground"] == "bg.png"

    def test_unencodable_data(self) -> None:
        """A payload that cannot be encoded is a serialization error."""
        with pytest.raises(BundleSerializationError) as exc_info:
            serialize_data(circular_data())
        assert exc_info.value.code == 3001
        assert exc_info.value.message.startswith("Could not serialize replay data")


class TestEmbedJson:
    """Tests for embed_json."""

    def test_script_terminators_escaped(self) -> None:
        """Closing tags and comment openers cannot end the script element."""
        embedded = embed_json('{"text": "</script><!-- x"}')
        assert "</" not in embedded
        assert "<!--" not in embedded
        assert json.loads(embedded) == {"text": "</script><!-- x"}


class TestRenderHtml:
    """Tests for render_html."""

    def test_settings_and_data(self) -> None:
        """Player settings become data attributes and the data is embedded."""
        data = BundleData(room_name="<b>霧</b>", exported_at=T0)
        html = render_html(data, serialize_data(data), PlayerConfig(save_slots=5, autoplay_interval_ms=1500))

        assert 'data-save-slots="5"' in html
        assert 'data-autoplay-ms="1500"' in html
        assert "&lt;b&gt;霧&lt;/b&gt;" in html
        assert f'href="{CSS_NAME}"' in html
        assert f'src="{JS_NAME}"' in html
        assert '"roomName": "<b>霧<\\/b>"' in html


class TestWriteBundle:
    """Tests for write_bundle."""

    def test_archive_contents(self, temp_dir: Path) -> None:
        """The archive holds the page, static files, data file and media."""
        data = BundleData(room_name="Room", exported_at=T0, initial_background="assets/image_1.png")
        path = write_bundle(temp_dir / "out.zip", data, {"assets/image_1.png": b"PNG"})

        with zipfile.ZipFile(path) as archive:
            assert sorted(archive.namelist()) == sorted(
                [HTML_NAME, CSS_NAME, JS_NAME, DATA_NAME, "assets/image_1.png"]
            )
            stored = json.loads(archive.read(DATA_NAME))
            assert archive.read("assets/image_1.png") == b"PNG"

        assert stored["roomName"] == "Room"
        assert stored["initialBackground"] == "assets/image_1.png"
        assert stored["markups"] == []

    def test_default_player_settings(self, temp_dir: Path) -> None:
        path = write_bundle(temp_dir / "out.zip", BundleData(room_name="Room"))
        with zipfile.ZipFile(path) as archive:
            html = archive.read(HTML_NAME).decode("utf-8")
        assert 'data-save-slots="10"' in html
        assert 'data-autoplay-ms="3000"' in html

    def test_replaces_existing(self, temp_dir: Path) -> None:
        """An existing bundle is replaced and no temporary file is left."""
        target = temp_dir / "out.zip"
        target.write_bytes(b"old")
        write_bundle(target, BundleData(room_name="Room"))

        assert zipfile.is_zipfile(target)
        assert [p.name for p in temp_dir.iterdir()] == ["out.zip"]

    def test_missing_directory(self, temp_dir: Path) -> None:
        """An unwritable target raises BundleWriteError."""
        with pytest.raises(BundleWriteError) as exc_info:
            write_bundle(temp_dir / "missing" / "out.zip", BundleData(room_name="Room"))
        assert exc_info.value.code == 3002

    def test_unencodable_data_writes_nothing(self, temp_dir: Path) -> None:
        """A serialization failure leaves no archive behind."""
        with pytest.raises(BundleSerializationError):
            write_bundle(temp_dir / "out.zip", circular_data())
        assert list(temp_dir.iterdir()) == []
