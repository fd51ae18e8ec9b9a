"""
Unit tests for title screen resolution.

Tests cover:
- Normalization of legacy pixel coordinates and opacity
- Dropping images without a URL
- PC portrait resolution by tag and label
- Ordering by z and the has-content rule
"""

import json

import pytest

from stagereplay.schema import AssetRecord, CharacterRecord, RoomSnapshot
from stagereplay.title import (
    AVATAR_TAG,
    DEFAULT_IMAGE_LABEL,
    build_title_screen,
    resolve_portrait_tag,
    title_screen_for_room,
)

ALICE = CharacterRecord(id="c1", name="Alice")
VILLAIN = CharacterRecord(id="c2", name="Villain", is_npc=True)

ASSETS = [
    AssetRecord(id="a0", character_id="c1", kind="portrait", url="avatar.png", label="Smile", tag=AVATAR_TAG),
    AssetRecord(id="a1", character_id="c1", kind="portrait", url="smile.png", label="Smile", tag="happy"),
    AssetRecord(id="a2", character_id="c1", kind="portrait", url="angry.png", label="Angry", tag="ANGRY"),
    AssetRecord(id="a3", character_id="c2", kind="portrait", url="villain.png", label="Grin", tag="grin"),
    AssetRecord(id="a4", character_id="c1", kind="background", url="bg.png", label="Hall", tag="hall"),
]


class TestNormalization:
    """Tests for image normalization."""

    def test_pixel_coordinates_converted(self) -> None:
        """Values above 2 are pixels against a 1200x675 stage."""
        title = build_title_screen({"images": [{"url": "a.png", "x": 600, "y": 337.5}]}, [], [])
        image = title.images[0]
        assert image.x == pytest.approx(0.5)
        assert image.y == pytest.approx(0.5)

    def test_relative_coordinates_kept(self) -> None:
        """Relative values stay as they are."""
        title = build_title_screen({"images": [{"url": "a.png", "x": 0.25, "y": -1.5}]}, [], [])
        assert (title.images[0].x, title.images[0].y) == (0.25, -1.5)

    def test_defaults_and_clamping(self) -> None:
        """Bad fields take defaults and opacity is clamped."""
        title = build_title_screen(
            {"images": [{"url": "a.png", "scale": "big", "opacity": 3, "anchor": "bottom"}]}, [], []
        )
        image = title.images[0]
        assert image.id == "image-0"
        assert image.label == DEFAULT_IMAGE_LABEL
        assert image.scale == 1.0
        assert image.opacity == 1.0
        assert image.anchor == "center"

    def test_images_without_url_dropped(self) -> None:
        """Entries without a URL are dropped."""
        title = build_title_screen({"images": [{"label": "empty"}, {"url": "a.png"}, "junk"]}, [], [])
        assert [i.url for i in title.images] == ["a.png"]

    def test_json_string_config(self) -> None:
        """Older rooms stored the configuration as a JSON string."""
        raw = json.dumps({"images": [{"url": "a.png"}], "bgmUrl": "title.mp3"})
        title = build_title_screen(raw, [], [])
        assert title.bgm_url == "title.mp3"
        assert title.has_content

    def test_unparsable_config(self) -> None:
        """Garbage yields an empty title screen."""
        assert not build_title_screen("{nope", [], []).has_content
        assert not build_title_screen(None, [], []).has_content


class TestPortraitResolution:
    """Tests for PC portrait resolution."""

    def test_tag_first(self) -> None:
        """Tags match case-insensitively before labels."""
        assert resolve_portrait_tag(ASSETS, "c1", "angry").url == "angry.png"

    def test_label_fallback(self) -> None:
        """Labels match when no tag does, never the avatar."""
        assert resolve_portrait_tag(ASSETS, "c1", "smile").url == "smile.png"

    def test_other_characters_and_kinds_ignored(self) -> None:
        """Only the character's own portraits are candidates."""
        assert resolve_portrait_tag(ASSETS, "c1", "grin") is None
        assert resolve_portrait_tag(ASSETS, "c1", "hall") is None
        assert resolve_portrait_tag(ASSETS, "c1", "") is None

    def test_pc_images(self) -> None:
        """PC entries resolve to portraits; NPCs are skipped."""
        title = build_title_screen(
            {
                "pc": {
                    "c1": {"tag": "happy", "x": 0.2, "z": 1},
                    "c2": {"tag": "grin", "z": 2},
                }
            },
            [ALICE, VILLAIN],
            ASSETS,
        )
        assert [(i.id, i.url, i.label) for i in title.images] == [("pc:c1", "smile.png", "Smile")]

    def test_sorted_by_z(self) -> None:
        """Images are ordered by z."""
        title = build_title_screen(
            {
                "images": [{"id": "top", "url": "top.png", "z": 5}, {"id": "low", "url": "low.png", "z": -1}],
                "pc": {"c1": {"tag": "happy", "z": 2}},
            },
            [ALICE],
            ASSETS,
        )
        assert [i.id for i in title.images] == ["low", "pc:c1", "top"]


class TestTitleScreenForRoom:
    """Tests for room-level resolution."""

    def test_bgm_only_is_no_title(self) -> None:
        """A title screen without images is not shown."""
        room = RoomSnapshot(id="r", name="Room", title_screen={"bgmUrl": "title.mp3"})
        assert title_screen_for_room(room) is None

    def test_room_with_images(self) -> None:
        """Rooms with images get a descriptor."""
        room = RoomSnapshot(id="r", name="Room", title_screen={"images": [{"url": "logo.png"}]})
        assert title_screen_for_room(room).images[0].url == "logo.png"
