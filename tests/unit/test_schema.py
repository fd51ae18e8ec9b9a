"""
Unit tests for schema models.

Tests cover:
- Backend row mapping (MessageEvent, TransitionEvent, Bookmark)
- Timestamp normalization
- Transition data accessors
- Bundle data serialization keys
- Viewer visibility rules
- Export configuration loading
"""

from datetime import UTC, datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from stagereplay.schema import (
    Bookmark,
    BundleData,
    Channel,
    EventType,
    ExportConfig,
    MessageEvent,
    MessageKind,
    PortraitPlacement,
    SaveSlot,
    TransitionEvent,
    TransitionType,
    ViewerConfig,
    load_config,
    load_config_from_string,
    parse_portraits,
)


class TestMessageEvent:
    """Tests for MessageEvent."""

    def test_from_row(self) -> None:
        """Backend columns map to model fields."""
        message = MessageEvent.from_row(
            {
                "id": 7,
                "created_at": "2024-05-01T10:00:00Z",
                "speaker_name": "Alice",
                "text": "Hi",
                "type": "mono",
                "channel": "secret",
                "secret_allow_list": ["p2"],
            }
        )
        assert message.id == "7"
        assert message.speaker == "Alice"
        assert message.kind == MessageKind.MONO
        assert message.channel == Channel.SECRET
        assert message.secret_allow_list == ["p2"]

    def test_naive_timestamp_is_utc(self) -> None:
        """Naive timestamps are treated as UTC."""
        message = MessageEvent(id="m", timestamp=datetime(2024, 5, 1, 10, 0))
        assert message.timestamp == datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

    def test_event_data_keys(self) -> None:
        """The merged payload uses camelCase keys."""
        message = MessageEvent(
            id="m1",
            timestamp=datetime(2024, 5, 1, tzinfo=UTC),
            speaker="Bob",
            text="Roll",
            kind=MessageKind.DICE,
            dice_payload={"expression": "2d6", "rolls": [3, 4], "total": 7},
        )
        data = message.to_event_data()
        assert set(data) == {
            "id", "speaker", "text", "type", "portraitUrl", "dicePayload", "channel", "secretAllowList",
        }
        assert data["type"] == "dice"
        assert data["dicePayload"] == {"expression": "2d6", "rolls": [3, 4], "total": 7, "blind": False}


class TestTransitionEvent:
    """Tests for TransitionEvent."""

    def test_from_row_backend_columns(self) -> None:
        """created_at/kind rows parse."""
        event = TransitionEvent.from_row(
            {"created_at": "2024-05-01T10:00:00Z", "kind": "background", "data": {"url": "u"}}
        )
        assert event.type == TransitionType.BACKGROUND
        assert event.background_url == "u"

    def test_from_row_cached_entry(self) -> None:
        """timestamp/type entries (the local cache format) parse."""
        event = TransitionEvent.from_row(
            {"timestamp": "2024-05-01T10:00:00Z", "type": "secret", "data": {"is_secret": True}}
        )
        assert event.is_secret is True

    def test_secret_accessors(self) -> None:
        """Both spellings of the allow-list are read."""
        event = TransitionEvent(
            timestamp=datetime(2024, 5, 1, tzinfo=UTC),
            type=TransitionType.SECRET,
            data={"isSecret": True, "secret_allow_list": ["p1", 2]},
        )
        assert event.allow_list == ["p1", "2"]
        assert event.to_event_data() == {"isSecret": True, "secretAllowList": ["p1", "2"]}

    def test_empty_background_url(self) -> None:
        """An empty url clears the background."""
        event = TransitionEvent(
            timestamp=datetime(2024, 5, 1, tzinfo=UTC), type=TransitionType.BACKGROUND, data={"url": ""}
        )
        assert event.to_event_data() == {"url": None}

    def test_unknown_type_rejected(self) -> None:
        """Unknown transition kinds fail validation."""
        with pytest.raises(ValidationError):
            TransitionEvent.from_row({"created_at": "2024-05-01T10:00:00Z", "kind": "weather"})


class TestPortraits:
    """Tests for portrait parsing."""

    def test_unknown_position_is_center(self) -> None:
        """Unknown positions fall back to center."""
        portrait = PortraitPlacement.model_validate({"characterId": "c1", "position": "upstage"})
        assert portrait.position == "center"

    def test_parse_skips_non_objects(self) -> None:
        """Entries that are not objects are skipped."""
        portraits = parse_portraits([{"characterId": "c1", "url": "u"}, "junk", None])
        assert len(portraits) == 1
        assert portraits[0].character_id == "c1"

    def test_parse_non_list(self) -> None:
        """A non-list yields no portraits."""
        assert parse_portraits("nope") == []


class TestBundleData:
    """Tests for the bundle data file model."""

    def test_to_data_camel_case(self) -> None:
        """Serialized keys match the bundle schema."""
        data = BundleData(
            room_id="r1",
            room_name="Room",
            exported_at=datetime(2024, 5, 1, tzinfo=UTC),
            markups=[
                Bookmark(id="b1", message_id="m1", label="L", created_at=datetime(2024, 5, 1, tzinfo=UTC))
            ],
        )
        out = data.to_data()
        assert set(out) == {
            "roomId", "roomName", "exportedAt", "events", "initialBackground", "initialPortraits",
            "characters", "participants", "markups", "titleScreen",
        }
        assert out["markups"][0]["messageId"] == "m1"

    def test_round_trip_from_camel_case(self) -> None:
        """camelCase input validates back to the same model."""
        data = BundleData(room_name="Room", exported_at=datetime(2024, 5, 1, tzinfo=UTC))
        assert BundleData.model_validate(data.to_data()) == data

    def test_event_types(self) -> None:
        """secretPrompt is a transition-like event."""
        assert EventType("secretPrompt").is_transition
        assert not EventType.MESSAGE.is_transition


class TestSaveSlot:
    """Tests for save slots."""

    def test_negative_index_rejected(self) -> None:
        """Slot indexes are non-negative."""
        with pytest.raises(ValidationError):
            SaveSlot(index=-1, step_index=0, saved_at=datetime(2024, 5, 1, tzinfo=UTC))


class TestViewerConfig:
    """Tests for visibility rules."""

    def _secret(self, allow: list[str]) -> MessageEvent:
        return MessageEvent(
            id="m",
            timestamp=datetime(2024, 5, 1, tzinfo=UTC),
            channel=Channel.SECRET,
            secret_allow_list=allow,
        )

    def test_public_always_visible(self) -> None:
        """Public messages are visible to anonymous viewers."""
        message = MessageEvent(id="m", timestamp=datetime(2024, 5, 1, tzinfo=UTC))
        assert ViewerConfig().can_see(message)

    def test_secret_allow_list(self) -> None:
        """Secret messages require membership of the allow-list."""
        assert ViewerConfig(participant_id="p2").can_see(self._secret(["p2"]))
        assert not ViewerConfig(participant_id="p3").can_see(self._secret(["p2"]))
        assert not ViewerConfig().can_see(self._secret(["p2"]))

    def test_gm_sees_everything(self) -> None:
        """GMs see every secret message."""
        assert ViewerConfig(is_gm=True).can_see(self._secret([]))


class TestConfigLoading:
    """Tests for YAML configuration."""

    def test_defaults(self) -> None:
        """An empty document yields defaults."""
        config = load_config_from_string("")
        assert config == ExportConfig()
        assert config.player.save_slots == 10
        assert config.player.autoplay_interval_ms == 3000
        assert config.fetch.max_concurrent == 4

    def test_full_document(self) -> None:
        """Every section is read."""
        config = load_config_from_string(
            """
viewer:
  participant_id: p2
fetch:
  timeout_seconds: 10
  max_concurrent: 2
player:
  save_slots: 3
  autoplay_interval_ms: 1500
"""
        )
        assert config.viewer.participant_id == "p2"
        assert config.fetch.timeout_seconds == 10
        assert config.player.save_slots == 3

    def test_unknown_key_rejected(self) -> None:
        """Typos in configuration are errors."""
        with pytest.raises(ValidationError):
            load_config_from_string("player:\n  slots: 3\n")

    def test_load_from_file(self, temp_dir: Path) -> None:
        """Configuration loads from a file."""
        path = temp_dir / "export.yaml"
        path.write_text("viewer:\n  is_gm: true\n", encoding="utf-8")
        assert load_config(path).viewer.is_gm is True
