"""
Schema definitions for Stagereplay.

This module defines the Pydantic models shared by export and playback:
- MessageEvent/TransitionEvent: the two recorded session logs
- MergedEvent: one entry of the reconciled timeline
- BundleData: the JSON data file shipped inside a replay bundle
- SaveSlot: a player resume point
- ExportConfig: YAML-loaded export/player settings

Design Decisions:
    - Wire models serialize with camelCase keys (the bundle's JSON schema) and
      accept either camelCase or snake_case on input
    - Recorded events are frozen; they are never edited after capture
    - Backend rows (snake_case, `created_at`, `speaker_name`...) are mapped by
      explicit `from_row` constructors rather than by aliases
"""

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _assume_utc(value: datetime) -> datetime:
    """Naive timestamps are UTC; both logs must compare against each other."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


Timestamp = Annotated[datetime, AfterValidator(_assume_utc)]


WIRE_CONFIG = ConfigDict(
    frozen=True,
    extra="ignore",
    alias_generator=to_camel,
    populate_by_name=True,
)


# =============================================================================
# Enums
# =============================================================================


class Channel(str, Enum):
    """Message channel. Only SECRET is subject to the allow-list."""

    PUBLIC = "public"
    SECRET = "secret"
    CHAT = "chat"


class MessageKind(str, Enum):
    """How a message was authored."""

    SPEECH = "speech"
    MONO = "mono"
    SYSTEM = "system"
    DICE = "dice"


class TransitionType(str, Enum):
    """Kinds of stage transitions recorded during a session."""

    BACKGROUND = "background"
    PORTRAITS = "portraits"
    SECRET = "secret"


class EventType(str, Enum):
    """Kinds of entries in the merged timeline."""

    MESSAGE = "message"
    BACKGROUND = "background"
    PORTRAITS = "portraits"
    SECRET = "secret"
    SECRET_PROMPT = "secretPrompt"

    @property
    def is_transition(self) -> bool:
        """Whether this entry orders like a transition on equal timestamps."""
        return self is not EventType.MESSAGE


class TransitionSource(str, Enum):
    """Where the transitions of an export came from."""

    LOG = "log"
    CACHE = "cache"
    NONE = "none"


# =============================================================================
# Stage Models
# =============================================================================


class PortraitPlacement(BaseModel):
    """
    A character image positioned on the stage.

    Attributes:
        character_id: Owning character
        asset_id: Source asset row, if known
        url: Image URL (rewritten to a bundle path on export)
        label: Display label
        tag: Expression tag the image was chosen by
        position: Horizontal slot
        layer_order: Paint order; higher is drawn later
        scale: Optional scale factor
        offset_x: Optional horizontal offset in pixels
        offset_y: Optional vertical offset in pixels
    """

    model_config = WIRE_CONFIG

    character_id: str = ""
    asset_id: str | None = None
    url: str | None = None
    label: str = ""
    tag: str = ""
    position: Literal["left", "center", "right"] = "center"
    layer_order: int = 0
    scale: float | None = None
    offset_x: float | None = None
    offset_y: float | None = None

    @field_validator("position", mode="before")
    @classmethod
    def coerce_position(cls, v: Any) -> str:
        """Unknown positions render in the center."""
        return v if v in ("left", "center", "right") else "center"

    @field_validator("layer_order", mode="before")
    @classmethod
    def coerce_layer_order(cls, v: Any) -> int:
        return v if isinstance(v, int) else 0

    def to_data(self) -> dict[str, Any]:
        """Serialize with bundle (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


def parse_portraits(raw: Any) -> list[PortraitPlacement]:
    """Parse a list of portrait dicts, skipping entries that are not objects."""
    if not isinstance(raw, list):
        return []
    return [PortraitPlacement.model_validate(p) for p in raw if isinstance(p, dict)]


class StageSnapshot(BaseModel):
    """The live session's last-known stage state."""

    model_config = WIRE_CONFIG

    background_url: str | None = None
    active_portraits: list[PortraitPlacement] = Field(default_factory=list)
    is_secret: bool = False
    secret_allow_list: list[str] = Field(default_factory=list)


# =============================================================================
# Recorded Events
# =============================================================================


class DicePayload(BaseModel):
    """
    A recorded dice roll, carried verbatim into the bundle.

    Extra keys written by the live tool (e.g. characterId) are preserved.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    expression: str = ""
    rolls: list[int] = Field(default_factory=list)
    total: int | None = None
    threshold: int | None = None
    skill_name: str | None = None
    result: str | None = None
    blind: bool = False


class MessageEvent(BaseModel):
    """
    One row of the message log.

    Attributes:
        id: Message id (bookmarks point at it)
        timestamp: When the message was recorded
        speaker: Speaker display name
        text: Raw text, including bracket commands
        kind: speech, mono, system or dice
        portrait_url: Speaker portrait at send time
        dice_payload: Dice roll, for dice messages
        channel: public, secret or chat
        secret_allow_list: Participant ids allowed to see a secret message
    """

    model_config = WIRE_CONFIG

    id: str
    timestamp: Timestamp
    speaker: str = ""
    text: str = ""
    kind: MessageKind = MessageKind.SPEECH
    portrait_url: str | None = None
    dice_payload: DicePayload | None = None
    channel: Channel = Channel.PUBLIC
    secret_allow_list: list[str] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MessageEvent":
        """Build from a backend `messages` row."""
        return cls(
            id=str(row["id"]),
            timestamp=row["created_at"],
            speaker=row.get("speaker_name") or "",
            text=row.get("text") or "",
            kind=row.get("type") or MessageKind.SPEECH,
            portrait_url=row.get("speaker_portrait_url"),
            dice_payload=row.get("dice_payload"),
            channel=row.get("channel") or Channel.PUBLIC,
            secret_allow_list=row.get("secret_allow_list") or [],
        )

    def to_event_data(self) -> dict[str, Any]:
        """Payload stored in the merged `message` event."""
        return {
            "id": self.id,
            "speaker": self.speaker,
            "text": self.text,
            "type": self.kind.value,
            "portraitUrl": self.portrait_url,
            "dicePayload": (
                self.dice_payload.model_dump(mode="json", by_alias=True, exclude_none=True)
                if self.dice_payload
                else None
            ),
            "channel": self.channel.value,
            "secretAllowList": list(self.secret_allow_list),
        }


class TransitionEvent(BaseModel):
    """
    One row of the stage transition log.

    `data` is kept as recorded; the accessors below normalize the spellings
    used by different writers of the log.
    """

    model_config = WIRE_CONFIG

    timestamp: Timestamp
    type: TransitionType
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TransitionEvent":
        """Build from a backend `stage_events` row or a cached local entry."""
        return cls(
            timestamp=row.get("created_at") or row["timestamp"],
            type=row.get("kind") or row["type"],
            data=row.get("data") or {},
        )

    @property
    def background_url(self) -> str | None:
        url = self.data.get("url")
        return url if isinstance(url, str) and url else None

    @property
    def portraits(self) -> list[PortraitPlacement]:
        return parse_portraits(self.data.get("portraits"))

    @property
    def is_secret(self) -> bool:
        return self.data.get("isSecret") is True or self.data.get("is_secret") is True

    @property
    def allow_list(self) -> list[str]:
        raw = self.data.get("secretAllowList", self.data.get("secret_allow_list"))
        return [str(x) for x in raw] if isinstance(raw, list) else []

    def to_event_data(self) -> dict[str, Any]:
        """Canonical payload stored in the merged event."""
        if self.type == TransitionType.BACKGROUND:
            return {"url": self.background_url}
        if self.type == TransitionType.PORTRAITS:
            return {"portraits": [p.to_data() for p in self.portraits]}
        return {"isSecret": self.is_secret, "secretAllowList": self.allow_list}


class MergedEvent(BaseModel):
    """An entry of the reconciled timeline, as stored in the bundle."""

    model_config = WIRE_CONFIG

    timestamp: Timestamp
    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)


class Bookmark(BaseModel):
    """A GM-authored pointer to a message (a "markup")."""

    model_config = WIRE_CONFIG

    id: str
    message_id: str
    label: str
    created_at: Timestamp

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Bookmark":
        """Build from a backend `room_log_markups` row."""
        return cls(
            id=str(row["id"]),
            message_id=str(row["message_id"]),
            label=str(row.get("label") or ""),
            created_at=row["created_at"],
        )


# =============================================================================
# Room Models
# =============================================================================


class CharacterRecord(BaseModel):
    """A character row of the live room."""

    model_config = WIRE_CONFIG

    id: str
    name: str
    is_npc: bool = False


class AssetRecord(BaseModel):
    """An uploaded asset row of the live room."""

    model_config = WIRE_CONFIG

    id: str = ""
    character_id: str | None = None
    kind: str = ""
    url: str = ""
    label: str = ""
    tag: str = ""


class Participant(BaseModel):
    """A participant of the session."""

    model_config = WIRE_CONFIG

    id: str
    name: str
    role: str = "PL"


class CharacterSummary(BaseModel):
    """Character entry of the bundle."""

    model_config = WIRE_CONFIG

    name: str
    is_npc: bool = False


class RoomSnapshot(BaseModel):
    """
    Everything the export needs to know about the room besides the logs.

    Attributes:
        id: Room id (namespaces save slots)
        name: Room display name
        stage: Last-known stage state, used when no transitions exist
        characters: Characters of the room
        participants: Participants of the room
        assets: Uploaded assets, used to resolve title-screen PC portraits
        title_screen: Raw title-screen configuration as stored by the room
    """

    model_config = WIRE_CONFIG

    id: str
    name: str
    stage: StageSnapshot | None = None
    characters: list[CharacterRecord] = Field(default_factory=list)
    participants: list[Participant] = Field(default_factory=list)
    assets: list[AssetRecord] = Field(default_factory=list)
    title_screen: Any = None


# =============================================================================
# Bundle Models
# =============================================================================


class TitleScreenImage(BaseModel):
    """An image placed on the title screen, in stage-relative coordinates."""

    model_config = WIRE_CONFIG

    id: str
    label: str = ""
    url: str
    x: float = 0.0
    y: float = 0.0
    anchor: Literal["center", "top-left"] = "center"
    scale: float = 1.0
    rotate: float = 0.0
    opacity: float = 1.0
    z: float = 0.0


class TitleScreenDescriptor(BaseModel):
    """The resolved title screen shipped in a bundle."""

    model_config = WIRE_CONFIG

    images: list[TitleScreenImage] = Field(default_factory=list)
    bgm_url: str | None = None

    @property
    def has_content(self) -> bool:
        """A title screen is only shown when it has something to show."""
        return len(self.images) > 0


class BundleData(BaseModel):
    """
    The structured data file of a replay bundle (`replay.json`).

    This is the only input of the player; it must be self-sufficient.
    """

    model_config = WIRE_CONFIG

    room_id: str | None = None
    room_name: str
    exported_at: Timestamp = Field(default_factory=lambda: datetime.now(UTC))
    events: list[MergedEvent] = Field(default_factory=list)
    initial_background: str | None = None
    initial_portraits: list[PortraitPlacement] = Field(default_factory=list)
    characters: list[CharacterSummary] = Field(default_factory=list)
    participants: list[Participant] = Field(default_factory=list)
    markups: list[Bookmark] = Field(default_factory=list)
    title_screen: TitleScreenDescriptor | None = None

    def to_data(self) -> dict[str, Any]:
        """Serialize with bundle (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


class SlotSnapshot(BaseModel):
    """Lightweight stage snapshot kept with a save slot."""

    model_config = WIRE_CONFIG

    background: str | None = None
    portraits: list[PortraitPlacement] = Field(default_factory=list)


class SaveSlot(BaseModel):
    """A player resume point."""

    model_config = WIRE_CONFIG

    index: int = Field(..., ge=0)
    step_index: int = Field(..., ge=0)
    saved_at: Timestamp
    snapshot: SlotSnapshot = Field(default_factory=SlotSnapshot)


# =============================================================================
# Configuration
# =============================================================================


class ViewerConfig(BaseModel):
    """
    Who the export is produced for.

    Attributes:
        participant_id: Exporting participant; None for an anonymous viewer
        is_gm: GMs see every secret message
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    participant_id: str | None = None
    is_gm: bool = False

    def can_see(self, message: MessageEvent) -> bool:
        """Whether a message may be included in this viewer's bundle."""
        if message.channel != Channel.SECRET:
            return True
        if self.is_gm:
            return True
        return self.participant_id is not None and self.participant_id in message.secret_allow_list


class FetchConfig(BaseModel):
    """Asset download limits."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: int = Field(default=30, gt=0, le=300)
    max_response_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    max_concurrent: int = Field(default=4, ge=1, le=32)


class PlayerConfig(BaseModel):
    """Settings baked into the bundle for the player."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    save_slots: int = Field(default=10, ge=1, le=100)
    autoplay_interval_ms: int = Field(default=3000, ge=250)


class ExportConfig(BaseModel):
    """
    Complete export configuration.

    Attributes:
        viewer: Confidentiality scope of the export
        fetch: Asset download limits
        player: Player settings shipped with the bundle
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    viewer: ViewerConfig = Field(default_factory=ViewerConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    player: PlayerConfig = Field(default_factory=PlayerConfig)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_config(path: Path | str) -> ExportConfig:
    """
    Load an export configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated ExportConfig object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return ExportConfig.model_validate(data or {})


def load_config_from_string(content: str) -> ExportConfig:
    """Load an export configuration from a YAML string."""
    data = yaml.safe_load(content)
    return ExportConfig.model_validate(data or {})
