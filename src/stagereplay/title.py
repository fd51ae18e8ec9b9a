"""
Title screen resolution.

Rooms store their title screen as loosely-typed JSON (older rooms stored a
JSON string, and positions in pixels). This module normalizes that
configuration and resolves it against the room's characters and assets into
the TitleScreenDescriptor shipped in a bundle.

Normalization Rules:
    - Coordinates with an absolute value above 2 are legacy pixel values and
      are converted to stage-relative values against a 1200x675 stage
    - Opacity is clamped to [0, 1]; non-numeric fields take their defaults
    - Images without a URL are dropped
    - Per-PC entries name a portrait by tag (or label); they resolve to the
      character's portrait asset and are skipped for NPCs
    - The resulting images are ordered by z
"""

import json
import logging
import math
from typing import Any

from stagereplay.schema import AssetRecord, CharacterRecord, RoomSnapshot, TitleScreenDescriptor, TitleScreenImage

logger = logging.getLogger(__name__)

STAGE_BASE_WIDTH = 1200
STAGE_BASE_HEIGHT = 675
DEFAULT_IMAGE_LABEL = "画像"
AVATAR_TAG = "__avatar__"


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value) if math.isfinite(value) else default


def _relative(value: Any, axis: str) -> float:
    v = _number(value, 0.0)
    if abs(v) > 2:
        return v / (STAGE_BASE_WIDTH if axis == "x" else STAGE_BASE_HEIGHT)
    return v


def _placement(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "x": _relative(raw.get("x"), "x"),
        "y": _relative(raw.get("y"), "y"),
        "anchor": "top-left" if raw.get("anchor") == "top-left" else "center",
        "scale": _number(raw.get("scale"), 1.0),
        "rotate": _number(raw.get("rotate"), 0.0),
        "opacity": max(0.0, min(1.0, _number(raw.get("opacity"), 1.0))),
        "z": _number(raw.get("z"), 0.0),
    }


def _config_dict(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unparsable title screen configuration")
            return {}
    return raw if isinstance(raw, dict) else {}


def resolve_portrait_tag(
    assets: list[AssetRecord],
    character_id: str,
    tag_or_label: str,
) -> AssetRecord | None:
    """
    Find a character's portrait by tag, falling back to its label.

    Matching is case-insensitive. The avatar image is never a candidate.
    """
    key = (tag_or_label or "").strip().lower()
    if not key:
        return None
    candidates = [
        a
        for a in assets
        if a.kind == "portrait" and a.character_id == character_id and a.tag != AVATAR_TAG
    ]
    for asset in candidates:
        if (asset.tag or "").lower() == key:
            return asset
    for asset in candidates:
        if (asset.label or "").lower() == key:
            return asset
    return None


def build_title_screen(
    raw: Any,
    characters: list[CharacterRecord],
    assets: list[AssetRecord],
) -> TitleScreenDescriptor:
    """
    Normalize a stored title screen and resolve its PC portraits.

    Args:
        raw: The room's stored configuration (dict, JSON string or None)
        characters: Characters of the room
        assets: Uploaded assets of the room

    Returns:
        The descriptor; check ``has_content`` before shipping it
    """
    config = _config_dict(raw)
    images: list[TitleScreenImage] = []

    raw_images = config.get("images")
    for i, entry in enumerate(raw_images if isinstance(raw_images, list) else []):
        if not isinstance(entry, dict) or not entry.get("url"):
            continue
        images.append(
            TitleScreenImage(
                id=str(entry.get("id") or f"image-{i}"),
                label=str(entry.get("label") or DEFAULT_IMAGE_LABEL),
                url=str(entry["url"]),
                **_placement(entry),
            )
        )

    pc = config.get("pc")
    if isinstance(pc, dict):
        for character in characters:
            if character.is_npc:
                continue
            effect = pc.get(character.id)
            if not isinstance(effect, dict) or not effect.get("tag"):
                continue
            asset = resolve_portrait_tag(assets, character.id, str(effect["tag"]))
            if asset is None or not asset.url:
                logger.debug("No portrait %r for title screen PC %s", effect["tag"], character.name)
                continue
            images.append(
                TitleScreenImage(
                    id=f"pc:{character.id}",
                    label=asset.label or character.name,
                    url=asset.url,
                    **_placement(effect),
                )
            )

    images.sort(key=lambda image: image.z)
    bgm_url = config.get("bgmUrl")
    return TitleScreenDescriptor(
        images=images,
        bgm_url=bgm_url if isinstance(bgm_url, str) and bgm_url else None,
    )


def title_screen_for_room(room: RoomSnapshot) -> TitleScreenDescriptor | None:
    """The room's title screen, or None when it has nothing to show."""
    descriptor = build_title_screen(room.title_screen, room.characters, room.assets)
    return descriptor if descriptor.has_content else None
