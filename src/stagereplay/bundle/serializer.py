"""
Bundle serializer.

Writes a replay bundle: one zip archive holding the player page, its style
sheet and script, the JSON data file and the downloaded media.

Archive Layout:
    replay.html          player page; the data file is embedded for file://
    replay.css
    replay.js
    replay.json          BundleData, camelCase keys
    assets/image_<n>.<ext>

Design Decisions:
    - The data file is serialized once; the same text is embedded in the page
      and stored as replay.json
    - Player settings (slot count, autoplay period) go in data-* attributes of
      the page so the data file schema stays the same for every export
    - The archive is written to a temporary file next to the target and then
      moved into place, so a failed export never leaves a truncated bundle
"""

import json
import logging
import os
import tempfile
import zipfile
from collections.abc import Iterable, Mapping
from importlib import resources
from pathlib import Path

from jinja2 import Environment, StrictUndefined
from markupsafe import Markup

from stagereplay.errors import BundleSerializationError, BundleWriteError
from stagereplay.schema import (
    BundleData,
    EventType,
    MergedEvent,
    PlayerConfig,
    PortraitPlacement,
    StageSnapshot,
    parse_portraits,
)

logger = logging.getLogger(__name__)

HTML_NAME = "replay.html"
CSS_NAME = "replay.css"
JS_NAME = "replay.js"
DATA_NAME = "replay.json"
TEMPLATE_NAME = "replay.html.j2"


def build_initial_snapshot(
    events: Iterable[MergedEvent],
    stage: StageSnapshot | None,
) -> tuple[str | None, list[PortraitPlacement]]:
    """
    Stage shown before the first event.

    When the timeline has stage transitions, the first in-stream background
    and portraits are used. When it has none at all, the room's last-known
    stage stands in so the replay is not blank.

    Returns:
        (background URL, portraits)
    """
    events = list(events)
    if not any(e.type in (EventType.BACKGROUND, EventType.PORTRAITS, EventType.SECRET) for e in events):
        if stage is None:
            return None, []
        return stage.background_url, list(stage.active_portraits)

    background = next(
        (e.data.get("url") for e in events if e.type == EventType.BACKGROUND and e.data.get("url")),
        None,
    )
    portraits = next(
        (
            parse_portraits(e.data.get("portraits"))
            for e in events
            if e.type == EventType.PORTRAITS and isinstance(e.data.get("portraits"), list)
        ),
        [],
    )
    return background, portraits


def serialize_data(data: BundleData) -> str:
    """
    Serialize the data file.

    Raises:
        BundleSerializationError: If the data cannot be encoded
    """
    try:
        return json.dumps(data.to_data(), indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise BundleSerializationError(underlying_error=str(e)) from e


def embed_json(text: str) -> str:
    """Make JSON text safe inside a <script> element."""
    return text.replace("</", "<\\/").replace("<!--", "<\\u0021--")


def _read_resource(*parts: str) -> str:
    resource = resources.files("stagereplay.bundle")
    for part in parts:
        resource = resource.joinpath(part)
    return resource.read_text(encoding="utf-8")


def _jinja_env() -> Environment:
    return Environment(
        undefined=StrictUndefined,
        autoescape=True,
        keep_trailing_newline=True,
    )


def render_html(data: BundleData, data_json: str, player: PlayerConfig) -> str:
    """Render the player page with the data file embedded."""
    template = _jinja_env().from_string(_read_resource("templates", TEMPLATE_NAME))
    return template.render(
        room_name=data.room_name,
        css_name=CSS_NAME,
        js_name=JS_NAME,
        save_slots=player.save_slots,
        autoplay_interval_ms=player.autoplay_interval_ms,
        data_json=Markup(embed_json(data_json)),
    )


def static_files() -> dict[str, str]:
    """The player's style sheet and script."""
    return {
        CSS_NAME: _read_resource("static", CSS_NAME),
        JS_NAME: _read_resource("static", JS_NAME),
    }


def write_bundle(
    path: str | Path,
    data: BundleData,
    media: Mapping[str, bytes] | None = None,
    player: PlayerConfig | None = None,
) -> Path:
    """
    Write a replay bundle archive.

    Args:
        path: Target .zip path (replaced if it exists)
        data: The final, rewritten data file
        media: Bundle path -> bytes for downloaded assets
        player: Player settings baked into the page

    Returns:
        The written path

    Raises:
        BundleSerializationError: If the data cannot be encoded
        BundleWriteError: If the archive cannot be written
    """
    path = Path(path)
    player = player or PlayerConfig()
    data_json = serialize_data(data)
    html = render_html(data, data_json, player)

    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp_name = tmp.name
            with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                archive.writestr(HTML_NAME, html)
                for name, content in static_files().items():
                    archive.writestr(name, content)
                archive.writestr(DATA_NAME, data_json)
                for name, content in sorted((media or {}).items()):
                    archive.writestr(name, content)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise BundleWriteError(path=str(path), underlying_error=str(e)) from e

    logger.info("Wrote bundle %s (%d events, %d media files)", path, len(data.events), len(media or {}))
    return path
