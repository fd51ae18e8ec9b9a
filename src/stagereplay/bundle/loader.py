"""
Bundle loader.

Reads a replay bundle back for the terminal player and for inspection. A
bundle may be given as the zip archive, as an extracted directory, or as a
bare replay.json file.
"""

import json
import logging
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from stagereplay.bundle.serializer import DATA_NAME, HTML_NAME
from stagereplay.errors import BundleLoadError
from stagereplay.schema import BundleData, PlayerConfig

logger = logging.getLogger(__name__)

_SLOTS_RE = re.compile(r'data-save-slots="(\d+)"')
_AUTOPLAY_RE = re.compile(r'data-autoplay-ms="(\d+)"')


@dataclass
class LoadedBundle:
    """
    A bundle read from disk.

    Attributes:
        path: Where it was read from
        data: The parsed data file
        player: Player settings read from the page (defaults if absent)
        files: Names of every file in the bundle
    """

    path: Path
    data: BundleData
    player: PlayerConfig = field(default_factory=PlayerConfig)
    files: list[str] = field(default_factory=list)


def _player_settings(html: str | None) -> PlayerConfig:
    if not html:
        return PlayerConfig()
    settings = {}
    slots = _SLOTS_RE.search(html)
    if slots:
        settings["save_slots"] = int(slots.group(1))
    autoplay = _AUTOPLAY_RE.search(html)
    if autoplay:
        settings["autoplay_interval_ms"] = int(autoplay.group(1))
    try:
        return PlayerConfig.model_validate(settings)
    except ValidationError:
        logger.warning("Ignoring invalid player settings in %s", HTML_NAME)
        return PlayerConfig()


def _read_sources(path: Path) -> tuple[str, str | None, list[str]]:
    """Return (data file text, page text or None, file names)."""
    if path.is_dir():
        data_path = path / DATA_NAME
        if not data_path.is_file():
            raise BundleLoadError(path=str(path), underlying_error=f"{DATA_NAME} not found")
        html_path = path / HTML_NAME
        files = sorted(p.relative_to(path).as_posix() for p in path.rglob("*") if p.is_file())
        html = html_path.read_text(encoding="utf-8") if html_path.is_file() else None
        return data_path.read_text(encoding="utf-8"), html, files

    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            names = archive.namelist()
            if DATA_NAME not in names:
                raise BundleLoadError(path=str(path), underlying_error=f"{DATA_NAME} not found")
            html = archive.read(HTML_NAME).decode("utf-8") if HTML_NAME in names else None
            return archive.read(DATA_NAME).decode("utf-8"), html, sorted(names)

    return path.read_text(encoding="utf-8"), None, [path.name]


def load_bundle(path: str | Path) -> LoadedBundle:
    """
    Load a bundle.

    Raises:
        BundleLoadError: If the bundle is missing or its data file is malformed
    """
    path = Path(path)
    if not path.exists():
        raise BundleLoadError(path=str(path), underlying_error="no such file or directory")
    try:
        text, html, files = _read_sources(path)
        data = BundleData.model_validate(json.loads(text))
    except BundleLoadError:
        raise
    except (OSError, UnicodeDecodeError, zipfile.BadZipFile) as e:
        raise BundleLoadError(path=str(path), underlying_error=str(e)) from e
    except json.JSONDecodeError as e:
        raise BundleLoadError(path=str(path), underlying_error=f"invalid JSON: {e}") from e
    except ValidationError as e:
        raise BundleLoadError(
            path=str(path),
            underlying_error=f"invalid data file: {e.error_count()} errors",
        ) from e

    logger.debug("Loaded bundle %s with %d events", path, len(data.events))
    return LoadedBundle(path=path, data=data, player=_player_settings(html), files=files)
