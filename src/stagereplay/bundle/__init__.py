"""
Replay bundle writing and loading.

A bundle is a self-contained zip archive: the player page, style sheet and
script, the JSON data file and every downloaded asset.
"""

from stagereplay.bundle.loader import LoadedBundle, load_bundle
from stagereplay.bundle.serializer import (
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

__all__ = [
    "CSS_NAME",
    "DATA_NAME",
    "HTML_NAME",
    "JS_NAME",
    "LoadedBundle",
    "build_initial_snapshot",
    "embed_json",
    "load_bundle",
    "render_html",
    "serialize_data",
    "write_bundle",
]
