"""
JSON report generator for Stagereplay.

Describes a replay bundle for programmatic consumption: the room, the event
and step counts, secret segments, bookmarks, and any media reference that
does not resolve inside the bundle.

Design Principles:
    - Complete data: every step is listed with what playback would show
    - Consistent schema: same structure for every bundle
    - ISO timestamps
"""

import json
from collections import Counter
from datetime import UTC, datetime
from typing import Any

from stagereplay.assets import iter_references
from stagereplay.bundle import HTML_NAME, LoadedBundle
from stagereplay.sources import is_remote_url
from stagereplay.timeline import Step, build_bundle_steps, step_index_for_message


def _step_dict(step: Step) -> dict[str, Any]:
    message = step.message
    return {
        "index": step.index,
        "kind": step.kind.value,
        "timestamp": step.timestamp.isoformat(),
        "visible": step.visible,
        "segment": step.segment,
        "speaker": message.speaker if message else None,
        "text": step.display_text,
        "channel": message.channel if message else None,
        "background": step.background,
        "bgm": step.bgm,
        "sounds": list(step.sounds),
        "allow_list": list(step.secret_allow_list) if step.is_prompt else [],
    }


def unresolved_references(bundle: LoadedBundle) -> dict[str, list[str]]:
    """
    Media references that playback cannot serve from the bundle.

    Returns:
        ``{"remote": [...], "missing": [...]}``: URLs left pointing at the
        network (failed downloads) and bundle paths with no file behind them
    """
    files = set(bundle.files)
    # A bare data file carries no media to check against.
    check_files = HTML_NAME in files
    remote: dict[str, None] = {}
    missing: dict[str, None] = {}
    for ref in iter_references(bundle.data):
        if is_remote_url(ref):
            remote[ref] = None
        elif check_files and ref.startswith("assets/") and ref not in files:
            missing[ref] = None
    return {"remote": list(remote), "missing": list(missing)}


def build_report_dict(bundle: LoadedBundle, include_steps: bool = True) -> dict[str, Any]:
    """
    Build a report dictionary for a loaded bundle.

    Args:
        bundle: The bundle to describe
        include_steps: Whether to list every step

    Returns:
        Dictionary with the full bundle report
    """
    data = bundle.data
    steps = build_bundle_steps(data)
    event_types = Counter(event.type.value for event in data.events)
    segments = sorted({s.segment for s in steps if s.segment is not None})

    bookmarks = []
    for bookmark in data.markups:
        bookmarks.append(
            {
                "id": bookmark.id,
                "label": bookmark.label,
                "message_id": bookmark.message_id,
                "step_index": step_index_for_message(steps, bookmark.message_id),
            }
        )

    report: dict[str, Any] = {
        "report_version": "1.0",
        "generated_at": datetime.now(UTC).isoformat(),
        "bundle": {
            "path": str(bundle.path),
            "files": len(bundle.files),
            "save_slots": bundle.player.save_slots,
            "autoplay_interval_ms": bundle.player.autoplay_interval_ms,
        },
        "room": {
            "id": data.room_id,
            "name": data.room_name,
            "exported_at": data.exported_at.isoformat(),
            "characters": len(data.characters),
            "participants": len(data.participants),
            "has_title_screen": data.title_screen is not None and data.title_screen.has_content,
        },
        "summary": {
            "events": len(data.events),
            "event_types": dict(sorted(event_types.items())),
            "steps": len(steps),
            "visible_steps": sum(1 for s in steps if s.visible),
            "secret_segments": len(segments),
            "bookmarks": len(bookmarks),
        },
        "bookmarks": bookmarks,
        "unresolved": unresolved_references(bundle),
    }
    if include_steps:
        report["steps"] = [_step_dict(step) for step in steps]
    return report


def generate_json_report(bundle: LoadedBundle, indent: int = 2, include_steps: bool = True) -> str:
    """Generate a JSON report for a loaded bundle."""
    report = build_report_dict(bundle, include_steps=include_steps)
    return json.dumps(report, indent=indent, ensure_ascii=False)
