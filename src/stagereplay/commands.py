"""
Bracket command grammar.

Message text may carry inline commands of the form ``[kind:value]``:

    [bg:https://.../hall.png]      switch background ("clear" clears it)
    [bgm:https://.../theme.mp3]    switch background music ("stop" stops it)
    [se:https://.../door.wav]      one-shot sound effect
    [portrait:Alice:smile]         show a portrait (identifier, not a URL)
    [speaker:Alice]                speak as a character (identifier, not a URL)

Kinds are case-insensitive and values are trimmed. Only ``bg``, ``bgm`` and
``se`` carry asset URLs; they are the only kinds the exporter rewrites.

The live tool also writes a few display-only kinds and ``{expression}`` tags.
Those are removed from display text but otherwise ignored.
"""

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass

URL_KINDS = frozenset({"bg", "bgm", "se"})
COMMAND_KINDS = URL_KINDS | {"portrait", "speaker"}
DISPLAY_ONLY_KINDS = frozenset({
    "npc_disclosure",
    "effects_config",
    "effects_other",
    "portrait_transform",
})

BG_CLEAR = "clear"
BGM_STOP = "stop"

_COMMAND_RE = re.compile(r"\[(?P<kind>[A-Za-z_]+):(?P<value>[^\]]+)\]")
_STRIP_RE = re.compile(
    r"\[(?:" + "|".join(sorted(COMMAND_KINDS | DISPLAY_ONLY_KINDS)) + r"):[^\]]+\]\n?",
    re.IGNORECASE,
)
_TAG_RE = re.compile(r"\{[^}]+\}")


@dataclass(frozen=True)
class Command:
    """One parsed ``[kind:value]`` token."""

    kind: str
    value: str
    start: int
    end: int

    @property
    def is_sentinel(self) -> bool:
        """``bg:clear`` and ``bgm:stop`` mean "clear", not a URL."""
        value = self.value.lower()
        return (self.kind == "bg" and value == BG_CLEAR) or (
            self.kind == "bgm" and value == BGM_STOP
        )

    @property
    def carries_url(self) -> bool:
        return self.kind in URL_KINDS and bool(self.value) and not self.is_sentinel


def iter_commands(text: str | None) -> Iterator[Command]:
    """Yield the recognized commands of a text, in order of appearance."""
    if not text:
        return
    for match in _COMMAND_RE.finditer(text):
        kind = match.group("kind").lower()
        if kind not in COMMAND_KINDS:
            continue
        yield Command(
            kind=kind,
            value=match.group("value").strip(),
            start=match.start(),
            end=match.end(),
        )


def _strip_once(text: str) -> str:
    return _STRIP_RE.sub("", _TAG_RE.sub("", text)).strip()


def strip_commands(text: str | None) -> str:
    """
    Remove commands and expression tags from text for display.

    A command alone on a line disappears together with its newline. The
    transform is idempotent: stripping a stripped text returns it unchanged.
    """
    current = text or ""
    while True:
        stripped = _strip_once(current)
        if stripped == current:
            return stripped
        current = stripped


def asset_urls_in_text(text: str | None) -> list[str]:
    """URLs referenced by ``bg``/``bgm``/``se`` commands, sentinels excluded."""
    return [c.value for c in iter_commands(text) if c.carries_url]


def rewrite_command_urls(text: str | None, rewrite: Callable[[str], str]) -> str | None:
    """
    Apply ``rewrite`` to the value of every ``bg``/``bgm``/``se`` command.

    Sentinel values are normalized to lower case and left as sentinels;
    ``portrait`` and ``speaker`` commands are never touched.
    """
    if not text:
        return text

    def _replace(match: re.Match[str]) -> str:
        kind = match.group("kind").lower()
        if kind not in URL_KINDS:
            return match.group(0)
        value = match.group("value").strip()
        if not value:
            return f"[{kind}:]"
        command = Command(kind=kind, value=value, start=match.start(), end=match.end())
        if command.is_sentinel:
            return f"[{kind}:{value.lower()}]"
        return f"[{kind}:{rewrite(value)}]"

    return _COMMAND_RE.sub(_replace, text)


def scan_audio(text: str | None) -> tuple[str | None, list[str]]:
    """
    Audio commands of one message.

    Returns:
        (last ``bgm`` value or None when the text has none, every ``se`` value).
        The ``bgm`` value may be the ``stop`` sentinel.
    """
    bgm: str | None = None
    sounds: list[str] = []
    for command in iter_commands(text):
        if not command.value:
            continue
        if command.kind == "bgm":
            bgm = BGM_STOP if command.is_sentinel else command.value
        elif command.kind == "se":
            sounds.append(command.value)
    return bgm, sounds
