"""Dice roll display text."""

from typing import Any

DICE_MARK = "🎲"
RESULT_LABELS = {
    "critical": "クリティカル！",
    "success": "成功",
    "failure": "失敗",
    "fumble": "ファンブル！",
}


def format_dice(payload: dict[str, Any]) -> str:
    """
    Render a recorded roll as ``expr → [rolls] = total (result)``.

    Blind rolls show only the expression.
    """
    expression = str(payload.get("expression") or "")
    if payload.get("blind"):
        return f"{DICE_MARK} {expression}".rstrip()
    rolls = payload.get("rolls")
    rolls_text = ", ".join(str(r) for r in rolls) if isinstance(rolls, list) else ""
    text = f"{DICE_MARK} {expression} → [{rolls_text}] = {payload.get('total')}"
    result = payload.get("result")
    if result:
        text += f" ({RESULT_LABELS.get(result, result)})"
    return text
