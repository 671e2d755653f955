"""Best-effort observability hooks. Nothing here feeds back into control flow."""

import logging
from typing import Optional


logger = logging.getLogger(__name__)

_INTENT_KEYWORDS = (
    ("navigate", ("go to", "navigate", "visit")),
    ("click", ("click", "press")),
    ("type", ("type", "enter", "input")),
    ("scroll", ("scroll", "down", "up")),
    ("wait", ("wait", "pause")),
)


def expected_tool_for_intent(text: str) -> str:
    """Guess which tool a piece of free text is asking for."""
    lowered = (text or "").lower()
    for tool_name, keywords in _INTENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return tool_name
    return "unknown"


def log_tool_selection(tool_name: str, preceding_text: Optional[str]) -> None:
    if not preceding_text or not logger.isEnabledFor(logging.DEBUG):
        return
    expected = expected_tool_for_intent(preceding_text)
    logger.debug(
        "Tool selection: called=%s expected=%s match=%s",
        tool_name,
        expected,
        expected in ("unknown", tool_name),
    )
