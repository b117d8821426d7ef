"""Pure derivations over a message: display text, chart and proposed action."""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache

from models import ChartSpec, ConversationMessage, ProposedAction, ToolPart
from services.tool_steps import PROPOSE_ACTION_TOOL


logger = logging.getLogger(__name__)

CHART_FENCE = "chart-json"
_CHART_BLOCK = re.compile(r"```chart-json[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL)


@lru_cache(maxsize=256)
def _split_chart(text: str) -> tuple[str, str | None]:
    """Return ``(text without the first chart block, raw chart body)``."""

    match = _CHART_BLOCK.search(text)
    if match is None:
        return text.strip(), None
    remaining = text[: match.start()] + text[match.end():]
    return remaining.strip(), match.group(1)


@lru_cache(maxsize=256)
def _parse_chart(raw: str) -> ChartSpec | None:
    try:
        return ChartSpec.from_dict(json.loads(raw))
    except (ValueError, TypeError, AttributeError):
        logger.debug("Ignoring malformed chart block", exc_info=True)
        return None


def display_text(message: ConversationMessage) -> str:
    """Concatenated text parts with the chart block removed."""

    return _split_chart(message.text)[0]


def chart_data(message: ConversationMessage) -> ChartSpec | None:
    """Chart specification embedded in the message, if it parses."""

    raw = _split_chart(message.text)[1]
    if raw is None:
        return None
    return _parse_chart(raw)


def proposed_action(message: ConversationMessage) -> ProposedAction | None:
    """First successful ``proposeAction`` result of the message."""

    for part in message.parts:
        if not isinstance(part, ToolPart) or part.tool_name != PROPOSE_ACTION_TOOL:
            continue
        if not part.is_done or not part.output:
            continue
        output = part.output
        if output.get("success") is not True or not output.get("actionType"):
            continue
        try:
            return ProposedAction.from_dict(output)
        except ValueError:
            logger.debug("Ignoring malformed proposed action", exc_info=True)
            continue
    return None


__all__ = ["CHART_FENCE", "chart_data", "display_text", "proposed_action"]
