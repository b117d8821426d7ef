"""Decoding of the chat endpoint's event stream into conversation messages."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Iterator, Mapping

from models import ConversationMessage, TextPart, ToolPart, ToolState


logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class StreamProtocolError(ValueError):
    """Raised when the server reports an error inside the stream."""


def iter_sse_events(lines: Iterable[str | bytes | None]) -> Iterator[dict[str, Any]]:
    """Yield JSON events from ``data:`` lines until the ``[DONE]`` sentinel."""

    for raw in lines:
        if not raw:
            continue
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == DONE_SENTINEL:
            return
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream line: %s", data[:200])
            continue
        if isinstance(event, dict) and isinstance(event.get("type"), str):
            yield event


def _as_mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    if value is None:
        return {}
    return {"value": value}


class StreamAssembler:
    """Apply stream events to an assistant message, part by part.

    Text parts are keyed by the server's text id and tool parts by tool call
    id, so deltas for interleaved parts land in the right fragment.
    """

    def __init__(self, message: ConversationMessage) -> None:
        self.message = message
        self.finished = False
        self._text_parts: dict[str, TextPart] = {}
        self._tool_parts: dict[str, ToolPart] = {}
        self._raw_inputs: dict[str, str] = {}

    def apply(self, event: Mapping[str, Any]) -> bool:
        """Apply one event; return ``True`` when the message changed."""

        kind = event.get("type")
        if kind == "start":
            message_id = event.get("messageId")
            if message_id:
                self.message.id = str(message_id)
            return False
        if kind == "text-start":
            self._text_part(str(event.get("id") or ""))
            return True
        if kind == "text-delta":
            part = self._text_part(str(event.get("id") or ""))
            part.text += str(event.get("delta") or "")
            return True
        if kind == "tool-input-start":
            self._tool_part(event)
            return True
        if kind == "tool-input-delta":
            call_id = str(event.get("toolCallId") or "")
            self._raw_inputs[call_id] = self._raw_inputs.get(call_id, "") + str(event.get("inputTextDelta") or "")
            if call_id not in self._tool_parts:
                return False
            self._tool_part(event)
            return True
        if kind == "tool-input-available":
            part = self._tool_part(event)
            part.input = _as_mapping(event.get("input"))
            part.state = ToolState.INPUT_AVAILABLE
            return True
        if kind == "tool-output-available":
            part = self._tool_part(event)
            part.output = _as_mapping(event.get("output"))
            part.state = ToolState.OUTPUT_AVAILABLE
            return True
        if kind == "tool-output-error":
            part = self._tool_part(event)
            part.output = {"error": str(event.get("errorText") or "tool failed")}
            part.state = ToolState.OUTPUT_AVAILABLE
            return True
        if kind == "finish":
            self.finished = True
            return False
        if kind == "error":
            raise StreamProtocolError(str(event.get("errorText") or "stream error"))
        return False

    def _text_part(self, text_id: str) -> TextPart:
        part = self._text_parts.get(text_id)
        if part is None:
            part = TextPart()
            self._text_parts[text_id] = part
            self.message.parts.append(part)
        return part

    def _tool_part(self, event: Mapping[str, Any]) -> ToolPart:
        call_id = str(event.get("toolCallId") or "")
        part = self._tool_parts.get(call_id)
        if part is None:
            part = ToolPart(tool_call_id=call_id, tool_name=str(event.get("toolName") or "unknown"))
            self._tool_parts[call_id] = part
            self.message.parts.append(part)
        elif event.get("toolName"):
            part.tool_name = str(event["toolName"])
        if part.state is ToolState.INPUT_STREAMING and call_id in self._raw_inputs:
            try:
                partial = json.loads(self._raw_inputs[call_id])
            except json.JSONDecodeError:
                partial = None
            if isinstance(partial, dict):
                part.input = partial
        return part


__all__ = ["DONE_SENTINEL", "StreamAssembler", "StreamProtocolError", "iter_sse_events"]
