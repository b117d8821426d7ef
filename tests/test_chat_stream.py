import pytest

from models import ConversationMessage, TextPart, ToolPart, ToolState
from services.chat_stream import StreamAssembler, StreamProtocolError, iter_sse_events


def test_iter_sse_events_skips_noise_and_stops_at_done():
    lines = [
        b'data: {"type":"start","messageId":"a1"}',
        "",
        None,
        ": keep-alive",
        "data: {not json",
        'data: ["no", "type"]',
        'data: {"type":"text-delta","id":"t1","delta":"hi"}',
        "data: [DONE]",
        'data: {"type":"text-delta","id":"t1","delta":"late"}',
    ]

    events = list(iter_sse_events(lines))

    assert [event["type"] for event in events] == ["start", "text-delta"]
    assert events[1]["delta"] == "hi"


def test_assembler_routes_interleaved_text_by_id():
    message = ConversationMessage.assistant()
    assembler = StreamAssembler(message)

    for event in (
        {"type": "start", "messageId": "srv-1"},
        {"type": "text-start", "id": "a"},
        {"type": "text-delta", "id": "a", "delta": "שלום "},
        {"type": "text-start", "id": "b"},
        {"type": "text-delta", "id": "b", "delta": "!"},
        {"type": "text-delta", "id": "a", "delta": "עולם"},
        {"type": "finish"},
    ):
        assembler.apply(event)

    assert message.id == "srv-1"
    assert [part.text for part in message.parts] == ["שלום עולם", "!"]
    assert assembler.finished


def test_assembler_tracks_tool_lifecycle():
    message = ConversationMessage.assistant()
    assembler = StreamAssembler(message)

    assert assembler.apply({"type": "tool-input-start", "toolCallId": "c1", "toolName": "calculate"})
    part = message.parts[0]
    assert isinstance(part, ToolPart)
    assert part.state is ToolState.INPUT_STREAMING

    assembler.apply({"type": "tool-input-delta", "toolCallId": "c1", "inputTextDelta": '{"expression": '})
    assembler.apply({"type": "tool-input-delta", "toolCallId": "c1", "inputTextDelta": '"2+2"}'})
    assert part.input == {"expression": "2+2"}

    assembler.apply(
        {"type": "tool-input-available", "toolCallId": "c1", "toolName": "calculate", "input": {"expression": "2+2"}}
    )
    assert part.state is ToolState.INPUT_AVAILABLE

    assembler.apply({"type": "tool-output-available", "toolCallId": "c1", "output": {"result": 4}})
    assert part.state is ToolState.OUTPUT_AVAILABLE
    assert part.output == {"result": 4}
    assert part.is_done
    assert len(message.parts) == 1


def test_tool_output_error_is_recorded_as_error_output():
    message = ConversationMessage.assistant()
    assembler = StreamAssembler(message)

    assembler.apply({"type": "tool-input-start", "toolCallId": "c1", "toolName": "queryDatabase"})
    assembler.apply({"type": "tool-output-error", "toolCallId": "c1", "errorText": "timeout"})

    part = message.parts[0]
    assert part.is_done
    assert part.output == {"error": "timeout"}


def test_start_and_unknown_events_do_not_change_message():
    message = ConversationMessage.assistant()
    assembler = StreamAssembler(message)

    assert assembler.apply({"type": "start"}) is False
    assert assembler.apply({"type": "reasoning-delta", "delta": "..."}) is False
    assert message.parts == []


def test_error_event_raises():
    assembler = StreamAssembler(ConversationMessage.assistant())

    with pytest.raises(StreamProtocolError, match="rate limited"):
        assembler.apply({"type": "error", "errorText": "rate limited"})


def test_text_part_defaults_to_empty():
    assert TextPart().text == ""
