import requests

from models import PersistedMessage, SessionSnapshot, ChatSession
from services.conversation import GENERIC_ERROR_MESSAGE, THINKING_LABEL, ChatConversation, ChatStatus
from services.message_content import display_text
from services.tool_steps import get_tool_steps


MONTHLY_TURN = [
    {"type": "start", "messageId": "a1"},
    {"type": "tool-input-start", "toolCallId": "c1", "toolName": "getMonthlySummary"},
    {
        "type": "tool-input-available",
        "toolCallId": "c1",
        "toolName": "getMonthlySummary",
        "input": {"month": 10, "year": 2026},
    },
    {"type": "tool-output-available", "toolCallId": "c1", "output": {"total_income": 1200}},
    {"type": "text-start", "id": "t1"},
    {"type": "text-delta", "id": "t1", "delta": "ההכנסות היום הן ₪1,200"},
    {"type": "text-end", "id": "t1"},
    {"type": "finish"},
]


class FakeClient:
    def __init__(self, events=None, *, session_id="S1"):
        self.events = list(events or [])
        self.session_id = session_id
        self.stream_calls: list[dict] = []
        self.created: list[tuple] = []
        self.deleted = 0
        self.snapshot = SessionSnapshot(session=None)
        self.create_error: Exception | None = None
        self.stream_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.delete_error: Exception | None = None

    def create_session(self, business_id, *, title=None):
        self.created.append((business_id, title))
        if self.create_error is not None:
            raise self.create_error
        return self.session_id

    def stream_chat(self, **kwargs):
        self.stream_calls.append(kwargs)
        yield from self.events
        if self.stream_error is not None:
            raise self.stream_error

    def fetch_latest_session(self):
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.snapshot

    def delete_session(self):
        self.deleted += 1
        if self.delete_error is not None:
            raise self.delete_error


def test_monthly_income_turn_end_to_end():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")
    statuses: list[tuple[ChatStatus, str | None]] = []

    sent = conversation.send_message(
        "  מה ההכנסות היום?  ",
        on_update=lambda conv: statuses.append((conv.status, conv.thinking_status)),
    )

    assert sent is True
    assert conversation.status is ChatStatus.READY
    assert conversation.session_id == "S1"
    assert client.created == [("biz-1", "מה ההכנסות היום?")]
    assert client.stream_calls[0]["session_id"] == "S1"
    assert client.stream_calls[0]["business_id"] == "biz-1"

    user, assistant = conversation.messages
    assert user.text == "מה ההכנסות היום?"
    assert assistant.id == "a1"
    assert display_text(assistant) == "ההכנסות היום הן ₪1,200"
    steps = get_tool_steps(assistant)
    assert len(steps) == 1
    assert steps[0].result_summary == "הכנסות: ₪1,200"

    assert statuses[0] == (ChatStatus.SUBMITTED, THINKING_LABEL)
    assert (ChatStatus.STREAMING, "שולף סיכום חודשי...") in statuses
    assert statuses[-1] == (ChatStatus.READY, None)


def test_second_send_while_busy_is_refused():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")
    nested: list[bool] = []

    def on_update(conv):
        if conv.is_busy and not nested:
            nested.append(conv.send_message("שוב"))

    assert conversation.send_message("ראשון", on_update=on_update)

    assert nested == [False]
    assert len(client.stream_calls) == 1
    assert [m.role for m in conversation.messages] == ["user", "assistant"]


def test_blank_or_unauthorized_sends_make_no_calls():
    client = FakeClient(MONTHLY_TURN)

    assert ChatConversation(client, business_id="biz-1").send_message("   ") is False
    assert ChatConversation(client).send_message("שלום") is False
    assert client.stream_calls == []
    assert client.created == []


def test_admin_without_business_may_send():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, is_admin=True)

    assert conversation.send_message("תן סקירה של כל העסקים")
    assert client.stream_calls[0]["business_id"] is None


def test_session_creation_failure_still_sends():
    client = FakeClient(MONTHLY_TURN)
    client.create_error = requests.ConnectionError("down")
    conversation = ChatConversation(client, business_id="biz-1")

    assert conversation.send_message("שלום")

    assert conversation.session_id is None
    assert client.stream_calls[0]["session_id"] is None
    assert conversation.status is ChatStatus.READY


def test_existing_session_is_reused():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")

    conversation.send_message("ראשון")
    conversation.send_message("שני")

    assert len(client.created) == 1
    assert [call["session_id"] for call in client.stream_calls] == ["S1", "S1"]


def test_transport_failure_sets_error_and_keeps_user_message():
    client = FakeClient(MONTHLY_TURN[:3])
    client.stream_error = requests.ConnectionError("reset")
    conversation = ChatConversation(client, business_id="biz-1")

    assert conversation.send_message("שלום")

    assert conversation.status is ChatStatus.ERROR
    assert conversation.error_message == GENERIC_ERROR_MESSAGE
    assert conversation.messages[0].text == "שלום"
    assert conversation.thinking_status is None


def test_stream_error_event_sets_error_status():
    client = FakeClient([{"type": "start"}, {"type": "error", "errorText": "model overloaded"}])
    conversation = ChatConversation(client, business_id="biz-1")

    conversation.send_message("שלום")

    assert conversation.status is ChatStatus.ERROR
    assert [m.role for m in conversation.messages] == ["user"]


def test_error_clears_on_next_successful_send():
    client = FakeClient([{"type": "error", "errorText": "x"}])
    conversation = ChatConversation(client, business_id="biz-1")
    conversation.send_message("שלום")

    client.events = MONTHLY_TURN
    conversation.send_message("שוב")

    assert conversation.status is ChatStatus.READY
    assert conversation.error_message is None


def test_clear_during_stream_drops_remaining_events():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")

    def on_update(conv):
        if len(conv.messages) == 2:
            conv.clear_chat()

    conversation.send_message("שלום", on_update=on_update)

    assert conversation.messages == []
    assert conversation.session_id is None
    assert conversation.status is ChatStatus.IDLE
    assert client.deleted == 1


def test_clear_swallows_delete_failure():
    client = FakeClient(MONTHLY_TURN)
    client.delete_error = requests.HTTPError("500")
    conversation = ChatConversation(client, business_id="biz-1")
    conversation.send_message("שלום")

    conversation.clear_chat()

    assert conversation.messages == []
    assert conversation.status is ChatStatus.IDLE


def test_stop_moves_busy_status_to_ready():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")

    conversation.send_message("שלום", on_update=lambda conv: conv.stop() if conv.is_busy else None)

    assert conversation.status is ChatStatus.READY
    assert [m.role for m in conversation.messages] == ["user"]


def test_restore_history_hydrates_messages_and_chart():
    client = FakeClient()
    client.snapshot = SessionSnapshot(
        session=ChatSession(id="S7", title="סיכום"),
        messages=(
            PersistedMessage(id="m1", role="user", content="הראה גרף"),
            PersistedMessage(
                id="m2",
                role="assistant",
                content="הנה הגרף",
                chart_data={"type": "bar", "title": "הכנסות", "xAxisKey": "m", "data": [], "dataKeys": []},
            ),
        ),
    )
    conversation = ChatConversation(client, business_id="biz-1")

    assert conversation.restore_history() is True

    assert conversation.session_id == "S7"
    assert conversation.status is ChatStatus.READY
    assert conversation.loading_history is False
    assert display_text(conversation.messages[1]) == "הנה הגרף"
    assert "chart-json" in conversation.messages[1].text


def test_restore_history_failure_starts_fresh():
    client = FakeClient()
    client.fetch_error = requests.Timeout("slow")
    conversation = ChatConversation(client, business_id="biz-1")

    assert conversation.restore_history() is False

    assert conversation.messages == []
    assert conversation.session_id is None
    assert conversation.loading_history is False


def test_restore_history_skips_when_conversation_started():
    client = FakeClient(MONTHLY_TURN)
    client.snapshot = SessionSnapshot(
        session=ChatSession(id="old"),
        messages=(PersistedMessage(id="m1", role="user", content="ישן"),),
    )
    conversation = ChatConversation(client, business_id="biz-1")
    conversation.send_message("חדש")

    assert conversation.restore_history() is False
    assert conversation.session_id == "S1"


class FakeServer:
    """Minimal in-memory stand-in for the session and chat endpoints."""

    def __init__(self):
        self.sessions: dict[str, list[PersistedMessage]] = {}
        self.latest: str | None = None

    def create_session(self, business_id, *, title=None):
        session_id = f"S{len(self.sessions) + 1}"
        self.sessions[session_id] = []
        self.latest = session_id
        return session_id

    def stream_chat(self, *, messages, session_id, **_kwargs):
        question = messages[-1].text
        answer = f"תשובה ל: {question}"
        log = self.sessions[session_id]
        log.append(PersistedMessage(id=f"u{len(log)}", role="user", content=question))
        log.append(PersistedMessage(id=f"a{len(log)}", role="assistant", content=answer))
        yield {"type": "text-start", "id": "t"}
        yield {"type": "text-delta", "id": "t", "delta": answer}
        yield {"type": "finish"}

    def fetch_latest_session(self):
        if self.latest is None:
            return SessionSnapshot(session=None)
        return SessionSnapshot(
            session=ChatSession(id=self.latest),
            messages=tuple(self.sessions[self.latest]),
        )

    def delete_session(self):
        self.latest = None


def test_restored_conversation_matches_first_session():
    server = FakeServer()
    first = ChatConversation(server, business_id="biz-1")
    first.send_message("מה ההכנסות?")
    first.send_message("ומה ההוצאות?")

    second = ChatConversation(server, business_id="biz-1")
    assert second.restore_history()

    def transcript(conv):
        return [(m.role, display_text(m)) for m in conv.messages]

    assert transcript(second) == transcript(first)
    assert second.session_id == first.session_id


def test_ocr_context_reaches_request_but_not_message():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")

    conversation.send_message("📎 העלאת מסמך: invoice.png", ocr_context='תוכן מ-"invoice.png":\nסה"כ 118')
    conversation.send_message("ועוד שאלה")

    assert client.stream_calls[0]["ocr_context"] == 'תוכן מ-"invoice.png":\nסה"כ 118'
    assert client.stream_calls[1]["ocr_context"] is None
    assert conversation.messages[0].text == "📎 העלאת מסמך: invoice.png"


def test_close_aborts_in_flight_stream():
    client = FakeClient(MONTHLY_TURN)
    conversation = ChatConversation(client, business_id="biz-1")

    def on_update(conv):
        if conv.is_busy and len(conv.messages) == 2:
            conv.close()

    conversation.send_message("שלום", on_update=on_update)

    assert client.stream_calls[0]["cancel_event"].is_set()
    assert conversation.status is ChatStatus.READY
    assert len(conversation.messages[1].tool_parts) == 1
    assert conversation.messages[1].text == ""
