"""Conversation state for one assistant chat surface."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Optional, TYPE_CHECKING

import requests

from models import ConversationMessage
from services.chat_stream import StreamAssembler
from services.tool_steps import tool_status_label


if TYPE_CHECKING:
    from api_client import DashboardApiClient


logger = logging.getLogger(__name__)

THINKING_LABEL = "חושב..."
GENERIC_ERROR_MESSAGE = "מצטער, אירעה שגיאה בקבלת התשובה. נסו לשלוח שוב."
SESSION_TITLE_CHARS = 100


class ChatStatus(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    READY = "ready"
    ERROR = "error"


UpdateCallback = Callable[["ChatConversation"], None]


class ChatConversation:
    """Owns the message list, request status and session identity.

    At most one chat request is in flight at a time: :meth:`send_message`
    refuses while a request is submitted or streaming. Every request carries a
    generation number; :meth:`stop` and :meth:`clear_chat` bump it so events
    from an abandoned stream are dropped instead of written back.
    """

    def __init__(
        self,
        client: "DashboardApiClient",
        *,
        business_id: str | None = None,
        is_admin: bool = False,
        page_context: str | None = None,
    ) -> None:
        self.client = client
        self.business_id = business_id
        self.is_admin = is_admin
        self.page_context = page_context
        self.messages: list[ConversationMessage] = []
        self.status = ChatStatus.IDLE
        self.session_id: str | None = None
        self.error_message: str | None = None
        self.loading_history = False
        self._generation = 0
        self._cancel_event: threading.Event | None = None

    # Derived state -------------------------------------------------------
    @property
    def is_busy(self) -> bool:
        return self.status in (ChatStatus.SUBMITTED, ChatStatus.STREAMING)

    @property
    def can_send(self) -> bool:
        return bool(self.business_id) or self.is_admin

    @property
    def last_assistant_message(self) -> Optional[ConversationMessage]:
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message
        return None

    @property
    def thinking_status(self) -> str | None:
        """Short label shown while the current turn has no visible text."""

        if not self.is_busy:
            return None
        last = self.messages[-1] if self.messages else None
        if last is None or last.role != "assistant":
            return THINKING_LABEL
        if last.text.strip():
            return None
        for part in reversed(last.tool_parts):
            if part.state.in_flight:
                return tool_status_label(part.tool_name)
        return THINKING_LABEL

    # Sending -------------------------------------------------------------
    def send_message(
        self,
        text: str,
        *,
        ocr_context: str | None = None,
        on_update: UpdateCallback | None = None,
    ) -> bool:
        """Send ``text`` and stream the reply into :attr:`messages`.

        ``ocr_context`` is forwarded with this request only and never becomes
        part of the visible message.

        Returns ``False`` without any network call when the text is blank,
        the caller has no business context and is not an admin, or another
        request is still in flight.
        """

        cleaned = (text or "").strip()
        if not cleaned or not self.can_send:
            return False
        if self.is_busy:
            logger.info("Ignoring send while a request is %s", self.status.value)
            return False

        self.status = ChatStatus.SUBMITTED
        self.error_message = None
        self._generation += 1
        generation = self._generation
        cancel_event = threading.Event()
        self._cancel_event = cancel_event

        self._ensure_session(cleaned)
        if generation != self._generation:
            return True

        self.messages.append(ConversationMessage.user(cleaned))
        self._notify(on_update)

        assistant = ConversationMessage.assistant()
        assembler = StreamAssembler(assistant)
        appended = False
        try:
            events = self.client.stream_chat(
                messages=list(self.messages),
                business_id=self.business_id,
                session_id=self.session_id,
                page_context=self.page_context,
                ocr_context=ocr_context,
                cancel_event=cancel_event,
            )
            for event in events:
                if generation != self._generation:
                    logger.debug("Dropping events from an abandoned stream")
                    break
                if self.status is ChatStatus.SUBMITTED:
                    self.status = ChatStatus.STREAMING
                if not assembler.apply(event):
                    continue
                if not appended:
                    self.messages.append(assistant)
                    appended = True
                self._notify(on_update)
        except (requests.RequestException, ValueError) as exc:
            if generation == self._generation:
                logger.warning("Chat request failed: %s", exc)
                self.status = ChatStatus.ERROR
                self.error_message = GENERIC_ERROR_MESSAGE
                self._notify(on_update)
            return True
        finally:
            if self._cancel_event is cancel_event:
                self._cancel_event = None

        if generation == self._generation:
            if not assembler.finished:
                logger.debug("Chat stream ended without a finish event")
            self.status = ChatStatus.READY
            self._notify(on_update)
        return True

    def _ensure_session(self, first_text: str) -> None:
        if self.session_id:
            return
        try:
            self.session_id = self.client.create_session(
                self.business_id,
                title=first_text[:SESSION_TITLE_CHARS],
            )
        except (requests.RequestException, ValueError):
            logger.warning("Could not create chat session; sending without one", exc_info=True)
            self.session_id = None

    def _notify(self, on_update: UpdateCallback | None) -> None:
        if on_update is not None:
            on_update(self)

    # Lifecycle -----------------------------------------------------------
    def restore_history(self) -> bool:
        """Adopt the most recent server session; return ``True`` if restored."""

        self.loading_history = True
        try:
            try:
                snapshot = self.client.fetch_latest_session()
            except (requests.RequestException, ValueError):
                logger.warning("Could not load chat history; starting fresh", exc_info=True)
                return False
            if snapshot.session is None or not snapshot.messages:
                return False
            if self.messages or self.is_busy:
                return False
            self.session_id = snapshot.session.id
            self.messages = [record.to_message() for record in snapshot.messages]
            self.status = ChatStatus.READY
            return True
        finally:
            self.loading_history = False

    def stop(self) -> None:
        """Abort the in-flight request, if any."""

        self._generation += 1
        if self._cancel_event is not None:
            self._cancel_event.set()
            self._cancel_event = None
        if self.is_busy:
            self.status = ChatStatus.READY

    def clear_chat(self) -> None:
        """Reset the conversation locally and delete the server session."""

        self.stop()
        self.messages = []
        self.session_id = None
        self.error_message = None
        self.status = ChatStatus.IDLE
        try:
            self.client.delete_session()
        except (requests.RequestException, ValueError):
            logger.warning("Could not delete chat session", exc_info=True)

    def close(self) -> None:
        """Teardown hook: abort any stream before the owner drops this object."""

        self.stop()


__all__ = ["ChatConversation", "ChatStatus", "GENERIC_ERROR_MESSAGE", "THINKING_LABEL"]
