"""HTTP client helpers for the dashboard assistant API."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Sequence

import requests

from models import ActionResult, ConversationMessage, HistorySearchHit, SessionSnapshot
from services.chat_stream import iter_sse_events


logger = logging.getLogger(__name__)

CHAT_PATH = "/api/ai/chat"
SESSIONS_PATH = "/api/ai/sessions"
ACTIONS_PATH = "/api/ai/actions"
TRANSCRIBE_PATH = "/api/ai/transcribe"
OCR_PATH = "/api/ai/ocr"


@dataclass
class DashboardApiClient:
    """Client for the chat, session, action and transcription endpoints."""

    base_url: str
    api_token: str | None = None
    timeout: float = 30.0
    stream_timeout: float = 120.0

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # Chat ----------------------------------------------------------------
    def stream_chat(
        self,
        *,
        messages: Sequence[ConversationMessage],
        business_id: str | None,
        session_id: str | None,
        page_context: str | None = None,
        ocr_context: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[dict[str, Any]]:
        """POST the conversation and yield decoded stream events.

        ``ocr_context`` carries text extracted from attached documents; the
        server appends it to the last user message for the model only.

        The response is closed as soon as ``cancel_event`` is set or the
        stream finishes.
        """

        body: dict[str, Any] = {
            "messages": [message.to_payload() for message in messages],
            "businessId": business_id,
            "sessionId": session_id,
            "pageContext": page_context or "",
        }
        if ocr_context:
            body["ocrContext"] = ocr_context
        resp = requests.post(
            self._url(CHAT_PATH),
            json=body,
            headers=self._headers(),
            timeout=self.stream_timeout,
            stream=True,
        )
        try:
            resp.raise_for_status()
            # text/event-stream carries no charset, so decode the raw bytes as UTF-8.
            for event in iter_sse_events(resp.iter_lines()):
                if cancel_event is not None and cancel_event.is_set():
                    logger.debug("Chat stream cancelled by caller")
                    return
                yield event
        finally:
            resp.close()

    # Sessions ------------------------------------------------------------
    def fetch_latest_session(self) -> SessionSnapshot:
        """Return the most recent session together with its stored messages."""

        resp = requests.get(
            self._url(SESSIONS_PATH),
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, Mapping):
            return SessionSnapshot(session=None)
        return SessionSnapshot.from_dict(payload)

    def create_session(self, business_id: str | None, *, title: str | None = None) -> str | None:
        """Create a session for ``business_id`` and return its identifier."""

        body: dict[str, Any] = {"businessId": business_id}
        if title:
            body["title"] = title[:100]
        resp = requests.post(
            self._url(SESSIONS_PATH),
            json=body,
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        session_id = payload.get("sessionId") if isinstance(payload, Mapping) else None
        return str(session_id) if session_id else None

    def delete_session(self) -> None:
        resp = requests.delete(
            self._url(SESSIONS_PATH),
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()

    def search_history(self, query: str) -> list[HistorySearchHit]:
        """Search the full persisted chat history."""

        resp = requests.patch(
            self._url(SESSIONS_PATH),
            json={"query": query},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        if isinstance(payload, Mapping):
            payload = payload.get("results") or []
        if not isinstance(payload, list):
            return []
        return [HistorySearchHit.from_dict(entry) for entry in payload if isinstance(entry, Mapping)]

    # Actions -------------------------------------------------------------
    def execute_action(self, payload: Mapping[str, Any]) -> ActionResult:
        """Execute a confirmed action.

        Non-2xx responses are returned as a failed :class:`ActionResult`
        rather than raised, so the caller can show the server message.
        """

        resp = requests.post(
            self._url(ACTIONS_PATH),
            json=dict(payload),
            headers=self._headers(),
            timeout=self.timeout,
        )
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, Mapping):
            body = {}
        ok = 200 <= resp.status_code < 300 and body.get("success", True) is not False
        message = body.get("message")
        error = body.get("error")
        return ActionResult(
            ok=ok,
            status_code=resp.status_code,
            message=str(message) if message else None,
            error=str(error) if error else None,
        )

    # Voice ---------------------------------------------------------------
    def transcribe_audio(self, audio: bytes, *, filename: str = "recording.wav", mime: str = "audio/wav") -> str:
        """Upload a recording and return the transcribed text."""

        resp = requests.post(
            self._url(TRANSCRIBE_PATH),
            files={"audio": (filename, audio, mime)},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        text = payload.get("text") if isinstance(payload, Mapping) else None
        return text.strip() if isinstance(text, str) else ""

    # Documents -----------------------------------------------------------
    def ocr_document(self, content: bytes, *, filename: str, mime: str) -> str:
        """Upload an image or PDF and return its recognised text.

        An empty string means the server found no text (e.g. a scanned PDF).
        """

        resp = requests.post(
            self._url(OCR_PATH),
            files={"file": (filename, content, mime)},
            headers=self._headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        text = payload.get("text") if isinstance(payload, Mapping) else None
        return text.strip() if isinstance(text, str) else ""


__all__ = [
    "ACTIONS_PATH",
    "CHAT_PATH",
    "DashboardApiClient",
    "OCR_PATH",
    "SESSIONS_PATH",
    "TRANSCRIBE_PATH",
]
