"""Debounced search over the current conversation and the stored history."""

from __future__ import annotations

import html
import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence, TYPE_CHECKING

import requests

from models import ConversationMessage, HistorySearchHit
from services.message_content import display_text


if TYPE_CHECKING:
    from api_client import DashboardApiClient


logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3
MIN_QUERY_LENGTH = 2
SNIPPET_RADIUS = 60


@dataclass(frozen=True)
class LocalSearchHit:
    message_id: str
    role: str
    snippet: str


def _query_pattern(query: str) -> re.Pattern[str]:
    return re.compile(re.escape(query), re.IGNORECASE)


def make_snippet(text: str, query: str, *, radius: int = SNIPPET_RADIUS) -> str:
    """Cut a window of ``text`` around the first match of ``query``."""

    flat = " ".join(text.split())
    match = _query_pattern(query).search(flat) if query else None
    if match is None:
        return flat[: radius * 2] + ("…" if len(flat) > radius * 2 else "")
    start = max(0, match.start() - radius)
    end = min(len(flat), match.end() + radius)
    snippet = flat[start:end]
    if start > 0:
        snippet = "…" + snippet
    if end < len(flat):
        snippet = snippet + "…"
    return snippet


def highlight_segments(text: str, query: str) -> list[tuple[str, bool]]:
    """Split ``text`` into ``(segment, matched)`` pairs, case-insensitively."""

    if not query:
        return [(text, False)] if text else []
    segments: list[tuple[str, bool]] = []
    cursor = 0
    for match in _query_pattern(query).finditer(text):
        if match.start() > cursor:
            segments.append((text[cursor:match.start()], False))
        segments.append((match.group(0), True))
        cursor = match.end()
    if cursor < len(text):
        segments.append((text[cursor:], False))
    return segments


def highlight_html(text: str, query: str) -> str:
    return "".join(
        f"<mark>{html.escape(segment)}</mark>" if matched else html.escape(segment)
        for segment, matched in highlight_segments(text, query)
    )


def search_messages(messages: Iterable[ConversationMessage], query: str) -> list[LocalSearchHit]:
    """Case-insensitive substring filter over the loaded conversation."""

    needle = query.casefold()
    hits: list[LocalSearchHit] = []
    for message in messages:
        text = display_text(message)
        if needle and needle in text.casefold():
            hits.append(LocalSearchHit(message.id, message.role, make_snippet(text, query)))
    return hits


TimerFactory = Callable[..., threading.Timer]


class HistorySearch:
    """Search state with a debounced, generation-checked server query.

    Each query change bumps a generation counter; a server response is kept
    only if its generation is still current when it arrives.
    """

    def __init__(
        self,
        client: "DashboardApiClient",
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        min_length: int = MIN_QUERY_LENGTH,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.client = client
        self.debounce_seconds = debounce_seconds
        self.min_length = min_length
        self._timer_factory = timer_factory
        self.query = ""
        self.local_results: list[LocalSearchHit] = []
        self.server_results: list[HistorySearchHit] = []
        self.searching = False
        self._generation = 0
        self._timer = None
        self._pending: tuple[int, str] | None = None

    @property
    def has_results(self) -> bool:
        return bool(self.local_results or self.server_results)

    def update_query(self, query: str, messages: Sequence[ConversationMessage] = ()) -> None:
        cleaned = (query or "").strip()
        if cleaned == self.query:
            if len(cleaned) >= self.min_length:
                self.local_results = search_messages(messages, cleaned)
            return
        self.query = cleaned
        self._generation += 1
        self._cancel_timer()
        if len(cleaned) < self.min_length:
            self.local_results = []
            self.server_results = []
            self.searching = False
            return
        self.local_results = search_messages(messages, cleaned)
        generation = self._generation
        self._pending = (generation, cleaned)
        self.searching = True
        timer = self._timer_factory(self.debounce_seconds, self._run_search, args=(generation, cleaned))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def flush(self) -> None:
        """Run the pending server search now instead of waiting."""

        pending = self._pending
        if pending is None:
            return
        self._cancel_timer()
        self._run_search(*pending)

    def reset(self) -> None:
        self.update_query("")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None

    def _run_search(self, generation: int, query: str) -> None:
        if generation != self._generation:
            return
        self._pending = None
        try:
            hits = self.client.search_history(query)
        except (requests.RequestException, ValueError):
            logger.warning("History search failed for %r", query, exc_info=True)
            hits = []
        if generation != self._generation:
            logger.debug("Discarding stale search results for %r", query)
            return
        self.server_results = hits
        self.searching = False


__all__ = [
    "HistorySearch",
    "LocalSearchHit",
    "MIN_QUERY_LENGTH",
    "highlight_html",
    "highlight_segments",
    "make_snippet",
    "search_messages",
]
