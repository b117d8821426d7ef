"""History search panel renderer."""

from __future__ import annotations

import html

import streamlit as st

from services.conversation import ChatConversation
from services.history_search import HistorySearch, highlight_html

ROLE_LABELS = {"user": "אתה", "assistant": "עוזר AI"}


def render_tab(search: HistorySearch, conversation: ChatConversation, *, st_module=st) -> None:
    """Render the search box and the merged local and server results."""

    query = st_module.text_input("חיפוש בהיסטוריה", key="history_search_query", placeholder="הקלידו לפחות 2 תווים")
    search.update_query(query, conversation.messages)
    # A rerun happens once per submitted query and nothing re-renders when the timer fires.
    if search.searching:
        with st_module.spinner("מחפש..."):
            search.flush()
    if len(search.query) < search.min_length:
        return
    if not search.has_results:
        st_module.caption("לא נמצאו תוצאות")
        return

    if search.local_results:
        st_module.markdown("**בשיחה הנוכחית**")
        for hit in search.local_results:
            role = html.escape(ROLE_LABELS.get(hit.role, hit.role))
            st_module.markdown(
                f"<div><strong>{role}:</strong> {highlight_html(hit.snippet, search.query)}</div>",
                unsafe_allow_html=True,
            )

    if search.server_results:
        st_module.markdown("**בכל ההיסטוריה**")
        for hit in search.server_results:
            role = html.escape(ROLE_LABELS.get(hit.role, hit.role))
            origin = " · ".join(part for part in (hit.session_title, hit.session_date) if part)
            if origin:
                st_module.caption(origin)
            st_module.markdown(
                f"<div><strong>{role}:</strong> {highlight_html(hit.snippet, search.query)}</div>",
                unsafe_allow_html=True,
            )
