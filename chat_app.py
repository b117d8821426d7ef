"""Streamlit page hosting the business assistant chat."""

from __future__ import annotations

import hashlib
import logging
import mimetypes

import requests
import streamlit as st

from api_client import DashboardApiClient
from app_settings import AppSettings, load_settings
from services.action_card import ActionCardRegistry
from services.attachments import (
    ACCEPTED_EXTENSIONS,
    MAX_FILE_SIZE,
    MAX_FILES,
    PROCESSING_LABEL,
    Attachment,
    prepare_document_turn,
    select_attachments,
)
from services.conversation import ChatConversation
from services.history_search import HistorySearch
from tabs import chat as chat_tab
from tabs import search as search_tab
from ui_components import inject_rtl_styles
from utils_streamlit import show_api_error, trigger_rerun


logger = logging.getLogger(__name__)

USER_SUGGESTIONS = (
    "איך החודש שלי? תן סיכום",
    "מי הספק הכי יקר שלי?",
    "מה ההכנסות היום?",
    "השווה לי בין החודש לחודש שעבר",
    "מה המצב מול היעדים?",
    "כמה אחוז עלות העובדים מההכנסות?",
)

ADMIN_SUGGESTIONS = (
    "תן סקירה של כל העסקים",
    "איזה עסק הכי רווחי החודש?",
    "השווה עלות עובדים בין העסקים",
    "איפה יש חריגה מהיעדים?",
    "מה סך ההוצאות החודש לכל העסקים?",
    "איזה ספקים הכי יקרים ברמת מערכת?",
)


def _matches_settings(conversation: ChatConversation, settings: AppSettings) -> bool:
    return conversation.business_id == settings.business_id and conversation.is_admin == settings.is_admin


def _init_state(settings: AppSettings) -> None:
    existing: ChatConversation | None = st.session_state.get("conversation")
    if existing is not None:
        if _matches_settings(existing, settings):
            return
        logger.info("Business context changed; starting a new conversation")
        existing.close()
    client = DashboardApiClient(
        settings.api_base,
        settings.api_token,
        timeout=settings.request_timeout,
        stream_timeout=settings.stream_timeout,
    )
    st.session_state.api_client = client
    st.session_state.conversation = ChatConversation(
        client,
        business_id=settings.business_id,
        is_admin=settings.is_admin,
        page_context=settings.page_context,
    )
    st.session_state.action_cards = ActionCardRegistry(client)
    st.session_state.history_search = HistorySearch(
        client,
        debounce_seconds=settings.search_debounce_seconds,
    )
    st.session_state.history_restored = False
    st.session_state.last_audio_digest = None
    st.session_state.setdefault("uploader_nonce", 0)


def _restore_history_once(conversation: ChatConversation) -> None:
    if st.session_state.get("history_restored"):
        return
    with st.spinner("טוען שיחה קודמת..."):
        restored = conversation.restore_history()
    st.session_state.history_restored = True
    if restored:
        logger.info("Restored session %s with %d messages", conversation.session_id, len(conversation.messages))


def _render_header(conversation: ChatConversation, cards: ActionCardRegistry, search: HistorySearch) -> None:
    status_col, clear_col = st.columns([4, 1])
    status_col.markdown("🟢 עוזר AI מוכן")
    if clear_col.button("🗑️ נקה שיחה", key="clear_chat"):
        conversation.clear_chat()
        cards.clear()
        search.reset()
        trigger_rerun()


def _render_welcome(is_admin: bool) -> str | None:
    """Render suggestion buttons; return the clicked suggestion, if any."""

    st.markdown("### שלום! אני העוזר העסקי שלך")
    st.caption("שאלו אותי על הכנסות, הוצאות, ספקים ויעדים, או שלחו פרטי חשבונית ואכין רשומה לאישור.")
    suggestions = ADMIN_SUGGESTIONS if is_admin else USER_SUGGESTIONS
    columns = st.columns(2)
    for index, text in enumerate(suggestions):
        if columns[index % 2].button(text, key=f"suggestion-{index}", use_container_width=True):
            return text
    return None


def _read_voice_input(client: DashboardApiClient) -> str | None:
    audio = st.audio_input("הקלטה קולית", key="voice_input")
    if not audio:
        return None
    audio_bytes = audio.getvalue()
    digest = hashlib.sha1(audio_bytes).hexdigest()
    if digest == st.session_state.get("last_audio_digest"):
        return None
    st.session_state.last_audio_digest = digest
    try:
        with st.spinner("מתמלל..."):
            text = client.transcribe_audio(
                audio_bytes,
                filename=getattr(audio, "name", None) or "recording.wav",
                mime=getattr(audio, "type", None) or "audio/wav",
            )
    except (requests.RequestException, ValueError) as exc:
        show_api_error(exc)
        return None
    if not text:
        st.warning("לא זוהה דיבור בהקלטה")
        return None
    return text


def _read_attachments() -> list[Attachment]:
    uploads = st.file_uploader(
        f"צירוף חשבוניות ומסמכים (עד {MAX_FILES} קבצים, {MAX_FILE_SIZE // (1024 * 1024)}MB לקובץ)",
        type=list(ACCEPTED_EXTENSIONS),
        accept_multiple_files=True,
        key=f"attachments-{st.session_state.uploader_nonce}",
    )
    files = [
        Attachment(
            name=upload.name,
            mime=upload.type or mimetypes.guess_type(upload.name)[0] or "",
            content=upload.getvalue(),
        )
        for upload in uploads or []
    ]
    accepted, skipped = select_attachments(files)
    if skipped:
        st.warning("קבצים שלא צורפו (סוג לא נתמך, גדול מ-10MB או מעבר למגבלה): " + ", ".join(f.name for f in skipped))
    return accepted


def _send(
    conversation: ChatConversation,
    client: DashboardApiClient,
    text: str,
    attachments: list[Attachment],
) -> None:
    ocr_context: str | None = None
    if attachments:
        with st.spinner(PROCESSING_LABEL):
            turn = prepare_document_turn(client, text, attachments)
        st.session_state.uploader_nonce += 1
        if turn is None:
            st.error("שגיאה בזיהוי טקסט מהקבצים")
            return
        if turn.documents_dropped:
            st.warning("זיהוי הטקסט נכשל; נשלחה ההודעה בלבד")
        text = turn.display_text
        ocr_context = turn.ocr_context

    placeholder = st.empty()
    start = len(conversation.messages)

    def _on_update(current: ChatConversation) -> None:
        with placeholder.container():
            for message in current.messages[start:]:
                if message.role == "user":
                    chat_tab.render_message(message)
            chat_tab.render_pending_turn(current)

    conversation.send_message(text, ocr_context=ocr_context, on_update=_on_update)
    trigger_rerun()


def main() -> None:
    """Streamlit entry point for the assistant chat."""

    st.set_page_config(page_title="עוזר AI", page_icon="🤖", layout="wide")
    inject_rtl_styles()
    settings = load_settings()
    _init_state(settings)

    client: DashboardApiClient = st.session_state.api_client
    conversation: ChatConversation = st.session_state.conversation
    cards: ActionCardRegistry = st.session_state.action_cards
    search: HistorySearch = st.session_state.history_search

    _restore_history_once(conversation)

    with st.sidebar:
        search_tab.render_tab(search, conversation)

    pending: str | None = None
    if conversation.messages:
        _render_header(conversation, cards, search)
        chat_tab.render_tab(conversation, cards)
    else:
        pending = _render_welcome(settings.is_admin)

    disabled = not conversation.can_send or conversation.is_busy
    if not conversation.can_send:
        st.caption("יש לבחור עסק כדי לשוחח עם העוזר")
    attachments = _read_attachments() if not disabled else []
    prompt = st.chat_input("שאלו אותי על העסק...", disabled=disabled)
    if settings.enable_voice_input and not disabled:
        pending = pending or _read_voice_input(client)
    pending = prompt or pending
    if attachments and not pending and st.button("📎 שלח מסמכים", key="send_documents"):
        pending = ""

    if pending is not None and (pending or attachments):
        _send(conversation, client, pending, attachments)


if __name__ == "__main__":
    main()
