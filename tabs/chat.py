"""Chat message list renderer."""

from __future__ import annotations

import html

import streamlit as st

from models import ConversationMessage
from services.action_card import ActionCardRegistry
from services.conversation import ChatConversation, ChatStatus
from services.message_content import chart_data, display_text, proposed_action
from services.tool_steps import get_tool_steps
from ui_components import render_action_card, render_chart, render_thinking, render_tool_steps
from utils_streamlit import trigger_rerun


def render_message(
    message: ConversationMessage,
    *,
    cards: ActionCardRegistry | None = None,
    thinking_status: str | None = None,
    streaming: bool = False,
    st_module=st,
) -> None:
    """Render one message bubble.

    Action cards are only interactive once the turn has finished streaming.
    """

    with st_module.chat_message(message.role):
        if message.role == "user":
            st_module.markdown(html.escape(message.text))
            return
        render_tool_steps(get_tool_steps(message), streaming=streaming, st_module=st_module)
        text = display_text(message)
        if text:
            st_module.markdown(text)
        elif thinking_status:
            render_thinking(thinking_status, st_module=st_module)
        chart = chart_data(message)
        if chart is not None:
            render_chart(chart, st_module=st_module)
        action = proposed_action(message)
        if action is not None and cards is not None and not streaming:
            card = cards.card_for(message.id, action)
            if render_action_card(card, key=f"action-{message.id}", st_module=st_module):
                trigger_rerun(st_module)


def render_pending_turn(conversation: ChatConversation, *, st_module=st) -> None:
    """Render the in-flight turn: the streaming reply or a thinking bubble."""

    last = conversation.messages[-1] if conversation.messages else None
    if last is not None and last.role == "assistant":
        render_message(
            last,
            thinking_status=conversation.thinking_status,
            streaming=True,
            st_module=st_module,
        )
        return
    label = conversation.thinking_status
    if label:
        with st_module.chat_message("assistant"):
            render_thinking(label, st_module=st_module)


def render_tab(conversation: ChatConversation, cards: ActionCardRegistry, *, st_module=st) -> None:
    """Render the full conversation."""

    for message in conversation.messages:
        render_message(message, cards=cards, st_module=st_module)
    if conversation.status is ChatStatus.ERROR and conversation.error_message:
        with st_module.chat_message("assistant"):
            st_module.error(conversation.error_message)
