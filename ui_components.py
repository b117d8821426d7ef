"""Reusable Streamlit UI primitives for the assistant chat."""

from __future__ import annotations

import html
from typing import Any, Sequence

import streamlit as st

from models import ChartSpec
from services.action_card import ActionCard, CardStatus, action_detail_rows, confidence_color
from services.tool_steps import ToolStep, group_tool_steps, steps_headline


RTL_CSS = """
<style>
.stApp, .stChatMessage, .stMarkdown, .stExpander { direction: rtl; text-align: right; }
.tool-step { font-size: 0.85rem; opacity: 0.8; margin: 0.1rem 0; }
.tool-step .summary { opacity: 0.6; margin-right: 1.4rem; }
mark { background: rgba(250, 204, 21, 0.35); color: inherit; padding: 0 2px; }
</style>
"""

_STEP_MARKERS = {True: "✓", False: "⏳"}


def inject_rtl_styles(st_module=st) -> None:
    st_module.markdown(RTL_CSS, unsafe_allow_html=True)


def prepare_chart_rows(chart: ChartSpec) -> list[dict[str, Any]]:
    """Rows keyed by the x-axis value and each series' display label."""

    rows: list[dict[str, Any]] = []
    for record in chart.data:
        row: dict[str, Any] = {chart.x_axis_key: record.get(chart.x_axis_key)}
        for data_key in chart.data_keys:
            row[data_key.label] = record.get(data_key.key)
        rows.append(row)
    return rows


def render_chart(chart: ChartSpec, *, st_module=st) -> None:
    rows = prepare_chart_rows(chart)
    if not rows or not chart.data_keys:
        return
    if chart.title:
        st_module.caption(chart.title)
    st_module.bar_chart(
        rows,
        x=chart.x_axis_key,
        y=[data_key.label for data_key in chart.data_keys],
        color=[data_key.color for data_key in chart.data_keys],
    )


def format_step_line(step: ToolStep) -> str:
    line = f"{step.icon} {html.escape(step.label)} {_STEP_MARKERS[step.is_done]}"
    if step.detail:
        line += f" — {html.escape(step.detail)}"
    if step.is_done and step.result_summary:
        line += f"<div class='summary'>→ {html.escape(step.result_summary)}</div>"
    return f"<div class='tool-step'>{line}</div>"


def render_tool_steps(steps: Sequence[ToolStep], *, streaming: bool = False, st_module=st) -> None:
    """Render a collapsible tool-step timeline."""

    if not steps:
        return
    with st_module.expander(steps_headline(steps, streaming=streaming), expanded=False):
        for group in group_tool_steps(steps):
            if group.count > 1:
                marker = _STEP_MARKERS[group.all_done]
                st_module.caption(f"{group.icon} {group.label} ×{group.count} {marker}")
            for step in group.steps:
                st_module.markdown(format_step_line(step), unsafe_allow_html=True)


def render_thinking(label: str, *, st_module=st) -> None:
    st_module.markdown(f"_{html.escape(label)}_")


def render_action_card(card: ActionCard, *, key: str, st_module=st) -> bool:
    """Render a proposed action; return ``True`` when its state changed."""

    if card.is_terminal:
        if card.status is CardStatus.SUCCESS:
            st_module.success(f"✓ {card.result_message}")
        else:
            st_module.info(f"✗ {card.result_message}")
        return False

    action = card.action
    with st_module.container(border=True):
        header, confidence = st_module.columns([3, 1])
        header.markdown(f"**{card.title}**")
        color = confidence_color(action.confidence)
        confidence.markdown(f":{color}[ביטחון: {round(action.confidence * 100)}%]")
        if action.reasoning:
            st_module.caption(action.reasoning)
        if action.needs_supplier_creation:
            supplier = action.supplier_lookup.name if action.supplier_lookup else ""
            st_module.warning(
                f"שימו לב: הספק \"{supplier}\" לא נמצא במערכת. יש ליצור ספק חדש לפני אישור הפעולה."
            )
        for label, value, bold in action_detail_rows(action):
            shown = f"**{value}**" if bold else value
            st_module.markdown(f"{label}: {shown}")
        if card.status is CardStatus.ERROR and card.result_message:
            st_module.error(card.result_message)
        confirm_col, reject_col = st_module.columns(2)
        confirmed = confirm_col.button(
            card.confirm_label,
            key=f"{key}-confirm",
            disabled=not card.can_confirm,
            type="primary",
        )
        rejected = reject_col.button("ביטול", key=f"{key}-reject", disabled=not card.can_reject)
    if confirmed:
        with st_module.spinner("מאשר..."):
            return card.confirm()
    if rejected:
        return card.reject()
    return False


__all__ = [
    "format_step_line",
    "inject_rtl_styles",
    "prepare_chart_rows",
    "render_action_card",
    "render_chart",
    "render_thinking",
    "render_tool_steps",
]
