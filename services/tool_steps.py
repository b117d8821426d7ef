"""Tool-step extraction for assistant messages.

Turns the tool invocation parts of an assistant message into a short list of
display steps: one per distinct ``(tool name, input)`` pair, in the order the
model first invoked them, each with a Hebrew label, an icon, an optional
detail line and, once the tool finished, a one-line result summary.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from models import ConversationMessage, ToolPart, ToolState


logger = logging.getLogger(__name__)

PROPOSE_ACTION_TOOL = "proposeAction"
ERROR_SNIPPET_CHARS = 80

HEBREW_MONTHS = (
    "",
    "ינואר",
    "פברואר",
    "מרץ",
    "אפריל",
    "מאי",
    "יוני",
    "יולי",
    "אוגוסט",
    "ספטמבר",
    "אוקטובר",
    "נובמבר",
    "דצמבר",
)


def _month_year_detail(tool_input: Mapping[str, Any]) -> str:
    month = tool_input.get("month")
    year = tool_input.get("year")
    if not month or not year:
        return ""
    if isinstance(month, int) and 0 < month < len(HEBREW_MONTHS):
        return f"{HEBREW_MONTHS[month]}/{year}"
    return f"{month}/{year}"


def _field_detail(key: str) -> Callable[[Mapping[str, Any]], str]:
    def _detail(tool_input: Mapping[str, Any]) -> str:
        value = tool_input.get(key)
        return str(value) if value else ""

    return _detail


@dataclass(frozen=True)
class ToolDisplay:
    label: str
    icon: str
    status: str
    detail: Callable[[Mapping[str, Any]], str] | None = None


TOOL_DISPLAY: dict[str, ToolDisplay] = {
    "getMonthlySummary": ToolDisplay("שליפת סיכום חודשי", "📊", "שולף סיכום חודשי...", _month_year_detail),
    "queryDatabase": ToolDisplay("שאילתה מבסיס הנתונים", "🔍", "מחפש בבסיס הנתונים...", _field_detail("explanation")),
    "getBusinessSchedule": ToolDisplay("בדיקת לוח עבודה", "📅", "בודק לוח עבודה..."),
    "getGoals": ToolDisplay("בדיקת יעדים עסקיים", "🎯", "בודק יעדים...", _month_year_detail),
    "calculate": ToolDisplay("חישוב מתמטי", "🧮", "מחשב...", _field_detail("expression")),
    PROPOSE_ACTION_TOOL: ToolDisplay("הכנת הצעה", "💡", "מכין הצעה..."),
}

GENERIC_TOOL_ICON = "⚙️"
GENERIC_TOOL_STATUS = "מפעיל כלי..."


def tool_display(tool_name: str) -> ToolDisplay:
    """Return display metadata, falling back to a generic entry."""

    return TOOL_DISPLAY.get(tool_name) or ToolDisplay(tool_name, GENERIC_TOOL_ICON, GENERIC_TOOL_STATUS)


def tool_status_label(tool_name: str) -> str:
    return tool_display(tool_name).status


def format_number(value: float) -> str:
    """Format a number with thousands separators, at most three decimals."""

    number = float(value)
    if number.is_integer():
        return f"{int(number):,}"
    return f"{number:,.3f}".rstrip("0").rstrip(".")


def _truncate(text: str, limit: int = ERROR_SNIPPET_CHARS) -> str:
    text = text.strip()
    if len(text) > limit:
        return f"{text[:limit].rstrip()}…"
    return text


def _coerce_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _summarize_monthly(output: Mapping[str, Any]) -> str:
    income = output.get("total_income")
    if income is None:
        actuals = output.get("actuals")
        if isinstance(actuals, Mapping):
            income = actuals.get("totalIncome")
    amount = _coerce_number(income)
    if amount is not None:
        # Zero income is reported as "no data yet"; a real zero day reads the same.
        if amount == 0:
            return "אין נתונים עדיין"
        return f"הכנסות: ₪{format_number(amount)}"
    if output.get("businessName"):
        return f"עסק: {output['businessName']}"
    return "נתונים התקבלו"


def _summarize_query(output: Mapping[str, Any]) -> str:
    rows = output.get("rows")
    if not isinstance(rows, Sequence) or isinstance(rows, str):
        return "נתונים התקבלו"
    total = output.get("totalRows")
    count = int(total) if isinstance(total, (int, float)) and not isinstance(total, bool) else len(rows)
    return f"{count} {'תוצאה' if count == 1 else 'תוצאות'}"


def _summarize_calculation(output: Mapping[str, Any]) -> str:
    if "result" in output and output["result"] is not None:
        return f"תוצאה: {output['result']}"
    return "חושב"


_SUMMARIZERS: dict[str, Callable[[Mapping[str, Any]], str]] = {
    "getMonthlySummary": _summarize_monthly,
    "queryDatabase": _summarize_query,
    "getBusinessSchedule": lambda _output: "לוח עבודה התקבל",
    "getGoals": lambda _output: "יעדים התקבלו",
    "calculate": _summarize_calculation,
}


def summarize_output(tool_name: str, output: Mapping[str, Any] | None) -> str:
    """Return a one-line summary of a finished tool call."""

    if not isinstance(output, Mapping):
        return ""
    error = output.get("error")
    if error:
        return f"שגיאה: {_truncate(str(error))}"
    summarizer = _SUMMARIZERS.get(tool_name)
    if summarizer is None:
        return "בוצע"
    return summarizer(output)


def dedup_key(tool_name: str, tool_input: Mapping[str, Any] | None) -> str:
    """Identity of a tool invocation: name plus canonical input JSON."""

    serialized = json.dumps(dict(tool_input or {}), sort_keys=True, ensure_ascii=False, default=str)
    return f"{tool_name}:{serialized}"


@dataclass(frozen=True)
class ToolStep:
    tool_name: str
    label: str
    icon: str
    detail: str
    state: ToolState
    result_summary: str = ""

    @property
    def is_done(self) -> bool:
        return self.state is ToolState.OUTPUT_AVAILABLE

    @property
    def is_active(self) -> bool:
        return self.state.in_flight


def _build_step(part: ToolPart) -> ToolStep:
    display = tool_display(part.tool_name)
    detail = ""
    if display.detail is not None:
        try:
            detail = display.detail(part.input)
        except (TypeError, ValueError):
            logger.debug("Could not derive detail for %s", part.tool_name, exc_info=True)
    summary = summarize_output(part.tool_name, part.output) if part.is_done else ""
    return ToolStep(
        tool_name=part.tool_name,
        label=display.label,
        icon=display.icon,
        detail=detail,
        state=part.state,
        result_summary=summary,
    )


def get_tool_steps(message: ConversationMessage) -> list[ToolStep]:
    """Extract the deduplicated tool steps of an assistant message."""

    if message.role != "assistant":
        return []
    steps: list[ToolStep] = []
    seen: set[str] = set()
    for part in message.parts:
        if not isinstance(part, ToolPart) or part.tool_name == PROPOSE_ACTION_TOOL:
            continue
        key = dedup_key(part.tool_name, part.input)
        if key in seen:
            continue
        seen.add(key)
        steps.append(_build_step(part))
    return steps


@dataclass(frozen=True)
class ToolStepGroup:
    tool_name: str
    label: str
    icon: str
    steps: tuple[ToolStep, ...] = field(default_factory=tuple)

    @property
    def count(self) -> int:
        return len(self.steps)

    @property
    def all_done(self) -> bool:
        return all(step.is_done for step in self.steps)


def group_tool_steps(steps: Sequence[ToolStep]) -> list[ToolStepGroup]:
    """Collapse runs of consecutive steps that share a tool name."""

    groups: list[ToolStepGroup] = []
    for step in steps:
        if groups and groups[-1].tool_name == step.tool_name:
            last = groups[-1]
            groups[-1] = ToolStepGroup(last.tool_name, last.label, last.icon, last.steps + (step,))
        else:
            groups.append(ToolStepGroup(step.tool_name, step.label, step.icon, (step,)))
    return groups


def steps_headline(steps: Sequence[ToolStep], *, streaming: bool = False) -> str:
    """Headline shown above a collapsed tool-step list."""

    if not steps:
        return ""
    if not streaming and all(step.is_done for step in steps):
        noun = "פעולה" if len(steps) == 1 else "פעולות"
        return f"ביצעתי {len(steps)} {noun} כדי לענות"
    active = next((step for step in steps if not step.is_done), None)
    if active is None:
        return "מעבד..."
    headline = f"{active.icon} {active.label}"
    if active.detail:
        headline = f"{headline} — {active.detail}"
    return headline


__all__ = [
    "PROPOSE_ACTION_TOOL",
    "TOOL_DISPLAY",
    "ToolDisplay",
    "ToolStep",
    "ToolStepGroup",
    "dedup_key",
    "format_number",
    "get_tool_steps",
    "group_tool_steps",
    "steps_headline",
    "summarize_output",
    "tool_display",
    "tool_status_label",
]
