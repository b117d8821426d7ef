"""Tests for :mod:`ui_components`."""

from __future__ import annotations

from contextlib import contextmanager

from models import ActionResult, ChartSpec, ProposedAction, ToolState
from services.action_card import ActionCard, CardStatus
from services.tool_steps import ToolStep
from ui_components import format_step_line, prepare_chart_rows, render_action_card, render_tool_steps


class RecordingColumn:
    def __init__(self, owner, clicks):
        self.owner = owner
        self.clicks = clicks

    def markdown(self, body, **_kwargs):
        self.owner.calls.append(("markdown", body))

    def button(self, label, *, key, disabled=False, **_kwargs):
        self.owner.calls.append(("button", label, disabled))
        return key in self.clicks and not disabled


class RecordingStreamlit:
    def __init__(self, clicks=()):
        self.calls: list[tuple] = []
        self.clicks = set(clicks)

    @contextmanager
    def _block(self, kind, *args):
        self.calls.append((kind,) + args)
        yield self

    def expander(self, label, expanded=False):
        return self._block("expander", label)

    def container(self, border=False):
        return self._block("container")

    def spinner(self, text):
        return self._block("spinner", text)

    def columns(self, spec):
        count = spec if isinstance(spec, int) else len(spec)
        return [RecordingColumn(self, self.clicks) for _ in range(count)]

    def __getattr__(self, name):
        def _record(*args, **_kwargs):
            self.calls.append((name,) + args)

        return _record


def _step(done: bool, **overrides) -> ToolStep:
    values = dict(
        tool_name="getMonthlySummary",
        label="שליפת סיכום חודשי",
        icon="📊",
        detail="מרץ/2026",
        state=ToolState.OUTPUT_AVAILABLE if done else ToolState.INPUT_AVAILABLE,
        result_summary="הכנסות: ₪1,200" if done else "",
    )
    values.update(overrides)
    return ToolStep(**values)


def test_prepare_chart_rows_uses_series_labels() -> None:
    chart = ChartSpec.from_dict(
        {
            "type": "bar",
            "title": "הכנסות מול הוצאות",
            "xAxisKey": "month",
            "data": [{"month": "ינואר", "income": 100, "expenses": 40}],
            "dataKeys": [
                {"key": "income", "label": "הכנסות", "color": "#22c55e"},
                {"key": "expenses", "label": "הוצאות", "color": "#ef4444"},
            ],
        }
    )

    assert prepare_chart_rows(chart) == [{"month": "ינואר", "הכנסות": 100, "הוצאות": 40}]


def test_format_step_line_escapes_and_summarizes() -> None:
    done = format_step_line(_step(True, detail="<script>"))
    pending = format_step_line(_step(False))

    assert "&lt;script&gt;" in done
    assert "✓" in done
    assert "→ הכנסות: ₪1,200" in done
    assert "⏳" in pending
    assert "summary" not in pending


def test_render_tool_steps_groups_consecutive_calls() -> None:
    fake = RecordingStreamlit()

    render_tool_steps([_step(True), _step(True, detail="אפריל/2026")], st_module=fake)

    assert fake.calls[0] == ("expander", "ביצעתי 2 פעולות כדי לענות")
    assert any(call[0] == "caption" and "×2" in call[1] for call in fake.calls)


def test_render_action_card_confirm_click() -> None:
    class Client:
        def execute_action(self, payload):
            return ActionResult(ok=True, status_code=200, message="נוצר")

    action = ProposedAction.from_dict(
        {"actionType": "daily_entry", "businessId": "biz-1", "dailyEntryData": {"total_register": 10}}
    )
    card = ActionCard(action, Client())
    fake = RecordingStreamlit(clicks={"card-confirm"})

    changed = render_action_card(card, key="card", st_module=fake)

    assert changed is True
    assert card.status is CardStatus.SUCCESS


def test_render_action_card_disables_confirm_when_supplier_missing() -> None:
    action = ProposedAction.from_dict(
        {
            "actionType": "expense",
            "expenseData": {"supplier_name": "חדש"},
            "supplierLookup": {"found": False, "name": "חדש", "needsCreation": True},
        }
    )
    card = ActionCard(action, client=None)
    fake = RecordingStreamlit(clicks={"card-confirm"})

    changed = render_action_card(card, key="card", st_module=fake)

    assert changed is False
    assert ("button", "יש ליצור ספק תחילה", True) in fake.calls
    assert any(call[0] == "warning" for call in fake.calls)
