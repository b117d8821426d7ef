"""Human confirmation workflow for actions proposed by the assistant."""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, TYPE_CHECKING

import requests

from models import ProposedAction


if TYPE_CHECKING:
    from api_client import DashboardApiClient


logger = logging.getLogger(__name__)

ACTION_TITLES = {
    "expense": "הצעה ליצירת חשבונית",
    "payment": "הצעה ליצירת תשלום",
    "daily_entry": "הצעה ליצירת רישום יומי",
}

PAYMENT_METHOD_LABELS = {
    "cash": "מזומן",
    "check": "צ'ק",
    "bank_transfer": "העברה בנקאית",
    "credit_card": "כרטיס אשראי",
    "bit": "ביט",
    "paybox": "פייבוקס",
    "other": "אחר",
}

_HEBREW_MONTHS_GENITIVE = (
    "בינואר",
    "בפברואר",
    "במרץ",
    "באפריל",
    "במאי",
    "ביוני",
    "ביולי",
    "באוגוסט",
    "בספטמבר",
    "באוקטובר",
    "בנובמבר",
    "בדצמבר",
)

REJECTED_MESSAGE = "הפעולה בוטלה"
EXECUTION_FALLBACK_ERROR = "שגיאה ביצירת הרשומה"
NETWORK_ERROR_MESSAGE = "שגיאה בתקשורת עם השרת"
SUCCESS_FALLBACK_MESSAGE = "הרשומה נוצרה בהצלחה"
MISSING_VALUE = "—"


class CardStatus(str, Enum):
    PENDING = "pending"
    CONFIRMING = "confirming"
    SUCCESS = "success"
    ERROR = "error"
    REJECTED = "rejected"


def confidence_color(confidence: float) -> str:
    if confidence >= 0.9:
        return "green"
    if confidence >= 0.7:
        return "yellow"
    return "orange"


def format_currency(amount: float | None) -> str:
    if amount is None:
        return MISSING_VALUE
    return f"₪{amount:,.2f}"


def format_date(value: str | None) -> str:
    """Render ``YYYY-MM-DD`` as a long Hebrew date."""

    if not value:
        return MISSING_VALUE
    try:
        parsed = date.fromisoformat(value[:10])
    except ValueError:
        return value
    return f"{parsed.day} {_HEBREW_MONTHS_GENITIVE[parsed.month - 1]} {parsed.year}"


def _format_hours(hours: float) -> str:
    return f"{int(hours)}" if float(hours).is_integer() else f"{hours:g}"


def build_action_payload(action: ProposedAction) -> dict[str, Any]:
    """Project the proposed action onto the execution endpoint's body."""

    payload: dict[str, Any] = {
        "actionType": action.action_type,
        "businessId": action.business_id,
    }
    fields: dict[str, Any] = {}
    if action.action_type == "expense" and action.expense is not None:
        data = action.expense
        fields = {
            "supplier_id": data.supplier_id,
            "invoice_date": data.invoice_date,
            "invoice_number": data.invoice_number,
            "subtotal": data.subtotal,
            "vat_amount": data.vat_amount,
            "total_amount": data.total_amount,
            "invoice_type": data.invoice_type,
            "notes": data.notes,
        }
    elif action.action_type == "payment" and action.payment is not None:
        data = action.payment
        fields = {
            "supplier_id": data.supplier_id,
            "payment_date": data.payment_date,
            "total_amount": data.total_amount,
            "payment_method": data.payment_method,
            "check_number": data.check_number,
            "reference_number": data.reference_number,
            "notes": data.notes,
        }
    elif action.action_type == "daily_entry" and action.daily_entry is not None:
        data = action.daily_entry
        fields = {
            "entry_date": data.entry_date,
            "total_register": data.total_register,
            "labor_cost": data.labor_cost,
            "labor_hours": data.labor_hours,
            "discounts": data.discounts,
            "notes": data.notes,
        }
    payload.update({key: value for key, value in fields.items() if value is not None})
    return payload


def action_detail_rows(action: ProposedAction) -> list[tuple[str, str, bool]]:
    """Return ``(label, value, bold)`` rows for the review card."""

    rows: list[tuple[str, str, bool]] = []
    lookup_name = action.supplier_lookup.name if action.supplier_lookup else None
    if action.action_type == "expense" and action.expense is not None:
        data = action.expense
        rows.append(("ספק", lookup_name or data.supplier_name or MISSING_VALUE, False))
        rows.append(("תאריך חשבונית", format_date(data.invoice_date), False))
        if data.invoice_number:
            rows.append(("מספר חשבונית", data.invoice_number, False))
        rows.append(("לפני מע״מ", format_currency(data.subtotal), False))
        rows.append(("מע״מ", format_currency(data.vat_amount), False))
        rows.append(("סה״כ", format_currency(data.total_amount), True))
        if data.notes:
            rows.append(("הערות", data.notes, False))
    elif action.action_type == "payment" and action.payment is not None:
        data = action.payment
        rows.append(("ספק", lookup_name or data.supplier_name or MISSING_VALUE, False))
        rows.append(("תאריך תשלום", format_date(data.payment_date), False))
        rows.append(("סכום", format_currency(data.total_amount), True))
        if data.payment_method:
            rows.append(("אמצעי תשלום", PAYMENT_METHOD_LABELS.get(data.payment_method, data.payment_method), False))
        if data.check_number:
            rows.append(("מספר צ׳ק", data.check_number, False))
        if data.notes:
            rows.append(("הערות", data.notes, False))
    elif action.action_type == "daily_entry" and action.daily_entry is not None:
        data = action.daily_entry
        rows.append(("תאריך", format_date(data.entry_date), False))
        rows.append(("סה״כ קופה", format_currency(data.total_register), True))
        if data.labor_cost is not None:
            rows.append(("עלות עבודה", format_currency(data.labor_cost), False))
        if data.labor_hours is not None:
            rows.append(("שעות עבודה", _format_hours(data.labor_hours), False))
        if data.discounts:
            rows.append(("הנחות", format_currency(data.discounts), False))
        if data.notes:
            rows.append(("הערות", data.notes, False))
    return rows


class ActionCard:
    """Per-proposal state machine: pending → confirming → success | error.

    ``pending`` (or ``error``) may also move to ``rejected`` without any
    network call. ``success`` and ``rejected`` are terminal.
    """

    def __init__(self, action: ProposedAction, client: "DashboardApiClient") -> None:
        self.action = action
        self.client = client
        self.status = CardStatus.PENDING
        self.result_message: str | None = None

    @property
    def title(self) -> str:
        return ACTION_TITLES.get(self.action.action_type, self.action.action_type)

    @property
    def is_terminal(self) -> bool:
        return self.status in (CardStatus.SUCCESS, CardStatus.REJECTED)

    @property
    def can_confirm(self) -> bool:
        if self.action.needs_supplier_creation:
            return False
        return self.status in (CardStatus.PENDING, CardStatus.ERROR)

    @property
    def can_reject(self) -> bool:
        return self.status in (CardStatus.PENDING, CardStatus.ERROR)

    @property
    def confirm_label(self) -> str:
        if self.status is CardStatus.CONFIRMING:
            return "מאשר..."
        if self.action.needs_supplier_creation:
            return "יש ליצור ספק תחילה"
        return "אישור"

    def confirm(self) -> bool:
        """Submit the action once; return ``False`` if the card refused."""

        if not self.can_confirm:
            return False
        self.status = CardStatus.CONFIRMING
        self.result_message = None
        payload = build_action_payload(self.action)
        try:
            result = self.client.execute_action(payload)
        except requests.RequestException:
            logger.warning("Action execution request failed", exc_info=True)
            self.status = CardStatus.ERROR
            self.result_message = NETWORK_ERROR_MESSAGE
            return True
        if not result.ok:
            logger.info("Action %s rejected by server (%s)", self.action.action_type, result.status_code)
            self.status = CardStatus.ERROR
            self.result_message = result.error or EXECUTION_FALLBACK_ERROR
            return True
        self.status = CardStatus.SUCCESS
        self.result_message = result.message or SUCCESS_FALLBACK_MESSAGE
        return True

    def reject(self) -> bool:
        if not self.can_reject:
            return False
        self.status = CardStatus.REJECTED
        self.result_message = REJECTED_MESSAGE
        return True


class ActionCardRegistry:
    """Keeps one :class:`ActionCard` per message so each keeps its own state."""

    def __init__(self, client: "DashboardApiClient") -> None:
        self.client = client
        self._cards: dict[str, ActionCard] = {}

    def card_for(self, message_id: str, action: ProposedAction) -> ActionCard:
        card = self._cards.get(message_id)
        if card is None:
            card = ActionCard(action, self.client)
            self._cards[message_id] = card
        return card

    def clear(self) -> None:
        self._cards.clear()

    def __len__(self) -> int:
        return len(self._cards)


__all__ = [
    "ACTION_TITLES",
    "ActionCard",
    "ActionCardRegistry",
    "CardStatus",
    "PAYMENT_METHOD_LABELS",
    "action_detail_rows",
    "build_action_payload",
    "confidence_color",
    "format_currency",
    "format_date",
]
