"""Shared dataclasses for the assistant chat surface and API payloads."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, Union


class ToolState(str, Enum):
    """Lifecycle of a tool invocation inside an assistant message."""

    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"

    @property
    def in_flight(self) -> bool:
        return self in (ToolState.INPUT_STREAMING, ToolState.INPUT_AVAILABLE)

    @classmethod
    def parse(cls, value: Any) -> "ToolState":
        try:
            return cls(str(value))
        except ValueError:
            return cls.OUTPUT_AVAILABLE


@dataclass
class TextPart:
    """Plain text fragment of a message."""

    text: str = ""


@dataclass
class ToolPart:
    """Tool invocation fragment of an assistant message."""

    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)
    state: ToolState = ToolState.INPUT_STREAMING
    output: dict[str, Any] | None = None

    @property
    def is_done(self) -> bool:
        return self.state is ToolState.OUTPUT_AVAILABLE


MessagePart = Union[TextPart, ToolPart]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass
class ConversationMessage:
    """A user or assistant turn made of ordered parts."""

    id: str
    role: str
    parts: list[MessagePart] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    @classmethod
    def user(cls, text: str) -> "ConversationMessage":
        return cls(id=_new_id("user"), role="user", parts=[TextPart(text)])

    @classmethod
    def assistant(cls, message_id: str | None = None) -> "ConversationMessage":
        return cls(id=message_id or _new_id("assistant"), role="assistant")

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_parts(self) -> list[ToolPart]:
        return [part for part in self.parts if isinstance(part, ToolPart)]

    def to_payload(self) -> dict[str, Any]:
        """Return the wire representation expected by the chat endpoint."""

        parts: list[dict[str, Any]] = []
        for part in self.parts:
            if isinstance(part, TextPart):
                parts.append({"type": "text", "text": part.text})
            elif isinstance(part, ToolPart):
                entry: dict[str, Any] = {
                    "type": f"tool-{part.tool_name}",
                    "toolCallId": part.tool_call_id,
                    "state": part.state.value,
                    "input": dict(part.input),
                }
                if part.output is not None:
                    entry["output"] = dict(part.output)
                parts.append(entry)
        return {"id": self.id, "role": self.role, "parts": parts}


@dataclass(frozen=True)
class ChartDataKey:
    key: str
    label: str
    color: str = "#6366f1"


@dataclass(frozen=True)
class ChartSpec:
    """Chart embedded by the assistant in a ``chart-json`` fence."""

    type: str
    title: str
    x_axis_key: str
    data: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    data_keys: tuple[ChartDataKey, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChartSpec":
        if not isinstance(payload, Mapping):
            raise ValueError("chart payload must be an object")
        rows = payload.get("data") or []
        keys = payload.get("dataKeys") or []
        if not isinstance(rows, Sequence) or not isinstance(keys, Sequence):
            raise ValueError("chart data and dataKeys must be lists")
        data_keys = tuple(
            ChartDataKey(
                key=str(entry.get("key")),
                label=str(entry.get("label") or entry.get("key")),
                color=str(entry.get("color") or "#6366f1"),
            )
            for entry in keys
            if isinstance(entry, Mapping) and entry.get("key")
        )
        return cls(
            type=str(payload.get("type") or "bar"),
            title=str(payload.get("title") or ""),
            x_axis_key=str(payload.get("xAxisKey") or ""),
            data=tuple(row for row in rows if isinstance(row, Mapping)),
            data_keys=data_keys,
        )

    def asdict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "xAxisKey": self.x_axis_key,
            "data": [dict(row) for row in self.data],
            "dataKeys": [
                {"key": key.key, "label": key.label, "color": key.color}
                for key in self.data_keys
            ],
        }


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def _opt_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SupplierLookup:
    found: bool = False
    id: str | None = None
    name: str | None = None
    needs_creation: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SupplierLookup":
        return cls(
            found=payload.get("found") is True,
            id=_opt_str(payload.get("id")),
            name=_opt_str(payload.get("name")),
            needs_creation=payload.get("needsCreation") is True,
        )


@dataclass(frozen=True)
class ExpenseData:
    supplier_name: str | None = None
    supplier_id: str | None = None
    invoice_date: str | None = None
    invoice_number: str | None = None
    subtotal: float | None = None
    vat_amount: float | None = None
    total_amount: float | None = None
    invoice_type: str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExpenseData":
        return cls(
            supplier_name=_opt_str(payload.get("supplier_name")),
            supplier_id=_opt_str(payload.get("supplier_id")),
            invoice_date=_opt_str(payload.get("invoice_date")),
            invoice_number=_opt_str(payload.get("invoice_number")),
            subtotal=_opt_float(payload.get("subtotal")),
            vat_amount=_opt_float(payload.get("vat_amount")),
            total_amount=_opt_float(payload.get("total_amount")),
            invoice_type=_opt_str(payload.get("invoice_type")),
            notes=_opt_str(payload.get("notes")),
        )


@dataclass(frozen=True)
class PaymentData:
    supplier_name: str | None = None
    supplier_id: str | None = None
    payment_date: str | None = None
    total_amount: float | None = None
    payment_method: str | None = None
    check_number: str | None = None
    reference_number: str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PaymentData":
        return cls(
            supplier_name=_opt_str(payload.get("supplier_name")),
            supplier_id=_opt_str(payload.get("supplier_id")),
            payment_date=_opt_str(payload.get("payment_date")),
            total_amount=_opt_float(payload.get("total_amount")),
            payment_method=_opt_str(payload.get("payment_method")),
            check_number=_opt_str(payload.get("check_number")),
            reference_number=_opt_str(payload.get("reference_number")),
            notes=_opt_str(payload.get("notes")),
        )


@dataclass(frozen=True)
class DailyEntryData:
    entry_date: str | None = None
    total_register: float | None = None
    labor_cost: float | None = None
    labor_hours: float | None = None
    discounts: float | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DailyEntryData":
        return cls(
            entry_date=_opt_str(payload.get("entry_date")),
            total_register=_opt_float(payload.get("total_register")),
            labor_cost=_opt_float(payload.get("labor_cost")),
            labor_hours=_opt_float(payload.get("labor_hours")),
            discounts=_opt_float(payload.get("discounts")),
            notes=_opt_str(payload.get("notes")),
        )


ACTION_TYPES = ("expense", "payment", "daily_entry")


@dataclass(frozen=True)
class ProposedAction:
    """Structured, human-reviewable record proposal emitted by the model."""

    action_type: str
    business_id: str | None
    confidence: float
    reasoning: str
    expense: ExpenseData | None = None
    payment: PaymentData | None = None
    daily_entry: DailyEntryData | None = None
    supplier_lookup: SupplierLookup | None = None

    @property
    def needs_supplier_creation(self) -> bool:
        return bool(self.supplier_lookup and self.supplier_lookup.needs_creation)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ProposedAction":
        action_type = str(payload.get("actionType") or "")
        if action_type not in ACTION_TYPES:
            raise ValueError(f"unsupported action type: {action_type!r}")
        confidence = _opt_float(payload.get("confidence")) or 0.0
        confidence = min(1.0, max(0.0, confidence))

        def _section(key: str, factory):
            raw = payload.get(key)
            return factory(raw) if isinstance(raw, Mapping) else None

        lookup = payload.get("supplierLookup")
        return cls(
            action_type=action_type,
            business_id=_opt_str(payload.get("businessId")),
            confidence=confidence,
            reasoning=str(payload.get("reasoning") or ""),
            expense=_section("expenseData", ExpenseData.from_dict),
            payment=_section("paymentData", PaymentData.from_dict),
            daily_entry=_section("dailyEntryData", DailyEntryData.from_dict),
            supplier_lookup=SupplierLookup.from_dict(lookup) if isinstance(lookup, Mapping) else None,
        )


@dataclass(frozen=True)
class ChatSession:
    id: str
    title: str | None = None
    business_id: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChatSession":
        return cls(
            id=str(payload.get("id") or ""),
            title=_opt_str(payload.get("title")),
            business_id=_opt_str(payload.get("businessId")),
        )


@dataclass(frozen=True)
class PersistedMessage:
    """A message record returned by the session history endpoint."""

    id: str
    role: str
    content: str
    chart_data: Mapping[str, Any] | None = None
    timestamp: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PersistedMessage":
        role = str(payload.get("role") or "assistant")
        chart = payload.get("chartData")
        return cls(
            id=str(payload.get("id") or _new_id(role)),
            role=role if role in ("user", "assistant") else "assistant",
            content=str(payload.get("content") or ""),
            chart_data=chart if isinstance(chart, Mapping) else None,
            timestamp=_opt_str(payload.get("timestamp")),
        )

    def to_message(self) -> ConversationMessage:
        """Hydrate as a single-text-part conversation message."""

        text = self.content
        if self.chart_data:
            text = f"{text}\n\n```chart-json\n{json.dumps(self.chart_data, ensure_ascii=False)}\n```"
        return ConversationMessage(id=self.id, role=self.role, parts=[TextPart(text)])


@dataclass(frozen=True)
class SessionSnapshot:
    session: ChatSession | None
    messages: tuple[PersistedMessage, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SessionSnapshot":
        raw_session = payload.get("session")
        session = ChatSession.from_dict(raw_session) if isinstance(raw_session, Mapping) else None
        if session is not None and not session.id:
            session = None
        raw_messages = payload.get("messages") or []
        messages: tuple[PersistedMessage, ...] = ()
        if isinstance(raw_messages, Sequence):
            messages = tuple(
                PersistedMessage.from_dict(entry) for entry in raw_messages if isinstance(entry, Mapping)
            )
        return cls(session=session, messages=messages)


@dataclass(frozen=True)
class HistorySearchHit:
    """Server-side search hit across persisted chat history."""

    id: str
    session_id: str
    session_title: str | None
    session_date: str | None
    role: str
    snippet: str
    timestamp: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HistorySearchHit":
        return cls(
            id=str(payload.get("id") or ""),
            session_id=str(payload.get("sessionId") or ""),
            session_title=_opt_str(payload.get("sessionTitle")),
            session_date=_opt_str(payload.get("sessionDate")),
            role=str(payload.get("role") or "assistant"),
            snippet=str(payload.get("snippet") or ""),
            timestamp=_opt_str(payload.get("timestamp")),
        )


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a call to the action execution endpoint."""

    ok: bool
    status_code: int
    message: str | None = None
    error: str | None = None


__all__ = [
    "ACTION_TYPES",
    "ActionResult",
    "ChartDataKey",
    "ChartSpec",
    "ChatSession",
    "ConversationMessage",
    "DailyEntryData",
    "ExpenseData",
    "HistorySearchHit",
    "MessagePart",
    "PaymentData",
    "PersistedMessage",
    "ProposedAction",
    "SessionSnapshot",
    "SupplierLookup",
    "TextPart",
    "ToolPart",
    "ToolState",
]
