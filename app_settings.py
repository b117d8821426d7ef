"""Application configuration helpers for the assistant Streamlit surface."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import streamlit as st


DEFAULT_API_BASE = "http://localhost:3000"
DEFAULT_PAGE_CONTEXT = "/ai"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_STREAM_TIMEOUT = 120.0
DEFAULT_SEARCH_DEBOUNCE_MS = 300


@dataclass(frozen=True)
class AppSettings:
    """Immutable configuration bundle for the assistant chat."""

    api_base: str
    api_token: str | None
    business_id: str | None
    is_admin: bool
    page_context: str
    request_timeout: float
    stream_timeout: float
    search_debounce_ms: int
    enable_voice_input: bool

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000.0


def _safe_secret(key: str) -> Any:
    """Return a Streamlit secret when available."""

    try:
        return st.secrets.get(key)
    except Exception:
        return None


def _setting(key: str) -> Any:
    return _safe_secret(key) or os.getenv(key)


def _coerce_bool(value: Any, default: bool = False) -> bool:
    """Parse truthy/falsey strings and primitives into booleans."""

    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if not text:
        return default
    if text in {"1", "true", "yes", "on", "enabled", "enable"}:
        return True
    if text in {"0", "false", "no", "off", "disabled", "disable"}:
        return False
    return default


def _coerce_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _coerce_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def load_settings() -> AppSettings:
    """Collect runtime configuration from environment and secrets."""

    api_base = str(_setting("ASSISTANT_API_BASE") or DEFAULT_API_BASE)
    business_id = _setting("ASSISTANT_BUSINESS_ID")
    return AppSettings(
        api_base=api_base.rstrip("/"),
        api_token=_setting("ASSISTANT_API_TOKEN") or None,
        business_id=str(business_id) if business_id else None,
        is_admin=_coerce_bool(_setting("ASSISTANT_IS_ADMIN"), default=False),
        page_context=str(_setting("ASSISTANT_PAGE_CONTEXT") or DEFAULT_PAGE_CONTEXT),
        request_timeout=_coerce_float(_setting("ASSISTANT_REQUEST_TIMEOUT"), DEFAULT_REQUEST_TIMEOUT),
        stream_timeout=_coerce_float(_setting("ASSISTANT_STREAM_TIMEOUT"), DEFAULT_STREAM_TIMEOUT),
        search_debounce_ms=_coerce_int(_setting("ASSISTANT_SEARCH_DEBOUNCE_MS"), DEFAULT_SEARCH_DEBOUNCE_MS),
        enable_voice_input=_coerce_bool(_setting("ASSISTANT_ENABLE_VOICE"), default=True),
    )


__all__ = ["AppSettings", "load_settings"]
