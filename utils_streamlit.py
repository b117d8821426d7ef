"""Streamlit helpers shared by the assistant surfaces."""

from __future__ import annotations

import json

import requests
import streamlit as st


def show_api_error(error: Exception | requests.Response, *, st_module=st) -> None:
    """Render a consistent API error block in Streamlit."""

    response: requests.Response | None = None
    if isinstance(error, requests.HTTPError):
        response = error.response
    elif isinstance(error, requests.Response):
        response = error

    if response is None:
        st_module.error(f"הבקשה נכשלה: {error}")
        return

    message = response_message(response)
    status = response.status_code
    st_module.error(f"הבקשה נכשלה ({status}): {message}")


def response_message(response: requests.Response) -> str:
    """Extract the server-provided message from an error response."""

    try:
        payload = response.json()
    except ValueError:
        payload = response.text
    if isinstance(payload, dict):
        detail = payload.get("error") or payload.get("message") or payload.get("detail")
        if detail:
            return str(detail)
        return json.dumps(payload, ensure_ascii=False)
    return str(payload)


def trigger_rerun(st_module=st) -> None:
    rerun = getattr(st_module, "rerun", None) or getattr(st_module, "experimental_rerun", None)
    if rerun is not None:
        rerun()


__all__ = ["response_message", "show_api_error", "trigger_rerun"]
