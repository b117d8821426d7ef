"""Tests for :mod:`utils_streamlit`."""

from __future__ import annotations

import requests

from utils_streamlit import response_message, show_api_error, trigger_rerun


class FakeResponse:
    def __init__(self, payload, status_code=500, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class RecordingStreamlit:
    def __init__(self):
        self.errors: list[str] = []
        self.reruns = 0

    def error(self, message):
        self.errors.append(message)

    def rerun(self):
        self.reruns += 1


def test_response_message_prefers_error_field() -> None:
    assert response_message(FakeResponse({"error": "DB locked", "message": "x"})) == "DB locked"
    assert response_message(FakeResponse({"detail": "bad input"})) == "bad input"
    assert response_message(FakeResponse(None, text="Gateway Timeout")) == "Gateway Timeout"


def test_show_api_error_includes_status() -> None:
    fake = RecordingStreamlit()
    error = requests.HTTPError("boom", response=FakeResponse({"error": "DB locked"}, status_code=503))

    show_api_error(error, st_module=fake)

    assert fake.errors == ["הבקשה נכשלה (503): DB locked"]


def test_show_api_error_without_response() -> None:
    fake = RecordingStreamlit()

    show_api_error(requests.ConnectionError("refused"), st_module=fake)

    assert fake.errors == ["הבקשה נכשלה: refused"]


def test_trigger_rerun_calls_streamlit() -> None:
    fake = RecordingStreamlit()

    trigger_rerun(fake)

    assert fake.reruns == 1
