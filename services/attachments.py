"""Document attachments: validation, OCR and the resulting chat turn."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence, TYPE_CHECKING

import requests


if TYPE_CHECKING:
    from api_client import DashboardApiClient


logger = logging.getLogger(__name__)

MAX_FILES = 10
MAX_FILE_SIZE = 10 * 1024 * 1024
ACCEPTED_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
    "application/pdf",
)
# Extensions for the upload widget, which filters by suffix rather than MIME type.
ACCEPTED_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "heic", "heif", "pdf")

PROCESSING_LABEL = "מזהה טקסט מהקבצים..."


@dataclass(frozen=True)
class Attachment:
    name: str
    mime: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class DocumentTurn:
    """What to show in the chat and what to hand the model for one send."""

    display_text: str
    ocr_context: str | None = None
    documents_dropped: bool = False


def select_attachments(
    files: Iterable[Attachment],
    *,
    already_selected: int = 0,
) -> tuple[list[Attachment], list[Attachment]]:
    """Split ``files`` into ``(accepted, skipped)``.

    A file is skipped when its type is not accepted, it exceeds
    :data:`MAX_FILE_SIZE`, or the :data:`MAX_FILES` limit is already reached.
    """

    accepted: list[Attachment] = []
    skipped: list[Attachment] = []
    room = max(0, MAX_FILES - already_selected)
    for attachment in files:
        if len(accepted) >= room or attachment.mime not in ACCEPTED_TYPES or attachment.size > MAX_FILE_SIZE:
            skipped.append(attachment)
            continue
        accepted.append(attachment)
    return accepted, skipped


def display_message(text: str, attachments: Sequence[Attachment]) -> str:
    names = ", ".join(attachment.name for attachment in attachments)
    if text:
        return f"{text}\n📎 {names}"
    return f"📎 העלאת מסמך: {names}"


def build_ocr_context(results: Sequence[tuple[str, str]]) -> str:
    """Join ``(file name, text)`` pairs, skipping files with no text."""

    return "\n\n".join(f'תוכן מ-"{name}":\n{text}' for name, text in results if text)


def prepare_document_turn(
    client: "DashboardApiClient",
    text: str,
    attachments: Sequence[Attachment],
) -> DocumentTurn | None:
    """OCR every attachment and build the turn to send.

    If any recognition request fails the documents are dropped and the typed
    text is sent alone; with no typed text there is nothing to send and
    ``None`` is returned.
    """

    cleaned = (text or "").strip()
    if not attachments:
        return DocumentTurn(cleaned) if cleaned else None
    try:
        results = [
            (attachment.name, client.ocr_document(attachment.content, filename=attachment.name, mime=attachment.mime))
            for attachment in attachments
        ]
    except (requests.RequestException, ValueError):
        logger.warning("Document recognition failed for %d file(s)", len(attachments), exc_info=True)
        return DocumentTurn(cleaned, documents_dropped=True) if cleaned else None
    context = build_ocr_context(results)
    return DocumentTurn(display_message(cleaned, attachments), context or None)


__all__ = [
    "ACCEPTED_EXTENSIONS",
    "ACCEPTED_TYPES",
    "Attachment",
    "DocumentTurn",
    "MAX_FILES",
    "MAX_FILE_SIZE",
    "PROCESSING_LABEL",
    "build_ocr_context",
    "display_message",
    "prepare_document_turn",
    "select_attachments",
]
