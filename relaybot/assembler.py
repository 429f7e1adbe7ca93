"""Turn a raw message or its attachments into the question text for the LLM."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol
from urllib.parse import urlparse

from relaybot.services.fetch import FetchError, fetch_bytes, redact_url
from relaybot.services.ocr import OcrError
from relaybot.services.page_text import PageTextError

DEFAULT_PAGE_TEXT_MAX_CHARS = 36_000
UPLOAD_PROBLEM_NOTICE = "There is a problem with the uploaded file. Can you try again?"


class TextDetector(Protocol):
    def detect_text(self, image: bytes) -> str:
        ...


class PageTextSource(Protocol):
    def get_page_text(self, url: str) -> str:
        ...


@dataclass(frozen=True)
class Attachment:
    url: str
    content_type: str | None = None
    # Loggable identifier, e.g. Telegram file_unique_id; url may carry credentials.
    label: str | None = None

    @property
    def display_name(self) -> str:
        return self.label or redact_url(self.url)

    @property
    def kind(self) -> str | None:
        ct = (self.content_type or "").lower()
        if ct.startswith("image"):
            return "image"
        if ct.startswith("text"):
            return "text"
        return None


@dataclass
class AssembledInput:
    question: str = ""
    notices: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.question.strip()


def strip_mention(text: str) -> str:
    """Drop a leading ``@name`` token and the space after it."""
    if not text.startswith("@"):
        return text
    _, sep, rest = text.partition(" ")
    return rest if sep else ""


def looks_like_url(text: str) -> bool:
    candidate = text.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return False
    parsed = urlparse(candidate)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class InputAssembler:
    def __init__(
        self,
        *,
        ocr: TextDetector | None = None,
        page_text: PageTextSource | None = None,
        fetch: Callable[[str], bytes] = fetch_bytes,
        page_text_max_chars: int = DEFAULT_PAGE_TEXT_MAX_CHARS,
        on_event: Callable[[str, dict[str, Any]], None] | None = None,
    ) -> None:
        self._ocr = ocr
        self._page_text = page_text
        self._fetch = fetch
        self._page_text_max_chars = page_text_max_chars
        self._on_event = on_event or (lambda _event, _payload: None)

    def from_text(self, text: str, mode_key: str) -> AssembledInput:
        question = strip_mention(text)
        if mode_key == "summarize" and looks_like_url(question):
            url = question.strip()
            page = self._summarize_source(url)
            if page is not None:
                return AssembledInput(question=page)
            return AssembledInput(question=question, skipped=[url])
        return AssembledInput(question=question)

    def _summarize_source(self, url: str) -> str | None:
        if self._page_text is None:
            self._on_event("page_text_unavailable", {"url": url})
            return None
        try:
            text = self._page_text.get_page_text(url)
        except PageTextError as exc:
            self._on_event("page_text_error", {"url": url, "error": str(exc)})
            return None
        return text[: self._page_text_max_chars]

    def from_attachments(self, attachments: list[Attachment]) -> AssembledInput:
        out = AssembledInput()
        parts: list[str] = []
        for attachment in attachments:
            kind = attachment.kind
            if kind is None:
                self._on_event(
                    "attachment_ignored",
                    {"attachment": attachment.display_name, "content_type": attachment.content_type},
                )
                continue
            if kind == "text":
                text = self._read_text(attachment)
            else:
                text = self._read_image(attachment, out)
            if text is None:
                out.skipped.append(attachment.display_name)
                continue
            parts.append(text + "\n")
        out.question = "".join(parts)
        return out

    def _read_text(self, attachment: Attachment) -> str | None:
        try:
            raw = self._fetch(attachment.url)
        except FetchError as exc:
            self._on_event(
                "attachment_download_error",
                {"attachment": attachment.display_name, "error": redact_url(str(exc))},
            )
            return None
        return raw.decode("utf-8", errors="replace")

    def _read_image(self, attachment: Attachment, out: AssembledInput) -> str | None:
        try:
            raw = self._fetch(attachment.url)
        except FetchError as exc:
            self._on_event(
                "attachment_download_error",
                {"attachment": attachment.display_name, "error": redact_url(str(exc))},
            )
            if UPLOAD_PROBLEM_NOTICE not in out.notices:
                out.notices.append(UPLOAD_PROBLEM_NOTICE)
            return None
        if self._ocr is None:
            self._on_event("ocr_unavailable", {"attachment": attachment.display_name})
            return None
        try:
            return self._ocr.detect_text(raw)
        except OcrError as exc:
            self._on_event(
                "ocr_error",
                {"attachment": attachment.display_name, "error": redact_url(str(exc))},
            )
            return None
