"""Google Cloud Vision text detection client."""

from __future__ import annotations

import base64
import json
from urllib import error, parse, request

VISION_ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"


class OcrError(RuntimeError):
    """Raised when text detection fails or finds no text."""


class VisionOcrClient:
    def __init__(self, api_key: str, *, endpoint: str = VISION_ANNOTATE_URL, timeout: float = 30) -> None:
        self._api_key = api_key
        self._endpoint = endpoint
        self._timeout = timeout

    def detect_text(self, image: bytes) -> str:
        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image).decode("ascii")},
                    "features": [{"type": "TEXT_DETECTION"}],
                }
            ]
        }
        url = f"{self._endpoint}?{parse.urlencode({'key': self._api_key})}"
        req = request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                data = json.loads(resp.read().decode("utf-8"))
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise OcrError(f"Vision API HTTP {exc.code}: {body}") from exc
        except (error.URLError, TimeoutError, OSError) as exc:
            raise OcrError(f"Vision API unreachable: {exc}") from exc

        responses = data.get("responses") or [{}]
        first = responses[0] or {}
        if "error" in first:
            raise OcrError(f"Vision API error: {first['error'].get('message', first['error'])}")
        full = (first.get("fullTextAnnotation") or {}).get("text")
        if not full:
            annotations = first.get("textAnnotations") or []
            full = annotations[0].get("description") if annotations else None
        if not full:
            raise OcrError("The input image does not contain text")
        return str(full)
