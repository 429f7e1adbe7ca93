"""Plain HTTP GET for attachment downloads."""

from __future__ import annotations

import re
from urllib import error, request

USER_AGENT = "relaybot/0.1"
DEFAULT_TIMEOUT_SECONDS = 30

# Telegram file URLs embed the bot token: https://api.telegram.org/file/bot<TOKEN>/...
_BOT_TOKEN_SEGMENT = re.compile(r"/bot[^/\s]+/")


class FetchError(RuntimeError):
    """Raised when a download fails or returns a non-2xx status."""


def redact_url(text: str) -> str:
    """Replace any bot-token path segment so the text is safe to log."""
    return _BOT_TOKEN_SEGMENT.sub("/bot<redacted>/", text)


def fetch_bytes(url: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> bytes:
    req = request.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
    try:
        with request.urlopen(req, timeout=timeout) as response:  # noqa: S310
            status = getattr(response, "status", 200)
            body = response.read()
    except error.HTTPError as exc:
        body_read = exc.read().decode("utf-8", errors="replace")
        raise FetchError(f"response failed: HTTP {exc.code}, body: {redact_url(body_read[:200])}") from exc
    except (error.URLError, TimeoutError, OSError) as exc:
        raise FetchError(f"download failed for {redact_url(url)}: {redact_url(str(exc))}") from exc
    if not 200 <= int(status) < 300:
        raise FetchError(f"response failed: HTTP {status}")
    return body
