"""Client for the rendered-page text service used by summarize mode."""

from __future__ import annotations

from urllib import error, parse, request


class PageTextError(RuntimeError):
    """Raised when the page text cannot be fetched."""


class PageTextClient:
    """GETs ``<service_url>?url=<target>`` and returns the plain-text body."""

    def __init__(self, service_url: str, *, timeout: float = 30) -> None:
        self._service_url = service_url
        self._timeout = timeout

    def get_page_text(self, url: str) -> str:
        separator = "&" if "?" in self._service_url else "?"
        full = f"{self._service_url}{separator}{parse.urlencode({'url': url})}"
        req = request.Request(full, headers={"Accept": "text/plain"}, method="GET")
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                charset = resp.headers.get_content_charset() or "utf-8"
                text = resp.read().decode(charset, errors="replace")
        except error.HTTPError as exc:
            raise PageTextError(f"Page text service HTTP {exc.code} for {url}") from exc
        except (error.URLError, TimeoutError, OSError, LookupError) as exc:
            raise PageTextError(f"Page text service unreachable: {exc}") from exc
        if not text.strip():
            raise PageTextError(f"No text extracted from {url}")
        return text
