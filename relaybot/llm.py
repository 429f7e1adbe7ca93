"""OpenAI-compatible chat completions relay."""

from __future__ import annotations

import json
import time
from typing import Any
from urllib import error, request

DEFAULT_MODEL = "gpt-4o-mini"
OPENAI_BASE = "https://api.openai.com/v1"
DEFAULT_MAX_TOKENS = 512
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_RETRIES = 2


class LlmError(RuntimeError):
    """Raised when the endpoint fails or returns no answer."""


def build_messages(system_prompt: str, user_turns: list[str]) -> list[dict[str, str]]:
    """System message (omitted when empty) followed by the user turns in order."""
    messages: list[dict[str, str]] = []
    if system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt})
    for turn in user_turns:
        messages.append({"role": "user", "content": turn})
    return messages


def complete(
    messages: list[dict[str, str]],
    api_key: str,
    *,
    base_url: str | None = None,
    model: str = DEFAULT_MODEL,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """
    Call an OpenAI-compatible chat completions API once and return the answer text.
    base_url: e.g. https://api.openai.com/v1 or http://localhost:8080/v1.
    """
    url = (base_url or OPENAI_BASE).rstrip("/") + "/chat/completions"
    body = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }
    encoded = json.dumps(body).encode("utf-8")
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    req = request.Request(url, data=encoded, headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=timeout) as response:  # noqa: S310
            data = json.loads(response.read().decode("utf-8"))
    except error.HTTPError as exc:
        body_read = exc.read().decode("utf-8", errors="replace")
        raise LlmError(f"LLM API HTTP {exc.code}: {body_read}") from exc
    except (error.URLError, TimeoutError, OSError) as exc:
        raise LlmError(f"LLM API unreachable: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise LlmError(f"LLM API returned invalid JSON: {exc}") from exc

    content: str | None = None
    for choice in data.get("choices") or []:
        msg = choice.get("message") or {}
        if msg.get("content") is not None:
            content = msg["content"]
            break
    if content is None:
        raise LlmError(f"LLM API unexpected response: {data}")
    return content.strip()


class LlmRelay:
    """Sends one turn to the endpoint, retrying a fixed number of times."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = DEFAULT_RETRIES,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._model = model
        self._max_tokens = max_tokens
        self._timeout = timeout
        self._retries = max(0, retries)
        self._retry_delay_seconds = retry_delay_seconds

    @property
    def model(self) -> str:
        return self._model

    def ask(self, system_prompt: str, user_turns: list[str]) -> str:
        messages = build_messages(system_prompt, user_turns)
        last_error: LlmError | None = None
        for attempt in range(self._retries + 1):
            if attempt and self._retry_delay_seconds > 0:
                time.sleep(self._retry_delay_seconds)
            try:
                return complete(
                    messages,
                    self._api_key,
                    base_url=self._base_url,
                    model=self._model,
                    max_tokens=self._max_tokens,
                    timeout=self._timeout,
                )
            except LlmError as exc:
                last_error = exc
        assert last_error is not None
        raise LlmError(f"{last_error} (after {self._retries + 1} attempts)") from last_error

    def describe(self) -> dict[str, Any]:
        return {
            "model": self._model,
            "base_url": self._base_url or OPENAI_BASE,
            "max_tokens": self._max_tokens,
            "retries": self._retries,
        }
