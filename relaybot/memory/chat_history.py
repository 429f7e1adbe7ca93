"""Rolling per-chat buffer of recent user utterances."""

from __future__ import annotations

import json

from relaybot.memory.expiring_store import SessionStore

DEFAULT_CAPACITY = 8
DEFAULT_TTL_SECONDS = 300


def history_key(chat_id: int) -> str:
    return f"chat_history:{chat_id}"


class ChatHistoryBuffer:
    def __init__(
        self,
        store: SessionStore,
        *,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._store = store
        self._capacity = capacity
        self._ttl_seconds = ttl_seconds

    def load(self, chat_id: int) -> list[str]:
        raw = self._store.get(history_key(chat_id))
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            return []
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, str)]

    def update(self, chat_id: int, question: str, *, restart: bool) -> list[str]:
        """Record the newest question and return the buffer in arrival order.

        A restart discards whatever was buffered for the chat.
        """
        history = [] if restart else self.load(chat_id)
        history.append(question)
        if len(history) > self._capacity:
            history = history[-self._capacity :]
        self._store.set(
            history_key(chat_id),
            json.dumps(history, ensure_ascii=False),
            self._ttl_seconds,
        )
        return history
