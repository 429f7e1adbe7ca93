"""Per-chat mode/session state machine over two expiring keys.

``current_prompt_key`` is armed by a mode command and lives briefly.
``previous_prompt_key`` is rewritten on every resolved turn and spans the
session window, so a conversation continues as long as turns keep arriving
within that window. The pure ``resolve_session`` decides the outcome from a
snapshot of both keys and returns the writes to apply; ``SessionStateResolver``
reads and writes the store around it.
"""

from __future__ import annotations

from dataclasses import dataclass

from relaybot.memory.expiring_store import SessionStore
from relaybot.modes import Mode, PromptCatalog

CURRENT_PROMPT_KEY = "current_prompt_key"
PREVIOUS_PROMPT_KEY = "previous_prompt_key"
DEFAULT_MODE_TTL_SECONDS = 60
DEFAULT_SESSION_TTL_SECONDS = 300
INVALIDATE_TTL_SECONDS = 1


@dataclass(frozen=True)
class StoreMutation:
    key: str
    value: str
    ttl_seconds: int


@dataclass(frozen=True)
class SessionSnapshot:
    current: str | None
    previous: str | None


@dataclass(frozen=True)
class SessionResolution:
    mode_key: str
    system_prompt: str
    restart: bool
    mutations: tuple[StoreMutation, ...] = ()


def scoped_key(name: str, chat_id: int) -> str:
    return f"{name}:{chat_id}"


def _present(value: str | None) -> str | None:
    # An invalidated key holds "" until its short TTL runs out.
    return value if value else None


def resolve_session(
    snapshot: SessionSnapshot,
    catalog: PromptCatalog,
    *,
    chat_id: int,
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
) -> SessionResolution | None:
    """Return the active mode for this turn, or None when no mode is armed."""
    current = _present(snapshot.current)
    previous = _present(snapshot.previous)

    if current is None and previous is None:
        return None

    if current is not None:
        mode_key = current
        restart = previous is None or current != previous
    else:
        mode_key = previous
        restart = False

    refresh = StoreMutation(
        key=scoped_key(PREVIOUS_PROMPT_KEY, chat_id),
        value=mode_key,
        ttl_seconds=session_ttl_seconds,
    )
    return SessionResolution(
        mode_key=mode_key,
        system_prompt=catalog.lookup(mode_key),
        restart=restart,
        mutations=(refresh,),
    )


def arm_mode_mutations(
    mode: Mode,
    *,
    chat_id: int,
    mode_ttl_seconds: int = DEFAULT_MODE_TTL_SECONDS,
) -> tuple[StoreMutation, ...]:
    """Writes for a mode command: arm ``current`` and invalidate ``previous``."""
    key = mode.catalog_key
    if key is None:
        return ()
    return (
        StoreMutation(scoped_key(CURRENT_PROMPT_KEY, chat_id), key, mode_ttl_seconds),
        StoreMutation(scoped_key(PREVIOUS_PROMPT_KEY, chat_id), "", INVALIDATE_TTL_SECONDS),
    )


class SessionStateResolver:
    def __init__(
        self,
        store: SessionStore,
        catalog: PromptCatalog,
        *,
        mode_ttl_seconds: int = DEFAULT_MODE_TTL_SECONDS,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._mode_ttl_seconds = mode_ttl_seconds
        self._session_ttl_seconds = session_ttl_seconds

    def snapshot(self, chat_id: int) -> SessionSnapshot:
        return SessionSnapshot(
            current=self._store.get(scoped_key(CURRENT_PROMPT_KEY, chat_id)),
            previous=self._store.get(scoped_key(PREVIOUS_PROMPT_KEY, chat_id)),
        )

    def resolve(self, chat_id: int) -> SessionResolution | None:
        resolution = resolve_session(
            self.snapshot(chat_id),
            self._catalog,
            chat_id=chat_id,
            session_ttl_seconds=self._session_ttl_seconds,
        )
        if resolution is not None:
            self._apply(resolution.mutations)
        return resolution

    def arm(self, mode: Mode, chat_id: int) -> bool:
        """Arm a mode for the chat's next message. Returns False for help."""
        mutations = arm_mode_mutations(mode, chat_id=chat_id, mode_ttl_seconds=self._mode_ttl_seconds)
        self._apply(mutations)
        return bool(mutations)

    def _apply(self, mutations: tuple[StoreMutation, ...]) -> None:
        for mutation in mutations:
            self._store.set(mutation.key, mutation.value, mutation.ttl_seconds)
