"""Platform-neutral turn handling: mode commands and free-text messages."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol

from relaybot.assembler import AssembledInput, Attachment, InputAssembler
from relaybot.chunker import DEFAULT_CHUNK_SIZE, DEFAULT_PREFIX, format_reply, split_reply
from relaybot.llm import LlmError
from relaybot.memory.chat_history import ChatHistoryBuffer
from relaybot.modes import READY_MESSAGES, Mode
from relaybot.session import SessionResolution, SessionStateResolver

EMPTY_INPUT_PROMPT = "Please send some text, a text file, or an image with text in it."
NO_MODE_PROMPT = "Pick an assistant role first: /qa, /translate, /summarize, /medical, /code or /reply_tweet."
UNREADABLE_INPUT_PROMPT = "I could not read anything from that message. Please send text, a text file, or an image with text."


class EventRecorder(Protocol):
    def record(self, event_type: str, payload: dict[str, Any], *, outcome: str = "ok") -> int:
        ...


class AnswerSource(Protocol):
    def ask(self, system_prompt: str, user_turns: list[str]) -> str:
        ...


@dataclass(frozen=True)
class ReplySettings:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    prefix: str = DEFAULT_PREFIX
    prefix_mode: str = "first"


class ConversationService:
    def __init__(
        self,
        *,
        resolver: SessionStateResolver,
        assembler: InputAssembler,
        history: ChatHistoryBuffer,
        relay: AnswerSource,
        events: EventRecorder,
        help_message: str,
        reply_settings: ReplySettings | None = None,
    ) -> None:
        self._resolver = resolver
        self._assembler = assembler
        self._history = history
        self._relay = relay
        self._events = events
        self._help_message = help_message
        self._reply = reply_settings or ReplySettings()

    async def handle_command(self, chat_id: int, mode: Mode, argument: str = "") -> list[str]:
        if mode is Mode.HELP:
            self._events.record("command_handled", {"chat_id": chat_id, "command": mode.value})
            return [self._help_message]

        self._resolver.arm(mode, chat_id)
        self._events.record(
            "command_handled",
            {"chat_id": chat_id, "command": mode.value, "inline_argument": bool(argument.strip())},
        )
        if argument.strip():
            resolution = self._resolver.resolve(chat_id)
            if resolution is not None:
                return await self._run_turn(chat_id, resolution, text=argument, attachments=[])
        return [READY_MESSAGES.get(mode) or self._help_message]

    async def handle_message(
        self,
        chat_id: int,
        text: str,
        attachments: list[Attachment] | None = None,
    ) -> list[str]:
        attachments = attachments or []
        if not attachments and not text.strip():
            return [EMPTY_INPUT_PROMPT]

        resolution = self._resolver.resolve(chat_id)
        if resolution is None:
            self._events.record("message_without_mode", {"chat_id": chat_id})
            return [NO_MODE_PROMPT]
        return await self._run_turn(chat_id, resolution, text=text, attachments=attachments)

    async def _run_turn(
        self,
        chat_id: int,
        resolution: SessionResolution,
        *,
        text: str,
        attachments: list[Attachment],
    ) -> list[str]:
        assembled = await self._assemble(resolution.mode_key, text, attachments)
        replies = list(assembled.notices)
        if assembled.empty:
            self._events.record(
                "turn_skipped_empty",
                {"chat_id": chat_id, "mode": resolution.mode_key, "skipped": assembled.skipped},
                outcome="degraded",
            )
            return replies or [UNREADABLE_INPUT_PROMPT]

        turns = self._history.update(chat_id, assembled.question, restart=resolution.restart)
        try:
            answer = await asyncio.to_thread(self._relay.ask, resolution.system_prompt, turns)
        except LlmError as exc:
            self._events.record(
                "llm_error",
                {"chat_id": chat_id, "mode": resolution.mode_key, "error": str(exc)},
                outcome="error",
            )
            return replies

        chunks = split_reply(answer, self._reply.chunk_size)
        self._events.record(
            "message_processed",
            {
                "chat_id": chat_id,
                "mode": resolution.mode_key,
                "restart": resolution.restart,
                "history_len": len(turns),
                "question_chars": len(assembled.question),
                "answer_chunks": len(chunks),
                "skipped": assembled.skipped,
            },
        )
        return replies + format_reply(chunks, self._reply.prefix, prefix_mode=self._reply.prefix_mode)

    async def _assemble(self, mode_key: str, text: str, attachments: list[Attachment]) -> AssembledInput:
        if attachments:
            return await asyncio.to_thread(self._assembler.from_attachments, attachments)
        return await asyncio.to_thread(self._assembler.from_text, text, mode_key)
