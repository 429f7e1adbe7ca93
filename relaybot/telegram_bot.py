"""Telegram front end: mode commands, mentions and attachments routed to the conversation service."""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable

from telegram import BotCommand, Message, MessageEntity, Update
from telegram.constants import ChatType
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from relaybot.assembler import UPLOAD_PROBLEM_NOTICE, Attachment
from relaybot.conversation import ConversationService
from relaybot.memory.event_log import EventLogStore
from relaybot.modes import COMMAND_DESCRIPTIONS, Mode
from relaybot.profile import Profile

PHOTO_CONTENT_TYPE = "image/jpeg"
UNKNOWN_CONTENT_TYPE = "application/octet-stream"


def command_argument(text: str) -> str:
    """Everything after the command token, newlines preserved."""
    parts = text.strip().split(maxsplit=1)
    return parts[1] if len(parts) > 1 else ""


def mentions_bot(message: Message, bot_username: str | None) -> bool:
    if not bot_username:
        return False
    handle = f"@{bot_username}".lower()
    found = list(message.parse_entities([MessageEntity.MENTION]).values())
    found += list(message.parse_caption_entities([MessageEntity.MENTION]).values())
    return any(value.lower() == handle for value in found)


class TelegramBot:
    def __init__(
        self,
        profile: Profile,
        token: str,
        conversation: ConversationService,
        events: EventLogStore,
    ) -> None:
        self._profile = profile
        self._token = token
        self._conversation = conversation
        self._events = events
        self._started_at = 0.0
        self._app: Application | None = None

    def start(self) -> None:
        """Build the application and poll until a stop signal arrives."""
        self._started_at = time.time()
        self._app = (
            Application.builder()
            .token(self._token)
            .post_init(self._post_init)
            .build()
        )
        self._setup_handlers()
        self._events.record("telegram_bot_started", {"profile": self._profile.name})
        self._app.run_polling(drop_pending_updates=False, allowed_updates=Update.ALL_TYPES)

    async def _post_init(self, app: Application) -> None:
        commands = [BotCommand(mode.value, COMMAND_DESCRIPTIONS[mode]) for mode in Mode]
        await app.bot.set_my_commands(commands)
        self._events.record("telegram_commands_registered", {"commands": [mode.value for mode in Mode]})

    def stop(self) -> None:
        if self._app is not None:
            self._events.record(
                "telegram_bot_stopped",
                {"profile": self._profile.name, "uptime": int(time.time() - self._started_at)},
            )
        self._app = None

    def _setup_handlers(self) -> None:
        assert self._app is not None
        for mode in Mode:
            self._app.add_handler(CommandHandler(mode.value, self._command_callback(mode)))
        self._app.add_handler(
            MessageHandler(
                (filters.TEXT | filters.PHOTO | filters.Document.ALL) & ~filters.COMMAND,
                self._handle_message,
            )
        )
        self._app.add_error_handler(self._handle_error)

    def _command_callback(
        self, mode: Mode
    ) -> Callable[[Update, ContextTypes.DEFAULT_TYPE], Awaitable[None]]:
        async def callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            await self._cmd_mode(update, context, mode)

        return callback

    def _should_handle(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
        message = update.effective_message
        chat = update.effective_chat
        if message is None or chat is None:
            return False
        user = update.effective_user
        if user is not None and user.is_bot:
            return False
        if chat.type == ChatType.PRIVATE:
            return True
        return mentions_bot(message, context.bot.username)

    async def _cmd_mode(self, update: Update, context: ContextTypes.DEFAULT_TYPE, mode: Mode) -> None:
        if not self._should_handle_command(update):
            return
        chat_id = update.effective_chat.id
        argument = command_argument(update.effective_message.text or "")
        replies = await self._conversation.handle_command(chat_id, mode, argument)
        await self._send(update, replies)

    def _should_handle_command(self, update: Update) -> bool:
        if update.effective_message is None or update.effective_chat is None:
            return False
        user = update.effective_user
        return user is None or not user.is_bot

    async def _handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not self._should_handle(update, context):
            return
        message = update.effective_message
        chat_id = update.effective_chat.id
        attachments = await self._collect_attachments(chat_id, message)
        text = message.text or message.caption or ""
        if not attachments and (message.photo or message.document):
            # Attachments were present but none could be resolved to a download URL.
            await self._send(update, [UPLOAD_PROBLEM_NOTICE])
            return
        replies = await self._conversation.handle_message(chat_id, text, attachments)
        await self._send(update, replies)

    async def _collect_attachments(self, chat_id: int, message: Message) -> list[Attachment]:
        out: list[Attachment] = []
        sources: list[tuple[Any, str]] = []
        if message.photo:
            sources.append((message.photo[-1], PHOTO_CONTENT_TYPE))
        if message.document is not None:
            sources.append((message.document, message.document.mime_type or UNKNOWN_CONTENT_TYPE))
        for item, content_type in sources:
            try:
                tg_file = await item.get_file()
            except TelegramError as exc:
                self._events.record(
                    "telegram_get_file_error",
                    {"chat_id": chat_id, "error": str(exc)},
                    outcome="degraded",
                )
                continue
            if tg_file.file_path:
                out.append(
                    Attachment(
                        url=tg_file.file_path,
                        content_type=content_type,
                        label=tg_file.file_unique_id,
                    )
                )
        return out

    async def _send(self, update: Update, replies: list[str]) -> None:
        message = update.effective_message
        if message is None:
            return
        chat_id = update.effective_chat.id if update.effective_chat else 0
        for reply in replies:
            try:
                await message.reply_text(reply)
            except TelegramError as exc:
                self._events.record(
                    "telegram_send_error",
                    {"chat_id": chat_id, "error": str(exc), "chars": len(reply)},
                    outcome="degraded",
                )

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = 0
        if isinstance(update, Update) and update.effective_chat is not None:
            chat_id = update.effective_chat.id
        self._events.record(
            "telegram_update_error",
            {"chat_id": chat_id, "error": repr(context.error)},
            outcome="error",
        )
