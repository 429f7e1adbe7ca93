"""relaybot runtime entry point."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from relaybot.assembler import InputAssembler
from relaybot.conversation import ConversationService, ReplySettings
from relaybot.llm import LlmRelay
from relaybot.memory.chat_history import ChatHistoryBuffer
from relaybot.memory.engine import MemoryEngine
from relaybot.memory.event_log import EventLogStore
from relaybot.memory.expiring_store import ExpiringStore
from relaybot.modes import PromptCatalog
from relaybot.profile import (
    Profile,
    ProfileError,
    RuntimeSecrets,
    ensure_profile_directories,
    load_profile,
    load_secrets,
)
from relaybot.services.fetch import fetch_bytes
from relaybot.services.ocr import VisionOcrClient
from relaybot.services.page_text import PageTextClient
from relaybot.session import SessionStateResolver
from relaybot.telegram_bot import TelegramBot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the relaybot Telegram assistant")
    parser.add_argument("--profile", required=True, help="Profile name, e.g. default")
    parser.add_argument(
        "--repo-root",
        default=None,
        help="Optional repo root override for config loading",
    )
    parser.add_argument(
        "--data-root",
        default=None,
        help="Optional override for the directory holding per-profile data",
    )
    return parser


def build_conversation(
    profile: Profile,
    secrets: RuntimeSecrets,
    store: ExpiringStore,
    events: EventLogStore,
) -> ConversationService:
    catalog = PromptCatalog.build(profile.prompts)
    resolver = SessionStateResolver(
        store,
        catalog,
        mode_ttl_seconds=profile.mode_ttl_seconds,
        session_ttl_seconds=profile.session_ttl_seconds,
    )
    history = ChatHistoryBuffer(
        store,
        capacity=profile.history_capacity,
        ttl_seconds=profile.history_ttl_seconds,
    )
    timeout = profile.http_timeout_seconds
    ocr = (
        VisionOcrClient(secrets.google_vision_api_key, timeout=timeout)
        if secrets.google_vision_api_key
        else None
    )
    page_text = (
        PageTextClient(secrets.page_text_service_url, timeout=timeout)
        if secrets.page_text_service_url
        else None
    )
    assembler = InputAssembler(
        ocr=ocr,
        page_text=page_text,
        fetch=lambda url: fetch_bytes(url, timeout=timeout),
        page_text_max_chars=profile.page_text_max_chars,
        on_event=lambda event, payload: events.record(event, payload, outcome="degraded"),
    )
    relay = LlmRelay(
        secrets.llm_api_key,
        base_url=secrets.llm_base_url,
        model=secrets.llm_model or profile.llm_default_model,
        max_tokens=profile.llm_max_tokens,
        timeout=profile.llm_timeout_seconds,
        retries=profile.llm_retries,
    )
    events.record(
        "runtime_configured",
        {
            "profile": profile.name,
            "llm": relay.describe(),
            "ocr_enabled": ocr is not None,
            "page_text_enabled": page_text is not None,
            "prompts": catalog.keys(),
        },
    )
    return ConversationService(
        resolver=resolver,
        assembler=assembler,
        history=history,
        relay=relay,
        events=events,
        help_message=profile.help_message,
        reply_settings=ReplySettings(
            chunk_size=profile.reply_chunk_size,
            prefix=profile.reply_prefix,
            prefix_mode=profile.reply_prefix_mode,
        ),
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    repo_root = Path(args.repo_root).resolve() if args.repo_root else None
    data_root = Path(args.data_root).resolve() if args.data_root else None
    try:
        profile = load_profile(args.profile, repo_root=repo_root, data_root=data_root)
    except ProfileError as exc:
        print(f"relaybot: {exc}", file=sys.stderr)
        return 2
    ensure_profile_directories(profile)

    memory_engine = MemoryEngine(profile.paths.db_path)
    memory_engine.initialize()
    conn = memory_engine.connect()
    events = EventLogStore(conn)
    store = ExpiringStore(conn)
    store.purge_expired()

    try:
        secrets = load_secrets(profile)
    except ProfileError as exc:
        events.record("startup_failed", {"profile": profile.name, "error": str(exc)}, outcome="error")
        memory_engine.close()
        print(f"relaybot: {exc}", file=sys.stderr)
        return 2

    conversation = build_conversation(profile, secrets, store, events)
    telegram_bot = TelegramBot(
        profile=profile,
        token=secrets.telegram_bot_token,
        conversation=conversation,
        events=events,
    )
    events.record("agent_boot", {"profile": profile.name})
    try:
        telegram_bot.start()
    finally:
        telegram_bot.stop()
        events.record("agent_shutdown", {"profile": profile.name})
        memory_engine.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
