from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

from relaybot.assembler import Attachment, InputAssembler
from relaybot.conversation import (
    EMPTY_INPUT_PROMPT,
    NO_MODE_PROMPT,
    UNREADABLE_INPUT_PROMPT,
    ConversationService,
    ReplySettings,
)
from relaybot.llm import LlmError
from relaybot.memory.chat_history import ChatHistoryBuffer
from relaybot.memory.engine import MemoryEngine
from relaybot.memory.event_log import EventLogStore
from relaybot.memory.expiring_store import ExpiringStore
from relaybot.modes import DEFAULT_PROMPTS, READY_MESSAGES, Mode, PromptCatalog
from relaybot.services.fetch import FetchError
from relaybot.services.ocr import OcrError
from relaybot.session import SessionStateResolver

HELP = "help text"


class FakeRelay:
    def __init__(self, answer: str = "the answer", fail: bool = False) -> None:
        self.answer = answer
        self.fail = fail
        self.calls: list[tuple[str, list[str]]] = []

    def ask(self, system_prompt: str, user_turns: list[str]) -> str:
        self.calls.append((system_prompt, list(user_turns)))
        if self.fail:
            raise LlmError("endpoint down (after 3 attempts)")
        return self.answer


class FakePageText:
    def __init__(self, text: str) -> None:
        self.text = text

    def get_page_text(self, url: str) -> str:
        return self.text


class FakeOcr:
    def detect_text(self, image: bytes) -> str:
        if image == b"blank":
            raise OcrError("no text")
        return image.decode("utf-8").upper()


def fetch(url: str) -> bytes:
    if url.endswith("missing.png"):
        raise FetchError("HTTP 404")
    return url.rsplit("/", 1)[-1].split(".")[0].encode("utf-8")


class ConversationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = MemoryEngine(Path(self._tmp.name) / "relay.db")
        self.engine.initialize()
        conn = self.engine.connect()
        self.events = EventLogStore(conn)
        self.store = ExpiringStore(conn)
        self.relay = FakeRelay()
        self.page = FakePageText("".join(chr(ord("a") + i % 26) for i in range(50_000)))
        self.service = self._service(ReplySettings())

    def tearDown(self) -> None:
        self.engine.close()
        self._tmp.cleanup()

    def _service(self, reply_settings: ReplySettings) -> ConversationService:
        return ConversationService(
            resolver=SessionStateResolver(self.store, PromptCatalog.build()),
            assembler=InputAssembler(
                ocr=FakeOcr(),
                page_text=self.page,
                fetch=fetch,
                on_event=lambda event, payload: self.events.record(event, payload, outcome="degraded"),
            ),
            history=ChatHistoryBuffer(self.store),
            relay=self.relay,
            events=self.events,
            help_message=HELP,
            reply_settings=reply_settings,
        )

    def _command(self, mode: Mode, argument: str = "", chat_id: int = 1) -> list[str]:
        return asyncio.run(self.service.handle_command(chat_id, mode, argument))

    def _message(self, text: str, attachments: list[Attachment] | None = None, chat_id: int = 1) -> list[str]:
        return asyncio.run(self.service.handle_message(chat_id, text, attachments))

    def test_message_without_mode_prompts_for_role(self) -> None:
        self.assertEqual(self._message("hello"), [NO_MODE_PROMPT])
        self.assertEqual(self.relay.calls, [])

    def test_empty_message_prompts_for_input(self) -> None:
        self._command(Mode.QA)
        self.assertEqual(self._message("   "), [EMPTY_INPUT_PROMPT])
        self.assertEqual(self.relay.calls, [])

    def test_help_replies_without_arming(self) -> None:
        self.assertEqual(self._command(Mode.HELP), [HELP])
        self.assertEqual(self._message("hello"), [NO_MODE_PROMPT])

    def test_start_replies_with_help(self) -> None:
        self.assertEqual(self._command(Mode.START), [HELP])

    def test_mode_then_conversation(self) -> None:
        self.assertEqual(self._command(Mode.CODE), [READY_MESSAGES[Mode.CODE]])

        self.assertEqual(self._message("print(1)"), ["Answer: the answer"])
        self.assertEqual(self.relay.calls[-1], (DEFAULT_PROMPTS["code"], ["print(1)"]))

        self._message("why?")
        self.assertEqual(self.relay.calls[-1], (DEFAULT_PROMPTS["code"], ["print(1)", "why?"]))

        self._command(Mode.TRANSLATE)
        self._message("hola")
        self.assertEqual(self.relay.calls[-1], (DEFAULT_PROMPTS["translate"], ["hola"]))

    def test_inline_summarize_url_forwards_truncated_page(self) -> None:
        replies = self._command(Mode.SUMMARIZE, "https://example.com/a")
        self.assertEqual(replies, ["Answer: the answer"])
        system_prompt, turns = self.relay.calls[-1]
        self.assertEqual(system_prompt, DEFAULT_PROMPTS["summarize"])
        self.assertEqual(len(turns[-1]), 36_000)
        self.assertEqual(turns[-1], self.page.text[:36_000])

    def test_llm_failure_posts_nothing_and_logs(self) -> None:
        self.relay.fail = True
        self._command(Mode.QA)
        self.assertEqual(self._message("what is dns?"), [])
        errors = self.events.latest(event_type="llm_error")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0]["outcome"], "error")

    def test_long_answer_is_chunked(self) -> None:
        self.relay.answer = "0123456789" * 2 + "abcde"
        self.service = self._service(ReplySettings(chunk_size=10, prefix="Answer: ", prefix_mode="first"))
        self._command(Mode.QA)
        self.assertEqual(self._message("q"), ["Answer: 0123456789", "0123456789", "abcde"])

    def test_attachments_with_failed_ocr(self) -> None:
        self._command(Mode.MEDICAL)
        replies = self._message(
            "caption ignored",
            [
                Attachment("https://files/blank.png", "image/png"),
                Attachment("https://files/labs.png", "image/png"),
            ],
        )
        self.assertEqual(replies, ["Answer: the answer"])
        self.assertEqual(self.relay.calls[-1][1], ["LABS\n"])

    def test_unreadable_attachments_skip_llm(self) -> None:
        self._command(Mode.MEDICAL)
        replies = self._message("", [Attachment("https://files/missing.png", "image/png")])
        self.assertEqual(replies, ["There is a problem with the uploaded file. Can you try again?"])
        self.assertEqual(self.relay.calls, [])

        replies = self._message("", [Attachment("https://files/blank.png", "image/png")])
        self.assertEqual(replies, [UNREADABLE_INPUT_PROMPT])
        self.assertEqual(self.relay.calls, [])


if __name__ == "__main__":
    unittest.main()
