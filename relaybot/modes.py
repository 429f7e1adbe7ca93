"""Assistant modes and the prompt catalog."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Mode(str, Enum):
    HELP = "help"
    START = "start"
    SUMMARIZE = "summarize"
    CODE = "code"
    MEDICAL = "medical"
    TRANSLATE = "translate"
    REPLY_TWEET = "reply_tweet"
    QA = "qa"

    @property
    def catalog_key(self) -> str | None:
        """Key into the prompt catalog; help has no prompt and arms nothing."""
        if self is Mode.HELP:
            return None
        return self.value


COMMAND_DESCRIPTIONS: Mapping[Mode, str] = MappingProxyType(
    {
        Mode.HELP: "Display help message",
        Mode.START: "Start a conversation with the assistant",
        Mode.SUMMARIZE: "Generate a summary on given url or text",
        Mode.CODE: "Review source code",
        Mode.MEDICAL: "Review and summarize doctor notes or medical test results",
        Mode.TRANSLATE: "Translate anything into English",
        Mode.REPLY_TWEET: "Reply a tweet for you",
        Mode.QA: "Ask general questions",
    }
)

# None means the help message is sent instead.
READY_MESSAGES: Mapping[Mode, str | None] = MappingProxyType(
    {
        Mode.HELP: None,
        Mode.START: None,
        Mode.SUMMARIZE: "I'm ready to summarize, please input a url or text",
        Mode.CODE: "I'm ready to review source code",
        Mode.MEDICAL: "I am ready to review and summarize doctor notes or medical test results",
        Mode.TRANSLATE: "I'm ready to translate",
        Mode.REPLY_TWEET: "I'm ready to process your tweet",
        Mode.QA: "I'm ready for your questions",
    }
)

DEFAULT_PROMPTS: Mapping[str, str] = MappingProxyType(
    {
        "start": "You are a helpful assistant answering questions on Telegram.",
        "summarize": (
            "You are a helpful assistant trained to summarize text in short bullet points. "
            "Please always answer in English even if the original text is not in English. "
            "Be prepared that you might be asked questions related to the content you summarize."
        ),
        "code": (
            "You are an experienced software developer trained to review computer source code, "
            "explain what it does, identify potential problems, and suggest improvements. "
            "Please always answer in English. Be prepared that you might be asked follow-up "
            "questions related to the source code."
        ),
        "medical": (
            "You are a medical doctor trained to read and summarize lab reports. The text you "
            "receive will contain medical lab results. Please analyze them and present the major "
            "findings as short bullet points, followed by a one-sentence summary about the "
            "subject's health status. All answers should be in English. Be prepared to answer "
            "follow-up questions related to the lab report."
        ),
        "translate": (
            "You are an English language translator. For every message you receive, please "
            "translate it to English. Please respond with just the English translation and "
            "nothing more. If the input message is already in English, please fix any grammar "
            "errors and improve the writing."
        ),
        "reply_tweet": (
            "You are a social media marketing expert. You will receive the text from a tweet. "
            "Please generate 3 clever replies to it. Then follow user suggestions to improve "
            "the reply tweets."
        ),
        "qa": "You are a helpful assistant answering general questions clearly and concisely.",
    }
)


@dataclass(frozen=True)
class PromptCatalog:
    """Immutable mode key to system prompt mapping, built once at startup."""

    prompts: Mapping[str, str]

    @classmethod
    def build(cls, overrides: Mapping[str, str] | None = None) -> PromptCatalog:
        merged = dict(DEFAULT_PROMPTS)
        for key, text in (overrides or {}).items():
            merged[str(key)] = str(text).strip()
        return cls(prompts=MappingProxyType(merged))

    def lookup(self, mode_key: str) -> str:
        """Return the system prompt for a mode key, or "" when the key is unknown."""
        return self.prompts.get(mode_key, "")

    def keys(self) -> list[str]:
        return sorted(self.prompts.keys())
