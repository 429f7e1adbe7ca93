"""Split long answers into platform-sized messages."""

from __future__ import annotations

DEFAULT_CHUNK_SIZE = 1800
DEFAULT_PREFIX = "Answer: "


def split_reply(text: str, size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split text into consecutive chunks of at most ``size`` characters.

    Python strings index by code point, so a chunk boundary never lands inside
    a multi-byte character. The empty string yields no chunks.
    """
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [text[start : start + size] for start in range(0, len(text), size)]


def format_reply(chunks: list[str], prefix: str = DEFAULT_PREFIX, *, prefix_mode: str = "first") -> list[str]:
    if prefix_mode == "every":
        return [f"{prefix}{chunk}" for chunk in chunks]
    if prefix_mode != "first":
        raise ValueError(f"unknown prefix mode: {prefix_mode}")
    return [f"{prefix}{chunk}" if idx == 0 else chunk for idx, chunk in enumerate(chunks)]
