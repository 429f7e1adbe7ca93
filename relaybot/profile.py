"""Profile configuration loader and path resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

REPLY_PREFIX_MODES = {"first", "every"}
DEFAULT_HELP_MESSAGE = (
    "You can enter text or upload an image with text to chat with this bot. "
    "The bot can take several different assistant roles. Type command /qa or /translate "
    "or /summarize or /medical or /code or /reply_tweet to start."
)


@dataclass(frozen=True)
class ProfilePaths:
    base_data_dir: Path
    db_path: Path
    secrets_dir: Path


@dataclass(frozen=True)
class Profile:
    name: str
    display_name: str
    llm_default_model: str
    llm_max_tokens: int
    llm_timeout_seconds: int
    llm_retries: int
    http_timeout_seconds: int
    mode_ttl_seconds: int
    session_ttl_seconds: int
    history_ttl_seconds: int
    history_capacity: int
    reply_chunk_size: int
    reply_prefix: str
    reply_prefix_mode: str
    page_text_max_chars: int
    help_message: str
    paths: ProfilePaths
    prompts: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RuntimeSecrets:
    telegram_bot_token: str
    llm_api_key: str
    llm_base_url: str | None = None
    llm_model: str | None = None
    google_vision_api_key: str | None = None
    page_text_service_url: str | None = None


class ProfileError(ValueError):
    """Raised when profile configuration is invalid."""


class MissingSecretError(ProfileError):
    """Raised at startup when a required secret file is missing or empty."""


def _validate_raw_profile(raw: dict[str, Any], expected_name: str) -> None:
    required = {"name", "display_name"}
    missing = required.difference(raw.keys())
    if missing:
        missing_joined = ", ".join(sorted(missing))
        raise ProfileError(f"Missing required profile keys: {missing_joined}")

    if raw["name"] != expected_name:
        raise ProfileError(
            f"Profile filename/name mismatch: expected '{expected_name}', got '{raw['name']}'"
        )

    mode = raw.get("reply_prefix_mode", "first")
    if mode not in REPLY_PREFIX_MODES:
        raise ProfileError(f"reply_prefix_mode must be one of {sorted(REPLY_PREFIX_MODES)}, got '{mode}'")

    prompts = raw.get("prompts", {})
    if not isinstance(prompts, dict) or not all(isinstance(v, str) for v in prompts.values()):
        raise ProfileError("prompts must be a mapping of mode name to prompt text")


def _int_at_least(raw: dict[str, Any], key: str, default: int, *, minimum: int) -> int:
    value = raw.get(key, default)
    try:
        out = int(value)
    except (TypeError, ValueError) as exc:
        raise ProfileError(f"{key} must be an integer, got {value!r}") from exc
    if out < minimum:
        raise ProfileError(f"{key} must be at least {minimum}, got {out}")
    return out


def _positive_int(raw: dict[str, Any], key: str, default: int) -> int:
    return _int_at_least(raw, key, default, minimum=1)


def load_profile(
    profile_name: str,
    repo_root: Path | None = None,
    data_root: Path | None = None,
) -> Profile:
    """Load a profile from config and resolve data paths."""
    if repo_root is None:
        repo_root = Path(__file__).resolve().parent.parent

    profile_path = repo_root / "config" / "profiles" / f"{profile_name}.yaml"
    if not profile_path.exists():
        raise ProfileError(f"Profile not found: {profile_path}")

    with profile_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ProfileError(f"Profile file must contain a mapping: {profile_path}")

    _validate_raw_profile(raw, profile_name)

    base_data_dir = (data_root or Path.home() / "relaybot_data") / profile_name
    paths = ProfilePaths(
        base_data_dir=base_data_dir,
        db_path=base_data_dir / "relaybot.db",
        secrets_dir=base_data_dir / "secrets",
    )

    retries = _int_at_least(raw, "llm_retries", 2, minimum=0)

    return Profile(
        name=raw["name"],
        display_name=raw["display_name"],
        llm_default_model=str(raw.get("llm_default_model", "gpt-4o-mini")).strip() or "gpt-4o-mini",
        llm_max_tokens=_positive_int(raw, "llm_max_tokens", 512),
        llm_timeout_seconds=_positive_int(raw, "llm_timeout_seconds", 60),
        llm_retries=retries,
        http_timeout_seconds=_positive_int(raw, "http_timeout_seconds", 30),
        mode_ttl_seconds=_positive_int(raw, "mode_ttl_seconds", 60),
        session_ttl_seconds=_positive_int(raw, "session_ttl_seconds", 300),
        history_ttl_seconds=_positive_int(raw, "history_ttl_seconds", 300),
        history_capacity=_positive_int(raw, "history_capacity", 8),
        reply_chunk_size=_positive_int(raw, "reply_chunk_size", 1800),
        reply_prefix=str(raw.get("reply_prefix", "Answer: ")),
        reply_prefix_mode=str(raw.get("reply_prefix_mode", "first")),
        page_text_max_chars=_positive_int(raw, "page_text_max_chars", 36_000),
        help_message=str(raw.get("help_message") or DEFAULT_HELP_MESSAGE).strip(),
        paths=paths,
        prompts=dict(raw.get("prompts", {})),
    )


def _read_secret(secrets_dir: Path, filename: str) -> str | None:
    """Read first line of a secret file; return None if missing or empty."""
    path = secrets_dir / filename
    if not path.exists():
        return None
    raw = path.read_text(encoding="utf-8").strip()
    return raw if raw else None


def load_secrets(profile: Profile) -> RuntimeSecrets:
    """Read secret files; the bot token and LLM key are required."""
    secrets_dir = profile.paths.secrets_dir
    token = _read_secret(secrets_dir, "telegram_bot_token.txt")
    if token is None:
        raise MissingSecretError(f"Missing telegram_bot_token.txt in {secrets_dir}")
    llm_key = _read_secret(secrets_dir, "llm_api_key.txt") or _read_secret(secrets_dir, "openai_api_key.txt")
    if llm_key is None:
        raise MissingSecretError(f"Missing llm_api_key.txt (or openai_api_key.txt) in {secrets_dir}")
    return RuntimeSecrets(
        telegram_bot_token=token,
        llm_api_key=llm_key,
        llm_base_url=_read_secret(secrets_dir, "llm_base_url.txt"),
        llm_model=_read_secret(secrets_dir, "llm_model.txt"),
        google_vision_api_key=_read_secret(secrets_dir, "google_vision_api_key.txt"),
        page_text_service_url=_read_secret(secrets_dir, "page_text_service_url.txt"),
    )


def ensure_profile_directories(profile: Profile) -> None:
    """Create profile directories without touching existing data."""
    profile.paths.base_data_dir.mkdir(parents=True, exist_ok=True)
    profile.paths.secrets_dir.mkdir(parents=True, exist_ok=True)
