"""
Configuration

Settings are read from the environment (``.env`` is loaded through
python-dotenv). Nothing here builds clients at import time.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from levely_companion.llm_client import OpenAICompletionClient

logger = logging.getLogger(__name__)

DEFAULT_LLM_MODEL = "gemini-3-flash"
DEFAULT_LLM_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_LLM_TIMEOUT_SECONDS = 20.0
DEFAULT_MAX_SENTENCES = 8
DEFAULT_PROGRESS_TABLE = "levely_progress"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class LlmConfig:
    api_key: str = ""
    model: str = DEFAULT_LLM_MODEL
    base_url: str = DEFAULT_LLM_BASE_URL

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


def _clean(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _first_non_empty(*values) -> Optional[str]:
    for value in values:
        cleaned = _clean(value)
        if cleaned:
            return cleaned
    return None


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _clean(environ.get(name))
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning(f"⚠️ [Config] {name}={raw!r} is not a boolean, using {default}")
    return default


def _env_number(environ: Mapping[str, str], name: str, default, cast):
    raw = _clean(environ.get(name))
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"⚠️ [Config] {name}={raw!r} is not a number, using {default}")
        return default
    if value <= 0:
        logger.warning(f"⚠️ [Config] {name} must be positive, using {default}")
        return default
    return value


def _env_timezone(environ: Mapping[str, str], name: str) -> tzinfo:
    """IANA zone name from the environment, UTC when unset or unknown."""
    raw = _clean(environ.get(name))
    if raw is None:
        return timezone.utc
    try:
        return ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ [Config] {name}={raw!r} is not a known time zone, using UTC")
        return timezone.utc


def resolve_llm_config(
    overrides: Optional[Mapping[str, str]] = None,
    allow_overrides: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> LlmConfig:
    """
    Resolve API key, model and base URL.

    Precedence per field: caller overrides (only when ``allow_overrides``,
    blank values ignored), then environment, then defaults.

    Args:
        overrides: Optional ``api_key`` / ``model`` / ``base_url`` values
        allow_overrides: Whether caller overrides are honoured
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        LlmConfig
    """
    environ = os.environ if environ is None else environ
    overrides = (overrides or {}) if allow_overrides else {}

    api_key = _first_non_empty(
        overrides.get("api_key"),
        environ.get("LEVELY_LLM_API_KEY"),
        environ.get("OPENAI_API_KEY"),
    )
    model = _first_non_empty(overrides.get("model"), environ.get("LEVELY_LLM_MODEL"))
    base_url = _first_non_empty(overrides.get("base_url"), environ.get("LEVELY_LLM_BASE_URL"))

    return LlmConfig(
        api_key=api_key or "",
        model=model or DEFAULT_LLM_MODEL,
        base_url=base_url or DEFAULT_LLM_BASE_URL,
    )


def build_llm_client(config: LlmConfig) -> Optional[OpenAICompletionClient]:
    """Return a completion client, or ``None`` when no API key is configured."""
    if not config.enabled:
        logger.warning("⚠️ [Config] No LLM API key configured, quick-ask will use offline answers")
        return None
    return OpenAICompletionClient(api_key=config.api_key, model=config.model, base_url=config.base_url)


@dataclass(frozen=True)
class LevelySettings:
    """Runtime settings for the companion and the HTTP service."""
    llm: LlmConfig = field(default_factory=LlmConfig)
    llm_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS
    max_sentences: int = DEFAULT_MAX_SENTENCES
    progress_table: str = DEFAULT_PROGRESS_TABLE
    chat_resume_latest: bool = False
    serialize_updates: bool = True
    # Calendar used for the daily streak
    streak_timezone: tzinfo = timezone.utc
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, load_env_file: bool = True) -> "LevelySettings":
        if load_env_file:
            load_dotenv()
        environ = os.environ if environ is None else environ

        return cls(
            llm=resolve_llm_config(environ=environ),
            llm_timeout_seconds=_env_number(
                environ, "LEVELY_LLM_TIMEOUT_SECONDS", DEFAULT_LLM_TIMEOUT_SECONDS, float
            ),
            max_sentences=_env_number(environ, "LEVELY_MAX_SENTENCES", DEFAULT_MAX_SENTENCES, int),
            progress_table=_clean(environ.get("LEVELY_PROGRESS_TABLE")) or DEFAULT_PROGRESS_TABLE,
            chat_resume_latest=_env_bool(environ, "LEVELY_CHAT_RESUME_LATEST", False),
            serialize_updates=_env_bool(environ, "LEVELY_SERIALIZE_UPDATES", True),
            streak_timezone=_env_timezone(environ, "LEVELY_TIMEZONE"),
            supabase_url=_clean(environ.get("SUPABASE_URL")),
            supabase_service_key=_clean(environ.get("SUPABASE_SERVICE_KEY")),
        )
