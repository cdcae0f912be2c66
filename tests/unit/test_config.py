"""
Unit Tests for Configuration and the LLM Client
"""

import pytest
import sys
import os
from datetime import timezone
from types import SimpleNamespace

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "levely_companion", "src"))

from levely_companion.config import (
    DEFAULT_LLM_BASE_URL,
    DEFAULT_LLM_MODEL,
    LevelySettings,
    LlmConfig,
    build_llm_client,
    resolve_llm_config,
)
from levely_companion.llm_client import OpenAICompletionClient, merge_instruction
from levely_companion.models import ChatMessage


class FakeCompletions:
    """Records ``create`` calls and returns a canned response."""

    def __init__(self, response):
        self.response = response
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


def fake_openai(content="  Halo dari Levely.  ", choices=True):
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))] if choices else []
    )
    completions = FakeCompletions(response)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class TestResolveLlmConfig:
    """Key, model and base URL precedence."""

    def test_defaults(self):
        config = resolve_llm_config(environ={})

        assert config == LlmConfig()
        assert config.model == DEFAULT_LLM_MODEL
        assert config.base_url == DEFAULT_LLM_BASE_URL
        assert config.enabled is False

    def test_environment_values(self):
        config = resolve_llm_config(environ={
            "LEVELY_LLM_API_KEY": "env-key",
            "LEVELY_LLM_MODEL": "gpt-4o-mini",
            "LEVELY_LLM_BASE_URL": "https://api.openai.com/v1",
        })

        assert config.api_key == "env-key"
        assert config.model == "gpt-4o-mini"
        assert config.base_url == "https://api.openai.com/v1"

    def test_openai_key_fallback(self):
        config = resolve_llm_config(environ={"LEVELY_LLM_API_KEY": "  ", "OPENAI_API_KEY": "sk-test"})
        assert config.api_key == "sk-test"

    def test_overrides_need_permission(self):
        environ = {"LEVELY_LLM_API_KEY": "env-key"}
        overrides = {"api_key": "caller-key", "model": "custom"}

        assert resolve_llm_config(overrides, allow_overrides=False, environ=environ).api_key == "env-key"
        allowed = resolve_llm_config(overrides, allow_overrides=True, environ=environ)
        assert allowed.api_key == "caller-key"
        assert allowed.model == "custom"

    def test_blank_override_is_ignored(self):
        config = resolve_llm_config({"api_key": " "}, allow_overrides=True, environ={"OPENAI_API_KEY": "sk"})
        assert config.api_key == "sk"

    def test_build_client_without_key(self):
        assert build_llm_client(LlmConfig()) is None

    def test_build_client_with_key(self):
        client = build_llm_client(LlmConfig(api_key="sk-test", model="gpt-4o-mini"))

        assert isinstance(client, OpenAICompletionClient)
        assert client.model == "gpt-4o-mini"


class TestLevelySettings:
    """Environment-driven runtime settings."""

    def test_defaults(self):
        settings = LevelySettings.from_env(environ={}, load_env_file=False)

        assert settings.llm_timeout_seconds == 20.0
        assert settings.max_sentences == 8
        assert settings.progress_table == "levely_progress"
        assert settings.chat_resume_latest is False
        assert settings.serialize_updates is True
        assert settings.streak_timezone == timezone.utc
        assert settings.supabase_enabled is False

    def test_values_from_environment(self):
        settings = LevelySettings.from_env(environ={
            "LEVELY_LLM_TIMEOUT_SECONDS": "5.5",
            "LEVELY_MAX_SENTENCES": "4",
            "LEVELY_PROGRESS_TABLE": "progress_v2",
            "LEVELY_CHAT_RESUME_LATEST": "yes",
            "LEVELY_SERIALIZE_UPDATES": "off",
            "SUPABASE_URL": "https://example.supabase.co",
            "SUPABASE_SERVICE_KEY": "service-key",
        }, load_env_file=False)

        assert settings.llm_timeout_seconds == 5.5
        assert settings.max_sentences == 4
        assert settings.progress_table == "progress_v2"
        assert settings.chat_resume_latest is True
        assert settings.serialize_updates is False
        assert settings.supabase_enabled is True

    @pytest.mark.parametrize("raw", ["abc", "0", "-3"])
    def test_bad_numbers_fall_back(self, raw):
        settings = LevelySettings.from_env(environ={"LEVELY_LLM_TIMEOUT_SECONDS": raw}, load_env_file=False)
        assert settings.llm_timeout_seconds == 20.0

    def test_bad_boolean_falls_back(self):
        settings = LevelySettings.from_env(environ={"LEVELY_SERIALIZE_UPDATES": "maybe"}, load_env_file=False)
        assert settings.serialize_updates is True

    def test_streak_timezone_from_environment(self):
        settings = LevelySettings.from_env(environ={"LEVELY_TIMEZONE": " Asia/Jakarta "}, load_env_file=False)
        assert settings.streak_timezone.key == "Asia/Jakarta"

    @pytest.mark.parametrize("raw", ["Mars/Olympus_Mons", "../etc"])
    def test_unknown_timezone_falls_back_to_utc(self, raw):
        settings = LevelySettings.from_env(environ={"LEVELY_TIMEZONE": raw}, load_env_file=False)
        assert settings.streak_timezone == timezone.utc


class TestOpenAICompletionClient:
    """Chat completion request shape and reply handling."""

    def test_merge_instruction(self):
        assert merge_instruction("sys", "ctx") == "sys\n\nctx"
        assert merge_instruction("", "ctx") == "ctx"
        assert merge_instruction("sys", None) == "sys"

    def test_build_messages(self):
        fake, _ = fake_openai()
        client = OpenAICompletionClient(api_key="k", model="m", client=fake)

        payload = client.build_messages("sys", "ctx", [ChatMessage.user("halo"), ChatMessage.assistant("hai")])

        assert payload == [
            {"role": "system", "content": "sys\n\nctx"},
            {"role": "user", "content": "halo"},
            {"role": "assistant", "content": "hai"},
        ]

    @pytest.mark.asyncio
    async def test_complete_returns_stripped_text(self):
        fake, completions = fake_openai()
        client = OpenAICompletionClient(api_key="k", model="gemini-3-flash", temperature=0.2, client=fake)

        reply = await client.complete("sys", "ctx", [ChatMessage.user("Apa itu UX?")])

        assert reply == "Halo dari Levely."
        assert completions.calls[0]["model"] == "gemini-3-flash"
        assert completions.calls[0]["temperature"] == 0.2
        assert completions.calls[0]["messages"][-1] == {"role": "user", "content": "Apa itu UX?"}

    @pytest.mark.asyncio
    async def test_complete_without_choices(self):
        fake, _ = fake_openai(choices=False)
        client = OpenAICompletionClient(api_key="k", model="m", client=fake)

        assert await client.complete("sys", "ctx", []) == ""

    @pytest.mark.asyncio
    async def test_complete_with_null_content(self):
        fake, _ = fake_openai(content=None)
        client = OpenAICompletionClient(api_key="k", model="m", client=fake)

        assert await client.complete("sys", "ctx", []) == ""


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
