"""
LLM Client

Text-completion collaborator for quick-ask. ``OpenAICompletionClient`` talks
to any OpenAI-compatible chat endpoint (OpenAI itself, or Gemini's
compatibility layer) through the ``openai`` SDK.
"""

import logging
import time
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from levely_companion.models import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.3


def merge_instruction(system: Optional[str], context: Optional[str]) -> str:
    """Join system prompt and context into one instruction, skipping blanks."""
    sys_text = (system or "").strip()
    ctx_text = (context or "").strip()
    if not sys_text:
        return ctx_text
    if not ctx_text:
        return sys_text
    return f"{sys_text}\n\n{ctx_text}"


class LlmClient:
    """Contract: ``await complete(system, context, messages)`` returns reply text."""

    async def complete(self, system: str, context: str, messages: Sequence[ChatMessage]) -> str:
        raise NotImplementedError


class OpenAICompletionClient(LlmClient):
    """
    Chat completion over ``AsyncOpenAI``.

    Exceptions from the SDK propagate; the engine decides how to degrade.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url or None)

    def build_messages(self, system: str, context: str, messages: Sequence[ChatMessage]) -> List[dict]:
        payload = []
        instruction = merge_instruction(system, context)
        if instruction:
            payload.append({"role": "system", "content": instruction})
        payload.extend(message.to_dict() for message in messages)
        return payload

    async def complete(self, system: str, context: str, messages: Sequence[ChatMessage]) -> str:
        start_time = time.time()
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=self.build_messages(system, context, messages),
            temperature=self.temperature,
        )
        elapsed = time.time() - start_time

        if not response.choices:
            logger.warning(f"⚠️ [OpenAICompletionClient] Empty completion after {elapsed:.2f}s")
            return ""
        text = (response.choices[0].message.content or "").strip()
        logger.info(f"✅ [OpenAICompletionClient] Completed in {elapsed:.2f}s ({len(text)} chars)")
        return text
