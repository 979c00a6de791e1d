"""
LLM Provider Implementations.

- ClaudeClient: Anthropic SDK
- OpenAIClient: OpenAI SDK
- DisabledClient: no key configured; every call fails fast
"""

import logging
import os
import time
from typing import Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from .base import BaseLLMClient, LLMConfig, LLMResponse

logger = logging.getLogger(__name__)


class _SDKClient(BaseLLMClient):
    """Shared key lookup, timing and error capture for the SDK-backed clients."""

    env_key = ""

    def __init__(self, config: Optional[LLMConfig] = None):
        super().__init__(config)
        self._client = None

        api_key = self.config.api_key or os.environ.get(self.env_key)
        if not api_key:
            logger.info(f"{self.provider_name}: {self.env_key} not set - client disabled")
            return

        self.config.api_key = api_key
        self._client = self._connect(api_key)
        self.available = True
        logger.info(f"{self.provider_name}: ready ({self.config.model})")

    def _connect(self, api_key: str):
        raise NotImplementedError

    async def _complete(self, prompt: str, system_prompt: Optional[str]) -> str:
        raise NotImplementedError

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        if not self.available:
            return LLMResponse(success=False, error=f"{self.provider_name} not available")

        start = time.time()
        try:
            text = await self._complete(prompt, system_prompt)
        except Exception as e:
            logger.error(f"{self.provider_name} generation failed after {int((time.time() - start) * 1000)}ms: {e}")
            return LLMResponse(success=False, error=str(e))

        logger.debug(f"{self.provider_name}: {len(text)} chars in {int((time.time() - start) * 1000)}ms")
        return LLMResponse(success=True, text=text)

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None


class ClaudeClient(_SDKClient):
    provider_name = "claude"
    env_key = "ANTHROPIC_API_KEY"

    def _connect(self, api_key: str) -> AsyncAnthropic:
        return AsyncAnthropic(api_key=api_key, timeout=self.config.timeout)

    async def _complete(self, prompt: str, system_prompt: Optional[str]) -> str:
        kwargs = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        response = await self._client.messages.create(**kwargs)
        return response.content[0].text if response.content else ""


class OpenAIClient(_SDKClient):
    provider_name = "openai"
    env_key = "OPENAI_API_KEY"

    def _connect(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, timeout=self.config.timeout)

    async def _complete(self, prompt: str, system_prompt: Optional[str]) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        return response.choices[0].message.content or ""


class DisabledClient(BaseLLMClient):
    """Stands in when no provider key is configured."""

    provider_name = "disabled"

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        return LLMResponse(success=False, error="No LLM provider configured")
