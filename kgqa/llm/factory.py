"""
LLM client selection.

"auto" picks the first provider, in PROVIDERS order, whose API key is in
the environment. With no usable key the DisabledClient is returned and the
orchestrator runs without its external translator stages.
"""

import logging
import os
from typing import Optional

from .base import BaseLLMClient, LLMConfig
from .providers import ClaudeClient, DisabledClient, OpenAIClient

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type] = {
    "claude": ClaudeClient,
    "openai": OpenAIClient,
}


def get_available_providers() -> list[str]:
    """Providers whose API key is set in the environment."""
    return [name for name, client in PROVIDERS.items() if os.environ.get(client.env_key)]


def create_llm_client(
    provider: str = "auto",
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    temperature: float = 0.2,
) -> BaseLLMClient:
    """Build the client for ``provider`` ("auto", "claude" or "openai")."""
    if provider == "auto":
        candidates = get_available_providers()
        if not candidates:
            logger.info("LLM: no provider API keys found - translators disabled")
    elif provider in PROVIDERS:
        candidates = [provider]
    else:
        logger.warning(f"LLM: unknown provider '{provider}'")
        candidates = []

    for name in candidates:
        client = PROVIDERS[name](LLMConfig(
            provider=name, api_key=api_key, model=model, temperature=temperature,
        ))
        if client.available:
            logger.info(f"LLM: using {name} ({client.config.model})")
            return client
        logger.warning(f"LLM: {name} requested but not available")

    return DisabledClient(LLMConfig(provider="disabled", temperature=temperature))
