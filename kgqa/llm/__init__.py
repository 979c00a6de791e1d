"""
LLM Provider Package.

Provider-agnostic LLM client used by the external translator adapters.

Usage:
    from kgqa.llm import create_llm_client

    client = create_llm_client()  # Auto-detects from env vars
"""

from .base import BaseLLMClient, LLMConfig, LLMResponse
from .factory import create_llm_client, get_available_providers
from .providers import ClaudeClient, DisabledClient, OpenAIClient

__all__ = [
    "BaseLLMClient",
    "LLMConfig",
    "LLMResponse",
    "create_llm_client",
    "get_available_providers",
    "ClaudeClient",
    "OpenAIClient",
    "DisabledClient",
]
