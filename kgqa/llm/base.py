"""Provider-neutral LLM contract used by the translator adapters."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "claude": "claude-sonnet-4-20250514",
    "openai": "gpt-4o-mini",
}


@dataclass(slots=True)
class LLMConfig:
    provider: str = "auto"  # auto, claude, openai
    api_key: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.2  # Low so generated Cypher stays stable
    max_tokens: int = 2000
    timeout: int = 60

    def __post_init__(self):
        if not self.model:
            self.model = DEFAULT_MODELS.get(self.provider)


@dataclass(slots=True)
class LLMResponse:
    """Outcome of one generate call. ``error`` is set when success is False."""
    success: bool
    text: str = ""
    error: Optional[str] = None


class BaseLLMClient(ABC):
    """
    Text-in, text-out client behind DirectTranslator and SchemaQAChain.

    Implementations never raise from generate(); failures come back as
    LLMResponse(success=False, error=...).
    """

    provider_name = "base"

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or LLMConfig()
        self.available = False

    @property
    def provider(self) -> str:
        return self.provider_name

    @abstractmethod
    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Complete a prompt."""

    async def close(self) -> None:
        """Release the underlying SDK client, if any."""

    def get_info(self) -> dict[str, Any]:
        """Provider, availability and model, as shown by /api/health."""
        return {
            "provider": self.provider_name,
            "available": self.available,
            "model": self.config.model,
        }
