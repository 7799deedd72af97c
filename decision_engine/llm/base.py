"""Abstract base class for LLM providers and the async call adapter."""

import asyncio
from abc import ABC, abstractmethod

from decision_engine.pipeline.explain import LLMCall, LLMPrompt

DEFAULT_MAX_TOKENS = 600


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic')."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: User message content.
            model: Override the provider's default model. None uses default.
            system: System prompt, if any.
            max_tokens: Upper bound on the response length.

        Returns:
            Raw text response from the LLM.
        """

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""


def provider_llm_call(
    provider: LLMProvider,
    model: str | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> LLMCall:
    """Wrap a blocking provider as the async callable the explain polish step expects."""

    async def call(prompt: LLMPrompt) -> str:
        return await asyncio.to_thread(
            provider.complete,
            prompt.user_prompt,
            model,
            system=prompt.system_prompt,
            max_tokens=max_tokens,
        )

    return call
