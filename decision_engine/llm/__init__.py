"""LLM provider registry with lazy loading.

Usage:
    from decision_engine.llm import get_provider
    from decision_engine.llm.base import provider_llm_call

    llm_call = provider_llm_call(get_provider("anthropic"))
    polished = await maybe_polish_explanation(explanation, PolishOptions(config=cfg, llm_call=llm_call))
"""

from __future__ import annotations

import importlib

from decision_engine.llm.base import LLMProvider, provider_llm_call

__all__ = ["LLMProvider", "available_providers", "get_provider", "provider_llm_call"]

# Lazy registry: maps provider name -> (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("decision_engine.llm.anthropic", "AnthropicProvider"),
    "openai": ("decision_engine.llm.openai", "OpenAIProvider"),
}


def get_provider(name: str) -> LLMProvider:
    """Instantiate and return an LLM provider by name.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown LLM provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls()  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
