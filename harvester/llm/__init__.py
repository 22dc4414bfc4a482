"""LLM provider registry with lazy loading.

Usage:
    from harvester.llm import FailoverLLMClient, get_provider

    client = FailoverLLMClient(get_provider("groq"), get_provider("ollama"))
    raw = client.complete(cleaned_html, system=EXTRACTION_PROMPT, json_mode=True)
"""

from __future__ import annotations

import importlib

from harvester.llm.base import LLMProvider, strip_code_fences
from harvester.llm.failover import FailoverLLMClient

__all__ = [
    "FailoverLLMClient",
    "LLMProvider",
    "available_providers",
    "get_provider",
    "strip_code_fences",
]

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "groq": ("harvester.llm.groq", "GroqProvider"),
    "openai": ("harvester.llm.openai", "OpenAIProvider"),
    "ollama": ("harvester.llm.ollama", "OllamaProvider"),
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
