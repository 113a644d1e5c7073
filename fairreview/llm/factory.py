"""
LLM provider factory.
"""

from __future__ import annotations

from fairreview.config import settings
from fairreview.llm import LLMProvider


def get_provider(provider_name: str = settings.LLM_PROVIDER) -> LLMProvider:
    """Factory — returns the configured LLM provider."""
    if provider_name == "gemini":
        from fairreview.llm.gemini import GeminiProvider
        return GeminiProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
