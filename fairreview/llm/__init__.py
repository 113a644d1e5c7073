"""
LLM Provider — Abstract Interface

The reasoning step is reached only through this interface. Swap
providers by changing FAIRREVIEW_LLM_PROVIDER in env.

Providers return the raw model text. Recovering issues from that
text is the parser's job (fairreview.parser), not the provider's.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> str:
        """Generate a text response from the LLM."""
        ...
