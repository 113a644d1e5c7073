"""
Gemini Provider — Reasoning Step over the Google Gemini API

Uses the google.genai SDK. The client is created on first use, so the
pipeline imports and runs its local review without an API key.

Each call walks the model chain (GEMINI_MODEL, then
GEMINI_FALLBACK_MODEL) and retries transient errors with exponential
backoff. A breaker shared by all calls on one provider stops sending
requests after BREAKER_FAILURES consecutive failed calls and lets one
probe through after BREAKER_RECOVERY seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from google import genai
from google.genai import errors, types

from fairreview.config import settings
from fairreview.exceptions import UpstreamUnavailable
from fairreview.llm import LLMProvider

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_RETRYABLE_MARKERS = ("timeout", "connection", "unavailable", "overloaded")


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, errors.APIError):
        return exc.code in _RETRYABLE_STATUS
    return any(marker in str(exc).lower() for marker in _RETRYABLE_MARKERS)


class CircuitOpenError(UpstreamUnavailable):
    """The breaker is open; no request was sent."""

    def __init__(self, retry_in: float):
        super().__init__(
            "Reasoning provider disabled after repeated failures",
            {"error": "circuit_open", "retry_in": round(retry_in, 1)},
        )


class CircuitBreaker:
    """Consecutive-failure breaker: closed → open → half-open → closed."""

    def __init__(
        self,
        failure_threshold: int = settings.BREAKER_FAILURES,
        recovery_timeout: float = settings.BREAKER_RECOVERY,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return "closed"
        if self.remaining() > 0:
            return "open"
        return "half-open"

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    def remaining(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Reasoning provider recovered, circuit closed")
        self._failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failures += 1
        # A failed half-open probe reopens for a full recovery window
        if self._failures >= self.failure_threshold:
            self._opened_at = time.monotonic()
            logger.warning(
                "Circuit open after %d consecutive failures, local review only for %ss",
                self._failures, self.recovery_timeout,
                extra={"error_type": "UPSTREAM_UNAVAILABLE"},
            )


class GeminiProvider(LLMProvider):
    """Gemini reasoning provider with a model chain and circuit breaker."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        retries: int = settings.LLM_RETRIES,
    ):
        self._api_key = api_key or settings.GEMINI_API_KEY
        primary = model or settings.GEMINI_MODEL
        fallback = fallback_model or settings.GEMINI_FALLBACK_MODEL
        self.models = [primary] if fallback == primary else [primary, fallback]
        self.retries = max(1, retries)
        self._client: Optional[genai.Client] = None
        self.circuit_breaker = CircuitBreaker()

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError(
                    "GEMINI_API_KEY not set. Get one from "
                    "https://aistudio.google.com/apikey"
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _attempt(self, model: str, prompt: str, config: types.GenerateContentConfig) -> str:
        client = self._get_client()
        for attempt in range(self.retries):
            try:
                response = await client.aio.models.generate_content(
                    model=model, contents=prompt, config=config,
                )
                return response.text or ""
            except Exception as e:
                if attempt + 1 < self.retries and _is_transient(e):
                    await asyncio.sleep(2 ** attempt)
                    continue
                raise
        raise RuntimeError(f"No attempt made against {model}")

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> str:
        if self.circuit_breaker.is_open:
            raise CircuitOpenError(self.circuit_breaker.remaining())

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
            response_mime_type="application/json" if json_mode else None,
        )

        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                text = await self._attempt(model, prompt, config)
            except Exception as e:
                logger.warning(
                    "Model %s failed: %s", model, e,
                    extra={"error_type": type(e).__name__},
                )
                if last_error is not None:
                    e.__cause__ = last_error
                last_error = e
                continue
            self.circuit_breaker.record_success()
            return text

        self.circuit_breaker.record_failure()
        raise last_error
