"""
Tests for logging, caching, settings and the LLM provider layer.
"""

import asyncio
import json
import logging
import time
from unittest.mock import AsyncMock, patch

import pytest


class TestLogging:
    """Structured logging tests."""

    def _record(self, msg="Test message"):
        return logging.LogRecord(
            name="fairreview.test",
            level=logging.INFO,
            pathname="test.py",
            lineno=1,
            msg=msg,
            args=(),
            exc_info=None,
        )

    def test_json_formatter(self):
        from fairreview.logging import JSONFormatter

        output = JSONFormatter().format(self._record())
        parsed = json.loads(output)
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "fairreview.test"
        assert "timestamp" in parsed

    def test_json_formatter_extra_fields(self):
        from fairreview.logging import JSONFormatter

        record = self._record("Review complete")
        record.risk_tier = "high"
        record.issue_count = 3
        record.unrelated = "dropped"
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["risk_tier"] == "high"
        assert parsed["issue_count"] == 3
        assert "unrelated" not in parsed

    def test_json_formatter_keeps_chinese(self):
        from fairreview.logging import JSONFormatter

        output = JSONFormatter().format(self._record("文档内容过少"))
        assert "文档内容过少" in output

    def test_get_logger(self):
        from fairreview.logging import get_logger
        log = get_logger("scanner")
        assert log.name == "fairreview.scanner"

    def test_setup_logging_installs_one_handler(self):
        from fairreview.logging import setup_logging

        saved = logging.getLogger("fairreview").handlers[:]
        try:
            root = setup_logging()
            setup_logging(level="debug", fmt="text")
            assert root.name == "fairreview"
            assert len(root.handlers) == 1
            assert root.level == logging.DEBUG
        finally:
            logging.getLogger("fairreview").handlers[:] = saved


class TestResultCache:
    """TTL cache tests."""

    def test_put_then_get(self):
        from fairreview.cache import ResultCache

        cache = ResultCache(ttl_seconds=60, max_entries=10)
        cache.put(("a", "b"), "text", "hints", "6")
        assert cache.get("text", "hints", "6") == ("a", "b")
        assert cache.stats["hits"] == 1

    def test_miss_counts(self):
        from fairreview.cache import ResultCache

        cache = ResultCache(ttl_seconds=60, max_entries=10)
        assert cache.get("absent") is None
        assert cache.stats["misses"] == 1
        assert cache.stats["hit_rate"] == 0.0

    def test_expired_entry_is_a_miss(self):
        from fairreview.cache import ResultCache

        cache = ResultCache(ttl_seconds=0.01, max_entries=10)
        cache.put("value", "k")
        time.sleep(0.03)
        assert cache.get("k") is None

    def test_oldest_evicted_at_capacity(self):
        from fairreview.cache import ResultCache

        cache = ResultCache(ttl_seconds=60, max_entries=2)
        cache.put(1, "first")
        time.sleep(0.001)
        cache.put(2, "second")
        time.sleep(0.001)
        cache.put(3, "third")
        assert len(cache) == 2
        assert cache.get("first") is None
        assert cache.get("third") == 3

    def test_zero_capacity_rejected(self):
        from fairreview.cache import ResultCache

        with pytest.raises(ValueError, match="max_entries"):
            ResultCache(ttl_seconds=60, max_entries=0)

    def test_evict_expired(self):
        from fairreview.cache import ResultCache

        cache = ResultCache(ttl_seconds=0.01, max_entries=10)
        cache.put(1, "a")
        cache.put(2, "b")
        time.sleep(0.03)
        assert cache.evict_expired() == 2
        assert len(cache) == 0

    def test_invalidate_and_clear(self):
        from fairreview.cache import ResultCache

        cache = ResultCache(ttl_seconds=60, max_entries=10)
        cache.put(1, "a")
        cache.put(2, "b")
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_null_cache_never_stores(self):
        from fairreview.cache import NullCache

        cache = NullCache()
        cache.put("value", "k")
        assert cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_sweeper_evicts_until_cancelled(self):
        from fairreview.cache import ResultCache, sweep_periodically

        cache = ResultCache(ttl_seconds=0.01, max_entries=10)
        cache.put(1, "a")
        task = asyncio.create_task(sweep_periodically(cache, interval=0.02))
        await asyncio.sleep(0.08)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(cache) == 0


class TestSettings:
    """Configuration defaults."""

    def test_defaults(self):
        from fairreview.config import Settings

        s = Settings()
        assert s.MIN_TEXT_LENGTH == 100
        assert s.SOFT_OVERLAP < s.STRICT_OVERLAP
        assert s.LOW_THRESHOLD < s.MEDIUM_THRESHOLD < s.HIGH_THRESHOLD

    def test_settings_frozen(self):
        from dataclasses import FrozenInstanceError
        from fairreview.config import settings

        with pytest.raises(FrozenInstanceError):
            settings.MAX_ARTICLES = 99


class TestProviderFactory:
    """LLM provider factory tests."""

    def test_gemini_provider(self):
        from fairreview.llm.factory import get_provider
        from fairreview.llm.gemini import GeminiProvider

        provider = get_provider("gemini")
        assert isinstance(provider, GeminiProvider)

    def test_unknown_provider_raises(self):
        from fairreview.llm.factory import get_provider

        with pytest.raises(ValueError, match="Unknown LLM provider"):
            get_provider("nonexistent")

    def test_missing_key_fails_on_call(self):
        from fairreview.llm.gemini import GeminiProvider

        provider = GeminiProvider(api_key="")
        provider._api_key = ""
        with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
            provider._get_client()


class TestCircuitBreaker:
    """Circuit breaker state machine."""

    def test_opens_after_threshold(self):
        from fairreview.llm.gemini import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(2):
            cb.record_failure()
        assert not cb.is_open
        cb.record_failure()
        assert cb.is_open

    def test_half_open_after_recovery(self):
        from fairreview.llm.gemini import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0.01)
        cb.record_failure()
        time.sleep(0.03)
        assert cb.state == "half-open"
        assert not cb.is_open

    def test_success_closes(self):
        from fairreview.llm.gemini import CircuitBreaker

        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()
        cb.record_success()
        assert cb.state == "closed"

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        from fairreview.llm.gemini import CircuitOpenError, GeminiProvider

        provider = GeminiProvider(api_key="test-key")
        for _ in range(provider.circuit_breaker.failure_threshold):
            provider.circuit_breaker.record_failure()
        with pytest.raises(CircuitOpenError):
            await provider.generate("prompt")


class TestGeminiModelChain:
    """Model chain and breaker bookkeeping, with the network call mocked."""

    def _provider(self, **kwargs):
        from fairreview.llm.gemini import GeminiProvider

        return GeminiProvider(api_key="test-key", model="primary", fallback_model="backup", **kwargs)

    @pytest.mark.asyncio
    async def test_falls_back_to_second_model(self):
        provider = self._provider()
        attempt = AsyncMock(side_effect=[RuntimeError("primary down"), '{"totalIssues": 0}'])
        with patch.object(provider, "_attempt", attempt):
            text = await provider.generate("prompt", json_mode=True)
        assert text == '{"totalIssues": 0}'
        assert [c.args[0] for c in attempt.call_args_list] == ["primary", "backup"]
        assert provider.circuit_breaker.state == "closed"

    @pytest.mark.asyncio
    async def test_json_mode_sets_mime_type(self):
        provider = self._provider()
        attempt = AsyncMock(return_value="{}")
        with patch.object(provider, "_attempt", attempt):
            await provider.generate("prompt", system_instruction="审查", json_mode=True)
        config = attempt.call_args.args[2]
        assert config.response_mime_type == "application/json"
        assert config.system_instruction == "审查"

    @pytest.mark.asyncio
    async def test_chain_exhausted_records_failure(self):
        provider = self._provider()
        attempt = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b")])
        with patch.object(provider, "_attempt", attempt):
            with pytest.raises(RuntimeError, match="b"):
                await provider.generate("prompt")
        assert provider.circuit_breaker._failures == 1

    def test_single_model_chain(self):
        provider = self._provider()
        assert provider.models == ["primary", "backup"]
        from fairreview.llm.gemini import GeminiProvider
        assert GeminiProvider(api_key="k", model="m", fallback_model="m").models == ["m"]

    def test_transient_markers(self):
        from fairreview.llm.gemini import _is_transient

        assert _is_transient(RuntimeError("Connection reset by peer"))
        assert not _is_transient(ValueError("invalid prompt"))
