"""
FairReview Configuration

Central settings loaded from environment variables.
The scoring caps, tier thresholds and overlap ratios are empirical
and are calibrated against a labeled corpus (see calibration/).
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Core Versioning ---
    CORE_VERSION: str = "1.0.0"

    # --- Document limits ---
    MIN_TEXT_LENGTH: int = int(os.getenv("FAIRREVIEW_MIN_TEXT_LENGTH", "100"))
    MAX_TEXT_LENGTH: int = int(os.getenv("FAIRREVIEW_MAX_TEXT_LENGTH", "50000"))
    REVIEW_TEXT_LENGTH: int = int(os.getenv("FAIRREVIEW_REVIEW_TEXT_LENGTH", "4000"))

    # --- Risk scoring ---
    PATTERN_SCORE_CAP: float = float(os.getenv("FAIRREVIEW_PATTERN_SCORE_CAP", "40"))
    KEYWORD_SCORE_CAP: float = float(os.getenv("FAIRREVIEW_KEYWORD_SCORE_CAP", "30"))
    AI_SCORE_CAP: float = float(os.getenv("FAIRREVIEW_AI_SCORE_CAP", "30"))
    HIGH_THRESHOLD: float = float(os.getenv("FAIRREVIEW_HIGH_THRESHOLD", "70"))
    MEDIUM_THRESHOLD: float = float(os.getenv("FAIRREVIEW_MEDIUM_THRESHOLD", "40"))
    LOW_THRESHOLD: float = float(os.getenv("FAIRREVIEW_LOW_THRESHOLD", "20"))

    # --- Consolidation ---
    SOFT_OVERLAP: float = float(os.getenv("FAIRREVIEW_SOFT_OVERLAP", "0.3"))
    STRICT_OVERLAP: float = float(os.getenv("FAIRREVIEW_STRICT_OVERLAP", "0.7"))

    # --- Retrieval ---
    MAX_ARTICLES: int = int(os.getenv("FAIRREVIEW_MAX_ARTICLES", "6"))
    MAX_CASES: int = int(os.getenv("FAIRREVIEW_MAX_CASES", "3"))
    CASE_MIN_RELEVANCE: float = float(os.getenv("FAIRREVIEW_CASE_MIN_RELEVANCE", "0.3"))

    # --- Cache ---
    CACHE_TTL: int = int(os.getenv("FAIRREVIEW_CACHE_TTL", "1800"))
    CACHE_MAX_ENTRIES: int = int(os.getenv("FAIRREVIEW_CACHE_MAX_ENTRIES", "500"))
    CACHE_SWEEP_INTERVAL: int = int(os.getenv("FAIRREVIEW_CACHE_SWEEP_INTERVAL", "600"))

    # --- Reasoning provider ---
    UPSTREAM_TIMEOUT: float = float(os.getenv("FAIRREVIEW_UPSTREAM_TIMEOUT", "120"))
    LLM_PROVIDER: str = os.getenv("FAIRREVIEW_LLM_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-pro")
    GEMINI_FALLBACK_MODEL: str = os.getenv("GEMINI_FALLBACK_MODEL", "gemini-2.5-flash")
    LLM_RETRIES: int = int(os.getenv("FAIRREVIEW_LLM_RETRIES", "2"))
    BREAKER_FAILURES: int = int(os.getenv("FAIRREVIEW_BREAKER_FAILURES", "3"))
    BREAKER_RECOVERY: float = float(os.getenv("FAIRREVIEW_BREAKER_RECOVERY", "60"))


settings = Settings()
