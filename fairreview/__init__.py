"""
FairReview — Fair Competition Review Engine

Reviews policy-measure documents against 《公平竞争审查条例实施办法》
Articles 8–25 and reports potential violations with literal quotes,
canonical citations and remediation suggestions.

Public API:
  - risk_scanner:       Deterministic pattern/keyword pre-screening
  - article_selector:   Ranks the article catalogue for a document
  - case_matcher:       Retrieves similar precedent cases
  - parse_response:     Recovers issues from upstream model output
  - consolidate:        Deduplicates and merges issues
  - PipelineOrchestrator: The full review flow
  - LLMProvider:        Abstract reasoning-provider interface

Usage:
    from fairreview import PipelineOrchestrator
    result = PipelineOrchestrator().analyze_local(text)
    result.to_contract()
"""

__version__ = "1.0.0"

from fairreview.regulation import (
    ARTICLES,
    REGULATION_NAME,
    LegalArticle,
    normalize_citation,
)
from fairreview.models import Issue, ScanOutcome
from fairreview.scanner import RiskPatternScanner, risk_scanner
from fairreview.articles import LegalArticleSelector, article_selector
from fairreview.cases import CaseMatcher, case_matcher
from fairreview.parser import parse_response
from fairreview.consolidator import consolidate, verify_quotes
from fairreview.orchestrator import PipelineOrchestrator
from fairreview.schemas import AnalysisResult
from fairreview.llm import LLMProvider
from fairreview.llm.factory import get_provider

__all__ = [
    "ARTICLES",
    "REGULATION_NAME",
    "LegalArticle",
    "normalize_citation",
    "Issue",
    "ScanOutcome",
    "RiskPatternScanner",
    "risk_scanner",
    "LegalArticleSelector",
    "article_selector",
    "CaseMatcher",
    "case_matcher",
    "parse_response",
    "consolidate",
    "verify_quotes",
    "PipelineOrchestrator",
    "AnalysisResult",
    "LLMProvider",
    "get_provider",
]
