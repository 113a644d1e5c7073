"""
Internal records passed between pipeline stages.

These are plain dataclasses. The pydantic output contract lives in
fairreview.schemas and is built from them at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from fairreview.regulation import LegalArticle

# --- Provenance tags ---
PATTERN = "pattern"
PARSED = "parsed"
CASE = "case"
PROVENANCES = (PATTERN, PARSED, CASE)

# --- Risk tiers (ordinal) ---
RISK_TIERS = ("none", "low", "medium", "high")


@dataclass
class Issue:
    """A single flagged potential violation."""
    id: int
    title: str
    description: str = ""
    quote: str = ""              # Literal excerpt of the document, or ""
    violation: str = ""          # Canonical citation string
    article_ids: list[str] = field(default_factory=list)
    severity: str = "medium"
    suggestion: str = ""
    provenance: str = PARSED
    needs_manual_review: bool = False

    def copy(self, **changes: Any) -> "Issue":
        """Fresh Issue with independent list fields."""
        changes.setdefault("article_ids", list(self.article_ids))
        return replace(self, **changes)


@dataclass
class PatternMatch:
    """One regex hit from a PatternRule."""
    rule_id: str
    category: str
    severity: str
    text: str
    start: int
    end: int
    kind: str = "pattern"        # "pattern" | "keyword"
    article_id: str = ""         # Article the matcher evidences


@dataclass
class ScanOutcome:
    """Result of RiskPatternScanner.scan()."""
    needs_further_analysis: bool
    matched_patterns: list[PatternMatch]
    keyword_score: int
    risk_tier: str
    final_score: float
    confidence: float
    reason: str
    reason_code: Optional[str] = None
    detected_terms: list[str] = field(default_factory=list)
    pattern_score: float = 0.0
    weight_score: float = 0.0
    ai_score: float = 0.0
    profile: Optional[DocumentProfile] = None

    @property
    def rule_ids(self) -> list[str]:
        seen: list[str] = []
        for m in self.matched_patterns:
            if m.rule_id not in seen:
                seen.append(m.rule_id)
        return seen


@dataclass
class DocumentProfile:
    """Character-class and vocabulary statistics of one document."""
    length: int
    cjk_ratio: float
    digit_ratio: float
    ascii_letter_ratio: float
    whitespace_ratio: float
    policy_indicator_count: int
    financial_term_count: int
    geographic_term_count: int
    legal_reference_density: float   # References per 1000 characters


@dataclass
class AIAssessment:
    """Externally supplied verdict that can lift the scanner score."""
    has_violation: bool
    confidence: float
    recommend_review: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["AIAssessment"]:
        if not data:
            return None
        try:
            confidence = float(data.get("confidence", 0) or 0)
        except (TypeError, ValueError):
            confidence = 0.0
        return cls(
            has_violation=bool(data.get("hasViolation", data.get("has_violation", False))),
            confidence=max(0.0, min(confidence, 1.0)),
            recommend_review=bool(data.get("recommendReview", data.get("recommend_review", False))),
        )


@dataclass(frozen=True)
class ArticleMatch:
    """A ranked article from LegalArticleSelector."""
    article_id: str
    score: float                 # Frequency-weighted, rounded to 2 places
    raw_score: float             # Before frequency weighting
    article: LegalArticle

    @property
    def citation(self) -> str:
        return self.article.citation


@dataclass
class CaseMatch:
    """A ranked precedent from CaseMatcher."""
    case_id: str
    relevance: float
    matched_keywords: list[str]
    matched_patterns: list[str]
    case: Any                    # CaseRecord


@dataclass
class ParsedResponse:
    """Result of the parser cascade."""
    total_issues: int
    issues: list[Issue]
    raw_response: str
    strategy: str
    confidence: float
    error_code: Optional[str] = None
