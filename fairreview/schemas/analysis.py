"""
Output Schemas — Analysis Result

Pydantic models for the pipeline's terminal output. AnalysisResult
carries the full internal view; to_contract() projects it onto the
camelCase shape consumed by report rendering and audit persistence.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from fairreview.models import ArticleMatch, CaseMatch, Issue


class IssueResponse(BaseModel):
    id: int
    title: str
    description: str = ""
    quote: str = ""
    violation: str = ""
    suggestion: str = ""
    severity: str = "medium"
    article_ids: list[str] = Field(default_factory=list)
    provenance: str = Field("parsed", pattern="^(pattern|parsed|case)$")
    needs_manual_review: bool = False

    @classmethod
    def from_issue(cls, issue: Issue) -> "IssueResponse":
        return cls(
            id=issue.id,
            title=issue.title,
            description=issue.description,
            quote=issue.quote,
            violation=issue.violation,
            suggestion=issue.suggestion,
            severity=issue.severity,
            article_ids=list(issue.article_ids),
            provenance=issue.provenance,
            needs_manual_review=issue.needs_manual_review,
        )

    def to_contract(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "quote": self.quote,
            "violation": self.violation,
            "suggestion": self.suggestion,
        }


class ArticleReference(BaseModel):
    article_id: str
    number: int
    title: str
    citation: str
    score: float = Field(ge=0)

    @classmethod
    def from_match(cls, match: ArticleMatch) -> "ArticleReference":
        return cls(
            article_id=match.article_id,
            number=match.article.number,
            title=match.article.title,
            citation=match.citation,
            score=match.score,
        )


class CaseReference(BaseModel):
    case_id: str
    title: str
    citation: str
    relevance: float
    lesson: str = ""

    @classmethod
    def from_match(cls, match: CaseMatch) -> "CaseReference":
        return cls(
            case_id=match.case_id,
            title=match.case.title,
            citation=match.case.citation,
            relevance=match.relevance,
            lesson=match.case.lesson,
        )


class AnalysisResult(BaseModel):
    """Terminal per-request output."""
    total_issues: int = Field(ge=0)
    issues: list[IssueResponse]
    risk_tier: str = Field(pattern="^(none|low|medium|high)$")
    confidence: float = Field(ge=0.0, le=1.0)
    needs_review: bool
    final_score: float = 0.0
    reason: str = ""
    processing_method: str
    source: str                      # "local" | "reasoning+local" | "local_fallback"
    error_codes: list[str] = Field(default_factory=list)
    relevant_articles: list[ArticleReference] = Field(default_factory=list)
    similar_cases: list[CaseReference] = Field(default_factory=list)
    summary: str = ""
    core_version: str
    document_hash: str

    def to_contract(self) -> dict:
        """The camelCase shape handed to external collaborators."""
        return {
            "totalIssues": self.total_issues,
            "issues": [issue.to_contract() for issue in self.issues],
            "riskTier": self.risk_tier,
            "confidence": self.confidence,
        }
