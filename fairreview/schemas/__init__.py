from fairreview.schemas.analysis import (
    AnalysisResult,
    ArticleReference,
    CaseReference,
    IssueResponse,
)

__all__ = ["AnalysisResult", "ArticleReference", "CaseReference", "IssueResponse"]
