"""
Exception hierarchy for fair competition review.

Each exception maps to one failure category. Only MissingDocument and
ReferenceDataError propagate to callers; the others are recovered inside
the pipeline and surface as a code on the result.
"""

from __future__ import annotations


class FairReviewError(Exception):
    """Base exception for all review failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class EmptyInput(FairReviewError):
    """The document is zero-length. Short-circuits to a no-review result."""

    def __init__(self, message: str = "Document is empty", details: dict | None = None):
        super().__init__("EMPTY_INPUT", message, details)


class InputTooShort(FairReviewError):
    """The document is below the minimal length for a policy measure."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("INPUT_TOO_SHORT", message, details)


class NoPolicyIndicators(FairReviewError):
    """The document carries none of the policy-context markers."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NO_POLICY_INDICATORS", message, details)


class UpstreamUnavailable(FairReviewError):
    """The reasoning call failed, timed out or was cancelled."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class MalformedUpstreamOutput(FairReviewError):
    """Every parsing strategy except the terminal fallback failed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("MALFORMED_UPSTREAM_OUTPUT", message, details)


class UnverifiableQuote(FairReviewError):
    """An issue excerpt is not a literal substring of the document."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("UNVERIFIABLE_QUOTE", message, details)


class MissingDocument(FairReviewError):
    """The document field is missing entirely. Raised to the caller."""

    def __init__(self, message: str = "Document text is required", details: dict | None = None):
        super().__init__("MISSING_DOCUMENT", message, details)


class ReferenceDataError(FairReviewError):
    """Static reference data failed validation at load time. Raised to the caller."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("REFERENCE_DATA_INVALID", message, details)


class UnknownArticleGroup(FairReviewError):
    """A semantic article group name is not part of the catalogue."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("UNKNOWN_ARTICLE_GROUP", message, details)
