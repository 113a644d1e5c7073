"""
Risk Pattern Scanner — Deterministic Pre-Screening

Scores raw document text against the static pattern library and
keyword tiers. Zero API cost, no hidden state: identical text always
yields an identical ScanOutcome.

Four stages:
  1. Quick filter — too short or no policy indicators → tier "none"
  2. Pattern matching — every matcher of every rule, plus literal triggers
  3. Keyword weighting — every occurrence of every tier term
  4. Combination — capped sub-scores summed into a risk tier

An external AI assessment, when supplied, adds up to AI_SCORE_CAP
points and can force further analysis.
"""

from __future__ import annotations

import logging
from typing import Optional

from fairreview.config import settings
from fairreview.exceptions import (
    EmptyInput,
    FairReviewError,
    InputTooShort,
    NoPolicyIndicators,
)
from fairreview.models import (
    PATTERN,
    AIAssessment,
    DocumentProfile,
    Issue,
    PatternMatch,
    ScanOutcome,
)
from fairreview.patterns import (
    FINANCIAL_TERMS,
    GEOGRAPHIC_TERMS,
    KEYWORD_TIERS,
    LEGAL_REFERENCE_RE,
    PATTERN_RULES,
    POLICY_INDICATORS,
    PatternRule,
)
from fairreview.regulation import citation_for_ids

logger = logging.getLogger(__name__)

# Excerpt window around a match, in characters, clipped to the line
QUOTE_CONTEXT = 30
QUOTE_MAX_MATCH = 120

TIER_CONFIDENCE = {"high": 0.9, "medium": 0.7, "low": 0.5, "none": 0.8}

# Confidence that a short-circuited document really needs no review
_FILTER_CONFIDENCE = {
    "EMPTY_INPUT": 1.0,
    "INPUT_TOO_SHORT": 0.95,
    "NO_POLICY_INDICATORS": 0.85,
}


class RiskPatternScanner:
    """
    Static pattern/keyword scorer. Instantiated once as a singleton;
    holds only read-only references to the compiled registry.
    """

    def __init__(
        self,
        rules: tuple[PatternRule, ...] = PATTERN_RULES,
        min_length: int = settings.MIN_TEXT_LENGTH,
        pattern_cap: float = settings.PATTERN_SCORE_CAP,
        keyword_cap: float = settings.KEYWORD_SCORE_CAP,
        ai_cap: float = settings.AI_SCORE_CAP,
        thresholds: tuple[float, float, float] = (
            settings.HIGH_THRESHOLD,
            settings.MEDIUM_THRESHOLD,
            settings.LOW_THRESHOLD,
        ),
    ):
        self._rules = rules
        self._min_length = min_length
        self._pattern_cap = pattern_cap
        self._keyword_cap = keyword_cap
        self._ai_cap = ai_cap
        self._thresholds = thresholds

    # --------------------------------------------------------
    # Stage 1
    # --------------------------------------------------------

    def quick_filter(self, text: str) -> None:
        """Raise if the text cannot be a reviewable policy measure."""
        if not text:
            raise EmptyInput()
        if len(text) < self._min_length:
            raise InputTooShort(
                "文档内容过少，不构成政策措施",
                {"length": len(text), "min_length": self._min_length},
            )
        if not any(indicator in text for indicator in POLICY_INDICATORS):
            raise NoPolicyIndicators("文档不涉及政策措施制定")

    # --------------------------------------------------------
    # Stage 2
    # --------------------------------------------------------

    def match_patterns(self, text: str) -> list[PatternMatch]:
        """Every regex hit and literal trigger, in rule order."""
        found: list[PatternMatch] = []
        for rule in self._rules:
            for matcher in rule.matchers:
                for m in matcher.regex.finditer(text):
                    found.append(PatternMatch(
                        rule_id=rule.id,
                        category=rule.category,
                        severity=rule.severity,
                        text=m.group(0),
                        start=m.start(),
                        end=m.end(),
                        article_id=matcher.article_id,
                    ))
            for keyword in rule.keywords:
                idx = text.find(keyword)
                if idx != -1:
                    found.append(PatternMatch(
                        rule_id=rule.id,
                        category=rule.category,
                        severity=rule.severity,
                        text=keyword,
                        start=idx,
                        end=idx + len(keyword),
                        kind="keyword",
                        article_id=rule.article_ids[0],
                    ))
        return found

    # --------------------------------------------------------
    # Stage 3
    # --------------------------------------------------------

    def weigh_keywords(self, text: str) -> tuple[int, list[str]]:
        """Return (score, detected terms). Counts every non-overlapping occurrence."""
        score = 0
        detected: list[str] = []
        for tier in KEYWORD_TIERS:
            for term in tier.terms:
                count = text.count(term)
                if count:
                    score += count * tier.weight
                    detected.append(term)
        return score, detected

    # --------------------------------------------------------
    # Stage 4
    # --------------------------------------------------------

    def combine(
        self,
        total_matches: int,
        keyword_score: int,
        ai: Optional[AIAssessment] = None,
    ) -> tuple[float, float, float, str]:
        """Return (pattern_score, weight_score, ai_score, risk_tier)."""
        pattern_score = min(total_matches * 5, self._pattern_cap)
        weight_score = min(keyword_score * 2, self._keyword_cap)
        ai_score = 0.0
        if ai is not None and ai.has_violation:
            ai_score = min(ai.confidence * self._ai_cap, self._ai_cap)

        final = pattern_score + weight_score + ai_score
        high, medium, low = self._thresholds
        if final >= high:
            tier = "high"
        elif final >= medium:
            tier = "medium"
        elif final >= low:
            tier = "low"
        else:
            tier = "none"
        return pattern_score, weight_score, ai_score, tier

    # --------------------------------------------------------
    # Entry point
    # --------------------------------------------------------

    def scan(self, text: str, ai_assessment: Optional[AIAssessment] = None) -> ScanOutcome:
        """Run all four stages over the text."""
        try:
            self.quick_filter(text)
        except FairReviewError as e:
            return ScanOutcome(
                needs_further_analysis=False,
                matched_patterns=[],
                keyword_score=0,
                risk_tier="none",
                final_score=0.0,
                confidence=_FILTER_CONFIDENCE.get(e.code, 0.8),
                reason=str(e),
                reason_code=e.code,
            )

        matches = self.match_patterns(text)
        keyword_score, detected = self.weigh_keywords(text)
        pattern_score, weight_score, ai_score, tier = self.combine(
            len(matches), keyword_score, ai_assessment
        )
        final_score = round(pattern_score + weight_score + ai_score, 2)

        needs_review = tier != "none"
        confidence = TIER_CONFIDENCE[tier]
        if (
            ai_assessment is not None
            and ai_assessment.recommend_review
            and ai_assessment.confidence > 0.8
        ):
            needs_review = True
            confidence = max(confidence, ai_assessment.confidence)

        outcome = ScanOutcome(
            needs_further_analysis=needs_review,
            matched_patterns=matches,
            keyword_score=keyword_score,
            risk_tier=tier,
            final_score=final_score,
            confidence=confidence,
            reason=self._build_reason(final_score, len(matches), keyword_score,
                                      ai_assessment, needs_review),
            detected_terms=detected,
            pattern_score=pattern_score,
            weight_score=weight_score,
            ai_score=ai_score,
            profile=self.describe_document(text),
        )
        logger.debug(
            "Scan complete",
            extra={"risk_tier": tier, "final_score": final_score,
                   "keyword_score": keyword_score},
        )
        return outcome

    def _build_reason(
        self,
        score: float,
        total_matches: int,
        keyword_score: int,
        ai: Optional[AIAssessment],
        needs_review: bool,
    ) -> str:
        if not needs_review:
            return f"综合分析得分{score:.1f}分，未发现明显的公平竞争问题"
        reasons = []
        if total_matches:
            reasons.append(f"检测到{total_matches}处疑似违规模式")
        if keyword_score > 10:
            reasons.append(f"关键词分析显示较高风险（{keyword_score}分）")
        if ai is not None and ai.has_violation:
            reasons.append(f"AI语义分析发现潜在问题（置信度{ai.confidence * 100:.1f}%）")
        detail = "，".join(reasons) or "外部分析建议复核"
        return f"综合分析得分{score:.1f}分，{detail}，建议进行详细审查"

    # --------------------------------------------------------
    # Pattern-provenance issues
    # --------------------------------------------------------

    def pattern_issues(self, text: str, outcome: Optional[ScanOutcome] = None) -> list[Issue]:
        """
        One Issue per triggered rule, quoting the first hit.

        Used as the local review when no reasoning step is available.
        Regex hits are preferred over literal triggers as the quoted
        evidence. Quotes are literal excerpts of the text.
        """
        if outcome is None:
            outcome = self.scan(text)
        if not outcome.matched_patterns:
            return []

        issues: list[Issue] = []
        for rule in self._rules:
            hits = [m for m in outcome.matched_patterns if m.rule_id == rule.id]
            if not hits:
                continue
            regex_hits = [m for m in hits if m.kind == "pattern"]
            first = min(regex_hits or hits, key=lambda m: m.start)
            article_id = first.article_id or rule.article_ids[0]
            issues.append(Issue(
                id=len(issues) + 1,
                title=f"疑似{rule.category}",
                description=f"{rule.description}。共检测到{len(hits)}处相关表述。",
                quote=excerpt(text, first.start, first.end),
                violation=citation_for_ids([article_id]),
                article_ids=[article_id],
                severity=rule.severity,
                suggestion=rule.suggestion,
                provenance=PATTERN,
            ))
        return issues

    # --------------------------------------------------------
    # Document characteristics
    # --------------------------------------------------------

    def describe_document(self, text: str) -> DocumentProfile:
        length = len(text)
        if length == 0:
            return DocumentProfile(0, 0.0, 0.0, 0.0, 0.0, 0, 0, 0, 0.0)

        cjk = digits = letters = spaces = 0
        for ch in text:
            if "一" <= ch <= "鿿":
                cjk += 1
            elif ch.isdigit():
                digits += 1
            elif ch.isascii() and ch.isalpha():
                letters += 1
            elif ch.isspace():
                spaces += 1

        return DocumentProfile(
            length=length,
            cjk_ratio=round(cjk / length, 4),
            digit_ratio=round(digits / length, 4),
            ascii_letter_ratio=round(letters / length, 4),
            whitespace_ratio=round(spaces / length, 4),
            policy_indicator_count=sum(text.count(t) for t in POLICY_INDICATORS),
            financial_term_count=sum(text.count(t) for t in FINANCIAL_TERMS),
            geographic_term_count=sum(text.count(t) for t in GEOGRAPHIC_TERMS),
            legal_reference_density=round(
                len(LEGAL_REFERENCE_RE.findall(text)) * 1000 / length, 2
            ),
        )


def excerpt(text: str, start: int, end: int) -> str:
    """Literal excerpt around [start, end), clipped to the enclosing line."""
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", end)
    if line_end == -1:
        line_end = len(text)
    end = min(end, start + QUOTE_MAX_MATCH)
    lo = max(line_start, start - QUOTE_CONTEXT)
    hi = min(line_end, end + QUOTE_CONTEXT)
    return text[lo:hi].strip()


# Singleton
risk_scanner = RiskPatternScanner()
