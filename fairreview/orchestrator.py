"""
Pipeline Orchestrator — Review Flow

Sequences the review of one document:

  quick filter → pattern/keyword scoring → article selection
  → reasoning call (optional) → parse → quote verification
  → case enrichment → consolidation → AnalysisResult

The reasoning call is the only suspension point. Its failure,
timeout, open circuit or cancellation degrades to the pattern-only
review; every request still gets a well-formed AnalysisResult.
Only a missing document raises.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Optional, Sequence

from fairreview.articles import LegalArticleSelector, article_selector
from fairreview.cases import CaseMatcher, case_matcher
from fairreview.config import settings
from fairreview.consolidator import consolidate, verify_quotes
from fairreview.exceptions import MissingDocument, UpstreamUnavailable
from fairreview.llm import LLMProvider
from fairreview.models import AIAssessment, ArticleMatch, Issue, ParsedResponse, ScanOutcome
from fairreview.parser import parse_response
from fairreview.regulation import REGULATION_NAME, normalize_citation
from fairreview.scanner import RiskPatternScanner, risk_scanner
from fairreview.schemas import AnalysisResult, ArticleReference, CaseReference, IssueResponse

logger = logging.getLogger(__name__)


# ============================================================
# LLM PROMPTS
# ============================================================

SYSTEM_INSTRUCTION = (
    f"你是公平竞争审查专家，依据《{REGULATION_NAME}》审查政策措施文件。"
    "只引用该办法的条款，不得引用其他法律法规。只输出JSON。"
)

REVIEW_PROMPT = """请对以下政策措施文件进行公平竞争审查。

## 重点关注的条款
{articles}

## 预审结果
风险等级：{risk_tier}（综合得分{final_score}分）
疑似问题类型：{categories}

## 输出要求
返回一个JSON对象：
{{
  "totalIssues": 问题数量,
  "issues": [
    {{
      "title": "问题标题",
      "description": "问题描述",
      "quote": "文件原文中的确切语句，必须逐字摘录",
      "violation": "违反《{regulation}》第X条",
      "suggestion": "1. 修改建议 2. 修改建议"
    }}
  ]
}}
未发现问题时返回 {{"totalIssues": 0, "issues": []}}。

## 待审查文件
{text}
"""


def build_prompt(text: str, articles: list[ArticleMatch], scan: ScanOutcome) -> str:
    article_lines = "\n".join(
        f"- 第{m.article.number}条 {m.article.title}：{m.article.content}"
        for m in articles
    ) or "- （未匹配到特定条款，请全面审查第八条至第二十五条）"
    categories = "、".join(dict.fromkeys(m.category for m in scan.matched_patterns)) or "无"
    return REVIEW_PROMPT.format(
        articles=article_lines,
        risk_tier=scan.risk_tier,
        final_score=scan.final_score,
        categories=categories,
        regulation=REGULATION_NAME,
        text=text[:settings.REVIEW_TEXT_LENGTH],
    )


# ============================================================
# ORCHESTRATOR
# ============================================================

class PipelineOrchestrator:
    """Runs one document through every review stage."""

    def __init__(
        self,
        reasoner: Optional[LLMProvider] = None,
        scanner: RiskPatternScanner = risk_scanner,
        selector: LegalArticleSelector = article_selector,
        matcher: CaseMatcher = case_matcher,
        timeout: float = settings.UPSTREAM_TIMEOUT,
    ):
        self.reasoner = reasoner
        self.scanner = scanner
        self.selector = selector
        self.matcher = matcher
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "PipelineOrchestrator":
        """Orchestrator wired to the configured LLM provider."""
        from fairreview.llm.factory import get_provider
        return cls(reasoner=get_provider(settings.LLM_PROVIDER))

    # --------------------------------------------------------
    # Entry points
    # --------------------------------------------------------

    async def analyze(
        self,
        text: Optional[str],
        hints: Optional[Sequence[str]] = None,
        max_articles: int = settings.MAX_ARTICLES,
        max_cases: int = settings.MAX_CASES,
    ) -> AnalysisResult:
        """Full review, calling the reasoning step when one is configured."""
        started = time.monotonic()
        text = _require_text(text)
        scan = self.scanner.scan(text[:settings.MAX_TEXT_LENGTH])
        if scan.reason_code is not None:
            return self._short_circuit(text, scan)

        articles = self.selector.select(text, hints, max_articles)
        parsed: Optional[ParsedResponse] = None
        error_codes: list[str] = []

        if self.reasoner is not None:
            try:
                raw = await self._call_reasoner(build_prompt(text, articles, scan))
            except UpstreamUnavailable as e:
                logger.warning(str(e), extra={"error_type": e.code, "error": e.details.get("error")})
                error_codes.append(e.code)
            else:
                parsed = parse_response(raw)
                if parsed.error_code:
                    error_codes.append(parsed.error_code)
                if parsed.strategy == "empty":
                    parsed = None

        result = self._assemble(text, scan, articles, parsed, error_codes, max_cases,
                                degraded=self.reasoner is not None and parsed is None)
        logger.info(
            "Review complete",
            extra={
                "risk_tier": result.risk_tier,
                "issue_count": result.total_issues,
                "processing_method": result.processing_method,
                "document_hash": result.document_hash,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return result

    def analyze_local(
        self,
        text: Optional[str],
        hints: Optional[Sequence[str]] = None,
        max_articles: int = settings.MAX_ARTICLES,
        max_cases: int = settings.MAX_CASES,
    ) -> AnalysisResult:
        """Pattern-only review. Deterministic, no reasoning call."""
        text = _require_text(text)
        scan = self.scanner.scan(text[:settings.MAX_TEXT_LENGTH])
        if scan.reason_code is not None:
            return self._short_circuit(text, scan)
        articles = self.selector.select(text, hints, max_articles)
        return self._assemble(text, scan, articles, None, [], max_cases, degraded=False)

    # --------------------------------------------------------
    # Reasoning call
    # --------------------------------------------------------

    async def _call_reasoner(self, prompt: str) -> str:
        """Await the reasoning step. Any failure becomes UpstreamUnavailable."""
        try:
            return await asyncio.wait_for(
                self.reasoner.generate(
                    prompt,
                    system_instruction=SYSTEM_INSTRUCTION,
                    temperature=0.3,
                    json_mode=True,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Reasoning step timed out after {self.timeout}s",
                {"error": "timeout"},
            ) from e
        except asyncio.CancelledError as e:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            raise UpstreamUnavailable(
                "Reasoning step was cancelled", {"error": "cancelled"},
            ) from e
        except Exception as e:
            raise UpstreamUnavailable(
                f"Reasoning step failed: {e}", {"error": type(e).__name__},
            ) from e

    # --------------------------------------------------------
    # Result assembly
    # --------------------------------------------------------

    def _short_circuit(self, text: str, scan: ScanOutcome) -> AnalysisResult:
        method = "empty_input" if scan.reason_code == "EMPTY_INPUT" else "quick_filter"
        logger.info(scan.reason, extra={"error_type": scan.reason_code})
        return AnalysisResult(
            total_issues=0,
            issues=[],
            risk_tier="none",
            confidence=scan.confidence,
            needs_review=False,
            final_score=0.0,
            reason=scan.reason,
            processing_method=method,
            source="local",
            error_codes=[scan.reason_code],
            summary="无需进行公平竞争审查",
            core_version=settings.CORE_VERSION,
            document_hash=document_hash(text),
        )

    def _assemble(
        self,
        text: str,
        scan: ScanOutcome,
        articles: list[ArticleMatch],
        parsed: Optional[ParsedResponse],
        error_codes: list[str],
        max_cases: int,
        degraded: bool,
    ) -> AnalysisResult:
        fallback_ids = [m.article_id for m in articles]

        candidates: list[Issue] = []
        if parsed is not None:
            candidates.extend(_normalized(parsed.issues, fallback_ids))
            ai = AIAssessment(
                has_violation=parsed.total_issues > 0 and parsed.strategy != "fallback",
                confidence=parsed.confidence,
            )
            scan = self.scanner.scan(text[:settings.MAX_TEXT_LENGTH], ai)
        candidates.extend(self.scanner.pattern_issues(text, scan))
        candidates.extend(self.matcher.case_issues(text, max_cases))

        issues = consolidate(verify_quotes(candidates, text), document=text)

        confidence = scan.confidence
        if parsed is not None and parsed.strategy == "fallback":
            confidence = min(confidence, parsed.confidence)

        if parsed is not None:
            method, source = "reasoning_review", "reasoning+local"
        elif degraded:
            method, source = "local_fallback", "local_fallback"
        else:
            method, source = "local_review", "local"

        cases = self.matcher.find_similar(text, max_results=max_cases)
        return AnalysisResult(
            total_issues=len(issues),
            issues=[IssueResponse.from_issue(i) for i in issues],
            risk_tier=scan.risk_tier,
            confidence=confidence,
            needs_review=scan.needs_further_analysis or any(i.needs_manual_review for i in issues),
            final_score=scan.final_score,
            reason=scan.reason,
            processing_method=method,
            source=source,
            error_codes=error_codes,
            relevant_articles=[ArticleReference.from_match(m) for m in articles],
            similar_cases=[CaseReference.from_match(c) for c in cases],
            summary=_summary(issues, scan.risk_tier),
            core_version=settings.CORE_VERSION,
            document_hash=document_hash(text),
        )


# ============================================================
# HELPERS
# ============================================================

def _require_text(text) -> str:
    if text is None or not isinstance(text, str):
        raise MissingDocument()
    return text


def document_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _normalized(issues: list[Issue], fallback_ids: list[str]) -> list[Issue]:
    """Fresh copies with canonical citations."""
    out = []
    for issue in issues:
        violation, ids = normalize_citation(issue.violation, fallback_ids if issue.violation else ())
        out.append(issue.copy(violation=violation, article_ids=ids))
    return out


def _summary(issues: list[Issue], risk_tier: str) -> str:
    if not issues:
        return "未发现明显的公平竞争问题"
    high = sum(1 for i in issues if i.severity == "high")
    return f"发现{len(issues)}个潜在公平竞争问题（其中高风险{high}个），风险等级：{risk_tier}"
