"""
Scanner Tests — Deterministic Pre-Screening

Tests the risk pattern scanner:
  1. Quick filter (empty, short, no policy context)
  2. Pattern and keyword detection
  3. Score combination and risk tiers
  4. External AI assessment override
  5. Pattern-provenance issues and quotes
"""

from __future__ import annotations

import pytest

from fairreview.exceptions import EmptyInput, InputTooShort, NoPolicyIndicators
from fairreview.models import AIAssessment
from fairreview.regulation import CITATION_PREFIX
from fairreview.scanner import RiskPatternScanner, excerpt, risk_scanner


POLICY_TEXT = (
    "关于支持本地企业发展的若干政策措施\n"
    "一、政府采购项目中优先采购本地企业的产品。\n"
    "二、对年纳税额超过1000万元的企业，根据纳税额给予一定比例的财政奖励。\n"
    "三、外地企业参与本地招标投标的，需要提供额外的证明材料。\n"
    "四、本措施由市发展和改革委员会负责解释，自发布之日起实施。"
)

REPEATED_TRIGGER_TEXT = (
    "关于规范公共设备采购的通知\n"
    + "\n".join(["各采购单位必须从指定企业购买办公设备，不得自行选择其他供应商。"] * 3)
    + "\n本通知自发布之日起实施，由市财政局负责解释，各单位应当认真贯彻执行。"
)

CLEAN_TEXT = (
    "某市优化营商环境工作方案\n"
    "一、全面推行政务服务事项网上办理，压缩审批时限，提高办事效率。\n"
    "二、公开行政许可条件、程序和时限，做到标准统一、流程透明、结果可查。\n"
    "三、建立市场主体诉求快速响应机制，及时回应社会关切，持续改善营商环境。"
)


# ============================================================
# QUICK FILTER
# ============================================================

class TestQuickFilter:

    def test_two_characters_need_no_review(self):
        outcome = risk_scanner.scan("ok")
        assert outcome.needs_further_analysis is False
        assert outcome.risk_tier == "none"
        assert outcome.reason_code == "INPUT_TOO_SHORT"

    def test_empty_text(self):
        outcome = risk_scanner.scan("")
        assert outcome.needs_further_analysis is False
        assert outcome.reason_code == "EMPTY_INPUT"
        assert outcome.confidence == 1.0

    def test_short_text_with_indicator(self):
        outcome = risk_scanner.scan("本政策限定本地企业")
        assert outcome.risk_tier == "none"
        assert outcome.matched_patterns == []
        assert outcome.reason == "文档内容过少，不构成政策措施"

    def test_no_policy_indicators(self):
        text = "今天天气晴朗，适合外出散步。" * 10
        outcome = risk_scanner.scan(text)
        assert outcome.needs_further_analysis is False
        assert outcome.reason_code == "NO_POLICY_INDICATORS"
        assert outcome.reason == "文档不涉及政策措施制定"

    def test_quick_filter_raises(self):
        with pytest.raises(EmptyInput):
            risk_scanner.quick_filter("")
        with pytest.raises(InputTooShort):
            risk_scanner.quick_filter("政策")
        with pytest.raises(NoPolicyIndicators):
            risk_scanner.quick_filter("甲" * 200)

    def test_min_length_override(self):
        scanner = RiskPatternScanner(min_length=5)
        outcome = scanner.scan("本政策限定本地企业")
        assert outcome.reason_code is None


# ============================================================
# DETECTION
# ============================================================

class TestDetection:

    def test_repeated_trigger_needs_review(self):
        assert len(REPEATED_TRIGGER_TEXT) > 100
        outcome = risk_scanner.scan(REPEATED_TRIGGER_TEXT)
        assert outcome.keyword_score > 0
        assert outcome.matched_patterns
        assert outcome.needs_further_analysis is True
        assert "SPECIFIC_OPERATOR" in outcome.rule_ids

    def test_policy_text_rules(self):
        outcome = risk_scanner.scan(POLICY_TEXT)
        assert "SPECIFIC_OPERATOR" in outcome.rule_ids
        assert "FISCAL_FAVOUR" in outcome.rule_ids
        assert "DISCRIMINATORY_TREATMENT" in outcome.rule_ids
        assert outcome.risk_tier in ("medium", "high")

    def test_matches_stay_on_one_line(self):
        outcome = risk_scanner.scan(POLICY_TEXT)
        for m in outcome.matched_patterns:
            assert "\n" not in m.text
            assert POLICY_TEXT[m.start:m.end] == m.text

    def test_matches_carry_article(self):
        outcome = risk_scanner.scan(POLICY_TEXT)
        fiscal = [m for m in outcome.matched_patterns
                  if m.rule_id == "FISCAL_FAVOUR" and m.kind == "pattern"]
        assert fiscal
        assert fiscal[0].article_id == "article_21"

    def test_keyword_counts_every_occurrence(self):
        score, detected = risk_scanner.weigh_keywords("必须 必须 必须")
        assert score == 9
        assert detected == ["必须"]

    def test_clean_text_not_flagged(self):
        outcome = risk_scanner.scan(CLEAN_TEXT)
        assert outcome.matched_patterns == []
        assert outcome.risk_tier == "none"
        assert outcome.needs_further_analysis is False

    def test_deterministic(self):
        assert risk_scanner.scan(POLICY_TEXT) == risk_scanner.scan(POLICY_TEXT)


# ============================================================
# SCORING
# ============================================================

class TestScoring:

    def test_caps(self):
        pattern, weight, ai, tier = risk_scanner.combine(100, 100)
        assert pattern == 40
        assert weight == 30
        assert ai == 0.0
        assert tier == "high"

    def test_tiers(self):
        assert risk_scanner.combine(0, 0)[3] == "none"
        assert risk_scanner.combine(4, 0)[3] == "low"
        assert risk_scanner.combine(8, 0)[3] == "medium"
        assert risk_scanner.combine(8, 15, AIAssessment(True, 1.0))[3] == "high"

    def test_ai_without_violation_adds_nothing(self):
        assert risk_scanner.combine(0, 0, AIAssessment(False, 0.95))[2] == 0.0

    def test_ai_recommendation_forces_review(self):
        ai = AIAssessment(has_violation=False, confidence=0.9, recommend_review=True)
        outcome = risk_scanner.scan(CLEAN_TEXT, ai)
        assert outcome.needs_further_analysis is True
        assert outcome.confidence == 0.9

    def test_weak_ai_recommendation_ignored(self):
        ai = AIAssessment(has_violation=False, confidence=0.5, recommend_review=True)
        outcome = risk_scanner.scan(CLEAN_TEXT, ai)
        assert outcome.needs_further_analysis is False

    def test_ai_assessment_from_dict(self):
        ai = AIAssessment.from_dict({"hasViolation": True, "confidence": 1.7})
        assert ai.has_violation is True
        assert ai.confidence == 1.0
        assert AIAssessment.from_dict(None) is None

    def test_final_score_is_sum(self):
        outcome = risk_scanner.scan(POLICY_TEXT)
        assert outcome.final_score == pytest.approx(
            outcome.pattern_score + outcome.weight_score + outcome.ai_score
        )
        assert "建议进行详细审查" in outcome.reason


# ============================================================
# PATTERN ISSUES
# ============================================================

class TestPatternIssues:

    def test_one_issue_per_rule(self):
        outcome = risk_scanner.scan(POLICY_TEXT)
        issues = risk_scanner.pattern_issues(POLICY_TEXT, outcome)
        assert len(issues) == len(outcome.rule_ids)
        assert [i.id for i in issues] == list(range(1, len(issues) + 1))

    def test_quotes_are_literal(self):
        for issue in risk_scanner.pattern_issues(POLICY_TEXT):
            assert issue.quote
            assert issue.quote in POLICY_TEXT

    def test_citations_canonical(self):
        for issue in risk_scanner.pattern_issues(POLICY_TEXT):
            assert issue.violation.startswith(CITATION_PREFIX)
            assert issue.provenance == "pattern"
            assert issue.suggestion.startswith("1. ")

    def test_fiscal_issue(self):
        issues = risk_scanner.pattern_issues(POLICY_TEXT)
        fiscal = next(i for i in issues if i.title == "疑似不当财政措施")
        assert fiscal.article_ids == ["article_21"]
        assert fiscal.violation == "违反《公平竞争审查条例实施办法》第二十一条"
        assert "财政奖励" in fiscal.quote

    def test_no_issues_for_clean_text(self):
        assert risk_scanner.pattern_issues(CLEAN_TEXT) == []


class TestExcerpt:

    def test_clipped_to_line(self):
        text = "第一行内容\n目标短语在这里\n第三行"
        start = text.index("目标")
        assert excerpt(text, start, start + 4) == "目标短语在这里"

    def test_window(self):
        text = "甲" * 100 + "目标" + "乙" * 100
        start = text.index("目标")
        quote = excerpt(text, start, start + 2)
        assert quote == "甲" * 30 + "目标" + "乙" * 30
        assert quote in text


class TestDocumentProfile:

    def test_profile(self):
        profile = risk_scanner.describe_document(POLICY_TEXT)
        assert profile.length == len(POLICY_TEXT)
        assert profile.cjk_ratio > 0.7
        assert profile.policy_indicator_count >= 2
        assert profile.financial_term_count >= 1
        assert profile.geographic_term_count >= 3

    def test_scan_carries_profile(self):
        outcome = risk_scanner.scan(POLICY_TEXT)
        assert outcome.profile == risk_scanner.describe_document(POLICY_TEXT)

    def test_empty(self):
        profile = risk_scanner.describe_document("")
        assert profile.length == 0
        assert profile.cjk_ratio == 0.0
