"""
Parser Tests — Upstream Response Recovery

Tests the structured response parser:
  1. Payload adapter
  2. Each cascade strategy on the shape it exists for
  3. Field aliases and coercion
  4. Zero-issue determinations
  5. Terminal fallback
"""

from __future__ import annotations

import json

import pytest

from fairreview.parser import (
    FALLBACK_CONFIDENCE,
    FALLBACK_TITLE,
    EmptyPayload,
    IssueListPayload,
    MappingPayload,
    TextPayload,
    adapt_payload,
    coerce_issue,
    parse_response,
    repair_truncated,
)


BLOCK = '{"totalIssues":1,"issues":[{"title":"X"}]}'


# ============================================================
# ADAPTER
# ============================================================

class TestAdapter:

    def test_shapes(self):
        assert isinstance(adapt_payload(None), EmptyPayload)
        assert isinstance(adapt_payload("   "), EmptyPayload)
        assert isinstance(adapt_payload("text"), TextPayload)
        assert isinstance(adapt_payload(b"text"), TextPayload)
        assert isinstance(adapt_payload({"issues": []}), MappingPayload)
        assert isinstance(adapt_payload([{"title": "A"}]), IssueListPayload)

    def test_mapping_payload_keeps_raw(self):
        payload = adapt_payload({"title": "限定"})
        assert json.loads(payload.raw) == {"title": "限定"}


# ============================================================
# CASCADE
# ============================================================

class TestCascade:

    def test_prose_wrapped_block(self):
        result = parse_response(f"Here is the result: {BLOCK} Thanks!")
        assert result.total_issues == 1
        assert [i.title for i in result.issues] == ["X"]
        assert result.strategy == "bounded"

    def test_prose_wrapped_equals_bare(self):
        bare = parse_response(BLOCK)
        wrapped = parse_response(f"分析如下：\n{BLOCK}\n以上。")
        assert bare.strategy == "direct"
        assert bare.total_issues == wrapped.total_issues
        assert [i.title for i in bare.issues] == [i.title for i in wrapped.issues]

    def test_fenced_block(self):
        result = parse_response(f"```json\n{BLOCK}\n```")
        assert result.strategy == "direct"
        assert result.issues[0].title == "X"

    def test_truncated_block(self):
        raw = '{"totalIssues": 2, "issues": [{"title": "A", "quote": "q1"}, {"title": "B", "quo'
        result = parse_response(raw)
        assert result.strategy == "repaired"
        assert [i.title for i in result.issues] == ["A"]
        assert result.issues[0].quote == "q1"

    def test_trailing_commas(self):
        result = parse_response('{"totalIssues": 1, "issues": [{"title": "A",},]}')
        assert result.strategy == "repaired"
        assert result.issues[0].title == "A"

    def test_fragments(self):
        raw = 'issues follow: "issues": [{"title": "A"}, {"title": broken}, {"title": "C"}]'
        result = parse_response(raw)
        assert result.strategy == "fragments"
        assert [i.title for i in result.issues] == ["A", "C"]

    def test_labelled_sections(self):
        raw = (
            "问题1：本地企业优先\n"
            "问题描述：限定本地企业\n"
            "原文引用：“优先采购本地企业的产品”\n"
            "违反条款：第八条\n"
            "修改建议：删除相关表述\n"
            "问题2：财政奖励\n"
            "问题描述：按纳税额奖励\n"
        )
        result = parse_response(raw)
        assert result.strategy == "sections"
        assert result.total_issues == 2
        first = result.issues[0]
        assert first.title == "本地企业优先"
        assert first.description == "限定本地企业"
        assert first.quote == "优先采购本地企业的产品"
        assert first.violation == "第八条"
        assert first.suggestion == "删除相关表述"
        assert result.issues[1].title == "财政奖励"

    def test_section_without_description_gets_default(self):
        result = parse_response("Issue 1: Local preference\nQuote: 优先本地")
        assert result.issues[0].description == "检测到潜在的公平竞争问题"

    def test_no_issue_prose(self):
        result = parse_response("经审查，未发现违反公平竞争审查规定的情形。")
        assert result.strategy == "no_issue"
        assert result.total_issues == 0
        assert result.error_code is None

    def test_explicit_zero_block(self):
        result = parse_response('{"totalIssues": 0, "issues": []}')
        assert result.strategy == "direct"
        assert result.total_issues == 0

    def test_empty_json_list_is_zero_issues(self):
        result = parse_response("[]")
        assert result.strategy == "direct"
        assert result.total_issues == 0
        assert result.error_code is None

    def test_fallback(self):
        raw = "The model produced something unrelated."
        result = parse_response(raw)
        assert result.strategy == "fallback"
        assert result.confidence == FALLBACK_CONFIDENCE
        assert result.error_code == "MALFORMED_UPSTREAM_OUTPUT"
        assert result.total_issues == 1
        issue = result.issues[0]
        assert issue.title == FALLBACK_TITLE
        assert issue.needs_manual_review is True
        assert issue.description == raw

    def test_fallback_truncates(self):
        result = parse_response("x" * 1500)
        assert result.issues[0].description == "x" * 1000 + "..."

    def test_empty(self):
        result = parse_response("")
        assert result.strategy == "empty"
        assert result.total_issues == 0
        assert result.error_code == "MALFORMED_UPSTREAM_OUTPUT"

    def test_never_raises(self):
        for raw in (None, 42, "{", "}{", '{"issues": [', "[]", "```", object()):
            result = parse_response(raw)
            assert result.total_issues == len(result.issues)

    def test_total_matches_issue_count(self):
        result = parse_response('{"totalIssues": 7, "issues": [{"title": "A"}]}')
        assert result.total_issues == 1


class TestPayloads:

    def test_mapping(self):
        result = parse_response(json.loads(BLOCK))
        assert result.strategy == "mapping"
        assert result.issues[0].title == "X"

    def test_issue_list(self):
        result = parse_response([{"title": "A"}, {"title": "B"}])
        assert result.strategy == "issue_list"
        assert result.total_issues == 2

    def test_unrecognised_mapping_falls_back(self):
        result = parse_response({"answer": "maybe"})
        assert result.strategy == "fallback"


# ============================================================
# COERCION
# ============================================================

class TestCoercion:

    def test_aliases(self):
        issue = coerce_issue({
            "name": "地域限制",
            "violationContent": "要求本地注册",
            "originalText": "「必须在本市注册」",
            "legalBasis": "第九条",
            "suggestions": ["删除注册要求", "公开标准"],
            "riskLevel": "高",
        }, 1)
        assert issue.title == "地域限制"
        assert issue.description == "要求本地注册"
        assert issue.quote == "必须在本市注册"
        assert issue.violation == "第九条"
        assert issue.suggestion == "1. 删除注册要求 2. 公开标准"
        assert issue.severity == "high"
        assert issue.provenance == "parsed"

    def test_missing_title_numbered(self):
        assert coerce_issue({"description": "内容"}, 3).title == "问题3"

    def test_empty_item_dropped(self):
        assert coerce_issue({}, 1) is None
        assert coerce_issue("not a dict", 1) is None

    def test_unknown_severity_defaults(self):
        assert coerce_issue({"title": "A", "severity": "???"}, 1).severity == "medium"


class TestRepair:

    def test_closes_open_containers(self):
        repaired = repair_truncated('{"a": [{"b": 1}, {"c": 2')
        assert json.loads(repaired) == {"a": [{"b": 1}]}

    def test_complete_block_cut_at_end(self):
        assert repair_truncated('{"a": 1} trailing') == '{"a": 1}'

    def test_braces_in_strings_ignored(self):
        repaired = repair_truncated('{"a": [{"b": "}{"}, {"c')
        assert json.loads(repaired) == {"a": [{"b": "}{"}]}

    def test_nothing_to_repair(self):
        assert repair_truncated("no json here") is None
        assert repair_truncated('{"a": "unterminated') is None
