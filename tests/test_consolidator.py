"""
Consolidator Tests — Deduplication and Merging

Tests the issue consolidator:
  1. Overlap predicates
  2. Strict duplicates keep the more specific citation
  3. Soft groups merge contents
  4. Renumbering and count invariants
  5. Quote verification against the document
"""

from __future__ import annotations

from fairreview.consolidator import (
    consolidate,
    is_soft_related,
    is_strict_duplicate,
    merge,
    merge_suggestions,
    pick_representative,
    shares_category,
    text_overlap,
    verify_quotes,
)
from fairreview.models import Issue
from fairreview.regulation import CITATION_PREFIX


def _issue(id=1, title="问题", quote="", article_ids=None, **kwargs) -> Issue:
    return Issue(id=id, title=title, quote=quote, article_ids=list(article_ids or []), **kwargs)


PROCUREMENT = _issue(
    id=1,
    title="政府采购限制",
    description="评分标准向特定供应商倾斜",
    quote="采购评分加5分",
    article_ids=["article_19"],
    severity="medium",
    suggestion="1. 删除加分条款",
)

TENDER = _issue(
    id=2,
    title="招标文件设置门槛",
    description="招标文件设置不合理门槛",
    quote="投标人须具备三年业绩",
    article_ids=["article_18"],
    severity="high",
    suggestion="1. 删除加分条款 2. 公开评审标准",
)


# ============================================================
# PREDICATES
# ============================================================

class TestOverlap:

    def test_empty_never_overlaps(self):
        assert text_overlap("", "abc") == 0.0
        assert text_overlap("abc", "") == 0.0

    def test_contained_window(self):
        assert text_overlap("abcdefghij", "xxabcdefghijxx") == 1.0

    def test_short_text_uses_whole_length(self):
        assert text_overlap("abc", "zabcz") == 1.0

    def test_long_text_partial(self):
        padded = "z" * 10 + "abcdefghij" + "z" * 10
        assert text_overlap("abcdefghij0123456789", padded) == 0.5

    def test_disjoint(self):
        assert text_overlap("政府采购", "土地供应") == 0.0

    def test_strict_duplicate_needs_quotes(self):
        assert not is_strict_duplicate(_issue(), _issue())
        assert is_strict_duplicate(_issue(quote="同一句"), _issue(quote=" 同一句 "))

    def test_shares_category(self):
        assert shares_category(PROCUREMENT, TENDER).name == "PROCUREMENT"
        assert shares_category(_issue(title="限定品牌"), _issue(title="强制入股")) is None

    def test_soft_by_quote_overlap(self):
        a = _issue(title="甲", quote="abcdefghij0123456789")
        b = _issue(title="乙", quote="z" * 10 + "abcdefghij" + "z" * 10)
        assert is_soft_related(a, b)
        assert not is_strict_duplicate(a, b)


# ============================================================
# STRICT DUPLICATES
# ============================================================

class TestStrictDuplicates:

    def test_identical_quotes_collapse(self):
        a = _issue(id=1, title="甲", quote="优先采购本地企业的产品")
        b = _issue(id=2, title="乙", quote="优先采购本地企业的产品")
        result = consolidate([a, b])
        assert len(result) == 1
        assert result[0].id == 1

    def test_more_specific_citation_survives(self):
        catch_all = _issue(id=1, title="甲", quote="同一句原文", article_ids=["article_14"])
        specific = _issue(id=2, title="乙", quote="同一句原文", article_ids=["article_8"])
        result = consolidate([catch_all, specific])
        assert len(result) == 1
        assert result[0].title == "乙"
        assert result[0].article_ids == ["article_8"]

    def test_tie_keeps_earlier(self):
        a = _issue(id=1, title="甲", quote="同一句原文", article_ids=["article_8"])
        b = _issue(id=2, title="乙", quote="同一句原文", article_ids=["article_19"])
        assert pick_representative(a, b) is a

    def test_priority_from_violation_text(self):
        a = _issue(title="甲", quote="q", violation="违反第二十条")
        b = _issue(title="乙", quote="q", violation="违反第十五条")
        assert pick_representative(a, b).title == "乙"


# ============================================================
# SOFT MERGES
# ============================================================

class TestMerge:

    def test_category_merge(self):
        merged = merge(PROCUREMENT, TENDER)
        assert merged.title == "政府采购招标限制问题"
        assert merged.quote == "采购评分加5分；投标人须具备三年业绩"
        assert merged.description == "评分标准向特定供应商倾斜 同时，招标文件设置不合理门槛"
        assert merged.article_ids == ["article_19", "article_18"]
        assert merged.violation == f"{CITATION_PREFIX}第十九条和第十八条"
        assert merged.severity == "high"
        assert merged.suggestion == "1. 删除加分条款 2. 公开评审标准"

    def test_merge_does_not_mutate_inputs(self):
        merge(PROCUREMENT, TENDER)
        assert PROCUREMENT.quote == "采购评分加5分"
        assert PROCUREMENT.article_ids == ["article_19"]

    def test_merge_keeps_literal_quote_with_document(self):
        document = "一、采购评分加5分。\n二、投标人须具备三年业绩。"
        merged = merge(PROCUREMENT, TENDER, document)
        assert merged.quote == "采购评分加5分"
        assert merged.quote in document
        assert "（相关原文：投标人须具备三年业绩）" in merged.description

    def test_articles_capped_and_ordered(self):
        a = _issue(title="甲", article_ids=["article_20", "article_14"])
        b = _issue(title="乙", article_ids=["article_8"])
        assert merge(a, b).article_ids == ["article_8", "article_14"]

    def test_manual_review_flag_propagates(self):
        a = _issue(title="甲")
        b = _issue(title="乙", needs_manual_review=True)
        assert merge(a, b).needs_manual_review is True

    def test_merge_suggestions_dedups_and_renumbers(self):
        assert merge_suggestions("1. a 2. b", "1. b 2. c") == "1. a 2. b 3. c"
        assert merge_suggestions("", "") == ""


# ============================================================
# CONSOLIDATE
# ============================================================

class TestConsolidate:

    def test_related_issues_merge(self):
        result = consolidate([PROCUREMENT, TENDER])
        assert len(result) == 1
        assert result[0].title == "政府采购招标限制问题"

    def test_unrelated_issues_kept(self):
        a = _issue(id=5, title="限定品牌", description="限定品牌", quote="只能使用甲品牌")
        b = _issue(id=9, title="强制入股", description="强制经营者入股", quote="须由本级国资参股")
        result = consolidate([a, b])
        assert [i.title for i in result] == ["限定品牌", "强制入股"]
        assert [i.id for i in result] == [1, 2]

    def test_never_grows_and_renumbers(self):
        issues = [PROCUREMENT, TENDER, _issue(id=7, title="限定品牌", quote="只能使用甲品牌")]
        result = consolidate(issues)
        assert len(result) <= len(issues)
        assert [i.id for i in result] == list(range(1, len(result) + 1))

    def test_single_and_empty(self):
        assert consolidate([]) == []
        result = consolidate([_issue(id=4)])
        assert result[0].id == 1

    def test_duplicate_does_not_discard_merged_finding(self):
        reward = _issue(id=1, title="奖励", quote="按纳税额给予奖励", article_ids=["article_20"])
        fund = _issue(id=2, title="资金", description="设立专项资金",
                      quote="设立专项资金补贴", article_ids=["article_20"])
        specific = _issue(id=3, title="限定经营者", quote="按纳税额给予奖励",
                          article_ids=["article_8"])
        result = consolidate([reward, fund, specific])
        assert len(result) == 1
        assert "专项资金" in result[0].quote + result[0].description
        assert result[0].article_ids[0] == "article_8"

    def test_inputs_untouched(self):
        a = _issue(id=3, title="甲", quote="同一句原文")
        b = _issue(id=4, title="乙", quote="同一句原文")
        consolidate([a, b])
        assert (a.id, b.id) == (3, 4)


class TestVerifyQuotes:

    DOCUMENT = "一、政府采购项目中优先采购本地企业的产品。"

    def test_drops_hallucinated_quote(self):
        issues = [
            _issue(id=1, title="真", quote="优先采购本地企业的产品"),
            _issue(id=2, title="假", quote="文件中不存在的句子"),
        ]
        kept = verify_quotes(issues, self.DOCUMENT)
        assert [i.title for i in kept] == ["真"]

    def test_keeps_empty_quote(self):
        kept = verify_quotes([_issue(title="无引用")], self.DOCUMENT)
        assert len(kept) == 1

    def test_trims_whitespace(self):
        kept = verify_quotes([_issue(quote="  优先采购本地企业的产品 ")], self.DOCUMENT)
        assert kept[0].quote == "优先采购本地企业的产品"
