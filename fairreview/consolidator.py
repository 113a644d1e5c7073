"""
Issue Consolidator — Deduplication and Merging

Collapses findings from every provenance into one renumbered list,
in two passes:

  Strict duplicate — identical quotes, or quote overlap above
                     STRICT_OVERLAP. The issue citing the more specific
                     article survives; the other is discarded.
  Soft group       — quote overlap above SOFT_OVERLAP, or both issues
                     hit the same keyword category rule. Contents are
                     merged into one issue.

Empty quotes never overlap. Consolidation never increases the count,
and ids come out contiguous from 1 in original relative order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from fairreview.config import settings
from fairreview.exceptions import UnverifiableQuote
from fairreview.regulation import (
    UNKNOWN_PRIORITY,
    article_priority,
    citation_for_ids,
    extract_article_ids,
)
from fairreview.models import Issue

logger = logging.getLogger(__name__)

QUOTE_SEPARATOR = "；"
DESCRIPTION_JOINER = " 同时，"
MAX_MERGED_ARTICLES = 2

_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2}
_SUGGESTION_SPLIT_RE = re.compile(r"\d+\.")


@dataclass(frozen=True)
class CategoryRule:
    name: str
    keywords: tuple[str, ...]
    articles: tuple[str, ...]
    merge_title: str

    def hits(self, issue: Issue) -> bool:
        return any(
            kw in issue.title or kw in issue.description or kw in issue.quote
            for kw in self.keywords
        )


CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        name="LOCAL_REGISTRATION",
        keywords=("本地", "注册", "设立", "分支机构", "投资", "当地"),
        articles=("article_9", "article_11", "article_12", "article_14"),
        merge_title="本地注册和投资限制问题",
    ),
    CategoryRule(
        name="PROCUREMENT",
        keywords=("政府采购", "招标", "投标", "优先", "采购"),
        articles=("article_18", "article_19"),
        merge_title="政府采购招标限制问题",
    ),
    CategoryRule(
        name="FISCAL_INCENTIVES",
        keywords=("奖励", "补贴", "财政", "资金", "专项", "支持"),
        articles=("article_21", "article_25"),
        merge_title="财政奖励补贴问题",
    ),
    CategoryRule(
        name="GOODS_FLOW",
        keywords=("外地", "商品", "收费", "价格", "歧视", "流动"),
        articles=("article_15", "article_16", "article_17", "article_20"),
        merge_title="商品要素流动限制问题",
    ),
    CategoryRule(
        name="TAX_BENEFITS",
        keywords=("税收", "减免", "优惠", "税款"),
        articles=("article_22",),
        merge_title="税收优惠问题",
    ),
)


# ============================================================
# PREDICATES
# ============================================================

def text_overlap(a: str, b: str) -> float:
    """
    Sliding-window overlap ratio.

    window = min(10, len(shorter)); the ratio is window / len(shorter)
    when any window of the shorter text occurs in the longer one, else 0.
    """
    if not a or not b:
        return 0.0
    shorter, longer = (a, b) if len(a) < len(b) else (b, a)
    window = min(10, len(shorter))
    for i in range(len(shorter) - window + 1):
        if shorter[i:i + window] in longer:
            return window / len(shorter)
    return 0.0


def is_strict_duplicate(a: Issue, b: Issue, threshold: float = settings.STRICT_OVERLAP) -> bool:
    qa, qb = a.quote.strip(), b.quote.strip()
    if not qa or not qb:
        return False
    return qa == qb or text_overlap(qa, qb) > threshold


def shares_category(a: Issue, b: Issue) -> Optional[CategoryRule]:
    for rule in CATEGORY_RULES:
        if rule.hits(a) and rule.hits(b):
            return rule
    return None


def is_soft_related(a: Issue, b: Issue, threshold: float = settings.SOFT_OVERLAP) -> bool:
    qa, qb = a.quote.strip(), b.quote.strip()
    if qa and qb and text_overlap(qa, qb) > threshold:
        return True
    return shares_category(a, b) is not None


# ============================================================
# MERGING
# ============================================================

def issue_articles(issue: Issue) -> list[str]:
    return list(issue.article_ids) or extract_article_ids(issue.violation)


def issue_priority(issue: Issue) -> int:
    ids = issue_articles(issue)
    return min((article_priority(a) for a in ids), default=UNKNOWN_PRIORITY)


def pick_representative(a: Issue, b: Issue) -> Issue:
    """The issue citing the more specific article. Ties keep the earlier."""
    return b.copy() if issue_priority(b) < issue_priority(a) else a


def _split_suggestions(text: str) -> list[str]:
    return [s.strip() for s in _SUGGESTION_SPLIT_RE.split(text or "") if s.strip()]


def merge_suggestions(*texts: str) -> str:
    unique: list[str] = []
    for text in texts:
        for line in _split_suggestions(text):
            if line not in unique:
                unique.append(line)
    return " ".join(f"{i}. {line}" for i, line in enumerate(unique, 1))


def _merge_title(a: Issue, b: Issue) -> str:
    for rule in CATEGORY_RULES:
        if any(kw in a.title or kw in b.title for kw in rule.keywords):
            return rule.merge_title
    return a.title


def _merge_articles(a: Issue, b: Issue) -> list[str]:
    ordered: list[str] = []
    for article_id in issue_articles(a) + issue_articles(b):
        if article_id not in ordered:
            ordered.append(article_id)
    # Stable: equal priority keeps first appearance
    ordered.sort(key=article_priority)
    return ordered[:MAX_MERGED_ARTICLES]


def merge(a: Issue, b: Issue, document: Optional[str] = None) -> Issue:
    """
    Merge b into a. a keeps its provenance.

    Distinct quotes are joined with "；". With a document given, the
    merged quote must stay a literal excerpt: if the joined text is not
    one, a's quote is kept and the other quotes move to the description.
    """
    description = a.description
    if b.description and b.description != a.description:
        description = f"{a.description}{DESCRIPTION_JOINER}{b.description}" if a.description else b.description

    quotes: list[str] = []
    for q in (a.quote.strip(), b.quote.strip()):
        if q and q not in quotes:
            quotes.append(q)
    quote = QUOTE_SEPARATOR.join(quotes)
    if document is not None and quote and quote not in document:
        quote = quotes[0]
        extra = QUOTE_SEPARATOR.join(quotes[1:])
        description = f"{description}（相关原文：{extra}）"

    articles = _merge_articles(a, b)
    violation = citation_for_ids(articles) if articles else (a.violation or b.violation)

    severity = max(a.severity, b.severity, key=lambda s: _SEVERITY_RANK.get(s, 1))

    return a.copy(
        title=_merge_title(a, b),
        description=description,
        quote=quote,
        violation=violation,
        article_ids=articles,
        severity=severity,
        suggestion=merge_suggestions(a.suggestion, b.suggestion),
        needs_manual_review=a.needs_manual_review or b.needs_manual_review,
    )


# ============================================================
# ENTRY POINTS
# ============================================================

def dedupe(
    issues: list[Issue],
    threshold: float = settings.STRICT_OVERLAP,
) -> list[Issue]:
    """
    Drop strict duplicates. Each survivor holds the slot of the first
    issue in its duplicate set and is the member citing the most
    specific article.
    """
    kept: list[Issue] = []
    for issue in issues:
        for position, current in enumerate(kept):
            if is_strict_duplicate(current, issue, threshold):
                kept[position] = pick_representative(current, issue.copy())
                break
        else:
            kept.append(issue.copy())
    return kept


def group(
    issues: list[Issue],
    document: Optional[str] = None,
    threshold: float = settings.SOFT_OVERLAP,
) -> list[Issue]:
    """Each unprocessed issue absorbs every later soft-related issue."""
    merged: list[Issue] = []
    processed: set[int] = set()
    for i, issue in enumerate(issues):
        if i in processed:
            continue
        processed.add(i)
        current = issue
        for j in range(i + 1, len(issues)):
            if j not in processed and is_soft_related(current, issues[j], threshold):
                current = merge(current, issues[j], document)
                processed.add(j)
        merged.append(current)
    return merged


def consolidate(
    issues: list[Issue],
    document: Optional[str] = None,
    strict_threshold: float = settings.STRICT_OVERLAP,
    soft_threshold: float = settings.SOFT_OVERLAP,
) -> list[Issue]:
    """Deduplicate, then merge soft groups, then renumber 1..N."""
    if len(issues) <= 1:
        return [issue.copy(id=i) for i, issue in enumerate(issues, 1)]

    merged = group(dedupe(issues, strict_threshold), document, soft_threshold)
    for position, issue in enumerate(merged, 1):
        issue.id = position

    logger.info(
        "Consolidated %d issues into %d", len(issues), len(merged),
        extra={"issue_count": len(merged)},
    )
    return merged


def verify_quotes(issues: list[Issue], document: str) -> list[Issue]:
    """Drop issues whose non-empty quote is not a literal excerpt of the document."""
    kept = []
    for issue in issues:
        quote = issue.quote.strip()
        if quote and quote not in document:
            err = UnverifiableQuote(
                f"Dropped issue with unverifiable quote: {issue.title}",
                {"quote": quote[:80]},
            )
            logger.warning(str(err), extra={"error_type": err.code, "provenance": issue.provenance})
            continue
        kept.append(issue.copy(quote=quote))
    return kept
