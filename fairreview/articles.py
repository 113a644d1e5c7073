"""
Legal Article Selector — Multi-Channel Relevance Ranking

Ranks the fixed article catalogue against a document. Four weighted
channels accumulate into one score map:

  1. Direct keyword   (3.0) — literal term with a fixed article mapping
  2. Implicit keyword (2.0) — paraphrase term mapped to an article set
  3. Semantic group   (1.5) — hint vocabulary hits / group vocabulary size,
                              applied to every article in the group
  4. Concept          (1.0) — per derived concept tag present in the text

Each accumulated score is multiplied by the article's frequency weight.
The ranking is a pure function of (text, hints, K), so results are
memoized through an injected cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from fairreview.cache import ResultCache, result_cache
from fairreview.config import settings
from fairreview.exceptions import ReferenceDataError, UnknownArticleGroup
from fairreview.models import ArticleMatch
from fairreview.regulation import ARTICLES, LegalArticle

logger = logging.getLogger(__name__)

DIRECT_WEIGHT = 3.0
IMPLICIT_WEIGHT = 2.0
SEMANTIC_WEIGHT = 1.5
CONCEPT_WEIGHT = 1.0

CHANNELS = ("direct", "implicit", "semantic", "concept")


# ============================================================
# KEYWORD MAPPINGS
# ============================================================

DIRECT_MAPPINGS: Mapping[str, tuple[int, ...]] = MappingProxyType({
    "本地企业": (8, 14),
    "当地供应商": (8, 19),
    "指定供应商": (8,),
    "限定品牌": (8,),
    "专营权": (10,),
    "独家代理": (10,),
    "本地注册": (9, 12),
    "投资要求": (11, 14),
    "分支机构": (12, 14),
    "歧视性收费": (15, 16),
    "外地商品": (15, 17),
    "政府采购": (18, 19),
    "招标限制": (18,),
    "财政奖励": (21,),
    "税收减免": (22,),
    "土地优惠": (23,),
    "强制投资": (24,),
    "贷款贴息": (25,),
})

IMPLICIT_MAPPINGS: Mapping[str, tuple[int, ...]] = MappingProxyType({
    "优先考虑": (8, 19, 21),
    "重点支持": (21, 23),
    "就近选择": (8, 14),
    "属地管理": (9, 12),
    "同等条件下": (19,),
    "符合条件的": (8, 14),
    "根据贡献": (21,),
    "按照规模": (21,),
    "经济贡献": (21,),
    "纳税额": (21, 22),
    "产值贡献": (21,),
    "绿色通道": (20, 25),
    "快速审批": (20,),
})


@dataclass(frozen=True)
class SemanticGroup:
    name: str
    articles: tuple[str, ...]
    keywords: tuple[str, ...]


SEMANTIC_GROUPS: Mapping[str, SemanticGroup] = MappingProxyType({
    g.name: g for g in (
        SemanticGroup(
            name="marketAccess",
            articles=tuple(f"article_{n}" for n in range(8, 15)),
            keywords=("准入", "门槛", "资质", "限定", "指定", "排除", "禁止"),
        ),
        SemanticGroup(
            name="flowBarriers",
            articles=tuple(f"article_{n}" for n in range(15, 21)),
            keywords=("流动", "跨区域", "运输", "销售", "采购", "招标", "投标"),
        ),
        SemanticGroup(
            name="costImpact",
            articles=tuple(f"article_{n}" for n in range(21, 24)),
            keywords=("奖励", "补贴", "税收", "减免", "优惠", "扶持", "资金"),
        ),
        SemanticGroup(
            name="behaviorImpact",
            articles=("article_24", "article_25"),
            keywords=("强制", "要求", "必须", "应当", "投资", "建设", "经营"),
        ),
    )
})


def _validate_mappings() -> None:
    for table in (DIRECT_MAPPINGS, IMPLICIT_MAPPINGS):
        for term, numbers in table.items():
            for n in numbers:
                if f"article_{n}" not in ARTICLES:
                    raise ReferenceDataError(
                        f"Keyword mapping {term!r} cites unknown article {n}"
                    )
    for group in SEMANTIC_GROUPS.values():
        if not group.keywords:
            raise ReferenceDataError(f"Semantic group {group.name} has no vocabulary")
        for article_id in group.articles:
            if article_id not in ARTICLES:
                raise ReferenceDataError(
                    f"Semantic group {group.name} cites unknown article {article_id}"
                )


_validate_mappings()


# ============================================================
# SELECTOR
# ============================================================

class LegalArticleSelector:
    """Ranks catalogue articles by relevance to a document."""

    def __init__(
        self,
        cache: Optional[ResultCache] = None,
        articles: Mapping[str, LegalArticle] = ARTICLES,
    ):
        self._cache = cache if cache is not None else result_cache
        self._articles = articles

    def select(
        self,
        text: str,
        hints: Optional[Sequence[str]] = None,
        max_articles: int = settings.MAX_ARTICLES,
    ) -> list[ArticleMatch]:
        """Top-K articles with a nonzero score, best first."""
        if max_articles < 1:
            raise ValueError("max_articles must be at least 1")

        key = (text, ",".join(hints or ()), str(max_articles))
        cached = self._cache.get(*key)
        if cached is not None:
            logger.debug("Article selection cache hit", extra={"cache_hit": True})
            return list(cached)

        ranked = self._rank(self._accumulate(text, hints))[:max_articles]
        self._cache.put(tuple(ranked), *key)
        logger.debug(
            "Selected %d articles", len(ranked),
            extra={"cache_hit": False},
        )
        return ranked

    def explain(
        self,
        text: str,
        hints: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        """Every nonzero article with its per-channel contributions."""
        contributions = self._accumulate(text, hints)
        ranked = self._rank(contributions)
        return [
            {
                "article_id": m.article_id,
                "title": m.article.title,
                "score": m.score,
                "raw_score": m.raw_score,
                "frequency": m.article.frequency,
                "severity": m.article.severity,
                "channels": {
                    ch: round(v, 4)
                    for ch, v in contributions[m.article_id].items() if v
                },
            }
            for m in ranked
        ]

    def select_by_group(
        self,
        group: str,
        max_articles: int = settings.MAX_ARTICLES,
    ) -> list[ArticleMatch]:
        """A group's articles in catalogue order, each scored 1.0."""
        found = SEMANTIC_GROUPS.get(group)
        if found is None:
            raise UnknownArticleGroup(
                f"Unknown article group: {group}",
                {"known": sorted(SEMANTIC_GROUPS)},
            )
        return [
            ArticleMatch(
                article_id=article_id,
                score=1.0,
                raw_score=1.0,
                article=self._articles[article_id],
            )
            for article_id in found.articles[:max_articles]
        ]

    # --------------------------------------------------------
    # Channels
    # --------------------------------------------------------

    def _accumulate(
        self,
        text: str,
        hints: Optional[Sequence[str]],
    ) -> dict[str, dict[str, float]]:
        scores: dict[str, dict[str, float]] = {}

        def add(article_id: str, channel: str, amount: float) -> None:
            entry = scores.setdefault(article_id, dict.fromkeys(CHANNELS, 0.0))
            entry[channel] += amount

        for term, numbers in DIRECT_MAPPINGS.items():
            if term in text:
                for n in numbers:
                    add(f"article_{n}", "direct", DIRECT_WEIGHT)

        for term, numbers in IMPLICIT_MAPPINGS.items():
            if term in text:
                for n in numbers:
                    add(f"article_{n}", "implicit", IMPLICIT_WEIGHT)

        if hints:
            hint_text = " ".join(hints).lower()
            for group in SEMANTIC_GROUPS.values():
                hits = sum(1 for kw in group.keywords if kw.lower() in hint_text)
                if hits:
                    amount = SEMANTIC_WEIGHT * hits / len(group.keywords)
                    for article_id in group.articles:
                        add(article_id, "semantic", amount)

        lowered = text.lower()
        for article_id, article in self._articles.items():
            hits = sum(1 for concept in article.concepts if concept.lower() in lowered)
            if hits:
                add(article_id, "concept", CONCEPT_WEIGHT * hits)

        return scores

    def _rank(self, contributions: dict[str, dict[str, float]]) -> list[ArticleMatch]:
        matches = []
        for article_id, channels in contributions.items():
            article = self._articles[article_id]
            raw = sum(channels.values())
            if raw <= 0:
                continue
            matches.append(ArticleMatch(
                article_id=article_id,
                score=round(raw * article.frequency, 2),
                raw_score=round(raw, 4),
                article=article,
            ))
        matches.sort(key=lambda m: (-m.score, m.article.number))
        return matches


# Singleton
article_selector = LegalArticleSelector()
