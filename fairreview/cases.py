"""
Case Matcher — Precedent Retrieval

A fixed database of reviewed cases, each tied to one article, and a
matcher that ranks them against a query. Three channels:

  - keyword containment: 0.4 × index weight per hit
    (direct keywords weigh 1.0, paraphrase patterns 0.8)
  - concept similarity: 0.3 per (key feature, detected concept) pair
    whose token overlap exceeds 0.7
  - typical phrasing: a violation phrasing regex found in both the
    query and the case excerpt adds that phrasing's weight
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from fairreview.config import settings
from fairreview.exceptions import ReferenceDataError
from fairreview.models import CASE, CaseMatch, Issue
from fairreview.regulation import ARTICLES, citation_for_ids, parse_numeral
from fairreview.scanner import excerpt

logger = logging.getLogger(__name__)

KEYWORD_FACTOR = 0.4
PARAPHRASE_WEIGHT = 0.8
CONCEPT_HIT = 0.3
CONCEPT_SIMILARITY = 0.7


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class CaseOutcome:
    decision: str
    corrective_action: str
    timeframe: str


@dataclass(frozen=True)
class CaseRecord:
    """A reviewed precedent. Immutable."""
    id: str
    title: str
    category: str
    article_id: str
    excerpt: str                     # Literal text of the reviewed measure
    key_features: tuple[str, ...]
    keywords: tuple[str, ...]
    paraphrases: tuple[str, ...]
    severity: str
    frequency: str                   # "common" | "very_common" | "occasional"
    violation_reason: str
    outcome: CaseOutcome
    lesson: str

    @property
    def citation(self) -> str:
        return citation_for_ids([self.article_id])


# ============================================================
# CASE DATABASE
# ============================================================

CASE_DATABASE: tuple[CaseRecord, ...] = (
    # --- 政府采购 ---
    CaseRecord(
        id="GP001",
        title="某市政府采购中本地企业加分案",
        category="government_procurement",
        article_id="article_19",
        excerpt="在政府采购评分标准中规定：本地注册企业在技术标准评分基础上加5分，本地纳税企业再加3分。",
        key_features=("本地注册企业加分", "本地纳税额外加分", "政府采购评分标准", "明确的分数倾斜"),
        keywords=("政府采购", "本地企业", "加分", "评分标准", "地域歧视"),
        paraphrases=("本地供应商优先", "当地企业加分", "区域内企业优惠", "就近采购原则"),
        severity="high",
        frequency="common",
        violation_reason="直接对本地企业给予评分优势，构成政府采购中的地域歧视",
        outcome=CaseOutcome("要求立即停止执行", "修改评分标准，删除地域性加分条款", "30天内完成整改"),
        lesson="政府采购中任何基于地域的评分优势都构成违规，即使是“同等条件下优先”也不被允许",
    ),
    CaseRecord(
        id="GP002",
        title="“同等条件下优先本地”政策案",
        category="government_procurement",
        article_id="article_19",
        excerpt="在政府采购中，同等条件下优先选择本地企业；价格相差5%以内视为同等条件。",
        key_features=("同等条件下优先", "价格差异标准", "本地企业倾向", "软性表述但实质违规"),
        keywords=("同等条件", "优先", "价格相近", "本地企业"),
        paraphrases=(),
        severity="high",
        frequency="very_common",
        violation_reason="“同等条件”的判断标准主观性强，实际执行中必然偏向本地企业",
        outcome=CaseOutcome("认定违规，要求整改", "删除“优先本地”表述，建立纯客观评价标准", "立即整改"),
        lesson="“同等条件下优先”是典型的伪公平表述，实际执行中无法做到真正公平",
    ),
    # --- 财政奖励补贴 ---
    CaseRecord(
        id="FI001",
        title="按企业纳税额给予财政奖励案",
        category="fiscal_incentive",
        article_id="article_21",
        excerpt="对年纳税额超过1000万元的企业，按纳税额的10%给予财政奖励；对年纳税额超过5000万元的企业，奖励比例提升至15%。",
        key_features=("按纳税额奖励", "分档奖励标准", "经济贡献导向", "差别化奖励比例"),
        keywords=("纳税额", "财政奖励", "经济贡献", "按比例奖励"),
        paraphrases=("按产值奖励", "按营业收入奖励", "按就业贡献奖励", "按投资规模奖励"),
        severity="high",
        frequency="very_common",
        violation_reason="以经济贡献（纳税额）作为奖励标准，构成对特定经营者的选择性优惠",
        outcome=CaseOutcome("认定违规，立即停止", "建立基于创新能力、环保表现等客观标准的奖励机制", "60天内建立新标准"),
        lesson="任何以经济贡献为直接标准的财政奖励都构成违规，必须建立客观、公平的评价体系",
    ),
    CaseRecord(
        id="FI002",
        title="企业迁入地方财政奖励案",
        category="fiscal_incentive",
        article_id="article_21",
        excerpt="对从外地迁入本市并将注册地变更至本市的企业，给予一次性迁入奖励100万元，分三年发放。",
        key_features=("迁入奖励", "注册地变更奖励", "一次性补贴", "分期发放"),
        keywords=("迁入奖励", "注册地", "变更奖励", "一次性补贴"),
        paraphrases=(),
        severity="high",
        frequency="common",
        violation_reason="以企业注册地迁移为条件给予财政奖励，扭曲企业正常经营决策",
        outcome=CaseOutcome("立即停止该政策", "对所有符合条件企业一视同仁，不得以注册地为标准", "立即执行"),
        lesson="迁入奖励是典型的地方保护主义做法，严重扭曲市场竞争",
    ),
    CaseRecord(
        id="FI003",
        title="对特定企业减免城镇土地使用税案",
        category="fiscal_incentive",
        article_id="article_22",
        excerpt="对列入本市重点扶持名单的企业，三年内免征城镇土地使用税，并按50%减征房产税。",
        key_features=("重点扶持名单", "免征土地使用税", "减征房产税", "超越权限减免"),
        keywords=("免征", "减征", "税收减免", "重点扶持名单"),
        paraphrases=("减免税款", "税收返还", "先征后返"),
        severity="high",
        frequency="common",
        violation_reason="地方政府超越法定权限，对名单内特定企业减免税收",
        outcome=CaseOutcome("认定违规，停止执行减免条款", "删除减免税收条款，严格执行国家统一税收政策", "30天内完成整改"),
        lesson="税收减免只能依据法律、行政法规执行，地方不得自行对特定企业减免税收",
    ),
    # --- 市场准入 ---
    CaseRecord(
        id="MA001",
        title="要求投标企业在本地设立分公司案",
        category="market_access",
        article_id="article_14",
        excerpt="参与本项目投标的企业必须在本市设立分公司或办事处，并提供相关工商注册证明。",
        key_features=("强制设立分支机构", "投标准入条件", "工商注册要求", "地域性限制"),
        keywords=("分公司", "办事处", "工商注册", "投标条件"),
        paraphrases=(),
        severity="high",
        frequency="common",
        violation_reason="将设立本地分支机构作为参与招标的必要条件，构成市场准入歧视",
        outcome=CaseOutcome("认定违规并重新招标", "删除分支机构设立要求，允许所有合格企业参与", "重新发布招标公告"),
        lesson="任何将本地设立机构作为参与市场活动前提的要求都构成违规",
    ),
    CaseRecord(
        id="MA002",
        title="限定使用本地产品的技术标准案",
        category="market_access",
        article_id="article_8",
        excerpt="采购设备必须符合本市地方标准DB32/XXX-2023，该标准目前只有本地两家企业能够满足。",
        key_features=("地方技术标准", "事实上的限定", "技术壁垒", "变相排除外地企业"),
        keywords=("地方标准", "技术要求", "变相限定", "技术壁垒"),
        paraphrases=(),
        severity="high",
        frequency="common",
        violation_reason="通过设置只有本地企业才能满足的技术标准，变相限定特定经营者",
        outcome=CaseOutcome("要求修改技术标准", "采用国家标准或行业通用标准，确保公平竞争", "30天内修改标准"),
        lesson="技术标准不能成为地方保护的工具，应采用通用性、开放性标准",
    ),
    CaseRecord(
        id="MA003",
        title="授予单一企业城市燃气独家经营权案",
        category="market_access",
        article_id="article_10",
        excerpt="本区域内管道燃气业务由市城投燃气公司独家经营，其他企业不得从事相关业务。",
        key_features=("独家经营", "排他性权利", "专营权授予", "排除其他企业"),
        keywords=("独家经营", "专营权", "排他性", "独家代理"),
        paraphrases=("唯一经营主体", "特许经营"),
        severity="high",
        frequency="occasional",
        violation_reason="无法律、行政法规依据授予特定经营者排他性经营权利",
        outcome=CaseOutcome("认定违规，撤销独家经营规定", "通过公开竞争方式确定特许经营者", "90天内完成整改"),
        lesson="专营权利必须有法律、行政法规依据，并通过公开竞争方式授予",
    ),
    # --- 商品流动 ---
    CaseRecord(
        id="GF001",
        title="对外地商品设置额外检验要求案",
        category="goods_flow",
        article_id="article_15",
        excerpt="外省生产的同类产品进入本市销售，除国家规定的质检外，还需通过本市质监部门的补充检验。",
        key_features=("额外检验要求", "外省产品歧视", "重复检验", "地方质检部门"),
        keywords=("额外检验", "外省产品", "重复检验", "质量监督"),
        paraphrases=(),
        severity="high",
        frequency="common",
        violation_reason="对外地商品设置超出国家标准的额外检验要求，构成贸易壁垒",
        outcome=CaseOutcome("立即取消额外检验", "承认外省合格检验结果，不得重复检验", "立即执行"),
        lesson="商品检验应遵循“一次检验，全国通行”原则，不得设置地方性障碍",
    ),
    # --- 经营行为 ---
    CaseRecord(
        id="BC001",
        title="要求企业入驻指定园区经营案",
        category="behavior_control",
        article_id="article_24",
        excerpt="享受本办法扶持政策的企业应当在本市产业园区内投资建设生产基地，并承诺五年内不得迁出。",
        key_features=("强制投资建设", "限定经营场所", "迁出限制", "以扶持为条件"),
        keywords=("投资建设", "不得迁出", "入驻园区", "强制投资"),
        paraphrases=("承诺落户", "本地投资建厂"),
        severity="high",
        frequency="common",
        violation_reason="以享受政策为条件强制经营者从事特定投资建设行为",
        outcome=CaseOutcome("认定违规，删除相关条件", "取消投资建设与迁出限制要求", "30天内完成整改"),
        lesson="不得将投资、建设、经营场所等要求作为享受政策的前提条件",
    ),
)


def _validate_cases(cases: Iterable[CaseRecord]) -> None:
    seen: set[str] = set()
    for case in cases:
        if case.id in seen:
            raise ReferenceDataError(f"Duplicate case id: {case.id}")
        seen.add(case.id)
        if case.article_id not in ARTICLES:
            raise ReferenceDataError(
                f"Case {case.id} cites unknown article {case.article_id}"
            )
        if not case.keywords:
            raise ReferenceDataError(f"Case {case.id} has no keywords")


_validate_cases(CASE_DATABASE)


# ============================================================
# MATCHING VOCABULARY
# ============================================================

CONCEPT_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("政府采购", re.compile(r"政府.*?采购|采购.*?政府")),
    ("财政奖励", re.compile(r"财政.*?奖励|奖励.*?财政|补贴")),
    ("本地企业", re.compile(r"本地.*?企业|当地.*?企业")),
    ("市场准入", re.compile(r"市场.*?准入|准入.*?市场")),
    ("地方保护", re.compile(r"地方.*?保护|保护.*?本地")),
)

PHRASING_PATTERNS: tuple[tuple[re.Pattern, float], ...] = (
    (re.compile(r"本地.*?企业.*?优先"), 0.8),
    (re.compile(r"按.*?纳税.*?奖励"), 0.9),
    (re.compile(r"同等条件.*?优先"), 0.7),
    (re.compile(r"迁入.*?奖励"), 0.8),
    (re.compile(r"设立.*?分.*?公司"), 0.7),
)

_CJK_RUN = re.compile(r"[一-鿿]+")
_WORD = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> set[str]:
    """CJK character bigrams plus lowercase latin/digit words."""
    tokens: set[str] = set()
    for run in _CJK_RUN.findall(text):
        if len(run) == 1:
            tokens.add(run)
        else:
            tokens.update(run[i:i + 2] for i in range(len(run) - 1))
    tokens.update(_WORD.findall(text.lower()))
    return tokens


def token_overlap(a: str, b: str) -> float:
    """Share of the smaller token set found in the other."""
    ta, tb = tokenize(a), tokenize(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / min(len(ta), len(tb))


def extract_concepts(text: str) -> list[str]:
    return [name for name, pattern in CONCEPT_PATTERNS if pattern.search(text)]


# ============================================================
# MATCHER
# ============================================================

class CaseMatcher:
    """Ranks precedent cases against a query. Indices are built once."""

    def __init__(self, cases: tuple[CaseRecord, ...] = CASE_DATABASE):
        self._cases = cases
        self._by_id: Mapping[str, CaseRecord] = MappingProxyType({c.id: c for c in cases})
        self._keyword_index = self._build_keyword_index(cases)
        self._by_category = self._build_index(cases, lambda c: c.category)
        self._by_severity = self._build_index(cases, lambda c: c.severity)
        self._by_article = self._build_index(cases, lambda c: c.article_id)

    @staticmethod
    def _build_keyword_index(cases) -> Mapping[str, tuple[tuple[str, float], ...]]:
        index: dict[str, list[tuple[str, float]]] = {}
        for case in cases:
            for keyword in case.keywords:
                index.setdefault(keyword, []).append((case.id, 1.0))
            for phrase in case.paraphrases:
                index.setdefault(phrase, []).append((case.id, PARAPHRASE_WEIGHT))
        return MappingProxyType({k: tuple(v) for k, v in index.items()})

    @staticmethod
    def _build_index(cases, key) -> Mapping[str, tuple[str, ...]]:
        index: dict[str, list[str]] = {}
        for case in cases:
            index.setdefault(key(case), []).append(case.id)
        return MappingProxyType({k: tuple(v) for k, v in index.items()})

    # --------------------------------------------------------
    # Ranking
    # --------------------------------------------------------

    def find_similar(
        self,
        query: str,
        category: Optional[str] = None,
        severity: Optional[str] = None,
        max_results: int = 5,
        min_relevance: float = settings.CASE_MIN_RELEVANCE,
    ) -> list[CaseMatch]:
        """Cases ranked by relevance, at or above min_relevance."""
        if max_results < 1:
            raise ValueError("max_results must be at least 1")
        if not query:
            return []

        scores: dict[str, float] = {}
        keywords: dict[str, list[str]] = {}
        phrasings: dict[str, list[str]] = {}

        # Keyword containment
        lowered = query.lower()
        for keyword, entries in self._keyword_index.items():
            if keyword.lower() in lowered:
                for case_id, weight in entries:
                    scores[case_id] = scores.get(case_id, 0.0) + weight * KEYWORD_FACTOR
                    keywords.setdefault(case_id, []).append(keyword)

        # Concept similarity
        concepts = extract_concepts(query)
        if concepts:
            for case in self._cases:
                hits = sum(
                    1
                    for feature in case.key_features
                    for concept in concepts
                    if token_overlap(feature, concept) > CONCEPT_SIMILARITY
                )
                if hits:
                    scores[case.id] = scores.get(case.id, 0.0) + CONCEPT_HIT * hits

        # Typical phrasing
        for pattern, weight in PHRASING_PATTERNS:
            if not pattern.search(query):
                continue
            for case in self._cases:
                if pattern.search(case.excerpt):
                    scores[case.id] = scores.get(case.id, 0.0) + weight
                    phrasings.setdefault(case.id, []).append(pattern.pattern)

        results = []
        for case_id, score in scores.items():
            case = self._by_id[case_id]
            if score < min_relevance:
                continue
            if category and case.category != category:
                continue
            if severity and case.severity != severity:
                continue
            results.append(CaseMatch(
                case_id=case_id,
                relevance=round(score, 4),
                matched_keywords=keywords.get(case_id, []),
                matched_patterns=phrasings.get(case_id, []),
                case=case,
            ))
        results.sort(key=lambda m: (-m.relevance, m.case_id))
        return results[:max_results]

    # --------------------------------------------------------
    # Lookup
    # --------------------------------------------------------

    def get_case(self, case_id: str) -> Optional[CaseRecord]:
        return self._by_id.get(case_id)

    def cases_by_article(self, article, max_results: int = 3) -> list[CaseRecord]:
        """Cases citing an article, given as "article_21", 21 or "第二十一条"."""
        article_id = _coerce_article_id(article)
        ids = self._by_article.get(article_id, ())
        return [self._by_id[i] for i in ids[:max_results]]

    def search(
        self,
        keywords: Iterable[str] = (),
        category: Optional[str] = None,
        severity: Optional[str] = None,
        article=None,
        frequency: Optional[str] = None,
    ) -> list[CaseRecord]:
        """Filter the database. Keywords match as substrings of case keywords."""
        results = list(self._cases)
        if category:
            results = [c for c in results if c.id in self._by_category.get(category, ())]
        if severity:
            results = [c for c in results if c.id in self._by_severity.get(severity, ())]
        if article is not None:
            article_id = _coerce_article_id(article)
            results = [c for c in results if c.article_id == article_id]
        if frequency:
            results = [c for c in results if c.frequency == frequency]
        wanted = [k.lower() for k in keywords if k]
        if wanted:
            results = [
                c for c in results
                if any(w in ck.lower() for w in wanted for ck in c.keywords)
            ]
        return results

    def statistics(self) -> dict:
        return {
            "total_cases": len(self._cases),
            "categories": dict(Counter(c.category for c in self._cases)),
            "severity_levels": dict(Counter(c.severity for c in self._cases)),
            "articles": dict(Counter(c.article_id for c in self._cases)),
            "frequency": dict(Counter(c.frequency for c in self._cases)),
        }

    # --------------------------------------------------------
    # Case-provenance issues
    # --------------------------------------------------------

    def case_issues(self, text: str, max_results: int = settings.MAX_CASES) -> list[Issue]:
        """
        Issues for precedents whose phrasing recurs in the document.

        The quote is the document's own wording: the first shared
        typical-phrasing hit, else the first case keyword or paraphrase
        that occurs literally. Matches with no literal anchor are skipped.
        """
        issues: list[Issue] = []
        for match in self.find_similar(text, max_results=max_results):
            case = match.case
            quote = self._anchor(text, case)
            if not quote:
                continue
            issues.append(Issue(
                id=len(issues) + 1,
                title=f"与典型案例“{case.title}”情形相似",
                description=f"{case.violation_reason}。{case.lesson}",
                quote=quote,
                violation=case.citation,
                article_ids=[case.article_id],
                severity=case.severity,
                suggestion=f"1. {case.outcome.corrective_action}",
                provenance=CASE,
            ))
            logger.debug("Case reference issue", extra={"case_id": case.id})
        return issues

    @staticmethod
    def _anchor(text: str, case: CaseRecord) -> str:
        for pattern, _ in PHRASING_PATTERNS:
            if pattern.search(case.excerpt):
                m = pattern.search(text)
                if m is not None:
                    return excerpt(text, m.start(), m.end())
        for term in case.keywords + case.paraphrases:
            idx = text.find(term)
            if idx != -1:
                return excerpt(text, idx, idx + len(term))
        return ""


def _coerce_article_id(article) -> str:
    if isinstance(article, int):
        return f"article_{article}"
    article = str(article)
    if article.startswith("article_"):
        return article
    token = article.removeprefix("第").removesuffix("条")
    number = parse_numeral(token)
    return f"article_{number}" if number is not None else article


# Singleton
case_matcher = CaseMatcher()
