"""
Regulation Catalogue — Immutable Reference Data

Defines the single reference regulation every finding is cited
against, its article catalogue (Articles 8-25), the violation
groups, remediation templates and the citation-priority ranking.

Also owns the citation format. Every citation that leaves the
package goes through format_citation() / normalize_citation(), so
the outgoing text is always:

    违反《公平竞争审查条例实施办法》第八条

and never names any other regulation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from fairreview.exceptions import ReferenceDataError

REGULATION_NAME = "公平竞争审查条例实施办法"
CITATION_PREFIX = f"违反《{REGULATION_NAME}》"

FIRST_ARTICLE = 8
LAST_ARTICLE = 25


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class LegalArticle:
    """One numbered clause of the reference regulation."""
    id: str                  # "article_8"
    number: int              # 8
    title: str
    content: str             # Normative text
    details: str             # Interpretation notes
    concepts: tuple[str, ...]
    severity: str            # "high" | "medium"
    frequency: float         # Empirical application weight in [0, 1]

    @property
    def citation(self) -> str:
        return format_citation([self.number])

    @property
    def text(self) -> str:
        return f"{self.content} {self.details}"


@dataclass(frozen=True)
class ViolationGroup:
    """A chapter-level grouping of articles."""
    key: str
    category: str
    articles: tuple[str, ...]
    description: str
    suggestions: tuple[str, ...]


# ============================================================
# RAW ARTICLE TEXT
# ============================================================

_RAW_ARTICLES: tuple[tuple[int, str, str, str], ...] = (
    # 市场准入和退出限制 (8-14)
    (8, "限定特定经营者",
     "不得限定经营、购买、使用特定经营者提供的商品和服务",
     "政策措施不得通过设置歧视性资质要求、评审标准或者不依法发布信息等方式，限定或者变相限定特定经营者参与市场活动"),
    (9, "限定特定区域注册登记",
     "不得限定经营者应当在特定区域注册登记",
     "包括但不限于限定在本地注册、设立分支机构、缴纳税收等条件"),
    (10, "授予专营权利",
     "不得授予特定经营者专营权利或者排他性权利",
     "除法律、行政法规明确规定外，不得授予特定经营者在特定区域、特定行业的专营权、独占权等排他性权利"),
    (11, "限定特定区域投资",
     "不得限定经营者应当在特定区域投资",
     "不得通过政策措施限制或排除其他区域经营者的投资行为"),
    (12, "设立分支机构限制",
     "不得限定经营者在特定区域设立分支机构",
     "不得对外地经营者设立分支机构设置歧视性条件"),
    (13, "生产经营场所限制",
     "不得限定经营者应当在特定区域生产经营",
     "不得通过政策措施限制经营者自主选择生产经营场所"),
    (14, "歧视性准入退出条件",
     "不得设置其他不合理或者歧视性的准入和退出条件",
     "包括设置明显超出实际需要的资质资格要求、与经营能力无关的条件、对外地经营者的歧视性要求等"),
    # 商品和要素流动障碍 (15-20)
    (15, "商品流动限制",
     "不得对外地商品设定歧视性收费项目、收费标准",
     "不得通过增加检验、检疫、检测、认证、审批等环节，提高收费标准等方式设置贸易壁垒"),
    (16, "运输限制",
     "不得限定外地商品、服务的运输方式",
     "不得指定运输企业或者运输路线，不得对运输设置歧视性条件"),
    (17, "销售限制",
     "不得设置专门针对外地商品、服务的专项检查",
     "不得通过专项检查等方式限制外地商品和服务的销售"),
    (18, "要素流动限制",
     "不得限制外地经营者参与本地招标投标活动",
     "不得通过设置注册地、纳税地等条件限制外地经营者参与招标投标"),
    (19, "政府采购歧视",
     "不得限制外地经营者参与本地政府采购活动",
     "不得在政府采购中对外地经营者设置歧视性条件"),
    (20, "其他流动障碍",
     "不得设置其他阻碍商品和要素自由流动的措施",
     "包括但不限于设置地方标准、技术要求等形成的贸易壁垒"),
    # 影响生产经营成本 (21-23)
    (21, "违法给予财政奖励补贴",
     "不得违法给予特定经营者财政奖励和补贴",
     "不得通过财政资金给予特定经营者优惠，造成不公平竞争"),
    (22, "违法减免税收",
     "不得违法减免特定经营者税收",
     "不得超越法定权限给予特定经营者税收优惠"),
    (23, "违法提供土地",
     "不得违法以划拨方式提供土地，或者违法确定土地出让底价",
     "不得通过土地政策给予特定经营者不当优势"),
    # 影响生产经营行为 (24-25)
    (24, "强制交易行为",
     "不得强制或者变相强制经营者从事特定的经营、投资、建设行为",
     "不得通过行政手段干预经营者的正常经营决策"),
    (25, "违法给予贷款贴息",
     "不得违法给予特定经营者贷款贴息等金融优惠",
     "不得通过金融政策给予特定经营者不当竞争优势"),
)

# Empirical application frequency; unlisted articles default to 0.5
_FREQUENCY = {
    8: 0.95,   # 限定特定经营者 - 最常见
    21: 0.90,  # 财政奖励补贴
    19: 0.85,  # 政府采购歧视
    14: 0.80,  # 歧视性准入条件
    9: 0.75,   # 区域注册要求
    15: 0.70,  # 歧视性收费
    22: 0.65,  # 税收减免
    10: 0.60,  # 专营权利
}
DEFAULT_FREQUENCY = 0.5

# Concept tag -> trigger words looked up in the article text
_CONCEPT_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("选择性限制", ("限定", "指定")),
    ("差别对待", ("歧视", "区别")),
    ("地域限制", ("区域", "地区")),
    ("财政优惠", ("奖励", "补贴")),
    ("市场准入", ("准入", "退出")),
    ("商品流动", ("流动", "运输")),
    ("政府采购", ("采购", "招标")),
    ("行为干预", ("强制", "要求")),
)


def _derive_concepts(text: str) -> tuple[str, ...]:
    return tuple(
        concept for concept, triggers in _CONCEPT_RULES
        if any(t in text for t in triggers)
    )


def _derive_severity(content: str) -> str:
    if "不得" in content and ("限定" in content or "指定" in content):
        return "high"
    if "歧视" in content or "排除" in content:
        return "high"
    return "medium"


def _build_catalogue() -> Mapping[str, LegalArticle]:
    articles: dict[str, LegalArticle] = {}
    for number, title, content, details in _RAW_ARTICLES:
        article_id = f"article_{number}"
        if article_id in articles:
            raise ReferenceDataError(f"Duplicate article id: {article_id}")
        frequency = _FREQUENCY.get(number, DEFAULT_FREQUENCY)
        if not 0.0 <= frequency <= 1.0:
            raise ReferenceDataError(
                f"Frequency weight out of range for {article_id}: {frequency}"
            )
        articles[article_id] = LegalArticle(
            id=article_id,
            number=number,
            title=title,
            content=content,
            details=details,
            concepts=_derive_concepts(f"{content} {details}"),
            severity=_derive_severity(content),
            frequency=frequency,
        )

    expected = set(range(FIRST_ARTICLE, LAST_ARTICLE + 1))
    found = {a.number for a in articles.values()}
    if found != expected:
        raise ReferenceDataError(
            "Article catalogue incomplete",
            {"missing": sorted(expected - found), "unexpected": sorted(found - expected)},
        )
    return MappingProxyType(articles)


ARTICLES: Mapping[str, LegalArticle] = _build_catalogue()


# ============================================================
# VIOLATION GROUPS
# ============================================================

VIOLATION_GROUPS: tuple[ViolationGroup, ...] = (
    ViolationGroup(
        key="market_access",
        category="市场准入和退出限制",
        articles=("article_8", "article_9", "article_10", "article_11",
                  "article_12", "article_13", "article_14"),
        description="限制或排除经营者进入或退出相关市场",
        suggestions=(
            "删除地域性限制表述，确保所有符合条件的经营者都能公平参与",
            "建立统一的资质标准，不得设置歧视性门槛",
            "公开准入程序和标准，接受社会监督",
            "定期评估准入条件的必要性和合理性",
        ),
    ),
    ViolationGroup(
        key="goods_flow",
        category="商品和要素流动障碍",
        articles=("article_15", "article_16", "article_17", "article_18",
                  "article_19", "article_20"),
        description="阻碍商品和生产要素自由流动",
        suggestions=(
            "取消针对外地商品和服务的歧视性收费",
            "简化跨区域商品流通手续，降低流通成本",
            "统一检验检测标准，避免重复检验",
            "建立商品和要素自由流动的监督机制",
        ),
    ),
    ViolationGroup(
        key="cost_impact",
        category="影响生产经营成本",
        articles=("article_21", "article_22", "article_23"),
        description="违法给予特定经营者成本优势",
        suggestions=(
            "审查财政奖励和补贴政策的公平性",
            "确保税收优惠政策符合法律法规要求",
            "建立公平透明的土地使用政策",
            "避免通过成本优势扭曲市场竞争",
        ),
    ),
    ViolationGroup(
        key="behavior_control",
        category="影响生产经营行为",
        articles=("article_24", "article_25"),
        description="不当干预经营者生产经营行为",
        suggestions=(
            "尊重经营者的经营自主权",
            "减少对正常经营活动的行政干预",
            "建立公平的金融支持政策",
            "完善政策实施的监督制约机制",
        ),
    ),
)


def group_for_article(article_id: str) -> Optional[ViolationGroup]:
    for group in VIOLATION_GROUPS:
        if article_id in group.articles:
            return group
    return None


# ============================================================
# CITATION PRIORITY
# ============================================================

# Lower number = more specific clause; wins when duplicates collapse.
# The catch-all clauses (14, 20) rank last in their chapters.
ARTICLE_PRIORITY: Mapping[str, int] = MappingProxyType({
    "article_8": 1,
    "article_9": 1,
    "article_11": 1,
    "article_12": 1,
    "article_18": 1,
    "article_19": 1,
    "article_21": 1,
    "article_10": 2,
    "article_13": 2,
    "article_15": 2,
    "article_16": 2,
    "article_17": 2,
    "article_22": 2,
    "article_23": 3,
    "article_24": 3,
    "article_25": 3,
    "article_14": 4,
    "article_20": 5,
})
UNKNOWN_PRIORITY = 999


def article_priority(article_id: str) -> int:
    return ARTICLE_PRIORITY.get(article_id, UNKNOWN_PRIORITY)


# ============================================================
# NUMERALS
# ============================================================

_CN_DIGITS = "零一二三四五六七八九"
_CN_VALUES = {ch: i for i, ch in enumerate(_CN_DIGITS)}
_CN_VALUES["两"] = 2


def to_chinese_numeral(n: int) -> str:
    """8 -> 八, 14 -> 十四, 21 -> 二十一. Supports 1-99."""
    if not 0 < n < 100:
        raise ValueError(f"Article number out of range: {n}")
    tens, ones = divmod(n, 10)
    if tens == 0:
        return _CN_DIGITS[ones]
    prefix = "" if tens == 1 else _CN_DIGITS[tens]
    return f"{prefix}十{_CN_DIGITS[ones] if ones else ''}"


def parse_numeral(token: str) -> Optional[int]:
    """Parse an Arabic or Chinese numeral (1-99). Returns None if unparseable."""
    token = token.strip()
    if not token:
        return None
    if token.isdigit():
        return int(token)
    if "十" in token:
        head, _, tail = token.partition("十")
        if head and head not in _CN_VALUES:
            return None
        if tail and tail not in _CN_VALUES:
            return None
        tens = _CN_VALUES[head] if head else 1
        ones = _CN_VALUES[tail] if tail else 0
        return tens * 10 + ones
    if len(token) == 1 and token in _CN_VALUES:
        return _CN_VALUES[token]
    return None


# ============================================================
# CITATIONS
# ============================================================

def format_citation(numbers: Iterable[int]) -> str:
    """Render article numbers in the canonical citation format."""
    parts = [f"第{to_chinese_numeral(n)}条" for n in numbers]
    if not parts:
        return ""
    return CITATION_PREFIX + "和".join(parts)


def citation_for_ids(article_ids: Iterable[str]) -> str:
    return format_citation(ARTICLES[a].number for a in article_ids if a in ARTICLES)


_REGULATION_NAME_RE = re.compile(r"《([^》]{1,40})》")
_ARTICLE_REF_RE = re.compile(
    r"第\s*([零一二两三四五六七八九十\d]{1,4})\s*条"
    r"|article[_\s]?(\d{1,2})"
    r"|Art(?:icle)?\.?\s*(\d{1,2})",
    re.IGNORECASE,
)


def _is_reference_regulation(name: str) -> bool:
    return name.strip() == REGULATION_NAME


def extract_article_ids(citation: str) -> list[str]:
    """Return in-catalogue article ids cited by a free-form citation.

    Article references that follow the name of any other regulation
    (e.g. 《反垄断法》第三十七条) are ignored. Order of first appearance
    is preserved.
    """
    if not citation:
        return []

    # Map every reference to the regulation named most recently before it
    names = [(m.start(), m.group(1)) for m in _REGULATION_NAME_RE.finditer(citation)]
    found: list[str] = []
    for m in _ARTICLE_REF_RE.finditer(citation):
        governing = None
        for pos, name in names:
            if pos < m.start():
                governing = name
        if governing is not None and not _is_reference_regulation(governing):
            continue
        number = parse_numeral(next(g for g in m.groups() if g))
        if number is None:
            continue
        article_id = f"article_{number}"
        if article_id in ARTICLES and article_id not in found:
            found.append(article_id)
    return found


def normalize_citation(
    citation: str,
    fallback_ids: Iterable[str] = (),
    limit: int = 2,
) -> tuple[str, list[str]]:
    """Normalize a free-form citation to the canonical format.

    Returns (citation, article_ids). When the citation names no in-range
    article of the reference regulation, the first usable fallback id is
    cited instead; with no fallback the citation is empty.
    """
    ids = extract_article_ids(citation)
    if not ids:
        ids = [a for a in fallback_ids if a in ARTICLES][:1]
    ids = ids[:limit]
    return citation_for_ids(ids), ids
