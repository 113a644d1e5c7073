"""
Pattern Library — Static Detection Vocabulary

Compiled once at import into a typed registry:
  - PATTERN_RULES: regex matchers per violation category, each matcher
    bound to the article it most directly evidences
  - KEYWORD_TIERS: weighted term lists for keyword scoring
  - POLICY_INDICATORS: markers that a text is a policy measure at all
  - term lists used to characterize a document

Matchers do not use DOTALL. A hit never spans a line break, so every
match is a single-sentence excerpt.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from fairreview.exceptions import ReferenceDataError
from fairreview.regulation import ARTICLES, group_for_article


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class Matcher:
    regex: re.Pattern
    article_id: str


@dataclass(frozen=True)
class PatternRule:
    """A violation category with its compiled matchers and literal triggers."""
    id: str
    category: str
    severity: str
    description: str
    matchers: tuple[Matcher, ...]
    keywords: tuple[str, ...]

    @property
    def article_ids(self) -> tuple[str, ...]:
        ordered: list[str] = []
        for m in self.matchers:
            if m.article_id not in ordered:
                ordered.append(m.article_id)
        return tuple(ordered)

    @property
    def suggestion(self) -> str:
        group = group_for_article(self.article_ids[0])
        if group is None:
            return ""
        return " ".join(f"{i}. {line}" for i, line in enumerate(group.suggestions, 1))


@dataclass(frozen=True)
class KeywordTier:
    name: str
    weight: int
    terms: tuple[str, ...]


def _rule(
    rule_id: str,
    category: str,
    severity: str,
    description: str,
    matchers: list[tuple[str, int]],
    keywords: list[str],
) -> PatternRule:
    compiled = []
    for pattern, number in matchers:
        article_id = f"article_{number}"
        if article_id not in ARTICLES:
            raise ReferenceDataError(
                f"Pattern rule {rule_id} cites unknown article {article_id}"
            )
        try:
            compiled.append(Matcher(regex=re.compile(pattern), article_id=article_id))
        except re.error as e:
            raise ReferenceDataError(
                f"Pattern rule {rule_id} has an invalid matcher",
                {"pattern": pattern, "error": str(e)},
            ) from e
    return PatternRule(
        id=rule_id,
        category=category,
        severity=severity,
        description=description,
        matchers=tuple(compiled),
        keywords=tuple(keywords),
    )


# ============================================================
# PATTERN RULES
# ============================================================

PATTERN_RULES: tuple[PatternRule, ...] = (
    _rule(
        "SPECIFIC_OPERATOR",
        category="限定特定经营者",
        severity="high",
        description="政策措施限定或者变相限定经营、购买、使用特定经营者提供的商品和服务",
        matchers=[
            # 直接限定
            (r"限定.*?经营.*?[的地].*?(企业|公司|供应商|服务商)", 8),
            (r"指定.*?(企业|公司|供应商|服务商).*?(提供|经营|销售)", 8),
            (r"必须.*?(从|向|购买|使用).*?(特定|指定|某.*?企业)", 8),
            (r"只能.*?(购买|使用|选择).*?(企业|公司|品牌)", 8),
            # 变相限定
            (r"推荐.*?(企业|供应商).*?名单", 8),
            (r"优先.*?(选择|采购|使用).*?[本当地].*?(企业|供应商)", 8),
            (r"建议.*?(采购|使用).*?(名单|目录).*?内.*?(企业|产品)", 8),
            # 排斥性表述
            (r"不得.*?(选择|采购).*?(名单|目录).*?外.*?(企业|产品)", 8),
            (r"禁止.*?(购买|使用).*?外[地省市县].*?(产品|服务)", 8),
        ],
        keywords=["限定经营", "指定供应商", "特定经营者", "必须购买", "只能选择", "推荐名单"],
    ),
    _rule(
        "GEOGRAPHIC_RESTRICTION",
        category="地域限制",
        severity="high",
        description="政策措施要求经营者在特定区域注册登记、投资或者设立分支机构",
        matchers=[
            (r"限定.*?[在于].*?[本当地].*?[市县区].*?(注册|登记|投资|生产|经营)", 9),
            (r"要求.*?[在于].*?(特定|本地|当地).*?(区域|地区).*?(设立|注册)", 12),
            (r"必须.*?[在于].*?[本当地].*?(投资|建厂|设点|办公)", 11),
            # 隐性地域要求
            (r"[具有拥].*?[本当地].*?(户籍|住址|营业执照)", 9),
            (r"[本当地].*?(企业|法人).*?方可.*?(参与|申请)", 14),
            (r"优先.*?(支持|扶持).*?[本当地].*?(企业|投资)", 11),
        ],
        keywords=["本地注册", "当地投资", "特定区域", "地域限制", "本地企业优先"],
    ),
    _rule(
        "DISCRIMINATORY_TREATMENT",
        category="歧视性政策措施",
        severity="high",
        description="政策措施对外地经营者设置歧视性标准、额外条件或者专门程序",
        matchers=[
            (r"对.*?外[地省市县].*?(企业|经营者).*?(设定|实行).*?(歧视性|不同|更高).*?(标准|政策|要求)", 14),
            (r"外[地省市县].*?(企业|经营者).*?(需要|应当|必须).*?(额外|特殊|更多).*?(条件|材料|程序)", 14),
            (r"[本当地].*?(企业|经营者).*?享受.*?(优惠|减免|便利)", 14),
            # 行政许可歧视
            (r"专门.*?针对.*?外[地省市县].*?(企业|经营者).*?(行政许可|备案|审批)", 14),
            (r"外[地省市县].*?(企业|经营者).*?(行政许可|备案).*?(程序|时间|材料).*?(复杂|较长|更多)", 14),
        ],
        keywords=["歧视性标准", "歧视性政策", "外地企业", "额外条件", "专门针对"],
    ),
    _rule(
        "TRADE_BARRIER",
        category="商品和服务流动障碍",
        severity="high",
        description="政策措施对外地商品、服务设置歧视性价格、收费或者进入限制",
        matchers=[
            (r"对.*?外[地省市县].*?(商品|服务).*?实行.*?(歧视性|不同|更高).*?(价格|收费)", 15),
            (r"限制.*?外[地省市县].*?(商品|服务).*?(进入|销售|提供)", 17),
            (r"限制.*?[本当地].*?(商品|服务).*?(运出|输出|销售)", 16),
            (r"禁止.*?外[地省市县].*?(商品|产品).*?(进入|销售)", 17),
            # 变相贸易壁垒
            (r"外[地省市县].*?(商品|服务).*?(需要|应当|必须).*?(特殊|额外).*?(检验|认证|手续)", 15),
            (r"[本当地].*?(商品|产品).*?实行.*?(保护|优先|扶持).*?政策", 20),
        ],
        keywords=["歧视性价格", "限制进入", "限制运出", "贸易壁垒", "地方保护"],
    ),
    _rule(
        "FACTOR_ACCESS",
        category="要素获取限制",
        severity="high",
        description="政策措施限制外地经营者取得土地、参与招标采购或者获得资金支持",
        matchers=[
            (r"限制.*?(外[地省市县]|非[本当地]).*?(企业|经营者).*?取得.*?(土地|用地).*?供应", 23),
            (r"限制.*?(外[地省市县]|非[本当地]).*?(企业|经营者).*?参与.*?(招标|投标)", 18),
            (r"限制.*?(外[地省市县]|非[本当地]).*?(企业|经营者).*?参与.*?采购", 19),
            (r"限制.*?(外[地省市县]|非[本当地]).*?(企业|经营者).*?获得.*?(政府|财政).*?(资金|支持)", 21),
            # 隐性限制
            (r"[本当地].*?(企业|经营者).*?在.*?(土地|招标|资金).*?方面.*?(优先|优惠)", 18),
            (r"要求.*?(本地|当地).*?(合作|参股|控股)", 24),
        ],
        keywords=["限制土地供应", "限制招标参与", "限制资金获得", "本地优先", "要求合作"],
    ),
    _rule(
        "FISCAL_FAVOUR",
        category="不当财政措施",
        severity="medium",
        description="政策措施违法给予特定经营者财政奖励、补贴、税收减免或者贷款贴息",
        matchers=[
            (r"给予.*?(特定|指定|某些).*?(企业|经营者).*?(财政|税收).*?(奖励|补贴|优惠)", 21),
            (r"免除.*?(特定|指定|某些).*?(企业|经营者).*?(社会保险费|税收|收费)", 22),
            (r"减免.*?(特定|指定|某些).*?(企业|经营者).*?(税收|行政事业性收费|政府性基金)", 22),
            (r"给予.*?(特定|指定|某些).*?(企业|经营者).*?贷款贴息", 25),
            # 以经济贡献为依据
            (r"根据.*?(纳税额|产值|营收|经济贡献|贡献度).*?(给予|享受|获得).*?(奖励|补贴|优惠)", 21),
            (r"按.*?(经济效益|税收贡献|产值规模).*?给予.*?(政策|资金).*?支持", 21),
        ],
        keywords=["财政奖励", "税收优惠", "免除费用", "贷款贴息", "经济贡献", "纳税额"],
    ),
    _rule(
        "ENTRY_INTERVENTION",
        category="不当准入和行为干预",
        severity="high",
        description="政策措施设置不合理准入条件，或者强制干预经营者自主经营",
        matchers=[
            (r"设置.*?(不合理|歧视性).*?(准入|退出).*?条件", 14),
            (r"设定.*?与.*?(企业能力|业务能力).*?不.*?(相适应|相符|匹配).*?(资质|资格).*?要求", 14),
            (r"在.*?(资质|资格|招标|投标).*?方面.*?设置.*?与.*?业务能力.*?无关.*?条件", 14),
            (r"强制.*?(企业|经营者).*?(垄断|限制竞争).*?行为", 24),
            # 过度监管
            (r"要求.*?(企业|经营者).*?(必须|应当).*?(使用|采购).*?特定.*?(技术|设备|材料)", 24),
            (r"限制.*?(企业|经营者).*?(自主|独立).*?(经营|定价|采购)", 24),
        ],
        keywords=["不合理准入条件", "歧视性条件", "资质要求过高", "强制垄断", "限制自主经营"],
    ),
)

RULES_BY_ID = {rule.id: rule for rule in PATTERN_RULES}


# ============================================================
# KEYWORD TIERS
# ============================================================

KEYWORD_TIERS: tuple[KeywordTier, ...] = (
    KeywordTier(
        name="high",
        weight=3,
        terms=("限定", "指定", "必须", "只能", "不得", "禁止", "排除",
               "本地企业", "当地供应商", "特定经营者"),
    ),
    KeywordTier(
        name="medium",
        weight=2,
        terms=("优先", "推荐", "建议", "鼓励", "支持", "扶持", "倾斜", "照顾", "便利"),
    ),
    KeywordTier(
        name="low",
        weight=1,
        terms=("企业", "供应商", "经营者", "投资", "采购", "招标", "补贴", "奖励", "优惠"),
    ),
)


# ============================================================
# DOCUMENT VOCABULARY
# ============================================================

POLICY_INDICATORS = ("政策", "措施", "办法", "规定", "通知", "意见", "方案", "实施")

FINANCIAL_TERMS = ("补贴", "奖励", "资金", "税收", "减免", "贴息", "财政", "优惠", "扶持")

GEOGRAPHIC_TERMS = ("本地", "当地", "本市", "本省", "本区", "本县", "区域", "外地", "属地")

LEGAL_REFERENCE_RE = re.compile(r"《[^》]{1,40}》|第[零一二两三四五六七八九十百\d]+条")
