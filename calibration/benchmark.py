"""
Benchmark Runner — Precision/Recall/F1 per Pattern Rule

Runs the calibration corpus through the scanner and article selector
and compares engine output against human labels. Produces:

  1. Per-rule precision, recall, F1
  2. Risk tier accuracy (exact and within one tier)
  3. Final score separation between clean and flagged samples
  4. Article recall of the selector's top-K
  5. Specific misses and false alarms for manual review

The numbers are what the empirical constants in Settings (score caps,
tier thresholds) are tuned against.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fairreview.articles import LegalArticleSelector
from fairreview.cache import NullCache
from fairreview.config import settings
from fairreview.models import RISK_TIERS
from fairreview.scanner import RiskPatternScanner, risk_scanner
from calibration.corpus_parser import (
    CalibrationSample,
    RULE_ID_TO_TAG,
    TAG_TO_RULE_ID,
    parse_all_corpora,
)


@dataclass
class RuleMetrics:
    """Precision/recall metrics for a single pattern rule."""
    rule_id: str
    human_tag: str
    true_positives: int = 0   # Engine fired, human tagged
    false_positives: int = 0  # Engine fired, human didn't tag
    false_negatives: int = 0  # Human tagged, engine missed
    true_negatives: int = 0   # Neither

    @property
    def precision(self) -> float:
        denom = self.true_positives + self.false_positives
        return self.true_positives / denom if denom > 0 else 0.0

    @property
    def recall(self) -> float:
        denom = self.true_positives + self.false_negatives
        return self.true_positives / denom if denom > 0 else 0.0

    @property
    def f1(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if (p + r) > 0 else 0.0

    @property
    def support(self) -> int:
        """Number of human-labeled positives for this rule."""
        return self.true_positives + self.false_negatives


@dataclass
class BenchmarkResult:
    """Full benchmark output."""
    total_samples: int
    clean_samples: int
    flagged_samples: int
    rule_metrics: dict[str, RuleMetrics]
    # Rule detection, macro-averaged over rules with support
    overall_precision: float
    overall_recall: float
    overall_f1: float
    # Tier and review decision
    tier_accuracy: float            # Exact tier match
    tier_within_one: float          # Off by at most one tier
    review_accuracy: float          # needs_further_analysis == not clean
    # Score analysis
    avg_score_clean: float
    avg_score_flagged: float
    score_separation: float         # flagged avg - clean avg
    # Selector
    article_recall: float           # Expected articles found in top-K
    # Detail for review
    false_positives: list[dict]
    false_negatives: list[dict]
    score_pairs: list[dict]


def _tier_distance(a: str, b: str) -> int:
    return abs(RISK_TIERS.index(a) - RISK_TIERS.index(b))


def evaluate_samples(
    samples: list[CalibrationSample],
    scanner: Optional[RiskPatternScanner] = None,
    selector: Optional[LegalArticleSelector] = None,
    max_articles: int = settings.MAX_ARTICLES,
) -> BenchmarkResult:
    """
    Score labeled samples against the engine.

    Args:
        samples: Parsed calibration samples.
        scanner: Scanner under test (defaults to the singleton).
        selector: Selector under test (defaults to an uncached one).
        max_articles: K for article recall.

    Returns:
        BenchmarkResult with full metrics.
    """
    if not samples:
        raise ValueError("No samples to evaluate")

    scanner = scanner or risk_scanner
    selector = selector or LegalArticleSelector(cache=NullCache())

    metrics = {
        rule_id: RuleMetrics(rule_id=rule_id, human_tag=tag)
        for tag, rule_id in TAG_TO_RULE_ID.items()
    }

    false_positives_detail = []
    false_negatives_detail = []
    score_pairs = []
    clean_scores = []
    flagged_scores = []
    tier_exact = tier_close = review_correct = 0
    articles_expected = articles_found = 0

    for sample in samples:
        outcome = scanner.scan(sample.text)
        selected = [m.article_id for m in selector.select(sample.text, max_articles=max_articles)]

        sample.engine_result = {
            "risk_tier": outcome.risk_tier,
            "final_score": outcome.final_score,
            "needs_further_analysis": outcome.needs_further_analysis,
            "rules": outcome.rule_ids,
            "articles": selected,
        }

        engine_rules = set(outcome.rule_ids)
        human_rules = {TAG_TO_RULE_ID[t] for t in sample.rules if t in TAG_TO_RULE_ID}

        score_pairs.append({
            "text": sample.text[:100],
            "source": sample.source,
            "final_score": outcome.final_score,
            "engine_tier": outcome.risk_tier,
            "human_tier": sample.tier,
            "is_clean": sample.is_clean,
        })
        (clean_scores if sample.is_clean else flagged_scores).append(outcome.final_score)

        if outcome.risk_tier == sample.tier:
            tier_exact += 1
        if _tier_distance(outcome.risk_tier, sample.tier) <= 1:
            tier_close += 1
        if outcome.needs_further_analysis != sample.is_clean:
            review_correct += 1

        articles_expected += len(sample.articles)
        articles_found += sum(1 for a in sample.articles if a in selected)

        for rule_id, rm in metrics.items():
            engine_has = rule_id in engine_rules
            human_has = rule_id in human_rules
            if engine_has and human_has:
                rm.true_positives += 1
            elif engine_has:
                rm.false_positives += 1
                if sample.is_clean:
                    false_positives_detail.append({
                        "rule_id": rule_id,
                        "text": sample.text[:200],
                        "source": sample.source,
                        "notes": sample.notes,
                    })
            elif human_has:
                rm.false_negatives += 1
                false_negatives_detail.append({
                    "rule_id": rule_id,
                    "human_tag": RULE_ID_TO_TAG.get(rule_id, rule_id),
                    "text": sample.text[:200],
                    "source": sample.source,
                    "notes": sample.notes,
                })
            else:
                rm.true_negatives += 1

    active = [m for m in metrics.values() if m.support > 0]
    if active:
        overall_precision = sum(m.precision for m in active) / len(active)
        overall_recall = sum(m.recall for m in active) / len(active)
        overall_f1 = sum(m.f1 for m in active) / len(active)
    else:
        overall_precision = overall_recall = overall_f1 = 0.0

    total = len(samples)
    avg_clean = sum(clean_scores) / len(clean_scores) if clean_scores else 0.0
    avg_flagged = sum(flagged_scores) / len(flagged_scores) if flagged_scores else 0.0

    return BenchmarkResult(
        total_samples=total,
        clean_samples=len(clean_scores),
        flagged_samples=len(flagged_scores),
        rule_metrics=metrics,
        overall_precision=round(overall_precision, 4),
        overall_recall=round(overall_recall, 4),
        overall_f1=round(overall_f1, 4),
        tier_accuracy=round(tier_exact / total, 4),
        tier_within_one=round(tier_close / total, 4),
        review_accuracy=round(review_correct / total, 4),
        avg_score_clean=round(avg_clean, 1),
        avg_score_flagged=round(avg_flagged, 1),
        score_separation=round(avg_flagged - avg_clean, 1),
        article_recall=round(articles_found / articles_expected, 4) if articles_expected else 0.0,
        false_positives=false_positives_detail,
        false_negatives=false_negatives_detail,
        score_pairs=score_pairs,
    )


def run_benchmark(corpus_dir: str | Path = "calibration/corpus") -> BenchmarkResult:
    """Parse every corpus file in corpus_dir and evaluate it."""
    samples = parse_all_corpora(corpus_dir)
    if not samples:
        raise ValueError(f"No samples found in {corpus_dir}")
    return evaluate_samples(samples)


def format_report(result: BenchmarkResult) -> str:
    """Format benchmark results as a human-readable report."""
    lines = [
        "=" * 60,
        "FAIRREVIEW CALIBRATION REPORT",
        "=" * 60,
        "",
        f"Samples: {result.total_samples} "
        f"({result.clean_samples} clean, {result.flagged_samples} flagged)",
        "",
        "--- RULE DETECTION ---",
        f"Precision: {result.overall_precision:.1%}",
        f"Recall:    {result.overall_recall:.1%}",
        f"F1 Score:  {result.overall_f1:.1%}",
        "",
        "--- RISK TIER ---",
        f"Exact tier:        {result.tier_accuracy:.1%}",
        f"Within one tier:   {result.tier_within_one:.1%}",
        f"Review decision:   {result.review_accuracy:.1%}",
        "",
        "--- SCORE ANALYSIS ---",
        f"Avg score (clean samples):   {result.avg_score_clean}",
        f"Avg score (flagged samples): {result.avg_score_flagged}",
        f"Separation gap:              {result.score_separation}",
        f"  {'GOOD' if result.score_separation >= settings.MEDIUM_THRESHOLD else 'NEEDS TUNING'}"
        f" (target: gap of at least {settings.MEDIUM_THRESHOLD:g} points)",
        "",
        f"Article recall (top {settings.MAX_ARTICLES}): {result.article_recall:.1%}",
        "",
        "--- PER-RULE BREAKDOWN ---",
        f"{'Rule':<28} {'Prec':>6} {'Recall':>6} {'F1':>6} {'TP':>4} {'FP':>4} {'FN':>4} {'Support':>7}",
        "-" * 78,
    ]

    for m in sorted(result.rule_metrics.values(), key=lambda m: (-m.support, -m.f1)):
        if m.support > 0 or m.false_positives > 0:
            lines.append(
                f"{m.human_tag:<28} {m.precision:>5.0%} {m.recall:>6.0%} "
                f"{m.f1:>5.0%} {m.true_positives:>4} {m.false_positives:>4} "
                f"{m.false_negatives:>4} {m.support:>7}"
            )

    if result.false_negatives:
        lines.extend(["", "--- MISSES (Engine missed a labeled rule) ---"])
        for fn in result.false_negatives[:10]:
            lines.append(f"  [{fn['human_tag']}] {fn['text'][:80]}...")
            if fn.get("notes"):
                lines.append(f"    Notes: {fn['notes']}")

    if result.false_positives:
        lines.extend(["", "--- FALSE ALARMS (Engine flagged clean text) ---"])
        for fp in result.false_positives[:10]:
            lines.append(f"  [{fp['rule_id']}] {fp['text'][:80]}...")

    lines.extend(["", "=" * 60])
    return "\n".join(lines)


def save_report(result: BenchmarkResult, output_dir: str | Path = "calibration/reports"):
    """Save benchmark results as both human-readable report and JSON."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report_path = output_dir / "calibration_report.txt"
    report_path.write_text(format_report(result), encoding="utf-8")

    json_data = {
        "total_samples": result.total_samples,
        "clean_samples": result.clean_samples,
        "flagged_samples": result.flagged_samples,
        "rules": {
            "precision": result.overall_precision,
            "recall": result.overall_recall,
            "f1": result.overall_f1,
        },
        "tier": {
            "exact": result.tier_accuracy,
            "within_one": result.tier_within_one,
            "review_decision": result.review_accuracy,
        },
        "score": {
            "avg_clean": result.avg_score_clean,
            "avg_flagged": result.avg_score_flagged,
            "separation": result.score_separation,
        },
        "article_recall": result.article_recall,
        "per_rule": {
            rule_id: {
                "precision": m.precision,
                "recall": m.recall,
                "f1": m.f1,
                "tp": m.true_positives,
                "fp": m.false_positives,
                "fn": m.false_negatives,
                "support": m.support,
            }
            for rule_id, m in result.rule_metrics.items()
            if m.support > 0 or m.false_positives > 0
        },
        "false_positives": result.false_positives,
        "false_negatives": result.false_negatives,
        "score_pairs": result.score_pairs,
    }
    json_path = output_dir / "calibration_report.json"
    json_path.write_text(json.dumps(json_data, indent=2, ensure_ascii=False), encoding="utf-8")

    return report_path, json_path
