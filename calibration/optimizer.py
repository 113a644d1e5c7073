"""
Threshold Optimizer — Scoring Calibration

Takes benchmark results and recommends adjustments to the empirical
scoring constants in Settings (tier thresholds, score caps) so that
clean and flagged samples separate cleanly.

The optimizer does NOT auto-apply changes. It produces recommendations
that a human reviews before changing the FAIRREVIEW_* environment
variables.

Optimization targets:
  1. Every clean sample scores below LOW_THRESHOLD
  2. Every flagged sample scores at or above LOW_THRESHOLD
  3. Average separation of at least MEDIUM_THRESHOLD points
  4. No rule fires repeatedly on clean text
"""

from __future__ import annotations

from dataclasses import dataclass

from fairreview.config import settings
from calibration.benchmark import BenchmarkResult


@dataclass
class ThresholdRecommendation:
    """A single recommended constant adjustment."""
    parameter: str       # e.g., "FAIRREVIEW_LOW_THRESHOLD"
    current_value: float
    recommended_value: float
    reason: str
    impact: str


@dataclass
class OptimizationReport:
    """Full optimization output."""
    current_separation: float
    target_separation: float
    recommendations: list[ThresholdRecommendation]
    summary: str


def current_constants() -> dict[str, float]:
    return {
        "FAIRREVIEW_LOW_THRESHOLD": settings.LOW_THRESHOLD,
        "FAIRREVIEW_MEDIUM_THRESHOLD": settings.MEDIUM_THRESHOLD,
        "FAIRREVIEW_HIGH_THRESHOLD": settings.HIGH_THRESHOLD,
        "FAIRREVIEW_PATTERN_SCORE_CAP": settings.PATTERN_SCORE_CAP,
        "FAIRREVIEW_KEYWORD_SCORE_CAP": settings.KEYWORD_SCORE_CAP,
    }


def optimize_thresholds(result: BenchmarkResult) -> OptimizationReport:
    """
    Analyze benchmark results and produce threshold recommendations.

    Strategy:
    - Clean samples at or above LOW_THRESHOLD → raise it (FP problem)
    - Flagged samples below LOW_THRESHOLD → lower it (FN problem)
    - Both at once → the scores overlap; regex tuning, not thresholds
    - Rules with low recall or repeated false alarms → regex tuning
    """
    constants = current_constants()
    low = constants["FAIRREVIEW_LOW_THRESHOLD"]
    target_separation = constants["FAIRREVIEW_MEDIUM_THRESHOLD"]
    recommendations = []

    clean = [p["final_score"] for p in result.score_pairs if p["is_clean"]]
    flagged = [p["final_score"] for p in result.score_pairs if not p["is_clean"]]
    max_clean = max(clean, default=0.0)
    min_flagged = min(flagged, default=low)

    # --- Review threshold ---
    if clean and flagged and max_clean >= min_flagged:
        recommendations.append(ThresholdRecommendation(
            parameter="FAIRREVIEW_LOW_THRESHOLD",
            current_value=low,
            recommended_value=low,
            reason=f"Clean and flagged scores overlap (highest clean {max_clean:.0f}, "
                   f"lowest flagged {min_flagged:.0f}). No threshold separates them.",
            impact="Requires regex or keyword tuning in fairreview/patterns.py.",
        ))
    elif max_clean >= low or min_flagged < low:
        midpoint = round((max_clean + min_flagged) / 2, 1)
        recommendations.append(ThresholdRecommendation(
            parameter="FAIRREVIEW_LOW_THRESHOLD",
            current_value=low,
            recommended_value=midpoint,
            reason=f"Highest clean score {max_clean:.0f}, lowest flagged score "
                   f"{min_flagged:.0f}; the current threshold {low:.0f} misplaces samples.",
            impact=f"Moves the review cut-off to {midpoint}, midway between the two groups.",
        ))

    # --- Separation ---
    if result.flagged_samples and result.score_separation < target_separation:
        recommendations.append(ThresholdRecommendation(
            parameter="FAIRREVIEW_PATTERN_SCORE_CAP",
            current_value=constants["FAIRREVIEW_PATTERN_SCORE_CAP"],
            recommended_value=constants["FAIRREVIEW_PATTERN_SCORE_CAP"] + 10,
            reason=f"Score separation is {result.score_separation:.0f} points "
                   f"(target ≥{target_separation:.0f}).",
            impact="Lets documents with many pattern hits climb further above clean text.",
        ))

    # --- Per-rule analysis ---
    for rule_id, m in result.rule_metrics.items():
        if m.support > 0 and m.recall < 0.5:
            recommendations.append(ThresholdRecommendation(
                parameter=f"rule_recall:{rule_id}",
                current_value=round(m.recall, 2),
                recommended_value=1.0,
                reason=f"Rule {m.human_tag} has {m.recall:.0%} recall "
                       f"({m.false_negatives} misses out of {m.support} labeled samples).",
                impact="The rule's matchers need expanding; thresholds cannot fix misses.",
            ))
        if m.false_positives >= 3 and m.support == 0:
            recommendations.append(ThresholdRecommendation(
                parameter=f"rule_false_positive:{rule_id}",
                current_value=m.false_positives,
                recommended_value=0,
                reason=f"Rule {rule_id} fired {m.false_positives} times with no labeled positives.",
                impact="Tighten its matchers or literal triggers.",
            ))

    if not recommendations:
        summary = (
            f"Calibration looks good. Separation: {result.score_separation:.0f} points. "
            f"Clean avg: {result.avg_score_clean:.0f}. Flagged avg: {result.avg_score_flagged:.0f}. "
            f"No adjustments recommended."
        )
    else:
        summary = (
            f"Found {len(recommendations)} adjustment(s). "
            f"Current separation: {result.score_separation:.0f} points "
            f"(target ≥{target_separation:.0f}). "
            f"Clean avg: {result.avg_score_clean:.0f}. Flagged avg: {result.avg_score_flagged:.0f}."
        )

    return OptimizationReport(
        current_separation=result.score_separation,
        target_separation=target_separation,
        recommendations=recommendations,
        summary=summary,
    )


def format_optimization_report(report: OptimizationReport) -> str:
    """Format optimization report for human review."""
    lines = [
        "=" * 60,
        "FAIRREVIEW THRESHOLD OPTIMIZATION REPORT",
        "=" * 60,
        "",
        report.summary,
        "",
    ]

    if report.recommendations:
        lines.append("--- RECOMMENDATIONS ---")
        lines.append("")
        for i, rec in enumerate(report.recommendations, 1):
            lines.append(f"{i}. {rec.parameter}")
            lines.append(f"   Current: {rec.current_value}")
            lines.append(f"   Recommended: {rec.recommended_value}")
            lines.append(f"   Reason: {rec.reason}")
            lines.append(f"   Impact: {rec.impact}")
            lines.append("")
    else:
        lines.append("No adjustments needed.")

    lines.extend(["", "=" * 60])
    return "\n".join(lines)
