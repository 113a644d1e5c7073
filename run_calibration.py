#!/usr/bin/env python3
"""
run_calibration.py — Benchmark the scanner against the labeled policy corpus.

Usage:
    python run_calibration.py                      # Report and save
    python run_calibration.py --corpus-dir path/   # Other corpus location
    python run_calibration.py --optimize           # Add threshold recommendations
    python run_calibration.py --json               # Single JSON document on stdout

Exit codes: 0 ok, 1 no corpus, 2 rule F1 below MIN_F1 on a corpus with
more than MIN_FLAGGED flagged samples.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Sequence

from fairreview.logging import setup_logging
from calibration.corpus_parser import parse_all_corpora
from calibration.benchmark import evaluate_samples, format_report, save_report
from calibration.optimizer import format_optimization_report, optimize_thresholds

logger = logging.getLogger("fairreview.calibration")

MIN_F1 = 0.5
MIN_FLAGGED = 5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FairReview calibration runner")
    parser.add_argument("--corpus-dir", type=Path, default=Path("calibration/corpus"),
                        help="Directory of labeled *.txt corpus files")
    parser.add_argument("--output-dir", type=Path, default=Path("calibration/reports"),
                        help="Where calibration_report.{txt,json} are written")
    parser.add_argument("--optimize", action="store_true",
                        help="Recommend FAIRREVIEW_* threshold adjustments")
    parser.add_argument("--json", action="store_true",
                        help="Print one JSON document instead of the text report")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(fmt="text", stream=sys.stderr)

    if not args.corpus_dir.is_dir():
        logger.error("Corpus directory not found: %s", args.corpus_dir,
                     extra={"corpus": str(args.corpus_dir)})
        return 1

    samples = parse_all_corpora(args.corpus_dir)
    if not samples:
        logger.error("No labeled samples in %s", args.corpus_dir,
                     extra={"corpus": str(args.corpus_dir)})
        return 1
    logger.info("Loaded %d samples", len(samples),
                extra={"sample_count": len(samples), "corpus": str(args.corpus_dir)})

    result = evaluate_samples(samples)
    report_path, json_path = save_report(result, args.output_dir)
    optimization = optimize_thresholds(result) if args.optimize else None

    if args.json:
        payload = json.loads(json_path.read_text(encoding="utf-8"))
        if optimization is not None:
            payload["optimization"] = asdict(optimization)
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(format_report(result))
        if optimization is not None:
            print()
            print(format_optimization_report(optimization))
        print(f"\nReport: {report_path}\nJSON:   {json_path}")

    if result.overall_f1 < MIN_F1 and result.flagged_samples > MIN_FLAGGED:
        logger.error("Rule F1 %.2f is below %.2f", result.overall_f1, MIN_F1)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
