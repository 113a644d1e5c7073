"""
Corpus Parser — Reads Labeled Calibration Samples

Parses the simple text format used for calibration corpus files.
Each sample is a policy excerpt preceded by metadata tags,
separated by '---' delimiters.

Format:
    ---
    rules: specific_operator, fiscal_favour
    tier: high
    articles: 8, 21
    source: 某市招商引资优惠政策（2021）
    notes: 采购倾斜叠加按纳税额奖励

    关于支持本地企业发展的若干措施
    一、政府采购中优先采购本地企业的产品。

    ---

Clean samples use `rules: clean` and usually `tier: none`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fairreview.patterns import RULES_BY_ID
from fairreview.regulation import parse_numeral

CLEAN = "clean"
_TIERS = ("none", "low", "medium", "high")


@dataclass
class CalibrationSample:
    """A single labeled sample from the calibration corpus."""
    text: str
    rules: list[str]              # Expected pattern rule ids (or ["clean"])
    tier: str                     # Human-labeled risk tier
    articles: list[str]           # Expected article ids, e.g. ["article_8"]
    source: str
    notes: str
    is_clean: bool

    # Populated after engine evaluation
    engine_result: Optional[dict] = None


# Human tags map onto pattern rule ids: "specific_operator" -> "SPECIFIC_OPERATOR"
TAG_TO_RULE_ID = {rule_id.lower(): rule_id for rule_id in RULES_BY_ID}
RULE_ID_TO_TAG = {v: k for k, v in TAG_TO_RULE_ID.items()}

_METADATA_RE = re.compile(r"^(rules|tier|articles|source|notes)\s*:\s*(.+)$", re.IGNORECASE)
_DELIMITER_RE = re.compile(r"^\s*---\s*$", re.MULTILINE)


def parse_corpus(filepath: str | Path) -> list[CalibrationSample]:
    """Parse one corpus file. Blocks without text are skipped."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Corpus file not found: {filepath}")

    blocks = _DELIMITER_RE.split(filepath.read_text(encoding="utf-8"))
    return [s for s in map(_parse_block, blocks) if s is not None]


def _split_header(block: str) -> tuple[dict[str, str], str]:
    """Leading `key: value` lines are metadata; the first other line starts the text."""
    metadata: dict[str, str] = {}
    lines = [ln for ln in block.strip().splitlines() if not ln.lstrip().startswith("#")]
    for i, line in enumerate(lines):
        match = _METADATA_RE.match(line.strip())
        if match:
            metadata[match.group(1).lower()] = match.group(2).strip()
        elif line.strip():
            return metadata, "\n".join(lines[i:]).strip()
    return metadata, ""


def _parse_block(block: str) -> Optional[CalibrationSample]:
    metadata, text = _split_header(block)
    if not text:
        return None

    rules = [r.strip().lower() for r in re.split(r"[,，]", metadata.get("rules", "")) if r.strip()]
    rules = rules or [CLEAN]
    is_clean = CLEAN in rules

    tier = metadata.get("tier", "").lower()
    if tier not in _TIERS:
        tier = "none" if is_clean else "medium"

    return CalibrationSample(
        text=text,
        rules=rules,
        tier=tier,
        articles=_parse_articles(metadata.get("articles", "")),
        source=metadata.get("source", "unknown"),
        notes=metadata.get("notes", ""),
        is_clean=is_clean,
    )


def _parse_articles(raw: str) -> list[str]:
    """'8, 第二十一条, article_19' -> ['article_8', 'article_21', 'article_19']"""
    ids = []
    for token in re.split(r"[,，、\s]+", raw):
        token = token.strip()
        if not token:
            continue
        if token.startswith("article_"):
            article_id = token
        else:
            number = parse_numeral(token.removeprefix("第").removesuffix("条"))
            if number is None:
                continue
            article_id = f"article_{number}"
        if article_id not in ids:
            ids.append(article_id)
    return ids


def parse_all_corpora(corpus_dir: str | Path) -> list[CalibrationSample]:
    """Parse all .txt corpus files in a directory."""
    corpus_dir = Path(corpus_dir)
    samples = []
    for filepath in sorted(corpus_dir.glob("*.txt")):
        samples.extend(parse_corpus(filepath))
    return samples
