"""
Structured Response Parser — Cascading Recovery

Recovers Issue records from the unreliable output of the reasoning
step. The payload is first normalized into a tagged union, then text
payloads run through an ordered list of strategies. The first strategy
that succeeds wins:

  1. direct       — the whole trimmed text is the JSON block
  2. bounded      — first "{" to its matching "}"
  3. repaired     — cut a truncated block at the last complete value
  4. fragments    — carve each complete object out of "issues": [...]
  5. sections     — "问题1：" style headers with labelled fields
  6. no_issue     — explicit "nothing found" vocabulary
  7. fallback     — the raw text as one manual-review Issue

Success means at least one Issue with a title, or an explicit
zero-issue determination. Parsing never raises.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from fairreview.exceptions import MalformedUpstreamOutput
from fairreview.models import PARSED, Issue, ParsedResponse

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "AI审查结果"
FALLBACK_DESCRIPTION_LIMIT = 1000
DEFAULT_DESCRIPTION = "检测到潜在的公平竞争问题"

NO_ISSUE_MARKERS = (
    "未发现", "无问题", "不存在", "符合要求", "没有发现",
    '"totalIssues": 0', '"totalIssues":0',
    "no violation", "no issues found",
)


# ============================================================
# PAYLOAD ADAPTER
# ============================================================

@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class MappingPayload:
    data: dict
    raw: str


@dataclass(frozen=True)
class IssueListPayload:
    items: list
    raw: str


@dataclass(frozen=True)
class EmptyPayload:
    raw: str = ""


Payload = Union[TextPayload, MappingPayload, IssueListPayload, EmptyPayload]


def adapt_payload(raw: Any) -> Payload:
    """Normalize whatever the reasoning step returned."""
    if raw is None:
        return EmptyPayload()
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return EmptyPayload(raw)
        return TextPayload(raw)
    if isinstance(raw, dict):
        return MappingPayload(raw, json.dumps(raw, ensure_ascii=False, default=str))
    if isinstance(raw, (list, tuple)):
        items = list(raw)
        return IssueListPayload(items, json.dumps(items, ensure_ascii=False, default=str))
    return TextPayload(str(raw))


# ============================================================
# FIELD COERCION
# ============================================================

_FIELD_ALIASES = {
    "title": ("title", "name", "问题", "标题"),
    "description": ("description", "violationContent", "desc", "detail", "问题描述", "描述"),
    "quote": ("quote", "originalQuote", "originalText", "excerpt", "原文引用", "引用"),
    "violation": ("violation", "legalBasis", "articleViolated", "article", "违反条款", "条款"),
    "suggestion": ("suggestion", "suggestions", "recommendation", "修改建议", "建议"),
    "severity": ("severity", "riskLevel", "level", "风险等级"),
}

_SEVERITY = {
    "high": "high", "critical": "high", "高": "high", "高风险": "high",
    "medium": "medium", "moderate": "medium", "中": "medium", "中风险": "medium",
    "low": "low", "低": "low", "低风险": "low",
}

_QUOTE_MARKS = "\"'“”‘’「」『』"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "；".join(t for t in (_text(v) for v in value) if t)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _field(item: dict, name: str) -> Any:
    for alias in _FIELD_ALIASES[name]:
        if alias in item and item[alias] not in (None, ""):
            return item[alias]
    return None


def coerce_issue(item: Any, position: int) -> Optional[Issue]:
    """Build an Issue from a loosely shaped dict. None if it carries nothing."""
    if not isinstance(item, dict):
        return None

    suggestion = _field(item, "suggestion")
    if isinstance(suggestion, (list, tuple)):
        suggestion = " ".join(f"{i}. {_text(s)}" for i, s in enumerate(suggestion, 1))

    title = _text(_field(item, "title"))
    description = _text(_field(item, "description"))
    quote = _text(_field(item, "quote")).strip(_QUOTE_MARKS).strip()
    if not (title or description or quote):
        return None

    return Issue(
        id=position,
        title=title or f"问题{position}",
        description=description,
        quote=quote,
        violation=_text(_field(item, "violation")),
        severity=_SEVERITY.get(_text(_field(item, "severity")).lower(), "medium"),
        suggestion=_text(suggestion),
        provenance=PARSED,
    )


def _coerce_all(items: list) -> list[Issue]:
    issues = []
    for item in items:
        issue = coerce_issue(item, len(issues) + 1)
        if issue is not None:
            issues.append(issue)
    return issues


def issues_from_mapping(data: Any) -> Optional[list[Issue]]:
    """
    Issues from a decoded block. [] for an explicit zero-issue block,
    None if the block is not an issue listing.
    """
    if not isinstance(data, dict):
        return None
    raw_issues = data.get("issues")
    total = data.get("totalIssues", data.get("total_issues"))

    if isinstance(raw_issues, list):
        issues = _coerce_all(raw_issues)
        if issues:
            return issues
        if not raw_issues and total in (0, "0", None):
            return []
        return None

    if raw_issues is None and total in (0, "0"):
        return []
    return None


# ============================================================
# JSON SCANNING HELPERS
# ============================================================

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```\s*$", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_ISSUES_ARRAY_RE = re.compile(r'"issues"\s*:\s*\[')


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    m = _FENCE_RE.match(cleaned)
    return m.group(1).strip() if m else cleaned


def _outside_strings(s: str, start: int = 0):
    """Yield (index, char) for characters outside JSON string literals."""
    in_string = False
    escaped = False
    for i in range(start, len(s)):
        ch = s[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            continue
        yield i, ch


def _matching_brace(s: str, start: int) -> int:
    depth = 0
    for i, ch in _outside_strings(s, start):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _loads_lenient(s: str) -> Any:
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        return json.loads(_TRAILING_COMMA_RE.sub(r"\1", s))


def repair_truncated(s: str) -> Optional[str]:
    """
    Cut a block at the last offset where a value closed and close the
    containers still open there. A block whose depth returns to zero
    is cut at that point.
    """
    start = s.find("{")
    if start == -1:
        return None
    stack: list[str] = []
    cut = -1
    open_at_cut: list[str] = []
    for i, ch in _outside_strings(s, start):
        if ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if not stack:
                break
            stack.pop()
            cut, open_at_cut = i, list(stack)
            if not stack:
                break
    if cut == -1:
        return None
    closers = "".join("}" if c == "{" else "]" for c in reversed(open_at_cut))
    return s[start:cut + 1] + closers


# ============================================================
# STRATEGIES
# ============================================================

# Each strategy takes the cleaned text and returns a list of Issues
# ([] = explicit zero-issue determination) or None on failure.

def parse_direct(text: str) -> Optional[list[Issue]]:
    try:
        data = json.loads(_strip_fences(text))
    except json.JSONDecodeError:
        return None
    if isinstance(data, list):
        issues = _coerce_all(data)
        return issues if issues or not data else None
    return issues_from_mapping(data)


def parse_bounded(text: str) -> Optional[list[Issue]]:
    start = text.find("{")
    if start == -1:
        return None
    end = _matching_brace(text, start)
    if end == -1:
        end = text.rfind("}")
    if end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return issues_from_mapping(data)


def parse_repaired(text: str) -> Optional[list[Issue]]:
    candidate = repair_truncated(text)
    if candidate is None:
        return None
    try:
        data = _loads_lenient(candidate)
    except json.JSONDecodeError:
        return None
    issues = issues_from_mapping(data)
    # A repaired block proves nothing about a zero count
    return issues or None


def parse_fragments(text: str) -> Optional[list[Issue]]:
    marker = _ISSUES_ARRAY_RE.search(text)
    if marker is None:
        return None

    objects = []
    depth = 0
    obj_start = -1
    for i, ch in _outside_strings(text, marker.end()):
        if ch == "{":
            if depth == 0:
                obj_start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                try:
                    objects.append(_loads_lenient(text[obj_start:i + 1]))
                except json.JSONDecodeError:
                    logger.debug("Dropped unparseable issue fragment")
        elif ch == "]" and depth == 0:
            break
    return _coerce_all(objects) or None


_SECTION_SPLIT_RE = re.compile(r"(?:问题\s*\d+\s*[:：]|Issue\s*\d+\s*[:：])", re.IGNORECASE)
_LABEL_PREFIX_RE = re.compile(
    r"^\s*(?:问题描述|描述|原文引用|引用|违反条款|条款|修改建议|建议|"
    r"description|quote|violation|suggestion)\s*[:：]",
    re.IGNORECASE,
)
_DESCRIPTION_RE = re.compile(r"(?:问题描述|描述|Description)\s*[:：]\s*([^\n]*)", re.IGNORECASE)
_QUOTE_RE = re.compile(r"(?:原文引用|引用|Quote)\s*[:：]\s*([^\n]*)", re.IGNORECASE)
_VIOLATION_RE = re.compile(
    r"(?:违反条款|条款|Violation)\s*[:：]\s*(.*?)(?=\n\s*(?:修改建议|建议|Suggestion)\s*[:：]|$)",
    re.IGNORECASE | re.DOTALL,
)
_SUGGESTION_RE = re.compile(r"(?:修改建议|建议|Suggestion)\s*[:：]\s*(.*)$", re.IGNORECASE | re.DOTALL)


def parse_sections(text: str) -> Optional[list[Issue]]:
    sections = _SECTION_SPLIT_RE.split(text)
    if len(sections) < 2:
        return None

    issues = []
    for position, section in enumerate(sections[1:], 1):
        first_line = section.strip().split("\n", 1)[0].strip()
        title = "" if _LABEL_PREFIX_RE.match(first_line) else first_line

        def grab(pattern: re.Pattern) -> str:
            m = pattern.search(section)
            return m.group(1).strip() if m else ""

        issues.append(Issue(
            id=position,
            title=title or f"问题{position}",
            description=grab(_DESCRIPTION_RE) or DEFAULT_DESCRIPTION,
            quote=grab(_QUOTE_RE).strip(_QUOTE_MARKS).strip(),
            violation=grab(_VIOLATION_RE),
            suggestion=grab(_SUGGESTION_RE),
            provenance=PARSED,
        ))
    return issues


def detect_no_issue(text: str) -> Optional[list[Issue]]:
    lowered = text.lower()
    if any(marker.lower() in lowered for marker in NO_ISSUE_MARKERS):
        return []
    return None


def fallback_issue(text: str) -> list[Issue]:
    description = text
    if len(description) > FALLBACK_DESCRIPTION_LIMIT:
        description = description[:FALLBACK_DESCRIPTION_LIMIT] + "..."
    return [Issue(
        id=1,
        title=FALLBACK_TITLE,
        description=description,
        severity="medium",
        provenance=PARSED,
        needs_manual_review=True,
    )]


Strategy = Callable[[str], Optional[list[Issue]]]

STRATEGIES: tuple[tuple[str, Strategy, float], ...] = (
    ("direct", parse_direct, 0.9),
    ("bounded", parse_bounded, 0.85),
    ("repaired", parse_repaired, 0.7),
    ("fragments", parse_fragments, 0.6),
    ("sections", parse_sections, 0.5),
    ("no_issue", detect_no_issue, 0.8),
)

FALLBACK_CONFIDENCE = 0.2


# ============================================================
# ENTRY POINT
# ============================================================

def _result(issues: list[Issue], raw: str, strategy: str, confidence: float,
            error_code: Optional[str] = None) -> ParsedResponse:
    logger.info(
        "Parsed upstream response",
        extra={"strategy": strategy, "issue_count": len(issues)},
    )
    return ParsedResponse(
        total_issues=len(issues),
        issues=issues,
        raw_response=raw,
        strategy=strategy,
        confidence=confidence,
        error_code=error_code,
    )


def _fallback(text: str, raw: str) -> ParsedResponse:
    err = MalformedUpstreamOutput(
        "No parsing strategy recovered issues; returning manual-review fallback",
        {"length": len(raw)},
    )
    logger.warning(str(err), extra={"error_type": err.code})
    return _result(fallback_issue(text), raw, "fallback", FALLBACK_CONFIDENCE, err.code)


def parse_response(raw: Any) -> ParsedResponse:
    """Run the adapter and the cascade. Never raises."""
    payload = adapt_payload(raw)

    if isinstance(payload, EmptyPayload):
        err = MalformedUpstreamOutput("Upstream returned an empty payload")
        logger.warning(str(err), extra={"error_type": err.code})
        return _result([], payload.raw, "empty", 0.0, err.code)

    if isinstance(payload, MappingPayload):
        issues = issues_from_mapping(payload.data)
        if issues is not None:
            return _result(issues, payload.raw, "mapping", 0.9)
        return _fallback(payload.raw, payload.raw)

    if isinstance(payload, IssueListPayload):
        issues = _coerce_all(payload.items)
        if issues or not payload.items:
            return _result(issues, payload.raw, "issue_list", 0.9)
        return _fallback(payload.raw, payload.raw)

    raw_text = payload.text
    text = raw_text.strip().replace("\r\n", "\n").replace("\r", "\n")
    for name, strategy, confidence in STRATEGIES:
        try:
            issues = strategy(text)
        except (ValueError, TypeError, RecursionError) as e:
            logger.debug("Strategy %s failed: %s", name, e, extra={"strategy": name})
            continue
        if issues is not None:
            return _result(issues, raw_text, name, confidence)
    return _fallback(text, raw_text)
