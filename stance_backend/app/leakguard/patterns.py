"""Conservative numeric-leak detection.

Any digit sequence is a candidate figure. Specific patterns only decide the
label and the canonical form used for allowlist comparison.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Pattern, Set, Tuple

from stance_backend.app.verification.freshness import LiveCategory

_ISO_DATETIME = (
    r"\b\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
)
_CLOCK = r"\b\d{1,2}:\d{2}(?::\d{2})?(?:\s?[AaPp]\.?[Mm]\b\.?)?"
# A minus sign only counts when it does not join two tokens ("2026-10")
_SIGNED_NUMBER = r"(?:(?<![\w.])-)?\d[\d,]*(?:\.\d+)?(?:[kKmMbB](?![A-Za-z]))?"

# Ordered; overlapping matches keep the earliest pattern's label
NUMERIC_LEAK_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("currency", re.compile(r"[$€£¥₹₽₩]\s?\d[\d,]*(?:\.\d+)?(?:[kKmMbB](?![A-Za-z]))?")),
    ("percentage", re.compile(r"\d[\d,]*(?:\.\d+)?\s?%")),
    ("date", re.compile(_ISO_DATETIME)),
    ("clock_time", re.compile(_CLOCK)),
    ("price_decimal", re.compile(r"\b\d+\.\d{2,}\b")),
    ("grouped_number", re.compile(r"\b\d{1,3}(?:,\d{3})+(?:\.\d+)?\b")),
    ("long_digits", re.compile(r"\b\d{5,}\b")),
)

BARE_NUMBER_PATTERN: Tuple[str, Pattern[str]] = (
    "bare_number",
    re.compile(r"\d+(?:[.,]\d+)*(?:[kKmMbB](?![A-Za-z]))?"),
)

CATEGORY_PATTERNS = {
    LiveCategory.WEATHER: (
        ("temperature", re.compile(r"-?\d+(?:\.\d+)?\s?°\s?[CFcf]?")),
        ("speed", re.compile(r"\b\d+(?:\.\d+)?\s?(?:mph|km/h|kph)\b", re.IGNORECASE)),
    ),
    LiveCategory.FX: (
        ("rate_decimal", re.compile(r"\b\d+\.\d{3,}\b")),
    ),
}

_DATE_PARTS = re.compile(r"(\d{4}-\d{2}-\d{2})(?:[T ](\d{2}):(\d{2}))?")
_CLOCK_PARTS = re.compile(r"(\d{1,2}):(\d{2})(?::\d{2})?(?:\s?([AaPp])\.?[Mm])?")
_NUMBER_PARTS = re.compile(r"(-?\d[\d,]*(?:\.\d+)?)([kKmMbB])?")
_TOKEN = re.compile(f"(?P<date>{_ISO_DATETIME})|(?P<clock>{_CLOCK})|(?P<number>{_SIGNED_NUMBER})")

_SUFFIX_SCALE = {"k": Decimal(1000), "m": Decimal(1000000), "b": Decimal(1000000000)}


@dataclass(frozen=True)
class LeakViolation:
    match: str
    index: int
    pattern: str
    canonical: Optional[str]


def _canonical_clock(hour: int, minute: int, meridiem: Optional[str]) -> Optional[str]:
    if minute > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        hour = hour % 12 + (12 if meridiem.lower() == "p" else 0)
    elif hour > 23:
        return None
    return f"{hour:02d}:{minute:02d}"


def _canonical_number(raw: str, suffix: Optional[str]) -> Optional[str]:
    try:
        value = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None
    if suffix:
        value *= _SUFFIX_SCALE[suffix.lower()]
    normalized = format(value.normalize(), "f")
    if "." in normalized:
        normalized = normalized.rstrip("0").rstrip(".")
    return normalized


def _canonical_forms(token: str, kind: str) -> List[str]:
    if kind == "date":
        m = _DATE_PARTS.match(token)
        if m is None:
            return []
        day, hour, minute = m.groups()
        if hour is None:
            return [day]
        clock = _canonical_clock(int(hour), int(minute), None)
        return [f"{day}T{clock}", day, clock] if clock else [day]
    if kind == "clock":
        m = _CLOCK_PARTS.match(token)
        if m is None:
            return []
        clock = _canonical_clock(int(m.group(1)), int(m.group(2)), m.group(3))
        return [clock] if clock else []
    m = _NUMBER_PARTS.search(token)
    if m is None:
        return []
    number = _canonical_number(m.group(1), m.group(2))
    return [number] if number is not None else []


def canonicalize_numeric(text: str) -> Optional[str]:
    """Reduce '$1,234.50' / '1234.5' / '3:45 PM' / '67k' to one comparable form.

    Clock times become 24-hour 'HH:MM' and ISO dates stay whole, so a
    verified '15:45' never admits '3:12'.
    """
    m = _TOKEN.search(text or "")
    if m is None:
        return None
    forms = _canonical_forms(m.group(0), m.lastgroup or "number")
    return forms[0] if forms else None


def find_numeric_leaks(text: str, category: Optional[LiveCategory] = None) -> List[LeakViolation]:
    patterns: List[Tuple[str, Pattern[str]]] = []
    if category is not None:
        patterns.extend(CATEGORY_PATTERNS.get(category, ()))
    patterns.extend(NUMERIC_LEAK_PATTERNS)
    patterns.append(BARE_NUMBER_PATTERN)

    taken: List[Tuple[int, int]] = []
    violations: List[LeakViolation] = []
    for label, pattern in patterns:
        for m in pattern.finditer(text or ""):
            start, end = m.span()
            if any(start < t_end and end > t_start for t_start, t_end in taken):
                continue
            taken.append((start, end))
            violations.append(LeakViolation(m.group(0), start, label, canonicalize_numeric(m.group(0))))
    violations.sort(key=lambda v: v.index)
    return violations


def contains_disallowed_numerics(text: str) -> bool:
    return bool(find_numeric_leaks(text))


def collect_numeric_values(data: Any) -> Set[str]:
    """Canonical numbers, clock times and dates present in provider data."""
    found: Set[str] = set()

    def _walk(node: Any) -> None:
        if isinstance(node, bool) or node is None:
            return
        if isinstance(node, (int, float)):
            canon = _canonical_number(repr(node) if isinstance(node, float) else str(node), None)
            if canon is not None:
                found.add(canon)
        elif isinstance(node, str):
            for m in _TOKEN.finditer(node):
                found.update(_canonical_forms(m.group(0), m.lastgroup or "number"))
        elif isinstance(node, dict):
            for value in node.values():
                _walk(value)
        elif isinstance(node, (list, tuple, set)):
            for value in node:
                _walk(value)

    _walk(data)
    return found


__all__ = [
    "NUMERIC_LEAK_PATTERNS",
    "BARE_NUMBER_PATTERN",
    "CATEGORY_PATTERNS",
    "LeakViolation",
    "canonicalize_numeric",
    "find_numeric_leaks",
    "contains_disallowed_numerics",
    "collect_numeric_values",
]
