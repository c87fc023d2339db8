"""
Leak Guard: no unverified numeric figure reaches the user.

Modes:
- FORBID: any numeric figure is a violation (retrieval failed or skipped)
- ALLOWLIST: figures are allowed only when they match a verified value
- PERMISSIVE: verified, non-immediate data; no numeric restriction

Contract guarantees:
- A rejected draft is replaced wholesale, never partially redacted
- Replacement text is always a numeric-free safe template
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Optional, Tuple

from stance_backend.app.leakguard.patterns import LeakViolation, find_numeric_leaks
from stance_backend.app.leakguard.templates import build_contextual_safe_response, sanitize_reason
from stance_backend.app.observability.logging import structured_log
from stance_backend.app.verification.freshness import LiveCategory

logger = logging.getLogger(__name__)


class LeakGuardMode(str, Enum):
    FORBID = "forbid"
    ALLOWLIST = "allowlist"
    PERMISSIVE = "permissive"


@dataclass(frozen=True)
class LeakGuardResult:
    passed: bool
    mode: LeakGuardMode
    violations: Tuple[LeakViolation, ...] = field(default_factory=tuple)

    @property
    def safe(self) -> bool:
        return self.passed


@dataclass(frozen=True)
class GuardOutcome:
    text: str
    replaced: bool
    result: LeakGuardResult


def validate(
    text: str,
    allowed_values: Optional[AbstractSet[str]] = None,
    category: Optional[LiveCategory] = None,
) -> LeakGuardResult:
    mode = LeakGuardMode.FORBID if allowed_values is None else LeakGuardMode.ALLOWLIST
    violations = find_numeric_leaks(text, category)
    if mode is LeakGuardMode.ALLOWLIST:
        violations = [v for v in violations if v.canonical is None or v.canonical not in allowed_values]
    return LeakGuardResult(passed=not violations, mode=mode, violations=tuple(violations))


def enforce(
    draft: str,
    *,
    category: Optional[LiveCategory] = None,
    numeric_precision_allowed: bool = False,
    allowed_values: Optional[AbstractSet[str]] = None,
    entity: Optional[str] = None,
    reason: Optional[str] = None,
) -> GuardOutcome:
    if numeric_precision_allowed:
        return GuardOutcome(draft, False, LeakGuardResult(passed=True, mode=LeakGuardMode.PERMISSIVE))

    result = validate(draft, allowed_values=allowed_values, category=category)
    if result.passed:
        return GuardOutcome(draft, False, result)

    structured_log(
        {
            "event": "leak_guard_replaced",
            "mode": result.mode.value,
            "category": category.value if category else None,
            "violation_count": len(result.violations),
            "patterns": sorted({v.pattern for v in result.violations}),
        },
        level=logging.WARNING,
    )
    return GuardOutcome(safe_replacement(category, entity=entity, reason=reason), True, result)


def safe_replacement(
    category: Optional[LiveCategory],
    entity: Optional[str] = None,
    reason: Optional[str] = None,
) -> str:
    body = build_contextual_safe_response(category, entity)
    cleaned = sanitize_reason(reason) if reason else ""
    return f"{cleaned}\n\n{body}" if cleaned else body


__all__ = ["LeakGuardMode", "LeakGuardResult", "GuardOutcome", "validate", "enforce", "safe_replacement"]
