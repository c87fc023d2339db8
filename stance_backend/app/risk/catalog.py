"""Ordered risk trigger tables.

Tiers are evaluated in the order CONTROL, HARD, SOFT; inside a tier the
first matching row wins. Reordering rows changes which reason code is
reported, so append new rows at the end of a tier unless they must shadow
an existing one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from stance_backend.app.contract import InterventionLevel, Stakes


@dataclass(frozen=True)
class RiskTrigger:
    code: str
    pattern: Pattern[str]
    stakes: Stakes


def _rx(expr: str) -> Pattern[str]:
    return re.compile(expr, re.IGNORECASE)


CONTROL_TRIGGERS: Tuple[RiskTrigger, ...] = (
    RiskTrigger(
        "crisis_detected",
        _rx(r"\b(kill myself|suicide|end my life|want to die|hurt myself|self[- ]?harm)\b"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "self_harm_risk",
        _rx(r"\b(suicidal|no reason to live|better off dead)\b"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "external_threat",
        _rx(r"\bi('m|'ve been| am)? being (stalked|followed|threatened|abused)\b"),
        Stakes.CRITICAL,
    ),
)

HARD_TRIGGERS: Tuple[RiskTrigger, ...] = (
    RiskTrigger(
        "weapons_creation",
        _rx(r"\b(make|create|build)\s+(a\s+)?(bomb|explosive|weapon)s?\b"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "child_safety",
        _rx(r"\b(child|minor|underage)\s*(porn|sex|abuse|exploit)"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "legal_boundary",
        _rx(r"\bhow to (murder|kill someone|make a bomb|create poison)\b"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "illegal_access",
        _rx(r"\b(how to)\s+(hack|break into|steal from)\b"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "violence_promotion",
        _rx(r"\b(murder|assassinate|kill)\s+(someone|a person|my)\b"),
        Stakes.CRITICAL,
    ),
)

SOFT_TRIGGERS: Tuple[RiskTrigger, ...] = (
    RiskTrigger(
        "high_financial_risk",
        _rx(r"\b(put|invest)\s+(all|everything|my life savings)\b"),
        Stakes.HIGH,
    ),
    RiskTrigger(
        "high_financial_risk",
        _rx(r"\b(borrow|loan|leverage)\s+(heavily|maximum|everything)\b"),
        Stakes.HIGH,
    ),
    RiskTrigger(
        "health_decision_without_professional",
        _rx(r"\b(stop taking|quit)\s+(my\s+)?(medication|medicine|prescription)s?\b"),
        Stakes.CRITICAL,
    ),
    RiskTrigger(
        "health_decision_without_professional",
        _rx(r"\b(don't need|stopping)\s+(my\s+)?(therapy|treatment|doctor)\b"),
        Stakes.HIGH,
    ),
    RiskTrigger(
        "legal_action_without_counsel",
        _rx(r"\b(sue|file (a\s+)?lawsuit|take legal action)\s+(without|before)\s+(a\s+)?lawyer\b"),
        Stakes.HIGH,
    ),
    RiskTrigger(
        "irreversible_decision",
        _rx(r"\b(quit my job|resign|leave my job)\s+(today|immediately|right now)\b"),
        Stakes.HIGH,
    ),
    RiskTrigger(
        "irreversible_decision",
        _rx(r"\b(divorce|end my marriage|break up)\s+(today|immediately|right now)\b"),
        Stakes.HIGH,
    ),
)


@dataclass(frozen=True)
class EscalationRule:
    """One row of the general-risk escalation table.

    A row applies when every populated condition holds. ``requires_stakes``
    compares against the level produced by earlier rows, so rows are
    applied in order and each may raise the result further.
    """
    code: str
    intervention: InterventionLevel
    stakes: Stakes
    domains: Optional[frozenset] = None
    intent_types: Optional[frozenset] = None
    requires_stakes: Optional[Stakes] = None


# Values are tuned; keep them as data rather than re-deriving thresholds.
GENERAL_RISK_ESCALATION: Tuple[EscalationRule, ...] = (
    EscalationRule(
        code="sensitive_domain",
        intervention=InterventionLevel.NUDGE,
        stakes=Stakes.MEDIUM,
        domains=frozenset({"health", "legal", "finance", "mental_health"}),
    ),
    EscalationRule(
        code="sensitive_action",
        intervention=InterventionLevel.FRICTION,
        stakes=Stakes.HIGH,
        intent_types=frozenset({"action"}),
        requires_stakes=Stakes.MEDIUM,
    ),
)


__all__ = [
    "RiskTrigger",
    "CONTROL_TRIGGERS",
    "HARD_TRIGGERS",
    "SOFT_TRIGGERS",
    "EscalationRule",
    "GENERAL_RISK_ESCALATION",
]
