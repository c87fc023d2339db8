"""Verification Classifier: does this message carry claims that need live data?"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Pattern, Tuple

from stance_backend.app.contract import Intent, Stakes, max_stakes


@dataclass(frozen=True)
class VerificationTrigger:
    code: str
    pattern: Pattern[str]
    stakes: Stakes


VERIFICATION_TRIGGERS: Tuple[VerificationTrigger, ...] = (
    VerificationTrigger(
        "temporal_claim",
        re.compile(r"\b(latest|current|now|today|recent|as of|what time|time is it)\b", re.IGNORECASE),
        Stakes.MEDIUM,
    ),
    VerificationTrigger(
        "health_claim",
        re.compile(r"\b(treatment|diagnosis|medication|symptoms?|cure|therapy|dosage)\b", re.IGNORECASE),
        Stakes.HIGH,
    ),
    VerificationTrigger(
        "legal_claim",
        re.compile(r"\b(law|legal|illegal|statute|regulation|court|liable|penalty)\b", re.IGNORECASE),
        Stakes.HIGH,
    ),
    VerificationTrigger(
        "financial_claim",
        re.compile(
            r"\b(price|cost|worth|value|invest|stock|rate|market cap|trading at|share price|exchange rate)\b",
            re.IGNORECASE,
        ),
        Stakes.HIGH,
    ),
    VerificationTrigger(
        "numeric_claim",
        re.compile(r"(?:\b\d+(?:\.\d+)?%|\$[\d,]+(?:\.\d{2})?\b)"),
        Stakes.MEDIUM,
    ),
    VerificationTrigger(
        "public_figure_claim",
        re.compile(r"\b(said|stated|announced|tweeted|posted)\b.*\b[A-Z][a-z]+\s+[A-Z][a-z]+\b"),
        Stakes.MEDIUM,
    ),
)

# Matches on these codes pin the stakes to HIGH regardless of the table
FORCED_HIGH_CODES = frozenset({"health_claim", "legal_claim", "financial_claim"})

SKIP_INTENT_TYPES = frozenset({"rewrite", "summarize", "translate"})

_CODE_SPAN = re.compile(r"```[\s\S]*?```|`[^`]+`")


@dataclass(frozen=True)
class VerificationNeed:
    required: bool
    reason_codes: Tuple[str, ...] = field(default_factory=tuple)
    stakes: Stakes = Stakes.LOW

    @classmethod
    def not_required(cls) -> "VerificationNeed":
        return cls(required=False, reason_codes=(), stakes=Stakes.LOW)


def is_allowlisted_context(message: str, intent: Optional[Intent]) -> bool:
    if _CODE_SPAN.search(message):
        return True
    if intent is not None:
        if intent.type in SKIP_INTENT_TYPES:
            return True
        if intent.is_hypothetical:
            return True
    return False


def classify(
    message: str,
    intent: Optional[Intent] = None,
    risk_hint: Optional[Stakes] = None,
    triggers: Tuple[VerificationTrigger, ...] = VERIFICATION_TRIGGERS,
) -> VerificationNeed:
    if is_allowlisted_context(message, intent):
        return VerificationNeed.not_required()

    codes = [t.code for t in triggers if t.pattern.search(message)]
    if not codes:
        return VerificationNeed.not_required()

    if FORCED_HIGH_CODES.intersection(codes):
        stakes = Stakes.HIGH
    else:
        stakes = max_stakes(*(t.stakes for t in triggers if t.code in codes), risk_hint)
    return VerificationNeed(required=True, reason_codes=tuple(codes), stakes=stakes)


__all__ = [
    "VerificationTrigger",
    "VERIFICATION_TRIGGERS",
    "FORCED_HIGH_CODES",
    "VerificationNeed",
    "is_allowlisted_context",
    "classify",
]
