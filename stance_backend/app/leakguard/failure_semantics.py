"""Provider status -> response constraints, per live-data category."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from stance_backend.app.verification.freshness import LiveCategory


class ProviderStatus(str, Enum):
    VERIFIED = "verified"
    STALE = "stale"
    FAILED = "failed"


class ConstraintLevel(str, Enum):
    PERMISSIVE = "permissive"
    QUOTE_EVIDENCE_ONLY = "quote_evidence_only"
    QUALITATIVE_ONLY = "qualitative_only"
    FORBID_NUMERIC_CLAIMS = "forbid_numeric_claims"
    INSUFFICIENT = "insufficient"


class ProceedDecision(str, Enum):
    PROCEED = "proceed"
    PROCEED_DEGRADED = "proceed_degraded"
    REFUSE = "refuse"


_CONSTRAINT_ORDER = [
    ConstraintLevel.PERMISSIVE,
    ConstraintLevel.QUOTE_EVIDENCE_ONLY,
    ConstraintLevel.QUALITATIVE_ONLY,
    ConstraintLevel.FORBID_NUMERIC_CLAIMS,
    ConstraintLevel.INSUFFICIENT,
]

_PROCEED_ORDER = [ProceedDecision.PROCEED, ProceedDecision.PROCEED_DEGRADED, ProceedDecision.REFUSE]


@dataclass(frozen=True)
class FailureSemantics:
    constraint_level: ConstraintLevel
    proceed: ProceedDecision
    numeric_precision_allowed: bool
    triggered_by: Tuple[LiveCategory, ...]

    def is_consistent(self) -> bool:
        refuse = self.proceed is ProceedDecision.REFUSE
        insufficient = self.constraint_level is ConstraintLevel.INSUFFICIENT
        if refuse != insufficient:
            return False
        if self.numeric_precision_allowed and self.constraint_level in (
            ConstraintLevel.FORBID_NUMERIC_CLAIMS,
            ConstraintLevel.INSUFFICIENT,
            ConstraintLevel.QUALITATIVE_ONLY,
        ):
            return False
        return bool(self.triggered_by)


def get_failure_semantics(category: LiveCategory, status: ProviderStatus) -> FailureSemantics:
    category = LiveCategory(category)
    if status is ProviderStatus.VERIFIED:
        return FailureSemantics(ConstraintLevel.QUOTE_EVIDENCE_ONLY, ProceedDecision.PROCEED, True, (category,))
    if category is LiveCategory.TIME:
        # no qualitative substitute exists for a clock reading
        return FailureSemantics(ConstraintLevel.INSUFFICIENT, ProceedDecision.REFUSE, False, (category,))
    if status is ProviderStatus.STALE:
        return FailureSemantics(
            ConstraintLevel.FORBID_NUMERIC_CLAIMS, ProceedDecision.PROCEED_DEGRADED, False, (category,)
        )
    level = ConstraintLevel.QUALITATIVE_ONLY if category is LiveCategory.WEATHER else ConstraintLevel.FORBID_NUMERIC_CLAIMS
    return FailureSemantics(level, ProceedDecision.PROCEED_DEGRADED, False, (category,))


def combine_semantics(items: Iterable[FailureSemantics]) -> Optional[FailureSemantics]:
    """Most restrictive wins on every axis."""
    items = list(items)
    if not items:
        return None
    level = max((s.constraint_level for s in items), key=_CONSTRAINT_ORDER.index)
    proceed = max((s.proceed for s in items), key=_PROCEED_ORDER.index)
    triggered: list = []
    for s in items:
        for cat in s.triggered_by:
            if cat not in triggered:
                triggered.append(cat)
    return FailureSemantics(
        constraint_level=level,
        proceed=proceed,
        numeric_precision_allowed=all(s.numeric_precision_allowed for s in items),
        triggered_by=tuple(triggered),
    )


__all__ = [
    "ProviderStatus",
    "ConstraintLevel",
    "ProceedDecision",
    "FailureSemantics",
    "get_failure_semantics",
    "combine_semantics",
]
