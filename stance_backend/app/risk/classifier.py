"""Risk Classifier: pattern-based tiered detection.

Deterministically labels a message with at most one risk tier. Tiers are
checked CONTROL -> HARD -> SOFT -> GENERAL and the first tier with a match
returns immediately, so two tiers never apply in one evaluation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from stance_backend.app.contract import InterventionLevel, Intent, Stakes, stakes_at_least
from stance_backend.app.observability.audit import new_audit_id
from stance_backend.app.risk.catalog import (
    CONTROL_TRIGGERS,
    GENERAL_RISK_ESCALATION,
    HARD_TRIGGERS,
    SOFT_TRIGGERS,
    EscalationRule,
    RiskTrigger,
)

logger = logging.getLogger(__name__)


class RiskTier(str, Enum):
    CONTROL = "control"
    HARD = "hard"
    SOFT = "soft"
    GENERAL = "general"


class RiskClassificationError(ValueError):
    """Raised when a message cannot be classified."""


@dataclass(frozen=True)
class RiskAssessment:
    tier: RiskTier
    reason_code: Optional[str]
    stakes: Stakes
    intervention: InterventionLevel
    audit_id: str

    @property
    def is_blocking(self) -> bool:
        return self.tier in (RiskTier.HARD, RiskTier.SOFT)


def _first_match(triggers: Iterable[RiskTrigger], message: str) -> Optional[RiskTrigger]:
    for trigger in triggers:
        if trigger.pattern.search(message):
            return trigger
    return None


def _rule_applies(rule: EscalationRule, intent: Intent, current: Stakes) -> bool:
    if rule.domains is not None and intent.domain not in rule.domains:
        return False
    if rule.intent_types is not None and intent.type not in rule.intent_types:
        return False
    if rule.requires_stakes is not None and not stakes_at_least(current, rule.requires_stakes):
        return False
    return True


def assess_general_risk(
    intent: Optional[Intent],
    table: Tuple[EscalationRule, ...] = GENERAL_RISK_ESCALATION,
) -> Tuple[InterventionLevel, Stakes, Optional[str]]:
    """Apply the escalation table to a coarse intent.

    Returns (intervention, stakes, last applied rule code).
    """
    intervention = InterventionLevel.NONE
    stakes = Stakes.LOW
    code: Optional[str] = None
    if intent is None:
        return intervention, stakes, code
    for rule in table:
        if _rule_applies(rule, intent, stakes):
            intervention = rule.intervention
            stakes = rule.stakes
            code = rule.code
    return intervention, stakes, code


class RiskClassifier:
    def __init__(
        self,
        control: Tuple[RiskTrigger, ...] = CONTROL_TRIGGERS,
        hard: Tuple[RiskTrigger, ...] = HARD_TRIGGERS,
        soft: Tuple[RiskTrigger, ...] = SOFT_TRIGGERS,
        escalation: Tuple[EscalationRule, ...] = GENERAL_RISK_ESCALATION,
    ) -> None:
        self._control = control
        self._hard = hard
        self._soft = soft
        self._escalation = escalation

    def classify(self, message: str, intent: Optional[Intent] = None) -> RiskAssessment:
        if not isinstance(message, str):
            raise RiskClassificationError("message must be a string")
        audit_id = new_audit_id()

        trigger = _first_match(self._control, message)
        if trigger is not None:
            return RiskAssessment(RiskTier.CONTROL, trigger.code, trigger.stakes, InterventionLevel.FRICTION, audit_id)

        trigger = _first_match(self._hard, message)
        if trigger is not None:
            return RiskAssessment(RiskTier.HARD, trigger.code, trigger.stakes, InterventionLevel.VETO, audit_id)

        trigger = _first_match(self._soft, message)
        if trigger is not None:
            return RiskAssessment(RiskTier.SOFT, trigger.code, trigger.stakes, InterventionLevel.VETO, audit_id)

        intervention, stakes, code = assess_general_risk(intent, self._escalation)
        return RiskAssessment(RiskTier.GENERAL, code, stakes, intervention, audit_id)


__all__ = [
    "RiskTier",
    "RiskAssessment",
    "RiskClassifier",
    "RiskClassificationError",
    "assess_general_risk",
]
