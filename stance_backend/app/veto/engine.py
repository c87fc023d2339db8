"""
Veto Engine: crisis / hard / soft / general-risk policy.

Evaluation order (FIXED, first applicable branch wins):
1. ack token + ack text present and valid -> NONE with override applied
   (control and hard tiers are still honoured after the token is spent)
2. control trigger -> CONTROL, continue, crisis resources prepended
3. hard trigger -> HARD, stop, no token issued
4. soft trigger -> SOFT, await_ack, fresh token issued
5. otherwise general risk from intent -> GENERAL_RISK or NONE, continue

Contract guarantees:
- Fail-closed: any exception -> HARD, stakes critical, stop
- An invalid ack is never an error; evaluation simply falls through
- Every blocking or override decision produces an audit record
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from stance_backend.app.ack.tokens import AckHandshake, AckInvalidReason, IssuedAck
from stance_backend.app.contract import InterventionLevel, PipelineAction, RequestContext, Stakes
from stance_backend.app.observability.audit import (
    AuditCategory,
    AuditSeverity,
    AuditSink,
    build_audit_record,
    emit_safely,
    new_audit_id,
)
from stance_backend.app.observability.logging import structured_log
from stance_backend.app.risk.classifier import RiskAssessment, RiskClassifier, RiskTier

logger = logging.getLogger(__name__)

FAILSAFE_REASON = "veto_engine_failure"


class VetoKind(str, Enum):
    NONE = "none"
    CONTROL = "control"
    HARD = "hard"
    SOFT = "soft"
    GENERAL_RISK = "general_risk"


@dataclass(frozen=True)
class VetoDecision:
    kind: VetoKind
    action: PipelineAction
    reason_code: Optional[str]
    stakes: Stakes
    intervention: InterventionLevel
    audit_id: str
    pending_ack: Optional[IssuedAck] = None
    override_applied: bool = False
    prepend_resources: bool = False
    # internal only, never rendered to the user
    ack_failure: Optional[AckInvalidReason] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action.value,
            "reason_code": self.reason_code,
            "stakes": self.stakes.value,
            "intervention": self.intervention.value,
            "audit_id": self.audit_id,
            "pending_ack": self.pending_ack.as_dict() if self.pending_ack else None,
            "override_applied": self.override_applied,
            "prepend_resources": self.prepend_resources,
        }


def failsafe_decision(audit_id: Optional[str] = None) -> VetoDecision:
    return VetoDecision(
        kind=VetoKind.HARD,
        action=PipelineAction.STOP,
        reason_code=FAILSAFE_REASON,
        stakes=Stakes.CRITICAL,
        intervention=InterventionLevel.VETO,
        audit_id=audit_id or new_audit_id(),
    )


class VetoEngine:
    def __init__(
        self,
        classifier: RiskClassifier,
        handshake: AckHandshake,
        audit_sink: Optional[AuditSink] = None,
    ) -> None:
        self._classifier = classifier
        self._handshake = handshake
        self._audit = audit_sink

    def evaluate(self, context: RequestContext, assessment: Optional[RiskAssessment] = None) -> VetoDecision:
        try:
            decision = self._evaluate(context, assessment)
        except Exception as exc:
            decision = failsafe_decision()
            structured_log(
                {
                    "event": "veto_failsafe",
                    "request_id": context.request_id,
                    "audit_id": decision.audit_id,
                    "error": type(exc).__name__,
                },
                level=logging.ERROR,
            )
            self._record(decision, context, "veto engine failure, failed closed")
            return decision
        structured_log(
            {
                "event": "veto_decision",
                "request_id": context.request_id,
                "kind": decision.kind.value,
                "action": decision.action.value,
                "reason_code": decision.reason_code,
                "stakes": decision.stakes.value,
                "audit_id": decision.audit_id,
                "override_applied": decision.override_applied,
                "ack_failure": decision.ack_failure.value if decision.ack_failure else None,
            }
        )
        return decision

    def _evaluate(self, context: RequestContext, assessment: Optional[RiskAssessment]) -> VetoDecision:
        if assessment is None:
            assessment = self._classifier.classify(context.message, context.intent)

        ack_failure: Optional[AckInvalidReason] = None
        if context.has_ack:
            validation = self._handshake.validate(context.ack_token or "", context, context.ack_text)
            if validation.valid:
                if assessment.tier in (RiskTier.CONTROL, RiskTier.HARD):
                    structured_log(
                        {
                            "event": "ack_not_applicable",
                            "request_id": context.request_id,
                            "tier": assessment.tier.value,
                            "audit_id": assessment.audit_id,
                        },
                        level=logging.WARNING,
                    )
                else:
                    audit_id = validation.payload.audit_id if validation.payload else assessment.audit_id
                    decision = VetoDecision(
                        kind=VetoKind.NONE,
                        action=PipelineAction.CONTINUE,
                        reason_code=validation.payload.reason if validation.payload else assessment.reason_code,
                        stakes=assessment.stakes,
                        intervention=InterventionLevel.NONE,
                        audit_id=audit_id,
                        override_applied=True,
                    )
                    self._record(decision, context, "soft veto overridden by user acknowledgment")
                    return decision
            else:
                ack_failure = validation.reason

        if assessment.tier is RiskTier.CONTROL:
            decision = VetoDecision(
                kind=VetoKind.CONTROL,
                action=PipelineAction.CONTINUE,
                reason_code=assessment.reason_code,
                stakes=assessment.stakes,
                intervention=assessment.intervention,
                audit_id=assessment.audit_id,
                prepend_resources=True,
                ack_failure=ack_failure,
            )
            self._record(decision, context, f"control trigger: {assessment.reason_code}")
            return decision

        if assessment.tier is RiskTier.HARD:
            decision = VetoDecision(
                kind=VetoKind.HARD,
                action=PipelineAction.STOP,
                reason_code=assessment.reason_code,
                stakes=assessment.stakes,
                intervention=InterventionLevel.VETO,
                audit_id=assessment.audit_id,
                ack_failure=ack_failure,
            )
            self._record(decision, context, f"hard veto: {assessment.reason_code}")
            return decision

        if assessment.tier is RiskTier.SOFT:
            issued = self._handshake.issue(context, assessment.reason_code or "soft_veto", assessment.audit_id)
            decision = VetoDecision(
                kind=VetoKind.SOFT,
                action=PipelineAction.AWAIT_ACK,
                reason_code=assessment.reason_code,
                stakes=assessment.stakes,
                intervention=InterventionLevel.VETO,
                audit_id=assessment.audit_id,
                pending_ack=issued,
                ack_failure=ack_failure,
            )
            self._record(decision, context, f"soft veto pending acknowledgment: {assessment.reason_code}")
            return decision

        kind = VetoKind.NONE if assessment.intervention is InterventionLevel.NONE else VetoKind.GENERAL_RISK
        return VetoDecision(
            kind=kind,
            action=PipelineAction.CONTINUE,
            reason_code=assessment.reason_code,
            stakes=assessment.stakes,
            intervention=assessment.intervention,
            audit_id=assessment.audit_id,
            ack_failure=ack_failure,
        )

    def _record(self, decision: VetoDecision, context: RequestContext, description: str) -> None:
        severity = AuditSeverity.CRITICAL if decision.kind in (VetoKind.HARD, VetoKind.CONTROL) else AuditSeverity.WARNING
        category = AuditCategory.ACK if decision.override_applied else AuditCategory.VETO
        emit_safely(
            self._audit,
            build_audit_record(
                audit_id=decision.audit_id,
                category=category,
                action=decision.action.value,
                severity=severity,
                description=description,
                user_id=context.user_id,
            ),
        )


__all__ = ["VetoKind", "VetoDecision", "VetoEngine", "failsafe_decision", "FAILSAFE_REASON"]
