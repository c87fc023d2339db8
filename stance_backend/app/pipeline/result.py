from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from stance_backend.app.ack.tokens import IssuedAck
from stance_backend.app.contract import PipelineAction
from stance_backend.app.pipeline.errors import failure_code, sanitize_error
from stance_backend.app.stance.resolver import Stance
from stance_backend.app.verification.mediator import UserOption, VerificationPlan
from stance_backend.app.veto.engine import VetoDecision


@dataclass(frozen=True)
class StageTrace:
    stage: str
    action: str
    elapsed_ms: int
    detail: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "action": self.action, "elapsed_ms": self.elapsed_ms, "detail": self.detail}


@dataclass(frozen=True)
class DecisionResult:
    request_id: str
    stance: Stance
    veto_decision: VetoDecision
    verification_plan: Optional[VerificationPlan]
    action: PipelineAction
    failure_reason: Optional[str] = None
    execution_time_ms: int = 0
    response_text: Optional[str] = None
    user_options: Tuple[UserOption, ...] = field(default_factory=tuple)
    pending_ack: Optional[IssuedAck] = None
    regenerations: int = 0
    stage_trace: Tuple[StageTrace, ...] = field(default_factory=tuple)

    def as_dict(self) -> Dict[str, Any]:
        """Internal view, including raw failure reasons."""
        return {
            "request_id": self.request_id,
            "stance": self.stance.value,
            "veto_decision": self.veto_decision.as_dict(),
            "verification_plan": self.verification_plan.as_dict() if self.verification_plan else None,
            "action": self.action.value,
            "failure_reason": self.failure_reason,
            "execution_time_ms": self.execution_time_ms,
            "regenerations": self.regenerations,
            "stage_trace": [t.as_dict() for t in self.stage_trace],
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Client view: failure reasons are mapped to safe messages."""
        veto = self.veto_decision
        return {
            "request_id": self.request_id,
            "stance": self.stance.value,
            "action": self.action.value,
            "veto": {
                "kind": veto.kind.value,
                "stakes": veto.stakes.value,
                "intervention": veto.intervention.value,
                "audit_id": veto.audit_id,
            },
            "verification": self.verification_plan.as_dict() if self.verification_plan else None,
            "response_text": self.response_text,
            "failure_code": failure_code(self.failure_reason),
            "message": sanitize_error(self.failure_reason),
            "user_options": [o.as_dict() for o in self.user_options],
            "pending_ack": self.pending_ack.as_dict() if self.pending_ack else None,
            "execution_time_ms": self.execution_time_ms,
        }


__all__ = ["StageTrace", "DecisionResult"]
