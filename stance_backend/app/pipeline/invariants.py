"""
Post-run invariant checks over a DecisionResult.

- hard veto: action stop, no ack token
- control: crisis resources lead the response
- soft veto without override: action await_ack with a pending token
- tokens only accompany soft vetoes
- numeric precision disallowed: no figure outside the verified allowlist

A violation forces the safe fallback in the orchestrator; it is never raised.
"""

from __future__ import annotations

from typing import List

from stance_backend.app.contract import PipelineAction
from stance_backend.app.leakguard.guard import validate
from stance_backend.app.pipeline.result import DecisionResult
from stance_backend.app.veto.crisis import has_crisis_resources, strip_crisis_resources
from stance_backend.app.veto.engine import VetoKind


def check_invariants(result: DecisionResult) -> List[str]:
    violations: List[str] = []
    veto = result.veto_decision

    if veto.kind is VetoKind.HARD:
        if result.action is not PipelineAction.STOP:
            violations.append("hard_veto_not_stopped")
        if result.pending_ack is not None:
            violations.append("hard_veto_issued_ack")

    if veto.kind is VetoKind.CONTROL and not has_crisis_resources(result.response_text):
        violations.append("control_resources_missing")

    if veto.kind is VetoKind.SOFT and not veto.override_applied:
        if result.action is not PipelineAction.AWAIT_ACK or result.pending_ack is None:
            violations.append("soft_veto_not_awaiting_ack")

    if result.pending_ack is not None and veto.kind is not VetoKind.SOFT:
        violations.append("ack_outside_soft_veto")

    plan = result.verification_plan
    if plan is not None and result.response_text and not plan.numeric_precision_allowed:
        body = strip_crisis_resources(result.response_text)
        if not validate(body, allowed_values=plan.allowed_values(), category=plan.category).passed:
            violations.append("numeric_leak")

    return violations


__all__ = ["check_invariants"]
