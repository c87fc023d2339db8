"""
Pipeline Orchestrator: one request through every safety stage.

Stage order (FIXED):
1. risk        -> RiskAssessment (failure: hard veto)
2. veto        -> stop short-circuits; await_ack suspends
3. verification-> stop short-circuits; degrade constrains generation
4. stance      -> failure: shield
5. generation  -> at most 1 + max_regenerations attempts, each under a timeout
6. leak guard  -> rejected drafts are retried, exhaustion forces the safe template
7. crisis      -> control responses always lead with the crisis resources
8. invariants  -> a violation forces the safe fallback

Contract guarantees:
- Never raises for stage failures; every failure is a safer DecisionResult
- Suspension holds nothing open: the caller resubmits the original request
  with the ack token and ack text
- Internal failure reasons stay in failure_reason; clients see to_public_dict()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Tuple

from stance_backend.app.ack.nonce_store import NonceStore, build_nonce_store
from stance_backend.app.ack.tokens import AckHandshake
from stance_backend.app.config.redaction import safe_error_detail
from stance_backend.app.config.settings import Settings, get_settings
from stance_backend.app.contract import PipelineAction, RequestContext
from stance_backend.app.leakguard.guard import enforce, safe_replacement
from stance_backend.app.observability.audit import (
    AuditCategory,
    AuditSeverity,
    AuditSink,
    build_audit_record,
    emit_safely,
)
from stance_backend.app.observability.logging import configure_logging, structured_log
from stance_backend.app.perf.timeouts import PerfTimeoutError, elapsed_ms, enforce_timeout
from stance_backend.app.pipeline.errors import sanitize_error
from stance_backend.app.pipeline.invariants import check_invariants
from stance_backend.app.pipeline.result import DecisionResult, StageTrace
from stance_backend.app.risk.classifier import RiskClassifier
from stance_backend.app.stance.resolver import Stance, resolve_stance_safely
from stance_backend.app.verification.fetcher import Fetcher, build_fetcher
from stance_backend.app.verification.mediator import (
    FAILED_WARNING,
    MediationOutcome,
    VerificationMediator,
    VerificationPlan,
    degraded_outcome,
)
from stance_backend.app.verification.triggers import VerificationNeed
from stance_backend.app.veto.crisis import prepend_crisis_resources
from stance_backend.app.veto.engine import FAILSAFE_REASON, VetoDecision, VetoEngine, VetoKind, failsafe_decision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    context: RequestContext
    stance: Stance
    veto: VetoDecision
    plan: VerificationPlan
    attempt: int
    rejected_patterns: Tuple[str, ...] = ()


ResponseGenerator = Callable[[GenerationRequest], Awaitable[str]]


@dataclass(frozen=True)
class GenerationOutcome:
    text: str
    attempts: int
    failure_reason: Optional[str]
    fallback_used: bool


class PipelineOrchestrator:
    def __init__(
        self,
        classifier: RiskClassifier,
        veto_engine: VetoEngine,
        mediator: VerificationMediator,
        generator: Optional[ResponseGenerator] = None,
        *,
        max_regenerations: int = 2,
        generation_timeout_ms: int = 15000,
        audit_sink: Optional[AuditSink] = None,
    ) -> None:
        self._classifier = classifier
        self._veto = veto_engine
        self._mediator = mediator
        self._generator = generator
        self._max_regenerations = min(2, max(0, max_regenerations))
        self._generation_timeout_ms = max(1, generation_timeout_ms)
        self._audit = audit_sink

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        generator: Optional[ResponseGenerator] = None,
        fetcher: Optional[Fetcher] = None,
        nonce_store: Optional[NonceStore] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> "PipelineOrchestrator":
        s = settings or get_settings()
        configure_logging(s.log_level)
        classifier = RiskClassifier()
        handshake = AckHandshake.from_settings(s, nonce_store or build_nonce_store(s))
        return cls(
            classifier,
            VetoEngine(classifier, handshake, audit_sink=audit_sink),
            VerificationMediator.from_settings(s, fetcher or build_fetcher(s), audit_sink=audit_sink),
            generator,
            max_regenerations=s.max_regenerations,
            generation_timeout_ms=s.generation_timeout_ms,
            audit_sink=audit_sink,
        )

    async def run(self, context: RequestContext) -> DecisionResult:
        start_ts = time.monotonic()
        trace: List[StageTrace] = []

        def _mark(stage: str, action: str, stage_start: float, detail: Optional[str] = None) -> None:
            trace.append(StageTrace(stage, action, elapsed_ms(stage_start), detail))

        # Risk
        stage_start = time.monotonic()
        try:
            assessment = self._classifier.classify(context.message, context.intent)
        except Exception as exc:
            structured_log(
                {"event": "risk_classifier_failed", "request_id": context.request_id, "error": type(exc).__name__},
                level=logging.ERROR,
            )
            assessment = None
            veto = failsafe_decision()
        _mark("risk", assessment.tier.value if assessment else "failsafe", stage_start)

        # Veto
        stage_start = time.monotonic()
        if assessment is not None:
            veto = self._veto.evaluate(context, assessment)
        _mark("veto", veto.action.value, stage_start, veto.kind.value)

        if veto.action is PipelineAction.STOP:
            reason = FAILSAFE_REASON if veto.reason_code == FAILSAFE_REASON else "hard_veto"
            return self._finish(
                context, start_ts, trace,
                stance=resolve_stance_safely(veto, None, context.intent, context.request_id),
                veto=veto,
                plan=None,
                action=PipelineAction.STOP,
                failure_reason=reason,
                response_text=sanitize_error(reason),
            )

        if veto.action is PipelineAction.AWAIT_ACK:
            reason = "ack_invalid" if veto.ack_failure is not None else "ack_required"
            return self._finish(
                context, start_ts, trace,
                stance=resolve_stance_safely(veto, None, context.intent, context.request_id),
                veto=veto,
                plan=None,
                action=PipelineAction.AWAIT_ACK,
                failure_reason=reason,
                response_text=sanitize_error(reason),
                pending_ack=veto.pending_ack,
            )

        # Verification
        stage_start = time.monotonic()
        need, outcome = await self._verify(context)
        plan = outcome.plan
        _mark("verification", outcome.action.value, stage_start, plan.status.value)

        stance = resolve_stance_safely(veto, need, context.intent, context.request_id)
        trace.append(StageTrace("stance", "continue", 0, stance.value))

        if outcome.action is PipelineAction.STOP:
            return self._finish(
                context, start_ts, trace,
                stance=stance,
                veto=veto,
                plan=plan,
                action=PipelineAction.STOP,
                failure_reason=outcome.failure_reason,
                response_text=plan.refusal_text or sanitize_error(outcome.failure_reason),
                user_options=outcome.user_options,
            )

        action = PipelineAction.DEGRADE if outcome.action is PipelineAction.DEGRADE else PipelineAction.CONTINUE
        failure_reason = outcome.failure_reason
        response_text: Optional[str] = None
        regenerations = 0

        # Generation + Leak Guard
        if self._generator is not None:
            stage_start = time.monotonic()
            generated = await self._generate(context, stance, veto, plan)
            regenerations = max(0, generated.attempts - 1)
            response_text = generated.text
            if generated.fallback_used:
                action = PipelineAction.DEGRADE
                failure_reason = generated.failure_reason
            _mark(
                "generation",
                "fallback" if generated.fallback_used else "continue",
                stage_start,
                f"attempts={generated.attempts}",
            )

        return self._finish(
            context, start_ts, trace,
            stance=stance,
            veto=veto,
            plan=plan,
            action=action,
            failure_reason=failure_reason,
            response_text=response_text,
            regenerations=regenerations,
        )

    async def _verify(self, context: RequestContext) -> Tuple[Optional[VerificationNeed], MediationOutcome]:
        try:
            need = self._mediator.classify(context.message, context.intent, context.risk_hint)
        except Exception as exc:
            structured_log(
                {"event": "verification_classifier_failed", "request_id": context.request_id, "error": type(exc).__name__},
                level=logging.ERROR,
            )
            return None, degraded_outcome(FAILED_WARNING, "verification_error")
        try:
            return need, await self._mediator.resolve(need, context.message)
        except Exception as exc:
            structured_log(
                {"event": "verification_mediator_failed", "request_id": context.request_id, "error": type(exc).__name__},
                level=logging.ERROR,
            )
            return need, degraded_outcome(FAILED_WARNING, "verification_error")

    async def _generate(
        self,
        context: RequestContext,
        stance: Stance,
        veto: VetoDecision,
        plan: VerificationPlan,
    ) -> GenerationOutcome:
        max_attempts = 1 + self._max_regenerations
        attempts = 0
        last_failure: Optional[str] = None
        rejected: Tuple[str, ...] = ()

        for attempt_idx in range(max_attempts):
            attempts = attempt_idx + 1
            request = GenerationRequest(context, stance, veto, plan, attempt_idx, rejected)
            try:
                draft = await enforce_timeout(
                    lambda: self._generator(request), self._generation_timeout_ms, stage="generation"
                )
            except PerfTimeoutError:
                last_failure = "generation_timeout"
                continue
            except Exception as exc:
                structured_log(
                    {
                        "event": "generation_failed",
                        "request_id": context.request_id,
                        "attempt": attempts,
                        "error": type(exc).__name__,
                        "detail": safe_error_detail(exc),
                    },
                    level=logging.WARNING,
                )
                last_failure = "generation_failed"
                continue

            if not isinstance(draft, str) or not draft.strip():
                last_failure = "generation_empty"
                continue

            guarded = enforce(
                draft,
                category=plan.category,
                numeric_precision_allowed=plan.numeric_precision_allowed,
                allowed_values=plan.allowed_values(),
                reason=plan.freshness_warning,
            )
            if not guarded.replaced:
                return GenerationOutcome(draft.strip(), attempts, None, False)
            last_failure = "leak_guard_rejected"
            rejected = tuple(sorted({v.pattern for v in guarded.result.violations}))

        structured_log(
            {
                "event": "regeneration_exhausted",
                "request_id": context.request_id,
                "attempts": attempts,
                "last_failure": last_failure,
            },
            level=logging.WARNING,
        )
        fallback = safe_replacement(plan.category, reason=plan.freshness_warning)
        return GenerationOutcome(fallback, attempts, last_failure, True)

    def _finish(
        self,
        context: RequestContext,
        start_ts: float,
        trace: List[StageTrace],
        *,
        stance: Stance,
        veto: VetoDecision,
        plan: Optional[VerificationPlan],
        action: PipelineAction,
        failure_reason: Optional[str],
        response_text: Optional[str],
        user_options=(),
        pending_ack=None,
        regenerations: int = 0,
    ) -> DecisionResult:
        if veto.kind is VetoKind.CONTROL:
            response_text = prepend_crisis_resources(response_text)

        result = DecisionResult(
            request_id=context.request_id,
            stance=stance,
            veto_decision=veto,
            verification_plan=plan,
            action=action,
            failure_reason=failure_reason,
            response_text=response_text,
            user_options=tuple(user_options),
            pending_ack=pending_ack,
            regenerations=regenerations,
            stage_trace=tuple(trace),
        )

        violations = check_invariants(result)
        if violations:
            result = self._force_fallback(result, violations)

        result = replace(result, execution_time_ms=elapsed_ms(start_ts))
        structured_log(
            {
                "event": "pipeline_decision",
                "request_id": result.request_id,
                "user_id": context.user_id,
                "stance": result.stance.value,
                "veto_kind": veto.kind.value,
                "action": result.action.value,
                "verification_status": plan.status.value if plan else None,
                "failure_reason": result.failure_reason,
                "regenerations": result.regenerations,
                "execution_time_ms": result.execution_time_ms,
            }
        )
        return result

    def _force_fallback(self, result: DecisionResult, violations: List[str]) -> DecisionResult:
        veto = result.veto_decision
        structured_log(
            {"event": "invariant_violation", "request_id": result.request_id, "violations": violations},
            level=logging.ERROR,
        )
        emit_safely(
            self._audit,
            build_audit_record(
                audit_id=veto.audit_id,
                category=AuditCategory.PIPELINE,
                action="fallback",
                severity=AuditSeverity.CRITICAL,
                description="invariant violation: " + ", ".join(violations),
            ),
        )
        plan = result.verification_plan
        text = safe_replacement(plan.category if plan else None)
        if veto.kind is VetoKind.CONTROL:
            text = prepend_crisis_resources(text)

        if veto.kind is VetoKind.HARD:
            action = PipelineAction.STOP
        elif veto.kind is VetoKind.SOFT and not veto.override_applied and veto.pending_ack is not None:
            action = PipelineAction.AWAIT_ACK
        elif result.action is PipelineAction.STOP:
            action = PipelineAction.STOP
        else:
            action = PipelineAction.DEGRADE

        return replace(
            result,
            action=action,
            failure_reason="invariant_violation",
            response_text=text,
            pending_ack=veto.pending_ack if action is PipelineAction.AWAIT_ACK else None,
        )


__all__ = ["GenerationRequest", "GenerationOutcome", "ResponseGenerator", "PipelineOrchestrator"]
