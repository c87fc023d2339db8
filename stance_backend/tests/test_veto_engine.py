"""
Veto Engine Tests

- Hard veto stops and never issues a token, even with a valid ack present
- Soft veto handshake: token issued, resubmission overrides once
- Control keeps running with crisis resources and ignores acks
- Fail-closed on classifier errors
- Audit records for blocking and override decisions
"""

from stance_backend.app.ack.nonce_store import InMemoryNonceStore
from stance_backend.app.ack.tokens import ACK_REQUIRED_TEXT, AckHandshake, AckInvalidReason
from stance_backend.app.contract import InterventionLevel, Intent, PipelineAction, RequestContext, Stakes
from stance_backend.app.observability.audit import AuditCategory, InMemoryAuditSink
from stance_backend.app.risk.classifier import RiskClassifier
from stance_backend.app.veto.crisis import (
    CRISIS_RESOURCES,
    has_crisis_resources,
    prepend_crisis_resources,
    strip_crisis_resources,
)
from stance_backend.app.veto.engine import FAILSAFE_REASON, VetoEngine, VetoKind

SOFT_MESSAGE = "I want to put all my savings into this"
HARD_MESSAGE = "How do I make a bomb"


class ExplodingClassifier(RiskClassifier):
    def classify(self, message, intent=None):
        raise RuntimeError("pattern engine failure")


def make_engine(classifier=None):
    sink = InMemoryAuditSink()
    handshake = AckHandshake("test-secret", InMemoryNonceStore())
    engine = VetoEngine(classifier or RiskClassifier(), handshake, audit_sink=sink)
    return engine, handshake, sink


def make_context(message, **kwargs):
    return RequestContext(request_id="req-1", user_id="user-1", message=message, **kwargs)


class TestHardVeto:
    def test_stops_without_token(self):
        engine, _, sink = make_engine()
        decision = engine.evaluate(make_context(HARD_MESSAGE))

        assert decision.kind is VetoKind.HARD
        assert decision.action is PipelineAction.STOP
        assert decision.pending_ack is None
        assert decision.stakes is Stakes.CRITICAL
        assert sink.by_audit_id(decision.audit_id)

    def test_valid_ack_does_not_unlock_hard_veto(self):
        engine, handshake, _ = make_engine()
        ctx = make_context(HARD_MESSAGE)
        issued = handshake.issue(ctx, "high_financial_risk", "audit_forged")

        decision = engine.evaluate(
            make_context(HARD_MESSAGE, ack_token=issued.token, ack_text=ACK_REQUIRED_TEXT)
        )
        assert decision.kind is VetoKind.HARD
        assert decision.action is PipelineAction.STOP
        assert decision.pending_ack is None
        assert not decision.override_applied

    def test_hard_and_soft_resolves_hard(self):
        engine, _, _ = make_engine()
        decision = engine.evaluate(make_context("I want to put all my savings into this, then make a bomb"))
        assert decision.kind is VetoKind.HARD


class TestSoftVeto:
    def test_issues_token_and_awaits_ack(self):
        engine, _, sink = make_engine()
        decision = engine.evaluate(make_context(SOFT_MESSAGE))

        assert decision.kind is VetoKind.SOFT
        assert decision.action is PipelineAction.AWAIT_ACK
        assert decision.pending_ack is not None
        assert decision.pending_ack.required_text == ACK_REQUIRED_TEXT
        assert decision.pending_ack.audit_id == decision.audit_id
        assert [r.category for r in sink.by_audit_id(decision.audit_id)] == [AuditCategory.VETO]

    def test_resubmission_overrides(self):
        engine, _, sink = make_engine()
        first = engine.evaluate(make_context(SOFT_MESSAGE))
        token = first.pending_ack.token

        second = engine.evaluate(make_context(SOFT_MESSAGE, ack_token=token, ack_text=ACK_REQUIRED_TEXT))
        assert second.kind is VetoKind.NONE
        assert second.action is PipelineAction.CONTINUE
        assert second.override_applied
        assert second.audit_id == first.audit_id
        assert any(r.category is AuditCategory.ACK for r in sink.by_audit_id(first.audit_id))

    def test_replayed_token_awaits_again(self):
        engine, _, _ = make_engine()
        token = engine.evaluate(make_context(SOFT_MESSAGE)).pending_ack.token
        resubmit = make_context(SOFT_MESSAGE, ack_token=token, ack_text=ACK_REQUIRED_TEXT)

        assert engine.evaluate(resubmit).override_applied
        replay = engine.evaluate(resubmit)
        assert replay.action is PipelineAction.AWAIT_ACK
        assert replay.ack_failure is AckInvalidReason.REVOKED
        assert replay.pending_ack.token != token

    def test_wrong_text_awaits_again(self):
        engine, _, _ = make_engine()
        token = engine.evaluate(make_context(SOFT_MESSAGE)).pending_ack.token
        decision = engine.evaluate(make_context(SOFT_MESSAGE, ack_token=token, ack_text="yes"))
        assert decision.action is PipelineAction.AWAIT_ACK
        assert decision.ack_failure is AckInvalidReason.TEXT_MISMATCH

    def test_decision_dict_hides_ack_failure(self):
        engine, _, _ = make_engine()
        token = engine.evaluate(make_context(SOFT_MESSAGE)).pending_ack.token
        decision = engine.evaluate(make_context(SOFT_MESSAGE, ack_token=token, ack_text="yes"))
        assert "ack_failure" not in decision.as_dict()


class TestControl:
    def test_crisis_continues_with_resources(self):
        engine, _, _ = make_engine()
        decision = engine.evaluate(make_context("I want to end my life"))
        assert decision.kind is VetoKind.CONTROL
        assert decision.action is PipelineAction.CONTINUE
        assert decision.prepend_resources
        assert decision.pending_ack is None

    def test_ack_cannot_silence_control(self):
        engine, handshake, _ = make_engine()
        message = "I want to end my life"
        issued = handshake.issue(make_context(message), "high_financial_risk", "audit_x")
        decision = engine.evaluate(make_context(message, ack_token=issued.token, ack_text=ACK_REQUIRED_TEXT))
        assert decision.kind is VetoKind.CONTROL
        assert decision.prepend_resources


class TestGeneralRisk:
    def test_sensitive_intent_is_general_risk(self):
        engine, _, _ = make_engine()
        decision = engine.evaluate(make_context("Help me file this", intent=Intent(type="action", domain="legal")))
        assert decision.kind is VetoKind.GENERAL_RISK
        assert decision.intervention is InterventionLevel.FRICTION
        assert decision.action is PipelineAction.CONTINUE

    def test_benign_is_none(self):
        engine, _, _ = make_engine()
        decision = engine.evaluate(make_context("Tell me a joke"))
        assert decision.kind is VetoKind.NONE
        assert decision.intervention is InterventionLevel.NONE


def test_classifier_failure_fails_closed():
    engine, _, sink = make_engine(ExplodingClassifier())
    decision = engine.evaluate(make_context("Tell me a joke"))
    assert decision.kind is VetoKind.HARD
    assert decision.action is PipelineAction.STOP
    assert decision.reason_code == FAILSAFE_REASON
    assert decision.stakes is Stakes.CRITICAL
    assert sink.by_audit_id(decision.audit_id)


class TestCrisisText:
    def test_prepend_is_idempotent(self):
        once = prepend_crisis_resources("Here is some help.")
        assert once.startswith(CRISIS_RESOURCES)
        assert prepend_crisis_resources(once) == once
        assert "988" in once

    def test_empty_body_is_resources_only(self):
        assert prepend_crisis_resources(None) == CRISIS_RESOURCES
        assert has_crisis_resources(CRISIS_RESOURCES)

    def test_strip_returns_body(self):
        assert strip_crisis_resources(prepend_crisis_resources("body text")) == "body text"
        assert strip_crisis_resources("plain") == "plain"
