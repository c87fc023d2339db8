"""
Ack Handshake Tests

- Issue / validate happy path
- Single use: replay rejected, concurrent submissions consume once
- Expiry with clock skew, signature tampering, context binding, exact text
- Nonce store semantics (memory and redis-backed), expired nonces swept
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from stance_backend.app.ack.nonce_store import InMemoryNonceStore, RedisNonceStore, nonce_key
from stance_backend.app.ack.tokens import (
    ACK_INVALID_MESSAGE,
    ACK_REQUIRED_TEXT,
    AckHandshake,
    AckInvalidReason,
    context_fingerprint,
)
from stance_backend.app.contract import RequestContext

MESSAGE = "I want to put all my savings into this"


class FakeClock:
    def __init__(self, start=1_800_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeRedis:
    """Minimal redis client double honouring SET NX."""

    def __init__(self):
        self.data = {}
        self.lock = threading.Lock()

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, nx=False, ex=None):
        with self.lock:
            if nx and key in self.data:
                return None
            self.data[key] = value
            return True

    def exists(self, key):
        return 1 if key in self.data else 0


def make_context(message=MESSAGE, user_id="user-1", session_id=None, request_id="req-1"):
    return RequestContext(request_id=request_id, user_id=user_id, message=message, session_id=session_id)


def make_handshake(clock=None, store=None, secret="test-secret"):
    return AckHandshake(secret, store or InMemoryNonceStore(), clock=clock or FakeClock())


class TestIssueAndValidate:
    def test_valid_submission_accepted(self):
        handshake = make_handshake()
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_abc12345")

        assert issued.required_text == ACK_REQUIRED_TEXT
        assert issued.audit_id == "audit_abc12345"
        assert issued.token.startswith("1.")
        assert issued.token.count(".") == 2

        result = handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT)
        assert result.valid
        assert result.reason is None
        assert result.payload.reason == "high_financial_risk"
        assert result.public_message is None

    def test_descriptor_shape(self):
        issued = make_handshake().issue(make_context(), "high_financial_risk", "audit_x")
        descriptor = issued.as_dict()
        assert set(descriptor) == {"ack_token", "required_text", "expires_at", "audit_id"}
        assert descriptor["expires_at"].endswith("+00:00")

    def test_resubmission_creates_new_request_id(self):
        handshake = make_handshake()
        issued = handshake.issue(make_context(request_id="req-1"), "high_financial_risk", "audit_x")
        result = handshake.validate(issued.token, make_context(request_id="req-2"), ACK_REQUIRED_TEXT)
        assert result.valid


class TestSingleUse:
    def test_replay_rejected(self):
        handshake = make_handshake()
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        first = handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT)
        second = handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT)

        assert first.valid
        assert not second.valid
        assert second.reason is AckInvalidReason.REVOKED

    def test_concurrent_submissions_consume_once(self):
        handshake = make_handshake()
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT), range(16)))

        assert sum(1 for r in results if r.valid) == 1
        assert all(r.reason is AckInvalidReason.REVOKED for r in results if not r.valid)

    def test_wrong_text_does_not_spend_token(self):
        handshake = make_handshake()
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        wrong = handshake.validate(issued.token, ctx, "i understand the risks and want to proceed")
        assert wrong.reason is AckInvalidReason.TEXT_MISMATCH
        assert handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT).valid

    def test_redis_store_consumes_once(self):
        store = RedisNonceStore(FakeRedis())
        handshake = make_handshake(store=store)
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        assert handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT).valid
        assert handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT).reason is AckInvalidReason.REVOKED


class TestRejections:
    def test_expired(self):
        clock = FakeClock()
        handshake = make_handshake(clock=clock)
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        clock.advance(900 + 31)
        result = handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT)
        assert result.reason is AckInvalidReason.EXPIRED
        assert result.public_message == ACK_INVALID_MESSAGE

    def test_within_clock_skew_still_valid(self):
        clock = FakeClock()
        handshake = make_handshake(clock=clock)
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        clock.advance(900 + 10)
        assert handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT).valid

    def test_issued_in_future_is_malformed(self):
        clock = FakeClock()
        handshake = make_handshake(clock=clock)
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")

        clock.advance(-120)
        assert handshake.validate(issued.token, ctx, ACK_REQUIRED_TEXT).reason is AckInvalidReason.MALFORMED

    def test_other_secret_fails_signature(self):
        ctx = make_context()
        issued = make_handshake(secret="one").issue(ctx, "high_financial_risk", "audit_x")
        result = make_handshake(secret="two").validate(issued.token, ctx, ACK_REQUIRED_TEXT)
        assert result.reason is AckInvalidReason.SIGNATURE_MISMATCH

    def test_tampered_payload_fails_signature(self):
        handshake = make_handshake()
        ctx = make_context()
        version, _, sig = handshake.issue(ctx, "high_financial_risk", "audit_x").token.split(".")
        _, other_payload, _ = handshake.issue(make_context(user_id="user-2"), "high_financial_risk", "audit_y").token.split(".")
        tampered = f"{version}.{other_payload}.{sig}"
        assert handshake.validate(tampered, ctx, ACK_REQUIRED_TEXT).reason is AckInvalidReason.SIGNATURE_MISMATCH

    @pytest.mark.parametrize("token", ["", "garbage", "2.abc.def", "1.abc", "1..."])
    def test_malformed(self, token):
        result = make_handshake().validate(token, make_context(), ACK_REQUIRED_TEXT)
        assert not result.valid
        assert result.reason in (AckInvalidReason.MALFORMED, AckInvalidReason.SIGNATURE_MISMATCH)

    def test_different_message_is_context_mismatch(self):
        handshake = make_handshake()
        issued = handshake.issue(make_context(), "high_financial_risk", "audit_x")
        other = make_context(message="I want to put all my savings into crypto")
        assert handshake.validate(issued.token, other, ACK_REQUIRED_TEXT).reason is AckInvalidReason.CONTEXT_MISMATCH

    def test_different_user_is_context_mismatch(self):
        handshake = make_handshake()
        issued = handshake.issue(make_context(), "high_financial_risk", "audit_x")
        other = make_context(user_id="user-2")
        assert handshake.validate(issued.token, other, ACK_REQUIRED_TEXT).reason is AckInvalidReason.CONTEXT_MISMATCH

    @pytest.mark.parametrize("text", [None, "", "ok", ACK_REQUIRED_TEXT + " ", " " + ACK_REQUIRED_TEXT])
    def test_text_must_match_exactly(self, text):
        handshake = make_handshake()
        ctx = make_context()
        issued = handshake.issue(ctx, "high_financial_risk", "audit_x")
        assert handshake.validate(issued.token, ctx, text).reason is AckInvalidReason.TEXT_MISMATCH


def test_fingerprint_binds_session():
    assert context_fingerprint(make_context(session_id="a")) != context_fingerprint(make_context(session_id="b"))
    assert context_fingerprint(make_context()) == context_fingerprint(make_context(request_id="other"))


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        AckHandshake("", InMemoryNonceStore())


def test_memory_store_ttl_and_consume():
    clock = FakeClock(0.0)
    store = InMemoryNonceStore(clock=clock)
    key = nonce_key("n1")

    assert store.consume(key, 10)
    assert not store.consume(key, 10)
    assert store.exists(key)

    clock.advance(11)
    assert not store.exists(key)
    assert store.consume(key, 10)


def test_memory_store_sweeps_expired_nonces():
    clock = FakeClock(0.0)
    store = InMemoryNonceStore(clock=clock, sweep_interval_seconds=60)
    for i in range(100):
        assert store.consume(nonce_key(f"n{i}"), 10)
    assert len(store._entries) == 100

    clock.advance(30)
    store.consume(nonce_key("early"), 100)
    assert len(store._entries) == 101

    clock.advance(31)
    store.set(nonce_key("late"), "1", 10)
    assert set(store._entries) == {nonce_key("early"), nonce_key("late")}


def test_memory_store_stays_bounded_under_steady_traffic():
    clock = FakeClock(0.0)
    store = InMemoryNonceStore(clock=clock, sweep_interval_seconds=5)
    for i in range(1000):
        store.consume(nonce_key(f"n{i}"), 10)
        clock.advance(1)
    assert len(store._entries) <= 16
