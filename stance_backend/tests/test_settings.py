"""
Settings and observability tests.

- Env-driven settings with clamped limits
- Prod validation flags weak secrets and a missing nonce store
- Log events and audit records never carry raw request material
"""

import json
import logging

import pytest

from stance_backend.app.config.redaction import redact_pii, redact_secrets, safe_error_detail
from stance_backend.app.config.settings import (
    DEFAULT_ACK_SECRET,
    Settings,
    get_settings,
    settings_public_summary,
    validate_for_env,
)
from stance_backend.app.observability.audit import (
    AuditCategory,
    AuditSeverity,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    build_audit_record,
    emit_safely,
)
from stance_backend.app.observability.logging import configure_logging, hash_subject, safe_redact, structured_log

ENV_KEYS = (
    "APP_ENV",
    "LOG_LEVEL",
    "IDENTITY_HASH_SALT",
    "ACK_TOKEN_SECRET",
    "REDIS_URL",
    "MAX_REGENERATIONS",
    "VERIFICATION_MAX_SOURCES",
    "VERIFICATION_TIMEOUT_MS",
    "FETCHER_BASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self, clean_env):
        s = Settings()
        assert s.app_env == "dev"
        assert s.ack_token_ttl_seconds == 900
        assert s.max_regenerations == 2
        assert s.verification_max_sources == 5
        assert s.redis_url is None

    def test_clamps(self, clean_env):
        clean_env.setenv("MAX_REGENERATIONS", "9")
        clean_env.setenv("VERIFICATION_MAX_SOURCES", "0")
        clean_env.setenv("VERIFICATION_TIMEOUT_MS", "-5")
        s = Settings()
        assert s.max_regenerations == 2
        assert s.verification_max_sources == 1
        assert s.verification_timeout_ms == 0

    def test_blank_urls_are_none(self, clean_env):
        clean_env.setenv("REDIS_URL", "   ")
        clean_env.setenv("FETCHER_BASE_URL", "")
        s = Settings()
        assert s.redis_url is None
        assert s.fetcher_base_url is None

    def test_get_settings_is_cached(self, clean_env):
        assert get_settings() is get_settings()

    def test_prod_issues(self, clean_env):
        clean_env.setenv("APP_ENV", "PROD")
        summary = validate_for_env(Settings())
        assert summary["env"] == "prod"
        assert "ACK_TOKEN_SECRET must be set in prod" in summary["issues"]
        assert any("REDIS_URL" in issue for issue in summary["issues"])

    def test_prod_clean(self, clean_env):
        clean_env.setenv("APP_ENV", "prod")
        clean_env.setenv("ACK_TOKEN_SECRET", "s" * 48)
        clean_env.setenv("REDIS_URL", "redis://localhost:6379/0")
        summary = validate_for_env(Settings())
        assert summary["issues"] == []
        assert summary["nonce_store"] == "redis"

    def test_public_summary_has_no_secrets(self, clean_env):
        summary = settings_public_summary(Settings())
        assert DEFAULT_ACK_SECRET not in json.dumps(summary)


class TestRedaction:
    def test_pii(self):
        text = redact_pii("mail jane@example.com or call 555-123-4567, ssn 123-45-6789")
        assert "jane@example.com" not in text
        assert "[EMAIL_REDACTED]" in text
        assert "[PHONE_REDACTED]" in text
        assert "[SSN_REDACTED]" in text

    def test_secrets(self):
        assert "sk-abcdef123456" not in redact_secrets("key sk-abcdef123456")
        assert redact_secrets("Authorization: Bearer abc.def") == "Authorization: Bearer [redacted]"

    def test_error_detail_bounded(self):
        detail = safe_error_detail(RuntimeError("user jane@example.com " + "x" * 500))
        assert "jane@example.com" not in detail
        assert len(detail) == 200


class TestLogging:
    def test_safe_redact(self):
        event = safe_redact({"event": "x", "message": "secret", "ack_token": "t", "user_id": "user-1"})
        assert "message" not in event
        assert "ack_token" not in event
        assert "user_id" not in event
        assert event["user_hash"] == hash_subject("user", "user-1")

    def test_structured_log_emits_json(self, caplog):
        with caplog.at_level(logging.INFO, logger="stance_backend.app.observability.logging"):
            structured_log({"event": "redaction_check", "message": "raw text", "request_id": "req-1"})
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload == {"event": "redaction_check", "request_id": "req-1"}


class RaisingSink(AuditSink):
    def emit(self, record):
        raise RuntimeError("sink down")


class TestAudit:
    def test_record_is_redacted(self):
        record = build_audit_record(
            audit_id="audit_1",
            category=AuditCategory.VETO,
            action="stop",
            severity=AuditSeverity.CRITICAL,
            description="blocked request from jane@example.com",
            user_id="user-1",
            now=100.0,
        )
        assert "jane@example.com" not in record.description
        assert record.user_ref == hash_subject("user", "user-1")
        assert record.as_dict()["timestamp"] == 100.0

    def test_description_bounded(self):
        record = build_audit_record("audit_2", AuditCategory.PIPELINE, "fallback", AuditSeverity.INFO, "x" * 1000)
        assert len(record.description) == 240

    def test_emit_safely_swallows_sink_errors(self):
        record = build_audit_record("audit_3", AuditCategory.ACK, "continue", AuditSeverity.WARNING, "override")
        emit_safely(RaisingSink(), record)
        emit_safely(None, record)

    def test_in_memory_sink(self):
        sink = InMemoryAuditSink()
        record = build_audit_record("audit_4", AuditCategory.VERIFICATION, "stop", AuditSeverity.WARNING, "blocked")
        emit_safely(sink, record)
        assert sink.by_audit_id("audit_4") == (record,)

    def test_logging_sink(self, caplog):
        record = build_audit_record("audit_5", AuditCategory.VETO, "stop", AuditSeverity.CRITICAL, "hard veto")
        with caplog.at_level(logging.INFO, logger="stance_backend.app.observability.logging"):
            emit_safely(LoggingAuditSink(), record)
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["event"] == "audit_record"
        assert payload["audit_id"] == "audit_5"


def test_configure_logging_sets_package_level(clean_env):
    package_logger = logging.getLogger("stance_backend")
    previous = package_logger.level
    try:
        configure_logging("warning")
        assert package_logger.level == logging.WARNING
        clean_env.setenv("LOG_LEVEL", "DEBUG")
        get_settings.cache_clear()
        configure_logging()
        assert package_logger.level == logging.DEBUG
    finally:
        package_logger.setLevel(previous)


def test_hash_salt_from_settings(clean_env):
    first = hash_subject("user", "user-1")
    clean_env.setenv("IDENTITY_HASH_SALT", "another-salt")
    get_settings.cache_clear()
    assert hash_subject("user", "user-1") != first
