from .logging import configure_logging, hash_subject, safe_redact, structured_log
from .audit import (
    AuditCategory,
    AuditRecord,
    AuditSeverity,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    build_audit_record,
    emit_safely,
    new_audit_id,
)

__all__ = [
    "configure_logging",
    "hash_subject",
    "safe_redact",
    "structured_log",
    "AuditCategory",
    "AuditRecord",
    "AuditSeverity",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "build_audit_record",
    "emit_safely",
    "new_audit_id",
]
