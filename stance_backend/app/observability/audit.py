"""
Audit records for safety decisions (produce-only, append-only).

The decision pipeline never persists audit data itself. It builds
structure-only records and hands them to an injected sink.

Contract guarantees:
- Every record carries an audit id, category, action, severity and timestamp
- Descriptions are PII-redacted and bounded before leaving this module
- Sinks are append-only: records are never mutated after emission
- A failing sink never breaks the request path
"""

from __future__ import annotations

import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from stance_backend.app.config.redaction import redact_pii, redact_secrets
from stance_backend.app.observability.logging import hash_subject, structured_log


# ============================================================================
# CONSTANTS
# ============================================================================

MAX_DESCRIPTION_LENGTH = 240
AUDIT_ID_PREFIX = "audit_"


# ============================================================================
# ENUMS
# ============================================================================

class AuditCategory(str, Enum):
    """Which stage produced the record."""
    VETO = "veto"
    ACK = "ack"
    VERIFICATION = "verification"
    LEAK_GUARD = "leak_guard"
    PIPELINE = "pipeline"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# ============================================================================
# DATACLASSES
# ============================================================================

@dataclass(frozen=True)
class AuditRecord:
    """Structure-only audit record handed to the audit sink."""
    audit_id: str
    category: AuditCategory
    action: str
    severity: AuditSeverity
    description: str
    timestamp: float
    user_ref: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "audit_id": self.audit_id,
            "category": self.category.value,
            "action": self.action,
            "severity": self.severity.value,
            "user_ref": self.user_ref,
            "description": self.description,
            "timestamp": self.timestamp,
        }


# ============================================================================
# SINKS
# ============================================================================

class AuditSink(ABC):
    """Append-only destination for audit records."""

    @abstractmethod
    def emit(self, record: AuditRecord) -> None:
        pass


class InMemoryAuditSink(AuditSink):
    """Keeps records in process; used by tests and single-process deployments."""

    def __init__(self) -> None:
        self._records: List[AuditRecord] = []
        self._lock = threading.Lock()

    def emit(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> Tuple[AuditRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def by_audit_id(self, audit_id: str) -> Tuple[AuditRecord, ...]:
        return tuple(r for r in self.records() if r.audit_id == audit_id)


class LoggingAuditSink(AuditSink):
    def emit(self, record: AuditRecord) -> None:
        structured_log({"event": "audit_record", **record.as_dict()})


# ============================================================================
# BUILDERS
# ============================================================================

def new_audit_id() -> str:
    return f"{AUDIT_ID_PREFIX}{uuid.uuid4().hex[:8]}"


def sanitize_description(description: str) -> str:
    text = redact_pii(redact_secrets(description or ""))
    return text[:MAX_DESCRIPTION_LENGTH]


def build_audit_record(
    audit_id: str,
    category: AuditCategory,
    action: str,
    severity: AuditSeverity,
    description: str,
    user_id: Optional[str] = None,
    now: Optional[float] = None,
) -> AuditRecord:
    return AuditRecord(
        audit_id=audit_id,
        category=category,
        action=action,
        severity=severity,
        description=sanitize_description(description),
        timestamp=time.time() if now is None else now,
        user_ref=hash_subject("user", user_id) if user_id else None,
    )


def emit_safely(sink: Optional[AuditSink], record: AuditRecord) -> None:
    if sink is None:
        return
    try:
        sink.emit(record)
    except Exception as exc:
        structured_log({"event": "audit_sink_error", "audit_id": record.audit_id, "error": type(exc).__name__})


__all__ = [
    "AuditCategory",
    "AuditSeverity",
    "AuditRecord",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "new_audit_id",
    "sanitize_description",
    "build_audit_record",
    "emit_safely",
]
