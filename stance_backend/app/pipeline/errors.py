"""Client-safe messages per failure code. Internal reasons never reach the user."""

from __future__ import annotations

from typing import Dict, Optional

from stance_backend.app.ack.tokens import ACK_INVALID_MESSAGE
from stance_backend.app.leakguard.templates import INVALID_STATE_RESPONSE

GENERIC_ERROR_MESSAGE = "Something went wrong while handling your request. Please try again."

ERROR_MESSAGES: Dict[str, str] = {
    "hard_veto": "I can't help with this request.",
    "veto_engine_failure": "I can't help with this request right now.",
    "ack_required": (
        "This request carries significant risk. Please review the warning and confirm "
        "by typing the acknowledgment text exactly as shown to continue."
    ),
    "ack_invalid": ACK_INVALID_MESSAGE,
    "verification_unavailable_high_stakes": (
        "I can't verify this against current sources right now, and the stakes are too high "
        "to answer without verification. You can enable live data, provide a source, or stop here."
    ),
    "verification_unavailable": "I couldn't verify this against current sources, so treat the answer with caution.",
    "verification_partial": "Some of this could not be verified against current sources.",
    "verification_stale": "The available data may be out of date.",
    "verification_timeout": "Verification took too long, so treat the answer with caution.",
    "verification_error": "Verification failed, so treat the answer with caution.",
    "invalid_timezone": "I couldn't determine the timezone for your question.",
    "time_source_unavailable": "The time service is unavailable right now.",
    "time_source_timeout": "The time service is unavailable right now.",
    "time_source_error": "The time service is unavailable right now.",
    "time_batch_failed": "The time service is unavailable right now.",
    "generation_timeout": "The response took too long to produce, so a safe fallback was used.",
    "generation_failed": "A response could not be produced, so a safe fallback was used.",
    "generation_empty": "A response could not be produced, so a safe fallback was used.",
    "leak_guard_rejected": "The response contained figures that could not be verified, so a safe fallback was used.",
    "invariant_violation": INVALID_STATE_RESPONSE,
}


def failure_code(reason: Optional[str]) -> Optional[str]:
    if not reason:
        return None
    return reason.split(":", 1)[0].strip() or None


def sanitize_error(reason: Optional[str]) -> Optional[str]:
    code = failure_code(reason)
    if code is None:
        return None
    return ERROR_MESSAGES.get(code, GENERIC_ERROR_MESSAGE)


__all__ = ["ERROR_MESSAGES", "GENERIC_ERROR_MESSAGE", "failure_code", "sanitize_error"]
