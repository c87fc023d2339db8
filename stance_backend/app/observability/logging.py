from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, Optional

from stance_backend.app.config.settings import get_settings

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "stance_backend"

# Raw request material never reaches the log stream
_DROP_KEYS = ("message", "user_text", "ack_token", "ack_text", "draft", "payload", "body")


def configure_logging(level: Optional[str] = None) -> None:
    name = (level or get_settings().log_level or "INFO").upper()
    logging.getLogger(PACKAGE_LOGGER).setLevel(getattr(logging, name, logging.INFO))


def hash_subject(subject_type: str | None, subject_id: str | None) -> str:
    base = f"{subject_type or 'unknown'}:{subject_id or 'anon'}"
    h = hashlib.sha256()
    h.update(get_settings().identity_hash_salt.encode("utf-8"))
    h.update(base.encode("utf-8"))
    return h.hexdigest()[:16]


def safe_redact(event: Dict[str, Any]) -> Dict[str, Any]:
    redacted = dict(event) if isinstance(event, dict) else {}
    for key in _DROP_KEYS:
        redacted.pop(key, None)
    if "user_id" in redacted:
        redacted["user_hash"] = hash_subject("user", str(redacted.pop("user_id")))
    return redacted


def structured_log(event: Dict[str, Any], level: int = logging.INFO) -> None:
    try:
        safe_event = safe_redact(event)
        logger.log(level, json.dumps(safe_event, separators=(",", ":"), default=str))
    except Exception:
        # logging must never break the request path
        return


__all__ = ["PACKAGE_LOGGER", "configure_logging", "hash_subject", "structured_log", "safe_redact"]
