from __future__ import annotations

import re

_API_KEY_PATTERN = re.compile(r"(sk-[A-Za-z0-9]{8,})", re.IGNORECASE)

# Ordered: card before phone so long digit runs are labelled as cards
_PII_PATTERNS = (
    ("SSN", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("CARD", re.compile(r"\b(?:\d{4}[- ]?){3}\d{4}\b")),
    ("EMAIL", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("PHONE", re.compile(r"\b(?:\+?1[-. ]?)?\(?\d{3}\)?[-. ]?\d{3}[-. ]?\d{4}\b")),
    ("IP", re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")),
    ("DOB", re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b")),
)


def redact_secrets(s: str) -> str:
    if not s:
        return s
    redacted = _API_KEY_PATTERN.sub("[redacted]", s)
    redacted = re.sub(r"(Authorization:\s*Bearer\s+)[^\s]+", r"\1[redacted]", redacted, flags=re.IGNORECASE)
    return redacted


def redact_pii(s: str) -> str:
    if not s:
        return s
    redacted = s
    for label, pattern in _PII_PATTERNS:
        redacted = pattern.sub(f"[{label}_REDACTED]", redacted)
    return redacted


def safe_error_detail(exc: Exception) -> str:
    text = redact_pii(redact_secrets(str(exc)))
    return text[:200]


__all__ = ["redact_secrets", "redact_pii", "safe_error_detail"]
