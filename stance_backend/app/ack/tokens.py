"""
Ack Handshake: signed, time-bounded, single-use acknowledgment tokens.

Wire format: ``<version>.<payload_b64url>.<signature_b64url>`` where the
signature is HMAC-SHA256 over ``<version>.<payload_b64url>``.

Contract guarantees:
- A token binds the user, the exact original message, the audit id and the
  reason it was issued for
- Validation order is fixed: format, signature, expiry, consumption,
  context, text; the first failing check is the reported reason
- Consumption happens last and atomically, so a token is spent only by a
  fully valid submission and only once
- Failure reasons are internal; callers show users a generic message
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from stance_backend.app.ack.nonce_store import NonceStore, nonce_key
from stance_backend.app.config.settings import Settings
from stance_backend.app.contract import RequestContext
from stance_backend.app.observability.logging import structured_log

logger = logging.getLogger(__name__)

TOKEN_VERSION = "1"
ACK_REQUIRED_TEXT = "I understand the risks and want to proceed"
ACK_INVALID_MESSAGE = "Your acknowledgment could not be accepted. Please review the warning and try again."


class AckTokenError(ValueError):
    """Raised when a token cannot be parsed."""


class AckInvalidReason(str, Enum):
    MALFORMED = "malformed"
    SIGNATURE_MISMATCH = "signature_mismatch"
    EXPIRED = "expired"
    REVOKED = "revoked"
    CONTEXT_MISMATCH = "context_mismatch"
    TEXT_MISMATCH = "text_mismatch"


@dataclass(frozen=True)
class AckTokenPayload:
    user_id: str
    fingerprint: str
    reason: str
    audit_id: str
    required_text: str
    nonce: str
    issued_at: float
    expires_at: float

    def to_json(self) -> Dict[str, Any]:
        return {
            "uid": self.user_id,
            "fp": self.fingerprint,
            "rsn": self.reason,
            "aid": self.audit_id,
            "txt": self.required_text,
            "nonce": self.nonce,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "AckTokenPayload":
        try:
            return cls(
                user_id=str(data["uid"]),
                fingerprint=str(data["fp"]),
                reason=str(data["rsn"]),
                audit_id=str(data["aid"]),
                required_text=str(data["txt"]),
                nonce=str(data["nonce"]),
                issued_at=float(data["iat"]),
                expires_at=float(data["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AckTokenError("payload missing required fields") from exc


@dataclass(frozen=True)
class IssuedAck:
    """Pending-acknowledgment descriptor returned with a soft veto."""
    token: str
    required_text: str
    expires_at: float
    audit_id: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ack_token": self.token,
            "required_text": self.required_text,
            "expires_at": datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat(),
            "audit_id": self.audit_id,
        }


@dataclass(frozen=True)
class AckValidation:
    valid: bool
    reason: Optional[AckInvalidReason] = None
    payload: Optional[AckTokenPayload] = None

    @property
    def public_message(self) -> Optional[str]:
        return None if self.valid else ACK_INVALID_MESSAGE


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise AckTokenError("invalid base64 segment") from exc


def context_fingerprint(context: RequestContext) -> str:
    h = hashlib.sha256()
    h.update(context.user_id.encode("utf-8"))
    h.update(b"\x00")
    h.update((context.session_id or "").encode("utf-8"))
    h.update(b"\x00")
    h.update(context.message.encode("utf-8"))
    return h.hexdigest()


class AckHandshake:
    def __init__(
        self,
        secret: str,
        nonce_store: NonceStore,
        ttl_seconds: int = 900,
        clock_skew_seconds: int = 30,
        nonce_grace_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("ack token secret is required")
        self._secret = secret.encode("utf-8")
        self._store = nonce_store
        self._ttl = ttl_seconds
        self._skew = clock_skew_seconds
        self._grace = nonce_grace_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, nonce_store: NonceStore) -> "AckHandshake":
        return cls(
            secret=settings.ack_token_secret,
            nonce_store=nonce_store,
            ttl_seconds=settings.ack_token_ttl_seconds,
            clock_skew_seconds=settings.ack_clock_skew_seconds,
            nonce_grace_seconds=settings.ack_nonce_grace_seconds,
        )

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode("utf-8"), hashlib.sha256).digest()
        return _b64encode(digest)

    def issue(self, context: RequestContext, reason: str, audit_id: str) -> IssuedAck:
        now = self._clock()
        payload = AckTokenPayload(
            user_id=context.user_id,
            fingerprint=context_fingerprint(context),
            reason=reason,
            audit_id=audit_id,
            required_text=ACK_REQUIRED_TEXT,
            nonce=secrets.token_hex(16),
            issued_at=now,
            expires_at=now + self._ttl,
        )
        body = _b64encode(json.dumps(payload.to_json(), separators=(",", ":"), sort_keys=True).encode("utf-8"))
        signing_input = f"{TOKEN_VERSION}.{body}"
        token = f"{signing_input}.{self._sign(signing_input)}"
        structured_log({"event": "ack_issued", "audit_id": audit_id, "reason": reason, "expires_at": payload.expires_at})
        return IssuedAck(token=token, required_text=ACK_REQUIRED_TEXT, expires_at=payload.expires_at, audit_id=audit_id)

    def _decode(self, token: str) -> AckTokenPayload:
        parts = (token or "").split(".")
        if len(parts) != 3 or parts[0] != TOKEN_VERSION or not parts[1] or not parts[2]:
            raise AckTokenError("unrecognized token format")
        try:
            data = json.loads(_b64decode(parts[1]).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AckTokenError("payload is not valid json") from exc
        if not isinstance(data, dict):
            raise AckTokenError("payload is not an object")
        return AckTokenPayload.from_json(data)

    def _fail(self, reason: AckInvalidReason, payload: Optional[AckTokenPayload] = None) -> AckValidation:
        structured_log(
            {
                "event": "ack_invalid",
                "reason": reason.value,
                "audit_id": payload.audit_id if payload else None,
            },
            level=logging.WARNING,
        )
        return AckValidation(valid=False, reason=reason, payload=payload)

    def validate(self, token: str, context: RequestContext, submitted_text: Optional[str]) -> AckValidation:
        parts = (token or "").split(".")
        if len(parts) != 3 or parts[0] != TOKEN_VERSION:
            return self._fail(AckInvalidReason.MALFORMED)

        expected = self._sign(f"{parts[0]}.{parts[1]}")
        if not hmac.compare_digest(expected.encode("ascii"), parts[2].encode("ascii", "replace")):
            return self._fail(AckInvalidReason.SIGNATURE_MISMATCH)

        try:
            payload = self._decode(token)
        except AckTokenError:
            return self._fail(AckInvalidReason.MALFORMED)

        now = self._clock()
        if payload.issued_at > now + self._skew:
            return self._fail(AckInvalidReason.MALFORMED, payload)
        if now > payload.expires_at + self._skew:
            return self._fail(AckInvalidReason.EXPIRED, payload)

        key = nonce_key(payload.nonce)
        if self._store.exists(key):
            return self._fail(AckInvalidReason.REVOKED, payload)

        if payload.user_id != context.user_id or not hmac.compare_digest(
            payload.fingerprint, context_fingerprint(context)
        ):
            return self._fail(AckInvalidReason.CONTEXT_MISMATCH, payload)

        if submitted_text is None or submitted_text != payload.required_text:
            return self._fail(AckInvalidReason.TEXT_MISMATCH, payload)

        ttl = int(max(0.0, payload.expires_at - now)) + self._grace
        if not self._store.consume(key, ttl):
            return self._fail(AckInvalidReason.REVOKED, payload)

        structured_log({"event": "ack_accepted", "audit_id": payload.audit_id, "reason": payload.reason})
        return AckValidation(valid=True, payload=payload)


__all__ = [
    "TOKEN_VERSION",
    "ACK_REQUIRED_TEXT",
    "ACK_INVALID_MESSAGE",
    "AckTokenError",
    "AckInvalidReason",
    "AckTokenPayload",
    "IssuedAck",
    "AckValidation",
    "AckHandshake",
    "context_fingerprint",
]
