from .nonce_store import InMemoryNonceStore, NonceStore, RedisNonceStore, build_nonce_store, nonce_key
from .tokens import (
    ACK_INVALID_MESSAGE,
    ACK_REQUIRED_TEXT,
    AckHandshake,
    AckInvalidReason,
    AckTokenError,
    AckTokenPayload,
    AckValidation,
    IssuedAck,
    context_fingerprint,
)

__all__ = [
    "InMemoryNonceStore",
    "NonceStore",
    "RedisNonceStore",
    "build_nonce_store",
    "nonce_key",
    "ACK_INVALID_MESSAGE",
    "ACK_REQUIRED_TEXT",
    "AckHandshake",
    "AckInvalidReason",
    "AckTokenError",
    "AckTokenPayload",
    "AckValidation",
    "IssuedAck",
    "context_fingerprint",
]
