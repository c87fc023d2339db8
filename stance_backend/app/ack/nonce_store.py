"""Nonce store for single-use ack tokens.

``consume`` is the only operation that must be atomic: check-unconsumed and
mark-consumed happen in one step, so two concurrent submissions of the same
token can never both succeed.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis

from stance_backend.app.config.settings import Settings

NONCE_KEY_PREFIX = "ack_nonce:"


class NonceStore(ABC):
    """Key-value store with TTLs and an atomic consume."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    def consume(self, key: str, ttl_seconds: int) -> bool:
        """Mark ``key`` consumed. Returns True only for the first caller."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        pass


class InMemoryNonceStore(NonceStore):
    """Process-local store. Expired entries are swept on writes, at most once per ``sweep_interval_seconds``."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 30.0,
    ) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._sweep_interval = max(0.0, sweep_interval_seconds)
        self._next_sweep = clock() + self._sweep_interval

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval

    def _live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = (value, now + max(1, ttl_seconds))

    def consume(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if self._live(key) is not None:
                return False
            self._entries[key] = ("1", now + max(1, ttl_seconds))
            return True

    def exists(self, key: str) -> bool:
        return self.get(key) is not None


class RedisNonceStore(NonceStore):
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisNonceStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._client.set(key, value, ex=max(1, ttl_seconds))

    def consume(self, key: str, ttl_seconds: int) -> bool:
        # atomic SET NX EX
        return bool(self._client.set(key, "1", nx=True, ex=max(1, ttl_seconds)))

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))


def nonce_key(nonce: str) -> str:
    return f"{NONCE_KEY_PREFIX}{nonce}"


def build_nonce_store(settings: Settings) -> NonceStore:
    if settings.redis_url:
        return RedisNonceStore.from_url(settings.redis_url)
    return InMemoryNonceStore()


__all__ = [
    "NonceStore",
    "InMemoryNonceStore",
    "RedisNonceStore",
    "nonce_key",
    "build_nonce_store",
    "NONCE_KEY_PREFIX",
]
