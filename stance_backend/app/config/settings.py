from __future__ import annotations

import functools
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ACK_SECRET = "dev-ack-secret"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App / env
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    identity_hash_salt: str = Field("dev-salt", alias="IDENTITY_HASH_SALT")

    # Ack handshake
    ack_token_secret: str = Field(DEFAULT_ACK_SECRET, alias="ACK_TOKEN_SECRET")
    ack_token_ttl_seconds: int = Field(900, alias="ACK_TOKEN_TTL_SECONDS")
    ack_clock_skew_seconds: int = Field(30, alias="ACK_CLOCK_SKEW_SECONDS")
    ack_nonce_grace_seconds: int = Field(60, alias="ACK_NONCE_GRACE_SECONDS")

    # Nonce store
    redis_url: Optional[str] = Field(None, alias="REDIS_URL")

    # Verification
    verification_timeout_ms: int = Field(10000, alias="VERIFICATION_TIMEOUT_MS")
    verification_max_sources: int = Field(5, alias="VERIFICATION_MAX_SOURCES")
    fetcher_base_url: Optional[str] = Field(None, alias="FETCHER_BASE_URL")
    fetcher_api_key: Optional[str] = Field(None, alias="FETCHER_API_KEY")

    # Generation
    max_regenerations: int = Field(2, alias="MAX_REGENERATIONS")
    generation_timeout_ms: int = Field(15000, alias="GENERATION_TIMEOUT_MS")

    @field_validator(
        "ack_token_ttl_seconds",
        "ack_clock_skew_seconds",
        "ack_nonce_grace_seconds",
        "verification_timeout_ms",
        "generation_timeout_ms",
    )
    @classmethod
    def clamp_non_negative(cls, v: int) -> int:
        return max(0, v)

    @field_validator("verification_max_sources")
    @classmethod
    def clamp_sources(cls, v: int) -> int:
        return min(5, max(1, v))

    @field_validator("max_regenerations")
    @classmethod
    def clamp_regenerations(cls, v: int) -> int:
        return min(2, max(0, v))

    @field_validator("app_env")
    @classmethod
    def normalize_env(cls, v: str) -> str:
        return (v or "dev").lower()

    @field_validator("redis_url", "fetcher_base_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        text = v.strip()
        return text or None


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def validate_for_env(settings: Settings) -> Dict[str, Any]:
    issues: list[str] = []
    if settings.app_env == "prod":
        if settings.ack_token_secret == DEFAULT_ACK_SECRET:
            issues.append("ACK_TOKEN_SECRET must be set in prod")
        if len(settings.ack_token_secret) < 32:
            issues.append("ACK_TOKEN_SECRET must be at least 32 characters in prod")
        if not settings.redis_url:
            issues.append("REDIS_URL required in prod for single-use ack enforcement")
    summary = settings_public_summary(settings)
    summary["issues"] = issues
    return summary


def settings_public_summary(settings: Optional[Settings] = None) -> Dict[str, Any]:
    s = settings or get_settings()
    return {
        "env": s.app_env,
        "ack_token_ttl_seconds": s.ack_token_ttl_seconds,
        "nonce_store": "redis" if s.redis_url else "memory",
        "verification_timeout_ms": s.verification_timeout_ms,
        "verification_max_sources": s.verification_max_sources,
        "fetcher_configured": bool(s.fetcher_base_url),
        "max_regenerations": s.max_regenerations,
    }


__all__ = ["Settings", "get_settings", "settings_public_summary", "validate_for_env", "DEFAULT_ACK_SECRET"]
