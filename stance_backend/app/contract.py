from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator


MAX_MESSAGE_CHARS = 8000
MAX_ACK_TOKEN_CHARS = 2048
MAX_ACK_TEXT_CHARS = 200


class Stakes(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_STAKES_ORDER = [Stakes.LOW, Stakes.MEDIUM, Stakes.HIGH, Stakes.CRITICAL]


def stakes_rank(stakes: Stakes) -> int:
    return _STAKES_ORDER.index(Stakes(stakes))


def max_stakes(*levels: Optional[Stakes]) -> Stakes:
    present = [Stakes(level) for level in levels if level is not None]
    if not present:
        return Stakes.LOW
    return max(present, key=stakes_rank)


def stakes_at_least(stakes: Stakes, floor: Stakes) -> bool:
    return stakes_rank(stakes) >= stakes_rank(floor)


class InterventionLevel(str, Enum):
    NONE = "none"
    NUDGE = "nudge"
    FRICTION = "friction"
    VETO = "veto"


class PipelineAction(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    DEGRADE = "degrade"
    AWAIT_ACK = "await_ack"


class Intent(BaseModel):
    """Coarse intent supplied by the upstream intent classifier."""

    type: Optional[StrictStr] = None
    domain: Optional[StrictStr] = None
    complexity: Optional[StrictStr] = None
    is_hypothetical: StrictBool = False

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("type", "domain", "complexity")
    @classmethod
    def _normalize(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        text = v.strip().lower()
        return text or None


class RequestContext(BaseModel):
    """Immutable per-request record created once at pipeline entry."""

    request_id: StrictStr = Field(..., min_length=1, max_length=128)
    user_id: StrictStr = Field(..., min_length=1, max_length=128)
    message: StrictStr = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)
    session_id: Optional[StrictStr] = Field(default=None, max_length=128)
    ack_token: Optional[StrictStr] = Field(default=None, max_length=MAX_ACK_TOKEN_CHARS)
    ack_text: Optional[StrictStr] = Field(default=None, max_length=MAX_ACK_TEXT_CHARS)
    intent: Optional[Intent] = None
    risk_hint: Optional[Stakes] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def has_ack(self) -> bool:
        return bool(self.ack_token) and self.ack_text is not None


__all__ = [
    "Stakes",
    "stakes_rank",
    "max_stakes",
    "stakes_at_least",
    "InterventionLevel",
    "PipelineAction",
    "Intent",
    "RequestContext",
    "MAX_MESSAGE_CHARS",
]
