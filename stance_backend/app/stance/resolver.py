"""
Stance Resolver: one operating posture per request.

Priority (FIXED, first match wins):
1. CONTROL: control trigger fired, or stakes reached critical
2. SHIELD: intervention veto/friction, or stakes high
3. LENS: verification required, question intent, or complex non-action intent
4. SWORD: action/planning intent with no intervention
5. LENS: fallback when signals are ambiguous or absent

Contract guarantees:
- Total: always returns exactly one Stance
- resolve_stance_safely never raises; failures resolve to SHIELD
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from stance_backend.app.contract import Intent, InterventionLevel, Stakes, max_stakes
from stance_backend.app.observability.logging import structured_log
from stance_backend.app.verification.triggers import VerificationNeed
from stance_backend.app.veto.engine import VetoDecision, VetoKind

logger = logging.getLogger(__name__)


class Stance(str, Enum):
    CONTROL = "control"
    SHIELD = "shield"
    LENS = "lens"
    SWORD = "sword"


SHIELD_INTERVENTIONS = frozenset({InterventionLevel.VETO, InterventionLevel.FRICTION})
SWORD_INTENT_TYPES = frozenset({"action", "planning"})


def resolve_stance(
    veto: VetoDecision,
    need: Optional[VerificationNeed] = None,
    intent: Optional[Intent] = None,
) -> Stance:
    stakes = max_stakes(veto.stakes, need.stakes if need is not None else None)
    intent_type = intent.type if intent is not None else None

    if veto.kind is VetoKind.CONTROL or stakes is Stakes.CRITICAL:
        return Stance.CONTROL

    if veto.intervention in SHIELD_INTERVENTIONS or stakes is Stakes.HIGH:
        return Stance.SHIELD

    if need is not None and need.required:
        return Stance.LENS
    if intent_type == "question":
        return Stance.LENS
    if intent is not None and intent.complexity == "high" and intent_type != "action":
        return Stance.LENS

    if intent_type in SWORD_INTENT_TYPES and veto.intervention is InterventionLevel.NONE:
        return Stance.SWORD

    return Stance.LENS


def resolve_stance_safely(
    veto: VetoDecision,
    need: Optional[VerificationNeed] = None,
    intent: Optional[Intent] = None,
    request_id: Optional[str] = None,
) -> Stance:
    try:
        return resolve_stance(veto, need, intent)
    except Exception as exc:
        structured_log(
            {"event": "stance_failsafe", "request_id": request_id, "error": type(exc).__name__},
            level=logging.ERROR,
        )
        return Stance.SHIELD


__all__ = ["Stance", "resolve_stance", "resolve_stance_safely"]
