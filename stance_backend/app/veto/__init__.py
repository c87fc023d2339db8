from .crisis import CRISIS_RESOURCES, has_crisis_resources, prepend_crisis_resources, strip_crisis_resources
from .engine import FAILSAFE_REASON, VetoDecision, VetoEngine, VetoKind, failsafe_decision

__all__ = [
    "CRISIS_RESOURCES",
    "has_crisis_resources",
    "prepend_crisis_resources",
    "strip_crisis_resources",
    "FAILSAFE_REASON",
    "VetoDecision",
    "VetoEngine",
    "VetoKind",
    "failsafe_decision",
]
