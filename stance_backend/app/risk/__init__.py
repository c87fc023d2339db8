from .catalog import CONTROL_TRIGGERS, GENERAL_RISK_ESCALATION, HARD_TRIGGERS, SOFT_TRIGGERS, EscalationRule, RiskTrigger
from .classifier import RiskAssessment, RiskClassificationError, RiskClassifier, RiskTier, assess_general_risk

__all__ = [
    "CONTROL_TRIGGERS",
    "GENERAL_RISK_ESCALATION",
    "HARD_TRIGGERS",
    "SOFT_TRIGGERS",
    "EscalationRule",
    "RiskTrigger",
    "RiskAssessment",
    "RiskClassificationError",
    "RiskClassifier",
    "RiskTier",
    "assess_general_risk",
]
