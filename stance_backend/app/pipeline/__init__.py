from .errors import ERROR_MESSAGES, sanitize_error
from .invariants import check_invariants
from .orchestrator import GenerationRequest, PipelineOrchestrator, ResponseGenerator
from .result import DecisionResult, StageTrace

__all__ = [
    "ERROR_MESSAGES",
    "sanitize_error",
    "check_invariants",
    "GenerationRequest",
    "PipelineOrchestrator",
    "ResponseGenerator",
    "DecisionResult",
    "StageTrace",
]
