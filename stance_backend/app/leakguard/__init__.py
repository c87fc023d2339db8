from .failure_semantics import (
    ConstraintLevel,
    FailureSemantics,
    ProceedDecision,
    ProviderStatus,
    combine_semantics,
    get_failure_semantics,
)
from .guard import GuardOutcome, LeakGuardMode, LeakGuardResult, enforce, safe_replacement, validate
from .patterns import (
    LeakViolation,
    canonicalize_numeric,
    collect_numeric_values,
    contains_disallowed_numerics,
    find_numeric_leaks,
)
from .templates import (
    GENERIC_SAFE_RESPONSE,
    INVALID_STATE_RESPONSE,
    SAFE_RESPONSE_TEMPLATES,
    build_contextual_safe_response,
    build_safe_response,
    get_invalid_state_response,
    get_safe_response,
    sanitize_reason,
    validate_all_templates,
)
from .time_handler import (
    TIME_REFUSAL_MESSAGE,
    TimeBatchResult,
    TimeHandlerResult,
    extract_timezones,
    format_to_12_hour,
    handle_multiple_time_queries,
    handle_time_data,
    is_valid_timezone,
)

__all__ = [
    "ConstraintLevel",
    "FailureSemantics",
    "ProceedDecision",
    "ProviderStatus",
    "combine_semantics",
    "get_failure_semantics",
    "GuardOutcome",
    "LeakGuardMode",
    "LeakGuardResult",
    "enforce",
    "safe_replacement",
    "validate",
    "LeakViolation",
    "canonicalize_numeric",
    "collect_numeric_values",
    "contains_disallowed_numerics",
    "find_numeric_leaks",
    "GENERIC_SAFE_RESPONSE",
    "INVALID_STATE_RESPONSE",
    "SAFE_RESPONSE_TEMPLATES",
    "build_contextual_safe_response",
    "build_safe_response",
    "get_invalid_state_response",
    "get_safe_response",
    "sanitize_reason",
    "validate_all_templates",
    "TIME_REFUSAL_MESSAGE",
    "TimeBatchResult",
    "TimeHandlerResult",
    "extract_timezones",
    "format_to_12_hour",
    "handle_multiple_time_queries",
    "handle_time_data",
    "is_valid_timezone",
]
