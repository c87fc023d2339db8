from .settings import (
    DEFAULT_ACK_SECRET,
    Settings,
    get_settings,
    settings_public_summary,
    validate_for_env,
)
from .redaction import redact_pii, redact_secrets, safe_error_detail

__all__ = [
    "DEFAULT_ACK_SECRET",
    "Settings",
    "get_settings",
    "settings_public_summary",
    "validate_for_env",
    "redact_pii",
    "redact_secrets",
    "safe_error_detail",
]
