from .timeouts import PerfTimeoutError, elapsed_ms, enforce_timeout

__all__ = ["PerfTimeoutError", "elapsed_ms", "enforce_timeout"]
