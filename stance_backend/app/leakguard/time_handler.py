"""
Time queries: refuse rather than degrade.

Time has no qualitative substitute, so a missing, failed, or mis-shaped
provider result is a terminal refusal. Multi-zone batches are
all-or-nothing: one failed zone fails the whole batch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stance_backend.app.observability.logging import structured_log
from stance_backend.app.verification.fetcher import FetchResult
from stance_backend.app.verification.freshness import CITY_TIMEZONES

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "UTC"

TIME_REFUSAL_MESSAGE = (
    "I cannot provide the current time because the time service is unavailable. "
    "Unlike other data, time has no qualitative fallback, so I need accurate data to answer this question."
)

INVALID_TIMEZONE_MESSAGE = (
    "I cannot determine the timezone for your query. "
    'Please specify a valid timezone (for example "America/New_York", "EST", or "Tokyo").'
)

_IANA = re.compile(r"\b([A-Z][A-Za-z_]+/[A-Z][A-Za-z_]+(?:/[A-Z][A-Za-z_]+)?)\b")
_ABBREVIATION = re.compile(r"^[A-Z]{2,5}$")
_OFFSET = re.compile(r"^[+-]\d{2}:\d{2}$")


@dataclass(frozen=True)
class TimeHandlerResult:
    success: bool
    timezone: str
    formatted_text: Optional[str] = None
    is_refusal: bool = False
    refusal_message: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TimeBatchResult:
    success: bool
    results: Dict[str, TimeHandlerResult] = field(default_factory=dict)
    failed_timezones: Tuple[str, ...] = ()

    @property
    def refusal_message(self) -> Optional[str]:
        return None if self.success else TIME_REFUSAL_MESSAGE


def is_valid_timezone(tz: Optional[str]) -> bool:
    if not tz:
        return False
    if tz == "local" or _ABBREVIATION.match(tz) or _OFFSET.match(tz):
        return True
    if "/" in tz:
        try:
            ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            return False
        return True
    return False


def format_to_12_hour(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def extract_timezones(message: str) -> List[str]:
    """Timezones named in a message, in order of first mention."""
    lowered = (message or "").lower()
    hits: List[Tuple[int, str]] = []
    for city, tz in CITY_TIMEZONES.items():
        idx = lowered.find(city)
        if idx != -1:
            hits.append((idx, tz))
    for m in _IANA.finditer(message or ""):
        hits.append((m.start(), m.group(1)))
    ordered: List[str] = []
    for _, tz in sorted(hits):
        if tz not in ordered:
            ordered.append(tz)
    return ordered


def _refusal(timezone: str, message: str, error: str) -> TimeHandlerResult:
    return TimeHandlerResult(
        success=False,
        timezone=timezone,
        is_refusal=True,
        refusal_message=message,
        error=error,
    )


def handle_time_data(result: Optional[FetchResult], timezone: str = FALLBACK_TIMEZONE) -> TimeHandlerResult:
    if result is None:
        return _refusal(timezone, TIME_REFUSAL_MESSAGE, "no_result")
    if not result.ok:
        return _refusal(timezone, TIME_REFUSAL_MESSAGE, result.error or "provider_error")

    data = result.data
    if not isinstance(data, dict) or data.get("type") != "time":
        structured_log({"event": "time_wrong_shape", "timezone": timezone}, level=logging.WARNING)
        return _refusal(timezone, TIME_REFUSAL_MESSAGE, "wrong_data_type")

    raw = data.get("local_time")
    if not isinstance(raw, str):
        return _refusal(timezone, TIME_REFUSAL_MESSAGE, "wrong_data_type")
    try:
        moment = datetime.fromisoformat(raw)
    except ValueError:
        return _refusal(timezone, TIME_REFUSAL_MESSAGE, "unparseable_time")

    resolved = data.get("timezone") if isinstance(data.get("timezone"), str) else timezone
    return TimeHandlerResult(
        success=True,
        timezone=resolved,
        formatted_text=f"It is currently {format_to_12_hour(moment)} in {resolved}.",
    )


def handle_multiple_time_queries(results: Mapping[str, Optional[FetchResult]]) -> TimeBatchResult:
    handled: Dict[str, TimeHandlerResult] = {}
    failed: List[str] = []
    for timezone, result in results.items():
        outcome = handle_time_data(result, timezone)
        handled[timezone] = outcome
        if not outcome.success:
            failed.append(timezone)

    success = bool(handled) and not failed
    if not success:
        structured_log(
            {"event": "time_batch_failed", "failed_timezones": failed, "requested": len(handled)},
            level=logging.WARNING,
        )
    return TimeBatchResult(success=success, results=handled, failed_timezones=tuple(failed))


__all__ = [
    "FALLBACK_TIMEZONE",
    "TIME_REFUSAL_MESSAGE",
    "INVALID_TIMEZONE_MESSAGE",
    "TimeHandlerResult",
    "TimeBatchResult",
    "is_valid_timezone",
    "format_to_12_hour",
    "extract_timezones",
    "handle_time_data",
    "handle_multiple_time_queries",
]
