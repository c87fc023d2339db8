"""
Verification Mediator: live-data retrieval -> verification plan.

Resolution order (FIXED):
1. verification not required -> SKIPPED, continue
2. time category -> all-or-nothing batch; any failure -> BLOCKED refusal, stop
3. no fetcher, stakes high/critical -> BLOCKED with user options, stop
4. no fetcher, lower stakes -> DEGRADED, degrade
5. fetcher: all claims verified and fresh -> VERIFIED, continue
6. fetcher: partial, stale, timeout or error -> DEGRADED, degrade

Contract guarantees:
- Bounded: at most max_sources concurrent fetches under one overall timeout
- Fail-safe: provider errors degrade, they never propagate
- Cancellation propagates; partial results are discarded, never applied
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from stance_backend.app.config.settings import Settings
from stance_backend.app.contract import Intent, PipelineAction, Stakes, stakes_at_least
from stance_backend.app.leakguard.failure_semantics import (
    ProviderStatus,
    get_failure_semantics,
)
from stance_backend.app.leakguard.patterns import collect_numeric_values
from stance_backend.app.leakguard.time_handler import (
    FALLBACK_TIMEZONE,
    INVALID_TIMEZONE_MESSAGE,
    TIME_REFUSAL_MESSAGE,
    extract_timezones,
    handle_multiple_time_queries,
    is_valid_timezone,
)
from stance_backend.app.observability.audit import (
    AuditCategory,
    AuditSeverity,
    AuditSink,
    build_audit_record,
    emit_safely,
    new_audit_id,
)
from stance_backend.app.observability.logging import structured_log
from stance_backend.app.perf.timeouts import PerfTimeoutError, enforce_timeout
from stance_backend.app.verification.claims import (
    Claim,
    ClaimCheck,
    SourceDocument,
    claims_for_verification,
    content_text,
    derive_confidence,
    trust_score,
    verify_claim,
)
from stance_backend.app.verification.fetcher import Fetcher, FetcherError, FetchResult
from stance_backend.app.verification.freshness import (
    LiveCategory,
    category_for_domain,
    check_freshness,
    detect_domain,
    is_immediate_domain,
)
from stance_backend.app.verification.triggers import VerificationNeed, classify
from stance_backend.app.verification.url_safety import validate_url_for_fetch

logger = logging.getLogger(__name__)

UNAVAILABLE_WARNING = "Could not verify against current sources"
FAILED_WARNING = "Verification failed - treat with caution"
PARTIAL_WARNING = "Some claims could not be verified against current sources"


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    DEGRADED = "degraded"
    SKIPPED = "skipped"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class UserOption:
    id: str
    label: str
    requires_ack: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "requires_ack": self.requires_ack}


BLOCKED_USER_OPTIONS: Tuple[UserOption, ...] = (
    UserOption("enable_web", "Enable live data retrieval"),
    UserOption("provide_source", "Provide a source URL"),
    UserOption("proceed_unverified", "Proceed without verification (not recommended)", requires_ack=True),
    UserOption("stop", "Cancel this request"),
)


@dataclass(frozen=True)
class VerificationPlan:
    """What generation may say. verified_values is the Leak Guard allowlist;
    it is only populated for VERIFIED plans, so a degraded plan admits no figures.
    """

    status: VerificationStatus
    confidence: str
    numeric_precision_allowed: bool
    action_recommendations_allowed: bool
    freshness_warning: Optional[str] = None
    sources: Tuple[str, ...] = ()
    domain: str = "general"
    category: Optional[LiveCategory] = None
    verified_values: FrozenSet[str] = frozenset()
    evidence: Tuple[str, ...] = ()
    refusal_text: Optional[str] = None

    @classmethod
    def skipped(cls) -> "VerificationPlan":
        return cls(
            status=VerificationStatus.SKIPPED,
            confidence="high",
            numeric_precision_allowed=True,
            action_recommendations_allowed=True,
        )

    def allowed_values(self) -> Optional[FrozenSet[str]]:
        """Leak Guard allowlist; None means every figure is forbidden."""
        return self.verified_values or None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "confidence": self.confidence,
            "numeric_precision_allowed": self.numeric_precision_allowed,
            "action_recommendations_allowed": self.action_recommendations_allowed,
            "freshness_warning": self.freshness_warning,
            "sources": list(self.sources),
            "domain": self.domain,
            "category": self.category.value if self.category else None,
        }


@dataclass(frozen=True)
class MediationOutcome:
    plan: VerificationPlan
    action: PipelineAction
    failure_reason: Optional[str] = None
    user_options: Tuple[UserOption, ...] = field(default_factory=tuple)


def degraded_outcome(
    warning: str,
    failure_reason: str,
    domain: str = "general",
    category: Optional[LiveCategory] = None,
) -> MediationOutcome:
    plan = VerificationPlan(
        status=VerificationStatus.DEGRADED,
        confidence="low",
        numeric_precision_allowed=False,
        action_recommendations_allowed=False,
        freshness_warning=warning,
        domain=domain,
        category=category,
    )
    return MediationOutcome(plan=plan, action=PipelineAction.DEGRADE, failure_reason=failure_reason)


def refusal_outcome(
    message: str,
    failure_reason: str,
    domain: str = "current_time",
    category: Optional[LiveCategory] = LiveCategory.TIME,
) -> MediationOutcome:
    plan = VerificationPlan(
        status=VerificationStatus.BLOCKED,
        confidence="low",
        numeric_precision_allowed=False,
        action_recommendations_allowed=False,
        domain=domain,
        category=category,
        refusal_text=message,
    )
    return MediationOutcome(plan=plan, action=PipelineAction.STOP, failure_reason=failure_reason)


class VerificationMediator:
    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        *,
        max_sources: int = 5,
        timeout_ms: int = 10000,
        audit_sink: Optional[AuditSink] = None,
        clock=time.time,
    ) -> None:
        self._fetcher = fetcher
        self._max_sources = max(1, min(5, max_sources))
        self._timeout_ms = max(1, timeout_ms)
        self._audit = audit_sink
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetcher: Optional[Fetcher] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> "VerificationMediator":
        return cls(
            fetcher,
            max_sources=settings.verification_max_sources,
            timeout_ms=settings.verification_timeout_ms,
            audit_sink=audit_sink,
        )

    @property
    def has_fetcher(self) -> bool:
        return self._fetcher is not None

    def classify(
        self,
        message: str,
        intent: Optional[Intent] = None,
        risk_hint: Optional[Stakes] = None,
    ) -> VerificationNeed:
        return classify(message, intent, risk_hint)

    async def resolve(self, need: VerificationNeed, message: str) -> MediationOutcome:
        if not need.required:
            return MediationOutcome(plan=VerificationPlan.skipped(), action=PipelineAction.CONTINUE)

        domain = detect_domain(message)
        category = category_for_domain(domain)

        if category is LiveCategory.TIME:
            outcome = await self._resolve_time(message)
        elif self._fetcher is None:
            outcome = self._unavailable(need, domain, category)
        else:
            outcome = await self._resolve_with_fetcher(need, message, domain, category)

        structured_log(
            {
                "event": "verification_resolved",
                "status": outcome.plan.status.value,
                "action": outcome.action.value,
                "domain": domain,
                "stakes": need.stakes.value,
                "reason_codes": list(need.reason_codes),
                "failure_reason": outcome.failure_reason,
            }
        )
        if outcome.plan.status is VerificationStatus.BLOCKED:
            emit_safely(
                self._audit,
                build_audit_record(
                    audit_id=new_audit_id(),
                    category=AuditCategory.VERIFICATION,
                    action=outcome.action.value,
                    severity=AuditSeverity.WARNING,
                    description=f"verification blocked: {outcome.failure_reason}",
                ),
            )
        return outcome

    def _unavailable(
        self, need: VerificationNeed, domain: str, category: Optional[LiveCategory]
    ) -> MediationOutcome:
        if stakes_at_least(need.stakes, Stakes.HIGH):
            plan = VerificationPlan(
                status=VerificationStatus.BLOCKED,
                confidence="low",
                numeric_precision_allowed=False,
                action_recommendations_allowed=False,
                freshness_warning=UNAVAILABLE_WARNING,
                domain=domain,
                category=category,
            )
            return MediationOutcome(
                plan=plan,
                action=PipelineAction.STOP,
                failure_reason="verification_unavailable_high_stakes",
                user_options=BLOCKED_USER_OPTIONS,
            )
        return degraded_outcome(UNAVAILABLE_WARNING, "verification_unavailable", domain, category)

    async def _fetch_all(self, category: str, queries: Sequence[str]) -> List[Optional[FetchResult]]:
        semaphore = asyncio.Semaphore(self._max_sources)
        fetcher = self._fetcher

        async def _one(query: str) -> FetchResult:
            async with semaphore:
                return await fetcher.fetch(
                    category,
                    query,
                    max_sources=self._max_sources,
                    timeout_ms=self._timeout_ms,
                )

        async def _gather() -> List[Any]:
            return await asyncio.gather(*(_one(q) for q in queries), return_exceptions=True)

        raw = await enforce_timeout(_gather, self._timeout_ms, stage="verification")
        results: List[Optional[FetchResult]] = []
        for item in raw:
            if isinstance(item, BaseException):
                structured_log({"event": "fetch_error", "error": type(item).__name__}, level=logging.WARNING)
                results.append(None)
            elif isinstance(item, FetchResult):
                results.append(item)
            else:
                raise FetcherError(f"fetcher returned {type(item).__name__}, expected FetchResult")
        return results

    async def _resolve_time(self, message: str) -> MediationOutcome:
        zones = extract_timezones(message) or [FALLBACK_TIMEZONE]
        invalid = [z for z in zones if not is_valid_timezone(z)]
        if invalid:
            return refusal_outcome(INVALID_TIMEZONE_MESSAGE, "invalid_timezone")
        if self._fetcher is None:
            return refusal_outcome(TIME_REFUSAL_MESSAGE, "time_source_unavailable")

        try:
            fetched = await self._fetch_all(LiveCategory.TIME.value, zones)
        except PerfTimeoutError:
            return refusal_outcome(TIME_REFUSAL_MESSAGE, "time_source_timeout")
        except Exception as exc:
            structured_log({"event": "time_fetch_failed", "error": type(exc).__name__}, level=logging.WARNING)
            return refusal_outcome(TIME_REFUSAL_MESSAGE, "time_source_error")

        batch = handle_multiple_time_queries(dict(zip(zones, fetched)))
        if not batch.success:
            return refusal_outcome(TIME_REFUSAL_MESSAGE, "time_batch_failed:" + ",".join(batch.failed_timezones))

        evidence = tuple(r.formatted_text for r in batch.results.values() if r.formatted_text)
        # only the rendered clock readings are admissible, not raw offsets
        values = set()
        for text in evidence:
            values |= collect_numeric_values(text)
        sources = tuple(dict.fromkeys(c.url for item in fetched if item for c in item.citations))
        plan = VerificationPlan(
            status=VerificationStatus.VERIFIED,
            confidence="high",
            numeric_precision_allowed=False,
            action_recommendations_allowed=True,
            sources=sources,
            domain="current_time",
            category=LiveCategory.TIME,
            verified_values=frozenset(values),
            evidence=evidence,
        )
        return MediationOutcome(plan=plan, action=PipelineAction.CONTINUE)

    def _sources_for(self, result: Optional[FetchResult]) -> List[SourceDocument]:
        if result is None or not result.ok:
            return []
        content = content_text(result.data)
        documents = []
        for citation in result.citations:
            check = validate_url_for_fetch(citation.url)
            if not check.valid:
                structured_log({"event": "citation_blocked", "reason": check.reason}, level=logging.WARNING)
                continue
            documents.append(
                SourceDocument(
                    url=citation.url,
                    content=content,
                    trust=trust_score(citation.url),
                    fetched_at=citation.fetched_at or result.fetched_at,
                )
            )
        return documents

    async def _resolve_with_fetcher(
        self,
        need: VerificationNeed,
        message: str,
        domain: str,
        category: Optional[LiveCategory],
    ) -> MediationOutcome:
        claims: List[Claim] = claims_for_verification(message, self._max_sources)
        try:
            fetched = await self._fetch_all(category.value if category else domain, [c.text for c in claims])
        except PerfTimeoutError:
            return degraded_outcome(FAILED_WARNING, "verification_timeout", domain, category)
        except Exception as exc:
            structured_log({"event": "verification_error", "error": type(exc).__name__}, level=logging.WARNING)
            return degraded_outcome(FAILED_WARNING, "verification_error", domain, category)
        if all(result is None for result in fetched):
            return degraded_outcome(FAILED_WARNING, "verification_error", domain, category)

        checks: List[ClaimCheck] = []
        values = set()
        newest: Optional[float] = None
        for claim, result in zip(claims, fetched):
            documents = self._sources_for(result)
            check = verify_claim(claim, documents)
            checks.append(check)
            if check.verified and result is not None:
                values |= collect_numeric_values(result.data)
            for doc in documents:
                if doc.fetched_at is not None and (newest is None or doc.fetched_at > newest):
                    newest = doc.fetched_at

        all_verified = bool(checks) and all(c.verified for c in checks)
        confidence = derive_confidence(checks)
        sources = tuple(dict.fromkeys(url for c in checks for url in c.supporting_urls))

        warning: Optional[str] = None
        stale = False
        if is_immediate_domain(domain):
            freshness = check_freshness(domain, newest, now=self._clock())
            if freshness.is_stale:
                stale = True
                warning = f"{freshness.window.description} may be stale ({freshness.stale_by} old)"
                confidence = "low"
                values = set()

        status = ProviderStatus.VERIFIED if all_verified and not stale else (
            ProviderStatus.STALE if stale else ProviderStatus.FAILED
        )
        if category is not None:
            semantics = get_failure_semantics(category, status)
            numeric_ok = semantics.numeric_precision_allowed and not is_immediate_domain(domain)
        else:
            numeric_ok = status is ProviderStatus.VERIFIED and not is_immediate_domain(domain)

        if status is ProviderStatus.VERIFIED:
            plan = VerificationPlan(
                status=VerificationStatus.VERIFIED,
                confidence=confidence,
                numeric_precision_allowed=numeric_ok,
                action_recommendations_allowed=True,
                sources=sources,
                domain=domain,
                category=category,
                verified_values=frozenset(values),
            )
            return MediationOutcome(plan=plan, action=PipelineAction.CONTINUE)

        plan = VerificationPlan(
            status=VerificationStatus.DEGRADED,
            confidence=confidence,
            numeric_precision_allowed=False,
            action_recommendations_allowed=False,
            freshness_warning=warning or PARTIAL_WARNING,
            sources=sources,
            domain=domain,
            category=category,
            verified_values=frozenset(),
        )
        reason = "verification_stale" if stale else "verification_partial"
        return MediationOutcome(plan=plan, action=PipelineAction.DEGRADE, failure_reason=reason)


__all__ = [
    "VerificationStatus",
    "UserOption",
    "BLOCKED_USER_OPTIONS",
    "VerificationPlan",
    "MediationOutcome",
    "VerificationMediator",
    "degraded_outcome",
    "refusal_outcome",
    "UNAVAILABLE_WARNING",
    "FAILED_WARNING",
    "PARTIAL_WARNING",
]
