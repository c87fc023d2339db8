from .claims import Claim, ClaimCheck, ClaimKind, extract_claims, trust_score, verify_claim
from .fetcher import Citation, Fetcher, FetchResult, HttpFetcher, build_fetcher
from .freshness import LiveCategory, check_freshness, detect_domain, is_immediate_domain
from .triggers import VerificationNeed, classify
from .url_safety import validate_url_for_fetch

__all__ = [
    "Claim",
    "ClaimCheck",
    "ClaimKind",
    "extract_claims",
    "trust_score",
    "verify_claim",
    "Citation",
    "Fetcher",
    "FetchResult",
    "HttpFetcher",
    "build_fetcher",
    "LiveCategory",
    "check_freshness",
    "detect_domain",
    "is_immediate_domain",
    "VerificationNeed",
    "classify",
    "validate_url_for_fetch",
]
