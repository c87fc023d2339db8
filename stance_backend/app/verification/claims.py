"""
Claim extraction and source-based claim checking.

Contract guarantees:
- Deterministic: same message and sources give the same result
- Questions are never claims; a question is looked up as a single query
- A claim is verified only when a supporting source has a known trusted
  host and the trust-weighted confidence reaches VERIFIED_CONFIDENCE_FLOOR
- Any contradicting source halves the confidence
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from stance_backend.app.verification.freshness import detect_domain, is_immediate_domain

VERIFIED_CONFIDENCE_FLOOR = 0.65
MIN_KEYWORD_OVERLAP = 2
MAX_SOURCE_CHARS = 5000

SOURCE_TRUST_SCORES: Tuple[Tuple[str, float], ...] = (
    ("sec.gov", 0.95),
    ("cdc.gov", 0.95),
    ("nih.gov", 0.95),
    ("gov", 0.95),
    ("mil", 0.95),
    ("who.int", 0.93),
    ("nature.com", 0.92),
    ("science.org", 0.92),
    ("edu", 0.90),
    ("reuters.com", 0.88),
    ("apnews.com", 0.88),
    ("mayoclinic.org", 0.88),
    ("bbc.com", 0.85),
    ("bloomberg.com", 0.85),
    ("nytimes.com", 0.82),
    ("wsj.com", 0.82),
    ("washingtonpost.com", 0.80),
    ("finance.yahoo.com", 0.75),
    ("webmd.com", 0.70),
    ("wikipedia.org", 0.65),
)
DEFAULT_TRUST = 0.50

_STOP_WORDS = frozenset(
    """
    the a an is are was were be been being have has had do does did will would could
    should may might must shall can need dare to of in for on with at by from as into
    through during before after above below and or but if because until while although
    this that these those it its what whats
    """.split()
)

_QUESTION_START = re.compile(r"^(what|who|when|where|why|how|is|are|do|does|can|should)\b", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|[\r\n]+")

_CLAIM_KINDS = (
    ("numeric", re.compile(r"(?:\b\d+(?:\.\d+)?%|\$[\d,]+(?:\.\d{2})?|\b\d{1,3}(?:,\d{3})+\b)")),
    ("temporal", re.compile(r"\b(latest|current|now|today|recent|as of|since|after|before)\b", re.IGNORECASE)),
    ("attribution", re.compile(r"\b(according to|said|reported|announced|stated|claims?)\b", re.IGNORECASE)),
    ("factual", re.compile(r"\b(is|are|was|were|has|have|had)\s+(the|a|an)?\s*\w+", re.IGNORECASE)),
)

_CONTRADICTION = (
    re.compile(
        r"\b(not|never|no|none|neither|nor|isn't|aren't|wasn't|weren't|doesn't|don't|didn't|won't|wouldn't|couldn't|shouldn't)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(contrary to|false|incorrect|inaccurate|misleading|debunked|myth|wrong)\b", re.IGNORECASE),
)


class ClaimKind(str, Enum):
    NUMERIC = "numeric"
    TEMPORAL = "temporal"
    ATTRIBUTION = "attribution"
    FACTUAL = "factual"
    QUERY = "query"


@dataclass(frozen=True)
class Claim:
    claim_id: str
    text: str
    kind: ClaimKind
    domain: str
    requires_verification: bool


@dataclass(frozen=True)
class SourceDocument:
    url: str
    content: str
    trust: float
    fetched_at: Optional[float] = None


@dataclass(frozen=True)
class ClaimCheck:
    claim_id: str
    verified: bool
    confidence: float
    supporting_urls: Tuple[str, ...]
    conflict: bool


def extract_keywords(text: str) -> List[str]:
    words = re.sub(r"[^\w\s]", " ", (text or "").lower()).split()
    return [w for w in words if len(w) > 2 and w not in _STOP_WORDS]


def extract_claims(message: str) -> List[Claim]:
    """Split a message into declarative claims; questions are skipped."""
    claims: List[Claim] = []
    for sentence in _SENTENCE_SPLIT.split(message or ""):
        trimmed = sentence.strip()
        if not trimmed or trimmed.endswith("?") or _QUESTION_START.match(trimmed):
            continue
        for kind, pattern in _CLAIM_KINDS:
            if pattern.search(trimmed):
                domain = detect_domain(trimmed)
                claims.append(
                    Claim(
                        claim_id=f"claim_{len(claims)}",
                        text=trimmed.rstrip(".!"),
                        kind=ClaimKind(kind),
                        domain=domain,
                        requires_verification=kind != "factual" or is_immediate_domain(domain),
                    )
                )
                break
    return claims


def query_claim(message: str) -> Claim:
    """Treat a whole question as one lookup."""
    domain = detect_domain(message)
    return Claim(claim_id="claim_0", text=message.strip(), kind=ClaimKind.QUERY, domain=domain, requires_verification=True)


def claims_for_verification(message: str, limit: int) -> List[Claim]:
    claims = [c for c in extract_claims(message) if c.requires_verification]
    if not claims:
        claims = [query_claim(message)]
    return claims[: max(1, limit)]


def trust_score(url: str) -> float:
    """Score a source by its hostname. Paths, query strings and lookalike hosts earn nothing."""
    try:
        host = (urlsplit(url or "").hostname or "").rstrip(".")
    except ValueError:
        return DEFAULT_TRUST
    for domain, score in SOURCE_TRUST_SCORES:
        if host == domain or host.endswith("." + domain):
            return score
    return DEFAULT_TRUST


def content_text(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        text = data
    elif isinstance(data, dict) and isinstance(data.get("content"), str):
        text = data["content"]
    else:
        try:
            text = json.dumps(data, default=str)
        except (TypeError, ValueError):
            text = str(data)
    return text[:MAX_SOURCE_CHARS]


def check_contradiction(claim: str, source_content: str) -> bool:
    lowered = source_content.lower()
    for keyword in extract_keywords(claim):
        idx = lowered.find(keyword)
        if idx == -1:
            continue
        window = source_content[max(0, idx - 100): idx + len(keyword) + 100]
        if any(p.search(window) for p in _CONTRADICTION):
            return True
    return False


def _has_trusted(sources: Sequence[SourceDocument]) -> bool:
    return any(s.trust > DEFAULT_TRUST for s in sources)


def verify_claim(claim: Claim, sources: Sequence[SourceDocument]) -> ClaimCheck:
    if claim.kind is ClaimKind.QUERY:
        # a lookup is answered by any trusted source that returned content
        backing = [s for s in sources if s.content]
        confidence = max((s.trust for s in backing), default=0.0)
        return ClaimCheck(
            claim_id=claim.claim_id,
            verified=_has_trusted(backing) and confidence >= VERIFIED_CONFIDENCE_FLOOR,
            confidence=confidence,
            supporting_urls=tuple(s.url for s in backing[:3]),
            conflict=False,
        )

    claim_keywords = set(extract_keywords(claim.text))
    matching: List[SourceDocument] = []
    conflicting: List[SourceDocument] = []
    for source in sources:
        overlap = claim_keywords.intersection(extract_keywords(source.content))
        if len(overlap) < MIN_KEYWORD_OVERLAP:
            continue
        if check_contradiction(claim.text, source.content):
            conflicting.append(source)
        else:
            matching.append(source)

    confidence = 0.0
    if matching:
        avg_trust = sum(s.trust for s in matching) / len(matching)
        confidence = min(avg_trust + min(len(matching) * 0.1, 0.3), 1.0)
    if conflicting:
        confidence *= 0.5
    return ClaimCheck(
        claim_id=claim.claim_id,
        verified=_has_trusted(matching) and confidence >= VERIFIED_CONFIDENCE_FLOOR,
        confidence=confidence,
        supporting_urls=tuple(s.url for s in matching[:3]),
        conflict=bool(conflicting),
    )


def derive_confidence(checks: Iterable[ClaimCheck]) -> str:
    checks = list(checks)
    if not checks:
        return "low"
    verified = sum(1 for c in checks if c.verified)
    conflict = any(c.conflict for c in checks)
    if verified == len(checks) and not conflict:
        return "high"
    if verified > 0 or conflict:
        return "medium"
    return "low"


__all__ = [
    "ClaimKind",
    "Claim",
    "SourceDocument",
    "ClaimCheck",
    "SOURCE_TRUST_SCORES",
    "DEFAULT_TRUST",
    "VERIFIED_CONFIDENCE_FLOOR",
    "extract_keywords",
    "extract_claims",
    "query_claim",
    "claims_for_verification",
    "trust_score",
    "content_text",
    "check_contradiction",
    "verify_claim",
    "derive_confidence",
]
