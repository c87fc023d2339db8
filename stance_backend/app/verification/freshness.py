"""Freshness windows and domain detection for live-data claims."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Pattern, Tuple

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


class LiveCategory(str, Enum):
    MARKET = "market"
    CRYPTO = "crypto"
    FX = "fx"
    WEATHER = "weather"
    TIME = "time"


class FreshnessAction(str, Enum):
    NONE = "none"
    WARN = "warn"
    VERIFY = "verify"
    BLOCK_NUMERICS = "block_numerics"


@dataclass(frozen=True)
class FreshnessWindow:
    domain: str
    max_age_seconds: Optional[int]  # None means never stale
    immediate: bool
    description: str


FRESHNESS_WINDOWS: Dict[str, FreshnessWindow] = {
    w.domain: w
    for w in (
        FreshnessWindow("stock_prices", 15 * _MINUTE, True, "Market data"),
        FreshnessWindow("crypto_prices", 5 * _MINUTE, True, "Cryptocurrency prices"),
        FreshnessWindow("weather", _HOUR, True, "Weather conditions"),
        FreshnessWindow("breaking_news", 4 * _HOUR, True, "Breaking news"),
        FreshnessWindow("current_time", _MINUTE, True, "Current time"),
        FreshnessWindow("news", _DAY, False, "News articles"),
        FreshnessWindow("sports_scores", 2 * _HOUR, False, "Sports scores"),
        FreshnessWindow("exchange_rates", _DAY, False, "Exchange rates"),
        FreshnessWindow("product_prices", 7 * _DAY, False, "Product prices"),
        FreshnessWindow("company_info", 30 * _DAY, False, "Company information"),
        FreshnessWindow("laws_regulations", 90 * _DAY, False, "Laws and regulations"),
        FreshnessWindow("medical_guidelines", 180 * _DAY, False, "Medical guidelines"),
        FreshnessWindow("historical_facts", None, False, "Historical facts"),
        FreshnessWindow("math_principles", None, False, "Mathematical principles"),
        FreshnessWindow("physics_laws", None, False, "Physical laws"),
        FreshnessWindow("general", 30 * _DAY, False, "General information"),
    )
}


CITY_TIMEZONES: Dict[str, str] = {
    "new york": "America/New_York",
    "los angeles": "America/Los_Angeles",
    "san francisco": "America/Los_Angeles",
    "chicago": "America/Chicago",
    "denver": "America/Denver",
    "toronto": "America/Toronto",
    "mexico city": "America/Mexico_City",
    "sao paulo": "America/Sao_Paulo",
    "london": "Europe/London",
    "paris": "Europe/Paris",
    "berlin": "Europe/Berlin",
    "madrid": "Europe/Madrid",
    "moscow": "Europe/Moscow",
    "dubai": "Asia/Dubai",
    "mumbai": "Asia/Kolkata",
    "delhi": "Asia/Kolkata",
    "singapore": "Asia/Singapore",
    "hong kong": "Asia/Hong_Kong",
    "shanghai": "Asia/Shanghai",
    "beijing": "Asia/Shanghai",
    "tokyo": "Asia/Tokyo",
    "seoul": "Asia/Seoul",
    "sydney": "Australia/Sydney",
    "auckland": "Pacific/Auckland",
}

ZONE_ABBREVIATIONS = (
    "UTC", "GMT", "EST", "EDT", "CST", "CDT", "MST", "MDT", "PST", "PDT",
    "BST", "CET", "CEST", "IST", "JST", "KST", "AEST", "AEDT",
)

_CITY_ALTERNATION = "|".join(re.escape(city) for city in CITY_TIMEZONES)
_ZONE_ALTERNATION = "|".join(ZONE_ABBREVIATIONS)


def _rx(expr: str) -> Pattern[str]:
    return re.compile(expr, re.IGNORECASE)


# "time in" only counts when a known city, IANA zone or abbreviation follows
_TIME_QUERY_PATTERNS: Tuple[Pattern[str], ...] = (
    _rx(r"\b(?:what time|current time|time is it|local time)\b"),
    _rx(rf"\btime (?:in|at|for) (?:{_CITY_ALTERNATION})\b"),
    re.compile(r"\b[Tt]ime (?:in|at|for) [A-Z][A-Za-z_]+/[A-Z][A-Za-z_]+"),
    re.compile(rf"\b(?:{_ZONE_ALTERNATION})\b(?: time| now|\?)"),
    re.compile(rf"\b[Tt]ime (?:in|at) (?:{_ZONE_ALTERNATION})\b"),
)


# (domain, patterns, priority); higher priority is more specific
DOMAIN_PATTERNS: Tuple[Tuple[str, Tuple[Pattern[str], ...], int], ...] = (
    ("current_time", _TIME_QUERY_PATTERNS, 11),
    ("crypto_prices", (
        _rx(r"\b(?:bitcoin|btc|ethereum|eth|crypto(?:currency)?|altcoin|defi)\b"),
        _rx(r"\b(?:binance|coinbase|kraken|uniswap)\b"),
    ), 10),
    ("stock_prices", (
        _rx(r"\b(?:stock|share|equity|ticker|NYSE|NASDAQ|S&P|dow jones)\b"),
        _rx(r"\b(?:market price|trading at|stock price|share price)\b"),
        re.compile(r"\b[A-Z]{1,5}\s+(?:stock|price|trading)\b"),
    ), 9),
    ("weather", (
        _rx(r"\b(?:weather|forecast|temperature|rain|snow|humidity|wind)\b"),
        _rx(r"\b(?:sunny|cloudy|stormy|precipitation)\b"),
    ), 8),
    ("breaking_news", (
        _rx(r"\b(?:breaking news|just (?:happened|announced)|latest news)\b"),
        _rx(r"\b(?:live update|developing story)\b"),
    ), 7),
    ("exchange_rates", (
        _rx(r"\b(?:exchange rate|forex|currency|USD|EUR|GBP|JPY)\b"),
        _rx(r"\b(?:convert|conversion)\s+(?:to|from|between)\b"),
    ), 7),
    ("sports_scores", (
        _rx(r"\b(?:score|game|match|won|lost|tied|championship)\b"),
        re.compile(r"\b(?:NFL|NBA|MLB|NHL|FIFA|Olympics)\b"),
    ), 6),
    ("laws_regulations", (
        _rx(r"\b(?:law|legal|regulation|statute|legislation|act of)\b"),
        _rx(r"\b(?:illegal|lawful|prohibited|permitted|required by law)\b"),
    ), 6),
    ("medical_guidelines", (
        _rx(r"\b(?:medical|clinical|treatment|diagnosis|therapy|guideline)\b"),
        re.compile(r"\b(?:CDC|WHO|FDA|NIH)\s+(?:recommend|guideline)", re.IGNORECASE),
    ), 6),
    ("news", (
        _rx(r"\b(?:news|headline|article|report|coverage)\b"),
        _rx(r"\b(?:announced|reported|according to)\b"),
    ), 5),
    ("product_prices", (
        _rx(r"\b(?:price|cost|how much|pricing)\b.*\b(?:buy|purchase|order)\b"),
        _rx(r"\b(?:product|item|goods)\b.*\b(?:price|cost)\b"),
    ), 4),
    ("math_principles", (
        _rx(r"\b(?:theorem|proof|equation|formula|mathematical)\b"),
        _rx(r"\b(?:calculus|algebra|geometry|trigonometry)\b"),
    ), 3),
    ("physics_laws", (
        _rx(r"\b(?:physics|newton|einstein|quantum|relativity)\b"),
        _rx(r"\b(?:gravity|momentum|entropy|thermodynamics)\b"),
    ), 3),
    ("historical_facts", (
        _rx(r"\b(?:history|historical|ancient|century|era|dynasty)\b"),
        _rx(r"\b(?:in \d{4}|during the)\b"),
    ), 2),
)

DOMAIN_TO_CATEGORY: Dict[str, LiveCategory] = {
    "stock_prices": LiveCategory.MARKET,
    "crypto_prices": LiveCategory.CRYPTO,
    "exchange_rates": LiveCategory.FX,
    "weather": LiveCategory.WEATHER,
    "current_time": LiveCategory.TIME,
}


@dataclass(frozen=True)
class FreshnessResult:
    domain: str
    window: FreshnessWindow
    is_stale: bool
    stale_by: Optional[str]
    required_action: FreshnessAction


def detect_domain(message: str) -> str:
    best: Optional[Tuple[str, int]] = None
    for domain, patterns, priority in DOMAIN_PATTERNS:
        if any(p.search(message) for p in patterns):
            if best is None or priority > best[1]:
                best = (domain, priority)
    return best[0] if best else "general"


def category_for_domain(domain: str) -> Optional[LiveCategory]:
    return DOMAIN_TO_CATEGORY.get(domain)


def is_immediate_domain(domain: str) -> bool:
    window = FRESHNESS_WINDOWS.get(domain)
    return bool(window and window.immediate)


def format_duration(seconds: float) -> str:
    total = int(max(0, seconds))
    days, rem = divmod(total, _DAY)
    hours, rem = divmod(rem, _HOUR)
    minutes, secs = divmod(rem, _MINUTE)
    if days:
        return f"{days} day{'s' if days > 1 else ''}"
    if hours:
        return f"{hours} hour{'s' if hours > 1 else ''}"
    if minutes:
        return f"{minutes} minute{'s' if minutes > 1 else ''}"
    return f"{secs} second{'s' if secs != 1 else ''}"


def check_freshness(domain: str, data_timestamp: Optional[float], now: Optional[float] = None) -> FreshnessResult:
    """Decide what to do with data of a given age.

    ``data_timestamp`` is epoch seconds; None means the age is unknown and the
    data is treated as stale.
    """
    window = FRESHNESS_WINDOWS.get(domain) or FRESHNESS_WINDOWS["general"]
    if window.max_age_seconds is None:
        return FreshnessResult(domain, window, False, None, FreshnessAction.NONE)

    if data_timestamp is None:
        action = FreshnessAction.BLOCK_NUMERICS if window.immediate else FreshnessAction.VERIFY
        return FreshnessResult(domain, window, True, "unknown age", action)

    current = time.time() if now is None else now
    age = current - data_timestamp
    if age <= window.max_age_seconds:
        return FreshnessResult(domain, window, False, None, FreshnessAction.NONE)

    stale_by = age - window.max_age_seconds
    if window.immediate:
        action = FreshnessAction.BLOCK_NUMERICS
    elif stale_by > window.max_age_seconds:
        action = FreshnessAction.VERIFY
    else:
        action = FreshnessAction.WARN
    return FreshnessResult(domain, window, True, format_duration(stale_by), action)


__all__ = [
    "CITY_TIMEZONES",
    "ZONE_ABBREVIATIONS",
    "LiveCategory",
    "FreshnessAction",
    "FreshnessWindow",
    "FreshnessResult",
    "FRESHNESS_WINDOWS",
    "DOMAIN_PATTERNS",
    "DOMAIN_TO_CATEGORY",
    "detect_domain",
    "category_for_domain",
    "is_immediate_domain",
    "format_duration",
    "check_freshness",
]
