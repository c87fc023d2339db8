"""
Safe fallback responses used when a draft is rejected or data is unavailable.

Every template names zero numbers, points to authoritative external sources,
and carries no retry language: a replaced response is final.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from stance_backend.app.leakguard.patterns import contains_disallowed_numerics
from stance_backend.app.verification.freshness import LiveCategory

SAFE_RESPONSE_TEMPLATES: Dict[LiveCategory, str] = {
    LiveCategory.MARKET: (
        "I was unable to retrieve current market data for your query.\n"
        "\n"
        "For live stock prices and market information, please check:\n"
        "• **Yahoo Finance**: finance.yahoo.com\n"
        "• **Google Finance**: google.com/finance\n"
        "• **Bloomberg**: bloomberg.com/markets\n"
        "\n"
        "These sources provide real-time quotes and comprehensive market data."
    ),
    LiveCategory.CRYPTO: (
        "I was unable to retrieve current cryptocurrency data for your query.\n"
        "\n"
        "For live crypto prices and market information, please check:\n"
        "• **CoinGecko**: coingecko.com\n"
        "• **CoinMarketCap**: coinmarketcap.com\n"
        "• **Your exchange's official app or website**\n"
        "\n"
        "These sources provide real-time prices across multiple exchanges."
    ),
    LiveCategory.FX: (
        "I was unable to retrieve current exchange rate data for your query.\n"
        "\n"
        "For live currency exchange rates, please check:\n"
        "• **XE.com**: xe.com/currencyconverter\n"
        "• **Google**: search for your currency pair, for example \"USD to EUR\"\n"
        "• **Your bank's official rates**\n"
        "\n"
        "Exchange rates fluctuate continuously, so real-time sources are recommended."
    ),
    LiveCategory.WEATHER: (
        "I was unable to retrieve current weather data for your query.\n"
        "\n"
        "For live weather information, please check:\n"
        "• **Weather.com**: weather.com\n"
        "• **AccuWeather**: accuweather.com\n"
        "• **Your device's built-in weather app**\n"
        "• **National Weather Service**: weather.gov (US)\n"
        "\n"
        "These sources provide current conditions and forecasts."
    ),
    LiveCategory.TIME: (
        "I was unable to retrieve the current time for your query.\n"
        "\n"
        "For accurate time information:\n"
        "• **Check your device's clock** (most reliable for your timezone)\n"
        "• **Time.is**: time.is (world clock with timezone support)\n"
        "• **WorldTimeBuddy**: worldtimebuddy.com (for comparing timezones)\n"
        "\n"
        "Your device clock is typically synchronized with official time servers."
    ),
}

GENERIC_SAFE_RESPONSE = (
    "I couldn't verify the specific figures for your question against current sources, "
    "so I won't state precise numbers.\n"
    "\n"
    "Please check an authoritative, up-to-date source for exact values."
)

INVALID_STATE_RESPONSE = (
    "I encountered an unexpected issue while processing your request.\n"
    "\n"
    "This has been logged for investigation. Please check the relevant external sources "
    "for the information you need.\n"
    "\n"
    "If this issue persists, please report it through the feedback system."
)

_CONTEXT_PREFIX = {
    LiveCategory.MARKET: "I was unable to retrieve current market data for **{entity}**.",
    LiveCategory.CRYPTO: "I was unable to retrieve current price data for **{entity}**.",
    LiveCategory.FX: "I was unable to retrieve the current exchange rate for **{entity}**.",
    LiveCategory.WEATHER: "I was unable to retrieve current weather data for **{entity}**.",
    LiveCategory.TIME: "I was unable to retrieve the current time for **{entity}**.",
}

_REDACTED = "[data unavailable]"
_REASON_SCRUBBERS = (
    re.compile(r"[$€£¥₹₽₩][\d,]+(?:\.\d+)?"),
    re.compile(r"[\d,]+(?:\.\d+)?%"),
    re.compile(r"\d+\.\d+"),
    re.compile(r"\d{4,}"),
    re.compile(r"\d+(?:[:.,]\d+)*"),
)
_REPEATED_REDACTION = re.compile(r"\[data unavailable\](\s*\[data unavailable\])+")
_ENTITY_SCRUB = re.compile(r"[\d$€£¥%]+")


def get_safe_response(category: Optional[LiveCategory]) -> str:
    if category is None:
        return GENERIC_SAFE_RESPONSE
    return SAFE_RESPONSE_TEMPLATES[LiveCategory(category)]


def sanitize_reason(reason: str) -> str:
    """Scrub numeric fragments from a reason before a user sees it.

    Every figure is redacted, small counts included. If more than two
    fragments had to be redacted the reason is dropped entirely.
    """
    sanitized = reason or ""
    for pattern in _REASON_SCRUBBERS:
        sanitized = pattern.sub(_REDACTED, sanitized)
    sanitized = _REPEATED_REDACTION.sub(_REDACTED, sanitized)
    if sanitized.count(_REDACTED) > 2:
        return ""
    return sanitized.strip()


def build_safe_response(category: Optional[LiveCategory], reason: Optional[str] = None) -> str:
    template = get_safe_response(category)
    if not reason:
        return template
    cleaned = sanitize_reason(reason)
    if cleaned:
        return f"{cleaned}\n\n{template}"
    return template


def build_contextual_safe_response(category: Optional[LiveCategory], entity: Optional[str] = None) -> str:
    template = get_safe_response(category)
    if category is None or not entity:
        return template
    cleaned = _ENTITY_SCRUB.sub("", entity).strip()
    if not cleaned:
        return template
    lines = template.split("\n")
    lines[0] = _CONTEXT_PREFIX[LiveCategory(category)].format(entity=cleaned)
    return "\n".join(lines)


def source_lines(category: LiveCategory) -> List[str]:
    return [line for line in get_safe_response(category).split("\n") if line.startswith("•")]


def get_invalid_state_response(category: Optional[LiveCategory]) -> str:
    if category is None:
        return INVALID_STATE_RESPONSE
    sources = source_lines(category)
    if not sources:
        return INVALID_STATE_RESPONSE
    joined = "\n".join(sources)
    return (
        "I encountered an unexpected issue while processing your request.\n"
        "\n"
        "In the meantime, you can check these sources:\n"
        f"{joined}\n"
        "\n"
        "If this issue persists, please report it through the feedback system."
    )


def validate_all_templates() -> List[str]:
    """Return one error per template that contains numeric data."""
    errors = []
    for category, template in SAFE_RESPONSE_TEMPLATES.items():
        if contains_disallowed_numerics(template):
            errors.append(f"template for '{category.value}' contains disallowed numeric patterns")
    for name, text in (("generic", GENERIC_SAFE_RESPONSE), ("invalid_state", INVALID_STATE_RESPONSE)):
        if contains_disallowed_numerics(text):
            errors.append(f"template '{name}' contains disallowed numeric patterns")
    return errors


__all__ = [
    "SAFE_RESPONSE_TEMPLATES",
    "GENERIC_SAFE_RESPONSE",
    "INVALID_STATE_RESPONSE",
    "get_safe_response",
    "sanitize_reason",
    "build_safe_response",
    "build_contextual_safe_response",
    "source_lines",
    "get_invalid_state_response",
    "validate_all_templates",
]
