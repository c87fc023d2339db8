"""
Verification Classifier Tests

- Trigger union and stakes derivation
- Health / legal / financial force stakes to HIGH
- Allowlisted contexts skip verification
- Domain detection and freshness windows
- Source trust comes from the hostname only
"""

import pytest

from stance_backend.app.contract import Intent, Stakes
from stance_backend.app.verification.claims import (
    DEFAULT_TRUST,
    VERIFIED_CONFIDENCE_FLOOR,
    SourceDocument,
    extract_claims,
    query_claim,
    trust_score,
    verify_claim,
)
from stance_backend.app.verification.freshness import (
    FreshnessAction,
    LiveCategory,
    category_for_domain,
    check_freshness,
    detect_domain,
    format_duration,
    is_immediate_domain,
)
from stance_backend.app.verification.triggers import classify
from stance_backend.app.verification.url_safety import validate_url_for_fetch


class TestClassify:
    def test_live_quote_is_high_stakes(self):
        need = classify("What's AAPL trading at right now?")
        assert need.required
        assert "financial_claim" in need.reason_codes
        assert "temporal_claim" in need.reason_codes
        assert need.stakes is Stakes.HIGH

    def test_reason_codes_follow_catalog_order(self):
        need = classify("What is the current treatment for migraines?")
        assert need.reason_codes == ("temporal_claim", "health_claim")

    def test_numeric_only_is_medium(self):
        need = classify("Is 15% a good tip?")
        assert need.reason_codes == ("numeric_claim",)
        assert need.stakes is Stakes.MEDIUM

    def test_risk_hint_raises_stakes(self):
        assert classify("Is 15% a good tip?", risk_hint=Stakes.HIGH).stakes is Stakes.HIGH

    def test_forced_codes_pin_high(self):
        assert classify("What is the legal penalty?", risk_hint=Stakes.CRITICAL).stakes is Stakes.HIGH

    def test_no_trigger(self):
        need = classify("Tell me a joke about penguins")
        assert not need.required
        assert need.reason_codes == ()
        assert need.stakes is Stakes.LOW

    @pytest.mark.parametrize(
        "message",
        [
            "Why does `price = cost * 2` fail?",
            "```\nrate = 0.05\n```\nwhat does this do",
        ],
    )
    def test_code_is_skipped(self, message):
        assert not classify(message).required

    @pytest.mark.parametrize(
        "intent",
        [
            Intent(type="translate"),
            Intent(type="summarize"),
            Intent(type="rewrite"),
            Intent(type="question", is_hypothetical=True),
        ],
    )
    def test_allowlisted_intents_skip(self, intent):
        assert not classify("What is the current stock price?", intent).required


class TestFreshness:
    def test_domains(self):
        assert detect_domain("What's AAPL trading at right now?") == "stock_prices"
        assert detect_domain("What time is it in Tokyo?") == "current_time"
        assert detect_domain("Will it rain tomorrow?") == "weather"
        assert detect_domain("hello there") == "general"

    @pytest.mark.parametrize(
        "message",
        [
            "What's the time in London?",
            "Time in Asia/Kolkata please",
            "Is it late in PST now?",
            "What is the local time?",
        ],
    )
    def test_time_queries_name_a_place(self, message):
        assert detect_domain(message) == "current_time"

    @pytest.mark.parametrize(
        "message",
        [
            "Is spending time in nature good for you right now?",
            "I had a great time in college",
            "Which time zone does my calendar use?",
        ],
    )
    def test_idiomatic_time_is_not_a_clock_query(self, message):
        assert detect_domain(message) != "current_time"

    def test_categories(self):
        assert category_for_domain("stock_prices") is LiveCategory.MARKET
        assert category_for_domain("current_time") is LiveCategory.TIME
        assert category_for_domain("news") is None

    def test_immediate(self):
        assert is_immediate_domain("crypto_prices")
        assert not is_immediate_domain("exchange_rates")

    def test_fresh_data(self):
        result = check_freshness("stock_prices", 1000.0, now=1000.0 + 60)
        assert not result.is_stale
        assert result.required_action is FreshnessAction.NONE

    def test_stale_immediate_blocks_numerics(self):
        result = check_freshness("stock_prices", 1000.0, now=1000.0 + 3600)
        assert result.is_stale
        assert result.required_action is FreshnessAction.BLOCK_NUMERICS
        assert result.stale_by == "45 minutes"

    def test_unknown_age_is_stale(self):
        assert check_freshness("weather", None).is_stale

    def test_timeless_domain_never_stale(self):
        assert not check_freshness("math_principles", 0.0, now=10**10).is_stale

    def test_format_duration(self):
        assert format_duration(1) == "1 second"
        assert format_duration(120) == "2 minutes"
        assert format_duration(7200) == "2 hours"
        assert format_duration(86400) == "1 day"


class TestUrlSafety:
    @pytest.mark.parametrize(
        "url",
        ["https://www.reuters.com/markets", "https://api.example.org/v1/quote?q=x"],
    )
    def test_allowed(self, url):
        assert validate_url_for_fetch(url).valid

    @pytest.mark.parametrize(
        "url,reason",
        [
            ("http://www.reuters.com/markets", "https_required"),
            ("https://localhost/admin", "blocked_hostname"),
            ("https://169.254.169.254/latest/meta-data", "blocked_hostname"),
            ("https://10.0.0.5/internal", "private_address"),
            ("https://100.64.1.1/", "private_address"),
            ("https://printer.local/", "local_hostname"),
            ("https://service.internal/", "local_hostname"),
            ("not a url", "https_required"),
        ],
    )
    def test_blocked(self, url, reason):
        check = validate_url_for_fetch(url)
        assert not check.valid
        assert check.reason == reason


class TestClaimTrust:
    @pytest.mark.parametrize(
        "url,score",
        [
            ("https://www.reuters.com/markets", 0.88),
            ("https://reuters.com/", 0.88),
            ("https://www.fda.gov/drugs", 0.95),
            ("https://example.com/?ref=reuters.com", DEFAULT_TRUST),
            ("https://reuters.com.attacker.net/story", DEFAULT_TRUST),
            ("https://notreuters.com/", DEFAULT_TRUST),
            ("https://example.com/gov/report", DEFAULT_TRUST),
            ("not a url", DEFAULT_TRUST),
        ],
    )
    def test_scored_by_hostname(self, url, score):
        assert trust_score(url) == score

    def make_claim(self):
        claims = extract_claims("Unemployment figures rose sharply across regions today.")
        assert len(claims) == 1
        return claims[0]

    def make_source(self, url):
        return SourceDocument(
            url=url,
            content="Unemployment figures rose sharply across regions today",
            trust=trust_score(url),
        )

    def test_single_unknown_source_does_not_verify(self):
        check = verify_claim(self.make_claim(), [self.make_source("https://random-blog.example/post")])
        assert not check.verified
        assert check.confidence < VERIFIED_CONFIDENCE_FLOOR

    def test_spoofed_hosts_do_not_verify(self):
        sources = [
            self.make_source("https://reuters.com.attacker.net/story"),
            self.make_source("https://attacker.net/?u=https://www.reuters.com"),
        ]
        assert not verify_claim(self.make_claim(), sources).verified

    def test_trusted_source_verifies(self):
        check = verify_claim(self.make_claim(), [self.make_source("https://www.reuters.com/markets")])
        assert check.verified
        assert check.supporting_urls == ("https://www.reuters.com/markets",)

    def test_lookup_from_unknown_source_does_not_verify(self):
        claim = query_claim("What's AAPL trading at right now?")
        source = SourceDocument(url="https://quotes.example/aapl", content="AAPL 187.50", trust=trust_score("https://quotes.example/aapl"))
        assert not verify_claim(claim, [source]).verified
