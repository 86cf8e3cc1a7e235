"""Tests for request classification."""

from __future__ import annotations

import pytest

from offsync.models import EngineConfig, Strategy
from offsync.strategies.resolver import Rule, StrategyResolver, classify


class TestDefaultRules:
    def test_api_get_is_network_first(self) -> None:
        assert classify("GET", "/api/transactions") is Strategy.NETWORK_FIRST

    def test_script_is_cache_first(self) -> None:
        assert classify("GET", "/js/app.js") is Strategy.CACHE_FIRST

    def test_page_is_stale_while_revalidate(self) -> None:
        assert classify("GET", "/dashboard") is Strategy.STALE_WHILE_REVALIDATE

    def test_api_post_is_bypass(self) -> None:
        assert classify("POST", "/api/transactions") is Strategy.BYPASS

    @pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
    def test_every_non_get_is_bypass(self, method: str) -> None:
        assert classify(method, "/css/main.css") is Strategy.BYPASS

    def test_method_case_insensitive(self) -> None:
        assert classify("get", "/api/budgets") is Strategy.NETWORK_FIRST

    @pytest.mark.parametrize(
        "path",
        ["/css/main.css", "/assets/icon-192.png", "/img/logo.SVG", "/fonts/outfit.woff2"],
    )
    def test_static_extensions(self, path: str) -> None:
        assert classify("GET", path) is Strategy.CACHE_FIRST

    @pytest.mark.parametrize("path", ["/report.pdf", "/data.xyz", "/", "/index.html"])
    def test_unknown_extensions_fall_through(self, path: str) -> None:
        assert classify("GET", path) is Strategy.STALE_WHILE_REVALIDATE

    def test_absolute_url_with_query(self) -> None:
        url = "https://app.example.com/api/transactions?type=expense"
        assert classify("GET", url) is Strategy.NETWORK_FIRST

    def test_api_rule_wins_over_extension(self) -> None:
        assert classify("GET", "/api/export.js") is Strategy.NETWORK_FIRST

    def test_prefix_must_match_whole_segment(self) -> None:
        assert classify("GET", "/apiary") is Strategy.STALE_WHILE_REVALIDATE


class TestResolver:
    def test_custom_api_prefix(self) -> None:
        resolver = StrategyResolver(EngineConfig(api_prefix="/v2"))
        assert resolver.classify("GET", "/v2/users") is Strategy.NETWORK_FIRST
        assert resolver.classify("GET", "/api/users") is Strategy.STALE_WHILE_REVALIDATE

    def test_custom_rule_evaluated_first(self) -> None:
        resolver = StrategyResolver()
        resolver.add_rule(
            Rule("health", lambda method, path: path == "/api/health", Strategy.BYPASS)
        )
        assert resolver.classify("GET", "/api/health") is Strategy.BYPASS
        assert resolver.classify("GET", "/api/users") is Strategy.NETWORK_FIRST

    def test_rules_are_ordered(self) -> None:
        names = [rule.name for rule in StrategyResolver().rules]
        assert names == ["non-get", "api", "static-asset", "default"]

    def test_is_api(self) -> None:
        resolver = StrategyResolver()
        assert resolver.is_api("https://app.example.com/api/transactions/3")
        assert not resolver.is_api("https://app.example.com/js/api.js")
