"""Unit tests for RouteResolver."""

from __future__ import annotations

from routelog.core.route_resolver import RouteResolver


class TestRouteFor:

    def test_known_flag_merges_category_metadata(self, resolver):
        route = resolver.route_for("user_login")
        assert route.path_template == "auth/{tenant}/{date:yyyy-MM-dd}.log"
        assert route.retention == "90d"
        assert route.category == "security"
        assert route.critical is False

    def test_entry_overrides(self, resolver):
        route = resolver.route_for("card_update")
        assert route.encrypt_fields == ("card",)
        assert route.is_pci_relevant is True
        assert resolver.route_for("disk_alert").critical is True

    def test_lookup_is_case_insensitive_and_cached(self, resolver, context):
        first = resolver.route_for("USER_LOGIN")
        second = resolver.route_for("  user_login ")
        assert first is second
        assert len(context.route_cache) == 1

    def test_idempotent_for_unknown_flags(self, resolver):
        assert resolver.route_for("nope") == resolver.route_for("nope")

    def test_unknown_flag_synthesizes_fallback(self, resolver):
        route = resolver.route_for("no such flag!")
        assert route.path_template == "missingLogRoutes/no_such_flag/2024-03-05.log"
        assert route.category == "unknown"
        assert route.description == "unknown"
        assert route.critical is False

    def test_blank_flag_fallback_name(self, resolver):
        assert resolver.route_for("!!!").path_template.startswith("missingLogRoutes/missing_route/")

    def test_malformed_table_degrades_to_fallback(self, context, engine, clock):
        table = {"broken": {"logs": [None]}}
        route = RouteResolver(table, context, engine, clock).route_for("anything")
        assert route.path_template.startswith("missingLogRoutes/anything/")
        assert context.errors.counters["route_table"] == 1

    def test_invalid_entry_degrades_to_fallback(self, context, engine, clock):
        table = {"cat": {"logs": [{"flag": "x", "path": "  "}]}}
        route = RouteResolver(table, context, engine, clock).route_for("x")
        assert route.category == "unknown"
        assert context.errors.counters["route_table"] == 1

    def test_non_category_keys_skipped(self, context, engine, clock):
        table = {"root": "/logs", "criticalRoot": "/crit", "c": {"logs": [{"flag": "a", "path": "a.log"}]}}
        route = RouteResolver(table, context, engine, clock).route_for("a")
        assert route.path_template == "a.log"

    def test_unknown_flag_follows_the_date(self, resolver, clock):
        assert resolver.route_for("nope").path_template == "missingLogRoutes/nope/2024-03-05.log"
        clock.advance(24 * 3600)
        assert resolver.route_for("nope").path_template == "missingLogRoutes/nope/2024-03-06.log"

    def test_known_flag_cached_across_days(self, resolver, clock, context):
        first = resolver.route_for("heartbeat")
        clock.advance(24 * 3600)
        assert resolver.route_for("heartbeat") is first
        assert len(context.route_cache) == 1
