"""Tests for the report cache."""

from analytics.report_cache import ReportCache
from fakes import FakeClock


class TestReportCache:
    def test_miss_on_empty(self):
        assert ReportCache().get("t:p:today") is None

    def test_fresh_entry_served(self):
        clock = FakeClock()
        cache = ReportCache(ttl_seconds=300, clock=clock)
        cache.set("k", {"v": 1})
        clock.advance(299)
        assert cache.get("k") == {"v": 1}

    def test_entry_expires_at_ttl(self):
        clock = FakeClock()
        cache = ReportCache(ttl_seconds=300, clock=clock)
        cache.set("k", {"v": 1})
        clock.advance(300)
        assert cache.get("k") is None

    def test_set_replaces_stale_entry(self):
        clock = FakeClock()
        cache = ReportCache(ttl_seconds=300, clock=clock)
        cache.set("k", "old")
        clock.advance(400)
        cache.set("k", "new")
        assert cache.get("k") == "new"
        assert len(cache) == 1

    def test_key_format(self):
        assert ReportCache.make_key("acme", "default", "2026-10-19") == "acme:default:2026-10-19"
        assert ReportCache.make_key("acme", "default") == "acme:default:today"
