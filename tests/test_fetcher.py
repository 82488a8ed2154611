"""Tests for the exhaustive deal fetcher."""

import pytest

from analytics.fetcher import build_filter_groups, fetch_all_deals, fetch_deals_page, next_cursor
from fakes import FakeDealSource, RecordingSleep, raw_deal
from models.pipeline_models import DateRange
from scripts.lib.errors import DataFetchError


def _deals(n, stage="lead"):
    return [raw_deal(str(i), stage=stage) for i in range(n)]


class TestFilterGroups:
    def test_pipeline_only(self):
        groups = build_filter_groups("default")
        assert groups == [{"filters": [{"propertyName": "pipeline", "operator": "EQ", "value": "default"}]}]

    def test_all_stages_disables_stage_filter(self):
        groups = build_filter_groups("default", ["all"])
        names = [f["propertyName"] for f in groups[0]["filters"]]
        assert "dealstage" not in names

    def test_stage_and_date_filters(self):
        groups = build_filter_groups(
            "default", ["seg", "seg14"], DateRange(start="2026-01-01", end="2026-01-31"),
        )
        filters = groups[0]["filters"]
        assert {"propertyName": "dealstage", "operator": "IN", "values": ["seg", "seg14"]} in filters
        assert {"propertyName": "createdate", "operator": "GTE", "value": "2026-01-01"} in filters
        assert {"propertyName": "createdate", "operator": "LTE", "value": "2026-01-31"} in filters

    def test_no_filters(self):
        assert build_filter_groups(None) == []

    def test_next_cursor(self):
        assert next_cursor({"paging": {"next": {"after": "100"}}}) == "100"
        assert next_cursor({"results": []}) is None


class TestFetchAllDeals:
    @pytest.mark.asyncio
    async def test_fetches_every_page(self):
        source = FakeDealSource(_deals(250))
        result = await fetch_all_deals(source, "default")
        assert len(result.deals) == 250
        assert result.pages == 3
        assert result.truncated is False
        assert [c["after"] for c in source.search_calls] == [None, "100", "200"]

    @pytest.mark.asyncio
    async def test_preserves_cursor_order(self):
        source = FakeDealSource(_deals(5), page_size=2)
        result = await fetch_all_deals(source, "default")
        assert [d["id"] for d in result.deals] == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_empty_result(self):
        result = await fetch_all_deals(FakeDealSource([]), "default")
        assert result.deals == []
        assert result.pages == 1

    @pytest.mark.asyncio
    async def test_page_ceiling_truncates(self):
        source = FakeDealSource(_deals(3), page_size=1, endless=True)
        result = await fetch_all_deals(source, "default", max_pages=50)
        assert len(source.search_calls) == 50
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_exactly_at_ceiling_not_truncated(self):
        source = FakeDealSource(_deals(4), page_size=2)
        result = await fetch_all_deals(source, "default", max_pages=2)
        assert len(result.deals) == 4
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_pacing_between_pages_only(self):
        sleep = RecordingSleep()
        source = FakeDealSource(_deals(300))
        await fetch_all_deals(source, "default", page_delay=1.5, sleep=sleep)
        assert sleep.delays == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_no_pacing_by_default(self):
        sleep = RecordingSleep()
        await fetch_all_deals(FakeDealSource(_deals(300)), "default", sleep=sleep)
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_stage_filter_applied(self):
        source = FakeDealSource(_deals(3, "seg") + _deals(2, "won"))
        result = await fetch_all_deals(source, "default", stage_ids=["won"])
        assert len(result.deals) == 2

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        source = FakeDealSource(_deals(3))
        source.search_error = RuntimeError("upstream down")
        with pytest.raises(RuntimeError):
            await fetch_all_deals(source, "default")


class TestFetchDealsPage:
    @pytest.mark.asyncio
    async def test_single_page_with_cursor(self):
        source = FakeDealSource(_deals(25))
        deals, cursor = await fetch_deals_page(source, "default", limit=10)
        assert len(deals) == 10
        assert cursor == "10"
        assert len(source.search_calls) == 1


class _MalformedSource:
    async def search_deals(self, **kwargs):
        return {"status": "error"}


class TestMalformedResponse:
    @pytest.mark.asyncio
    async def test_missing_results_raises(self):
        with pytest.raises(DataFetchError):
            await fetch_all_deals(_MalformedSource(), "default")
