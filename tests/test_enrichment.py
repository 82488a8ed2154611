"""Tests for deal enrichment."""

from datetime import datetime, timezone

import pytest

from analytics.enrichment import (
    association_ids,
    enrich_deal,
    enrich_deals,
    fetch_line_items,
    parse_line_item,
    resolve_company_names,
)
from fakes import FakeDealSource, directory, raw_deal

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _line_item(item_id, quantity="10", m2="0.5", price="700", amount="0"):
    return {"id": item_id, "properties": {
        "name": f"Caja {item_id}", "quantity": quantity, "amount": amount,
        "mp_metros_cuadrados_item": m2, "mp_precio_m2_unitario": price,
        "mp_largo_mm": "400", "mp_ancho_mm": "300", "mp_alto_mm": "200", "mp_tipo_caja": "C",
    }}


class TestEnrichDeal:
    @pytest.mark.parametrize("value", ["abc", "", None])
    def test_malformed_amount_is_zero(self, value):
        deal = enrich_deal(raw_deal("1", amount=value), directory(), NOW)
        assert deal.amount == 0.0

    def test_decimal_amount(self):
        deal = enrich_deal(raw_deal("1", amount="12.5"), directory(), NOW)
        assert deal.amount == 12.5

    def test_stage_label_and_unknown_stage(self):
        d = directory()
        assert enrich_deal(raw_deal("1", stage="won"), d, NOW).stage_label == "Cierre ganado"
        assert enrich_deal(raw_deal("2", stage="ghost"), d, NOW).stage_label == ""

    def test_days_since_creation(self):
        deal = enrich_deal(raw_deal("1", created="2026-10-09T12:00:00Z"), directory(), NOW)
        assert deal.days_since_creation == 10

    def test_price_per_m2_from_deal_area(self):
        deal = enrich_deal(
            raw_deal("1", amount="65000", mp_metros_cuadrados_totales="100"), directory(), NOW,
        )
        assert deal.m2_total == 100
        assert deal.precio_promedio_m2 == 650

    def test_no_area_gives_zero_price(self):
        deal = enrich_deal(raw_deal("1", amount="1000"), directory(), NOW)
        assert deal.precio_promedio_m2 == 0

    def test_line_items_override_deal_area(self):
        items = [parse_line_item(_line_item("a")), parse_line_item(_line_item("b", quantity="20"))]
        deal = enrich_deal(
            raw_deal("1", amount="1000", mp_metros_cuadrados_totales="999"),
            directory(), NOW, line_items=items,
        )
        assert deal.m2_total == 15.0
        assert len(deal.line_items) == 2

    def test_items_json_and_text_fields(self):
        deal = enrich_deal(
            raw_deal("1", mp_items_json='[{"a": 1}]', mp_cliente_empresa="ACME", mp_notas_rapidas=""),
            directory(), NOW, company_name="ACME SA",
        )
        assert deal.items_json == [{"a": 1}]
        assert deal.cliente_empresa == "ACME"
        assert deal.notas_rapidas is None
        assert deal.associated_company_name == "ACME SA"

    def test_bad_items_json_ignored(self):
        deal = enrich_deal(raw_deal("1", mp_items_json="{not json"), directory(), NOW)
        assert deal.items_json is None

    def test_enriched_deal_is_frozen(self):
        deal = enrich_deal(raw_deal("1"), directory(), NOW)
        with pytest.raises(Exception):
            deal.amount = 5


class TestParseLineItem:
    def test_derived_area_and_subtotal(self):
        item = parse_line_item(_line_item("a", quantity="10", m2="0.5", price="700"))
        assert item.m2_totales == 5.0
        assert item.subtotal_sin_iva == 3500.0
        assert item.calidad == "C"

    def test_subtotal_falls_back_to_amount(self):
        item = parse_line_item(_line_item("a", price="", amount="1234.5"))
        assert item.subtotal_sin_iva == 1234.5


class TestAssociations:
    def test_association_ids_accepts_spaced_key(self):
        deal = {"associations": {"line items": {"results": [{"id": 7}, {"id": 8}]}}}
        assert association_ids(deal, "line_items") == ["7", "8"]

    def test_missing_associations(self):
        assert association_ids({}, "companies") == []

    @pytest.mark.asyncio
    async def test_company_failure_is_isolated(self):
        source = FakeDealSource()
        source.associations = {
            "1": {"companies": {"results": [{"id": "c1"}]}},
            "3": {"companies": {"results": [{"id": "c3"}]}},
        }
        source.companies = {"c1": "Uno SA", "c3": "Tres SRL"}
        source.failing_deals = {"2"}

        names = await resolve_company_names(source, ["1", "2", "3"])
        assert names == {"1": "Uno SA", "2": None, "3": "Tres SRL"}

    @pytest.mark.asyncio
    async def test_line_items_batched_and_grouped(self):
        source = FakeDealSource()
        source.associations = {
            "1": {"line_items": {"results": [{"id": "a"}, {"id": "b"}]}},
            "2": {"line_items": {"results": [{"id": "c"}]}},
        }
        source.line_items = {i: _line_item(i) for i in ("a", "b", "c")}
        source.failing_deals = {"3"}

        items = await fetch_line_items(source, ["1", "2", "3"])
        assert [li.id for li in items["1"]] == ["a", "b"]
        assert [li.id for li in items["2"]] == ["c"]
        assert items["3"] == []
        assert source.line_item_batches == [["a", "b", "c"]]


class TestEnrichDeals:
    @pytest.mark.asyncio
    async def test_batch_uses_one_instant_and_keeps_order(self):
        raws = [raw_deal(str(i), created="2026-10-18T12:00:00Z") for i in range(5)]
        deals = await enrich_deals(raws, directory(), now=NOW)
        assert [d.id for d in deals] == ["0", "1", "2", "3", "4"]
        assert {d.days_since_creation for d in deals} == {1}

    @pytest.mark.asyncio
    async def test_with_companies(self):
        source = FakeDealSource()
        source.associations = {"1": {"companies": {"results": [{"id": "c1"}]}}}
        source.companies = {"c1": "Uno SA"}
        deals = await enrich_deals([raw_deal("1"), raw_deal("2")], directory(), source=source,
                                   now=NOW, with_companies=True)
        assert deals[0].associated_company_name == "Uno SA"
        assert deals[1].associated_company_name is None
