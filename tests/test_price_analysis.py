"""Tests for price-per-m2 analysis."""

import pytest

from analytics.price_analysis import (
    analyze_deal_price,
    analyze_portfolio,
    calculate_price_stats,
    classify_price,
    detect_zone,
    format_price_ars,
    get_market_prices,
    get_price_indicator,
)
from fakes import make_deal
from models.pipeline_models import PriceStatus


class TestClassifyPrice:
    def test_in_range(self):
        result = classify_price(650, "amba")
        assert result.status == PriceStatus.IN_RANGE
        assert result.percent_diff == 0
        assert result.market_avg == 650

    def test_range_bounds_are_inclusive(self):
        assert classify_price(550, "amba").status == PriceStatus.IN_RANGE
        assert classify_price(750, "amba").status == PriceStatus.IN_RANGE

    def test_below_market(self):
        result = classify_price(500, "amba")
        assert result.status == PriceStatus.BELOW_MARKET
        assert result.percent_diff == -23.1
        assert "23%" in result.description

    def test_above_market(self):
        result = classify_price(900, "interior")
        assert result.status == PriceStatus.ABOVE_MARKET
        assert result.percent_diff == 24.1

    def test_no_price(self):
        assert classify_price(0).status == PriceStatus.NO_DATA

    def test_unknown_zone_uses_default(self):
        assert classify_price(800, "marte").status == PriceStatus.IN_RANGE

    def test_half_percent_rounds_up(self):
        result = classify_price(711, "exportacion")
        assert result.status == PriceStatus.ABOVE_MARKET
        assert result.percent_diff == 18.5
        assert "19%" in result.description


class TestZones:
    @pytest.mark.parametrize("name,company,zone", [
        ("Juan", "Cartonera Córdoba", "interior"),
        ("Ana", "Distribuidora CABA", "amba"),
        ("", "Export Chile SpA", "exportacion"),
        ("Pedro", "Embalajes SRL", "default"),
    ])
    def test_detect_zone(self, name, company, zone):
        assert detect_zone(name, company) == zone

    def test_market_table(self):
        zones = {z.zone_id for z in get_market_prices()}
        assert zones == {"amba", "interior", "exportacion", "default"}


class TestPortfolio:
    def test_only_priced_deals_are_analyzed(self):
        deals = [
            make_deal("1", amount=65000, m2=100, precio_promedio_m2=650, cliente_empresa="Buenos Aires SA"),
            make_deal("2", amount=50000, m2=100, precio_promedio_m2=500, cliente_empresa="Buenos Aires SA"),
            make_deal("3", amount=1000),
        ]
        result = analyze_portfolio(deals)
        assert [a.deal_id for a in result.analyses] == ["1", "2"]
        assert result.stats.total == 2
        assert result.stats.in_range == 1
        assert result.stats.below_market == 1
        assert result.stats.min_diff_percent == -23.1
        assert result.stats.max_diff_percent == 0
        assert result.stats.potential_revenue == 130000

    def test_empty_stats(self):
        stats = calculate_price_stats([])
        assert stats.total == 0
        assert stats.avg_diff_percent == 0

    def test_deal_analysis_uses_zone_name(self):
        deal = make_deal("1", precio_promedio_m2=700, m2=10, cliente_nombre="Cliente Rosario")
        analysis = analyze_deal_price(deal)
        assert analysis.zone == "Interior del País"
        assert analysis.client_name == "Cliente Rosario"


class TestIndicator:
    @pytest.mark.parametrize("price,label", [
        (0, "N/A"), (700, "Competitivo"), (701, "Normal"), (850, "Normal"), (851, "Alto"),
    ])
    def test_thresholds(self, price, label):
        assert get_price_indicator(price).label == label

    def test_format(self):
        assert format_price_ars(1234) == "$ 1.234"
        assert format_price_ars(550) == "$ 550"
