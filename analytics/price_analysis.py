"""
Price-per-m² analysis.

Compares a deal's quoted price per m² with a static zone benchmark table
(corrugated board, ARS/m²) and aggregates the classifications across a
portfolio. Deals without a price are left out of portfolio analysis rather
than being reported as below market.
"""
from __future__ import annotations

import re
import statistics
from typing import Dict, List, Sequence

from models.pipeline_models import (
    DealPriceAnalysis,
    EnrichedDeal,
    PriceAnalysisResult,
    PriceAnalysisStats,
    PriceClassification,
    PriceIndicator,
    PriceStatus,
    ZoneMarketPrice,
)
from scripts.lib.utils import round_half_up

DEFAULT_ZONE = "default"

MARKET_PRICES: Dict[str, ZoneMarketPrice] = {
    "amba": ZoneMarketPrice(
        zone_id="amba", zone_name="AMBA (Buenos Aires)",
        min_price_m2=550, max_price_m2=750, avg_price_m2=650,
    ),
    "interior": ZoneMarketPrice(
        zone_id="interior", zone_name="Interior del País",
        min_price_m2=600, max_price_m2=850, avg_price_m2=725,
    ),
    "exportacion": ZoneMarketPrice(
        zone_id="exportacion", zone_name="Exportación",
        min_price_m2=500, max_price_m2=700, avg_price_m2=600,
    ),
    DEFAULT_ZONE: ZoneMarketPrice(
        zone_id=DEFAULT_ZONE, zone_name="General",
        min_price_m2=550, max_price_m2=800, avg_price_m2=675,
    ),
}

ZONE_PATTERNS: Dict[str, List[re.Pattern]] = {
    "amba": [
        re.compile(p, re.IGNORECASE) for p in (
            r"buenos\s*aires", r"capital", r"caba", r"gba",
            r"zona\s*norte", r"zona\s*sur", r"zona\s*oeste",
        )
    ],
    "interior": [
        re.compile(p, re.IGNORECASE) for p in (
            r"c[óo]rdoba", r"rosario", r"mendoza", r"tucum[áa]n",
            r"interior", r"santa\s*fe", r"salta", r"neuqu[ée]n",
        )
    ],
    "exportacion": [
        re.compile(p, re.IGNORECASE) for p in (
            r"export", r"chile", r"uruguay", r"paraguay",
            r"brasil", r"bolivia", r"internacional",
        )
    ],
}

# Traffic-light thresholds for the per-deal indicator (ARS/m²)
COMPETITIVE_MAX = 700
NORMAL_MAX = 850


def format_price_ars(price: float) -> str:
    """'$ 1.234' style formatting without locale dependencies."""
    return "$ " + f"{int(round_half_up(price)):,}".replace(",", ".")


def detect_zone(client_name: str, client_company: str) -> str:
    """Guess the market zone from client name/company text. First matching zone wins."""
    text = f"{client_name or ''} {client_company or ''}"
    for zone, patterns in ZONE_PATTERNS.items():
        if any(p.search(text) for p in patterns):
            return zone
    return DEFAULT_ZONE


def market_for(zone: str) -> ZoneMarketPrice:
    return MARKET_PRICES.get((zone or "").lower(), MARKET_PRICES[DEFAULT_ZONE])


def classify_price(quoted_price_m2: float, zone: str = DEFAULT_ZONE) -> PriceClassification:
    """Classify a quoted price against the zone's market range."""
    if quoted_price_m2 <= 0:
        return PriceClassification(
            status=PriceStatus.NO_DATA,
            label="Sin datos",
            description="No hay precio cotizado para analizar",
        )

    market = market_for(zone)
    percent_diff = (quoted_price_m2 - market.avg_price_m2) / market.avg_price_m2 * 100
    rounded_diff = round_half_up(percent_diff, 1)

    if market.min_price_m2 <= quoted_price_m2 <= market.max_price_m2:
        return PriceClassification(
            status=PriceStatus.IN_RANGE,
            label="En precio",
            description=(
                f"Precio dentro del rango de mercado "
                f"({format_price_ars(market.min_price_m2)} - {format_price_ars(market.max_price_m2)}/m²)"
            ),
            percent_diff=rounded_diff,
            market_avg=market.avg_price_m2,
            quoted_price=quoted_price_m2,
        )
    if quoted_price_m2 < market.min_price_m2:
        return PriceClassification(
            status=PriceStatus.BELOW_MARKET,
            label="Por debajo",
            description=f"Precio {abs(int(round_half_up(percent_diff)))}% por debajo del promedio de mercado",
            percent_diff=rounded_diff,
            market_avg=market.avg_price_m2,
            quoted_price=quoted_price_m2,
        )
    return PriceClassification(
        status=PriceStatus.ABOVE_MARKET,
        label="Por encima",
        description=f"Precio {int(round_half_up(percent_diff))}% por encima del promedio de mercado",
        percent_diff=rounded_diff,
        market_avg=market.avg_price_m2,
        quoted_price=quoted_price_m2,
    )


def analyze_deal_price(deal: EnrichedDeal) -> DealPriceAnalysis:
    zone = detect_zone(deal.cliente_nombre, deal.cliente_empresa)
    return DealPriceAnalysis(
        deal_id=deal.id,
        deal_name=deal.deal_name,
        client_name=deal.cliente_empresa or deal.cliente_nombre,
        zone=MARKET_PRICES[zone].zone_name,
        quoted_price_m2=deal.precio_promedio_m2,
        total_m2=deal.m2_total,
        classification=classify_price(deal.precio_promedio_m2, zone),
        created_at=deal.created_at,
    )


def calculate_price_stats(analyses: Sequence[DealPriceAnalysis]) -> PriceAnalysisStats:
    """Counts per status and the spread of percent differences."""
    if not analyses:
        return PriceAnalysisStats()

    counts = {status: 0 for status in PriceStatus}
    diffs = []
    potential_revenue = 0.0
    for analysis in analyses:
        counts[analysis.classification.status] += 1
        diffs.append(analysis.classification.percent_diff)
        potential_revenue += analysis.classification.market_avg * analysis.total_m2

    return PriceAnalysisStats(
        total=len(analyses),
        in_range=counts[PriceStatus.IN_RANGE],
        below_market=counts[PriceStatus.BELOW_MARKET],
        above_market=counts[PriceStatus.ABOVE_MARKET],
        avg_diff_percent=round_half_up(sum(diffs) / len(diffs), 1),
        min_diff_percent=min(diffs),
        max_diff_percent=max(diffs),
        median_diff_percent=round_half_up(statistics.median(diffs), 1),
        potential_revenue=round_half_up(potential_revenue),
    )


def analyze_portfolio(deals: Sequence[EnrichedDeal]) -> PriceAnalysisResult:
    """Analyze every priced deal and summarize."""
    analyses = [analyze_deal_price(d) for d in deals if d.precio_promedio_m2 > 0]
    return PriceAnalysisResult(analyses=analyses, stats=calculate_price_stats(analyses))


def get_market_prices() -> List[ZoneMarketPrice]:
    return list(MARKET_PRICES.values())


def get_price_indicator(precio_m2: float) -> PriceIndicator:
    if precio_m2 <= 0:
        return PriceIndicator(label="N/A", level="none")
    if precio_m2 <= COMPETITIVE_MAX:
        return PriceIndicator(label="Competitivo", level="good")
    if precio_m2 <= NORMAL_MAX:
        return PriceIndicator(label="Normal", level="warning")
    return PriceIndicator(label="Alto", level="high")
