"""
Pipeline aggregators.

Pure reductions over (stages, enriched deals): KPI summary, full-pipeline
metrics with per-stage breakdown, monthly series, top clients, outcome
distribution, follow-up and order views, the line-item report and the daily
summary. None of these perform I/O.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Sequence

from analytics.classifier import Outcome, classify, outcome
from analytics.config import (
    FOLLOW_UP_THRESHOLD_DAYS,
    MONTHLY_SERIES_MONTHS,
    NO_CLIENT_LABEL,
    TOP_CLIENTS_LIMIT,
)
from models.pipeline_models import (
    ClientRanking,
    DailyReportData,
    DealPartition,
    DistributionSlice,
    EnrichedDeal,
    FullPipelineMetrics,
    ItemsReportData,
    MonthlyPoint,
    PedidosData,
    PipelineMetrics,
    PriceAnalysisStats,
    ReportData,
    ReportLineItem,
    SeguimientoData,
    Stage,
    StageMetric,
)
from scripts.lib.utils import month_key, parse_ts, round_half_up, safe_div

DISTRIBUTION_COLORS = {
    Outcome.OPEN: "#3b82f6",
    Outcome.WON: "#10b981",
    Outcome.LOST: "#ef4444",
}
DISTRIBUTION_NAMES = {
    Outcome.OPEN: "Abiertos",
    Outcome.WON: "Ganados",
    Outcome.LOST: "Perdidos",
}


def _amount(deals: Sequence[EnrichedDeal]) -> float:
    return sum(d.amount for d in deals)


def _m2(deals: Sequence[EnrichedDeal]) -> float:
    return sum(d.m2_total for d in deals)


def _pct(part: float, whole: float) -> float:
    return round(safe_div(part, whole) * 100, 1)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def partition_deals(deals: Sequence[EnrichedDeal]) -> DealPartition:
    """Split deals into won / lost / open. Every deal lands in exactly one bucket."""
    buckets: Dict[Outcome, List[EnrichedDeal]] = {o: [] for o in Outcome}
    for deal in deals:
        buckets[outcome(deal.stage_label)].append(deal)
    return DealPartition(
        won=buckets[Outcome.WON],
        lost=buckets[Outcome.LOST],
        open=buckets[Outcome.OPEN],
    )


def kpi_summary(stages: Sequence[Stage], deals: Sequence[EnrichedDeal]) -> PipelineMetrics:
    """Open pipeline value and count, plus won amount, count and average ticket."""
    partition = partition_deals(deals)
    won_amount = _amount(partition.won)
    return PipelineMetrics(
        total_amount=round(_amount(partition.open), 2),
        deal_count=len(partition.open),
        avg_ticket=round(safe_div(won_amount, len(partition.won)), 2),
        won_amount=round(won_amount, 2),
        won_count=len(partition.won),
    )


def stage_breakdown(stages: Sequence[Stage], deals: Sequence[EnrichedDeal]) -> List[StageMetric]:
    """Per-stage counts over the full stage list, ordered by display order."""
    totals: Dict[str, Dict[str, float]] = {}
    for deal in deals:
        entry = totals.setdefault(deal.stage_id, {"count": 0, "amount": 0.0, "m2": 0.0})
        entry["count"] += 1
        entry["amount"] += deal.amount
        entry["m2"] += deal.m2_total

    metrics = []
    for stage in sorted(stages, key=lambda s: s.display_order):
        entry = totals.get(stage.id, {"count": 0, "amount": 0.0, "m2": 0.0})
        metrics.append(StageMetric(
            stage_id=stage.id,
            stage_label=stage.label,
            display_order=stage.display_order,
            deal_count=int(entry["count"]),
            total_amount=round(entry["amount"], 2),
            total_m2=round(entry["m2"], 4),
            avg_price_per_m2=round(safe_div(entry["amount"], entry["m2"]), 2),
        ))
    return metrics


def full_pipeline_metrics(stages: Sequence[Stage], deals: Sequence[EnrichedDeal]) -> FullPipelineMetrics:
    partition = partition_deals(deals)
    won_amount = _amount(partition.won)
    lost_amount = _amount(partition.lost)
    open_amount = _amount(partition.open)
    won_m2 = _m2(partition.won)
    open_m2 = _m2(partition.open)
    closed = len(partition.won) + len(partition.lost)

    return FullPipelineMetrics(
        total_deals=len(deals),
        open_deals=len(partition.open),
        won_deals=len(partition.won),
        lost_deals=len(partition.lost),
        total_pipeline_amount=round(open_amount, 2),
        won_amount=round(won_amount, 2),
        lost_amount=round(lost_amount, 2),
        avg_ticket_won=round(safe_div(won_amount, len(partition.won)), 2),
        avg_ticket_open=round(safe_div(open_amount, len(partition.open)), 2),
        total_m2_pipeline=round(open_m2, 4),
        total_m2_won=round(won_m2, 4),
        total_m2_lost=round(_m2(partition.lost), 4),
        avg_price_per_m2_won=round(safe_div(won_amount, won_m2), 2),
        avg_price_per_m2_open=round(safe_div(open_amount, open_m2), 2),
        win_rate=_pct(len(partition.won), closed),
        loss_rate=_pct(len(partition.lost), closed),
        stage_breakdown=stage_breakdown(stages, deals),
    )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def _shift_months(month_start: datetime, months: int) -> datetime:
    year, month = divmod(month_start.year * 12 + month_start.month - 1 + months, 12)
    return month_start.replace(year=year, month=month + 1)


def monthly_series(
    deals: Sequence[EnrichedDeal],
    now: datetime,
    months: int = MONTHLY_SERIES_MONTHS,
) -> List[MonthlyPoint]:
    """
    Monthly amount / m² / deal counts for the last ``months`` calendar months,
    oldest first, ending at ``now``'s month.

    The window opens at the first instant of the oldest month. Deals created
    before that (or after ``now``) are left out.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    current = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    window_start = _shift_months(current, -(months - 1))

    buckets: Dict[str, Dict[str, float]] = {
        month_key(_shift_months(window_start, i)): {"monto": 0.0, "m2": 0.0, "deals": 0}
        for i in range(months)
    }
    for deal in deals:
        created = parse_ts(deal.create_date)
        if created is None:
            continue
        created = created.astimezone(now.tzinfo)
        if created < window_start or created > now:
            continue
        bucket = buckets[month_key(created)]
        bucket["monto"] += deal.amount
        bucket["m2"] += deal.m2_total
        bucket["deals"] += 1

    return [
        MonthlyPoint(name=key, monto=round(b["monto"], 2), m2=round(b["m2"], 4), deals=int(b["deals"]))
        for key, b in buckets.items()
    ]


def client_name(deal: EnrichedDeal) -> str:
    return deal.cliente_empresa or deal.cliente_nombre or NO_CLIENT_LABEL


def top_clients(deals: Sequence[EnrichedDeal], limit: int = TOP_CLIENTS_LIMIT) -> List[ClientRanking]:
    """Clients ranked by total amount; ties keep first-seen order."""
    groups: Dict[str, Dict[str, float]] = {}
    for deal in deals:
        entry = groups.setdefault(client_name(deal), {"value": 0.0, "m2": 0.0, "deals": 0})
        entry["value"] += deal.amount
        entry["m2"] += deal.m2_total
        entry["deals"] += 1

    ranked = sorted(groups.items(), key=lambda kv: kv[1]["value"], reverse=True)
    return [
        ClientRanking(name=name, value=round(g["value"], 2), m2=round(g["m2"], 4), deals=int(g["deals"]))
        for name, g in ranked[:limit]
    ]


def stage_distribution(deals: Sequence[EnrichedDeal]) -> List[DistributionSlice]:
    """
    Open / won / lost shares as integer percentages.

    Each slice is rounded on its own, so the three values may add up to 99
    or 101.
    """
    partition = partition_deals(deals)
    counts = {
        Outcome.OPEN: len(partition.open),
        Outcome.WON: len(partition.won),
        Outcome.LOST: len(partition.lost),
    }
    divisor = max(len(deals), 1)
    return [
        DistributionSlice(
            name=DISTRIBUTION_NAMES[key],
            value=int(round_half_up(count * 100 / divisor)),
            fill=DISTRIBUTION_COLORS[key],
        )
        for key, count in counts.items()
    ]


def seguimiento_data(deals: Sequence[EnrichedDeal]) -> SeguimientoData:
    urgente: List[EnrichedDeal] = []
    normal: List[EnrichedDeal] = []
    for deal in deals:
        result = classify(deal.stage_label)
        if not result.is_follow_up or result.outcome != Outcome.OPEN:
            continue
        (urgente if result.is_urgent else normal).append(deal)

    follow_up = urgente + normal
    return SeguimientoData(
        urgente=urgente,
        normal=normal,
        total_deals=len(follow_up),
        total_m2=round(_m2(follow_up), 4),
        total_amount=round(_amount(follow_up), 2),
    )


def pedidos_data(deals: Sequence[EnrichedDeal]) -> PedidosData:
    confirmados: List[EnrichedDeal] = []
    ganados: List[EnrichedDeal] = []
    for deal in deals:
        result = classify(deal.stage_label)
        if result.outcome == Outcome.WON:
            ganados.append(deal)
        elif result.is_confirmed_order and result.outcome == Outcome.OPEN:
            confirmados.append(deal)

    orders = confirmados + ganados
    return PedidosData(
        confirmados=confirmados,
        cerrados_ganados=ganados,
        total_orders=len(orders),
        total_amount=round(_amount(orders), 2),
        total_m2=round(_m2(orders), 4),
    )


def report_data(stages: Sequence[Stage], deals: Sequence[EnrichedDeal], now: datetime) -> ReportData:
    return ReportData(
        all_deals=list(deals),
        monthly_data=monthly_series(deals, now),
        top_clients=top_clients(deals),
        stage_distribution=stage_distribution(deals),
    )


def items_report(deals: Sequence[EnrichedDeal]) -> ItemsReportData:
    """Flatten every deal's line items into report rows."""
    rows: List[ReportLineItem] = []
    deals_with_items = 0
    for deal in deals:
        if deal.line_items:
            deals_with_items += 1
        for li in deal.line_items:
            rows.append(ReportLineItem(
                deal_id=deal.id,
                deal_name=deal.deal_name,
                create_date=deal.create_date,
                cliente_name=deal.cliente_empresa or deal.cliente_nombre
                or deal.associated_company_name or NO_CLIENT_LABEL,
                condiciones_pago=deal.condiciones_pago,
                stage_label=deal.stage_label,
                cantidad=li.cantidad,
                largo_mm=li.largo_mm,
                ancho_mm=li.ancho_mm,
                alto_mm=li.alto_mm,
                m2_por_unidad=li.m2_por_unidad,
                m2_totales=li.m2_totales,
                calidad=li.calidad,
                precio_unitario=li.precio_unitario,
                subtotal_sin_iva=li.subtotal_sin_iva,
            ))

    return ItemsReportData(
        line_items=rows,
        total_m2=round(sum(r.m2_totales for r in rows), 4),
        total_subtotal=round(sum(r.subtotal_sin_iva for r in rows), 2),
        total_deals=deals_with_items,
    )


def daily_summary(
    deals: Sequence[EnrichedDeal],
    day_start: datetime,
    day_end: datetime,
    price_stats: PriceAnalysisStats,
) -> DailyReportData:
    """New leads, closes and follow-ups for one day plus the open pipeline totals."""

    def _within(ts: str) -> bool:
        dt = parse_ts(ts)
        return dt is not None and day_start <= dt <= day_end

    new_leads, closed_won, closed_lost, follow_up = [], [], [], []
    open_deals: List[EnrichedDeal] = []
    for deal in deals:
        result = classify(deal.stage_label)
        if _within(deal.create_date):
            new_leads.append(deal)
        closed_at = deal.close_date or deal.created_at
        if result.outcome == Outcome.WON:
            if _within(closed_at):
                closed_won.append(deal)
        elif result.outcome == Outcome.LOST:
            if _within(closed_at):
                closed_lost.append(deal)
        else:
            open_deals.append(deal)
            if result.is_urgent or deal.days_since_creation > FOLLOW_UP_THRESHOLD_DAYS:
                follow_up.append(deal)

    return DailyReportData(
        date=day_start.date().isoformat(),
        new_leads=new_leads,
        closed_won=closed_won,
        closed_lost=closed_lost,
        follow_up_needed=follow_up,
        total_pipeline_amount=round(_amount(open_deals), 2),
        total_pipeline_m2=round(_m2(open_deals), 4),
        price_stats=price_stats,
    )
