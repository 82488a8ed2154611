"""
Pipeline Analytics — Pydantic Models
======================================

Stages, enriched deals, line items and every report shape the engine
produces. Derived records are frozen: they are built once per fetch and
never mutated.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Pipeline metadata ──────────────────────────────────────

class Pipeline(BaseModel):
    id: str
    label: str


class Stage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    display_order: int = 0
    probability: Optional[float] = None


class DateRange(BaseModel):
    """Inclusive createdate bounds as ISO-8601 strings."""
    start: Optional[str] = None
    end: Optional[str] = None


# ─── Deals ──────────────────────────────────────────────────

class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    cantidad: float = 0.0
    largo_mm: float = 0.0
    ancho_mm: float = 0.0
    alto_mm: float = 0.0
    m2_por_unidad: float = 0.0
    m2_totales: float = 0.0
    calidad: str = ""
    precio_unitario: float = 0.0
    subtotal_sin_iva: float = 0.0


class EnrichedDeal(BaseModel):
    """A HubSpot deal plus read-only computed business fields."""
    model_config = ConfigDict(frozen=True)

    id: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    archived: bool = False

    deal_name: str = ""
    amount: float = 0.0
    stage_id: str = ""
    stage_label: str = ""
    days_since_creation: int = 0
    m2_total: float = 0.0
    precio_promedio_m2: float = 0.0
    subtotal: float = 0.0
    total_iva: float = 0.0
    cliente_nombre: str = ""
    cliente_empresa: str = ""
    cliente_email: str = ""
    cliente_telefono: str = ""
    condiciones_pago: Optional[str] = None
    condiciones_entrega: Optional[str] = None
    condiciones_validez: Optional[str] = None
    notas_rapidas: Optional[str] = None
    motivo_no_compra: Optional[str] = None
    pdf_presupuesto_url: Optional[str] = None
    items_json: Optional[List[Any]] = None
    associated_company_name: Optional[str] = None
    line_items: List[LineItem] = Field(default_factory=list)

    @property
    def create_date(self) -> str:
        return self.properties.get("createdate") or self.created_at

    @property
    def close_date(self) -> str:
        return self.properties.get("closedate") or ""


class EnrichedDealsPage(BaseModel):
    results: List[EnrichedDeal] = Field(default_factory=list)
    next_after: Optional[str] = None


# ─── Aggregations ───────────────────────────────────────────

class PipelineMetrics(BaseModel):
    """Headline KPIs: open pipeline value and won-deal ticket."""
    total_amount: float = 0.0
    deal_count: int = 0
    avg_ticket: float = 0.0
    won_amount: float = 0.0
    won_count: int = 0


class StageMetric(BaseModel):
    stage_id: str
    stage_label: str
    display_order: int = 0
    deal_count: int = 0
    total_amount: float = 0.0
    total_m2: float = 0.0
    avg_price_per_m2: float = 0.0


class DealPartition(BaseModel):
    won: List[EnrichedDeal] = Field(default_factory=list)
    lost: List[EnrichedDeal] = Field(default_factory=list)
    open: List[EnrichedDeal] = Field(default_factory=list)


class FullPipelineMetrics(BaseModel):
    total_deals: int = 0
    open_deals: int = 0
    won_deals: int = 0
    lost_deals: int = 0
    total_pipeline_amount: float = 0.0
    won_amount: float = 0.0
    lost_amount: float = 0.0
    avg_ticket_won: float = 0.0
    avg_ticket_open: float = 0.0
    total_m2_pipeline: float = 0.0
    total_m2_won: float = 0.0
    total_m2_lost: float = 0.0
    avg_price_per_m2_won: float = 0.0
    avg_price_per_m2_open: float = 0.0
    win_rate: float = 0.0
    loss_rate: float = 0.0
    stage_breakdown: List[StageMetric] = Field(default_factory=list)
    truncated: bool = False


class SeguimientoData(BaseModel):
    """Follow-up deals split by the +14 day marker on their stage."""
    urgente: List[EnrichedDeal] = Field(default_factory=list)
    normal: List[EnrichedDeal] = Field(default_factory=list)
    total_deals: int = 0
    total_m2: float = 0.0
    total_amount: float = 0.0


class PedidosData(BaseModel):
    confirmados: List[EnrichedDeal] = Field(default_factory=list)
    cerrados_ganados: List[EnrichedDeal] = Field(default_factory=list)
    total_orders: int = 0
    total_amount: float = 0.0
    total_m2: float = 0.0


class MonthlyPoint(BaseModel):
    name: str
    monto: float = 0.0
    m2: float = 0.0
    deals: int = 0


class ClientRanking(BaseModel):
    name: str
    value: float = 0.0
    m2: float = 0.0
    deals: int = 0


class DistributionSlice(BaseModel):
    name: str
    value: int = 0
    fill: str = ""


class ReportData(BaseModel):
    all_deals: List[EnrichedDeal] = Field(default_factory=list)
    monthly_data: List[MonthlyPoint] = Field(default_factory=list)
    top_clients: List[ClientRanking] = Field(default_factory=list)
    stage_distribution: List[DistributionSlice] = Field(default_factory=list)
    truncated: bool = False


class ReportLineItem(BaseModel):
    deal_id: str
    deal_name: str
    create_date: str
    cliente_name: str
    condiciones_pago: Optional[str] = None
    stage_label: str
    cantidad: float = 0.0
    largo_mm: float = 0.0
    ancho_mm: float = 0.0
    alto_mm: float = 0.0
    m2_por_unidad: float = 0.0
    m2_totales: float = 0.0
    calidad: str = ""
    precio_unitario: float = 0.0
    subtotal_sin_iva: float = 0.0


class ItemsReportData(BaseModel):
    line_items: List[ReportLineItem] = Field(default_factory=list)
    total_m2: float = 0.0
    total_subtotal: float = 0.0
    total_deals: int = 0
    truncated: bool = False


# ─── Price analysis ─────────────────────────────────────────

class PriceStatus(str, Enum):
    IN_RANGE = "in_range"
    BELOW_MARKET = "below_market"
    ABOVE_MARKET = "above_market"
    NO_DATA = "no_data"


class ZoneMarketPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    zone_id: str
    zone_name: str
    min_price_m2: float
    max_price_m2: float
    avg_price_m2: float


class PriceClassification(BaseModel):
    status: PriceStatus
    label: str
    description: str
    percent_diff: float = 0.0
    market_avg: float = 0.0
    quoted_price: float = 0.0


class DealPriceAnalysis(BaseModel):
    deal_id: str
    deal_name: str
    client_name: str
    zone: str
    quoted_price_m2: float
    total_m2: float
    classification: PriceClassification
    created_at: str = ""


class PriceAnalysisStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    in_range: int = 0
    below_market: int = 0
    above_market: int = 0
    avg_diff_percent: float = 0.0
    min_diff_percent: float = 0.0
    max_diff_percent: float = 0.0
    median_diff_percent: float = 0.0
    potential_revenue: float = 0.0


class PriceAnalysisResult(BaseModel):
    analyses: List[DealPriceAnalysis] = Field(default_factory=list)
    stats: PriceAnalysisStats = Field(default_factory=PriceAnalysisStats)


class PriceIndicator(BaseModel):
    label: str
    level: str


# ─── Daily report ───────────────────────────────────────────

class DailyReportData(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    new_leads: List[EnrichedDeal] = Field(default_factory=list)
    closed_won: List[EnrichedDeal] = Field(default_factory=list)
    closed_lost: List[EnrichedDeal] = Field(default_factory=list)
    follow_up_needed: List[EnrichedDeal] = Field(default_factory=list)
    total_pipeline_amount: float = 0.0
    total_pipeline_m2: float = 0.0
    price_stats: PriceAnalysisStats = Field(default_factory=PriceAnalysisStats)
    truncated: bool = False
    generated_at: Optional[datetime] = None


# ─── Action plans ───────────────────────────────────────────

class ActionStep(BaseModel):
    order: int
    action: str
    timing: str
    channel: str
    priority: str
    template: Optional[str] = None


class ActionPlan(BaseModel):
    deal_id: str
    summary: str
    urgency: str
    next_steps: List[ActionStep] = Field(default_factory=list)
    suggested_approach: str = ""
    risk_assessment: str = ""
    generated_at: datetime
    expires_at: datetime
