"""
Pipeline Analytics — Report Builders
======================================

Top-level operations called by presentation code. Each one loads the stage
directory, fetches and enriches deals, then hands them to the pure
aggregators. Failures are translated here and nowhere else: a CRM rate
limit becomes a short "retry in ~10s" message, anything else a generic
report error chained to its cause.

Usage:
    reports = PipelineReports()
    metrics = await reports.get_full_pipeline_metrics("acme", "default")
    daily = await reports.get_daily_report_data("acme", "default", "2026-10-19")
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from analytics import aggregators
from analytics.config import ASSOCIATION_CONCURRENCY, PAGE_DELAY_SECONDS, RATE_LIMIT_MESSAGE
from analytics.enrichment import enrich_deals
from analytics.fetcher import fetch_all_deals, fetch_deals_page
from analytics.price_analysis import analyze_portfolio
from analytics.report_cache import ReportCache
from analytics.stage_directory import StageDirectory
from integrations.hubspot import get_deal_source
from models.pipeline_models import (
    DailyReportData,
    DateRange,
    EnrichedDeal,
    EnrichedDealsPage,
    FullPipelineMetrics,
    ItemsReportData,
    PedidosData,
    Pipeline,
    PipelineMetrics,
    PriceAnalysisResult,
    ReportData,
    SeguimientoData,
    Stage,
)
from scripts.lib.errors import APIRateLimitError, RateLimitedReportError, ReportError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import now_utc

logger = setup_logger(__name__)

# Substrings HubSpot uses when throttling (status code, error category, policy name)
RATE_LIMIT_SIGNATURES = ("429", "RATE_LIMIT", "TEN_SECONDLY_ROLLING")


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, APIRateLimitError):
        return True
    text = str(exc).upper()
    return any(sig in text for sig in RATE_LIMIT_SIGNATURES)


def translate_report_error(exc: Exception, operation: str) -> ReportError:
    """User-facing error for a failed report operation."""
    if isinstance(exc, ReportError):
        return exc
    if is_rate_limit_error(exc):
        logger.warning("%s throttled by HubSpot: %s", operation, exc)
        return RateLimitedReportError(RATE_LIMIT_MESSAGE)
    logger.error("%s failed: %s", operation, exc, exc_info=True)
    return ReportError(
        f"No se pudo generar el reporte ({operation}). Intenta nuevamente más tarde.",
        operation=operation, cause=str(exc),
    )


def report_operation(name: str):
    """Decorator translating any failure of an async report builder."""
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                error = translate_report_error(e, name)
                if error is e:
                    raise
                raise error from e
        return wrapper
    return decorator


class PipelineReports:
    """Report builders for one process. Owns the daily-report cache."""

    def __init__(
        self,
        source_factory: Callable[[str], Any] = get_deal_source,
        cache: Optional[ReportCache] = None,
        page_delay: float = PAGE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = now_utc,
        concurrency: int = ASSOCIATION_CONCURRENCY,
    ):
        self._source_factory = source_factory
        self.cache = cache if cache is not None else ReportCache()
        self.page_delay = page_delay
        self._sleep = sleep
        self._now = now
        self.concurrency = concurrency

    async def _fetch_enriched(
        self,
        source,
        directory: StageDirectory,
        stage_ids: Optional[Sequence[str]] = None,
        date_range: Optional[DateRange] = None,
        paced: bool = False,
        with_companies: bool = False,
        with_line_items: bool = False,
    ) -> Tuple[List[EnrichedDeal], bool]:
        fetched = await fetch_all_deals(
            source, directory.pipeline_id, stage_ids, date_range,
            page_delay=self.page_delay if paced else 0.0,
            sleep=self._sleep,
        )
        deals = await enrich_deals(
            fetched.deals, directory, source=source, now=self._now(),
            with_companies=with_companies, with_line_items=with_line_items,
            concurrency=self.concurrency,
        )
        return deals, fetched.truncated

    async def _load(self, tenant_id: str, pipeline_id: str, **kwargs) -> Tuple[StageDirectory, List[EnrichedDeal], bool]:
        source = self._source_factory(tenant_id)
        directory = await StageDirectory.load(source, pipeline_id)
        deals, truncated = await self._fetch_enriched(source, directory, **kwargs)
        return directory, deals, truncated

    # ─── Metadata ───────────────────────────────────────────

    @report_operation("pipelines")
    async def get_pipelines(self, tenant_id: str) -> List[Pipeline]:
        return await self._source_factory(tenant_id).get_pipelines()

    @report_operation("pipeline stages")
    async def get_pipeline_stages(self, tenant_id: str, pipeline_id: str) -> List[Stage]:
        directory = await StageDirectory.load(self._source_factory(tenant_id), pipeline_id)
        return directory.stages

    # ─── Deals ──────────────────────────────────────────────

    @report_operation("deals")
    async def get_deals_enriched(
        self,
        tenant_id: str,
        pipeline_id: str,
        stage_ids: Optional[Sequence[str]] = None,
        after: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        limit: int = 10,
        with_companies: bool = False,
    ) -> EnrichedDealsPage:
        """One page of enriched deals for list views."""
        source = self._source_factory(tenant_id)
        directory = await StageDirectory.load(source, pipeline_id)
        raw, next_after = await fetch_deals_page(
            source, pipeline_id, stage_ids, date_range, after=after, limit=limit,
        )
        deals = await enrich_deals(
            raw, directory, source=source, now=self._now(),
            with_companies=with_companies, concurrency=self.concurrency,
        )
        return EnrichedDealsPage(results=deals, next_after=next_after)

    # ─── Aggregated reports ─────────────────────────────────

    @report_operation("KPIs")
    async def get_kpis(self, tenant_id: str, pipeline_id: str) -> PipelineMetrics:
        directory, deals, _ = await self._load(tenant_id, pipeline_id)
        return aggregators.kpi_summary(directory.stages, deals)

    @report_operation("pipeline metrics")
    async def get_full_pipeline_metrics(self, tenant_id: str, pipeline_id: str,
                                        date_range: Optional[DateRange] = None) -> FullPipelineMetrics:
        directory, deals, truncated = await self._load(tenant_id, pipeline_id, date_range=date_range)
        metrics = aggregators.full_pipeline_metrics(directory.stages, deals)
        return metrics.model_copy(update={"truncated": truncated})

    @report_operation("seguimiento")
    async def get_seguimiento_deals(self, tenant_id: str, pipeline_id: str,
                                    date_range: Optional[DateRange] = None) -> SeguimientoData:
        source = self._source_factory(tenant_id)
        directory = await StageDirectory.load(source, pipeline_id)
        stage_ids = sorted(directory.follow_up_stage_ids)
        if not stage_ids:
            logger.info("Pipeline %s has no follow-up stages", pipeline_id)
            return SeguimientoData()
        deals, _ = await self._fetch_enriched(source, directory, stage_ids=stage_ids, date_range=date_range)
        return aggregators.seguimiento_data(deals)

    @report_operation("pedidos")
    async def get_pedidos_deals(self, tenant_id: str, pipeline_id: str,
                                date_range: Optional[DateRange] = None) -> PedidosData:
        source = self._source_factory(tenant_id)
        directory = await StageDirectory.load(source, pipeline_id)
        stage_ids = sorted(directory.confirmed_order_stage_ids | directory.won_stage_ids)
        if not stage_ids:
            logger.info("Pipeline %s has no order stages", pipeline_id)
            return PedidosData()
        deals, _ = await self._fetch_enriched(source, directory, stage_ids=stage_ids, date_range=date_range)
        return aggregators.pedidos_data(deals)

    @report_operation("report data")
    async def get_report_data(self, tenant_id: str, pipeline_id: str,
                              date_range: Optional[DateRange] = None) -> ReportData:
        directory, deals, truncated = await self._load(tenant_id, pipeline_id, date_range=date_range)
        data = aggregators.report_data(directory.stages, deals, self._now())
        return data.model_copy(update={"truncated": truncated})

    @report_operation("items report")
    async def get_items_report(self, tenant_id: str, pipeline_id: str,
                               date_range: Optional[DateRange] = None) -> ItemsReportData:
        _, deals, truncated = await self._load(
            tenant_id, pipeline_id, date_range=date_range, with_line_items=True,
        )
        data = aggregators.items_report(deals)
        return data.model_copy(update={"truncated": truncated})

    @report_operation("price analysis")
    async def analyze_deals_price(self, tenant_id: str, pipeline_id: str,
                                  stage_ids: Optional[Sequence[str]] = None) -> PriceAnalysisResult:
        _, deals, _ = await self._load(tenant_id, pipeline_id, stage_ids=stage_ids)
        return analyze_portfolio(deals)

    @report_operation("daily report")
    async def get_daily_report_data(self, tenant_id: str, pipeline_id: str,
                                    date: Optional[str] = None) -> DailyReportData:
        """
        Daily summary for a pipeline. Fetches every deal with paced paging and
        caches the result per tenant/pipeline/date.

        Args:
            tenant_id: Tenant whose HubSpot account is queried.
            pipeline_id: Deal pipeline.
            date: 'YYYY-MM-DD' (UTC day). Defaults to today.
        """
        key = self.cache.make_key(tenant_id, pipeline_id, date)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Daily report cache hit: %s", key)
            return cached.model_copy(deep=True)

        now = self._now()
        if date:
            day_start = datetime.fromisoformat(date).replace(tzinfo=timezone.utc)
        else:
            day_start = now.astimezone(timezone.utc)
        day_start = day_start.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1) - timedelta(microseconds=1)

        _, deals, truncated = await self._load(tenant_id, pipeline_id, paced=True)
        prices = analyze_portfolio(deals)
        report = aggregators.daily_summary(deals, day_start, day_end, prices.stats)
        report = report.model_copy(update={"truncated": truncated, "generated_at": now})

        self.cache.set(key, report)
        logger.info(
            "Daily report %s: %d new, %d won, %d lost, %d follow-up",
            key, len(report.new_leads), len(report.closed_won),
            len(report.closed_lost), len(report.follow_up_needed),
        )
        return report.model_copy(deep=True)
