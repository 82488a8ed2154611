"""
Exhaustive deal fetcher.

Walks the HubSpot deal search cursor until it runs out, with a hard page
ceiling and optional fixed pacing between pages. Pages are read strictly in
sequence: each cursor comes from the previous response.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from analytics.config import DEAL_PROPERTIES, MAX_SEARCH_PAGES, SEARCH_PAGE_LIMIT
from models.pipeline_models import DateRange
from scripts.lib.errors import DataFetchError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

ALL_STAGES = "all"
CREATEDATE_DESC = [{"propertyName": "createdate", "direction": "DESCENDING"}]


@dataclass
class FetchResult:
    deals: List[Dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    truncated: bool = False


def build_filter_groups(
    pipeline_id: Optional[str],
    stage_ids: Optional[Sequence[str]] = None,
    date_range: Optional[DateRange] = None,
) -> List[Dict[str, Any]]:
    """One AND-combined filter group: pipeline, stage membership, createdate range."""
    filters: List[Dict[str, Any]] = []
    if pipeline_id:
        filters.append({"propertyName": "pipeline", "operator": "EQ", "value": pipeline_id})
    if stage_ids and ALL_STAGES not in stage_ids:
        filters.append({"propertyName": "dealstage", "operator": "IN", "values": list(stage_ids)})
    if date_range is not None:
        if date_range.start:
            filters.append({"propertyName": "createdate", "operator": "GTE", "value": date_range.start})
        if date_range.end:
            filters.append({"propertyName": "createdate", "operator": "LTE", "value": date_range.end})
    return [{"filters": filters}] if filters else []


def next_cursor(data: Dict[str, Any]) -> Optional[str]:
    """Continuation cursor from a search response, if any."""
    paging = data.get("paging") or {}
    next_link = paging.get("next") or {}
    return next_link.get("after") or None


async def fetch_all_deals(
    source,
    pipeline_id: Optional[str],
    stage_ids: Optional[Sequence[str]] = None,
    date_range: Optional[DateRange] = None,
    properties: Sequence[str] = DEAL_PROPERTIES,
    page_delay: float = 0.0,
    max_pages: int = MAX_SEARCH_PAGES,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FetchResult:
    """
    Fetch every deal matching the filters.

    Args:
        source: Remote deal source exposing ``search_deals``.
        pipeline_id: Pipeline to restrict to.
        stage_ids: Optional stage membership filter ("all" disables it).
        date_range: Optional inclusive createdate range.
        properties: Deal properties to request.
        page_delay: Seconds to pause between pages (never before the first).
        max_pages: Hard ceiling on page reads.
        sleep: Awaitable sleep, injectable for tests.

    Returns:
        FetchResult with the accumulated deals, in cursor order. ``truncated``
        is set when the ceiling stopped the walk while a cursor remained.
    """
    filter_groups = build_filter_groups(pipeline_id, stage_ids, date_range)
    result = FetchResult()
    after: Optional[str] = None

    while True:
        if result.pages >= max_pages:
            result.truncated = True
            logger.warning(
                "Stopped deal fetch for pipeline %s after %d pages (%d deals); more results remain",
                pipeline_id, result.pages, len(result.deals),
            )
            break
        if result.pages > 0 and page_delay > 0:
            await sleep(page_delay)

        data = await source.search_deals(
            filter_groups=filter_groups,
            sorts=CREATEDATE_DESC,
            properties=properties,
            limit=SEARCH_PAGE_LIMIT,
            after=after,
        )
        result.pages += 1
        page = data.get("results") if isinstance(data, dict) else None
        if not isinstance(page, list):
            raise DataFetchError(
                f"Malformed deal search response on page {result.pages}", source="hubspot",
            )
        result.deals.extend(page)
        logger.debug("Page %d: %d deals (total: %d)", result.pages, len(page), len(result.deals))

        after = next_cursor(data)
        if not after:
            break

    logger.info("Fetched %d deals for pipeline %s in %d pages",
                len(result.deals), pipeline_id, result.pages)
    return result


async def fetch_deals_page(
    source,
    pipeline_id: Optional[str],
    stage_ids: Optional[Sequence[str]] = None,
    date_range: Optional[DateRange] = None,
    after: Optional[str] = None,
    limit: int = 10,
    properties: Sequence[str] = DEAL_PROPERTIES,
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """A single page of deals for paginated listings. Returns (deals, next_cursor)."""
    data = await source.search_deals(
        filter_groups=build_filter_groups(pipeline_id, stage_ids, date_range),
        sorts=CREATEDATE_DESC,
        properties=properties,
        limit=limit,
        after=after,
    )
    return data.get("results", []), next_cursor(data)
