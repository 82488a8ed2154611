"""
Deal enrichment.

Turns raw HubSpot deal objects into frozen EnrichedDeal records: stage label
from the directory snapshot, parsed numeric fields, elapsed days, area
totals and price per m². Company names and line items are resolved in
optional best-effort passes; one deal failing never fails the batch.
"""
from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from analytics.config import ASSOCIATION_CONCURRENCY, LINE_ITEM_BATCH_SIZE, LINE_ITEM_PROPERTIES
from analytics.stage_directory import StageDirectory
from models.pipeline_models import EnrichedDeal, LineItem
from scripts.lib.logger import setup_logger
from scripts.lib.utils import days_since, now_utc, parse_num, safe_div

logger = setup_logger(__name__)


def _text(props: Dict[str, Any], key: str) -> str:
    return props.get(key) or ""


def _optional_text(props: Dict[str, Any], key: str) -> Optional[str]:
    return props.get(key) or None


def _timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value or "")


def _parse_items_json(raw: Optional[str]) -> Optional[List[Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, list) else None


def parse_line_item(raw: Dict[str, Any]) -> LineItem:
    """Build a LineItem from a HubSpot line-item object, deriving m² and subtotal."""
    props = raw.get("properties") or {}
    cantidad = parse_num(props.get("quantity"))
    m2_por_unidad = parse_num(props.get("mp_metros_cuadrados_item"))
    precio_unitario = parse_num(props.get("mp_precio_m2_unitario"))
    m2_totales = round(cantidad * m2_por_unidad, 4)
    if precio_unitario > 0:
        subtotal = round(m2_totales * precio_unitario, 2)
    else:
        subtotal = parse_num(props.get("amount"))

    return LineItem(
        id=str(raw.get("id", "")),
        name=_text(props, "name"),
        cantidad=cantidad,
        largo_mm=parse_num(props.get("mp_largo_mm")),
        ancho_mm=parse_num(props.get("mp_ancho_mm")),
        alto_mm=parse_num(props.get("mp_alto_mm")),
        m2_por_unidad=m2_por_unidad,
        m2_totales=m2_totales,
        calidad=_text(props, "mp_tipo_caja"),
        precio_unitario=precio_unitario,
        subtotal_sin_iva=subtotal,
    )


def enrich_deal(
    raw: Dict[str, Any],
    directory: StageDirectory,
    now: datetime,
    company_name: Optional[str] = None,
    line_items: Optional[Sequence[LineItem]] = None,
) -> EnrichedDeal:
    """Enrich one raw deal. Never raises on malformed property values."""
    props = dict(raw.get("properties") or {})
    stage_id = props.get("dealstage") or ""
    amount = parse_num(props.get("amount"))
    items = list(line_items or [])

    if items:
        m2_total = sum(li.m2_totales for li in items)
    else:
        m2_total = parse_num(props.get("mp_metros_cuadrados_totales"))

    created_at = _timestamp(raw.get("createdAt"))

    return EnrichedDeal(
        id=str(raw.get("id", "")),
        properties=props,
        created_at=created_at,
        updated_at=_timestamp(raw.get("updatedAt")),
        archived=bool(raw.get("archived", False)),
        deal_name=_text(props, "dealname"),
        amount=amount,
        stage_id=stage_id,
        stage_label=directory.label_for(stage_id),
        days_since_creation=days_since(props.get("createdate") or created_at, now),
        m2_total=m2_total,
        precio_promedio_m2=safe_div(amount, m2_total),
        subtotal=parse_num(props.get("mp_total_subtotal")),
        total_iva=parse_num(props.get("mp_total_iva")),
        cliente_nombre=_text(props, "mp_cliente_nombre"),
        cliente_empresa=_text(props, "mp_cliente_empresa"),
        cliente_email=_text(props, "mp_cliente_email"),
        cliente_telefono=_text(props, "mp_cliente_telefono"),
        condiciones_pago=_optional_text(props, "mp_condiciones_pago"),
        condiciones_entrega=_optional_text(props, "mp_condiciones_entrega"),
        condiciones_validez=_optional_text(props, "mp_condiciones_validez"),
        notas_rapidas=_optional_text(props, "mp_notas_rapidas"),
        motivo_no_compra=_optional_text(props, "motivo_de_no_compra"),
        pdf_presupuesto_url=_optional_text(props, "mp_pdf_presupuesto_url"),
        items_json=_parse_items_json(props.get("mp_items_json")),
        associated_company_name=company_name or raw.get("associatedCompanyName") or None,
        line_items=items,
    )


def association_ids(deal: Dict[str, Any], object_type: str) -> List[str]:
    """Associated object ids from a deal read. HubSpot spells some keys with spaces."""
    associations = deal.get("associations") or {}
    block = associations.get(object_type) or associations.get(object_type.replace("_", " ")) or {}
    return [str(r.get("id")) for r in block.get("results", []) if r.get("id")]


async def resolve_company_names(
    source,
    deal_ids: Iterable[str],
    concurrency: int = ASSOCIATION_CONCURRENCY,
) -> Dict[str, Optional[str]]:
    """
    Resolve the first associated company name for each deal.

    Each resolution runs independently under a semaphore; a failure yields
    None for that deal and is logged.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def _resolve_one(deal_id: str) -> Tuple[str, Optional[str]]:
        async with semaphore:
            try:
                deal = await source.get_deal_by_id(deal_id, ["companies"])
                company_ids = association_ids(deal, "companies")
                if not company_ids:
                    return deal_id, None
                company = await source.get_company(company_ids[0])
                return deal_id, (company.get("properties") or {}).get("name") or None
            except Exception as e:
                logger.warning("Company lookup failed for deal %s: %s", deal_id, e)
                return deal_id, None

    pairs = await asyncio.gather(*[_resolve_one(d) for d in deal_ids])
    return dict(pairs)


async def fetch_line_items(
    source,
    deal_ids: Iterable[str],
    concurrency: int = ASSOCIATION_CONCURRENCY,
) -> Dict[str, List[LineItem]]:
    """
    Fetch the line items of each deal.

    Association reads fan out per deal; the items themselves are read in
    batches of 100. Failures degrade the affected deals to an empty list.
    """
    deal_ids = list(deal_ids)
    semaphore = asyncio.Semaphore(concurrency)

    async def _item_ids(deal_id: str) -> Tuple[str, List[str]]:
        async with semaphore:
            try:
                deal = await source.get_deal_by_id(deal_id, ["line_items"])
                return deal_id, association_ids(deal, "line_items")
            except Exception as e:
                logger.warning("Line-item association lookup failed for deal %s: %s", deal_id, e)
                return deal_id, []

    ids_by_deal = dict(await asyncio.gather(*[_item_ids(d) for d in deal_ids]))

    all_ids = [i for ids in ids_by_deal.values() for i in ids]
    items_by_id: Dict[str, LineItem] = {}
    for start in range(0, len(all_ids), LINE_ITEM_BATCH_SIZE):
        batch = all_ids[start:start + LINE_ITEM_BATCH_SIZE]
        try:
            for raw in await source.batch_read_line_items(batch, LINE_ITEM_PROPERTIES):
                item = parse_line_item(raw)
                items_by_id[item.id] = item
        except Exception as e:
            logger.warning("Line-item batch read failed (%d ids): %s", len(batch), e)

    logger.info("Fetched %d line items for %d deals", len(items_by_id), len(deal_ids))
    return {
        deal_id: [items_by_id[i] for i in ids_by_deal.get(deal_id, []) if i in items_by_id]
        for deal_id in deal_ids
    }


async def enrich_deals(
    raw_deals: Sequence[Dict[str, Any]],
    directory: StageDirectory,
    source=None,
    now: Optional[datetime] = None,
    with_companies: bool = False,
    with_line_items: bool = False,
    concurrency: int = ASSOCIATION_CONCURRENCY,
) -> List[EnrichedDeal]:
    """Enrich a batch of raw deals against one directory snapshot and one instant."""
    now = now or now_utc()
    deal_ids = [str(d.get("id", "")) for d in raw_deals]

    company_names: Dict[str, Optional[str]] = {}
    if with_companies and source is not None:
        company_names = await resolve_company_names(source, deal_ids, concurrency)

    line_items: Dict[str, List[LineItem]] = {}
    if with_line_items and source is not None:
        line_items = await fetch_line_items(source, deal_ids, concurrency)

    return [
        enrich_deal(
            raw, directory, now,
            company_name=company_names.get(deal_id),
            line_items=line_items.get(deal_id),
        )
        for raw, deal_id in zip(raw_deals, deal_ids)
    ]
