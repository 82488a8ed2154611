"""
Pipeline Analytics — Configuration
====================================

Environment-driven settings (loaded from .env at the project root) and the
fixed HubSpot property lists the engine requests.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(PROJECT_ROOT / ".env")

# ---------------------------------------------------------------------------
# HubSpot
# ---------------------------------------------------------------------------
HUBSPOT_BASE_URL = os.getenv("HUBSPOT_BASE_URL", "https://api.hubapi.com")
HUBSPOT_REQUEST_TIMEOUT = float(os.getenv("HUBSPOT_REQUEST_TIMEOUT", "30"))

SEARCH_PAGE_LIMIT = 100
MAX_SEARCH_PAGES = int(os.getenv("HUBSPOT_MAX_PAGES", "50"))
PAGE_DELAY_SECONDS = float(os.getenv("HUBSPOT_PAGE_DELAY", "1.5"))
LINE_ITEM_BATCH_SIZE = 100
ASSOCIATION_CONCURRENCY = int(os.getenv("ASSOCIATION_CONCURRENCY", "5"))

# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
REPORT_CACHE_TTL_SECONDS = float(os.getenv("REPORT_CACHE_TTL_SECONDS", "300"))
FOLLOW_UP_THRESHOLD_DAYS = 14
TOP_CLIENTS_LIMIT = 10
MONTHLY_SERIES_MONTHS = 12
NO_CLIENT_LABEL = "Sin cliente"

RATE_LIMIT_MESSAGE = (
    "HubSpot está limitando las llamadas a la API. "
    "Espera unos 10 segundos e intenta nuevamente."
)

# ---------------------------------------------------------------------------
# Requested properties
# ---------------------------------------------------------------------------
DEAL_PROPERTIES = [
    "dealname", "amount", "dealstage", "pipeline", "createdate", "closedate",
    "hs_object_id", "hubspot_owner_id",
    "fomo_external_id",
    "motivo_de_no_compra",
    "mp_cliente_email", "mp_cliente_empresa", "mp_cliente_nombre", "mp_cliente_telefono",
    "mp_condiciones_entrega", "mp_condiciones_pago", "mp_condiciones_validez",
    "mp_items_json",
    "mp_metros_cuadrados_totales",
    "mp_notas_rapidas",
    "mp_pdf_presupuesto_url",
    "mp_precio_promedio_m2",
    "mp_tiene_items_a_cotizar",
    "mp_total_iva", "mp_total_subtotal",
]

LINE_ITEM_PROPERTIES = [
    "name", "price", "quantity", "amount", "hs_sku",
    "mp_largo_mm", "mp_ancho_mm", "mp_alto_mm",
    "mp_metros_cuadrados_item", "mp_precio_m2_unitario", "mp_tipo_caja",
]
