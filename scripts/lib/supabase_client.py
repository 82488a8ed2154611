"""
Supabase Client Helper for the Pipeline Analytics engine.
Provides the shared connection plus small row-level helpers.

Usage:
    from scripts.lib.supabase_client import get_client, upsert_row, select_one

    upsert_row("hubspot_action_plans", row, on_conflict="company_id,deal_id")
    row = select_one("hubspot_action_plans", {"company_id": "acme", "deal_id": "42"})
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_KEY = (
    os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    or os.environ.get("SUPABASE_KEY", "")
)

_client = None


def get_client():
    """Create and return a Supabase client (singleton)."""
    global _client
    if _client is not None:
        return _client

    if not SUPABASE_URL or not SUPABASE_KEY:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in .env"
        )

    from supabase import create_client
    _client = create_client(SUPABASE_URL, SUPABASE_KEY)
    logger.info("Supabase client connected to %s", SUPABASE_URL)
    return _client


def upsert_row(table: str, row: Dict, on_conflict: str = None, client=None) -> bool:
    """
    Upsert a single row into a table.

    Args:
        table: Table name.
        row: Dict of column=value pairs.
        on_conflict: Conflict resolution column(s) for upsert.
        client: Optional Supabase client (defaults to the shared one).

    Returns:
        True on success, False on failure.
    """
    try:
        client = client or get_client()
        query = client.table(table)
        if on_conflict:
            query.upsert(row, on_conflict=on_conflict).execute()
        else:
            query.insert(row).execute()
        return True
    except Exception as e:
        logger.error("Supabase upsert failed on %s: %s", table, e)
        return False


def select_one(table: str, filters: Dict[str, Any], select: str = "*",
               client=None) -> Optional[Dict]:
    """
    Fetch the first row matching all equality filters.

    Returns:
        The row dict, or None when nothing matches or the query fails.
    """
    try:
        client = client or get_client()
        query = client.table(table).select(select)
        for col, val in filters.items():
            query = query.eq(col, val)
        result = query.limit(1).execute()
        if result.data:
            return result.data[0]
        return None
    except Exception as e:
        logger.error("Supabase select failed on %s: %s", table, e)
        return None
