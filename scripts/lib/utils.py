"""
Utility functions for the Pipeline Analytics engine.
Defensive numeric parsing, timestamp helpers and atomic JSON output.

Usage:
    from scripts.lib.utils import parse_num, parse_ts, atomic_write_json
"""
import json
import math
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


def parse_num(val: Any) -> float:
    """Parse a CRM numeric string. Non-numeric, empty or missing values yield 0."""
    if val is None or val == "":
        return 0.0
    try:
        num = float(val)
    except (ValueError, TypeError):
        return 0.0
    if math.isnan(num) or math.isinf(num):
        return 0.0
    return num


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if denominator == 0:
        return default
    return numerator / denominator


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves toward +inf (2.5 -> 3, -2.5 -> -2). Built-in round() rounds halves to even."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def now_utc() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def parse_ts(ts_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (or epoch millis) to a timezone-aware datetime."""
    if not ts_str:
        return None
    if isinstance(ts_str, datetime):
        dt = ts_str
    else:
        text = str(ts_str).strip()
        if text.isdigit():
            return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def days_since(ts_str: Optional[str], now: datetime) -> int:
    """Whole days elapsed between a timestamp and ``now`` (floor). 0 when unknown."""
    created = parse_ts(ts_str)
    if created is None:
        return 0
    return math.floor((now - created).total_seconds() / 86400)


def month_key(dt: datetime) -> str:
    """Format a datetime as a 'YYYY-MM' string."""
    return dt.strftime("%Y-%m")


def atomic_write_json(data: Dict, file_path: str | Path, indent: int = 2) -> bool:
    """
    Write JSON data to file atomically using temp file + rename.

    Args:
        data: Dictionary to serialize as JSON.
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        True if successful, False otherwise.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent, default=str)

        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote JSON to %s", file_path)
        return True

    except OSError as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        if temp_path.exists():
            temp_path.unlink()
        return False
