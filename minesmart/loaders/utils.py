"""
Shared utilities for reading store documents: date normalisation,
display formatting, and numeric coercion.

Stored dates come in three shapes: date-only strings ("2024-06-01"),
datetimes written by the gateway, and serialised timestamps
({"seconds": ..., "nanoseconds": ...}). None of the helpers here raise on
a malformed value.
"""

import logging
import math
from datetime import date, datetime
from typing import Any

import pandas as pd

from ..config import DATE_DISPLAY_FORMAT, DATETIME_DISPLAY_FORMAT, MISSING_DISPLAY

logger = logging.getLogger(__name__)


def normalise_date(val: Any) -> pd.Timestamp | None:
    """Convert any stored date shape to a UTC pd.Timestamp.

    Naive values are taken as UTC. Returns None for empty or unparseable
    values.
    """
    if val is None or isinstance(val, bool):
        return None

    if isinstance(val, dict):
        if "seconds" not in val:
            return None
        try:
            seconds = float(val["seconds"]) + float(val.get("nanoseconds") or 0) / 1e9
            return pd.Timestamp(seconds, unit="s", tz="UTC")
        except (ValueError, TypeError, OverflowError):
            logger.debug("Could not convert serialised timestamp %s", val)
            return None

    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
    elif not isinstance(val, (datetime, date, pd.Timestamp)):
        return None

    try:
        ts = pd.Timestamp(val)
    except (ValueError, TypeError, OverflowError):
        logger.debug("Could not parse date value: %s", val)
        return None

    if pd.isna(ts):
        return None
    if ts.tz is None:
        ts = ts.tz_localize("UTC")
    return ts


def format_date(val: Any, with_time: bool = False) -> str:
    """Render a stored date for display, "—" when missing or malformed."""
    ts = normalise_date(val)
    if ts is None:
        return MISSING_DISPLAY
    return ts.strftime(DATETIME_DISPLAY_FORMAT if with_time else DATE_DISPLAY_FORMAT)


def date_sort_key(val: Any) -> tuple:
    """Sort key for a stored date.

    Parseable values order by instant and come after unparseable ones, which
    order by their raw text (empty values first). Sort with reverse=True for
    newest-first with missing dates last.
    """
    ts = normalise_date(val)
    if ts is not None:
        return (1, ts.value, "")
    return (0, 0, "" if val is None else str(val))


def safe_float(val: Any) -> float | None:
    """Coerce a value to float, returning None for non-numeric values."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
        # Handle percentage strings like "78%"
        if val.endswith("%"):
            val = val[:-1]
    try:
        result = float(val)
    except (ValueError, TypeError):
        return None
    if math.isnan(result):
        return None
    return result


def first_quantity(*values: Any) -> float:
    """Return the first non-zero numeric value, or 0.0.

    Quantities are stored under several fields (cantidad_t, cantidad_kg)
    and older documents fill only one of them.
    """
    for value in values:
        number = safe_float(value)
        if number:
            return number
    return 0.0


def format_number(val: Any, decimals: int = 2) -> str:
    number = safe_float(val)
    if number is None:
        return MISSING_DISPLAY
    return f"{number:,.{decimals}f}"


def format_percent(val: Any, decimals: int = 2) -> str:
    number = safe_float(val)
    if number is None:
        return MISSING_DISPLAY
    return f"{number:.{decimals}f}%"
