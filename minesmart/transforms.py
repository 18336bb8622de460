"""
Report transforms: filter, paginate, and summarise the DataFrames produced
by loaders.load_collection() for the report pages.
"""

import logging
import math
from datetime import date

import pandas as pd

from .config import (
    EXTRACTION_RECORDS,
    ITEMS_PER_PAGE,
    LAB_ANALYSES,
    LAB_APPROVED,
    PLANT_RUNS,
    SHIPPING_RECORDS,
    SOIL_ANALYSES,
)
from .loaders.utils import normalise_date

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Filtering and paging
# ---------------------------------------------------------------------------

def _contains(series: pd.Series, needle: str) -> pd.Series:
    return series.fillna("").astype(str).str.lower().str.contains(needle.lower(), regex=False)


def _bound(value: str | date | pd.Timestamp | None, end: bool = False) -> pd.Timestamp | None:
    ts = normalise_date(value)
    if ts is None:
        return None
    # A date-only end bound covers the whole day.
    if end and ts == ts.normalize():
        ts = ts + pd.Timedelta(days=1) - pd.Timedelta(1, unit="ns")
    return ts


def filter_records(
    df: pd.DataFrame,
    zone: str | None = None,
    lot: str | None = None,
    material: str | None = None,
    start: str | date | None = None,
    end: str | date | None = None,
    date_field: str = "date",
) -> pd.DataFrame:
    """Apply the report filter bar to a collection DataFrame.

    Parameters
    ----------
    df : DataFrame from load_collection().
    zone, lot : Case-insensitive substring match; blank means no filter.
    material : Exact match ("oro" / "cobre"); blank means no filter.
    start, end : Inclusive date range. Rows without a parseable date are
                 dropped only when a bound is set.
    date_field : Column holding parsed dates (load_collection's "date").

    Returns
    -------
    Filtered copy of df with the original index reset.
    """
    mask = pd.Series(True, index=df.index)

    if zone and zone.strip() and "zona" in df.columns:
        mask &= _contains(df["zona"], zone.strip())
    if lot and lot.strip() and "lote" in df.columns:
        mask &= _contains(df["lote"], lot.strip())
    if material and material.strip() and "material" in df.columns:
        mask &= df["material"].fillna("") == material.strip()

    lower = _bound(start)
    upper = _bound(end, end=True)
    if (lower is not None or upper is not None) and date_field in df.columns:
        dates = pd.to_datetime(df[date_field].map(normalise_date), utc=True)
        mask &= dates.notna()
        if lower is not None:
            mask &= dates >= lower
        if upper is not None:
            mask &= dates <= upper

    result = df[mask].reset_index(drop=True)
    logger.debug("Filtered %d -> %d rows", len(df), len(result))
    return result


def paginate(
    df: pd.DataFrame,
    page: int,
    per_page: int = ITEMS_PER_PAGE,
) -> tuple[pd.DataFrame, int, int]:
    """Slice one page out of df.

    Returns (page_df, page, total_pages). The page is clamped into
    [1, total_pages] and total_pages is at least 1, so an empty frame has
    one empty page.
    """
    if per_page < 1:
        raise ValueError("per_page must be at least 1")
    total_pages = max(1, math.ceil(len(df) / per_page))
    page = min(max(int(page), 1), total_pages)
    start = (page - 1) * per_page
    return df.iloc[start:start + per_page], page, total_pages


def page_caption(page: int, per_page: int, total: int) -> str:
    if total == 0:
        return "Showing 0 to 0 of 0 records"
    first = (page - 1) * per_page + 1
    last = min(page * per_page, total)
    return f"Showing {first} to {last} of {total} records"


# ---------------------------------------------------------------------------
# Report summaries
# ---------------------------------------------------------------------------

def _mean(series: pd.Series) -> float | None:
    value = series.mean()
    return None if pd.isna(value) else float(value)


def summarise_extraction(df: pd.DataFrame) -> dict:
    """Totals for the extraction report: tonnage by material and zone count."""
    quantities = df["cantidad_t"].fillna(df["cantidad_kg"]).fillna(0)
    by_material = quantities.groupby(df["material"].fillna("")).sum()
    return {
        "records": len(df),
        "total_t": float(quantities.sum()),
        "by_material": {k: float(v) for k, v in by_material.items() if k},
        "zones": int(df["zona"].replace("", pd.NA).dropna().nunique()),
    }


def summarise_lab(df: pd.DataFrame) -> dict:
    approved = int((df["resultado"] == LAB_APPROVED).sum())
    return {
        "records": len(df),
        "approved": approved,
        "approval_rate": approved / len(df) * 100 if len(df) else None,
        "mean_purity": _mean(df["pureza"]),
        "mean_humidity": _mean(df["humedad"]),
    }


def summarise_plant(df: pd.DataFrame) -> dict:
    """Plant report totals. Sold runs are those with vendido set."""
    sold = int(df["vendido"].sum()) if len(df) else 0
    return {
        "records": len(df),
        "total_t": float(df["cantidad_t"].fillna(0).sum()),
        "mean_purity": _mean(df["pureza_final"]),
        "sold": sold,
        "unsold": len(df) - sold,
    }


def summarise_shipping(df: pd.DataFrame) -> dict:
    sold = int(df["vendido"].sum()) if len(df) else 0
    return {
        "records": len(df),
        "total_kg": float(df["cantidad_kg"].fillna(0).sum()),
        "sold": sold,
        "pending": len(df) - sold,
    }


def summarise_soil(df: pd.DataFrame) -> dict:
    apt = int(df["zona_apta"].map(lambda v: v is True).sum())
    return {
        "records": len(df),
        "apt": apt,
        "apt_share": apt / len(df) * 100 if len(df) else None,
        "mean_ph": _mean(df["resultado_ph"]),
    }


REPORT_SUMMARIES = {
    EXTRACTION_RECORDS: summarise_extraction,
    LAB_ANALYSES: summarise_lab,
    PLANT_RUNS: summarise_plant,
    SHIPPING_RECORDS: summarise_shipping,
    SOIL_ANALYSES: summarise_soil,
}
