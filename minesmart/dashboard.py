"""
Dashboard-ready output functions.

These are the entry points the Streamlit pages call. Each returns plain
dicts or DataFrames suitable for rendering cards, timelines, and tables.
"""

import logging

import pandas as pd

from .config import ITEMS_PER_PAGE, STATUS_MESSAGES
from .gateway import PersistenceGateway
from .history import build_history
from .loaders.records import REPORT_COLUMNS, load_collection
from .loaders.utils import format_date
from .lots import LotLookupError, LotNotFoundError, fetch_lot_aggregate
from .sales import list_sale_records
from .schemas import LotAggregate
from .stages import infer_stage
from .transforms import REPORT_SUMMARIES, filter_records, page_caption, paginate

logger = logging.getLogger(__name__)


def _lot_header(aggregate: LotAggregate) -> dict:
    extraction = aggregate.extraction
    return {
        "lote": aggregate.lote,
        "zona": extraction.zona,
        "material": extraction.material,
        "fecha": extraction.fecha,
        "fecha_display": format_date(extraction.fecha),
        "cantidad": extraction.cantidad,
        "operador": extraction.operador,
        "condicion": extraction.condicion,
    }


def get_lot_overview(gateway: PersistenceGateway, lot_code: str) -> dict:
    """Single entry point the lot tracking page calls for a lookup.

    Returns
    -------
    {
        "status": "found" | "not_found" | "error",
        "query": str,             # the code as looked up
        "lot": dict | None,       # extraction header
        "stage": dict,            # infer_stage() result
        "history": list[dict],    # build_history() events
        "degraded": list[str],    # collections whose query failed
        "error": str | None,      # user-facing message
    }

    Never raises for a missing lot or a store failure.
    """
    code = (lot_code or "").strip()
    result = {
        "status": "not_found",
        "query": code,
        "lot": None,
        "stage": infer_stage(None),
        "history": [],
        "degraded": [],
        "error": None,
    }

    if not code:
        result["error"] = "Enter a lot code"
        return result

    try:
        aggregate = fetch_lot_aggregate(gateway, code)
    except LotNotFoundError:
        result["error"] = f"No lot found with code {code}"
        return result
    except LotLookupError:
        result["status"] = "error"
        result["error"] = "Could not load lot data. Please try again."
        return result

    result.update(
        status="found",
        lot=_lot_header(aggregate),
        stage=infer_stage(aggregate),
        history=build_history(aggregate),
        degraded=list(aggregate.degraded),
    )
    if aggregate.degraded:
        result["error"] = "Some records could not be loaded: " + ", ".join(aggregate.degraded)
    return result


class LotLookupSession:
    """Keeps the lot code the user is currently asking about.

    A result is only kept if it was issued for the current code, so a slow
    lookup for an old code cannot overwrite the answer for a newer one.

        result = session.lookup(code)
        session.accept(code, result)
    """

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway
        self.current_code: str | None = None
        self.result: dict | None = None

    def lookup(self, code: str) -> dict:
        self.current_code = (code or "").strip()
        return get_lot_overview(self.gateway, self.current_code)

    def accept(self, code: str, result: dict) -> bool:
        """Keep result if code is still current. Returns whether it was kept."""
        code = (code or "").strip()
        if code != self.current_code:
            logger.debug("Discarding stale lookup for %s (current: %s)", code, self.current_code)
            return False
        self.result = result
        return True


def get_sold_lots_table(gateway: PersistenceGateway, lot_filter: str = "") -> pd.DataFrame:
    """Plant and shipping records for the sold-lots page.

    Filtered by case-insensitive lot substring, newest first, with display
    columns "fecha_display", "fecha_venta_display" and "estado"
    ("Sold" / "Pending"). Raises GatewayError if the records cannot be
    listed.
    """
    df = list_sale_records(gateway)
    needle = (lot_filter or "").strip().lower()
    if needle:
        df = df[df["lote"].str.lower().str.contains(needle, regex=False)].reset_index(drop=True)

    df = df.copy()
    df["fecha_display"] = df["fecha"].map(format_date)
    df["fecha_venta_display"] = df["fecha_venta"].map(lambda v: format_date(v, with_time=True))
    df["estado"] = df["vendido"].map(lambda sold: "Sold" if sold else "Pending")
    return df


def get_report_page(
    gateway: PersistenceGateway,
    report: str,
    filters: dict | None = None,
    page: int = 1,
    per_page: int = ITEMS_PER_PAGE,
) -> dict:
    """One page of a collection report.

    Parameters
    ----------
    report : Collection name, e.g. "extraction_records".
    filters : Keyword arguments for filter_records() (zone, lot, material,
              start, end).
    page : Requested page; clamped into range.

    Returns
    -------
    {"rows", "page", "total_pages", "total", "caption", "summary"}
    where summary is the report's summary over all filtered rows (None for
    collections without one).
    """
    if report not in REPORT_COLUMNS:
        raise ValueError(f"unknown report '{report}'")

    df = load_collection(gateway, report)
    filtered = filter_records(df, **(filters or {}))
    rows, page, total_pages = paginate(filtered, page, per_page)

    summarise = REPORT_SUMMARIES.get(report)
    return {
        "rows": rows,
        "page": page,
        "total_pages": total_pages,
        "total": len(filtered),
        "caption": page_caption(page, per_page, len(filtered)),
        "summary": summarise(filtered) if summarise else None,
    }


def describe_stage(overview: dict) -> str:
    """Status line for an overview, falling back to the not-found message."""
    return overview["stage"].get("status_message") or STATUS_MESSAGES["not_found"]
