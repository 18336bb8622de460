"""
Lot history — the chronological list of lifecycle events for one lot.

The history is rebuilt from the aggregate on every call and never
persisted. Each event is a plain dict:

    {"stage", "label", "date", "created_at", "details", "location"}

"date" holds the record's own business date (date-only string, or the sale
timestamp for sale events); "created_at" holds the most precise timestamp
available and is what the timeline sorts on first.
"""

import logging
from typing import Any

import pandas as pd

from .config import MISSING_DISPLAY
from .loaders.utils import format_date, format_number, format_percent, normalise_date
from .schemas import LotAggregate
from .stages import stage_index

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = ["stage", "label", "date", "recorded", "details", "location"]


def _event(stage, label, date, created_at, details, location) -> dict:
    return {
        "stage": stage,
        "label": label,
        "date": date,
        "created_at": created_at,
        "details": details,
        "location": location,
    }


def _text(value: Any) -> str:
    return value if value else MISSING_DISPLAY


def resolve_timestamp(event: dict) -> pd.Timestamp | None:
    """Best available timestamp for an event: created_at, else its date."""
    return normalise_date(event.get("created_at")) or normalise_date(event.get("date"))


def _sort_key(event: dict) -> tuple:
    ts = resolve_timestamp(event)
    if ts is not None:
        bucket, instant, raw = 0, ts.value, ""
    else:
        # Unparseable dates go after every dated event, in raw-string order.
        raw = event.get("created_at") or event.get("date") or ""
        bucket, instant, raw = 1, 0, str(raw)
    return (
        bucket, instant, raw,
        stage_index(event["stage"]), event["label"], event["details"], event["location"],
    )


def build_history(aggregate: LotAggregate | None) -> list[dict]:
    """Build the ascending timeline of events for a lot.

    One event for the extraction record, one per lab analysis, one per
    plant run plus a "Lot sold" event for each sold run, and exactly one per
    shipping record (a sale event when the record is sold, a dispatch event
    otherwise). Malformed dates never raise; they sort last.
    """
    if aggregate is None or aggregate.extraction is None:
        return []

    events: list[dict] = []

    extraction = aggregate.extraction
    events.append(_event(
        "extraction",
        "Material registered in extraction",
        extraction.fecha,
        extraction.created_at,
        f"Material to process by lot - {format_number(extraction.cantidad)} t"
        f" - {_text(extraction.material)} - {_text(extraction.condicion)}",
        extraction.zona,
    ))

    for lab in aggregate.lab:
        events.append(_event(
            "lab",
            "Lab analysis results registered",
            lab.fecha_envio,
            lab.created_at,
            f"Sample analysis results by zone - Result: {_text(lab.resultado)}"
            f" - Purity: {format_percent(lab.pureza)} - Humidity: {format_percent(lab.humedad)}",
            lab.zona,
        ))

    for run in aggregate.plant:
        produced = (
            f"Quantity produced: {format_number(run.cantidad)} kg"
            f" - Final purity: {format_percent(run.pureza_final)} - Shift: {_text(run.turno)}"
        )
        events.append(_event(
            "plant",
            "Production entry registered",
            run.fecha,
            run.created_at,
            produced if run.vendido else f"{produced} - Ready for dispatch",
            run.zona,
        ))
        if run.vendido:
            events.append(_event(
                "sold",
                "Lot sold",
                run.fecha_venta or run.fecha,
                run.fecha_venta or run.created_at,
                f"Sale confirmed directly from plant - Quantity: {format_number(run.cantidad)} kg"
                f" - Purity: {format_percent(run.pureza_final)}",
                "Management",
            ))

    for record in aggregate.shipping:
        shipped = (
            f"Client: {_text(record.cliente_destino)} - Carrier: {_text(record.transportista)}"
            f" - Quantity: {format_number(record.cantidad_kg)} kg"
            f" - Purity: {format_percent(record.pureza_final)}"
        )
        if record.vendido:
            events.append(_event(
                "sold",
                "Lot sold",
                record.fecha_venta or record.fecha,
                record.fecha_venta or record.created_at,
                f"Sale confirmed - {shipped}",
                "",
            ))
        else:
            events.append(_event(
                "shipping",
                "Lot dispatched",
                record.fecha,
                record.created_at,
                shipped,
                "",
            ))

    events.sort(key=_sort_key)
    logger.debug("Built %d history events for lot %s", len(events), aggregate.lote)
    return events


def history_frame(events: list[dict]) -> pd.DataFrame:
    """Display table for a history: formatted dates, "—" where malformed."""
    if not events:
        return pd.DataFrame(columns=HISTORY_COLUMNS)

    rows = [
        {
            "stage": event["stage"],
            "label": event["label"],
            "date": format_date(event["date"]),
            "recorded": format_date(event["created_at"], with_time=True),
            "details": event["details"],
            "location": event["location"] or MISSING_DISPLAY,
        }
        for event in events
    ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)
