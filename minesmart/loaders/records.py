"""
Collection loaders for the report pages.

Each loader pulls a whole collection through the gateway and flattens it
into a DataFrame with an "id" column, the store's own fields, and a parsed
"date" column derived from the collection's reporting date field.
"""

import logging

import pandas as pd

from ..config import (
    DATE_FIELDS,
    EXTRACTION_RECORDS,
    LAB_ANALYSES,
    PLANT_CONSUMPTIONS,
    PLANT_FAILURES,
    PLANT_RUNS,
    SHIPPING_RECORDS,
    SOIL_ANALYSES,
    SUPPLIES,
)
from ..gateway import PersistenceGateway
from .utils import normalise_date, safe_float

logger = logging.getLogger(__name__)

# Columns every report expects, per collection, in display order
REPORT_COLUMNS: dict[str, list[str]] = {
    SOIL_ANALYSES: [
        "id", "zona", "fecha", "analista", "resultado_ph", "pureza", "humedad",
        "zona_apta", "observaciones",
    ],
    EXTRACTION_RECORDS: [
        "id", "lote", "zona", "fecha", "material", "cantidad_t", "cantidad_kg",
        "operador", "condicion", "observaciones",
    ],
    LAB_ANALYSES: [
        "id", "lote", "zona", "fecha_envio", "material", "operador", "resultado",
        "pureza", "humedad", "observaciones",
    ],
    PLANT_RUNS: [
        "id", "lote", "zona", "fecha", "material", "operador", "condicion", "turno",
        "cantidad_t", "cantidad_kg", "pureza_final", "vendido", "fecha_venta",
        "observaciones",
    ],
    PLANT_FAILURES: [
        "id", "plant_run_id", "maquina", "tipo_falla", "duracion_horas", "estado",
        "responsable", "descripcion", "created_at",
    ],
    PLANT_CONSUMPTIONS: [
        "id", "plant_run_id", "insumo", "insumo_id", "cantidad", "proceso", "fecha",
    ],
    SUPPLIES: [
        "id", "codigo", "nombre", "unidad", "cantidad_actual", "cantidad_minima",
    ],
    SHIPPING_RECORDS: [
        "id", "lote", "fecha", "producto", "cantidad_kg", "pureza_final",
        "cliente_destino", "transportista", "vendido", "fecha_venta", "observaciones",
    ],
}

_NUMERIC_COLUMNS = {
    "resultado_ph", "pureza", "humedad", "cantidad_t", "cantidad_kg", "pureza_final",
    "duracion_horas", "cantidad", "cantidad_actual", "cantidad_minima",
}


def records_to_frame(documents: list[dict], collection: str) -> pd.DataFrame:
    """Flatten store documents into a report DataFrame.

    Missing fields become None (numeric columns NaN); extra fields are
    dropped. A "date" column holds the parsed reporting date (NaT when the
    stored value is missing or malformed).
    """
    columns = REPORT_COLUMNS.get(collection)
    if columns is None:
        raise KeyError(f"no report layout for collection '{collection}'")

    rows = [{col: doc.get(col) for col in columns} for doc in documents]
    df = pd.DataFrame(rows, columns=columns)

    for col in columns:
        if col in _NUMERIC_COLUMNS:
            df[col] = pd.to_numeric(df[col].map(safe_float), errors="coerce").astype(float)
    if "vendido" in df.columns:
        df["vendido"] = df["vendido"].map(lambda v: v is True)

    date_field = DATE_FIELDS.get(collection)
    if date_field and date_field in df.columns:
        df["date"] = pd.to_datetime(df[date_field].map(normalise_date), utc=True)
    else:
        df["date"] = pd.Series(pd.NaT, index=df.index, dtype="datetime64[ns, UTC]")

    return df


def load_collection(
    gateway: PersistenceGateway,
    collection: str,
    descending: bool = True,
) -> pd.DataFrame:
    """Load a whole collection ordered by its reporting date field.

    Raises GatewayError if the store query fails; report pages show the
    error and let the user retry.
    """
    date_field = DATE_FIELDS.get(collection)
    order_by = (date_field, "desc" if descending else "asc") if date_field else None
    documents = gateway.query(collection, order_by=order_by)
    df = records_to_frame(documents, collection)
    logger.info("Loaded %d rows from %s", len(df), collection)
    return df
