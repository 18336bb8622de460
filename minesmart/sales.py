"""
Sale confirmation — marks a plant run or shipping record as sold and keeps
plant_runs and shipping_records in step.

The writes are sequential and not transactional:

    1. (plant only) look up shipping records for the lot
    2. (plant only) create a direct-sale shipping record, or mark the first
       existing one sold
    3. mark the source record sold

A failure at any step is reported with the step name and nothing already
written is undone. If step 2 succeeds and step 3 fails the shipping record
says sold while the plant run does not; the caller sees the error and the
next confirmation on the same run repairs it.
"""

import logging
from datetime import datetime

import pandas as pd

from .config import (
    DEFAULT_PRODUCT,
    DIRECT_SALE_CLIENT,
    DIRECT_SALE_NOTE,
    PENDING_CARRIER,
    PLANT_RUNS,
    PRODUCT_NAMES,
    RECORD_TYPES,
    SHIPPING_RECORDS,
)
from .gateway import GatewayError, PersistenceGateway, utcnow
from .loaders.utils import date_sort_key
from .schemas import PlantRun, ShippingRecord, normalise_lot_reference

logger = logging.getLogger(__name__)

SALE_COLUMNS = [
    "id", "tipo", "lote", "fecha", "producto", "cantidad_kg", "pureza_final",
    "zona", "turno", "operador", "cliente_destino", "transportista",
    "vendido", "fecha_venta",
]


class SaleConfirmationError(Exception):
    """A sale could not be confirmed. `step` names the write that failed."""

    def __init__(self, message: str, step: str):
        super().__init__(message)
        self.step = step


class RecordNotFoundError(SaleConfirmationError):
    def __init__(self, collection: str, record_id: str):
        super().__init__(f"record not found: {collection}/{record_id}", step="load")
        self.collection = collection
        self.record_id = record_id


def product_name(material: str | None) -> str:
    """Map a material ("oro", "cobre") or product label to its product name."""
    text = (material or "").strip()
    lowered = text.lower()
    if lowered in PRODUCT_NAMES:
        return PRODUCT_NAMES[lowered]
    if "oro" in lowered:
        return PRODUCT_NAMES["oro"]
    if "cobre" in lowered:
        return PRODUCT_NAMES["cobre"]
    return text or DEFAULT_PRODUCT


def resolve_collection(record_type: str) -> str:
    try:
        return RECORD_TYPES[record_type]
    except KeyError:
        raise ValueError(
            f"record_type must be 'plant' or 'shipping', got {record_type!r}"
        ) from None


def direct_sale_shipment(run: PlantRun, now: datetime) -> dict:
    """Shipping document for a lot sold straight from the plant."""
    return {
        "fecha": run.fecha or now.date().isoformat(),
        "lote": run.lote,
        "producto": product_name(run.material),
        "cantidad_kg": run.cantidad_en_kg,
        "pureza_final": run.pureza_final,
        "cliente_destino": DIRECT_SALE_CLIENT,
        "transportista": PENDING_CARRIER,
        "vendido": True,
        "fecha_venta": now,
        "observaciones": DIRECT_SALE_NOTE,
    }


def _sync_shipping(gateway: PersistenceGateway, run: PlantRun, now: datetime) -> None:
    # An empty lot would match every shipping record without one.
    try:
        lot_code = normalise_lot_reference(run.lote)
    except ValueError as exc:
        logger.error("Plant run %s has no lot code; no shipping record touched", run.id)
        raise SaleConfirmationError(f"plant run {run.id} has no lot code", "shipping lookup") from exc

    try:
        existing = gateway.query(SHIPPING_RECORDS, where=("lote", lot_code))
    except GatewayError as exc:
        logger.exception("Shipping lookup failed for lot %s", run.lote)
        raise SaleConfirmationError(f"could not look up shipping records: {exc}", "shipping lookup") from exc

    if not existing:
        try:
            shipping_id = gateway.insert(SHIPPING_RECORDS, direct_sale_shipment(run, now))
        except GatewayError as exc:
            logger.exception("Could not create direct-sale shipping record for lot %s", run.lote)
            raise SaleConfirmationError(f"could not create shipping record: {exc}", "shipping create") from exc
        logger.info("Created direct-sale shipping record %s for lot %s", shipping_id, run.lote)
        return

    # Client and carrier on the existing record are kept as entered.
    shipping_id = existing[0]["id"]
    try:
        gateway.update(SHIPPING_RECORDS, shipping_id, {"vendido": True, "fecha_venta": now})
    except GatewayError as exc:
        logger.exception("Could not mark shipping record %s sold", shipping_id)
        raise SaleConfirmationError(f"could not update shipping record: {exc}", "shipping update") from exc
    logger.info("Marked shipping record %s sold for lot %s", shipping_id, run.lote)


def confirm_sale(
    gateway: PersistenceGateway,
    record_id: str,
    record_type: str,
    now: datetime | None = None,
) -> None:
    """Confirm the sale of a plant run or shipping record.

    Parameters
    ----------
    gateway : Persistence gateway.
    record_id : Id of the plant run or shipping record.
    record_type : "plant" or "shipping" ("planta" / "despacho" accepted).
    now : Sale timestamp; defaults to the current UTC time.

    Raises
    ------
    ValueError : unknown record_type.
    RecordNotFoundError : the source record does not exist.
    SaleConfirmationError : a read or write failed; see `.step`.
    """
    collection = resolve_collection(record_type)
    now = now or utcnow()

    try:
        source = gateway.get(collection, record_id)
    except GatewayError as exc:
        logger.exception("Could not load %s/%s", collection, record_id)
        raise SaleConfirmationError(f"could not load record: {exc}", "load") from exc
    if source is None:
        raise RecordNotFoundError(collection, record_id)

    if collection == PLANT_RUNS:
        _sync_shipping(gateway, PlantRun.model_validate(source), now)

    try:
        gateway.update(collection, record_id, {"vendido": True, "fecha_venta": now})
    except GatewayError as exc:
        logger.exception("Could not mark %s/%s sold", collection, record_id)
        raise SaleConfirmationError(f"could not update record: {exc}", "source update") from exc

    logger.info("Sale confirmed for %s/%s (lot %s)", collection, record_id, source.get("lote", ""))


def list_sale_records(gateway: PersistenceGateway) -> pd.DataFrame:
    """Plant runs and shipping records in one table, newest first.

    Plant rows carry tipo="planta" and no client or carrier yet; shipping
    rows carry tipo="despacho". Raises GatewayError if either query fails.
    """
    plant_docs = gateway.query(PLANT_RUNS, order_by=("fecha", "desc"))
    shipping_docs = gateway.query(SHIPPING_RECORDS, order_by=("fecha", "desc"))

    rows = []
    for doc in plant_docs:
        run = PlantRun.model_validate(doc)
        rows.append({
            "id": run.id,
            "tipo": "planta",
            "lote": run.lote,
            "fecha": run.fecha,
            "producto": product_name(run.material) if run.material else "",
            "cantidad_kg": run.cantidad_en_kg,
            "pureza_final": run.pureza_final,
            "zona": run.zona,
            "turno": run.turno,
            "operador": run.operador,
            "cliente_destino": None,
            "transportista": None,
            "vendido": run.vendido,
            "fecha_venta": run.fecha_venta,
        })
    for doc in shipping_docs:
        record = ShippingRecord.model_validate(doc)
        rows.append({
            "id": record.id,
            "tipo": "despacho",
            "lote": record.lote,
            "fecha": record.fecha,
            "producto": record.producto,
            "cantidad_kg": record.cantidad_kg or 0.0,
            "pureza_final": record.pureza_final,
            "zona": "",
            "turno": "",
            "operador": "",
            "cliente_destino": record.cliente_destino,
            "transportista": record.transportista,
            "vendido": record.vendido,
            "fecha_venta": record.fecha_venta,
        })

    rows.sort(key=lambda row: date_sort_key(row["fecha"]), reverse=True)
    df = pd.DataFrame(rows, columns=SALE_COLUMNS)
    logger.info("Listed %d sale records (%d plant, %d shipping)", len(df), len(plant_docs), len(shipping_docs))
    return df
