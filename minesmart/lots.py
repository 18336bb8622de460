"""
Lot aggregation: every record that shares a lot code, across the four
process collections, assembled into one LotAggregate per lookup.

Nothing here is cached. A lot's state is recomputed from the source
documents on every call.
"""

import logging

from .config import EXTRACTION_RECORDS, LAB_ANALYSES, PLANT_RUNS, SHIPPING_RECORDS
from .gateway import GatewayError, PersistenceGateway
from .loaders.utils import date_sort_key, normalise_date
from .schemas import (
    ExtractionRecord,
    LabAnalysis,
    LotAggregate,
    PlantRun,
    ShippingRecord,
    normalise_lot_reference,
)

logger = logging.getLogger(__name__)


class LotLookupError(Exception):
    """The lot could not be looked up because the extraction query failed."""


class LotNotFoundError(LotLookupError):
    """No extraction record references the lot code."""

    def __init__(self, lot_code: str):
        super().__init__(f"no lot found with code {lot_code}")
        self.lot_code = lot_code


def _newest_first(records: list, field: str) -> list:
    return sorted(records, key=lambda r: date_sort_key(getattr(r, field)), reverse=True)


def _latest_extraction(records: list[ExtractionRecord]) -> ExtractionRecord:
    def key(record):
        created = normalise_date(record.created_at)
        return (date_sort_key(record.fecha), created.value if created is not None else 0)

    return max(records, key=key)


def _fetch_secondary(
    gateway: PersistenceGateway,
    collection: str,
    lot_code: str,
    model,
    degraded: list[str],
) -> list:
    try:
        documents = gateway.query(collection, where=("lote", lot_code))
    except GatewayError:
        logger.warning(
            "Query on %s failed for lot %s; continuing without it",
            collection, lot_code, exc_info=True,
        )
        degraded.append(collection)
        return []
    return [model.model_validate(doc) for doc in documents]


def fetch_lot_aggregate(gateway: PersistenceGateway, lot_code: str) -> LotAggregate:
    """Assemble the LotAggregate for a lot code.

    Parameters
    ----------
    gateway : Persistence gateway to query.
    lot_code : Lot code as typed by the user; surrounding whitespace is ignored.

    Returns
    -------
    LotAggregate with the most recent extraction record as the canonical
    header, lab results newest-first by fecha_envio, plant runs and
    shipping records newest-first by fecha. Collections whose query failed
    are empty and named in aggregate.degraded.

    Raises
    ------
    ValueError : lot_code is empty.
    LotNotFoundError : no extraction record references the lot.
    LotLookupError : the extraction query itself failed.
    """
    lot_code = normalise_lot_reference(lot_code)

    try:
        extraction_docs = gateway.query(EXTRACTION_RECORDS, where=("lote", lot_code))
    except GatewayError as exc:
        logger.exception("Extraction query failed for lot %s", lot_code)
        raise LotLookupError(f"could not look up lot {lot_code}: {exc}") from exc

    if not extraction_docs:
        logger.info("No extraction record for lot %s", lot_code)
        raise LotNotFoundError(lot_code)

    extraction = _latest_extraction(
        [ExtractionRecord.model_validate(doc) for doc in extraction_docs]
    )

    degraded: list[str] = []
    lab = _fetch_secondary(gateway, LAB_ANALYSES, lot_code, LabAnalysis, degraded)
    plant = _fetch_secondary(gateway, PLANT_RUNS, lot_code, PlantRun, degraded)
    shipping = _fetch_secondary(gateway, SHIPPING_RECORDS, lot_code, ShippingRecord, degraded)

    aggregate = LotAggregate(
        lote=lot_code,
        extraction=extraction,
        lab=_newest_first(lab, "fecha_envio"),
        plant=_newest_first(plant, "fecha"),
        shipping=_newest_first(shipping, "fecha"),
        degraded=degraded,
    )

    logger.info(
        "Aggregated lot %s: %d lab, %d plant, %d shipping%s",
        lot_code, len(lab), len(plant), len(shipping),
        f" (degraded: {', '.join(degraded)})" if degraded else "",
    )
    return aggregate
