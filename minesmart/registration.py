"""
Registration — validates operator entries and writes them to the store.

Every register_* function validates its whole input before the first
write. Validation problems raise RegistrationError with one message per
field; store failures propagate as GatewayError.
"""

import logging
from collections import defaultdict
from typing import Iterable

from pydantic import BaseModel, ValidationError

from .config import (
    EXTRACTION_RECORDS,
    LAB_ANALYSES,
    PLANT_CONSUMPTIONS,
    PLANT_FAILURES,
    PLANT_RUNS,
    SHIPPING_RECORDS,
    SOIL_ANALYSES,
    SUPPLIES,
)
from .gateway import PersistenceGateway
from .loaders.utils import safe_float
from .schemas import (
    ConsumptionEntry,
    ExtractionEntry,
    LabEntry,
    PlantFailureEntry,
    PlantRunEntry,
    ShipmentEntry,
    SoilAnalysisEntry,
    SupplyEntry,
)

logger = logging.getLogger(__name__)


class RegistrationError(ValueError):
    """An entry failed validation. `errors` lists one message per problem."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _field_messages(exc: ValidationError, prefix: str = "") -> list[str]:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "entry"
        messages.append(f"{prefix}{field}: {error['msg']}")
    return messages


def _validate(model: type[BaseModel], data, prefix: str = ""):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RegistrationError(_field_messages(exc, prefix)) from exc


def _distinct(gateway: PersistenceGateway, collection: str, field: str) -> list[str]:
    values = {
        str(doc.get(field)).strip()
        for doc in gateway.query(collection)
        if doc.get(field) is not None and str(doc.get(field)).strip()
    }
    return sorted(values)


def known_zones(gateway: PersistenceGateway) -> list[str]:
    """Zones registered in soil analyses, for entry dropdowns."""
    return _distinct(gateway, SOIL_ANALYSES, "zona")


def known_lots(gateway: PersistenceGateway) -> list[str]:
    """Lot codes registered in extraction, for entry dropdowns."""
    return _distinct(gateway, EXTRACTION_RECORDS, "lote")


def _insert(gateway: PersistenceGateway, collection: str, entry) -> str:
    record_id = gateway.insert(collection, entry.to_document())
    logger.info("Registered %s/%s", collection, record_id)
    return record_id


# ---------------------------------------------------------------------------
# Simple entries
# ---------------------------------------------------------------------------

def register_extraction(gateway: PersistenceGateway, entry) -> str:
    """Register extracted material. The lot code must look like O-123."""
    return _insert(gateway, EXTRACTION_RECORDS, _validate(ExtractionEntry, entry))


def register_lab_analysis(gateway: PersistenceGateway, entry) -> str:
    return _insert(gateway, LAB_ANALYSES, _validate(LabEntry, entry))


def register_shipment(gateway: PersistenceGateway, entry) -> str:
    """Register a dispatch. The record starts unsold (vendido=False)."""
    return _insert(gateway, SHIPPING_RECORDS, _validate(ShipmentEntry, entry))


def register_soil_analysis(gateway: PersistenceGateway, entry) -> str:
    return _insert(gateway, SOIL_ANALYSES, _validate(SoilAnalysisEntry, entry))


def register_supply(gateway: PersistenceGateway, entry) -> str:
    return _insert(gateway, SUPPLIES, _validate(SupplyEntry, entry))


# ---------------------------------------------------------------------------
# Plant runs
# ---------------------------------------------------------------------------

def _check_stock(
    gateway: PersistenceGateway,
    consumptions: list[ConsumptionEntry],
) -> dict[str, float]:
    """Return total consumption per supply id; raise if any exceeds stock."""
    totals: dict[str, float] = defaultdict(float)
    for line in consumptions:
        totals[line.insumo_id] += line.cantidad

    errors = []
    for supply_id, total in totals.items():
        supply = gateway.get(SUPPLIES, supply_id)
        if supply is None:
            errors.append(f"supply {supply_id} is not registered")
            continue
        available = safe_float(supply.get("cantidad_actual")) or 0.0
        if total > available:
            errors.append(
                f"consumption of {supply.get('nombre') or supply_id} ({total:g})"
                f" exceeds available stock ({available:g})"
            )
    if errors:
        raise RegistrationError(errors)
    return dict(totals)


def register_plant_run(
    gateway: PersistenceGateway,
    entry,
    failure=None,
    consumptions: Iterable = (),
) -> str:
    """Register a plant run with its optional failure and supply consumption.

    Parameters
    ----------
    gateway : Persistence gateway.
    entry : PlantRunEntry or a dict of its fields.
    failure : PlantFailureEntry / dict, or None if the run had no breakdown.
    consumptions : ConsumptionEntry / dict per supply line.

    Checks, all before any write
    ----------------------------
    - field validation (purity 1-100, quantity >= 0, failure duration > 0)
    - the zone is registered in soil analyses
    - the lot is registered in extraction
    - per supply, the summed consumption does not exceed cantidad_actual

    Writes, in order: the run, the failure (plant_run_id = run id), one
    consumption document per line, then each supply's stock decrement.

    Returns
    -------
    The new plant run id.
    """
    run = _validate(PlantRunEntry, entry)
    breakdown = _validate(PlantFailureEntry, failure, "failure.") if failure is not None else None
    lines = [
        _validate(ConsumptionEntry, line, f"consumption[{i}].")
        for i, line in enumerate(consumptions)
    ]

    errors = []
    if run.zona not in known_zones(gateway):
        errors.append(f"zona: zone '{run.zona}' is not registered in soil analyses")
    if run.lote not in known_lots(gateway):
        errors.append(f"lote: lot '{run.lote}' is not registered in extraction")
    if errors:
        raise RegistrationError(errors)

    totals = _check_stock(gateway, lines)

    run_id = _insert(gateway, PLANT_RUNS, run)

    if breakdown is not None:
        gateway.insert(PLANT_FAILURES, {"plant_run_id": run_id, **breakdown.to_document()})
        logger.info("Registered failure on %s for plant run %s", breakdown.maquina, run_id)

    for line in lines:
        gateway.insert(PLANT_CONSUMPTIONS, {"plant_run_id": run_id, **line.to_document()})

    for supply_id, total in totals.items():
        gateway.increment(SUPPLIES, supply_id, "cantidad_actual", -total)

    logger.info(
        "Registered plant run %s for lot %s (%d consumption lines)",
        run_id, run.lote, len(lines),
    )
    return run_id
