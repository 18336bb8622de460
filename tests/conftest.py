"""Shared fixtures: in-memory stores, a failure-injecting store, and lot builders."""

from datetime import datetime, timezone

import pytest

from minesmart.config import (
    EXTRACTION_RECORDS,
    LAB_ANALYSES,
    PLANT_RUNS,
    SHIPPING_RECORDS,
    SOIL_ANALYSES,
    SUPPLIES,
)
from minesmart.gateway import GatewayError, InMemoryGateway

FIXED_NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


class FlakyGateway(InMemoryGateway):
    """InMemoryGateway that raises GatewayError for chosen operations.

    fail is a set of (operation, collection) pairs, e.g.
    {("query", "lab_analyses"), ("update", "plant_runs")}.
    """

    def __init__(self, clock=None):
        super().__init__(clock=clock)
        self.fail: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, operation, collection):
        self.calls.append((operation, collection))
        if (operation, collection) in self.fail:
            raise GatewayError(f"{operation} on {collection} unavailable")

    def query(self, collection, where=None, order_by=None):
        self._check("query", collection)
        return super().query(collection, where=where, order_by=order_by)

    def get(self, collection, document_id):
        self._check("get", collection)
        return super().get(collection, document_id)

    def insert(self, collection, fields):
        self._check("insert", collection)
        return super().insert(collection, fields)

    def update(self, collection, document_id, fields):
        self._check("update", collection)
        return super().update(collection, document_id, fields)

    def increment(self, collection, document_id, field, amount):
        self._check("increment", collection)
        return super().increment(collection, document_id, field, amount)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def gateway():
    return InMemoryGateway(clock=lambda: FIXED_NOW)


@pytest.fixture
def flaky_gateway():
    return FlakyGateway(clock=lambda: FIXED_NOW)


def extraction_doc(lote="O-123", **overrides):
    doc = {
        "zona": "Zona Norte",
        "material": "oro",
        "lote": lote,
        "fecha": "2024-06-01",
        "cantidad_t": 12.5,
        "operador": "R. Quispe",
        "condicion": "humedo",
        "observaciones": "",
        "created_at": datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc),
    }
    doc.update(overrides)
    return doc


def lab_doc(lote="O-123", **overrides):
    doc = {
        "zona": "Zona Norte",
        "lote": lote,
        "material": "oro",
        "fecha_envio": "2024-06-02",
        "resultado": "Aprobado",
        "pureza": 82.5,
        "humedad": 11.0,
        "created_at": datetime(2024, 6, 2, 9, 0, tzinfo=timezone.utc),
    }
    doc.update(overrides)
    return doc


def plant_doc(lote="O-123", **overrides):
    doc = {
        "zona": "Zona Norte",
        "material": "oro",
        "lote": lote,
        "fecha": "2024-06-03",
        "cantidad_t": 4.0,
        "cantidad_kg": 4000.0,
        "pureza_final": 91.2,
        "turno": "mañana",
        "vendido": False,
        "fecha_venta": None,
        "created_at": datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc),
    }
    doc.update(overrides)
    return doc


def shipping_doc(lote="O-123", **overrides):
    doc = {
        "fecha": "2024-06-04",
        "lote": lote,
        "producto": "Concentrado de Oro",
        "cantidad_kg": 3900.0,
        "pureza_final": 91.0,
        "cliente_destino": "Fundición Sur",
        "transportista": "Transportes Andes",
        "vendido": False,
        "fecha_venta": None,
        "created_at": datetime(2024, 6, 4, 11, 0, tzinfo=timezone.utc),
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def seed_lot():
    """Load a lot into a gateway, one document per stage requested.

    Returns the ids loaded, keyed by collection.
    """

    def _seed(gw, lote="O-123", lab=True, plant=True, shipping=False,
              plant_sold=False, shipping_sold=False):
        ids = {EXTRACTION_RECORDS: gw.load(EXTRACTION_RECORDS, [extraction_doc(lote)])}
        if lab:
            ids[LAB_ANALYSES] = gw.load(LAB_ANALYSES, [lab_doc(lote)])
        if plant:
            ids[PLANT_RUNS] = gw.load(PLANT_RUNS, [plant_doc(
                lote,
                vendido=plant_sold,
                fecha_venta=datetime(2024, 6, 5, 15, 0, tzinfo=timezone.utc) if plant_sold else None,
            )])
        if shipping:
            ids[SHIPPING_RECORDS] = gw.load(SHIPPING_RECORDS, [shipping_doc(
                lote,
                vendido=shipping_sold,
                fecha_venta=datetime(2024, 6, 6, 16, 0, tzinfo=timezone.utc) if shipping_sold else None,
            )])
        return ids

    return _seed


def seed_registry(gw):
    """One registered zone, one lot, and two supplies."""
    gw.load(SOIL_ANALYSES, [{"zona": "Zona Norte", "fecha": "2024-05-20", "resultado_ph": 6.8, "zona_apta": True}])
    gw.load(EXTRACTION_RECORDS, [extraction_doc("O-123")])
    gw.load(SUPPLIES, [
        {"id": "cal", "codigo": "INS-01", "nombre": "Cal", "unidad": "kg", "cantidad_actual": 100.0, "cantidad_minima": 10.0},
        {"id": "cianuro", "codigo": "INS-02", "nombre": "Cianuro", "unidad": "kg", "cantidad_actual": 20.0, "cantidad_minima": 5.0},
    ])
    return gw


@pytest.fixture
def registry_ready(gateway):
    return seed_registry(gateway)
