"""
Configuration: collection names, lot stage table, wire placeholders,
report constants, and environment-driven database settings.

Collection and field names are the persisted layout of the document store.
Changing them makes existing data unreadable.
"""

import os

# ---------------------------------------------------------------------------
# Database: set through the environment
# ---------------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "minesmart")

# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
SOIL_ANALYSES = "soil_analyses"
EXTRACTION_RECORDS = "extraction_records"
LAB_ANALYSES = "lab_analyses"
PLANT_RUNS = "plant_runs"
PLANT_FAILURES = "plant_failures"
PLANT_CONSUMPTIONS = "plant_consumptions"
SUPPLIES = "supplies"
SHIPPING_RECORDS = "shipping_records"

# Date field each collection is reported and sorted by
DATE_FIELDS: dict[str, str] = {
    SOIL_ANALYSES: "fecha",
    EXTRACTION_RECORDS: "fecha",
    LAB_ANALYSES: "fecha_envio",
    PLANT_RUNS: "fecha",
    PLANT_FAILURES: "created_at",
    PLANT_CONSUMPTIONS: "fecha",
    SHIPPING_RECORDS: "fecha",
}

# ---------------------------------------------------------------------------
# Lot stages
# ---------------------------------------------------------------------------
# Ordered; stage_index() and the progress bar rely on this order.
LOT_STAGES: list[dict[str, str]] = [
    {"id": "extraction", "label": "Material to process", "description": "Registered in extraction"},
    {"id": "lab", "label": "Sample analysis", "description": "Lab results"},
    {"id": "plant", "label": "Production entry", "description": "Processed in plant"},
    {"id": "shipping", "label": "Dispatched", "description": "Lot dispatched"},
    {"id": "sold", "label": "Sold", "description": "Sale confirmed"},
]

STAGE_IDS = [stage["id"] for stage in LOT_STAGES]

STATUS_MESSAGES: dict[str, str] = {
    "not_found": "lot not found",
    "extraction": "material registered, awaiting lab analysis",
    "lab": "lab analysis complete, awaiting plant entry",
    "plant_ready": "plant production registered, ready for dispatch",
    "plant_waiting": "plant production registered, awaiting dispatch or sale",
    "shipping": "lot dispatched, awaiting sale confirmation",
    "sold": "lot sold, process complete",
}

# ---------------------------------------------------------------------------
# Wire values
# ---------------------------------------------------------------------------
MATERIALS = ("oro", "cobre")
CONDITIONS = ("humedo", "seco", "crudo")
SHIFTS = ("mañana", "tarde", "noche")
FAILURE_STATES = ("abierta", "cerrada")
LAB_APPROVED = "Aprobado"

PRODUCT_NAMES: dict[str, str] = {
    "oro": "Concentrado de Oro",
    "cobre": "Concentrado de Cobre",
}
DEFAULT_PRODUCT = "Concentrado"

# Placeholders written on a shipping record created by a direct plant sale
DIRECT_SALE_CLIENT = "Venta directa"
PENDING_CARRIER = "Por confirmar"
DIRECT_SALE_NOTE = (
    "Registro de despacho creado automáticamente al confirmar venta desde planta"
)

# Record types accepted by the sale workflow, with the legacy UI aliases
RECORD_TYPES: dict[str, str] = {
    "plant": PLANT_RUNS,
    "planta": PLANT_RUNS,
    "shipping": SHIPPING_RECORDS,
    "despacho": SHIPPING_RECORDS,
}

# Lot code entry convention: one letter, hyphen, three digits
LOT_CODE_PATTERN = r"^[A-Z]-\d{3}$"

# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
ITEMS_PER_PAGE = 10
PURITY_WINDOW_DAYS = 14
MISSING_DISPLAY = "—"
DATE_DISPLAY_FORMAT = "%d/%m/%Y"
DATETIME_DISPLAY_FORMAT = "%d/%m/%Y %H:%M"
