"""
MineSmart - Document Schemas

Two families of pydantic models:

- Stored records (ExtractionRecord, LabAnalysis, PlantRun, ShippingRecord)
  describe documents as they come back from the store. They are lenient:
  missing fields default to empty values, numbers are coerced best-effort,
  and date fields keep whatever the store returned. Validating a stored
  document never raises.

- Entry models (*Entry) validate what an operator submits before anything
  is written. They are strict and produce the document via to_document().

Field names are the persisted layout and match the collection contract.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Annotated, Any, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field

from .config import LOT_CODE_PATTERN, PRODUCT_NAMES
from .loaders.utils import first_quantity, safe_float

_LOT_CODE_RE = re.compile(LOT_CODE_PATTERN)


# ------------ Coercions ------------
def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_flag(value: Any) -> bool:
    return value is True


def _as_stored_date(value: Any) -> Any:
    return "" if value is None else value


def parse_lot_code(value: Any) -> str:
    """Normalise and validate a lot code entered by an operator.

    The entry convention is one letter, hyphen, three digits ("O-123").
    """
    code = _as_text(value).strip().upper()
    if not _LOT_CODE_RE.match(code):
        raise ValueError(f"lot code '{code}' must look like O-123")
    return code


def normalise_lot_reference(value: Any) -> str:
    """Strip a lot code used for lookup or linkage; reject empty codes.

    Existing documents predate the entry convention, so no pattern is
    enforced here.
    """
    code = _as_text(value).strip()
    if not code:
        raise ValueError("lot code must not be empty")
    return code


Text = Annotated[str, BeforeValidator(_as_text)]
# Stored dates keep their raw shape (string, datetime or {seconds, nanoseconds}).
StoredDate = Annotated[Any, BeforeValidator(_as_stored_date)]
Number = Annotated[Optional[float], BeforeValidator(safe_float)]
Flag = Annotated[bool, BeforeValidator(_as_flag)]
LotCode = Annotated[str, AfterValidator(parse_lot_code)]
LotReference = Annotated[str, AfterValidator(normalise_lot_reference)]
Percentage = Annotated[float, Field(ge=1, le=100)]


# ------------ Stored records ------------
class StoredRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Text = ""
    created_at: Any = None


class ExtractionRecord(StoredRecord):
    zona: Text = ""
    material: Text = ""
    lote: Text = ""
    fecha: StoredDate = ""
    cantidad_t: Number = None
    cantidad_kg: Number = None
    operador: Text = ""
    condicion: Text = ""
    observaciones: Text = ""

    @property
    def cantidad(self) -> float:
        return first_quantity(self.cantidad_t, self.cantidad_kg)


class LabAnalysis(StoredRecord):
    zona: Text = ""
    lote: Text = ""
    operador: Text = ""
    material: Text = ""
    fecha_envio: StoredDate = ""
    resultado: Text = ""
    pureza: Number = None
    humedad: Number = None
    observaciones: Text = ""


class PlantRun(StoredRecord):
    zona: Text = ""
    material: Text = ""
    operador: Text = ""
    condicion: Text = ""
    extraction_id: Text = ""
    fecha: StoredDate = ""
    cantidad_t: Number = None
    cantidad_kg: Number = None
    pureza_final: Number = None
    turno: Text = ""
    lote: Text = ""
    observaciones: Text = ""
    vendido: Flag = False
    fecha_venta: Any = None

    @property
    def cantidad(self) -> float:
        return first_quantity(self.cantidad_t, self.cantidad_kg)

    @property
    def cantidad_en_kg(self) -> float:
        if self.cantidad_kg is not None:
            return self.cantidad_kg
        if self.cantidad_t is not None:
            return self.cantidad_t * 1000
        return 0.0


class ShippingRecord(StoredRecord):
    fecha: StoredDate = ""
    lote: Text = ""
    producto: Text = ""
    cantidad_kg: Number = None
    pureza_final: Number = None
    cliente_destino: Text = ""
    transportista: Text = ""
    vendido: Flag = False
    fecha_venta: Any = None
    observaciones: Text = ""


class LotAggregate(BaseModel):
    """All records sharing one lot code, assembled per lookup."""
    lote: str
    extraction: Optional[ExtractionRecord] = None
    lab: List[LabAnalysis] = Field(default_factory=list)
    plant: List[PlantRun] = Field(default_factory=list)
    shipping: List[ShippingRecord] = Field(default_factory=list)
    degraded: List[str] = Field(default_factory=list)


# ------------ Entry models ------------
class EntryModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    def to_document(self) -> dict:
        return self.model_dump(mode="json")


class ExtractionEntry(EntryModel):
    zona: str = Field(min_length=1)
    material: Literal["oro", "cobre"] = "oro"
    lote: LotCode
    fecha: date
    cantidad_t: float = Field(ge=0)
    cantidad_kg: Optional[float] = Field(default=None, ge=0)
    operador: str = ""
    condicion: Literal["humedo", "seco", "crudo"]
    observaciones: str = ""


class LabEntry(EntryModel):
    zona: str = Field(min_length=1)
    lote: LotReference
    operador: str = ""
    material: Literal["oro", "cobre"] = "oro"
    fecha_envio: date
    resultado: str = Field(min_length=1)
    pureza: Percentage
    humedad: Percentage
    observaciones: str = ""


class PlantRunEntry(EntryModel):
    zona: str = Field(min_length=1)
    material: Literal["oro", "cobre"] = "oro"
    operador: str = ""
    condicion: Literal["humedo", "seco", "crudo"] = "humedo"
    extraction_id: str = ""
    fecha: date
    cantidad_t: float = Field(ge=0)
    pureza_final: Optional[Percentage] = None
    turno: Literal["mañana", "tarde", "noche"] = "mañana"
    lote: LotReference
    observaciones: str = ""

    def to_document(self) -> dict:
        doc = super().to_document()
        doc["cantidad_kg"] = self.cantidad_t * 1000
        doc["vendido"] = False
        doc["fecha_venta"] = None
        return doc


class PlantFailureEntry(EntryModel):
    maquina: str = Field(min_length=1)
    tipo_falla: str = ""
    duracion_horas: float = Field(gt=0)
    estado: Literal["abierta", "cerrada"] = "abierta"
    responsable: str = ""
    descripcion: str = ""


class ConsumptionEntry(EntryModel):
    insumo_id: str = Field(min_length=1)
    insumo: str = ""
    cantidad: float = Field(gt=0)
    proceso: str = Field(min_length=1)
    fecha: date


class ShipmentEntry(EntryModel):
    fecha: date
    lote: LotReference
    producto: Literal["Concentrado de Oro", "Concentrado de Cobre"] = PRODUCT_NAMES["oro"]
    cantidad_kg: float = Field(ge=0)
    pureza_final: Optional[Percentage] = None
    cliente_destino: str = Field(min_length=1)
    transportista: str = Field(min_length=1)
    observaciones: str = ""

    def to_document(self) -> dict:
        doc = super().to_document()
        doc["vendido"] = False
        doc["fecha_venta"] = None
        return doc


class SoilAnalysisEntry(EntryModel):
    zona: str = Field(min_length=1)
    fecha: date
    analista: str = ""
    resultado_ph: float = Field(ge=0, le=14)
    pureza: Optional[float] = Field(default=None, ge=0, le=100)
    humedad: Optional[float] = Field(default=None, ge=0, le=100)
    zona_apta: bool = False
    observaciones: str = ""


class SupplyEntry(EntryModel):
    codigo: str = Field(min_length=1)
    nombre: str = Field(min_length=1)
    unidad: str = ""
    cantidad_actual: float = Field(ge=0)
    cantidad_minima: float = Field(default=0, ge=0)
