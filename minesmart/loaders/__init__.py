"""Loaders that read store documents into report-ready shapes."""

from .records import load_collection, records_to_frame
from .utils import format_date, format_number, format_percent
from .utils import first_quantity, normalise_date, safe_float

__all__ = [
    "load_collection",
    "records_to_frame",
    "format_date",
    "format_number",
    "format_percent",
    "first_quantity",
    "normalise_date",
    "safe_float",
]
