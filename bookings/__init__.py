"""Spreadsheet import of clinic appointments."""
from .config import get_settings
from .db import init_db
from .header_mapping import ALL_FIELDS, OPTIONAL_FIELDS, REQUIRED_FIELDS, map_headers, suggest_mapping
from .models import ImportContext, ImportOutcome
from .processing import AppointmentImporter, ImportFileError, load_file
from .validation import ImportSession, ValidationStats, build_preview, validate_rows

__all__ = [
    "init_db",
    "get_settings",
    "ALL_FIELDS",
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "map_headers",
    "suggest_mapping",
    "ImportContext",
    "ImportOutcome",
    "AppointmentImporter",
    "ImportFileError",
    "load_file",
    "ImportSession",
    "ValidationStats",
    "build_preview",
    "validate_rows",
]
