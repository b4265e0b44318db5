from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence


@dataclass(frozen=True)
class FieldDescriptor:
    id: str
    label: str
    required: bool
    description: str


REQUIRED_FIELDS = [
    FieldDescriptor("patientName", "Patient Name", True, "Full name of the patient"),
    FieldDescriptor("patientPhone", "Patient Phone", True, "Contact number (10 digits minimum)"),
    FieldDescriptor("doctorName", "Doctor Name", True, "Must match an existing doctor in the system"),
    FieldDescriptor("roomName", "Room Name", True, "Must match an existing room in the system"),
    FieldDescriptor("appointmentDate", "Appointment Date", True, "Format: YYYY-MM-DD or DD/MM/YYYY"),
    FieldDescriptor("startTime", "Start Time", True, "Format: HH:MM (24-hour) or HH:MM AM/PM"),
    FieldDescriptor("endTime", "End Time", True, "Format: HH:MM (24-hour) or HH:MM AM/PM"),
]

OPTIONAL_FIELDS = [
    FieldDescriptor("patientEmail", "Patient Email", False, "Email address (optional)"),
    FieldDescriptor("patientGender", "Patient Gender", False, "Male, Female, or Other"),
    FieldDescriptor("status", "Status", False, "booked, enquiry, Arrived, Consultation, etc."),
    FieldDescriptor("followType", "Follow Type", False, "first time, follow up, or repeat"),
    FieldDescriptor("notes", "Notes", False, "Additional notes about the appointment"),
]

ALL_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS

FIELDS_BY_ID = {field.id: field for field in ALL_FIELDS}

_WHITESPACE_RE = re.compile(r"\s+")

# source column name -> field id
ColumnMapping = Dict[str, str]


@dataclass
class HeaderMappingResult:
    mapping: ColumnMapping
    missing: List[str]
    extras: List[str]


def _squash(text: str) -> str:
    return _WHITESPACE_RE.sub("", text)


class HeaderMapper:
    """Best-effort binding of spreadsheet columns to appointment fields.

    Fields are resolved in declaration order, so required fields claim a
    column before optional ones. A column matched by two different fields
    ends up bound to the later one.
    """

    def __init__(self, headers: Sequence[str], fields: Sequence[FieldDescriptor] = ALL_FIELDS):
        self.headers = [str(h) for h in headers]
        self.normalized = [h.lower().strip() for h in self.headers]
        self.fields = list(fields)

    def _exact(self, label: str) -> Optional[str]:
        for header, normalized in zip(self.headers, self.normalized):
            if normalized == label:
                return header
        return None

    def _fuzzy(self, label: str) -> Optional[str]:
        squashed = _squash(label)
        for header, normalized in zip(self.headers, self.normalized):
            if label in normalized or normalized in label or _squash(normalized) == squashed:
                return header
        return None

    def suggest_mapping(self) -> ColumnMapping:
        mapping: ColumnMapping = {}
        for field in self.fields:
            label = field.label.lower()
            exact = self._exact(label)
            if exact is not None:
                mapping[exact] = field.id
                continue
            partial = self._fuzzy(label)
            if partial is not None and field.id not in mapping.values():
                mapping[partial] = field.id
        return mapping

    def resolve(self) -> HeaderMappingResult:
        mapping = self.suggest_mapping()
        bound = set(mapping.values())
        missing = [field.id for field in self.fields if field.required and field.id not in bound]
        extras = [h for h in self.headers if h not in mapping]
        return HeaderMappingResult(mapping=mapping, missing=missing, extras=extras)


def suggest_mapping(headers: Sequence[str], fields: Sequence[FieldDescriptor] = ALL_FIELDS) -> ColumnMapping:
    return HeaderMapper(headers, fields).suggest_mapping()


def map_headers(headers: Sequence[str]) -> HeaderMappingResult:
    mapper = HeaderMapper(headers)
    return mapper.resolve()


def missing_required_fields(mapping: Mapping[str, str]) -> List[FieldDescriptor]:
    """Required fields that no column is bound to yet."""
    bound = set(mapping.values())
    return [field for field in REQUIRED_FIELDS if field.id not in bound]


def apply_mapping(row: Mapping[str, Any], mapping: Mapping[str, str]) -> Dict[str, Any]:
    mapped: Dict[str, Any] = {}
    for column, field_id in mapping.items():
        mapped[field_id] = row.get(column)
    return mapped


def template_rows() -> List[List[str]]:
    header = [field.label for field in ALL_FIELDS]
    sample = [
        "John Doe",
        "1234567890",
        "Dr. Smith",
        "Room 1",
        "2024-01-15",
        "09:00",
        "09:30",
        "john@example.com",
        "Male",
        "booked",
        "first time",
        "Initial consultation",
    ]
    return [header, sample]


__all__ = [
    "FieldDescriptor",
    "ColumnMapping",
    "HeaderMappingResult",
    "HeaderMapper",
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "ALL_FIELDS",
    "FIELDS_BY_ID",
    "suggest_mapping",
    "map_headers",
    "missing_required_fields",
    "apply_mapping",
    "template_rows",
]
