from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .header_mapping import (
    REQUIRED_FIELDS,
    ColumnMapping,
    HeaderMapper,
    apply_mapping,
    missing_required_fields,
)
from .utils import has_value, is_present, is_valid_time_range, parse_date

DEFAULT_PREVIEW_ROWS = 10

Row = Mapping[str, Any]


@dataclass
class ValidationStats:
    valid_rows: int = 0
    invalid_rows: int = 0
    missing_required: int = 0
    invalid_doctor: int = 0
    invalid_room: int = 0
    invalid_date: int = 0
    invalid_time: int = 0

    @property
    def total(self) -> int:
        return self.valid_rows + self.invalid_rows

    def to_dict(self) -> Dict[str, int]:
        return {
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "missingRequired": self.missing_required,
            "invalidDoctor": self.invalid_doctor,
            "invalidRoom": self.invalid_room,
            "invalidDate": self.invalid_date,
            "invalidTime": self.invalid_time,
        }


@dataclass
class RowIssues:
    missing_required: bool = False
    invalid_doctor: bool = False
    invalid_room: bool = False
    invalid_date: bool = False
    invalid_time: bool = False

    @property
    def is_valid(self) -> bool:
        return not any(asdict(self).values())


def _ref_parts(ref: Any) -> Tuple[str, str]:
    if isinstance(ref, Mapping):
        ref_id = ref.get("id", ref.get("_id"))
        return str(ref_id), str(ref.get("name", ""))
    return str(ref.id), str(ref.name)


def build_lookup(refs: Iterable[Any]) -> Dict[str, str]:
    """Map lower-cased names to ids. Accepts dataclasses or ``{id, name}`` dicts."""
    lookup: Dict[str, str] = {}
    for ref in refs:
        ref_id, name = _ref_parts(ref)
        lookup[name.lower()] = ref_id
    return lookup


def check_row(
    mapped: Mapping[str, Any],
    doctor_lookup: Mapping[str, str],
    room_lookup: Mapping[str, str],
) -> RowIssues:
    issues = RowIssues()

    for field in REQUIRED_FIELDS:
        if not has_value(mapped.get(field.id)):
            issues.missing_required = True

    doctor_name = mapped.get("doctorName")
    if is_present(doctor_name) and str(doctor_name).strip().lower() not in doctor_lookup:
        issues.invalid_doctor = True

    room_name = mapped.get("roomName")
    if is_present(room_name) and str(room_name).strip().lower() not in room_lookup:
        issues.invalid_room = True

    appointment_date = mapped.get("appointmentDate")
    if is_present(appointment_date) and parse_date(appointment_date) is None:
        issues.invalid_date = True

    start, end = mapped.get("startTime"), mapped.get("endTime")
    if is_present(start) and is_present(end) and not is_valid_time_range(start, end):
        issues.invalid_time = True

    return issues


def validate_rows(
    rows: Sequence[Row],
    mapping: Mapping[str, str],
    doctors: Iterable[Any],
    rooms: Iterable[Any],
) -> ValidationStats:
    doctor_lookup = build_lookup(doctors)
    room_lookup = build_lookup(rooms)
    stats = ValidationStats()

    for row in rows:
        issues = check_row(apply_mapping(row, mapping), doctor_lookup, room_lookup)
        if issues.is_valid:
            stats.valid_rows += 1
            continue
        stats.invalid_rows += 1
        stats.missing_required += issues.missing_required
        stats.invalid_doctor += issues.invalid_doctor
        stats.invalid_room += issues.invalid_room
        stats.invalid_date += issues.invalid_date
        stats.invalid_time += issues.invalid_time

    return stats


def build_preview(
    rows: Sequence[Row],
    mapping: Mapping[str, str],
    doctors: Iterable[Any],
    rooms: Iterable[Any],
    limit: int = DEFAULT_PREVIEW_ROWS,
) -> List[Dict[str, Any]]:
    doctor_lookup = build_lookup(doctors)
    room_lookup = build_lookup(rooms)
    preview: List[Dict[str, Any]] = []
    for row in rows[:limit]:
        mapped = apply_mapping(row, mapping)
        doctor_name = mapped.get("doctorName")
        if has_value(doctor_name):
            doctor_id = doctor_lookup.get(str(doctor_name).strip().lower())
            if doctor_id:
                mapped["doctorId"] = doctor_id
        room_name = mapped.get("roomName")
        if has_value(room_name):
            room_id = room_lookup.get(str(room_name).strip().lower())
            if room_id:
                mapped["roomId"] = room_id
        preview.append(mapped)
    return preview


class ImportSession:
    """State of one upload wizard: file rows, editable mapping and references.

    Stats are recomputed only when the rows, the mapping or the reference
    lists change. The preview is also rebuilt when ``preview_limit`` changes.
    """

    def __init__(self, doctors: Iterable[Any] = (), rooms: Iterable[Any] = (), preview_limit: int = DEFAULT_PREVIEW_ROWS):
        self.columns: List[str] = []
        self.rows: List[Dict[str, Any]] = []
        self.mapping: ColumnMapping = {}
        self.doctors: Tuple[Any, ...] = tuple(doctors)
        self.rooms: Tuple[Any, ...] = tuple(rooms)
        self.preview_limit = preview_limit
        self._rows_version = 0
        self._cache_key: Optional[tuple] = None
        self._stats: Optional[ValidationStats] = None
        self._preview: List[Dict[str, Any]] = []
        self._preview_key: Optional[tuple] = None

    def load(self, columns: Sequence[str], rows: Sequence[Row]) -> None:
        self.columns = [str(column) for column in columns]
        self.rows = [dict(row) for row in rows]
        self._rows_version += 1
        # a new file starts from a fresh suggestion; later edits never re-run it
        self.mapping = HeaderMapper(self.columns).suggest_mapping() if self.columns else {}

    def reset(self) -> None:
        self.columns = []
        self.rows = []
        self.mapping = {}
        self._rows_version += 1

    def update_mapping(self, column: str, field_id: Optional[str]) -> None:
        mapping = dict(self.mapping)
        if field_id:
            mapping[column] = field_id
        else:
            mapping.pop(column, None)
        self.mapping = mapping

    def set_references(self, doctors: Iterable[Any], rooms: Iterable[Any]) -> None:
        self.doctors = tuple(doctors)
        self.rooms = tuple(rooms)

    def _key(self) -> tuple:
        return (
            self._rows_version,
            tuple(sorted(self.mapping.items())),
            tuple(_ref_parts(ref) for ref in self.doctors),
            tuple(_ref_parts(ref) for ref in self.rooms),
        )

    def _refresh(self) -> ValidationStats:
        key = self._key()
        if key == self._cache_key and self._stats is not None:
            return self._stats
        stats = validate_rows(self.rows, self.mapping, self.doctors, self.rooms)
        self._stats = stats
        self._cache_key = key
        self._preview_key = None
        return stats

    @property
    def stats(self) -> ValidationStats:
        return self._refresh()

    @property
    def preview(self) -> List[Dict[str, Any]]:
        self._refresh()
        # preview also follows the window size
        preview_key = (self._cache_key, self.preview_limit)
        if preview_key != self._preview_key:
            self._preview = build_preview(self.rows, self.mapping, self.doctors, self.rooms, self.preview_limit)
            self._preview_key = preview_key
        return self._preview

    @property
    def missing_fields(self) -> List[str]:
        return [field.label for field in missing_required_fields(self.mapping)]

    @property
    def ready_to_import(self) -> bool:
        return not self.missing_fields and self.stats.valid_rows > 0


__all__ = [
    "ValidationStats",
    "RowIssues",
    "ImportSession",
    "build_lookup",
    "check_row",
    "validate_rows",
    "build_preview",
    "DEFAULT_PREVIEW_ROWS",
]
