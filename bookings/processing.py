from __future__ import annotations

import io
import random
import sqlite3
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .config import get_settings
from .db import (
    find_overlapping,
    find_patient,
    init_db,
    insert_appointment,
    insert_patient,
    invoice_number_exists,
    list_doctors,
    list_rooms,
    next_emr_number,
    session_scope,
)
from .header_mapping import HeaderMappingResult, apply_mapping, map_headers, template_rows
from .logger import get_logger
from .models import ImportContext, ImportOutcome, Patient
from .utils import cell_text, format_date, has_value, minutes_of, normalize_phone, parse_date, parse_time, split_name

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = {".csv", ".xlsx", ".xls"}
VALID_GENDERS = {"Male", "Female", "Other"}
INVOICE_ATTEMPTS = 10

# (field id, message) in the order the messages are reported
REQUIRED_MESSAGES = [
    ("patientName", "Patient name is required"),
    ("patientPhone", "Patient phone is required"),
    ("doctorName", "Doctor name is required"),
    ("roomName", "Room name is required"),
    ("appointmentDate", "Appointment date is required"),
    ("startTime", "Start time is required"),
    ("endTime", "End time is required"),
]

Source = Union[str, Path, bytes, io.IOBase]


class ImportFileError(ValueError):
    """The uploaded file cannot be used for an import."""


@dataclass
class ParsedFile:
    columns: List[str]
    rows: List[Dict[str, Any]]


class RowRejected(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _extension(name: str) -> str:
    return Path(name).suffix.lower()


def check_upload(filename: str, size: int, max_bytes: Optional[int] = None) -> None:
    limit = max_bytes if max_bytes is not None else get_settings().max_upload_bytes
    if size > limit:
        raise ImportFileError(
            f"File size too large. Maximum allowed size is {limit / (1024 * 1024):g}MB. "
            f"Your file is {size / (1024 * 1024):.2f}MB."
        )
    if _extension(filename) not in SUPPORTED_EXTENSIONS:
        raise ImportFileError("Please upload a CSV or Excel file (.csv, .xlsx, .xls)")


def read_input(source: Source, filename: Optional[str] = None) -> pd.DataFrame:
    """Read the first sheet (or the CSV body) of an upload into a DataFrame."""
    if isinstance(source, (str, Path)):
        path = Path(source)
        filename = filename or path.name
        data = path.read_bytes()
    elif isinstance(source, bytes):
        data = source
    else:
        data = source.read()
    if not filename:
        raise ImportFileError("A file name is required to detect the file type")

    check_upload(filename, len(data))
    buffer = io.BytesIO(data)
    try:
        if _extension(filename) == ".csv":
            df = pd.read_csv(buffer, dtype=str, encoding="utf-8-sig", skip_blank_lines=True)
        else:
            df = pd.read_excel(buffer, sheet_name=0, dtype=object)
    except pd.errors.EmptyDataError as exc:
        raise ImportFileError("File is empty or has no data") from exc
    except (ValueError, pd.errors.ParserError, UnicodeDecodeError, zipfile.BadZipFile) as exc:
        raise ImportFileError(f"Error reading file: {exc}") from exc

    if df.empty:
        raise ImportFileError("File is empty or has no data")
    return df


def frame_to_file(df: pd.DataFrame) -> ParsedFile:
    columns = [str(column) for column in df.columns]
    cleaned = df.astype(object).where(pd.notna(df), None)
    rows = [
        {str(column): value for column, value in record.items()}
        for record in cleaned.to_dict(orient="records")
    ]
    return ParsedFile(columns=columns, rows=rows)


def load_file(source: Source, filename: Optional[str] = None) -> ParsedFile:
    return frame_to_file(read_input(source, filename))


def export_template(path: Union[str, Path]) -> Path:
    header, *rows = template_rows()
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=header).to_csv(target, index=False)
    return target


def _invoice_number(now: datetime) -> str:
    seq = random.randint(0, 999)
    return f"INV-{now:%Y%m%d}-{seq:03d}"


class AppointmentImporter:
    """Authoritative import of mapped rows into the clinic's appointment book.

    Every row is re-validated here; the advisory stats computed while mapping
    are never trusted. A failing row is reported and skipped, the rest of the
    batch carries on.
    """

    def __init__(self, context: ImportContext):
        self.context = context
        init_db()

    def map_headers(self, df: pd.DataFrame) -> HeaderMappingResult:
        return map_headers(list(df.columns))

    def _lookups(self, conn: sqlite3.Connection) -> Tuple[Dict[str, str], Dict[str, str]]:
        doctors = {doctor.name.strip().lower(): doctor.id for doctor in list_doctors(conn, self.context.clinic_id)}
        rooms = {room.name.strip().lower(): room.id for room in list_rooms(conn, self.context.clinic_id)}
        return doctors, rooms

    def import_file(self, source: Source, mapping: Mapping[str, str], filename: Optional[str] = None) -> ImportOutcome:
        parsed = load_file(source, filename)
        return self.import_rows(parsed.rows, mapping)

    def import_rows(self, rows: Sequence[Mapping[str, Any]], mapping: Mapping[str, str]) -> ImportOutcome:
        outcome = ImportOutcome(total=len(rows))
        with session_scope() as conn:
            doctors, rooms = self._lookups(conn)

        for number, row in enumerate(rows, start=1):
            try:
                with session_scope() as conn:
                    start_date = self._import_row(conn, row, mapping, doctors, rooms)
            except RowRejected as rejected:
                outcome.failed += 1
                outcome.errors.append(f"Row {number}: {rejected.message}")
                continue
            except (sqlite3.Error, ValueError) as exc:
                logger.warning("Row %s failed: %s", number, exc)
                outcome.failed += 1
                outcome.errors.append(f"Row {number}: {exc}")
                continue
            outcome.imported += 1
            if start_date not in outcome.imported_dates:
                outcome.imported_dates.append(start_date)
            logger.debug("Row %s: appointment created for %s", number, start_date)

        logger.info(
            "Clinic %s import by %s: %s",
            self.context.clinic_id,
            self.context.user_id,
            outcome.summary_message(),
        )
        return outcome

    def _import_row(
        self,
        conn: sqlite3.Connection,
        row: Mapping[str, Any],
        mapping: Mapping[str, str],
        doctors: Mapping[str, str],
        rooms: Mapping[str, str],
    ) -> str:
        mapped = apply_mapping(row, mapping)

        missing = [message for field_id, message in REQUIRED_MESSAGES if not has_value(mapped.get(field_id))]
        if missing:
            raise RowRejected(", ".join(missing))

        phone = normalize_phone(mapped["patientPhone"])
        if len(phone) != 10:
            raise RowRejected("Invalid phone number. Must be exactly 10 digits.")

        patient = find_patient(conn, self.context.clinic_id, phone)
        if patient is None:
            patient = self._create_patient(conn, mapped, phone)

        doctor_name = cell_text(mapped["doctorName"])
        doctor_id = doctors.get(doctor_name.lower())
        if not doctor_id:
            raise RowRejected(f'Doctor "{doctor_name}" not found')

        room_name = cell_text(mapped["roomName"])
        room_id = rooms.get(room_name.lower())
        if not room_id:
            raise RowRejected(f'Room "{room_name}" not found')

        appointment_date = parse_date(mapped["appointmentDate"])
        if appointment_date is None:
            raise RowRejected("Invalid date format")

        start_time = parse_time(mapped["startTime"])
        end_time = parse_time(mapped["endTime"])
        if not start_time or not end_time:
            raise RowRejected("Invalid time format")
        if minutes_of(start_time) >= minutes_of(end_time):
            raise RowRejected("End time must be after start time")

        start_date = format_date(appointment_date)
        if find_overlapping(conn, self.context.clinic_id, doctor_id, start_date, start_time, end_time):
            raise RowRejected("Appointment overlaps with existing appointment")

        insert_appointment(
            conn,
            clinic_id=self.context.clinic_id,
            patient_id=patient.id,
            doctor_id=doctor_id,
            room_id=room_id,
            status=cell_text(mapped.get("status")) or "booked",
            follow_type=cell_text(mapped.get("followType")) or "first time",
            start_date=start_date,
            from_time=start_time,
            to_time=end_time,
            notes=cell_text(mapped.get("notes")),
            created_by=self.context.user_id,
        )
        return start_date

    def _create_patient(self, conn: sqlite3.Connection, mapped: Mapping[str, Any], phone: str) -> Patient:
        now = datetime.now()
        invoice_number = _invoice_number(now)
        attempts = 0
        while invoice_number_exists(conn, invoice_number) and attempts < INVOICE_ATTEMPTS:
            invoice_number = _invoice_number(now)
            attempts += 1
        if invoice_number_exists(conn, invoice_number):
            raise RowRejected("Could not generate unique invoice number. Please try again.")

        first_name, last_name = split_name(mapped["patientName"])

        gender = cell_text(mapped.get("patientGender")) or "Male"
        if gender not in VALID_GENDERS:
            raise RowRejected("Invalid gender. Must be Male, Female, or Other.")

        return insert_patient(
            conn,
            clinic_id=self.context.clinic_id,
            emr_number=next_emr_number(conn),
            invoice_number=invoice_number,
            first_name=first_name,
            last_name=last_name,
            mobile_number=phone,
            email=cell_text(mapped.get("patientEmail")).lower(),
            gender=gender,
            notes=cell_text(mapped.get("notes")),
            created_by=self.context.user_id,
        )


__all__ = [
    "AppointmentImporter",
    "ImportFileError",
    "ParsedFile",
    "SUPPORTED_EXTENSIONS",
    "check_upload",
    "read_input",
    "frame_to_file",
    "load_file",
    "export_template",
]
