import threading

import pytest
from openpyxl import Workbook

from bookings import processing
from bookings.db import list_appointments, session_scope
from bookings.header_mapping import ALL_FIELDS
from bookings.models import ImportContext
from bookings.processing import (
    AppointmentImporter,
    ImportFileError,
    check_upload,
    export_template,
    load_file,
    read_input,
)


@pytest.fixture
def importer(seeded):
    return AppointmentImporter(ImportContext(clinic_id="c1", user_id="u1"))


def patient_count():
    with session_scope() as conn:
        return conn.execute("SELECT COUNT(*) AS total FROM patients").fetchone()["total"]


def test_import_creates_appointment(importer, valid_row, identity_mapping):
    outcome = importer.import_rows([valid_row], identity_mapping)

    assert outcome.total == 1
    assert outcome.imported == 1
    assert outcome.failed == 0
    assert outcome.errors == []
    assert outcome.imported_dates == ["2024-01-15"]
    assert outcome.summary_message() == "Imported 1 appointments. 0 failed."

    with session_scope() as conn:
        booked = list_appointments(conn, "c1")
    assert len(booked) == 1
    appointment = booked[0]
    assert appointment.doctor_id == "d1"
    assert appointment.room_id == "r1"
    assert appointment.from_time == "09:00"
    assert appointment.to_time == "09:30"
    assert appointment.status == "booked"
    assert appointment.follow_type == "first time"
    assert appointment.created_by == "u1"


def test_missing_fields_are_listed_together(importer, valid_row, identity_mapping):
    row = {**valid_row, "patientPhone": "", "startTime": None}
    outcome = importer.import_rows([row], identity_mapping)
    assert outcome.failed == 1
    assert outcome.errors == ["Row 1: Patient phone is required, Start time is required"]


@pytest.mark.parametrize(
    "changes, message",
    [
        ({"patientPhone": "12345"}, "Invalid phone number. Must be exactly 10 digits."),
        ({"doctorName": "Dr. Who"}, 'Doctor "Dr. Who" not found'),
        ({"roomName": "Room 9"}, 'Room "Room 9" not found'),
        ({"appointmentDate": "someday"}, "Invalid date format"),
        ({"startTime": "nine"}, "Invalid time format"),
        ({"startTime": "10:00", "endTime": "09:00"}, "End time must be after start time"),
        ({"patientGender": "unknown"}, "Invalid gender. Must be Male, Female, or Other."),
    ],
)
def test_row_rejections(importer, valid_row, identity_mapping, changes, message):
    outcome = importer.import_rows([{**valid_row, **changes}], identity_mapping)
    assert outcome.imported == 0
    assert outcome.errors == [f"Row 1: {message}"]


def test_rejected_row_leaves_no_patient_behind(importer, valid_row, identity_mapping):
    importer.import_rows([{**valid_row, "roomName": "Nowhere"}], identity_mapping)
    assert patient_count() == 0


def test_rejected_row_rolls_back_while_another_import_runs(importer, valid_row, identity_mapping, monkeypatch):
    importer.import_rows([valid_row], identity_mapping)
    entered, release = threading.Event(), threading.Event()
    real = processing.find_overlapping

    def paused(*args, **kwargs):
        if threading.current_thread().name == "overlapping":
            entered.set()
            release.wait(5)
        return real(*args, **kwargs)

    monkeypatch.setattr(processing, "find_overlapping", paused)
    outcomes = {}
    overlapping = {**valid_row, "patientName": "Ann Lee", "patientPhone": "5555555555"}
    next_day = {**valid_row, "appointmentDate": "2024-01-16"}

    def run(key, row):
        outcomes[key] = importer.import_rows([row], identity_mapping)

    first = threading.Thread(target=run, args=("overlapping", overlapping), name="overlapping")
    second = threading.Thread(target=run, args=("next_day", next_day))
    first.start()
    assert entered.wait(5)
    second.start()
    second.join(0.2)
    release.set()
    first.join(5)
    second.join(5)

    assert outcomes["overlapping"].errors == ["Row 1: Appointment overlaps with existing appointment"]
    assert outcomes["next_day"].imported == 1
    assert patient_count() == 1


def test_other_clinic_doctors_are_invisible(seeded, valid_row, identity_mapping):
    importer = AppointmentImporter(ImportContext(clinic_id="c2", user_id="u9"))
    outcome = importer.import_rows([valid_row], identity_mapping)
    assert outcome.errors == ['Row 1: Room "Room 1" not found']


def test_overlap_and_patient_reuse(importer, valid_row, identity_mapping):
    rows = [
        valid_row,
        {**valid_row, "startTime": "9:15 AM", "endTime": "9:45 AM"},
        {**valid_row, "startTime": "09:30", "endTime": "10:00", "appointmentDate": "15/01/2024"},
        {**valid_row, "appointmentDate": "2024-01-16", "patientPhone": "(123) 456-7890"},
    ]
    outcome = importer.import_rows(rows, identity_mapping)

    assert outcome.imported == 3
    assert outcome.failed == 1
    assert outcome.errors == ["Row 2: Appointment overlaps with existing appointment"]
    assert outcome.imported_dates == ["2024-01-15", "2024-01-16"]
    assert patient_count() == 1


def test_new_patient_fields(importer, valid_row, identity_mapping):
    row = {**valid_row, "patientName": "Mary Ann Jones", "patientEmail": " Mary@Example.COM ", "patientGender": "Female"}
    importer.import_rows([row], identity_mapping)
    with session_scope() as conn:
        patient = conn.execute("SELECT * FROM patients").fetchone()
    assert patient["first_name"] == "Mary"
    assert patient["last_name"] == "Ann Jones"
    assert patient["email"] == "mary@example.com"
    assert patient["gender"] == "Female"
    assert patient["mobile_number"] == "1234567890"
    assert patient["invoice_number"].startswith("INV-")
    assert patient["emr_number"] == "EMR000001"


def test_optional_fields_override_defaults(importer, valid_row, identity_mapping):
    row = {**valid_row, "status": "enquiry", "followType": "follow up", "notes": "bring reports"}
    importer.import_rows([row], identity_mapping)
    with session_scope() as conn:
        appointment = list_appointments(conn, "c1", "2024-01-15")[0]
    assert appointment.status == "enquiry"
    assert appointment.follow_type == "follow up"
    assert appointment.notes == "bring reports"


CSV_BODY = (
    "Patient Name,Phone,Doctor,Room,Date,Start Time,End Time\n"
    "John Doe,1234567890,Dr. Smith,Room 1,2024-01-15,09:00,09:30\n"
    "Jane Roe,,Dr. Smith,Room 1,2024-01-15,10:00,10:30\n"
)


def test_import_file_from_csv(importer, tmp_path):
    path = tmp_path / "appointments.csv"
    path.write_text(CSV_BODY, encoding="utf-8")
    mapping = {
        "Patient Name": "patientName",
        "Phone": "patientPhone",
        "Doctor": "doctorName",
        "Room": "roomName",
        "Date": "appointmentDate",
        "Start Time": "startTime",
        "End Time": "endTime",
    }
    outcome = importer.import_file(path, mapping)
    assert outcome.total == 2
    assert outcome.imported == 1
    assert outcome.errors == ["Row 2: Patient phone is required"]


def test_load_file_keeps_headers_and_blanks():
    parsed = load_file(CSV_BODY.encode("utf-8"), "upload.CSV")
    assert parsed.columns[:2] == ["Patient Name", "Phone"]
    assert parsed.rows[0]["Phone"] == "1234567890"
    assert parsed.rows[1]["Phone"] is None


def test_load_file_reads_xlsx(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.append(["Patient Name", "Phone", "Date"])
    ws.append(["John Doe", "1234567890", "2024-01-15"])
    path = tmp_path / "appointments.xlsx"
    wb.save(path)

    parsed = load_file(path)
    assert parsed.columns == ["Patient Name", "Phone", "Date"]
    assert parsed.rows == [{"Patient Name": "John Doe", "Phone": "1234567890", "Date": "2024-01-15"}]


def test_upload_checks():
    with pytest.raises(ImportFileError, match="CSV or Excel"):
        check_upload("appointments.pdf", 10)
    with pytest.raises(ImportFileError, match="File size too large"):
        check_upload("appointments.csv", 6 * 1024 * 1024)
    check_upload("appointments.xls", 5 * 1024 * 1024)


def test_read_input_rejects_empty_file():
    with pytest.raises(ImportFileError, match="empty"):
        read_input(b"", "appointments.csv")
    with pytest.raises(ImportFileError, match="empty"):
        read_input(b"Patient Name,Phone\n", "appointments.csv")


def test_export_template(tmp_path):
    target = export_template(tmp_path / "template.csv")
    header = target.read_text(encoding="utf-8").splitlines()[0]
    assert header.split(",") == [field.label for field in ALL_FIELDS]
