import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bookings import init_db
from bookings.config import get_settings
from bookings import db as db_module
from bookings.db import add_doctor, add_room, session_scope
from bookings.header_mapping import ALL_FIELDS
from bookings.models import Doctor, Room


@pytest.fixture(autouse=True)
def configure_env(tmp_path, monkeypatch):
    db_path = tmp_path / "test.db"
    export_path = tmp_path / "exports"
    monkeypatch.setenv("BOOKINGS_DB_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("BOOKINGS_EXPORT_DIR", str(export_path))
    get_settings.cache_clear()
    init_db()
    yield
    get_settings.cache_clear()
    for conn in db_module._connection_cache.values():
        conn.close()
    db_module._connection_cache.clear()


@pytest.fixture
def doctors():
    return [Doctor(id="d1", name="Dr. Smith", clinic_id="c1")]


@pytest.fixture
def rooms():
    return [Room(id="r1", name="Room 1", clinic_id="c1")]


@pytest.fixture
def seeded(doctors, rooms):
    with session_scope() as conn:
        for doctor in doctors:
            add_doctor(conn, doctor)
        for room in rooms:
            add_room(conn, room)
        add_doctor(conn, Doctor(id="d-other", name="Dr. Smith", clinic_id="c2"))
    return doctors, rooms


@pytest.fixture
def identity_mapping():
    return {field.id: field.id for field in ALL_FIELDS}


@pytest.fixture
def valid_row():
    return {
        "patientName": "John Doe",
        "patientPhone": "1234567890",
        "doctorName": "Dr. Smith",
        "roomName": "Room 1",
        "appointmentDate": "2024-01-15",
        "startTime": "09:00",
        "endTime": "09:30",
    }
