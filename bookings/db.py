from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from .config import get_settings
from .models import Appointment, Doctor, Patient, Room

_connection_cache: dict[str, sqlite3.Connection] = {}
# the cached connection is shared across threads, so one transaction at a time
_session_lock = threading.RLock()


def get_database_path() -> Path:
    settings = get_settings()
    url = settings.db_url
    if url.startswith("sqlite:///"):
        path = url.replace("sqlite:///", "")
        return Path(path)
    raise ValueError("Only sqlite:/// URLs are supported")


def get_connection() -> sqlite3.Connection:
    db_path = str(get_database_path())
    if db_path not in _connection_cache:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # FastAPI runs sync endpoints on a worker thread
        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        _connection_cache[db_path] = conn
    return _connection_cache[db_path]


@contextmanager
def session_scope() -> Iterator[sqlite3.Connection]:
    with _session_lock:
        conn = get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def init_db() -> None:
    conn = get_connection()
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS doctors (
            id TEXT PRIMARY KEY,
            clinic_id TEXT NOT NULL,
            name TEXT NOT NULL,
            email TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS rooms (
            id TEXT PRIMARY KEY,
            clinic_id TEXT NOT NULL,
            name TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS patients (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            clinic_id TEXT NOT NULL,
            emr_number TEXT NOT NULL,
            invoice_number TEXT NOT NULL UNIQUE,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL DEFAULT '',
            mobile_number TEXT NOT NULL,
            email TEXT NOT NULL DEFAULT '',
            gender TEXT NOT NULL,
            patient_type TEXT NOT NULL DEFAULT 'New',
            notes TEXT NOT NULL DEFAULT '',
            created_by TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS appointments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            clinic_id TEXT NOT NULL,
            patient_id INTEGER NOT NULL,
            doctor_id TEXT NOT NULL,
            room_id TEXT NOT NULL,
            status TEXT NOT NULL,
            follow_type TEXT NOT NULL,
            start_date TEXT NOT NULL,
            from_time TEXT NOT NULL,
            to_time TEXT NOT NULL,
            referral TEXT NOT NULL DEFAULT 'direct',
            emergency TEXT NOT NULL DEFAULT 'no',
            notes TEXT NOT NULL DEFAULT '',
            created_by TEXT NOT NULL,
            booked_from TEXT NOT NULL DEFAULT 'doctor',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(patient_id) REFERENCES patients(id),
            FOREIGN KEY(doctor_id) REFERENCES doctors(id),
            FOREIGN KEY(room_id) REFERENCES rooms(id)
        )
        """
    )
    conn.commit()


def add_doctor(conn: sqlite3.Connection, doctor: Doctor) -> Doctor:
    conn.execute(
        "INSERT INTO doctors (id, clinic_id, name, email) VALUES (?, ?, ?, ?)",
        (doctor.id, doctor.clinic_id, doctor.name, doctor.email),
    )
    return doctor


def add_room(conn: sqlite3.Connection, room: Room) -> Room:
    conn.execute(
        "INSERT INTO rooms (id, clinic_id, name) VALUES (?, ?, ?)",
        (room.id, room.clinic_id, room.name),
    )
    return room


def list_doctors(conn: sqlite3.Connection, clinic_id: str) -> List[Doctor]:
    rows = conn.execute(
        "SELECT id, clinic_id, name, email FROM doctors WHERE clinic_id = ? ORDER BY name", (clinic_id,)
    ).fetchall()
    return [Doctor(id=row["id"], name=row["name"], clinic_id=row["clinic_id"], email=row["email"]) for row in rows]


def list_rooms(conn: sqlite3.Connection, clinic_id: str) -> List[Room]:
    rows = conn.execute("SELECT id, clinic_id, name FROM rooms WHERE clinic_id = ? ORDER BY name", (clinic_id,)).fetchall()
    return [Room(id=row["id"], name=row["name"], clinic_id=row["clinic_id"]) for row in rows]


def find_patient(conn: sqlite3.Connection, clinic_id: str, mobile_number: str) -> Optional[Patient]:
    row = conn.execute(
        "SELECT * FROM patients WHERE clinic_id = ? AND mobile_number = ?",
        (clinic_id, mobile_number),
    ).fetchone()
    return Patient(**dict(row)) if row else None


def invoice_number_exists(conn: sqlite3.Connection, invoice_number: str) -> bool:
    row = conn.execute("SELECT 1 FROM patients WHERE invoice_number = ?", (invoice_number,)).fetchone()
    return row is not None


def next_emr_number(conn: sqlite3.Connection) -> str:
    row = conn.execute("SELECT COUNT(*) AS total FROM patients").fetchone()
    return f"EMR{row['total'] + 1:06d}"


def insert_patient(
    conn: sqlite3.Connection,
    *,
    clinic_id: str,
    emr_number: str,
    invoice_number: str,
    first_name: str,
    last_name: str,
    mobile_number: str,
    email: str,
    gender: str,
    notes: str,
    created_by: str,
) -> Patient:
    cursor = conn.execute(
        """
        INSERT INTO patients (
            clinic_id,
            emr_number,
            invoice_number,
            first_name,
            last_name,
            mobile_number,
            email,
            gender,
            patient_type,
            notes,
            created_by
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'New', ?, ?)
        """,
        (
            clinic_id,
            emr_number,
            invoice_number,
            first_name,
            last_name,
            mobile_number,
            email,
            gender,
            notes,
            created_by,
        ),
    )
    row = conn.execute("SELECT * FROM patients WHERE id = ?", (cursor.lastrowid,)).fetchone()
    return Patient(**dict(row))


def find_overlapping(
    conn: sqlite3.Connection,
    clinic_id: str,
    doctor_id: str,
    start_date: str,
    from_time: str,
    to_time: str,
) -> Optional[int]:
    row = conn.execute(
        """
        SELECT id FROM appointments
        WHERE clinic_id = ? AND doctor_id = ? AND start_date = ?
          AND (
            (from_time >= ? AND from_time < ?)
            OR (to_time > ? AND to_time <= ?)
            OR (from_time <= ? AND to_time >= ?)
          )
        LIMIT 1
        """,
        (clinic_id, doctor_id, start_date, from_time, to_time, from_time, to_time, from_time, to_time),
    ).fetchone()
    return row["id"] if row else None


def insert_appointment(
    conn: sqlite3.Connection,
    *,
    clinic_id: str,
    patient_id: int,
    doctor_id: str,
    room_id: str,
    status: str,
    follow_type: str,
    start_date: str,
    from_time: str,
    to_time: str,
    notes: str,
    created_by: str,
    referral: str = "direct",
    emergency: str = "no",
    booked_from: str = "doctor",
) -> Appointment:
    cursor = conn.execute(
        """
        INSERT INTO appointments (
            clinic_id,
            patient_id,
            doctor_id,
            room_id,
            status,
            follow_type,
            start_date,
            from_time,
            to_time,
            referral,
            emergency,
            notes,
            created_by,
            booked_from
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            clinic_id,
            patient_id,
            doctor_id,
            room_id,
            status,
            follow_type,
            start_date,
            from_time,
            to_time,
            referral,
            emergency,
            notes,
            created_by,
            booked_from,
        ),
    )
    row = conn.execute("SELECT * FROM appointments WHERE id = ?", (cursor.lastrowid,)).fetchone()
    return Appointment(**dict(row))


def list_appointments(conn: sqlite3.Connection, clinic_id: str, on_date: Optional[str] = None) -> List[Appointment]:
    query = "SELECT * FROM appointments WHERE clinic_id = ?"
    params: list = [clinic_id]
    if on_date:
        query += " AND start_date = ?"
        params.append(on_date)
    query += " ORDER BY start_date, from_time"
    return [Appointment(**dict(row)) for row in conn.execute(query, params).fetchall()]


__all__ = [
    "init_db",
    "session_scope",
    "get_connection",
    "add_doctor",
    "add_room",
    "list_doctors",
    "list_rooms",
    "find_patient",
    "invoice_number_exists",
    "next_emr_number",
    "insert_patient",
    "find_overlapping",
    "insert_appointment",
    "list_appointments",
]
