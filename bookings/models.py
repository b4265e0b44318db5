from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class ImportContext:
    """Tenant and acting user for one import request."""

    clinic_id: str
    user_id: str
    user_name: Optional[str] = None


@dataclass(frozen=True)
class Doctor:
    id: str
    name: str
    clinic_id: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Room:
    id: str
    name: str
    clinic_id: Optional[str] = None


@dataclass
class Patient:
    id: int
    clinic_id: str
    emr_number: str
    invoice_number: str
    first_name: str
    last_name: str
    mobile_number: str
    email: str
    gender: str
    patient_type: str
    notes: str
    created_by: str
    created_at: str


@dataclass
class Appointment:
    id: int
    clinic_id: str
    patient_id: int
    doctor_id: str
    room_id: str
    status: str
    follow_type: str
    start_date: str
    from_time: str
    to_time: str
    referral: str
    emergency: str
    notes: str
    created_by: str
    booked_from: str
    created_at: str


@dataclass
class ImportOutcome:
    total: int = 0
    imported: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    imported_dates: List[str] = field(default_factory=list)

    def summary_message(self) -> str:
        return f"Imported {self.imported} appointments. {self.failed} failed."

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "imported": self.imported,
            "failed": self.failed,
            "errors": list(self.errors),
            "importedDates": list(self.imported_dates),
        }


__all__ = ["ImportContext", "Doctor", "Room", "Patient", "Appointment", "ImportOutcome"]
