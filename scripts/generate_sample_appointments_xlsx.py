"""Generate a sample appointments XLSX file for the import wizard."""
from __future__ import annotations

from pathlib import Path

from openpyxl import Workbook


DATA_ROWS = [
    {
        "Patient Name": "Olivia Parker",
        "Mobile": "(415) 555-0142",
        "Doctor": "Dr. Smith",
        "Room": "Room 1",
        "Date": "15/01/2024",
        "Start Time": "9:00 AM",
        "End Time": "9:30 AM",
        "Email": "Olivia.Parker@example.com",
        "Gender": "Female",
    },
    {
        "Patient Name": "Andrew Smith",
        "Mobile": "4155550199",
        "Doctor": "Dr. Rao",
        "Room": "Room 2",
        "Date": "2024-01-15",
        "Start Time": "14:00",
        "End Time": "14:45",
        "Notes": "Follow-up for lab results",
    },
]


def build_workbook() -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = "Appointments"
    headers = list(dict.fromkeys(key for row in DATA_ROWS for key in row))
    ws.append(headers)
    for row in DATA_ROWS:
        ws.append([row.get(header, "") for header in headers])
    return wb


def main() -> None:
    target_path = Path(__file__).resolve().parent.parent / "samples" / "appointments.xlsx"
    target_path.parent.mkdir(parents=True, exist_ok=True)
    wb = build_workbook()
    wb.save(target_path)
    print(f"Generated {target_path}")


if __name__ == "__main__":
    main()
