from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Dict, Optional

import typer

from . import init_db
from .config import get_settings
from .db import add_doctor, add_room, list_appointments, list_doctors, list_rooms, session_scope
from .header_mapping import FIELDS_BY_ID, map_headers, missing_required_fields
from .models import Doctor, ImportContext, Room
from .processing import AppointmentImporter, ImportFileError, ParsedFile, export_template, load_file
from .validation import build_preview, validate_rows

app = typer.Typer(help="Clinic appointment import CLI")


def _load(path: Path) -> ParsedFile:
    try:
        return load_file(path)
    except ImportFileError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _read_mapping(parsed: ParsedFile, mapping_path: Optional[Path]) -> Dict[str, str]:
    if mapping_path is None:
        return map_headers(parsed.columns).mapping
    try:
        mapping = json.loads(mapping_path.read_text("utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter("Invalid column mapping format") from exc
    if not isinstance(mapping, dict):
        raise typer.BadParameter("Invalid column mapping format")
    return {str(column): str(field_id) for column, field_id in mapping.items()}


@app.command()
def init(db_url: Optional[str] = typer.Option(None, help="Override database URL")) -> None:
    """Initialise the database."""
    if db_url:
        settings = get_settings()
        settings.db_url = db_url
    init_db()
    typer.echo("Database initialised.")


@app.command("add-doctor")
def add_doctor_command(
    name: str = typer.Argument(...),
    clinic: str = typer.Option(..., "--clinic", help="Clinic id"),
    email: Optional[str] = typer.Option(None),
) -> None:
    """Register a doctor that imported rows can refer to by name."""
    init_db()
    doctor = Doctor(id=uuid.uuid4().hex, name=name, clinic_id=clinic, email=email)
    with session_scope() as conn:
        add_doctor(conn, doctor)
    typer.echo(f"Doctor {doctor.name} added with id {doctor.id}")


@app.command("add-room")
def add_room_command(
    name: str = typer.Argument(...),
    clinic: str = typer.Option(..., "--clinic", help="Clinic id"),
) -> None:
    """Register a room that imported rows can refer to by name."""
    init_db()
    room = Room(id=uuid.uuid4().hex, name=name, clinic_id=clinic)
    with session_scope() as conn:
        add_room(conn, room)
    typer.echo(f"Room {room.name} added with id {room.id}")


@app.command("map")
def map_command(path: Path = typer.Argument(..., exists=True)) -> None:
    """Show the suggested column mapping for a file."""
    parsed = _load(path)
    result = map_headers(parsed.columns)
    typer.echo(json.dumps(result.mapping, indent=2))
    if result.missing:
        labels = [FIELDS_BY_ID[field_id].label for field_id in result.missing]
        typer.echo(f"Unmapped required fields: {', '.join(labels)}")
    if result.extras:
        typer.echo(f"Ignored columns: {', '.join(result.extras)}")


@app.command()
def validate(
    path: Path = typer.Argument(..., exists=True),
    clinic: str = typer.Option(..., "--clinic", help="Clinic id"),
    mapping_path: Optional[Path] = typer.Option(None, "--mapping", exists=True, help="JSON column mapping"),
) -> None:
    """Dry-run a file: validation counts and a preview of the first rows."""
    init_db()
    settings = get_settings()
    parsed = _load(path)
    mapping = _read_mapping(parsed, mapping_path)
    with session_scope() as conn:
        doctors = list_doctors(conn, clinic)
        rooms = list_rooms(conn, clinic)

    stats = validate_rows(parsed.rows, mapping, doctors, rooms)
    typer.echo(json.dumps(stats.to_dict(), indent=2))
    preview = build_preview(parsed.rows, mapping, doctors, rooms, limit=settings.preview_rows)
    typer.echo("Preview:")
    typer.echo(json.dumps(preview, indent=2, default=str))


@app.command("import")
def import_command(
    path: Path = typer.Argument(..., exists=True),
    clinic: str = typer.Option(..., "--clinic", help="Clinic id"),
    user: str = typer.Option(..., "--user", help="Acting user id"),
    mapping_path: Optional[Path] = typer.Option(None, "--mapping", exists=True, help="JSON column mapping"),
) -> None:
    """Import appointments from a CSV or Excel file."""
    parsed = _load(path)
    mapping = _read_mapping(parsed, mapping_path)
    missing = missing_required_fields(mapping)
    if missing:
        raise typer.BadParameter(f'Please map the "{missing[0].label}" field')

    importer = AppointmentImporter(ImportContext(clinic_id=clinic, user_id=user))
    outcome = importer.import_rows(parsed.rows, mapping)
    typer.echo(outcome.summary_message())
    for error in outcome.errors:
        typer.echo(f"  {error}")
    if outcome.imported_dates:
        typer.echo(f"Dates: {', '.join(outcome.imported_dates)}")


@app.command()
def template(out: Optional[Path] = typer.Option(None, help="Where to write the CSV template")) -> None:
    """Write a sample import file."""
    settings = get_settings()
    target = export_template(out or settings.export_dir / "appointments_template.csv")
    typer.echo(f"Template written to {target}")


@app.command()
def appointments(
    clinic: str = typer.Option(..., "--clinic", help="Clinic id"),
    on: Optional[str] = typer.Option(None, help="Only this date (YYYY-MM-DD)"),
) -> None:
    """List booked appointments."""
    init_db()
    with session_scope() as conn:
        rows = list_appointments(conn, clinic, on)
    typer.echo("Appointments:")
    for item in rows:
        typer.echo(f"- {item.start_date} {item.from_time}-{item.to_time} doctor={item.doctor_id} room={item.room_id} [{item.status}]")


if __name__ == "__main__":
    app()
