from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field

from . import init_db
from .config import get_settings
from .db import list_doctors, list_rooms, session_scope
from .header_mapping import ALL_FIELDS, map_headers, missing_required_fields, template_rows
from .logger import get_logger
from .models import ImportContext
from .processing import AppointmentImporter, ImportFileError, load_file
from .validation import build_preview, validate_rows

logger = get_logger(__name__)

app = FastAPI(title="Clinic Appointment Import API")


class Reference(BaseModel):
    id: str
    name: str


class ValidatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rows: List[Dict[str, Any]]
    column_mapping: Optional[Dict[str, str]] = Field(default=None, alias="columnMapping")
    doctors: Optional[List[Reference]] = None
    rooms: Optional[List[Reference]] = None


class SuggestPayload(BaseModel):
    columns: List[str]


def _parse_mapping(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid column mapping format")
    if not isinstance(mapping, dict):
        raise HTTPException(status_code=400, detail="Invalid column mapping format")
    return {str(column): str(field_id) for column, field_id in mapping.items()}


@app.on_event("startup")
def startup_event() -> None:
    init_db()


@app.get("/fields")
def fields():
    return [
        {"id": field.id, "label": field.label, "required": field.required, "description": field.description}
        for field in ALL_FIELDS
    ]


@app.post("/suggest-mapping")
def suggest_mapping(payload: SuggestPayload):
    result = map_headers(payload.columns)
    return {"mapping": result.mapping, "missing": result.missing, "extras": result.extras}


@app.post("/validate")
def validate(payload: ValidatePayload, x_clinic_id: Optional[str] = Header(None)):
    columns = list(payload.rows[0].keys()) if payload.rows else []
    mapping = payload.column_mapping if payload.column_mapping is not None else map_headers(columns).mapping

    doctors: List[Any] = [ref.model_dump() for ref in payload.doctors or []]
    rooms: List[Any] = [ref.model_dump() for ref in payload.rooms or []]
    if x_clinic_id:
        with session_scope() as conn:
            if payload.doctors is None:
                doctors = list_doctors(conn, x_clinic_id)
            if payload.rooms is None:
                rooms = list_rooms(conn, x_clinic_id)

    stats = validate_rows(payload.rows, mapping, doctors, rooms)
    preview = build_preview(payload.rows, mapping, doctors, rooms, limit=get_settings().preview_rows)
    return {
        "columnMapping": mapping,
        "stats": stats.to_dict(),
        "missingFields": [field.label for field in missing_required_fields(mapping)],
        "preview": preview,
    }


@app.post("/import-appointments")
def import_appointments(
    file: UploadFile = File(...),
    column_mapping: Optional[str] = Form(None, alias="columnMapping"),
    x_clinic_id: str = Header(...),
    x_user_id: str = Header(...),
):
    mapping = _parse_mapping(column_mapping)
    try:
        parsed = load_file(file.file, file.filename)
    except ImportFileError as exc:
        logger.info("Rejected upload %s for clinic %s: %s", file.filename, x_clinic_id, exc)
        raise HTTPException(status_code=400, detail=str(exc))

    if not mapping:
        mapping = map_headers(parsed.columns).mapping
    missing = missing_required_fields(mapping)
    if missing:
        raise HTTPException(status_code=400, detail=f'Please map the "{missing[0].label}" field')

    importer = AppointmentImporter(ImportContext(clinic_id=x_clinic_id, user_id=x_user_id))
    outcome = importer.import_rows(parsed.rows, mapping)
    return {
        "success": True,
        "data": outcome.to_dict(),
        "message": outcome.summary_message(),
    }


@app.get("/template")
def template():
    header, *rows = template_rows()
    content = pd.DataFrame(rows, columns=header).to_csv(index=False)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=appointments_template.csv"},
    )


@app.get("/health")
def health():
    settings = get_settings()
    return {"status": "ok", "db": settings.db_url}
