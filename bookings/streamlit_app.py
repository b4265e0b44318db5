from __future__ import annotations

import pandas as pd
import streamlit as st

from . import init_db
from .config import get_settings
from .db import list_doctors, list_rooms, session_scope
from .header_mapping import ALL_FIELDS, FIELDS_BY_ID
from .models import ImportContext
from .processing import AppointmentImporter, ImportFileError, load_file
from .validation import ImportSession

UNMAPPED = "-- not imported --"


def mapping_wizard(session: ImportSession) -> None:
    st.markdown("### Column Mapping")
    options = [UNMAPPED] + [field.id for field in ALL_FIELDS]
    for column in session.columns:
        current = session.mapping.get(column)
        choice = st.selectbox(
            f"Column '{column}'",
            options=options,
            index=options.index(current) if current in options else 0,
            format_func=lambda value: value if value == UNMAPPED else FIELDS_BY_ID[value].label,
            key=f"map_{column}",
        )
        selected = None if choice == UNMAPPED else choice
        if selected != current:
            session.update_mapping(column, selected)


def render_stats(session: ImportSession) -> None:
    stats = session.stats
    total = stats.total or 1
    cols = st.columns(2)
    cols[0].metric("Valid rows", stats.valid_rows, f"{stats.valid_rows * 100 // total}%")
    cols[1].metric("Invalid rows", stats.invalid_rows)
    st.write(
        {
            "Missing required fields": stats.missing_required,
            "Unknown doctor": stats.invalid_doctor,
            "Unknown room": stats.invalid_room,
            "Invalid date": stats.invalid_date,
            "Invalid time": stats.invalid_time,
        }
    )


def render():
    st.set_page_config(page_title="Import Appointments", layout="wide")
    st.title("Import Appointments")

    init_db()
    settings = get_settings()

    clinic_id = st.sidebar.text_input("Clinic id", value=st.session_state.get("clinic_id", ""))
    user_id = st.sidebar.text_input("User id", value=st.session_state.get("user_id", ""))
    st.session_state.clinic_id = clinic_id
    st.session_state.user_id = user_id
    if not clinic_id or not user_id:
        st.info("Enter the clinic and user ids to start.")
        st.stop()

    if "phase" not in st.session_state:
        st.session_state.phase = "upload"
    if "import_session" not in st.session_state:
        st.session_state.import_session = ImportSession(preview_limit=settings.preview_rows)
    if "outcome" not in st.session_state:
        st.session_state.outcome = None

    session: ImportSession = st.session_state.import_session
    with session_scope() as conn:
        session.set_references(list_doctors(conn, clinic_id), list_rooms(conn, clinic_id))

    if st.session_state.phase == "upload":
        st.header("Step 1: Upload a file")
        uploaded = st.file_uploader("CSV or Excel file", type=["csv", "xlsx", "xls"], key="appointments_upload")
        if uploaded:
            content = uploaded.getvalue()
            try:
                parsed = load_file(content, uploaded.name)
            except ImportFileError as exc:
                st.error(str(exc))
                st.stop()
            session.load(parsed.columns, parsed.rows)
            st.success(f"File loaded successfully. Found {len(parsed.rows)} rows.")
            st.session_state.phase = "map"
        else:
            st.stop()

    if st.session_state.phase == "map":
        st.header("Step 2: Map columns and review")
        mapping_wizard(session)
        render_stats(session)
        st.subheader("Preview")
        st.dataframe(pd.DataFrame(session.preview))
        if session.missing_fields:
            st.warning(f"Please map: {', '.join(session.missing_fields)}")
        if st.button("Import", disabled=not session.ready_to_import):
            importer = AppointmentImporter(ImportContext(clinic_id=clinic_id, user_id=user_id))
            st.session_state.outcome = importer.import_rows(session.rows, session.mapping)
            st.session_state.phase = "done"
        else:
            st.stop()

    if st.session_state.phase == "done":
        outcome = st.session_state.outcome
        st.header("Import result")
        if outcome.failed:
            st.error(outcome.summary_message())
        else:
            st.success(outcome.summary_message())
        st.write("Dates", outcome.imported_dates)
        for error in outcome.errors:
            st.text(error)
        if st.button("Import another file"):
            session.reset()
            st.session_state.phase = "upload"
            st.session_state.outcome = None
            st.rerun()


if __name__ == "__main__":
    render()
