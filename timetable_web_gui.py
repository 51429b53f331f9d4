"""
Streamlit front-end for the weekly class timetable.

Run as a local web app: `streamlit run timetable_web_gui.py`

Subjects and periods live in the JSON store configured in the sidebar (the same
file the `timetable-grid` command and the API server use). The grid shown here
and the printable download come from the same GridLayout.
"""

from __future__ import annotations

import base64
import hashlib
from html import escape
from typing import Any, Dict, List, Optional

import streamlit as st

from timetable_config import AppConfig
from timetable_errors import TimetableError
from timetable_recognizer import TimetableRecognizer
from timetable_render import render_interactive, render_printable
from timetable_schema import DAY_NAMES, IngestResult, PeriodUpdate, Subject, SubjectCreate
from timetable_service import TimetableService
from timetable_store import JsonFileStore


def _get_state() -> Dict[str, Any]:
    if "store_path" not in st.session_state:
        st.session_state["store_path"] = AppConfig.from_env().store_path or "timetable_data.json"
    if "user_id" not in st.session_state:
        st.session_state["user_id"] = "local"
    if "uploaded_sig" not in st.session_state:
        st.session_state["uploaded_sig"] = None
    if "last_import" not in st.session_state:
        st.session_state["last_import"] = None
    return st.session_state


def _service(state: Dict[str, Any]) -> TimetableService:
    config = AppConfig.from_env()
    recognizer = TimetableRecognizer(config.recognizer) if config.recognizer.api_key else None
    return TimetableService(JsonFileStore(state["store_path"]), state["user_id"], recognizer=recognizer)


def _subject_label(subjects: List[Subject], subject_id: str) -> str:
    for s in subjects:
        if s.id == subject_id:
            return s.name
    return subject_id


def _grid_markup(days: List[int], rows: List[Dict[str, Any]]) -> str:
    header = "".join(f"<th>{DAY_NAMES[d]}</th>" for d in days)
    body: List[str] = []
    for row in rows:
        tds: List[str] = []
        for c in row["cells"]:
            if c["kind"] != "start":
                tds.append("<td></td>")
                continue
            location = f"<div style='font-size:11px;opacity:.7'>{escape(c['location'])}</div>" if c.get("location") else ""
            tds.append(
                f"<td rowspan='{c['row_span']}' title='{escape(c['period_id'])}'>"
                f"<div style='background:{c['color']}20;border-left:3px solid {c['color']};padding:6px;border-radius:4px'>"
                f"<div style='font-weight:600'>{escape(c['subject'])}</div>"
                f"<div style='font-size:11px;opacity:.7'>{escape(c['time_range'])}</div>{location}</div></td>"
            )
        body.append(f"<tr><td><b>{escape(row['label'])}</b></td>{''.join(tds)}</tr>")
    return (
        "<table style='width:100%;border-collapse:collapse' border='1'>"
        f"<thead><tr><th>Time</th>{header}</tr></thead><tbody>{''.join(body)}</tbody></table>"
    )


def _show_import_result(result: Optional[Dict[str, Any]]) -> None:
    if not result:
        return
    r = IngestResult.model_validate(result)
    st.success(f"Imported {r.created} periods ({len(r.new_subjects)} new subjects).")
    if r.failures:
        st.warning(f"{len(r.failures)} periods were skipped:")
        st.dataframe(
            [{"#": f.index, "subject": f.subject or "", "kind": f.kind, "message": f.message} for f in r.failures],
            use_container_width=True,
        )


def main() -> None:
    st.set_page_config(page_title="Class Timetable", layout="wide")
    st.title("Class Timetable")
    st.caption("Manage your weekly class schedule.")

    state = _get_state()

    with st.sidebar:
        st.header("Store")
        st.text_input("Data file (server-side)", key="store_path", help="Example: timetable_data.json")
        st.text_input("User id", key="user_id")

    try:
        svc = _service(state)
    except TimetableError as e:
        st.error(f"Could not open the data file: {e}")
        return

    subjects = svc.list_subjects()
    active = [s for s in subjects if s.is_active]

    # -----------------------------
    # Upload timetable image
    # -----------------------------
    with st.expander("Upload timetable image", expanded=not subjects):
        if svc.recognizer is None:
            st.info("Image import is OFF. Set GROQ_API_KEY in the environment to enable it.")
        uploaded = st.file_uploader("Timetable image", type=["png", "jpg", "jpeg", "webp"], key="timetable_image")
        instructions = st.text_area(
            "Additional instructions (optional)",
            placeholder="Example: Each period is 50 minutes. Day starts at 1:10 PM. Labs are marked 'Batch1'.",
        )
        if st.button("Upload & parse", disabled=uploaded is None or svc.recognizer is None):
            raw = uploaded.getvalue()
            sig = (uploaded.name, len(raw), hashlib.sha256(raw).hexdigest())
            if st.session_state.get("uploaded_sig") == sig:
                st.info("This image was already imported.")
            else:
                with st.spinner("Parsing..."):
                    try:
                        result = svc.import_image(
                            base64.b64encode(raw).decode("ascii"),
                            additional_context=instructions or None,
                            mime_type=uploaded.type or "image/jpeg",
                        )
                        st.session_state["uploaded_sig"] = sig
                        st.session_state["last_import"] = result.model_dump()
                    except TimetableError as e:
                        st.error(str(e))
        _show_import_result(st.session_state.get("last_import"))

    # -----------------------------
    # Subjects
    # -----------------------------
    with st.expander("Manage subjects"):
        with st.form("add_subject", clear_on_submit=True):
            name = st.text_input("Subject name*")
            color = st.color_picker("Color", value="#3B82F6")
            if st.form_submit_button("Add subject"):
                try:
                    svc.add_subject(SubjectCreate(name=name, color=color.upper()))
                    st.rerun()
                except (TimetableError, ValueError) as e:
                    st.error(f"Could not add subject: {e}")
        for s in subjects:
            c1, c2 = st.columns([4, 1])
            c1.markdown(f"<span style='color:{s.color}'>&#9632;</span> {escape(s.name)}", unsafe_allow_html=True)
            if c2.button("Delete", key=f"del_subject_{s.id}", help="Also deletes all its timetable periods."):
                svc.delete_subject(s.id)
                st.rerun()

    if not subjects:
        st.info("Please add subjects first before creating your timetable.")
        return

    # -----------------------------
    # Add period
    # -----------------------------
    with st.expander("Add period"):
        with st.form("add_period", clear_on_submit=True):
            subject_id = st.selectbox("Subject*", options=[s.id for s in active], format_func=lambda i: _subject_label(active, i))
            day = st.selectbox("Day*", options=list(range(7)), index=1, format_func=lambda d: DAY_NAMES[d])
            c1, c2 = st.columns(2)
            start = c1.text_input("Start time* (HH:MM)")
            end = c2.text_input("End time* (HH:MM)")
            location = st.text_input("Location")
            teacher = st.text_input("Teacher")
            notes = st.text_area("Notes")
            if st.form_submit_button("Add period"):
                try:
                    svc.add_period(subject_id, day, start, end, location or None, teacher or None, notes or None)
                    st.rerun()
                except (TimetableError, ValueError) as e:
                    st.error(f"Failed to add period: {e}")

    # -----------------------------
    # Weekly grid
    # -----------------------------
    grid = svc.get_weekly_layout()
    st.subheader("Weekly schedule")
    st.markdown(_grid_markup(grid.active_days, render_interactive(grid)), unsafe_allow_html=True)
    for o in grid.overlaps:
        st.warning(
            f"A {DAY_NAMES[o.day_of_week]} {o.slot} period is hidden behind another one ({o.reason.replace('_', ' ')}).",
            icon="⚠️",
        )

    c1, c2 = st.columns(2)
    c1.download_button(
        "Download printable timetable",
        data=render_printable(grid),
        file_name="timetable.html",
        mime="text/html",
        disabled=not svc.store.list_periods(svc.user_id),
    )
    if c2.button("Clear timetable", help="Permanently deletes all periods from your timetable."):
        svc.clear_timetable()
        st.rerun()

    # -----------------------------
    # Edit period
    # -----------------------------
    periods = svc.store.list_periods(svc.user_id)
    if periods:
        st.divider()
        st.subheader("Edit period")
        labels = {
            p.id: f"{DAY_NAMES[p.day_of_week]} {p.start_time[:5]}-{p.end_time[:5]} {_subject_label(subjects, p.subject_id)}"
            for p in periods
        }
        pid = st.selectbox("Period", options=list(labels), format_func=lambda i: labels[i])
        p = next(x for x in periods if x.id == pid)
        with st.form(f"edit_{pid}"):
            c1, c2 = st.columns(2)
            start = c1.text_input("Start time", value=p.start_time[:5])
            end = c2.text_input("End time", value=p.end_time[:5])
            location = st.text_input("Location", value=p.location or "")
            teacher = st.text_input("Teacher", value=p.teacher or "")
            notes = st.text_area("Notes", value=p.notes or "")
            save, delete = st.columns(2)
            if save.form_submit_button("Save"):
                try:
                    svc.update_period(
                        pid,
                        PeriodUpdate(
                            start_time=start,
                            end_time=end,
                            location=location or None,
                            teacher=teacher or None,
                            notes=notes or None,
                        ),
                    )
                    st.rerun()
                except (TimetableError, ValueError) as e:
                    st.error(f"Failed to update period: {e}")
            if delete.form_submit_button("Delete period"):
                svc.delete_period(pid)
                st.rerun()


if __name__ == "__main__":
    main()
