from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from timetable_errors import InvalidPeriodRange, RecognizerEmpty, RecognizerError
from timetable_grid import layout
from timetable_ingest import PeriodIngestor, RawInput
from timetable_recognizer import TimetableRecognizer
from timetable_schema import GridLayout, IngestResult, Period, PeriodCreate, PeriodUpdate, Subject, SubjectCreate
from timetable_store import TimetableStore
from timetable_times import normalize_time

logger = logging.getLogger(__name__)

_SHARED_PERIOD_FIELDS = ("location", "teacher", "notes")
_SHARED_SUBJECT_FIELDS = ("location", "teacher")
_REQUIRED_PERIOD_FIELDS = ("subject_id", "day_of_week", "start_time", "end_time")


class TimetableService:
    """Everything the timetable screens need, for one explicitly given user."""

    def __init__(
        self,
        store: TimetableStore,
        user_id: str,
        recognizer: Optional[TimetableRecognizer] = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.recognizer = recognizer

    # ---------- import ----------
    def ingest_timetable_image(self, raw_periods: Optional[Sequence[RawInput]]) -> IngestResult:
        return PeriodIngestor(self.store, self.user_id).ingest(raw_periods)

    def import_image(self, image_base64: str, additional_context: Optional[str] = None, mime_type: str = "image/jpeg") -> IngestResult:
        if self.recognizer is None:
            raise RecognizerError("no recognizer configured")
        subjects = self.list_subjects(active_only=True)
        raw = self.recognizer.recognize(
            image_base64,
            additional_context=additional_context,
            existing_subject_names=[s.name for s in subjects],
            mime_type=mime_type,
        )
        if not raw:
            raise RecognizerEmpty()
        return self.ingest_timetable_image(raw)

    # ---------- grid ----------
    def get_weekly_layout(self) -> GridLayout:
        return layout(self.store.list_periods(self.user_id), self.store.list_subjects(self.user_id))

    def periods_for_day(self, day_of_week: int) -> List[Period]:
        return self.store.list_periods(self.user_id, day_of_week=day_of_week)

    # ---------- subjects ----------
    def list_subjects(self, active_only: bool = False) -> List[Subject]:
        subjects = self.store.list_subjects(self.user_id)
        return [s for s in subjects if s.is_active] if active_only else subjects

    def add_subject(self, data: SubjectCreate) -> Subject:
        return self.store.create_subject(self.user_id, data)

    def delete_subject(self, subject_id: str) -> None:
        self.store.delete_subject(self.user_id, subject_id)
        logger.info("deleted subject %s and its periods for user %s", subject_id, self.user_id)

    # ---------- periods ----------
    def _share_details(self, subject_id: str, values: Dict[str, Any], exclude_id: str) -> None:
        # details entered on one period apply to every period of the subject, and to the subject itself
        period_changes = {k: values[k] for k in _SHARED_PERIOD_FIELDS if values.get(k)}
        if period_changes:
            self.store.update_periods_for_subject(self.user_id, subject_id, period_changes, exclude_id=exclude_id)
        subject_changes = {k: values[k] for k in _SHARED_SUBJECT_FIELDS if values.get(k)}
        if subject_changes:
            self.store.update_subject(self.user_id, subject_id, subject_changes)

    def add_period(
        self,
        subject_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        location: Optional[str] = None,
        teacher: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Period:
        start_time = normalize_time(start_time)
        end_time = normalize_time(end_time)
        if not start_time < end_time:
            raise InvalidPeriodRange(start_time, end_time)
        period = self.store.create_period(
            self.user_id,
            PeriodCreate(
                subject_id=subject_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                location=location,
                teacher=teacher,
                notes=notes,
            ),
        )
        self._share_details(period.subject_id, period.model_dump(), exclude_id=period.id)
        return period

    def update_period(self, period_id: str, changes: PeriodUpdate) -> Period:
        values = {
            k: v for k, v in changes.model_dump(exclude_unset=True).items()
            if v is not None or k not in _REQUIRED_PERIOD_FIELDS
        }
        current = self.store.get_period(self.user_id, period_id)
        start_time = values.get("start_time", current.start_time)
        end_time = values.get("end_time", current.end_time)
        if not start_time < end_time:
            raise InvalidPeriodRange(start_time, end_time)
        period = self.store.update_period(self.user_id, period_id, values)
        self._share_details(period.subject_id, values, exclude_id=period.id)
        return period

    def delete_period(self, period_id: str) -> None:
        self.store.delete_period(self.user_id, period_id)

    def clear_timetable(self) -> int:
        removed = self.store.clear_periods(self.user_id)
        logger.info("cleared %d periods for user %s", removed, self.user_id)
        return removed
