from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from subject_resolver import SubjectResolver, normalize_name
from timetable_errors import InvalidPeriodRange, InvalidTimeFormat, PersistenceFailure, RecognizerEmpty
from timetable_schema import FailureReport, IngestResult, PeriodCreate, RawPeriod, Subject
from timetable_store import TimetableStore
from timetable_times import normalize_time

logger = logging.getLogger(__name__)

RawInput = Union[RawPeriod, Mapping[str, Any]]


def _first_error(e: ValidationError) -> str:
    errs = e.errors()
    if not errs:
        return str(e)
    loc = ".".join(str(x) for x in errs[0].get("loc", ()))
    return f"{loc}: {errs[0].get('msg')}" if loc else str(errs[0].get("msg"))


def _raw_subject(item: Any) -> Optional[str]:
    if isinstance(item, RawPeriod):
        return item.subject
    if isinstance(item, Mapping):
        for key in ("subject", "subject_text", "subjectText"):
            v = item.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
    return None


class PeriodIngestor:
    """
    Turn recognizer output into stored periods for one user.

    The batch is not atomic: each period is validated, resolved and persisted on
    its own, and every period that cannot be stored ends up in
    `IngestResult.failures` while the rest of the batch carries on.
    """

    def __init__(self, store: TimetableStore, user_id: str, resolver: Optional[SubjectResolver] = None) -> None:
        self.store = store
        self.user_id = user_id
        self.resolver = resolver or SubjectResolver(store, user_id)

    def ingest(
        self,
        raw_periods: Optional[Sequence[RawInput]],
        existing_subjects: Optional[Sequence[Subject]] = None,
    ) -> IngestResult:
        if not isinstance(raw_periods, (list, tuple)) or not raw_periods:
            raise RecognizerEmpty()

        if existing_subjects is None:
            existing_subjects = self.store.list_subjects(self.user_id)
        pool: List[Subject] = list(existing_subjects)
        # names that had no match, mapped to the subject created for them in this batch
        created_for: Dict[str, Subject] = {}

        result = IngestResult()

        def fail(index: int, subject: Optional[str], kind: str, message: str) -> None:
            logger.warning("period #%d (%s) skipped: %s: %s", index, subject or "?", kind, message)
            result.failures.append(FailureReport(index=index, subject=subject, kind=kind, message=message))

        for index, item in enumerate(raw_periods):
            subject_text = _raw_subject(item)
            try:
                raw = item if isinstance(item, RawPeriod) else RawPeriod.model_validate(item)
            except ValidationError as e:
                fail(index, subject_text, "InvalidPeriod", _first_error(e))
                continue

            try:
                start_time = normalize_time(raw.start_time)
                end_time = normalize_time(raw.end_time)
            except InvalidTimeFormat as e:
                fail(index, raw.subject, "InvalidTimeFormat", str(e))
                continue
            if not start_time < end_time:
                fail(index, raw.subject, "InvalidPeriodRange", str(InvalidPeriodRange(start_time, end_time)))
                continue

            key = normalize_name(raw.subject)
            try:
                subject = created_for.get(key)
                if subject is None:
                    known_ids = {s.id for s in pool}
                    subject = self.resolver.resolve(raw.subject, pool)
                    if subject.id not in known_ids:
                        created_for[key] = subject
                        pool.append(subject)
                        result.new_subjects.append(subject)
            except PersistenceFailure as e:
                fail(index, raw.subject, "PersistenceFailure", f"subject: {e}")
                continue

            try:
                period = self.store.create_period(
                    self.user_id,
                    PeriodCreate(
                        subject_id=subject.id,
                        day_of_week=raw.day_of_week,
                        start_time=start_time,
                        end_time=end_time,
                        location=raw.location,
                        teacher=raw.teacher,
                    ),
                )
            except PersistenceFailure as e:
                fail(index, raw.subject, "PersistenceFailure", f"period: {e}")
                continue
            result.periods.append(period)
            result.created += 1

        logger.info(
            "ingested %d/%d periods for user %s (%d new subjects, %d failures)",
            result.created,
            len(raw_periods),
            self.user_id,
            len(result.new_subjects),
            len(result.failures),
        )
        return result
