from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, Union

from pydantic import ValidationError

from timetable_errors import PersistenceFailure, RecordNotFound
from timetable_schema import Period, PeriodCreate, Subject, SubjectCreate, TimetableData

logger = logging.getLogger(__name__)


class TimetableStore(Protocol):
    """Subject/period persistence, every call scoped to one user."""

    def list_subjects(self, user_id: str) -> List[Subject]: ...

    def create_subject(self, user_id: str, data: SubjectCreate) -> Subject: ...

    def update_subject(self, user_id: str, subject_id: str, changes: Dict[str, Any]) -> Subject: ...

    def delete_subject(self, user_id: str, subject_id: str) -> None: ...

    def list_periods(self, user_id: str, day_of_week: Optional[int] = None) -> List[Period]: ...

    def get_period(self, user_id: str, period_id: str) -> Period: ...

    def create_period(self, user_id: str, data: PeriodCreate) -> Period: ...

    def update_period(self, user_id: str, period_id: str, changes: Dict[str, Any]) -> Period: ...

    def update_periods_for_subject(
        self, user_id: str, subject_id: str, changes: Dict[str, Any], exclude_id: Optional[str] = None
    ) -> int: ...

    def delete_period(self, user_id: str, period_id: str) -> None: ...

    def clear_periods(self, user_id: str) -> int: ...


def _new_id() -> str:
    return str(uuid.uuid4())


def _period_order(p: Period):
    return (p.day_of_week, p.start_time, p.id)


class InMemoryStore:
    def __init__(self, data: Optional[TimetableData] = None) -> None:
        self._subjects: Dict[str, Subject] = {}
        self._periods: Dict[str, Period] = {}
        self._lock = threading.RLock()
        if data is not None:
            for s in data.subjects:
                self._subjects[s.id] = s
            for p in data.periods:
                self._periods[p.id] = p

    # ---------- hooks ----------
    def _changed(self) -> None:
        """Called after every in-memory write; raising here undoes the write."""

    @contextmanager
    def _write(self) -> Iterator[None]:
        with self._lock:
            subjects, periods = dict(self._subjects), dict(self._periods)
            try:
                yield
                self._changed()
            except Exception:
                self._subjects, self._periods = subjects, periods
                raise

    def snapshot(self) -> TimetableData:
        return TimetableData(
            subjects=sorted(self._subjects.values(), key=lambda s: (s.user_id, s.name.lower(), s.id)),
            periods=sorted(self._periods.values(), key=lambda p: (p.user_id,) + _period_order(p)),
        )

    # ---------- subjects ----------
    def _subject(self, user_id: str, subject_id: str) -> Subject:
        s = self._subjects.get(subject_id)
        if s is None or s.user_id != user_id:
            raise RecordNotFound("subject", subject_id)
        return s

    def list_subjects(self, user_id: str) -> List[Subject]:
        subjects = [s for s in self._subjects.values() if s.user_id == user_id]
        return sorted(subjects, key=lambda s: (s.name.lower(), s.id))

    def _check_unique_name(self, user_id: str, name: str, ignore_id: Optional[str] = None) -> None:
        for s in self._subjects.values():
            if s.user_id == user_id and s.id != ignore_id and s.name.lower() == name.lower():
                raise PersistenceFailure(f"subject '{name}' already exists")

    def create_subject(self, user_id: str, data: SubjectCreate) -> Subject:
        subject = Subject(id=_new_id(), user_id=user_id, **data.model_dump())
        with self._write():
            self._check_unique_name(user_id, data.name)
            self._subjects[subject.id] = subject
        return subject

    def update_subject(self, user_id: str, subject_id: str, changes: Dict[str, Any]) -> Subject:
        current = self._subject(user_id, subject_id)
        try:
            updated = Subject.model_validate({**current.model_dump(), **changes, "id": current.id, "user_id": user_id})
        except ValidationError as e:
            raise PersistenceFailure(f"subject '{subject_id}': {e}") from e
        with self._write():
            self._check_unique_name(user_id, updated.name, ignore_id=subject_id)
            self._subjects[subject_id] = updated
        return updated

    def delete_subject(self, user_id: str, subject_id: str) -> None:
        self._subject(user_id, subject_id)
        with self._write():
            # periods go first, a period never outlives its subject
            for pid in [p.id for p in self._periods.values() if p.user_id == user_id and p.subject_id == subject_id]:
                del self._periods[pid]
            del self._subjects[subject_id]

    # ---------- periods ----------
    def _period(self, user_id: str, period_id: str) -> Period:
        p = self._periods.get(period_id)
        if p is None or p.user_id != user_id:
            raise RecordNotFound("period", period_id)
        return p

    def list_periods(self, user_id: str, day_of_week: Optional[int] = None) -> List[Period]:
        periods = [
            p for p in self._periods.values()
            if p.user_id == user_id and (day_of_week is None or p.day_of_week == day_of_week)
        ]
        return sorted(periods, key=_period_order)

    def get_period(self, user_id: str, period_id: str) -> Period:
        return self._period(user_id, period_id)

    def create_period(self, user_id: str, data: PeriodCreate) -> Period:
        try:
            self._subject(user_id, data.subject_id)
        except RecordNotFound as e:
            raise PersistenceFailure(f"cannot create period: {e}") from e
        period = Period(id=_new_id(), user_id=user_id, **data.model_dump())
        with self._write():
            self._periods[period.id] = period
        return period

    def _apply(self, current: Period, changes: Dict[str, Any]) -> Period:
        try:
            return Period.model_validate({**current.model_dump(), **changes, "id": current.id, "user_id": current.user_id})
        except ValidationError as e:
            raise PersistenceFailure(f"period '{current.id}': {e}") from e

    def update_period(self, user_id: str, period_id: str, changes: Dict[str, Any]) -> Period:
        current = self._period(user_id, period_id)
        if "subject_id" in changes:
            self._subject(user_id, changes["subject_id"])
        updated = self._apply(current, changes)
        with self._write():
            self._periods[period_id] = updated
        return updated

    def update_periods_for_subject(
        self, user_id: str, subject_id: str, changes: Dict[str, Any], exclude_id: Optional[str] = None
    ) -> int:
        targets = [
            p for p in self._periods.values()
            if p.user_id == user_id and p.subject_id == subject_id and p.id != exclude_id
        ]
        if not targets:
            return 0
        # all or nothing: one invalid period leaves every period untouched
        with self._write():
            for p in targets:
                self._periods[p.id] = self._apply(p, changes)
        return len(targets)

    def delete_period(self, user_id: str, period_id: str) -> None:
        self._period(user_id, period_id)
        with self._write():
            del self._periods[period_id]

    def clear_periods(self, user_id: str) -> int:
        ids = [p.id for p in self._periods.values() if p.user_id == user_id]
        if not ids:
            return 0
        with self._write():
            for pid in ids:
                del self._periods[pid]
        return len(ids)


class JsonFileStore(InMemoryStore):
    """InMemoryStore that rewrites a TimetableData JSON file after every write."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        data = None
        if self.path.is_file():
            try:
                data = TimetableData.load_file(self.path)
            except (OSError, ValueError) as e:
                raise PersistenceFailure(f"cannot read {self.path}: {e}") from e
        super().__init__(data)

    def _changed(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.snapshot().save_file(self.path)
        except OSError as e:
            raise PersistenceFailure(f"cannot write {self.path}: {e}") from e
        logger.debug("saved timetable data to %s", self.path)
