from typing import Callable, Optional

import pytest

from timetable_schema import Period, Subject
from timetable_store import InMemoryStore

USER_ID = "user-1"


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_period() -> Callable[..., Period]:
    def _make(
        pid: str,
        day: int,
        start: str,
        end: str,
        subject_id: str = "math",
        location: Optional[str] = None,
    ) -> Period:
        return Period(
            id=pid,
            user_id=USER_ID,
            subject_id=subject_id,
            day_of_week=day,
            start_time=start,
            end_time=end,
            location=location,
        )

    return _make


@pytest.fixture
def make_subject() -> Callable[..., Subject]:
    def _make(sid: str, name: str, color: str = "#3B82F6") -> Subject:
        return Subject(id=sid, user_id=USER_ID, name=name, color=color)

    return _make
