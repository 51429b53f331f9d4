from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from timetable_errors import InvalidPeriodRange
from timetable_times import normalize_time

SUBJECT_PALETTE: Tuple[str, ...] = ("#3B82F6", "#EF4444", "#10B981", "#F59E0B", "#8B5CF6", "#EC4899", "#06B6D4")
DAY_NAMES: Tuple[str, ...] = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

FailureKind = Literal["InvalidPeriod", "InvalidTimeFormat", "InvalidPeriodRange", "PersistenceFailure"]
CellKind = Literal["start", "spanned", "empty"]
OverlapReason = Literal["same_start", "inside_span"]


def _clean_optional(v: Optional[str]) -> Optional[str]:
    return v.strip() if v and v.strip() else None


def _check_day(v: int) -> int:
    if not isinstance(v, int) or isinstance(v, bool) or v < 0 or v > 6:
        raise ValueError("must be an integer day of week in [0,6] (0 = Sunday)")
    return v


class SubjectFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    color: str = SUBJECT_PALETTE[0]
    is_active: bool = True
    location: Optional[str] = None
    teacher: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("color")
    @classmethod
    def _hex_color(cls, v: str) -> str:
        v = (v or "").strip()
        if not v.startswith("#") or len(v) not in (4, 7):
            raise ValueError("must be a hex color like '#3B82F6'")
        return v

    @field_validator("location", "teacher")
    @classmethod
    def _optional_clean(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


class SubjectCreate(SubjectFields):
    pass


class Subject(SubjectFields):
    id: str
    user_id: str


class PeriodFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject_id: str
    day_of_week: int
    start_time: str
    end_time: str
    location: Optional[str] = None
    teacher: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("subject_id")
    @classmethod
    def _subject_non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("day_of_week")
    @classmethod
    def _day_in_week(cls, v: int) -> int:
        return _check_day(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalized_time(cls, v: str) -> str:
        return normalize_time(v)

    @field_validator("location", "teacher", "notes")
    @classmethod
    def _optional_clean(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)

    @model_validator(mode="after")
    def _start_before_end(self) -> "PeriodFields":
        if not self.start_time < self.end_time:
            raise InvalidPeriodRange(self.start_time, self.end_time)
        return self


class PeriodCreate(PeriodFields):
    pass


class Period(PeriodFields):
    id: str
    user_id: str


class PeriodUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subject_id: Optional[str] = None
    day_of_week: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    teacher: Optional[str] = None
    notes: Optional[str] = None

    # these may be left out of an update but never cleared
    @field_validator("subject_id", "day_of_week", "start_time", "end_time", mode="before")
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("cannot be null")
        return v

    @field_validator("day_of_week")
    @classmethod
    def _day_in_week(cls, v: int) -> int:
        return _check_day(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalized_time(cls, v: str) -> str:
        return normalize_time(v)


class RawPeriod(BaseModel):
    """One period as returned by the image recognizer. Times are kept verbatim."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    subject: str = Field(validation_alias=AliasChoices("subject", "subject_text", "subjectText"))
    day_of_week: int = Field(validation_alias=AliasChoices("day_of_week", "dayOfWeek"))
    start_time: str = Field(validation_alias=AliasChoices("start_time", "startTime"))
    end_time: str = Field(validation_alias=AliasChoices("end_time", "endTime"))
    location: Optional[str] = None
    teacher: Optional[str] = None

    @field_validator("subject")
    @classmethod
    def _subject_non_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("day_of_week")
    @classmethod
    def _day_in_week(cls, v: int) -> int:
        return _check_day(v)

    @field_validator("location", "teacher")
    @classmethod
    def _optional_clean(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)


class FailureReport(BaseModel):
    index: int
    subject: Optional[str] = None
    kind: FailureKind
    message: str


class IngestResult(BaseModel):
    created: int = 0
    failures: List[FailureReport] = Field(default_factory=list)
    new_subjects: List[Subject] = Field(default_factory=list)
    periods: List[Period] = Field(default_factory=list)


class GridCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CellKind
    day: int
    slot_index: int
    period: Optional[Period] = None
    row_span: int = 1
    # spanned cells only: the placed period whose rows include this one, None when the span belongs to a hidden period
    covered_by: Optional[str] = None


class OverlapReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    period_id: str
    day_of_week: int
    slot: str
    reason: OverlapReason
    hidden_by: str


class GridLayout(BaseModel):
    """Weekly grid projection of a period set. Rebuilt on every read, never patched."""

    model_config = ConfigDict(frozen=True)

    time_slots: List[str]
    active_days: List[int]
    # rows[slot_index][column], column follows active_days order
    rows: List[List[GridCell]]
    subjects: Dict[str, Subject] = Field(default_factory=dict)
    overlaps: List[OverlapReport] = Field(default_factory=list)

    def cell(self, day: int, slot_index: int) -> GridCell:
        if day not in self.active_days:
            raise KeyError(f"day {day} is not an active day")
        return self.rows[slot_index][self.active_days.index(day)]

    def subject_for(self, period: Period) -> Optional[Subject]:
        return self.subjects.get(period.subject_id)


class TimetableData(BaseModel):
    """On-disk shape used by JsonFileStore and the command-line tool."""

    model_config = ConfigDict(extra="forbid")

    subjects: List[Subject] = Field(default_factory=list)
    periods: List[Period] = Field(default_factory=list)

    @model_validator(mode="after")
    def _references_resolve(self) -> "TimetableData":
        subject_keys = {(s.user_id, s.id) for s in self.subjects}
        for p in self.periods:
            if (p.user_id, p.subject_id) not in subject_keys:
                raise ValueError(f"period '{p.id}' references unknown subject '{p.subject_id}'")
        return self

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> "TimetableData":
        p = Path(path)
        data = json.loads(p.read_text(encoding="utf-8"))
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            # Re-raise with a cleaner message for CLI usage
            raise ValueError(str(e)) from e

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def save_file(self, path: Union[str, Path]) -> None:
        p = Path(path)
        p.write_text(json.dumps(self.to_json_dict(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
