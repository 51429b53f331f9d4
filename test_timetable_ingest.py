import pytest

from timetable_errors import PersistenceFailure, RecognizerEmpty
from timetable_ingest import PeriodIngestor
from timetable_schema import RawPeriod, SubjectCreate
from timetable_store import InMemoryStore, JsonFileStore


def raw(subject, day=1, start="09:00", end="10:00", **extra):
    return {"subject": subject, "day_of_week": day, "start_time": start, "end_time": end, **extra}


class FailingPeriodStore(InMemoryStore):
    """Rejects the n-th period write (0-based)."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    def create_period(self, user_id, data):
        n = self.calls
        self.calls += 1
        if n == self.fail_on:
            raise PersistenceFailure("insert rejected")
        return super().create_period(user_id, data)


class FailingSubjectStore(InMemoryStore):
    def create_subject(self, user_id, data):
        if data.name == "Broken":
            raise PersistenceFailure("insert rejected")
        return super().create_subject(user_id, data)


def test_invalid_range_is_reported_and_rest_is_saved(store, user_id):
    batch = [
        raw("Math", 1, "09:00", "10:00"),
        raw("Physics", 1, "10:00", "11:30"),
        raw("Chemistry", 2, "09:00", "10:00"),
        raw("Biology", 2, "11:00", "11:00"),
    ]
    result = PeriodIngestor(store, user_id).ingest(batch)

    assert result.created == 3
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.index == 3
    assert failure.kind == "InvalidPeriodRange"
    assert failure.subject == "Biology"
    assert len(store.list_periods(user_id)) == 3
    # no subject is created for a period that was dropped
    assert "Biology" not in {s.name for s in store.list_subjects(user_id)}


def test_times_are_normalized(store, user_id):
    result = PeriodIngestor(store, user_id).ingest([raw("Math", 1, "9:00", "10:15")])
    period = result.periods[0]
    assert period.start_time == "09:00:00"
    assert period.end_time == "10:15:00"


def test_bad_time_format_is_reported(store, user_id):
    result = PeriodIngestor(store, user_id).ingest([raw("Math", 1, "9", "10:00"), raw("Math", 2)])
    assert result.created == 1
    assert [f.kind for f in result.failures] == ["InvalidTimeFormat"]


def test_malformed_record_is_reported(store, user_id):
    result = PeriodIngestor(store, user_id).ingest([raw("Math", 7), {"day_of_week": 1}, raw("Math", 1)])
    assert result.created == 1
    assert [f.kind for f in result.failures] == ["InvalidPeriod", "InvalidPeriod"]
    assert result.failures[0].subject == "Math"
    assert result.failures[1].subject is None


def test_repeated_unknown_name_creates_one_subject(store, user_id):
    batch = [
        raw("Organic Chemistry", 1),
        raw("Organic Chemistry", 3),
        raw("organic chemistry ", 5),
    ]
    result = PeriodIngestor(store, user_id).ingest(batch)

    assert result.created == 3
    assert len(result.new_subjects) == 1
    assert len(store.list_subjects(user_id)) == 1
    assert {p.subject_id for p in result.periods} == {result.new_subjects[0].id}


def test_existing_subjects_are_read_from_store(store, user_id):
    networks = store.create_subject(user_id, SubjectCreate(name="Computer Networks"))
    result = PeriodIngestor(store, user_id).ingest([raw("CN", location="Lab 2", teacher="Dr. Rao")])

    assert result.new_subjects == []
    assert result.periods[0].subject_id == networks.id
    assert result.periods[0].location == "Lab 2"
    assert result.periods[0].teacher == "Dr. Rao"


def test_explicit_candidate_list(store, user_id):
    store.create_subject(user_id, SubjectCreate(name="Computer Networks"))
    # with an explicit empty candidate list the stored subject is not considered
    result = PeriodIngestor(store, user_id).ingest([raw("Networks")], existing_subjects=[])
    assert [s.name for s in result.new_subjects] == ["Networks"]


def test_alternate_field_names_and_models(store, user_id):
    batch = [
        {"subjectText": "Math", "dayOfWeek": 2, "startTime": "08:00", "endTime": "09:00"},
        RawPeriod(subject="Math", day_of_week=3, start_time="08:00", end_time="09:00"),
    ]
    result = PeriodIngestor(store, user_id).ingest(batch)
    assert result.created == 2
    assert len(result.new_subjects) == 1


@pytest.mark.parametrize("batch", [[], None, {"periods": []}, "[]"])
def test_nothing_recognized_aborts(store, user_id, batch):
    with pytest.raises(RecognizerEmpty):
        PeriodIngestor(store, user_id).ingest(batch)
    assert store.list_subjects(user_id) == []
    assert store.list_periods(user_id) == []


def test_period_write_failure_does_not_roll_back(user_id):
    store = FailingPeriodStore(fail_on=1)
    result = PeriodIngestor(store, user_id).ingest([raw("Math", 1), raw("Math", 2), raw("Math", 3)])

    assert result.created == 2
    assert [(f.index, f.kind) for f in result.failures] == [(1, "PersistenceFailure")]
    assert sorted(p.day_of_week for p in store.list_periods(user_id)) == [1, 3]


def test_subject_write_failure_skips_only_that_period(user_id):
    store = FailingSubjectStore()
    result = PeriodIngestor(store, user_id).ingest([raw("Math"), raw("Broken"), raw("Physics")])

    assert result.created == 2
    assert [(f.index, f.kind) for f in result.failures] == [(1, "PersistenceFailure")]
    assert {s.name for s in store.list_subjects(user_id)} == {"Math", "Physics"}


def test_unsaved_rows_are_not_kept(tmp_path, user_id):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = JsonFileStore(blocker / "timetable.json")

    result = PeriodIngestor(store, user_id).ingest([raw("Math", 1), raw("Math", 2)])

    assert result.created == 0
    assert [f.kind for f in result.failures] == ["PersistenceFailure", "PersistenceFailure"]
    assert all("already exists" not in f.message for f in result.failures)
    assert result.new_subjects == []
    assert store.list_subjects(user_id) == []
    assert store.list_periods(user_id) == []
