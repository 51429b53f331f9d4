import pytest

from timetable_errors import InvalidTimeFormat
from timetable_times import default_time_slots, format_time_range, format_to_12_hour, normalize_time, slot_of


def test_two_fields_get_seconds():
    assert normalize_time("09:30") == "09:30:00"


def test_three_fields_unchanged():
    assert normalize_time("09:30:00") == "09:30:00"
    assert normalize_time("23:59:59") == "23:59:59"


def test_single_field_is_rejected():
    with pytest.raises(InvalidTimeFormat):
        normalize_time("9")


@pytest.mark.parametrize("value", ["", "9:30:00:00", "ab:cd", "24:00", "12:60", "09:30:61", "-1:00", "09:5x"])
def test_malformed_times_are_rejected(value):
    with pytest.raises(InvalidTimeFormat):
        normalize_time(value)


def test_non_string_is_rejected():
    with pytest.raises(InvalidTimeFormat):
        normalize_time(None)  # type: ignore[arg-type]


def test_single_digit_fields_are_padded():
    assert normalize_time("9:05") == "09:05:00"
    assert normalize_time(" 7:00 ") == "07:00:00"


def test_invalid_time_format_is_a_value_error():
    with pytest.raises(ValueError):
        normalize_time("noon")


def test_slot_of_truncates_to_minutes():
    assert slot_of("09:30:00") == "09:30"
    assert slot_of("09:30") == "09:30"


def test_default_slots():
    slots = default_time_slots()
    assert len(slots) == 14
    assert slots[0] == "07:00"
    assert slots[-1] == "20:00"


def test_12_hour_format():
    assert format_to_12_hour("00:15") == "12:15 AM"
    assert format_to_12_hour("09:00") == "9:00 AM"
    assert format_to_12_hour("12:00") == "12:00 PM"
    assert format_to_12_hour("13:05:00") == "1:05 PM"
    assert format_time_range("09:00:00", "10:30:00") == "9:00 AM - 10:30 AM"
