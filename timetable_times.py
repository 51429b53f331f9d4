from __future__ import annotations

from typing import List

from timetable_errors import InvalidTimeFormat

_FIELD_LIMITS = (23, 59, 59)


def normalize_time(value: str) -> str:
    """
    Canonicalize a wall-clock time to HH:MM:SS.

    HH:MM gets ':00' appended, HH:MM:SS is kept. Single-digit fields are
    zero-padded so that plain string comparison orders times correctly.
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise InvalidTimeFormat(value)
    out: List[str] = []
    for part, limit in zip(parts, _FIELD_LIMITS):
        if not part.isdigit() or len(part) > 2 or int(part) > limit:
            raise InvalidTimeFormat(value)
        out.append(part.zfill(2))
    if len(out) == 2:
        out.append("00")
    return ":".join(out)


def slot_of(time_value: str) -> str:
    """Truncate an HH:MM[:SS] time to its HH:MM grid slot."""
    return time_value[:5]


def slot_start(slot: str) -> str:
    return f"{slot}:00"


def default_time_slots(first_hour: int = 7, count: int = 14) -> List[str]:
    return [f"{h:02d}:00" for h in range(first_hour, first_hour + count)]


def format_to_12_hour(time24: str) -> str:
    parts = time24.split(":")
    hours = int(parts[0])
    minutes = parts[1]
    suffix = "PM" if hours >= 12 else "AM"
    hours12 = 12 if hours == 0 else hours - 12 if hours > 12 else hours
    return f"{hours12}:{minutes} {suffix}"


def format_time_range(start_time: str, end_time: str) -> str:
    return f"{format_to_12_hour(slot_of(start_time))} - {format_to_12_hour(slot_of(end_time))}"
