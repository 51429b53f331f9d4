from __future__ import annotations

from typing import Optional


class TimetableError(Exception):
    """Base class for every error raised by the timetable import/grid modules."""


class InvalidTimeFormat(TimetableError, ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(f"invalid time '{value}': expected HH:MM or HH:MM:SS")
        self.value = value


class InvalidPeriodRange(TimetableError, ValueError):
    def __init__(self, start_time: str, end_time: str) -> None:
        super().__init__(f"start_time ({start_time}) must be before end_time ({end_time})")
        self.start_time = start_time
        self.end_time = end_time


class RecognizerEmpty(TimetableError):
    def __init__(self, message: str = "No periods found in the image. Please try a clearer image.") -> None:
        super().__init__(message)


class RecognizerError(TimetableError):
    """The recognition request itself failed (transport, HTTP status or unparsable reply)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceFailure(TimetableError):
    pass


class RecordNotFound(PersistenceFailure, KeyError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} '{record_id}' not found")
        self.kind = kind
        self.record_id = record_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])
