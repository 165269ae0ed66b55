# schoolpool/exceptions.py
"""
Typed errors raised by the calendar helpers and the schedule store.
Each carries the HTTP status the API layer maps it to.
"""


class ScheduleError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CalendarError(ScheduleError):
    """Unknown timezone, ISO week out of range, or unparsable instant."""
    status_code = 400


class InvalidSeatOverrideError(ScheduleError):
    status_code = 400


# ── Not found (404) ──────────────────────────────────────────────────────────
class SlotNotFoundError(ScheduleError):
    status_code = 404


class VehicleNotFoundError(ScheduleError):
    status_code = 404


class DriverNotFoundError(ScheduleError):
    status_code = 404


class ChildNotFoundError(ScheduleError):
    status_code = 404


class GroupNotFoundError(ScheduleError):
    status_code = 404


class AssignmentNotFoundError(ScheduleError):
    status_code = 404


# ── Conflicts (409) ──────────────────────────────────────────────────────────
class DuplicateSlotError(ScheduleError):
    status_code = 409


class DuplicateAssignmentError(ScheduleError):
    status_code = 409


class DuplicateChildAssignmentError(ScheduleError):
    status_code = 409


class SlotInPastError(ScheduleError):
    """The slot instant is already behind the clock; past trips are read-only."""
    status_code = 400


class SchedulingConflictError(ScheduleError):
    """A driver or vehicle is already booked in another slot at the same instant."""
    status_code = 409

    def __init__(self, message: str, conflicts=None):
        super().__init__(message)
        self.conflicts = conflicts or []
