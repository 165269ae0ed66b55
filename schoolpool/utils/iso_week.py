# schoolpool/utils/iso_week.py
"""
ISO-8601 week helpers, timezone-aware.

Weeks start on Monday and week 1 is the week containing January 4th.
Week boundaries are Monday 00:00:00.000 and Sunday 23:59:59.999 on the
wall clock of the caller's IANA timezone, converted to UTC instants for
database range queries. Conversion goes through the IANA rules (zoneinfo),
so the same local time maps to different UTC offsets across DST changes.

Examples (week 1 of 2024):
    Asia/Tokyo          2023-12-31T15:00:00.000Z → 2024-01-07T14:59:59.999Z
    America/Los_Angeles 2024-01-01T08:00:00.000Z → 2024-01-08T07:59:59.999Z
    Europe/Paris        2023-12-31T23:00:00.000Z → 2024-01-07T22:59:59.999Z

Everything here is pure: no I/O, no clock reads.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from schoolpool.exceptions import CalendarError

UTC = timezone.utc
WEEKDAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")

START_OF_DAY = time(0, 0, 0, 0)
# fold=1: if 23:59:59.999 is ambiguous (fall-back at midnight), take the later instant
END_OF_DAY = time(23, 59, 59, 999000, fold=1)

InstantLike = Union[datetime, str]


class WeekRange(NamedTuple):
    """Closed UTC interval [start, end] covering one local ISO week."""
    start: datetime
    end: datetime

    def contains(self, instant: InstantLike) -> bool:
        return self.start <= parse_instant(instant) <= self.end


class SlotDisplay(NamedTuple):
    """Legacy day/time/week view of a slot instant. Display only, never stored."""
    day: str      # MONDAY .. SUNDAY
    time: str     # HH:MM
    week: str     # 2024-W01


# ── Timezones ────────────────────────────────────────────────────────────────

def get_zone(tz_name: str) -> ZoneInfo:
    """
    Resolve an IANA identifier: "UTC" or Region/City. Abbreviations such as
    "CET" or "EST" are refused even where the tz database knows them.
    Raises CalendarError otherwise.
    """
    if not isinstance(tz_name, str) or not tz_name.strip():
        raise CalendarError(f"Invalid timezone: {tz_name!r}")
    if tz_name != "UTC" and "/" not in tz_name:
        raise CalendarError(f"Invalid timezone: {tz_name} (use UTC or a Region/City identifier)")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise CalendarError(f"Unknown timezone: {tz_name}") from e


def is_valid_timezone(tz_name: str) -> bool:
    """Same rule as get_zone(), without raising."""
    try:
        get_zone(tz_name)
    except CalendarError:
        return False
    return True


# ── Instants ─────────────────────────────────────────────────────────────────

def parse_instant(value: InstantLike) -> datetime:
    """
    Normalise a datetime or ISO-8601 string to an aware UTC datetime.
    Naive values are taken to be UTC already.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise CalendarError(f"Invalid ISO-8601 instant: {value!r}") from e
    elif not isinstance(value, datetime):
        raise CalendarError(f"Expected datetime or ISO-8601 string, got {type(value).__name__}")

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_instant(value: InstantLike) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2024-01-08T08:00:00.000Z"""
    return parse_instant(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_local(instant: InstantLike, tz_name: str) -> datetime:
    return parse_instant(instant).astimezone(get_zone(tz_name))


# ── ISO weeks ────────────────────────────────────────────────────────────────

def weeks_in_iso_year(iso_year: int) -> int:
    """52 or 53. December 28th always falls in the last ISO week of its year."""
    try:
        return date(iso_year, 12, 28).isocalendar()[1]
    except (TypeError, ValueError, OverflowError) as e:
        raise CalendarError(f"Invalid ISO year: {iso_year!r}") from e


def _iso_monday(iso_year: int, iso_week: int) -> date:
    if isinstance(iso_week, bool) or not isinstance(iso_week, int):
        raise CalendarError(f"ISO week must be an integer, got {iso_week!r}")
    last_week = weeks_in_iso_year(iso_year)
    if not 1 <= iso_week <= last_week:
        raise CalendarError(f"ISO week {iso_week} is out of range for {iso_year} (1-{last_week})")
    try:
        return date.fromisocalendar(iso_year, iso_week, 1)
    except (ValueError, OverflowError) as e:
        raise CalendarError(f"Invalid ISO week {iso_year}-W{iso_week:02d}") from e


def week_start(iso_year: int, iso_week: int, tz_name: str) -> datetime:
    """
    Monday 00:00:00.000 local time of the given ISO week, as a UTC instant.

    If local midnight does not exist (DST gap at 00:00), the result is the
    first instant that does exist on that Monday.
    """
    zone = get_zone(tz_name)
    monday = _iso_monday(iso_year, iso_week)
    return datetime.combine(monday, START_OF_DAY, tzinfo=zone).astimezone(UTC)


def week_boundaries(iso_year: int, iso_week: int, tz_name: str) -> WeekRange:
    """
    Inclusive UTC range for the ISO week in tz_name.

    The local wall-clock span is always 7 days minus 1 ms. The real UTC span
    is an hour shorter or longer when a DST change falls inside the week.
    """
    zone = get_zone(tz_name)
    monday = _iso_monday(iso_year, iso_week)
    start = datetime.combine(monday, START_OF_DAY, tzinfo=zone)
    end = datetime.combine(monday + timedelta(days=6), END_OF_DAY, tzinfo=zone)
    return WeekRange(start.astimezone(UTC), end.astimezone(UTC))


def iso_week_of(instant: InstantLike, tz_name: str) -> Tuple[int, int]:
    """(ISO year, ISO week) of the instant on tz_name's local calendar."""
    iso = to_local(instant, tz_name).isocalendar()
    return iso[0], iso[1]


def week_boundaries_from_instant(reference: InstantLike, tz_name: str) -> WeekRange:
    """Boundaries of the local ISO week that contains reference."""
    iso_year, iso_week = iso_week_of(reference, tz_name)
    return week_boundaries(iso_year, iso_week, tz_name)


def slot_display_fields(instant: InstantLike, tz_name: str) -> SlotDisplay:
    local = to_local(instant, tz_name)
    iso_year, iso_week, iso_weekday = local.isocalendar()
    return SlotDisplay(
        day=WEEKDAYS[iso_weekday - 1],
        time=local.strftime("%H:%M"),
        week=f"{iso_year}-W{iso_week:02d}",
    )
