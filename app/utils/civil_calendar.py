# app/utils/civil_calendar.py
"""Date arithmetic in the single civil timezone used by every schedule.

All dates, ISO weeks and "has this class started" checks go through this
module so that results never depend on the host's local timezone. Stored
classes carry numeric day/month/year components; start instants are always
rebuilt from those components plus the wall-clock start time and the fixed
civil offset.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Tuple, Union

from ..core.config import settings

CIVIL_TZ = timezone(
    timedelta(minutes=settings.civil_utc_offset_minutes),
    name=settings.civil_timezone_name,
)

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

_WALL_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class CivilDate(NamedTuple):
    day: int
    month: int
    year: int
    date_string: str


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def civil_now() -> datetime:
    return utc_now().astimezone(CIVIL_TZ)


def civil_date(value: Union[date, datetime, str]) -> date:
    """Civil calendar date of a date, an instant or an ISO string.

    Naive datetimes are treated as UTC instants.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(CIVIL_TZ).date()
    return value


def date_components(value: Union[date, datetime, str]) -> CivilDate:
    d = civil_date(value)
    return CivilDate(d.day, d.month, d.year, d.isoformat())


def iso_week(value: Union[date, datetime, str]) -> Tuple[int, int]:
    """ISO (week-year, week number): shift to the Thursday of the same week."""
    d = civil_date(value)
    thursday = d + timedelta(days=3 - d.weekday())
    week = (thursday.timetuple().tm_yday - 1) // 7 + 1
    return thursday.year, week


def monday_of(value: Union[date, datetime, str]) -> date:
    d = civil_date(value)
    return d - timedelta(days=d.weekday())


def week_bounds(value: Union[date, datetime, str]) -> Tuple[datetime, datetime]:
    """Monday 00:00 and Sunday 23:59:59.999 of the civil week containing ``value``."""
    monday = monday_of(value)
    start = datetime.combine(monday, time.min, tzinfo=CIVIL_TZ)
    end = datetime.combine(monday + timedelta(days=6), time(23, 59, 59, 999000), tzinfo=CIVIL_TZ)
    return start, end


def weekday_name(value: Union[date, datetime, str]) -> str:
    return WEEKDAY_NAMES[civil_date(value).weekday()]


def is_wall_time(value: str) -> bool:
    return bool(value) and bool(_WALL_TIME.match(value))


def parse_wall_time(value: str) -> Tuple[int, int]:
    match = _WALL_TIME.match(value or "")
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)), int(match.group(2))


def civil_start_instant(year: int, month: int, day: int, start_time: str) -> datetime:
    hours, minutes = parse_wall_time(start_time)
    return datetime(year, month, day, hours, minutes, tzinfo=CIVIL_TZ)


def civil_instant_for(value: date, start_time: str) -> datetime:
    return civil_start_instant(value.year, value.month, value.day, start_time)


def session_start_instant(session_class) -> datetime:
    """Absolute start of a stored class, from its numeric date components."""
    return civil_start_instant(
        session_class.year, session_class.month, session_class.day, session_class.start_time
    )


def has_started(session_class, now: datetime) -> bool:
    return session_start_instant(session_class) <= now


def format_display_date(value: Union[date, datetime, str]) -> str:
    """e.g. 'Monday, Jun 2'"""
    d = civil_date(value)
    return f"{WEEKDAY_NAMES[d.weekday()]}, {d.strftime('%b')} {d.day}"


def format_short_date(value: Union[date, datetime, str]) -> str:
    """e.g. 'Mon, 6/2'"""
    d = civil_date(value)
    return f"{WEEKDAY_NAMES[d.weekday()][:3]}, {d.month}/{d.day}"


def to_12_hour(value: str) -> str:
    if not is_wall_time(value):
        return value
    hours, minutes = parse_wall_time(value)
    suffix = "AM" if hours < 12 else "PM"
    return f"{hours % 12 or 12}:{minutes:02d} {suffix}"


def civil_time_to_utc(day_of_week: int, hour: int, minute: int) -> Tuple[int, int, int]:
    """Convert a weekly civil wall time (Monday=0) to the UTC (day, hour, minute)."""
    total = day_of_week * 1440 + hour * 60 + minute - settings.civil_utc_offset_minutes
    total %= 7 * 1440
    return total // 1440, (total % 1440) // 60, total % 60
