"""
Slot generation for booking pages.

Everything here is a pure function of its inputs: the booking page config,
a calendar date, a snapshot of confirmed bookings and the current instant.
Wall-clock times are resolved to absolute instants once, in the page's single
timezone; all comparisons after that are instant-level. Guest timezones are
not taken into account.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nevermiss.scheduling.overlap import TimeRange, has_conflict

logger = logging.getLogger(__name__)

# 0 = Sunday ... 6 = Saturday
WEEKDAYS = frozenset(range(7))


@dataclass(frozen=True)
class BookingPageConfig:
    duration_minutes: int
    allowed_weekdays: frozenset[int]
    start_time: time
    end_time: time
    min_notice_hours: int = 0
    max_days_ahead: int = 30
    timezone: str = "UTC"

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r for booking page, using UTC", self.timezone)
            return ZoneInfo("UTC")

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)


def validate_config(config: BookingPageConfig) -> list[str]:
    """Return human-readable problems with a config; empty when it is usable."""
    errors: list[str] = []
    if config.duration_minutes <= 0:
        errors.append("duration_minutes must be greater than 0")
    if config.end_time <= config.start_time:
        errors.append("end_time must be later than start_time")
    if not config.allowed_weekdays:
        errors.append("at least one weekday must be allowed")
    elif not set(config.allowed_weekdays) <= WEEKDAYS:
        errors.append("weekdays must be between 0 (Sunday) and 6 (Saturday)")
    if config.min_notice_hours < 0:
        errors.append("min_notice_hours must not be negative")
    if config.max_days_ahead <= 0:
        errors.append("max_days_ahead must be greater than 0")
    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"unknown timezone: {config.timezone}")
    return errors


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def localize(day: date, wall_time: time, tz: ZoneInfo) -> datetime:
    """Absolute (UTC) instant of `wall_time` on `day` in `tz`."""
    return datetime.combine(day, wall_time, tzinfo=tz).astimezone(UTC)


def weekday_index(day: date) -> int:
    """Sunday-based weekday number (Sunday = 0)."""
    return (day.weekday() + 1) % 7


def _notice_threshold(config: BookingPageConfig, now: datetime) -> datetime:
    return as_utc(now) + timedelta(hours=config.min_notice_hours)


def is_date_eligible(config: BookingPageConfig, day: date, now: datetime) -> bool:
    if weekday_index(day) not in config.allowed_weekdays:
        return False

    tz = config.tz
    now_utc = as_utc(now)
    today = now_utc.astimezone(tz).date()
    if day < today:
        return False

    # even the last moment of the day is inside the notice period
    end_of_day = localize(day, time.max, tz)
    if end_of_day < _notice_threshold(config, now_utc):
        return False

    start_of_day = localize(day, time.min, tz)
    if start_of_day > now_utc + timedelta(days=config.max_days_ahead):
        return False

    return True


def compute_eligible_dates(config: BookingPageConfig, now: datetime) -> list[date]:
    """All bookable calendar dates from today up to the booking horizon."""
    if config.max_days_ahead <= 0 or not config.allowed_weekdays:
        return []
    today = as_utc(now).astimezone(config.tz).date()
    days = (today + timedelta(days=offset) for offset in range(config.max_days_ahead + 1))
    return [d for d in days if is_date_eligible(config, d, now)]


def generate_slots(
    config: BookingPageConfig,
    day: date,
    existing_bookings: Iterable[TimeRange],
    now: datetime,
) -> list[TimeRange]:
    """Bookable slots on `day`, in chronological order.

    Slots are laid back to back from the window's opening time; a slot is
    dropped when it starts inside the notice period or overlaps a confirmed
    booking. Invalid configs produce an empty list instead of raising.
    """
    if config.duration_minutes <= 0 or config.end_time <= config.start_time:
        return []
    if not is_date_eligible(config, day, now):
        return []

    bookings = [TimeRange(as_utc(b.start), as_utc(b.end)) for b in existing_bookings]
    tz = config.tz
    window_start = localize(day, config.start_time, tz)
    window_end = localize(day, config.end_time, tz)
    threshold = _notice_threshold(config, now)
    step = config.duration

    slots: list[TimeRange] = []
    current = window_start
    while current < window_end:
        slot_end = current + step
        if slot_end > window_end:
            break
        if current > threshold and not has_conflict(current, slot_end, bookings):
            slots.append(TimeRange(current, slot_end))
        current = slot_end
    return slots


def is_offered_slot(
    config: BookingPageConfig,
    start: datetime,
    end: datetime,
    existing_bookings: Iterable[TimeRange],
    now: datetime,
) -> bool:
    """True when [start, end) is exactly one of the slots offered for its date."""
    start_utc, end_utc = as_utc(start), as_utc(end)
    day = start_utc.astimezone(config.tz).date()
    return TimeRange(start_utc, end_utc) in generate_slots(config, day, existing_bookings, now)
