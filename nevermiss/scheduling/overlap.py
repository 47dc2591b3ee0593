from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval [start, end). Used for confirmed bookings and candidate slots."""

    start: datetime
    end: datetime


def is_valid_interval(start: datetime, end: datetime) -> bool:
    """A candidate must have positive duration before it reaches the guard."""
    return start < end


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True when [a_start, a_end) and [b_start, b_end) share time.

    Touching endpoints do not overlap, so back-to-back bookings are allowed.
    A degenerate interval (start >= end) overlaps nothing.
    """
    if a_start >= a_end or b_start >= b_end:
        return False
    return a_start < b_end and a_end > b_start


def has_conflict(
    candidate_start: datetime,
    candidate_end: datetime,
    existing_bookings: Iterable[TimeRange],
) -> bool:
    return any(
        overlaps(candidate_start, candidate_end, b.start, b.end)
        for b in existing_bookings
    )
