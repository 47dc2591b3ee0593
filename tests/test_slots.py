from datetime import UTC, date, datetime, time, timedelta

from nevermiss.scheduling import (
    BookingPageConfig,
    TimeRange,
    compute_eligible_dates,
    generate_slots,
    is_date_eligible,
    is_offered_slot,
    validate_config,
)

MONDAY = date(2026, 10, 19)


def utc(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=UTC)


def weekday_config(**overrides) -> BookingPageConfig:
    values = dict(
        duration_minutes=60,
        allowed_weekdays=frozenset({1, 2, 3, 4, 5}),
        start_time=time(9, 0),
        end_time=time(18, 0),
        min_notice_hours=0,
        max_days_ahead=30,
        timezone="UTC",
    )
    values.update(overrides)
    return BookingPageConfig(**values)


def starts(slots: list[TimeRange]) -> list[int]:
    return [s.start.hour for s in slots]


def test_basic_generation_fills_the_window():
    slots = generate_slots(weekday_config(), MONDAY, [], utc(MONDAY, 8))
    assert starts(slots) == list(range(9, 18))
    assert all(s.end - s.start == timedelta(minutes=60) for s in slots)
    assert slots[-1].end == utc(MONDAY, 18)


def test_confirmed_booking_removes_its_slot():
    booked = [TimeRange(utc(MONDAY, 13), utc(MONDAY, 14))]
    slots = generate_slots(weekday_config(), MONDAY, booked, utc(MONDAY, 8))
    assert 13 not in starts(slots)
    assert len(slots) == 8


def test_booking_straddling_two_slots_removes_both():
    booked = [TimeRange(utc(MONDAY, 10, 30), utc(MONDAY, 11, 30))]
    slots = generate_slots(weekday_config(), MONDAY, booked, utc(MONDAY, 8))
    assert 10 not in starts(slots)
    assert 11 not in starts(slots)
    assert len(slots) == 7


def test_notice_threshold_excludes_early_slots():
    config = weekday_config(min_notice_hours=1)
    slots = generate_slots(config, MONDAY, [], utc(MONDAY, 12, 30))
    assert starts(slots) == [14, 15, 16, 17]


def test_slot_starting_exactly_at_threshold_is_excluded():
    config = weekday_config(min_notice_hours=1)
    slots = generate_slots(config, MONDAY, [], utc(MONDAY, 12))
    assert starts(slots)[0] == 14


def test_date_beyond_horizon_is_ineligible():
    config = weekday_config(max_days_ahead=7)
    now = utc(MONDAY, 8)
    assert is_date_eligible(config, MONDAY + timedelta(days=7), now)
    assert not is_date_eligible(config, MONDAY + timedelta(days=8), now)
    assert generate_slots(config, MONDAY + timedelta(days=8), [], now) == []


def test_back_to_back_slot_is_kept():
    booked = [TimeRange(utc(MONDAY, 9), utc(MONDAY, 10))]
    slots = generate_slots(weekday_config(), MONDAY, booked, utc(MONDAY, 8))
    assert TimeRange(utc(MONDAY, 10), utc(MONDAY, 11)) in slots


def test_disallowed_weekday_and_past_dates_are_empty():
    now = utc(MONDAY, 8)
    sunday = MONDAY - timedelta(days=1)
    assert not is_date_eligible(weekday_config(), sunday, now)
    assert generate_slots(weekday_config(), sunday, [], now) == []
    assert generate_slots(weekday_config(allowed_weekdays=frozenset(range(7))), sunday, [], now) == []


def test_notice_longer_than_a_day_skips_whole_dates():
    config = weekday_config(min_notice_hours=48)
    now = utc(MONDAY, 8)
    assert not is_date_eligible(config, MONDAY, now)
    assert not is_date_eligible(config, MONDAY + timedelta(days=1), now)
    wednesday = MONDAY + timedelta(days=2)
    assert is_date_eligible(config, wednesday, now)
    assert starts(generate_slots(config, wednesday, [], now)) == list(range(9, 18))


def test_no_partial_slot_at_end_of_window():
    config = weekday_config(duration_minutes=90, end_time=time(12, 0))
    slots = generate_slots(config, MONDAY, [], utc(MONDAY, 8))
    assert [(s.start, s.end) for s in slots] == [
        (utc(MONDAY, 9), utc(MONDAY, 10, 30)),
        (utc(MONDAY, 10, 30), utc(MONDAY, 12)),
    ]


def test_degenerate_configs_yield_nothing():
    now = utc(MONDAY, 8)
    assert generate_slots(weekday_config(duration_minutes=0), MONDAY, [], now) == []
    assert generate_slots(weekday_config(end_time=time(9, 0)), MONDAY, [], now) == []
    assert generate_slots(weekday_config(allowed_weekdays=frozenset()), MONDAY, [], now) == []


def test_degenerate_existing_booking_blocks_nothing():
    booked = [TimeRange(utc(MONDAY, 13), utc(MONDAY, 13))]
    slots = generate_slots(weekday_config(), MONDAY, booked, utc(MONDAY, 8))
    assert len(slots) == 9


def test_generation_is_repeatable():
    booked = [TimeRange(utc(MONDAY, 11), utc(MONDAY, 12))]
    now = utc(MONDAY, 8)
    assert generate_slots(weekday_config(), MONDAY, booked, now) == generate_slots(
        weekday_config(), MONDAY, booked, now
    )


def test_window_is_read_in_page_timezone():
    config = weekday_config(timezone="Asia/Tokyo", end_time=time(11, 0))
    # 08:00 UTC Sunday is 17:00 Sunday in Tokyo
    slots = generate_slots(config, MONDAY, [], utc(MONDAY - timedelta(days=1), 8))
    assert [s.start for s in slots] == [utc(MONDAY, 0), utc(MONDAY, 1)]


def test_dst_fall_back_steps_on_absolute_time():
    # America/New_York leaves daylight time on Sunday 2026-11-01 at 02:00
    config = weekday_config(
        allowed_weekdays=frozenset({0}),
        start_time=time(0, 0),
        end_time=time(4, 0),
        timezone="America/New_York",
    )
    day = date(2026, 11, 1)
    slots = generate_slots(config, day, [], utc(date(2026, 10, 31), 12))
    # local 00:00 EDT is 04:00 UTC, local 04:00 EST is 09:00 UTC
    assert [s.start.hour for s in slots] == [4, 5, 6, 7, 8]
    assert all(s.end - s.start == timedelta(hours=1) for s in slots)


def test_compute_eligible_dates_within_horizon():
    config = weekday_config(max_days_ahead=7)
    dates = compute_eligible_dates(config, utc(MONDAY, 8))
    assert dates == [
        date(2026, 10, 19),
        date(2026, 10, 20),
        date(2026, 10, 21),
        date(2026, 10, 22),
        date(2026, 10, 23),
        date(2026, 10, 26),
    ]


def test_is_offered_slot_requires_exact_slot():
    config = weekday_config()
    now = utc(MONDAY, 8)
    assert is_offered_slot(config, utc(MONDAY, 10), utc(MONDAY, 11), [], now)
    assert not is_offered_slot(config, utc(MONDAY, 10, 30), utc(MONDAY, 11, 30), [], now)
    assert not is_offered_slot(config, utc(MONDAY, 10), utc(MONDAY, 12), [], now)
    assert not is_offered_slot(config, utc(MONDAY, 7), utc(MONDAY, 8), [], now)


def test_validate_config_reports_each_problem():
    bad = BookingPageConfig(
        duration_minutes=0,
        allowed_weekdays=frozenset({7}),
        start_time=time(18, 0),
        end_time=time(9, 0),
        min_notice_hours=-1,
        max_days_ahead=0,
        timezone="Mars/Olympus",
    )
    errors = validate_config(bad)
    assert len(errors) == 6
    assert validate_config(weekday_config()) == []
