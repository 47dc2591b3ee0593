from datetime import UTC, datetime

from nevermiss.scheduling import TimeRange, has_conflict, is_valid_interval, overlaps


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, 19, hour, minute, tzinfo=UTC)


def test_touching_intervals_do_not_overlap():
    assert not overlaps(at(9), at(10), at(10), at(11))
    assert not overlaps(at(10), at(11), at(9), at(10))


def test_partial_and_containing_overlaps():
    assert overlaps(at(9), at(10, 30), at(10), at(11))
    assert overlaps(at(9), at(12), at(10), at(11))
    assert overlaps(at(10), at(11), at(9), at(12))


def test_overlap_is_symmetric():
    pairs = [
        (at(9), at(10), at(9, 30), at(10, 30)),
        (at(9), at(10), at(10), at(11)),
        (at(9), at(10), at(11), at(12)),
    ]
    for a_start, a_end, b_start, b_end in pairs:
        assert overlaps(a_start, a_end, b_start, b_end) == overlaps(b_start, b_end, a_start, a_end)


def test_degenerate_intervals_never_overlap():
    assert not overlaps(at(10), at(10), at(9), at(11))
    assert not overlaps(at(9), at(11), at(11), at(10))


def test_has_conflict():
    existing = [TimeRange(at(9), at(10)), TimeRange(at(13), at(14))]
    assert has_conflict(at(13, 30), at(14, 30), existing)
    assert not has_conflict(at(10), at(13), existing)
    assert not has_conflict(at(10), at(11), [])


def test_zero_and_inverted_candidates_are_invalid():
    assert not is_valid_interval(at(10), at(10))
    assert not is_valid_interval(at(11), at(10))
    assert is_valid_interval(at(10), at(11))
