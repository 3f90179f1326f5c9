"""Unit tests for schedule conflict detection."""

import itertools
import uuid
from datetime import date, time

from app.modules.availability.conflicts import OPEN_END, conflicts, effective_date_range, find_conflicts


def test_touching_time_ranges_do_not_conflict(make_definition):
    morning = make_definition(start_time=time(9, 0), end_time=time(12, 0))
    afternoon = make_definition(start_time=time(12, 0), end_time=time(15, 0))
    assert not conflicts(morning, afternoon)
    assert not conflicts(afternoon, morning)


def test_overlapping_weekly_same_day_conflicts(make_definition):
    a = make_definition(start_time=time(9, 0), end_time=time(11, 0))
    b = make_definition(start_time=time(10, 30), end_time=time(12, 0))
    assert conflicts(a, b)


def test_weekly_on_different_days_do_not_conflict(make_definition):
    assert not conflicts(make_definition(day_of_week=3), make_definition(day_of_week=4))


def test_different_providers_never_conflict(make_definition):
    a = make_definition()
    b = make_definition(provider_id=uuid.uuid4())
    assert not conflicts(a, b)


def test_disjoint_date_ranges_do_not_conflict(make_definition):
    a = make_definition(start_date=date(2030, 1, 7), end_date=date(2030, 1, 20))
    b = make_definition(start_date=date(2030, 1, 21), end_date=None)
    assert not conflicts(a, b)


def test_open_ended_definitions_overlap_later_ones(make_definition):
    a = make_definition(end_date=None)
    b = make_definition(start_date=date(2040, 1, 1), end_date=date(2040, 2, 1))
    assert effective_date_range(a) == (a.start_date, OPEN_END)
    assert conflicts(a, b)


def test_daily_against_weekly_is_treated_as_conflict(make_definition):
    """Only WEEKLY/WEEKLY compares weekdays; other pairings stay conservative."""
    daily = make_definition(recurrence_type="DAILY", day_of_week=None)
    weekly = make_definition(day_of_week=5)
    assert conflicts(daily, weekly)


def test_one_time_range_is_its_start_date(make_definition):
    one_time = make_definition(
        recurrence_type="ONE_TIME",
        day_of_week=None,
        start_date=date(2030, 1, 7),
        end_date=date(2030, 1, 31),
    )
    daily = make_definition(recurrence_type="DAILY", day_of_week=None, start_date=date(2030, 1, 10))
    assert effective_date_range(one_time) == (date(2030, 1, 7), date(2030, 1, 7))
    assert not conflicts(one_time, daily)


def test_conflict_is_symmetric(make_definition):
    pool = [
        make_definition(),
        make_definition(day_of_week=4),
        make_definition(start_time=time(10, 0), end_time=time(13, 0)),
        make_definition(recurrence_type="DAILY", day_of_week=None, start_date=date(2030, 1, 15)),
        make_definition(recurrence_type="ONE_TIME", day_of_week=None, start_date=date(2030, 1, 9)),
        make_definition(provider_id=uuid.uuid4()),
        make_definition(start_time=time(11, 0), end_time=time(12, 0)),
        make_definition(start_date=date(2031, 1, 1), end_date=None),
    ]
    for a, b in itertools.product(pool, repeat=2):
        assert conflicts(a, b) == conflicts(b, a)


def test_find_conflicts_returns_every_match(make_definition):
    candidate = make_definition(recurrence_type="DAILY", day_of_week=None)
    first = make_definition(title="Wednesday clinic", day_of_week=3)
    second = make_definition(title="Friday clinic", day_of_week=5)
    unrelated = make_definition(start_time=time(14, 0), end_time=time(16, 0))

    found = find_conflicts(candidate, [first, unrelated, second])

    assert found == [first, second]


def test_find_conflicts_skips_self_and_inactive(make_definition):
    candidate = make_definition()
    inactive = make_definition(is_active=False)
    assert find_conflicts(candidate, [candidate, inactive]) == []
