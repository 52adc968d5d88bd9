from datetime import date, datetime, timedelta, timezone

import pytest

from utils import (
    generate_test_phases,
    month_bounds,
    parse_date,
    percentage,
    phase_to_date,
    recent_week_keys,
    round_half_up,
    time_ago,
    week_key_for,
    week_keys_in_month,
)


@pytest.mark.parametrize("value, expected", [(2.5, 3), (3.5, 4), (2.4999, 2), (0, 0), (7.0, 7)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_week_key_is_monday():
    assert week_key_for(date(2024, 5, 12)) == "2024-05-06"
    assert week_key_for(date(2024, 5, 6)) == "2024-05-06"


def test_recent_week_keys_oldest_first():
    assert recent_week_keys(3, today=date(2024, 5, 15)) == ["2024-04-29", "2024-05-06", "2024-05-13"]


def test_week_keys_in_month_use_mondays():
    assert week_keys_in_month(date(2024, 4, 20)) == ["2024-04-01", "2024-04-08", "2024-04-15", "2024-04-22", "2024-04-29"]
    assert week_keys_in_month(date(2024, 6, 1))[0] == "2024-06-03"


def test_month_bounds_handles_leap_year():
    assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))


def test_parse_date():
    assert parse_date("2024-05-06T10:00:00Z") == date(2024, 5, 6)
    assert parse_date(datetime(2024, 5, 6, 10)) == date(2024, 5, 6)
    assert parse_date("") is None


def test_percentage_of_zero_is_zero():
    assert percentage(5, 0) == 0
    assert percentage(1, 3) == 33


def test_time_ago():
    assert time_ago(None) == "N/A"
    assert time_ago(datetime.now(timezone.utc) - timedelta(hours=3)) == "3h ago"


def test_pilot_phases_cover_each_month():
    phases = generate_test_phases(date(2024, 3, 10), date(2024, 5, 20), {0: "Get it working", 1: "Win"}, today=date(2024, 4, 15))

    assert [p["month_label"] for p in phases] == ["(1) March", "(2) April", "(3) May"]
    assert [p["progress"] for p in phases] == [100, 50, 0]
    assert [p["label"] for p in phases] == ["Get it working", "Win", ""]
    assert phase_to_date(phases[1]) == date(2024, 4, 15)


def test_pilot_phases_need_both_dates():
    assert generate_test_phases(None, date(2024, 5, 1), {}) == []
