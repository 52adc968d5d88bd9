from datetime import date

from factories import make_member, make_team
from goals import format_pace, get_business_days_remaining, get_effective_goal, get_needed_per_day


def test_individual_goal_without_parity_or_level_goal():
    member = make_member(goals={"calls": 40, "demos": 7})
    team = make_team([member], team_goals={"calls": 999})
    assert get_effective_goal(team, member, "calls") == 40
    assert get_effective_goal(team, member, "demos") == 7


def test_missing_individual_goal_is_zero():
    member = make_member(goals={"calls": 40})
    team = make_team([member])
    assert get_effective_goal(team, member, "wins") == 0


def test_parity_splits_flat_team_goal_across_active_members():
    members = [make_member(f"m{i}") for i in range(4)]
    team = make_team(members, goals_parity=True, team_goals={"calls": 100})
    assert [get_effective_goal(team, m, "calls") for m in members] == [25, 25, 25, 25]


def test_parity_ignores_inactive_members():
    members = [make_member("a"), make_member("b"), make_member("c", is_active=False)]
    team = make_team(members, goals_parity=True, team_goals={"calls": 100})
    assert get_effective_goal(team, members[0], "calls") == 50


def test_parity_rounds_half_up():
    members = [make_member(f"m{i}") for i in range(4)]
    team = make_team(members, goals_parity=True, team_goals={"demos": 10})
    assert get_effective_goal(team, members[0], "demos") == 3


def test_parity_with_no_active_members_is_zero():
    member = make_member("gone", is_active=False)
    team = make_team([member], goals_parity=True, team_goals={"calls": 100})
    assert get_effective_goal(team, member, "calls") == 0


def test_level_goal_is_per_member_without_parity():
    rep = make_member("rep", level="rep", goals={"calls": 5})
    team = make_team([rep], team_goals_by_level={"calls": {"rep": 80}})
    assert get_effective_goal(team, rep, "calls") == 80


def test_level_goal_split_across_same_level_members_under_parity():
    reps = [make_member("r1", level="rep"), make_member("r2", level="rep")]
    bdr = make_member("b1", level="bdr")
    team = make_team(
        reps + [bdr],
        goals_parity=True,
        team_goals={"calls": 300},
        team_goals_by_level={"calls": {"rep": 90, "bdr": 40}},
    )
    assert get_effective_goal(team, reps[0], "calls") == 45
    assert get_effective_goal(team, bdr, "calls") == 40


def test_level_without_level_goal_falls_back_to_flat_parity():
    member = make_member("s1", level="senior")
    other = make_member("r1", level="rep")
    team = make_team(
        [member, other],
        goals_parity=True,
        team_goals={"calls": 60},
        team_goals_by_level={"calls": {"rep": 90}},
    )
    assert get_effective_goal(team, member, "calls") == 30


def test_unset_level_ignores_level_table():
    member = make_member("x", goals={"ops": 12})
    team = make_team([member], team_goals_by_level={"ops": {"rep": 50}})
    assert get_effective_goal(team, member, "ops") == 12


def test_business_days_friday_to_team_end_on_monday():
    # Friday 10 May 2024, pilot ends Monday 13 May
    assert get_business_days_remaining(date(2024, 5, 13), reference_date=date(2024, 5, 10)) == 1


def test_business_days_run_to_month_end_without_end_date():
    # Mon 27 May 2024 -> Tue..Fri 28-31 May
    assert get_business_days_remaining(None, reference_date=date(2024, 5, 27)) == 4


def test_business_days_ignore_end_date_in_another_month():
    assert get_business_days_remaining(date(2024, 6, 10), reference_date=date(2024, 5, 27)) == 4


def test_business_days_on_last_day_of_month():
    assert get_business_days_remaining(None, reference_date=date(2024, 5, 31)) == 0


def test_needed_per_day():
    assert get_needed_per_day(10, 4, 4) == 1.5
    assert get_needed_per_day(10, 2, 4) == 2
    assert get_needed_per_day(10, 20, 4) == 0


def test_pace_is_placeholder_when_no_days_left():
    assert get_needed_per_day(10, 0, 0) is None
    assert format_pace(None) == "—"
    assert format_pace(2.0) == "2"
    assert format_pace(1.5) == "1.5"
