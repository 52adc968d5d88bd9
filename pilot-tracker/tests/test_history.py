from datetime import date, datetime, timedelta, timezone

from factories import make_member, make_team, past_month_date
from history import (
    HistoryRecords,
    apply_transition,
    assign_transition,
    get_historical_member,
    get_historical_team,
    get_team_members_for_month,
    open_interval,
    remove_transition,
    unassign_transition,
)
from schemas import MemberGoalsHistoryEntry, MemberTeamHistoryEntry, TeamGoalsHistoryEntry
from utils import month_bounds, month_key


def at(d: date) -> datetime:
    return datetime(d.year, d.month, d.day, 12, tzinfo=timezone.utc)


def test_current_month_always_returns_live_team():
    team = make_team(goals_parity=False, team_goals={"calls": 10})
    snapshot = TeamGoalsHistoryEntry(team_id=team.id, month=month_key(date.today()), goals_parity=True, team_goals={"calls": 99})
    assert get_historical_team(team, date.today(), [snapshot]) is team
    assert get_historical_team(team, None, [snapshot]) is team


def test_past_month_overlays_goal_configuration_only():
    month = past_month_date()
    member = make_member()
    team = make_team([member], name="Sterno", team_goals={"calls": 10}, enabled_goals={"calls": True})
    snapshot = TeamGoalsHistoryEntry(
        team_id=team.id,
        month=month_key(month),
        goals_parity=True,
        team_goals={"calls": 99},
        enabled_goals={"demos": True},
        goal_scope_config={"demos": "team"},
    )

    historical = get_historical_team(team, month, [snapshot])

    assert historical.goals_parity is True
    assert historical.team_goals == {"calls": 99}
    assert historical.enabled_goals == {"demos": True}
    assert historical.goal_scope_config == {"demos": "team"}
    assert historical.name == "Sterno"
    assert historical.members == team.members
    assert team.team_goals == {"calls": 10}


def test_past_month_without_snapshot_falls_back_to_live_team():
    team = make_team(team_goals={"calls": 10})
    other_month = TeamGoalsHistoryEntry(team_id=team.id, month=month_key(past_month_date(2)), team_goals={"calls": 1})
    assert get_historical_team(team, past_month_date(1), [other_month]) is team


def test_member_snapshot_overlays_goals_and_level():
    month = past_month_date()
    member = make_member(level="rep", goals={"calls": 40}, funnels={"2024-05-06": {"calls": 3}})
    snapshot = MemberGoalsHistoryEntry(member_id=member.id, month=month_key(month), level="bdr", goals={"calls": 25})

    historical = get_historical_member(member, month, [snapshot])

    assert (historical.level, historical.goals) == ("bdr", {"calls": 25})
    assert historical.funnel_by_week == member.funnel_by_week
    assert get_historical_member(member, date.today(), [snapshot]) is member


def test_members_for_current_month_are_active_roster():
    active, inactive = make_member("a"), make_member("b", is_active=False)
    team = make_team([active, inactive])
    assert get_team_members_for_month(team, None, [], {}) == [active]


def test_members_for_past_month_use_overlapping_intervals():
    month = past_month_date(2)
    start, end = month_bounds(month)
    members = {mid: make_member(mid, team_id=None) for mid in ("stayed", "left", "joined_late", "left_early", "elsewhere", "open")}
    team = make_team([], team_id="t1")
    entries = [
        MemberTeamHistoryEntry(member_id="stayed", team_id="t1", started_at=at(start - timedelta(days=40)), ended_at=at(end + timedelta(days=40))),
        MemberTeamHistoryEntry(member_id="left", team_id="t1", started_at=at(start - timedelta(days=5)), ended_at=at(start + timedelta(days=3))),
        MemberTeamHistoryEntry(member_id="joined_late", team_id="t1", started_at=at(end + timedelta(days=1))),
        MemberTeamHistoryEntry(member_id="left_early", team_id="t1", started_at=at(start - timedelta(days=60)), ended_at=at(start - timedelta(days=1))),
        MemberTeamHistoryEntry(member_id="elsewhere", team_id="t2", started_at=at(start)),
        MemberTeamHistoryEntry(member_id="open", team_id="t1", started_at=at(end)),
        MemberTeamHistoryEntry(member_id="stayed", team_id="t1", started_at=at(start + timedelta(days=2))),
    ]

    roster = get_team_members_for_month(team, month, entries, members)

    assert [m.id for m in roster] == ["stayed", "left", "open"]


def test_members_for_past_month_skip_unknown_ids():
    month = past_month_date()
    start, _ = month_bounds(month)
    entries = [MemberTeamHistoryEntry(member_id="ghost", team_id="t1", started_at=at(start))]
    assert get_team_members_for_month(make_team(), month, entries, {}) == []


def test_assign_closes_open_interval_and_opens_new_one():
    now = datetime(2024, 5, 10, tzinfo=timezone.utc)
    entries = [MemberTeamHistoryEntry(member_id="m1", team_id="t1", started_at=datetime(2024, 4, 1, tzinfo=timezone.utc))]

    closed, opened = assign_transition(entries, "m1", "t2", now=now)
    entries = apply_transition(entries, (closed, opened))

    assert closed.ended_at == now
    assert (opened.team_id, opened.started_at, opened.ended_at) == ("t2", now, None)
    assert [e.ended_at for e in entries] == [now, None]
    assert open_interval(entries, "m1").team_id == "t2"


def test_first_assignment_has_nothing_to_close():
    closed, opened = assign_transition([], "m1", "t1")
    assert closed is None
    assert opened.team_id == "t1"


def test_unassign_opens_interval_without_team():
    entries = [MemberTeamHistoryEntry(member_id="m1", team_id="t1", started_at=datetime(2024, 4, 1, tzinfo=timezone.utc))]
    entries = apply_transition(entries, unassign_transition(entries, "m1"))
    current = open_interval(entries, "m1")
    assert current is not None and current.team_id is None
    assert sum(1 for e in entries if e.ended_at is None) == 1


def test_remove_only_closes_interval():
    entries = [MemberTeamHistoryEntry(member_id="m1", team_id="t1", started_at=datetime(2024, 4, 1, tzinfo=timezone.utc))]
    closed, opened = remove_transition(entries, "m1")
    entries = apply_transition(entries, (closed, opened))
    assert opened is None
    assert open_interval(entries, "m1") is None
    assert entries[0].team_id == "t1"


def test_history_records_index_snapshots():
    month = past_month_date()
    member = make_member(goals={"calls": 1})
    team = make_team([member], team_goals={"calls": 1})
    records = HistoryRecords(
        team_goals=[TeamGoalsHistoryEntry(team_id=team.id, month=month_key(month), team_goals={"calls": 5})],
        member_goals=[MemberGoalsHistoryEntry(member_id=member.id, month=month_key(month), goals={"calls": 7})],
    )
    assert records.team(team, month).team_goals == {"calls": 5}
    assert records.member(member, month).goals == {"calls": 7}
