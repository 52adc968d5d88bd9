from datetime import date, datetime, timezone

from history import assign_transition, unassign_transition
from models import DbMember, DbTeam, DbTeamGoalsHistory, DbWeeklyFunnel
from schemas import (
    MemberGoalsHistoryEntry,
    Mission,
    SuperhexRow,
    Team,
    TeamGoalsHistoryEntry,
    TeamMember,
    TeamPhaseLabel,
    WinEntry,
)


def test_empty_store_loads_empty_lists(repository):
    records = repository.load_all()
    mission = records.pop("mission")
    assert set(records) == {
        "teams", "members", "superhex", "membership_history", "team_goals_history", "member_goals_history",
        "phase_labels", "custom_roles",
    }
    assert all(value == [] for value in records.values())
    assert mission == Mission()


def test_team_round_trip_keeps_goal_blobs(repository):
    team = Team(
        id="t1",
        name="Sterno",
        start_date=date(2024, 3, 1),
        team_goals={"calls": 100},
        enabled_goals={"calls": True},
        accelerator_config={"calls": [{"condition_value1": 50, "action_value": 10}]},
        goal_scope_config={"calls": "team"},
    )
    repository.save_team(team)

    loaded = repository.load_all()["teams"][0]

    assert loaded.goal_config() == team.goal_config()
    assert loaded.start_date == date(2024, 3, 1)


def test_save_team_updates_existing_row(repository):
    repository.save_team(Team(id="t1", name="Sterno"))
    repository.save_team(Team(id="t1", name="Sterno 2", team_goals={"demos": 4}))
    teams = repository.load_all()["teams"]
    assert [(t.name, t.team_goals) for t in teams] == [("Sterno 2", {"demos": 4})]


def test_member_funnels_and_wins_are_attached(repository):
    repository.save_team(Team(id="t1", name="Sterno"))
    repository.save_member(TeamMember(id="m1", name="Ana", team_id="t1", goals={"calls": 40}))
    repository.upsert_weekly_funnel("m1", "2024-05-06", {"calls": 5, "tam": 100, "unknown": 1})
    repository.upsert_weekly_funnel("m1", "2024-05-06", {"calls": 7})
    repository.add_win("m1", WinEntry(id="w1", restaurant="Luigi's", won_on=date(2024, 5, 7)))

    member = repository.load_all()["members"][0]

    assert member.team_id == "t1"
    assert member.funnel_by_week["2024-05-06"].calls == 7
    assert member.funnel_by_week["2024-05-06"].tam == 100
    assert [w.restaurant for w in member.wins] == ["Luigi's"]


def test_submitted_at_comes_back_timezone_aware(repository):
    repository.save_member(TeamMember(id="m1", name="Ana"))
    repository.upsert_weekly_funnel("m1", "2024-05-06", {"submitted": True, "submitted_at": datetime(2024, 5, 8, 9, tzinfo=timezone.utc)})
    funnel = repository.load_all()["members"][0].funnel_by_week["2024-05-06"]
    assert funnel.submitted_at.tzinfo is not None


def test_goal_snapshots_are_one_row_per_month(repository, session_factory):
    repository.upsert_team_goals_snapshot(TeamGoalsHistoryEntry(team_id="t1", month="2024-05", team_goals={"calls": 1}))
    repository.upsert_team_goals_snapshot(TeamGoalsHistoryEntry(team_id="t1", month="2024-05", team_goals={"calls": 2}))
    repository.upsert_member_goals_snapshot(MemberGoalsHistoryEntry(member_id="m1", month="2024-05", goals={"calls": 3}))
    repository.upsert_member_goals_snapshot(MemberGoalsHistoryEntry(member_id="m1", month="2024-05", level="bdr", goals={"calls": 4}))

    with session_factory() as db:
        assert db.query(DbTeamGoalsHistory).count() == 1

    records = repository.load_all()
    assert [e.team_goals for e in records["team_goals_history"]] == [{"calls": 2}]
    assert [(e.level, e.goals) for e in records["member_goals_history"]] == [("bdr", {"calls": 4})]


def test_membership_transitions_close_and_open(repository):
    first = datetime(2024, 4, 1, tzinfo=timezone.utc)
    second = datetime(2024, 5, 1, tzinfo=timezone.utc)

    repository.record_membership_transition(*assign_transition([], "m1", "t1", now=first))
    entries = repository.load_all()["membership_history"]
    repository.record_membership_transition(*unassign_transition(entries, "m1", now=second))

    entries = repository.load_all()["membership_history"]
    assert [(e.team_id, e.started_at, e.ended_at) for e in entries] == [
        ("t1", first, second),
        (None, second, None),
    ]


def test_superhex_rows_upsert_on_rep_and_week(repository):
    repository.upsert_superhex_row(SuperhexRow(rep_name="Ana", activity_week=date(2024, 5, 6), calls_count=3))
    repository.upsert_superhex_row(SuperhexRow(rep_name="Ana", activity_week=date(2024, 5, 6), calls_count=9))
    rows = repository.load_all()["superhex"]
    assert [(r.rep_name, r.calls_count) for r in rows] == [("Ana", 9)]


def test_bad_stored_goal_values_do_not_block_the_load(repository, session_factory):
    with session_factory() as db:
        db.add(DbTeam(id="good", name="Good", team_goals={"calls": 10}))
        db.add(DbTeam(id="odd", name="Odd", team_goals={"calls": 12.5}, team_goals_by_level={"calls": {"rep": "n/a"}}))
        db.add(DbMember(id="m1", name="Ana", goals={"calls": "lots"}))
        db.commit()

    records = repository.load_all()

    teams = {t.id: t for t in records["teams"]}
    assert teams["good"].team_goals == {"calls": 10}
    assert teams["odd"].team_goals == {"calls": 13}
    assert teams["odd"].team_goals_by_level == {"calls": {}}
    assert records["members"][0].goals == {}


def test_unreadable_row_is_skipped_and_the_rest_loads(repository, session_factory):
    repository.save_member(TeamMember(id="m1", name="Ana"))
    repository.upsert_weekly_funnel("m1", "2024-05-06", {"calls": 4})
    with session_factory() as db:
        db.add(DbWeeklyFunnel(member_id="m1", week_key="2024-05-13", calls=-3))
        db.commit()

    member = repository.load_all()["members"][0]

    assert list(member.funnel_by_week) == ["2024-05-06"]


def test_phase_labels_upsert_on_team_and_month(repository):
    repository.save_team(Team(id="t1", name="Sterno"))
    repository.upsert_phase_label(TeamPhaseLabel(team_id="t1", month_index=1, label="Win"))
    repository.upsert_phase_label(TeamPhaseLabel(team_id="t1", month_index=1, label="Win big"))
    labels = repository.load_all()["phase_labels"]
    assert [(e.team_id, e.month_index, e.label) for e in labels] == [("t1", 1, "Win big")]


def test_custom_roles_are_unique(repository):
    repository.add_custom_role("Expansion")
    repository.add_custom_role("Expansion")
    repository.add_custom_role("Renewals")
    assert repository.load_all()["custom_roles"] == ["Expansion", "Renewals"]


def test_mission_is_a_single_row(repository):
    repository.save_mission(Mission(content="Prove the pilot"))
    repository.save_mission(Mission(content="Prove the pilot", submitted=True))
    assert repository.load_all()["mission"] == Mission(content="Prove the pilot", submitted=True)
