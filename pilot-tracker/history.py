# pilot-tracker/history.py
"""
Point-in-time views for past months.

Goal configuration is snapshotted once per entity per month (later writes in
the same month overwrite the row), and team membership is an append-only log
of intervals. For the current month the live entity always wins; for a past
month the snapshot is overlaid when one exists, otherwise the live entity is
used as-is.
"""
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from schemas import (
    MemberGoalConfig,
    MemberGoalsHistoryEntry,
    MemberTeamHistoryEntry,
    Team,
    TeamGoalConfig,
    TeamGoalsHistoryEntry,
    TeamMember,
)
from utils import is_current_month, month_bounds, month_key


def _is_live(reference_date: Optional[date]) -> bool:
    return reference_date is None or is_current_month(reference_date)


def _index(entries, id_attr: str) -> Mapping:
    if isinstance(entries, Mapping):
        return entries
    return {(getattr(e, id_attr), e.month): e for e in entries or ()}


def get_historical_team(team: Team, reference_date: Optional[date], team_goals_history) -> Team:
    if _is_live(reference_date):
        return team
    snapshot = _index(team_goals_history, "team_id").get((team.id, month_key(reference_date)))
    if snapshot is None:
        return team
    return team.model_copy(update={field: getattr(snapshot, field) for field in TeamGoalConfig.model_fields})


def get_historical_member(member: TeamMember, reference_date: Optional[date], member_goals_history) -> TeamMember:
    if _is_live(reference_date):
        return member
    snapshot = _index(member_goals_history, "member_id").get((member.id, month_key(reference_date)))
    if snapshot is None:
        return member
    return member.model_copy(update={field: getattr(snapshot, field) for field in MemberGoalConfig.model_fields})


def get_team_members_for_month(
    team: Team,
    reference_date: Optional[date],
    history_entries: Iterable[MemberTeamHistoryEntry],
    all_members_by_id: Mapping[str, TeamMember],
) -> List[TeamMember]:
    """Who was on `team` during the reference month, including members since moved or archived."""
    if _is_live(reference_date):
        return team.active_members()

    month_start, month_end = month_bounds(reference_date)
    member_ids = []
    for entry in history_entries:
        if entry.team_id != team.id:
            continue
        started = entry.started_at.date()
        ended = entry.ended_at.date() if entry.ended_at else date.max
        if started <= month_end and ended >= month_start and entry.member_id not in member_ids:
            member_ids.append(entry.member_id)
    return [all_members_by_id[mid] for mid in member_ids if mid in all_members_by_id]


# --- Snapshots ---

def build_team_goals_snapshot(team: Team, month: str) -> TeamGoalsHistoryEntry:
    return TeamGoalsHistoryEntry(team_id=team.id, month=month, **team.goal_config())


def build_member_goals_snapshot(member: TeamMember, month: str) -> MemberGoalsHistoryEntry:
    return MemberGoalsHistoryEntry(member_id=member.id, month=month, level=member.level, goals=dict(member.goals))


# --- Membership state machine ---
# Each member has at most one open interval (ended_at is None).

Transition = Tuple[Optional[MemberTeamHistoryEntry], Optional[MemberTeamHistoryEntry]]


def open_interval(entries: Iterable[MemberTeamHistoryEntry], member_id: str) -> Optional[MemberTeamHistoryEntry]:
    for entry in entries:
        if entry.member_id == member_id and entry.ended_at is None:
            return entry
    return None


def _transition(entries, member_id: str, team_id: Optional[str], now: Optional[datetime], open_new: bool) -> Transition:
    now = now or datetime.now(timezone.utc)
    current = open_interval(entries, member_id)
    closed = current.model_copy(update={"ended_at": now}) if current else None
    opened = MemberTeamHistoryEntry(member_id=member_id, team_id=team_id, started_at=now) if open_new else None
    return closed, opened


def assign_transition(entries, member_id: str, team_id: str, now: Optional[datetime] = None) -> Transition:
    return _transition(entries, member_id, team_id, now, open_new=True)


def unassign_transition(entries, member_id: str, now: Optional[datetime] = None) -> Transition:
    return _transition(entries, member_id, None, now, open_new=True)


def remove_transition(entries, member_id: str, now: Optional[datetime] = None) -> Transition:
    return _transition(entries, member_id, None, now, open_new=False)


def apply_transition(entries: List[MemberTeamHistoryEntry], transition: Transition) -> List[MemberTeamHistoryEntry]:
    closed, opened = transition
    result = []
    for entry in entries:
        if closed is not None and entry.member_id == closed.member_id and entry.ended_at is None:
            result.append(closed)
        else:
            result.append(entry)
    if opened is not None:
        result.append(opened)
    return result


class HistoryRecords:
    """The three history logs, indexed for repeated lookups during one render."""

    def __init__(
        self,
        membership: Iterable[MemberTeamHistoryEntry] = (),
        team_goals: Iterable[TeamGoalsHistoryEntry] = (),
        member_goals: Iterable[MemberGoalsHistoryEntry] = (),
        members_by_id: Optional[Dict[str, TeamMember]] = None,
    ):
        self.membership = list(membership)
        self.team_goals = _index(list(team_goals), "team_id")
        self.member_goals = _index(list(member_goals), "member_id")
        self.members_by_id = members_by_id or {}

    def team(self, team: Team, reference_date: Optional[date]) -> Team:
        return get_historical_team(team, reference_date, self.team_goals)

    def member(self, member: TeamMember, reference_date: Optional[date]) -> TeamMember:
        return get_historical_member(member, reference_date, self.member_goals)

    def members_for_month(self, team: Team, reference_date: Optional[date]) -> List[TeamMember]:
        return get_team_members_for_month(team, reference_date, self.membership, self.members_by_id)
