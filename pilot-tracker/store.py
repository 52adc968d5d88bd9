# pilot-tracker/store.py
"""
Process-wide cache of the dashboard state.

Reads come from an in-memory Snapshot that is replaced wholesale by a reload.
Change notifications from the record store schedule a debounced reload, so a
burst of edits collapses into one fetch. Commands update the snapshot first
and then hand the write to the repository; a failed write is logged and
queued as a user notification, and the in-memory state is kept as-is until
the next reload.
"""
import asyncio
import logging
import os
import re
import uuid
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

import alert_client
import config
from history import (
    HistoryRecords,
    apply_transition,
    assign_transition,
    build_member_goals_snapshot,
    build_team_goals_snapshot,
    remove_transition,
    unassign_transition,
)
from metrics import merge_external_baseline
from repository import Repository
from schemas import (
    MemberGoalConfig,
    MemberGoalsHistoryEntry,
    MemberTeamHistoryEntry,
    Mission,
    SuperhexRow,
    Team,
    TeamGoalConfig,
    TeamGoalsHistoryEntry,
    TeamMember,
    TeamPhaseLabel,
    WeeklyFunnel,
    WinEntry,
)
from utils import month_key, parse_date, week_key_for

logger = logging.getLogger(__name__)

TEAM_DETAIL_FIELDS = ("name", "owner", "lead_rep", "sort_order", "start_date", "end_date", "total_tam", "tam_submitted")


class UnknownEntityError(KeyError):
    pass


class MissionLockedError(Exception):
    """The mission was submitted; it has to be reopened before its text can change."""


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


class Snapshot:
    """Teams and members in one arena keyed by id; rosters are derived from member.team_id."""

    def __init__(
        self,
        teams: Iterable[Team] = (),
        members: Iterable[TeamMember] = (),
        superhex: Iterable[SuperhexRow] = (),
        membership_history: Iterable[MemberTeamHistoryEntry] = (),
        team_goals_history: Iterable[TeamGoalsHistoryEntry] = (),
        member_goals_history: Iterable[MemberGoalsHistoryEntry] = (),
        phase_labels: Iterable[TeamPhaseLabel] = (),
        custom_roles: Iterable[str] = (),
        mission: Optional[Mission] = None,
    ):
        self.teams: Dict[str, Team] = {t.id: t for t in teams}
        self.members: Dict[str, TeamMember] = {m.id: m for m in members}
        self.superhex = list(superhex)
        self.membership_history = list(membership_history)
        self.team_goals_history = list(team_goals_history)
        self.member_goals_history = list(member_goals_history)
        self.phase_labels: Dict[str, Dict[int, str]] = {}
        for entry in phase_labels:
            self.phase_labels.setdefault(entry.team_id, {})[entry.month_index] = entry.label
        self.custom_roles = list(custom_roles)
        self.mission = mission or Mission()

    @classmethod
    def from_records(cls, records: dict) -> "Snapshot":
        return cls(**records)

    def merged_members(self) -> Dict[str, TeamMember]:
        """Members with zero funnel values filled from the external activity feed."""
        merged = merge_external_baseline(list(self.members.values()), self.superhex)
        return {m.id: m for m in merged}

    def team_view(self, team_id: str, merged: Optional[Dict[str, TeamMember]] = None) -> Team:
        team = self.teams.get(team_id)
        if team is None:
            raise UnknownEntityError(team_id)
        members = merged if merged is not None else self.merged_members()
        roster = [m for m in members.values() if m.team_id == team_id]
        return team.model_copy(update={"members": roster})

    def unassigned_members(self) -> List[TeamMember]:
        return [m for m in self.members.values() if m.team_id is None and m.is_active]

    def phase_labels_for(self, team_id: str) -> Dict[int, str]:
        return {**config.DEFAULT_PILOT_PHASE_LABELS, **self.phase_labels.get(team_id, {})}

    def role_catalogue(self) -> List[str]:
        return list(config.DEFAULT_FUNNEL_ROLES) + [r for r in self.custom_roles if r not in config.DEFAULT_FUNNEL_ROLES]

    def history(self, merged: Optional[Dict[str, TeamMember]] = None) -> HistoryRecords:
        return HistoryRecords(
            membership=self.membership_history,
            team_goals=self.team_goals_history,
            member_goals=self.member_goals_history,
            members_by_id=merged if merged is not None else self.merged_members(),
        )


class TeamStore:
    def __init__(self, repository: Optional[Repository] = None, debounce_seconds: Optional[float] = None):
        self.repository = repository or Repository()
        if debounce_seconds is None:
            debounce_seconds = float(os.getenv("RELOAD_DEBOUNCE_SECONDS", "1.0"))
        self.debounce_seconds = debounce_seconds
        self.snapshot = Snapshot()
        self.notifications: List[dict] = []
        self._pending_reload: Optional[asyncio.TimerHandle] = None
        self._reload_task: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Reload
    # ------------------------------------------------------------------

    def reload(self):
        self.snapshot = Snapshot.from_records(self.repository.load_all())
        logger.info("Reloaded %d teams and %d members", len(self.snapshot.teams), len(self.snapshot.members))

    def notify_change(self, table: str) -> bool:
        """Schedule a debounced reload for a change on `table`. Returns False for unwatched tables."""
        if table not in config.WATCHED_TABLES:
            return False
        loop = asyncio.get_running_loop()
        if self._pending_reload is not None:
            self._pending_reload.cancel()
        self._pending_reload = loop.call_later(self.debounce_seconds, self._run_scheduled_reload, loop)
        return True

    def _run_scheduled_reload(self, loop: asyncio.AbstractEventLoop):
        # load_all blocks on the database, so it runs in the default executor.
        self._pending_reload = None
        self._reload_task = loop.run_in_executor(None, self._reload_logging_errors)

    def _reload_logging_errors(self):
        try:
            self.reload()
        except SQLAlchemyError as e:
            logger.error("Scheduled reload failed: %s", e)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, label: str, write, *args, **kwargs) -> bool:
        try:
            write(*args, **kwargs)
            return True
        except SQLAlchemyError as e:
            logger.error("[db] %s failed: %s", label, e)
            self.notifications.append({
                "level": "error",
                "message": f"Save failed: {label}",
                "created_at": datetime.now(timezone.utc).isoformat(),
            })
            return False

    def drain_notifications(self) -> List[dict]:
        pending, self.notifications = self.notifications, []
        return pending

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_team(self, team_id: str) -> Team:
        team = self.snapshot.teams.get(team_id)
        if team is None:
            raise UnknownEntityError(team_id)
        return team

    def get_member(self, member_id: str) -> TeamMember:
        member = self.snapshot.members.get(member_id)
        if member is None:
            raise UnknownEntityError(member_id)
        return member

    def _put_team(self, team: Team):
        self.snapshot.teams[team.id] = team

    def _put_member(self, member: TeamMember):
        self.snapshot.members[member.id] = member

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, name: str, owner: str = "") -> Team:
        team = Team(
            id=f"{_slug(name)}-{uuid.uuid4().hex[:8]}",
            name=name.strip(),
            owner=owner,
            sort_order=len(self.snapshot.teams),
        )
        self._put_team(team)
        self._persist("create team", self.repository.save_team, team)
        self._snapshot_team_goals(team)
        return team

    def update_team(self, team_id: str, changes: dict) -> Team:
        """Update team details; goal-affecting keys are routed through update_team_goals."""
        goal_changes = {k: v for k, v in changes.items() if k in TeamGoalConfig.model_fields}
        detail_changes = {k: v for k, v in changes.items() if k in TEAM_DETAIL_FIELDS}

        team = self.get_team(team_id)
        if detail_changes:
            team = Team.model_validate({**team.model_dump(exclude={"members"}), **detail_changes})
            self._put_team(team)
            self._persist("update team", self.repository.save_team, team)
        if goal_changes:
            team = self.update_team_goals(team_id, goal_changes)
        return team

    def update_team_goals(self, team_id: str, changes: dict) -> Team:
        team = self.get_team(team_id)
        goal_config = TeamGoalConfig.model_validate({**team.goal_config(), **changes})
        team = team.model_copy(update={field: getattr(goal_config, field) for field in TeamGoalConfig.model_fields})
        self._put_team(team)
        self._persist("update team goals", self.repository.save_team, team)
        self._snapshot_team_goals(team)
        return team

    def archive_team(self, team_id: str) -> Team:
        """Soft-delete a team; its members go back to the unassigned pool."""
        team = self.get_team(team_id).model_copy(update={"is_active": False})
        self._put_team(team)
        self._persist("archive team", self.repository.save_team, team, archived_at=datetime.now(timezone.utc))
        for member in list(self.snapshot.members.values()):
            if member.team_id == team_id:
                self.unassign_member(member.id)
        return team

    def _snapshot_team_goals(self, team: Team):
        entry = build_team_goals_snapshot(team, month_key(date.today()))
        self.snapshot.team_goals_history = [
            e for e in self.snapshot.team_goals_history if (e.team_id, e.month) != (entry.team_id, entry.month)
        ] + [entry]
        self._persist("save team goals history", self.repository.upsert_team_goals_snapshot, entry)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def create_member(self, name: str, goals: Optional[dict] = None, level: Optional[str] = None, team_id: Optional[str] = None) -> TeamMember:
        member = TeamMember(id=uuid.uuid4().hex, name=name.strip(), goals=goals or {}, level=level)
        self._put_member(member)
        self._persist("create member", self.repository.save_member, member)
        self._snapshot_member_goals(member)
        if team_id is not None:
            member = self.assign_member(member.id, team_id)
        return member

    def update_member_goals(self, member_id: str, changes: dict) -> TeamMember:
        member = self.get_member(member_id)
        goal_config = MemberGoalConfig.model_validate({"level": member.level, "goals": member.goals, **changes})
        member = member.model_copy(update={"level": goal_config.level, "goals": goal_config.goals})
        self._put_member(member)
        self._persist("update member goals", self.repository.save_member, member)
        self._snapshot_member_goals(member)
        return member

    def _snapshot_member_goals(self, member: TeamMember):
        entry = build_member_goals_snapshot(member, month_key(date.today()))
        self.snapshot.member_goals_history = [
            e for e in self.snapshot.member_goals_history if (e.member_id, e.month) != (entry.member_id, entry.month)
        ] + [entry]
        self._persist("save member goals history", self.repository.upsert_member_goals_snapshot, entry)

    def _move(self, member: TeamMember, transition, label: str, **updates) -> TeamMember:
        self.snapshot.membership_history = apply_transition(self.snapshot.membership_history, transition)
        member = member.model_copy(update=updates)
        self._put_member(member)
        self._persist(label, self.repository.save_member, member)
        self._persist(f"{label} history", self.repository.record_membership_transition, *transition)
        return member

    def assign_member(self, member_id: str, team_id: str) -> TeamMember:
        member = self.get_member(member_id)
        self.get_team(team_id)
        if member.team_id == team_id:
            return member
        transition = assign_transition(self.snapshot.membership_history, member_id, team_id)
        return self._move(member, transition, "assign member", team_id=team_id)

    def unassign_member(self, member_id: str) -> TeamMember:
        member = self.get_member(member_id)
        if member.team_id is None:
            return member
        transition = unassign_transition(self.snapshot.membership_history, member_id)
        return self._move(member, transition, "unassign member", team_id=None)

    def remove_member(self, member_id: str) -> TeamMember:
        """Deactivate a member and close their open interval without opening a new one."""
        member = self.get_member(member_id)
        transition = remove_transition(self.snapshot.membership_history, member_id)
        return self._move(member, transition, "remove member", team_id=None, is_active=False)

    # ------------------------------------------------------------------
    # Funnels & wins
    # ------------------------------------------------------------------

    def upsert_funnel(self, member_id: str, week_key: str, fields: dict) -> WeeklyFunnel:
        member = self.get_member(member_id)
        week_key = week_key_for(parse_date(week_key))
        current = member.funnel_by_week.get(week_key) or WeeklyFunnel()

        values = {**current.model_dump(), **fields}
        if values.get("submitted") and not current.submitted and not values.get("submitted_at"):
            values["submitted_at"] = datetime.now(timezone.utc)
        funnel = WeeklyFunnel.model_validate(values)

        self._put_member(member.model_copy(update={"funnel_by_week": {**member.funnel_by_week, week_key: funnel}}))
        self._persist("save weekly funnel", self.repository.upsert_weekly_funnel, member_id, week_key, funnel.model_dump())
        return funnel

    def add_win(self, member_id: str, restaurant: str, story: Optional[str] = None, won_on: Optional[date] = None):
        """Record a win. Every third cumulative win earns a duck. Returns (member, earned_duck)."""
        member = self.get_member(member_id)
        win = WinEntry(id=uuid.uuid4().hex, restaurant=restaurant.strip(), story=(story or "").strip() or None, won_on=won_on or date.today())

        wins = member.wins + [win]
        earned_duck = len(wins) % config.QUOTA_CONFIG["wins_per_duck"] == 0
        ducks = member.ducks_earned + 1 if earned_duck else member.ducks_earned
        member = member.model_copy(update={"wins": wins, "ducks_earned": ducks})
        self._put_member(member)

        self._persist("add win", self.repository.add_win, member_id, win)
        self._persist("update ducks", self.repository.save_member, member)
        if earned_duck:
            team = self.snapshot.teams.get(member.team_id) if member.team_id else None
            alert_client.trigger_duck_alert(member, team)
        return member, earned_duck

    # ------------------------------------------------------------------
    # Pilot inputs
    # ------------------------------------------------------------------

    def set_phase_label(self, team_id: str, month_index: int, label: str) -> Dict[int, str]:
        self.get_team(team_id)
        entry = TeamPhaseLabel(team_id=team_id, month_index=month_index, label=label.strip())
        self.snapshot.phase_labels.setdefault(team_id, {})[month_index] = entry.label
        self._persist("update phase label", self.repository.upsert_phase_label, entry)
        return self.snapshot.phase_labels_for(team_id)

    def add_custom_role(self, name: str) -> List[str]:
        name = name.strip()
        if name not in self.snapshot.role_catalogue():
            self.snapshot.custom_roles.append(name)
            self._persist("add custom role", self.repository.add_custom_role, name)
        return self.snapshot.role_catalogue()

    def update_mission(self, changes: dict) -> Mission:
        """Edit the mission text or its submitted flag; text is frozen while submitted."""
        current = self.snapshot.mission
        reopening = changes.get("submitted") is False
        if "content" in changes and current.submitted and not reopening and changes["content"] != current.content:
            raise MissionLockedError()
        mission = Mission.model_validate({**current.model_dump(), **changes})
        self.snapshot.mission = mission
        self._persist("update mission", self.repository.save_mission, mission)
        return mission


_store: Optional[TeamStore] = None

def get_store() -> TeamStore:
    global _store
    if _store is None:
        _store = TeamStore()
    return _store
