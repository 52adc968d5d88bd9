# pilot-tracker/repository.py
"""
Record store for teams, members and their history.

Every write is an upsert keyed the same way as the table's unique
constraint, so repeating a write (or writing twice in the same month for
snapshots) collapses onto one row.
"""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from database import SessionLocal
from models import (
    DbCustomRole,
    DbMember,
    DbMemberGoalsHistory,
    DbMemberTeamHistory,
    DbMission,
    DbSuperhexActivity,
    DbTeam,
    DbTeamGoalsHistory,
    DbTeamPhaseLabel,
    DbWeeklyFunnel,
    DbWinEntry,
)
from schemas import (
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
from utils import ensure_timezone_aware

logger = logging.getLogger(__name__)

TEAM_COLUMNS = (
    "name", "owner", "lead_rep", "sort_order", "is_active", "start_date",
    "end_date", "total_tam", "tam_submitted",
)
MEMBER_COLUMNS = (
    "team_id", "name", "level", "goals", "ducks_earned", "is_active",
    "touched_accounts", "touched_tam",
)
FUNNEL_COLUMNS = tuple(WeeklyFunnel.model_fields)
GOAL_CONFIG_COLUMNS = tuple(TeamGoalConfig.model_fields)


def _aware(dt):
    return ensure_timezone_aware(dt) if dt else dt


def _convert_rows(rows: Iterable, convert: Callable, table: str) -> list:
    """Map rows to domain records, skipping any row that fails validation."""
    converted = []
    for row in rows:
        try:
            converted.append(convert(row))
        except ValidationError as e:
            logger.warning("Skipping unreadable %s row %s: %s", table, getattr(row, "id", "?"), e)
    return converted


class Repository:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def session(self):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # --- Reads ---

    def load_all(self) -> Dict[str, Any]:
        """
        Full current snapshot of every table the dashboard reads.

        A row that no longer validates is skipped with a warning so the rest
        of the dashboard still loads.
        """
        with self.session() as db:
            funnels: Dict[str, Dict[str, WeeklyFunnel]] = {}
            for row in db.query(DbWeeklyFunnel).all():
                converted = _convert_rows([row], self._funnel_to_domain, "weekly_funnels")
                if converted:
                    funnels.setdefault(row.member_id, {})[row.week_key] = converted[0]

            wins: Dict[str, List[WinEntry]] = {}
            for row in db.query(DbWinEntry).order_by(DbWinEntry.won_on, DbWinEntry.created_at).all():
                wins.setdefault(row.member_id, []).append(
                    WinEntry(id=row.id, restaurant=row.restaurant, story=row.story, won_on=row.won_on)
                )

            teams = _convert_rows(
                db.query(DbTeam).order_by(DbTeam.sort_order, DbTeam.name).all(),
                self._team_to_domain,
                "teams",
            )
            members = _convert_rows(
                db.query(DbMember).order_by(DbMember.created_at, DbMember.name).all(),
                lambda row: self._member_to_domain(row, funnels.get(row.id, {}), wins.get(row.id, [])),
                "members",
            )
            superhex = _convert_rows(
                db.query(DbSuperhexActivity).all(),
                lambda row: SuperhexRow.model_validate({c: getattr(row, c) for c in SuperhexRow.model_fields}),
                "superhex_activity",
            )
            membership = [
                MemberTeamHistoryEntry(
                    id=row.id,
                    member_id=row.member_id,
                    team_id=row.team_id,
                    started_at=_aware(row.started_at),
                    ended_at=_aware(row.ended_at),
                )
                for row in db.query(DbMemberTeamHistory).order_by(DbMemberTeamHistory.started_at, DbMemberTeamHistory.id).all()
            ]
            team_goals_history = _convert_rows(
                db.query(DbTeamGoalsHistory).all(),
                lambda row: TeamGoalsHistoryEntry.model_validate(
                    {"team_id": row.team_id, "month": row.month, **{c: getattr(row, c) for c in GOAL_CONFIG_COLUMNS}}
                ),
                "team_goals_history",
            )
            member_goals_history = _convert_rows(
                db.query(DbMemberGoalsHistory).all(),
                lambda row: MemberGoalsHistoryEntry(member_id=row.member_id, month=row.month, level=row.level, goals=row.goals),
                "member_goals_history",
            )
            phase_labels = [
                TeamPhaseLabel(team_id=row.team_id, month_index=row.month_index, label=row.label)
                for row in db.query(DbTeamPhaseLabel).order_by(DbTeamPhaseLabel.team_id, DbTeamPhaseLabel.month_index).all()
            ]
            custom_roles = [row.name for row in db.query(DbCustomRole).order_by(DbCustomRole.created_at, DbCustomRole.id).all()]
            mission_row = db.query(DbMission).order_by(DbMission.id).first()
            mission = Mission(content=mission_row.content, submitted=mission_row.submitted) if mission_row else Mission()

        return {
            "teams": teams,
            "members": members,
            "superhex": superhex,
            "membership_history": membership,
            "team_goals_history": team_goals_history,
            "member_goals_history": member_goals_history,
            "phase_labels": phase_labels,
            "custom_roles": custom_roles,
            "mission": mission,
        }

    # --- Writes ---

    def save_team(self, team: Team, archived_at=None):
        values = {c: getattr(team, c) for c in TEAM_COLUMNS}
        values.update(team.goal_config())
        with self.session() as db:
            row = db.query(DbTeam).filter_by(id=team.id).first()
            if row is None:
                db.add(DbTeam(id=team.id, archived_at=archived_at, **values))
                return
            for key, value in values.items():
                setattr(row, key, value)
            if archived_at is not None:
                row.archived_at = archived_at

    def save_member(self, member: TeamMember):
        values = {c: getattr(member, c) for c in MEMBER_COLUMNS}
        with self.session() as db:
            row = db.query(DbMember).filter_by(id=member.id).first()
            if row is None:
                db.add(DbMember(id=member.id, **values))
                return
            for key, value in values.items():
                setattr(row, key, value)

    def upsert_weekly_funnel(self, member_id: str, week_key: str, fields: dict):
        values = {k: v for k, v in fields.items() if k in FUNNEL_COLUMNS}
        with self.session() as db:
            row = db.query(DbWeeklyFunnel).filter_by(member_id=member_id, week_key=week_key).first()
            if row is None:
                db.add(DbWeeklyFunnel(member_id=member_id, week_key=week_key, **values))
                return
            for key, value in values.items():
                setattr(row, key, value)

    def add_win(self, member_id: str, win: WinEntry):
        with self.session() as db:
            db.add(DbWinEntry(id=win.id, member_id=member_id, restaurant=win.restaurant, story=win.story, won_on=win.won_on))

    def upsert_team_goals_snapshot(self, entry: TeamGoalsHistoryEntry):
        values = entry.goal_config()
        with self.session() as db:
            row = db.query(DbTeamGoalsHistory).filter_by(team_id=entry.team_id, month=entry.month).first()
            if row is None:
                db.add(DbTeamGoalsHistory(team_id=entry.team_id, month=entry.month, **values))
                return
            for key, value in values.items():
                setattr(row, key, value)

    def upsert_member_goals_snapshot(self, entry: MemberGoalsHistoryEntry):
        with self.session() as db:
            row = db.query(DbMemberGoalsHistory).filter_by(member_id=entry.member_id, month=entry.month).first()
            if row is None:
                db.add(DbMemberGoalsHistory(member_id=entry.member_id, month=entry.month, level=entry.level, goals=entry.goals))
                return
            row.level = entry.level
            row.goals = entry.goals

    def record_membership_transition(self, closed: Optional[MemberTeamHistoryEntry], opened: Optional[MemberTeamHistoryEntry]):
        with self.session() as db:
            if closed is not None:
                for row in db.query(DbMemberTeamHistory).filter_by(member_id=closed.member_id, ended_at=None).all():
                    row.ended_at = closed.ended_at
            if opened is not None:
                db.add(DbMemberTeamHistory(
                    member_id=opened.member_id,
                    team_id=opened.team_id,
                    started_at=opened.started_at,
                    ended_at=opened.ended_at,
                ))

    def upsert_superhex_row(self, row: SuperhexRow):
        values = row.model_dump(exclude={"rep_name", "activity_week"})
        with self.session() as db:
            existing = db.query(DbSuperhexActivity).filter_by(rep_name=row.rep_name, activity_week=row.activity_week).first()
            if existing is None:
                db.add(DbSuperhexActivity(rep_name=row.rep_name, activity_week=row.activity_week, **values))
                return
            for key, value in values.items():
                setattr(existing, key, value)

    def upsert_phase_label(self, entry: TeamPhaseLabel):
        with self.session() as db:
            row = db.query(DbTeamPhaseLabel).filter_by(team_id=entry.team_id, month_index=entry.month_index).first()
            if row is None:
                db.add(DbTeamPhaseLabel(team_id=entry.team_id, month_index=entry.month_index, label=entry.label))
                return
            row.label = entry.label

    def add_custom_role(self, name: str):
        with self.session() as db:
            if db.query(DbCustomRole).filter_by(name=name).first() is None:
                db.add(DbCustomRole(name=name))

    def save_mission(self, mission: Mission):
        with self.session() as db:
            row = db.query(DbMission).order_by(DbMission.id).first()
            if row is None:
                db.add(DbMission(content=mission.content, submitted=mission.submitted))
                return
            row.content = mission.content
            row.submitted = mission.submitted

    # --- Mapping ---

    @staticmethod
    def _funnel_to_domain(row: DbWeeklyFunnel) -> WeeklyFunnel:
        values = {c: getattr(row, c) for c in FUNNEL_COLUMNS}
        values["submitted_at"] = _aware(row.submitted_at)
        return WeeklyFunnel.model_validate(values)

    @staticmethod
    def _team_to_domain(row: DbTeam) -> Team:
        values = {c: getattr(row, c) for c in TEAM_COLUMNS + GOAL_CONFIG_COLUMNS}
        return Team.model_validate({"id": row.id, **values})

    @staticmethod
    def _member_to_domain(row: DbMember, funnels: Dict[str, WeeklyFunnel], wins: List[WinEntry]) -> TeamMember:
        values = {c: getattr(row, c) for c in MEMBER_COLUMNS}
        return TeamMember.model_validate({"id": row.id, "funnel_by_week": funnels, "wins": wins, **values})
