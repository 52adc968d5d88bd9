# pilot-tracker/schemas.py
"""
Typed records exchanged with the record store.

Goal configuration is persisted as loosely-typed JSON blobs. The validators
below are the single place those blobs are checked: unknown metric or level
keys and non-numeric or negative goals are dropped, missing entries fall back
to their defaults (individual scope, no rules, zero goal) and a malformed
accelerator rule is discarded on its own instead of failing the whole team.
"""
import logging
import math
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

import config
from utils import round_half_up

logger = logging.getLogger(__name__)

GoalScope = Literal["individual", "team"]


def _as_mapping(value, label: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning("Ignoring %s: expected a mapping, got %r", label, type(value).__name__)
        return {}
    return value


def _known_keys(value: dict, allowed, label: str) -> dict:
    cleaned = {}
    for key, item in value.items():
        if item is None:
            continue
        if key not in allowed:
            logger.warning("Dropping unknown key %r from %s", key, label)
            continue
        cleaned[key] = item
    return cleaned


def _goal_values(value: dict, label: str, whole: bool = True) -> dict:
    """Keep non-negative numeric goals; whole-number goals are rounded half-up."""
    cleaned = {}
    for key, goal in value.items():
        if isinstance(goal, str):
            try:
                goal = float(goal)
            except ValueError:
                goal = None
        if isinstance(goal, bool) or not isinstance(goal, (int, float)) or not math.isfinite(goal) or goal < 0:
            logger.warning("Dropping invalid goal %r for %s.%s", value[key], label, key)
            continue
        cleaned[key] = round_half_up(goal) if whole else goal
    return cleaned


# --- Funnel & wins ---

class WeeklyFunnel(BaseModel):
    tam: int = Field(0, ge=0)
    calls: int = Field(0, ge=0)
    connects: int = Field(0, ge=0)
    ops: int = Field(0, ge=0)
    demos: int = Field(0, ge=0)
    wins: int = Field(0, ge=0)
    feedback: int = Field(0, ge=0)
    activity: int = Field(0, ge=0)
    role: Optional[str] = None
    submitted: bool = False
    submitted_at: Optional[datetime] = None

    def value(self, metric: str) -> int:
        return getattr(self, metric, 0) or 0


class WinEntry(BaseModel):
    id: str
    restaurant: str
    story: Optional[str] = None
    won_on: date


class SuperhexRow(BaseModel):
    """One row of the external activity report, keyed by (rep_name, activity_week)."""
    rep_name: str
    activity_week: date
    total_activity_count: int = 0
    calls_count: int = 0
    connects_count: int = 0
    ops_count: int = 0
    total_demos: int = 0
    total_wins: int = 0
    feedback_count: int = 0


# --- Accelerators ---

class AcceleratorRule(BaseModel):
    enabled: bool = True
    condition_operator: Literal[">", "<", "between"] = ">"
    condition_value1: float = 0
    condition_value2: Optional[float] = None
    action_operator: Literal["+", "-", "*"] = "+"
    action_value: float = 0
    action_unit: Literal["%", "#"] = "%"
    scope: Optional[str] = None


# --- Goal configuration ---

class TeamGoalConfig(BaseModel):
    """The goal-affecting fields of a team; also the payload of a monthly team snapshot."""
    goals_parity: bool = False
    team_goals: Dict[str, int] = Field(default_factory=dict)
    enabled_goals: Dict[str, bool] = Field(default_factory=dict)
    accelerator_config: Dict[str, List[AcceleratorRule]] = Field(default_factory=dict)
    team_goals_by_level: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    goal_scope_config: Dict[str, GoalScope] = Field(default_factory=dict)

    @field_validator("team_goals", mode="before")
    @classmethod
    def _team_goal_values(cls, value):
        goals = _known_keys(_as_mapping(value, "team_goals"), config.GOAL_METRICS, "team_goals")
        return _goal_values(goals, "team_goals")

    @field_validator("enabled_goals", mode="before")
    @classmethod
    def _enabled_flags(cls, value):
        flags = _known_keys(_as_mapping(value, "enabled_goals"), config.GOAL_METRICS, "enabled_goals")
        cleaned = {}
        for metric, flag in flags.items():
            if not isinstance(flag, (bool, int)):
                logger.warning("Ignoring non-boolean enabled flag %r for %s", flag, metric)
                continue
            cleaned[metric] = bool(flag)
        return cleaned

    @field_validator("goal_scope_config", mode="before")
    @classmethod
    def _scope_values(cls, value):
        scopes = _known_keys(_as_mapping(value, "goal_scope_config"), config.GOAL_METRICS, "goal_scope_config")
        cleaned = {}
        for metric, scope in scopes.items():
            if scope not in ("individual", "team"):
                logger.warning("Unknown goal scope %r for %s, using individual", scope, metric)
                continue
            cleaned[metric] = scope
        return cleaned

    @field_validator("team_goals_by_level", mode="before")
    @classmethod
    def _level_tables(cls, value):
        tables = _known_keys(_as_mapping(value, "team_goals_by_level"), config.GOAL_METRICS, "team_goals_by_level")
        cleaned = {}
        for metric, by_level in tables.items():
            by_level = _known_keys(_as_mapping(by_level, f"team_goals_by_level.{metric}"), config.MEMBER_LEVELS, f"team_goals_by_level.{metric}")
            cleaned[metric] = _goal_values(by_level, f"team_goals_by_level.{metric}", whole=False)
        return cleaned

    @field_validator("accelerator_config", mode="before")
    @classmethod
    def _rule_lists(cls, value):
        lists = _known_keys(_as_mapping(value, "accelerator_config"), config.GOAL_METRICS, "accelerator_config")
        cleaned = {}
        for metric, rules in lists.items():
            if not isinstance(rules, list):
                logger.warning("Ignoring accelerator rules for %s: expected a list", metric)
                continue
            valid = []
            for index, rule in enumerate(rules):
                if isinstance(rule, AcceleratorRule):
                    valid.append(rule)
                    continue
                try:
                    valid.append(AcceleratorRule.model_validate(rule))
                except ValidationError as e:
                    logger.warning("Dropping malformed accelerator rule %s[%d]: %s", metric, index, e)
            cleaned[metric] = valid
        return cleaned

    def goal_config(self) -> dict:
        return self.model_dump(mode="json", include=set(TeamGoalConfig.model_fields))


class MemberGoalConfig(BaseModel):
    level: Optional[str] = None
    goals: Dict[str, int] = Field(default_factory=dict)

    @field_validator("goals", mode="before")
    @classmethod
    def _member_goal_values(cls, value):
        return _goal_values(_known_keys(_as_mapping(value, "goals"), config.GOAL_METRICS, "goals"), "goals")

    @field_validator("level", mode="before")
    @classmethod
    def _known_level(cls, value):
        if value in (None, ""):
            return None
        if value not in config.MEMBER_LEVELS:
            logger.warning("Unknown member level %r, treating as unset", value)
            return None
        return value


# --- Entities ---

class TeamMember(MemberGoalConfig):
    id: str
    name: str
    team_id: Optional[str] = None
    funnel_by_week: Dict[str, WeeklyFunnel] = Field(default_factory=dict)
    wins: List[WinEntry] = Field(default_factory=list)
    ducks_earned: int = 0
    is_active: bool = True
    touched_accounts: int = 0
    touched_tam: int = 0


class Team(TeamGoalConfig):
    id: str
    name: str
    owner: str = ""
    lead_rep: str = ""
    sort_order: int = 0
    is_active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_tam: int = 0
    tam_submitted: bool = False
    members: List[TeamMember] = Field(default_factory=list)

    def active_members(self) -> List[TeamMember]:
        return [m for m in self.members if m.is_active]


# --- History ---

class MemberTeamHistoryEntry(BaseModel):
    id: Optional[int] = None
    member_id: str
    team_id: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None


class TeamGoalsHistoryEntry(TeamGoalConfig):
    team_id: str
    month: str


class MemberGoalsHistoryEntry(MemberGoalConfig):
    member_id: str
    month: str


# --- Pilot inputs ---

class TeamPhaseLabel(BaseModel):
    team_id: str
    month_index: int = Field(ge=0)
    label: str = ""


class Mission(BaseModel):
    content: str = ""
    submitted: bool = False


# --- Quota results ---

class MetricProgress(BaseModel):
    metric: str
    goal: int
    current: int
    ratio: float


class AcceleratorStep(BaseModel):
    metric: str
    rule_index: int
    rule: AcceleratorRule
    quota_before: float
    quota_after: float


class QuotaBreakdown(BaseModel):
    enabled_metrics: List[str] = Field(default_factory=list)
    metrics: List[MetricProgress] = Field(default_factory=list)
    base_quota: float = 0
    steps: List[AcceleratorStep] = Field(default_factory=list)
    final_quota: float = 0
