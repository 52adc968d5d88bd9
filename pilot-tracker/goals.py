# pilot-tracker/goals.py
"""
Goal resolution and pacing.

A member's goal for a metric resolves in three tiers:
  1. a level target (split across same-level teammates under parity),
  2. the flat team target split across the whole active roster under parity,
  3. the member's individually assigned target.
An empty roster under parity resolves to 0.
"""
from datetime import date, timedelta
from typing import Optional

import config
from schemas import Team, TeamMember
from utils import month_bounds, round_half_up


def get_effective_goal(team: Team, member: TeamMember, metric: str) -> int:
    active = team.active_members()

    level_goal = None
    if member.level:
        level_goal = team.team_goals_by_level.get(metric, {}).get(member.level)

    if level_goal is not None:
        if not team.goals_parity:
            return round_half_up(level_goal)
        peers = [m for m in active if m.level == member.level]
        return round_half_up(level_goal / len(peers)) if peers else 0

    if team.goals_parity:
        return round_half_up(team.team_goals.get(metric, 0) / len(active)) if active else 0

    return member.goals.get(metric, 0)


def get_business_days_remaining(team_end_date: Optional[date], reference_date: Optional[date] = None) -> int:
    """
    Weekdays after `reference_date` (today by default) through the end of
    its month, or through the team end date when that comes first in the
    same month.
    """
    today = reference_date or date.today()
    _, end = month_bounds(today)
    if team_end_date and (team_end_date.year, team_end_date.month) == (today.year, today.month) and team_end_date < end:
        end = team_end_date

    count = 0
    cursor = today + timedelta(days=1)
    while cursor <= end:
        if cursor.weekday() < 5:
            count += 1
        cursor += timedelta(days=1)
    return count


def get_needed_per_day(goal: int, current: int, days_remaining: int) -> Optional[float]:
    """Shortfall spread over the remaining business days; None when no days are left."""
    if days_remaining <= 0:
        return None
    per_day = max(0, goal - current) / days_remaining
    return per_day if per_day.is_integer() else round(per_day, 1)


def format_pace(per_day: Optional[float]) -> str:
    if per_day is None:
        return config.QUOTA_CONFIG["pace_placeholder"]
    if float(per_day).is_integer():
        return str(int(per_day))
    return f"{per_day:.1f}"
