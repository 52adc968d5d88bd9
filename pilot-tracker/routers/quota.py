from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

import config
from accelerators import compute_quota_breakdown, count_triggered_accelerators, display_quota, get_enabled_metrics
from goals import format_pace, get_business_days_remaining, get_effective_goal, get_needed_per_day
from metrics import get_scoped_metric_total, get_team_tam
from schemas import QuotaBreakdown
from store import TeamStore, get_store
from utils import month_key

router = APIRouter()

# --- Pydantic Models ---
class MetricCell(BaseModel):
    metric: str
    label: str
    enabled: bool
    goal: int
    current: int
    needed: int
    progress: float
    per_day: Optional[float]
    per_day_display: str

class MemberQuotaRow(BaseModel):
    member_id: str
    name: str
    level: Optional[str]
    ducks_earned: int
    quota: float
    display_quota: float
    triggered_accelerators: int
    metrics: List[MetricCell]

class TeamQuotaResponse(BaseModel):
    team_id: str
    team_name: str
    month: str
    business_days_left: int
    team_tam: int
    members: List[MemberQuotaRow]

class QuotaBreakdownResponse(BaseModel):
    member_id: str
    month: str
    display_quota: float
    breakdown: QuotaBreakdown


@router.get("/teams/{team_id}/quota", response_model=TeamQuotaResponse, tags=["Quota"])
def get_team_quota(team_id: str, reference_date: Optional[date] = None, store: TeamStore = Depends(get_store)):
    """
    Per-member quota table for a team, optionally as of a past month.
    For past months the roster, goal configuration and member levels are the
    ones recorded for that month.
    """
    merged = store.snapshot.merged_members()
    team = store.snapshot.team_view(team_id, merged)
    history = store.snapshot.history(merged)

    period_team = history.team(team, reference_date)
    enabled = set(get_enabled_metrics(period_team))
    days_left = get_business_days_remaining(team.end_date, reference_date)

    rows = []
    for member in history.members_for_month(team, reference_date):
        period_member = history.member(member, reference_date)
        breakdown = compute_quota_breakdown(team, member, reference_date, history)

        cells = []
        for metric in config.GOAL_METRICS:
            goal = get_effective_goal(period_team, period_member, metric)
            current = get_scoped_metric_total(period_team, period_member, metric, reference_date, history)
            per_day = get_needed_per_day(goal, current, days_left)
            cells.append(MetricCell(
                metric=metric,
                label=config.GOAL_METRIC_LABELS[metric],
                enabled=metric in enabled,
                goal=goal,
                current=current,
                needed=max(0, goal - current),
                progress=min(current / goal * 100, 100) if goal > 0 else 0,
                per_day=per_day,
                per_day_display=format_pace(per_day),
            ))

        rows.append(MemberQuotaRow(
            member_id=member.id,
            name=member.name,
            level=period_member.level,
            ducks_earned=member.ducks_earned,
            quota=breakdown.final_quota,
            display_quota=display_quota(breakdown.final_quota),
            triggered_accelerators=count_triggered_accelerators(team, member, reference_date, history),
            metrics=cells,
        ))

    return TeamQuotaResponse(
        team_id=team.id,
        team_name=team.name,
        month=month_key(reference_date or date.today()),
        business_days_left=days_left,
        team_tam=get_team_tam(team),
        members=rows,
    )

@router.get("/teams/{team_id}/members/{member_id}/quota-breakdown", response_model=QuotaBreakdownResponse, tags=["Quota"])
def get_member_quota_breakdown(team_id: str, member_id: str, reference_date: Optional[date] = None, store: TeamStore = Depends(get_store)):
    merged = store.snapshot.merged_members()
    team = store.snapshot.team_view(team_id, merged)
    member = merged.get(member_id) or store.get_member(member_id)
    breakdown = compute_quota_breakdown(team, member, reference_date, store.snapshot.history(merged))
    return QuotaBreakdownResponse(
        member_id=member.id,
        month=month_key(reference_date or date.today()),
        display_quota=display_quota(breakdown.final_quota),
        breakdown=breakdown,
    )
