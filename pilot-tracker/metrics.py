# pilot-tracker/metrics.py
"""
Metric aggregation over weekly funnel rows.

Every funnel field is an additive weekly flow except TAM, which is a balance:
a week with no TAM keeps the last value the member submitted.
"""
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import config
from schemas import SuperhexRow, Team, TeamMember, WeeklyFunnel
from utils import percentage, week_key_for, week_keys_in_month

logger = logging.getLogger(__name__)


def get_member_metric_total(member: TeamMember, metric: str, week_window: Optional[Iterable[str]] = None) -> int:
    """All-time total of `metric`, or the total over `week_window` when given."""
    if metric == "tam":
        return get_latest_tam(member, week_window)
    funnels = member.funnel_by_week or {}
    weeks = funnels.keys() if week_window is None else week_window
    return sum(funnels[week].value(metric) for week in weeks if week in funnels)


def get_carried_tam(member: TeamMember, week_key: str, ordered_week_keys: Sequence[str]) -> int:
    """
    Most recent non-zero TAM at or before `week_key`.

    `ordered_week_keys` must be ascending. If `week_key` is not part of it the
    member's raw value for that week is returned.
    """
    funnels = member.funnel_by_week or {}
    if week_key not in ordered_week_keys:
        funnel = funnels.get(week_key)
        return funnel.tam if funnel else 0

    index = list(ordered_week_keys).index(week_key)
    for key in reversed(ordered_week_keys[:index + 1]):
        funnel = funnels.get(key)
        if funnel and funnel.tam:
            return funnel.tam
    return 0


def get_latest_tam(member: TeamMember, week_window: Optional[Iterable[str]] = None) -> int:
    """TAM carried into the last week of the window (or the member's latest week)."""
    funnels = member.funnel_by_week or {}
    keys = list(week_window) if week_window is not None else list(funnels)
    if not keys:
        return 0
    last = max(keys)
    ordered = sorted({k for k in funnels if k <= last} | {last})
    return get_carried_tam(member, last, ordered)


def get_scoped_metric_total(
    team: Team,
    member: TeamMember,
    metric: str,
    reference_date: Optional[date] = None,
    history=None,
) -> int:
    """
    The "current value" side of a goal ratio.

    Team-scoped metrics are summed over the roster of the reference month
    (the historical roster when `history` is given); everything else is the
    member's own total. A reference date limits the sum to the weeks that
    start in that month.
    """
    window = week_keys_in_month(reference_date) if reference_date else None

    if team.goal_scope_config.get(metric, "individual") == "team":
        if history is None:
            roster = team.active_members()
        else:
            roster = history.members_for_month(team, reference_date)
        return sum(get_member_metric_total(m, metric, window) for m in roster)

    return get_member_metric_total(member, metric, window)


def get_team_tam(team: Team) -> int:
    """Touched TAM from the external feed when present, else the manually submitted total."""
    touched = sum(m.touched_tam for m in team.active_members())
    if touched > 0:
        return touched
    return team.total_tam if team.tam_submitted else 0


def funnel_conversions(funnel: WeeklyFunnel) -> Dict[str, int]:
    return {
        name: percentage(funnel.value(numerator), funnel.value(denominator))
        for name, (numerator, denominator) in config.FUNNEL_CONVERSIONS.items()
    }


def merge_external_baseline(members: List[TeamMember], rows: Iterable[SuperhexRow]) -> List[TeamMember]:
    """
    Fill zero manual funnel values from the external activity report.

    Rows are matched to members by trimmed, case-insensitive name. A value
    typed in by hand always wins over the report; the report only fills
    fields that are still zero. Unmatched rows are skipped.
    """
    by_name = {m.name.strip().lower(): m for m in members}
    merged = {m.id: dict(m.funnel_by_week) for m in members}

    for row in rows:
        member = by_name.get(row.rep_name.strip().lower())
        if member is None:
            logger.warning("No member matches external activity row for %r (week %s)", row.rep_name, row.activity_week)
            continue

        week = week_key_for(row.activity_week)
        funnel = merged[member.id].get(week) or WeeklyFunnel()
        updates = {}
        for field, column in config.SUPERHEX_FIELD_MAP.items():
            baseline = getattr(row, column) or 0
            if baseline and not funnel.value(field):
                updates[field] = baseline
        if updates:
            merged[member.id][week] = funnel.model_copy(update=updates)

    return [m.model_copy(update={"funnel_by_week": merged[m.id]}) for m in members]
