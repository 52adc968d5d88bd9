# pilot-tracker/accelerators.py
"""
Quota computation with stacked accelerator rules.

Base quota is the unweighted mean of goal attainment (%) over the team's
enabled metrics. Accelerator rules then run metric by metric in GOAL_METRICS
order, each metric's rules in stored order. A rule's condition is tested
against the metric's current value, never the running quota; its action is
applied to the running quota left by the previous rule.
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

import config
from goals import get_effective_goal
from metrics import get_scoped_metric_total
from schemas import AcceleratorRule, AcceleratorStep, MetricProgress, QuotaBreakdown, Team, TeamMember

logger = logging.getLogger(__name__)


def get_enabled_metrics(team: Team) -> List[str]:
    return [metric for metric in config.GOAL_METRICS if team.enabled_goals.get(metric)]


def rule_condition_holds(rule: AcceleratorRule, current: float) -> bool:
    if rule.condition_operator == ">":
        return current > rule.condition_value1
    if rule.condition_operator == "<":
        return current < rule.condition_value1
    # between: an unset upper bound collapses the range to a single point
    upper = rule.condition_value2 if rule.condition_value2 is not None else rule.condition_value1
    return rule.condition_value1 <= current <= upper


def apply_rule_action(rule: AcceleratorRule, quota: float) -> float:
    if rule.action_operator == "+":
        return quota + rule.action_value
    if rule.action_operator == "-":
        return quota - rule.action_value
    if rule.action_unit == "%":
        return quota * (rule.action_value / 100)
    return quota * rule.action_value


def resolve_point_in_time(team: Team, member: TeamMember, reference_date: Optional[date], history) -> Tuple[Team, TeamMember]:
    """Overlay the goal configuration in effect for the reference month."""
    if history is None:
        return team, member
    return history.team(team, reference_date), history.member(member, reference_date)


def _metric_progress(team: Team, member: TeamMember, reference_date: Optional[date], history) -> List[MetricProgress]:
    progress = []
    for metric in get_enabled_metrics(team):
        goal = get_effective_goal(team, member, metric)
        current = get_scoped_metric_total(team, member, metric, reference_date, history)
        ratio = (current / goal) * 100 if goal > 0 else 0
        progress.append(MetricProgress(metric=metric, goal=goal, current=current, ratio=ratio))
    return progress


def compute_quota_breakdown(
    team: Team,
    member: TeamMember,
    reference_date: Optional[date] = None,
    history=None,
) -> QuotaBreakdown:
    team, member = resolve_point_in_time(team, member, reference_date, history)
    progress = _metric_progress(team, member, reference_date, history)
    if not progress:
        return QuotaBreakdown()

    base_quota = sum(p.ratio for p in progress) / len(progress)
    quota = base_quota
    steps = []
    for p in progress:
        for index, rule in enumerate(team.accelerator_config.get(p.metric, [])):
            if not rule.enabled or not rule_condition_holds(rule, p.current):
                continue
            before = quota
            quota = apply_rule_action(rule, quota)
            steps.append(AcceleratorStep(metric=p.metric, rule_index=index, rule=rule, quota_before=before, quota_after=quota))
            logger.debug("Accelerator %s[%d] fired for member=%s: %.2f -> %.2f", p.metric, index, member.id, before, quota)

    return QuotaBreakdown(
        enabled_metrics=[p.metric for p in progress],
        metrics=progress,
        base_quota=base_quota,
        steps=steps,
        final_quota=quota,
    )


def compute_quota(team: Team, member: TeamMember, reference_date: Optional[date] = None, history=None) -> float:
    return compute_quota_breakdown(team, member, reference_date, history).final_quota


def count_triggered_accelerators(team: Team, member: TeamMember, reference_date: Optional[date] = None, history=None) -> int:
    """Enabled rules whose condition holds on the raw current value, counted independently."""
    team, member = resolve_point_in_time(team, member, reference_date, history)
    count = 0
    for metric in get_enabled_metrics(team):
        rules = team.accelerator_config.get(metric, [])
        if not rules:
            continue
        current = get_scoped_metric_total(team, member, metric, reference_date, history)
        count += sum(1 for rule in rules if rule.enabled and rule_condition_holds(rule, current))
    return count


def display_quota(quota: float) -> float:
    """Quota as shown on screen; the computed value itself is never clamped."""
    return min(quota, config.QUOTA_CONFIG["display_cap"])
