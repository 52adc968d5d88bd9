# pilot-tracker/config.py

"""
Central configuration for the Pilot Tracker.
-- Goal metrics, member levels and quota display rules --
"""

# --- Metrics ---
# Order matters: accelerator rules are folded in this order.
GOAL_METRICS = ("calls", "ops", "demos", "wins", "feedback", "activity")

# Everything a weekly funnel row carries. TAM is a balance, not a flow.
FUNNEL_METRICS = ("tam", "calls", "connects", "ops", "demos", "wins", "feedback", "activity")

GOAL_METRIC_LABELS = {
    "calls": "Calls",
    "ops": "Ops",
    "demos": "Demos",
    "wins": "Wins",
    "feedback": "Feedback",
    "activity": "Activity",
}

MEMBER_LEVELS = ("adr", "bdr", "rep", "senior", "principal", "lead")

# --- Quota Rules ---
QUOTA_CONFIG = {
    "display_cap": 200,
    "wins_per_duck": 3,
    "pace_placeholder": "—",
}

# --- Funnel conversions shown under each week ---
FUNNEL_CONVERSIONS = {
    "tam_to_call": ("calls", "tam"),
    "call_to_connect": ("connects", "calls"),
    "connect_to_demo": ("demos", "connects"),
    "demo_to_win": ("wins", "demos"),
}

# --- External activity feed ---
# Maps superhex report columns onto funnel fields.
SUPERHEX_FIELD_MAP = {
    "calls": "calls_count",
    "connects": "connects_count",
    "ops": "ops_count",
    "demos": "total_demos",
    "wins": "total_wins",
    "feedback": "feedback_count",
    "activity": "total_activity_count",
}

# --- Realtime ---
# A change on any of these tables triggers a (debounced) full reload.
WATCHED_TABLES = (
    "teams",
    "members",
    "weekly_funnels",
    "win_entries",
    "superhex_activity",
    "member_team_history",
    "team_goals_history",
    "member_goals_history",
    "team_phase_labels",
    "custom_roles",
    "mission",
)

DEFAULT_PILOT_PHASE_LABELS = {
    0: "Get the pilot to work, get product feedback",
    1: "Win, win, win",
    2: "Keep winning, build recommendation",
}

# --- Funnel roles ---
# Always offered; managers can add more, stored in custom_roles.
DEFAULT_FUNNEL_ROLES = ("TOFU", "Closing", "No Funnel Activity")
