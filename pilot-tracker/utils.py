import calendar
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

# Shared date helpers. Week keys are the ISO date of the week's Monday,
# month keys are "YYYY-MM".

def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensures a datetime object is timezone-aware, assuming UTC if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt

def time_ago(dt: Optional[datetime]) -> str:
    """Converts a datetime object to a human-readable string like '2h ago'."""
    if not dt: return "N/A"
    now = datetime.now(timezone.utc)
    diff = now - ensure_timezone_aware(dt)
    seconds = diff.total_seconds()
    if seconds < 60: return "Just now"
    if seconds < 3600: return f"{int(seconds / 60)}m ago"
    if seconds < 86400: return f"{int(seconds / 3600)}h ago"
    return f"{diff.days}d ago"

def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])

def week_key_for(d: date) -> str:
    monday = d - timedelta(days=d.weekday())
    return monday.isoformat()

def recent_week_keys(count: int = 8, today: Optional[date] = None) -> List[str]:
    """Week keys for the last `count` weeks, oldest first, ending with this week."""
    today = today or date.today()
    return [week_key_for(today - timedelta(weeks=i)) for i in range(count - 1, -1, -1)]

def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"

def month_bounds(d: date) -> tuple:
    last_day = calendar.monthrange(d.year, d.month)[1]
    return date(d.year, d.month, 1), date(d.year, d.month, last_day)

def is_current_month(d: date, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return d.year == today.year and d.month == today.month

def week_keys_in_month(d: date) -> List[str]:
    """Keys of every week whose Monday falls inside the month of `d`."""
    start, end = month_bounds(d)
    cursor = start + timedelta(days=(7 - start.weekday()) % 7)
    keys = []
    while cursor <= end:
        keys.append(cursor.isoformat())
        cursor += timedelta(weeks=1)
    return keys

def percentage(numerator: float, denominator: float) -> int:
    if not denominator:
        return 0
    return round_half_up(numerator / denominator * 100)

# --- Pilot phases ---

def generate_test_phases(
    start_date: Optional[date],
    end_date: Optional[date],
    labels: Dict[int, str],
    today: Optional[date] = None,
) -> List[Dict]:
    """
    One phase per calendar month of the pilot window.

    Progress is 100 for elapsed months, 0 for future ones and the share of
    days elapsed for the running month.
    """
    if not start_date or not end_date:
        return []
    today = today or date.today()

    phases = []
    cursor = date(start_date.year, start_date.month, 1)
    end_month_start = date(end_date.year, end_date.month, 1)
    index = 0
    while cursor <= end_month_start:
        month_start, month_end = month_bounds(cursor)
        if today > month_end:
            progress = 100
        elif today >= month_start:
            progress = round_half_up(today.day / month_end.day * 100)
        else:
            progress = 0

        phases.append({
            "month_index": index,
            "month_label": f"({index + 1}) {cursor.strftime('%B')}",
            "progress": progress,
            "label": labels.get(index, ""),
            "year": cursor.year,
            "month": cursor.month,
        })
        cursor = month_end + timedelta(days=1)
        index += 1
    return phases

def phase_to_date(phase: Dict) -> date:
    """Mid-month date used as the reference date for a phase."""
    return date(phase["year"], phase["month"], 15)
