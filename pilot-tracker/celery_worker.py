# pilot-tracker/celery_worker.py
import logging
import os
import re
from datetime import date
from typing import Optional

from celery import Celery
from celery.schedules import crontab
from dotenv import load_dotenv
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from history import build_member_goals_snapshot, build_team_goals_snapshot
from repository import Repository
from schemas import SuperhexRow
from utils import month_key

load_dotenv()

logger = logging.getLogger(__name__)

def parse_azure_redis_url(azure_url: Optional[str]) -> Optional[str]:
    """Turns an Azure 'host:port,password=...' connection string into a rediss:// URL."""
    if not azure_url or not azure_url.startswith('redis-'): return azure_url
    try:
        host, params = azure_url.split(',', 1)
        password_match = re.search(r'password=([^,]+)', params)
        password = password_match.group(1) if password_match else ''
        return f"rediss://:{password}@{host}?ssl_cert_reqs=CERT_NONE"
    except (ValueError, AttributeError):
        logger.warning("Could not parse Azure Redis URL, falling back to original value.")
        return azure_url

redis_url = parse_azure_redis_url(os.getenv("REDIS_URL", "redis://localhost:6379/0"))
celery_app = Celery("pilot_tracker", broker=redis_url, backend=redis_url)

celery_app.conf.beat_schedule = {
    "monthly-goal-snapshots": {
        "task": "celery_worker.snapshot_month_rollover",
        "schedule": crontab(minute=5, hour=0, day_of_month=1),
    },
}

@celery_app.task
def snapshot_month_rollover(month: Optional[str] = None, repository: Optional[Repository] = None):
    """
    Writes a goal snapshot for every active team and member that has none
    for `month` yet (the current month by default). Existing rows are left
    alone so edits made earlier in the month keep their values.
    """
    month = month or month_key(date.today())
    repository = repository or Repository()
    try:
        records = repository.load_all()
        team_months = {(e.team_id, e.month) for e in records["team_goals_history"]}
        member_months = {(e.member_id, e.month) for e in records["member_goals_history"]}

        written = 0
        for team in records["teams"]:
            if team.is_active and (team.id, month) not in team_months:
                repository.upsert_team_goals_snapshot(build_team_goals_snapshot(team, month))
                written += 1
        for member in records["members"]:
            if member.is_active and (member.id, month) not in member_months:
                repository.upsert_member_goals_snapshot(build_member_goals_snapshot(member, month))
                written += 1
    except SQLAlchemyError as e:
        logger.error("Monthly goal snapshot for %s failed: %s", month, e)
        return {"status": "Error during snapshot.", "month": month}

    logger.info("Wrote %d goal snapshots for %s", written, month)
    return {"status": "Snapshot complete.", "month": month, "written": written}

@celery_app.task
def ingest_superhex_rows(rows: list, repository: Optional[Repository] = None):
    """Upserts external activity rows keyed by (rep_name, activity_week)."""
    repository = repository or Repository()
    accepted, rejected = 0, 0
    for raw in rows:
        try:
            row = SuperhexRow.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping malformed activity row %r: %s", raw, e)
            rejected += 1
            continue
        try:
            repository.upsert_superhex_row(row)
            accepted += 1
        except SQLAlchemyError as e:
            logger.error("Failed to store activity row for %s: %s", row.rep_name, e)
            rejected += 1
    return {"status": "Ingest complete.", "accepted": accepted, "rejected": rejected}
