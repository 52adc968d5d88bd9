# pilot-tracker/alert_client.py
import logging
import os

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

ALERT_WEBHOOK_URL_DUCK = os.getenv("ALERT_WEBHOOK_URL_DUCK")

def trigger_duck_alert(member, team=None):
    """Posts a 'duck earned' celebration to the configured webhook."""
    if not ALERT_WEBHOOK_URL_DUCK:
        logger.info("ALERT_WEBHOOK_URL_DUCK is not set. Skipping duck alert for %s.", member.name)
        return

    try:
        payload = {
            "rep_name": member.name,
            "team_name": team.name if team else None,
            "ducks_earned": member.ducks_earned,
            "total_wins": len(member.wins),
        }
        requests.post(ALERT_WEBHOOK_URL_DUCK, json=payload, timeout=5)
        logger.info("Triggered duck alert for %s (%d ducks).", member.name, member.ducks_earned)
    except requests.exceptions.RequestException as e:
        logger.warning("Failed to trigger duck alert webhook: %s", e)
