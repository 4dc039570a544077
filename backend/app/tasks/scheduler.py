from app.celery_app import celery_app
from sqlalchemy.orm import Session
from app.database import SessionLocal
from app.exceptions import UpstreamQueryError
from app.services.notification_config import NotificationConfig
from app.services.reminder_dispatcher import build_sql_dispatcher
from datetime import datetime
from typing import Optional
import pytz
import logging

logger = logging.getLogger(__name__)

_notification_config: Optional[NotificationConfig] = None


def get_notification_config() -> NotificationConfig:
    """Built on first use in each worker process, then reused."""
    global _notification_config
    if _notification_config is None:
        _notification_config = NotificationConfig.from_env()
    return _notification_config


def parse_instant(instant_iso: Optional[str]) -> datetime:
    """
    ISO instant from the caller (backfill/testing), or now.
    Naive values stay naive and are read as reminder-local time, like the HTTP `at=` parameter.
    """
    if not instant_iso:
        return datetime.now(pytz.utc)
    return datetime.fromisoformat(instant_iso)


# --- BEAT TASK ---
@celery_app.task
def run_reminder_tick(instant_iso: Optional[str] = None):
    """
    Beat task: runs every minute.
    Evaluates every user's reminders for this minute and pushes the due ones.
    No retry: a failed tick is followed by the next minute's tick.
    """
    instant = parse_instant(instant_iso)
    db: Session = SessionLocal()
    try:
        dispatcher = build_sql_dispatcher(db, get_notification_config())
        outcomes = dispatcher.run_tick(instant)
        sent = sum(1 for o in outcomes if o.succeeded)
        return {"instant": instant.isoformat(), "sent": sent, "failed": len(outcomes) - sent}
    except UpstreamQueryError as e:
        logger.error(f"Reminder tick {instant.isoformat()} aborted: {e}")
        raise
    finally:
        db.close()
