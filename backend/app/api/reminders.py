import logging
import secrets
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.api.auth import get_current_user
from app.api.dependencies import get_dispatcher, get_notification_config
from app.crud import reminder as crud_reminder
from app.exceptions import UpstreamQueryError
from app.models.user import User
from app.schemas.notifications import NotificationPayload, NotificationType, TickResponse
from app.schemas.reminders import ReminderSettingsResponse, ReminderSettingsUpdate
from app.services.notification_config import NotificationConfig
from app.services.reminder_dispatcher import ReminderDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reminders"])

CONFIRMATION_PAYLOAD = NotificationPayload(
    title="Reminders updated",
    body="We'll remind you at the times you picked.",
    type=NotificationType.REMINDER_CONFIRMATION,
)


@router.get("/reminders", response_model=ReminderSettingsResponse)
def get_reminders(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Get the current user's reminder settings (defaults if never saved).
    """
    row = crud_reminder.get_reminder_settings(db, current_user.id)
    if row is None:
        return ReminderSettingsResponse(user_id=current_user.id)
    return row


@router.put("/reminders", response_model=ReminderSettingsResponse)
def update_reminders(
    settings: ReminderSettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    dispatcher: ReminderDispatcher = Depends(get_dispatcher)
):
    """
    Save reminder settings and confirm them with a push to the user's devices.
    The confirmation is best-effort: saving succeeds even if no device gets it.
    """
    row = crud_reminder.upsert_reminder_settings(db, current_user.id, settings)
    try:
        dispatcher.send_to_user(current_user.id, CONFIRMATION_PAYLOAD)
    except UpstreamQueryError as e:
        logger.error(f"Reminder confirmation for user {current_user.id} not sent: {e}")
    return row


@router.get("/api/cron/reminders", response_model=TickResponse)
def run_reminders_cron(
    secret: Optional[str] = Query(None),
    at: Optional[datetime] = Query(None, description="Evaluate this instant instead of now (backfill/testing)"),
    notification_config: NotificationConfig = Depends(get_notification_config),
    dispatcher: ReminderDispatcher = Depends(get_dispatcher)
):
    """
    Called once a minute by external cron. Evaluates every user's reminders and pushes what is due.
    """
    expected = notification_config.cron_secret
    if not expected:
        logger.error("CRON_SECRET is not configured; refusing cron trigger")
        raise HTTPException(status_code=500, detail="Cron trigger is not configured")
    if not secret or not secrets.compare_digest(secret.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    instant = at or dispatcher.clock()
    try:
        outcomes = dispatcher.run_tick(instant)
    except UpstreamQueryError as e:
        logger.error(f"Error processing reminders: {e}")
        raise HTTPException(status_code=500, detail="Failed to process reminders")

    sent = sum(1 for o in outcomes if o.succeeded)
    return TickResponse(
        success=True,
        instant=instant,
        notified_users=len({o.user_id for o in outcomes}),
        sent=sent,
        failed=len(outcomes) - sent,
    )
