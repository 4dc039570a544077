import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from app.database import get_db
from app.api.auth import get_current_user
from app.api.dependencies import get_dispatcher
from app.crud import reminder as crud_reminder
from app.exceptions import UpstreamQueryError
from app.models.user import User
from app.schemas.notifications import (
    DeliverySummary,
    NotificationPayload,
    NotificationType,
    PushSubscriptionCreate,
    PushSubscriptionDelete,
    PushSubscriptionResponse,
)
from app.services.reminder_dispatcher import ReminderDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])

TEST_PAYLOAD = NotificationPayload(
    title="Test Notification",
    body="This is a test notification from Calorie Tracker!",
    type=NotificationType.GENERAL,
)


def summarize(outcomes) -> DeliverySummary:
    sent = sum(1 for o in outcomes if o.succeeded)
    return DeliverySummary(sent=sent, failed=len(outcomes) - sent, outcomes=outcomes)


@router.get("/subscriptions", response_model=List[PushSubscriptionResponse])
def list_subscriptions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List the push subscriptions registered by the current user.
    """
    return crud_reminder.get_push_subscriptions(db, current_user.id)


@router.post("/subscribe", response_model=PushSubscriptionResponse, status_code=status.HTTP_201_CREATED)
def subscribe(
    subscription: PushSubscriptionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Save a browser push subscription for the current user.
    """
    row = crud_reminder.add_push_subscription(db, current_user.id, subscription)
    logger.info(f"Saved push subscription {row.id} for user {current_user.id}")
    return row


@router.delete("/subscribe", status_code=status.HTTP_200_OK)
def unsubscribe(
    subscription: PushSubscriptionDelete,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Remove a push subscription (the browser has unsubscribed).
    """
    if not crud_reminder.remove_push_subscription(db, current_user.id, subscription.endpoint):
        raise HTTPException(status_code=404, detail="Subscription not found")
    return {"message": "Subscription removed successfully"}


@router.post("/test", response_model=DeliverySummary)
def send_test_notification(
    current_user: User = Depends(get_current_user),
    dispatcher: ReminderDispatcher = Depends(get_dispatcher)
):
    """
    Push a test notification to every device of the current user.
    """
    try:
        outcomes = dispatcher.send_to_user(current_user.id, TEST_PAYLOAD)
    except UpstreamQueryError as e:
        logger.error(f"Test notification for user {current_user.id} failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to load push subscriptions")

    if not outcomes:
        raise HTTPException(status_code=404, detail="No push subscriptions registered")
    return summarize(outcomes)
