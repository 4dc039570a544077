# app/crud/reminder.py
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.reminder import UserReminder
from app.models.push_subscription import PushSubscription
from app.schemas.notifications import DeliveryOutcome, PushEndpoint, PushSubscriptionCreate
from app.schemas.reminders import (
    HydrationRule,
    MealRule,
    ReminderRule,
    ReminderSettingsUpdate,
    WeighInRule,
    WEEKDAYS,
)
from app.utils.schedule_parsing import parse_frequency_hours, parse_hhmm

logger = logging.getLogger(__name__)


# --- Reminder settings ---
def get_reminder_settings(db: Session, user_id: int) -> Optional[UserReminder]:
    """Get the reminder row for a user"""
    return db.query(UserReminder).filter(UserReminder.user_id == user_id).first()


def upsert_reminder_settings(db: Session, user_id: int, settings: ReminderSettingsUpdate) -> UserReminder:
    """Create or replace a user's reminder settings"""
    row = get_reminder_settings(db, user_id)
    if row is None:
        row = UserReminder(user_id=user_id)
        db.add(row)

    for field, value in settings.model_dump().items():
        setattr(row, field, value)

    db.commit()
    db.refresh(row)
    return row


def row_to_rule(row: UserReminder) -> ReminderRule:
    """
    Turn the flattened settings row into one optional rule per kind.
    A kind is present only if its flag is on and every field it needs parses.
    """
    meal = hydration = weigh_in = None

    if row.log_meals:
        meal_time = parse_hhmm(row.log_meals_time)
        if meal_time is not None:
            meal = MealRule(time=meal_time)
        else:
            logger.warning(f"User {row.user_id}: invalid log_meals_time '{row.log_meals_time}', meal reminder ignored")

    if row.drink_water:
        frequency = parse_frequency_hours(row.drink_water_frequency)
        if frequency is not None:
            hydration = HydrationRule(frequency=frequency)
        else:
            logger.warning(
                f"User {row.user_id}: invalid drink_water_frequency '{row.drink_water_frequency}', "
                "hydration reminder ignored"
            )

    if row.weigh_in:
        day = (row.weigh_in_day or "").strip().lower()
        weigh_in_time = parse_hhmm(row.weigh_in_time)
        if day in WEEKDAYS and weigh_in_time is not None:
            weigh_in = WeighInRule(day_of_week=day, time=weigh_in_time)
        else:
            logger.warning(
                f"User {row.user_id}: invalid weigh-in schedule "
                f"'{row.weigh_in_day} {row.weigh_in_time}', weigh-in reminder ignored"
            )

    return ReminderRule(user_id=row.user_id, meal=meal, hydration=hydration, weigh_in=weigh_in)


# --- Push subscriptions ---
def get_push_subscriptions(db: Session, user_id: int) -> List[PushSubscription]:
    return db.query(PushSubscription).filter(PushSubscription.user_id == user_id).all()


def add_push_subscription(db: Session, user_id: int, subscription: PushSubscriptionCreate) -> PushSubscription:
    """
    Register a subscription. Re-subscribing the same endpoint refreshes its keys
    instead of adding a duplicate row.
    """
    row = db.query(PushSubscription).filter(
        PushSubscription.user_id == user_id,
        PushSubscription.endpoint == subscription.endpoint
    ).first()
    if row is None:
        row = PushSubscription(user_id=user_id, endpoint=subscription.endpoint)
        db.add(row)

    row.p256dh_key = subscription.keys.p256dh
    row.auth_key = subscription.keys.auth
    row.user_agent = subscription.user_agent

    db.commit()
    db.refresh(row)
    return row


def remove_push_subscription(db: Session, user_id: int, endpoint: str) -> bool:
    deleted = db.query(PushSubscription).filter(
        PushSubscription.user_id == user_id,
        PushSubscription.endpoint == endpoint
    ).delete(synchronize_session=False)
    db.commit()
    return deleted > 0


def subscription_to_endpoint(row: PushSubscription) -> PushEndpoint:
    return PushEndpoint(
        id=row.id,
        user_id=row.user_id,
        endpoint=row.endpoint,
        keys={"p256dh": row.p256dh_key, "auth": row.auth_key},
    )


class SqlReminderStore:
    """Reminder rule store and endpoint registry backed by one SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def list_all_reminder_rules(self) -> List[ReminderRule]:
        rows = self.db.query(UserReminder).all()
        return [row_to_rule(row) for row in rows]

    def list_endpoints(self, user_id: int) -> List[PushEndpoint]:
        # Session is shared across the tick; a failed statement aborts it on PostgreSQL
        try:
            rows = get_push_subscriptions(self.db, user_id)
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return [subscription_to_endpoint(row) for row in rows]

    def delete_gone_endpoint(self, outcome: DeliveryOutcome) -> None:
        if outcome.endpoint_id is None:
            return
        try:
            self.db.query(PushSubscription).filter(PushSubscription.id == outcome.endpoint_id).delete(
                synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info(f"Removed expired push subscription {outcome.endpoint_id} for user {outcome.user_id}")
