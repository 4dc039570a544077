"""
Time-match evaluator: decides which reminder (if any) is due for a user at a given minute.

Pure functions only. The tick calls `evaluate` once per user per minute; calling it
twice for the same minute gives the same answer, so de-duplicating ticks is the
scheduler's job.
"""
from datetime import datetime, tzinfo
from typing import NamedTuple, Optional

import pytz

from app.schemas.notifications import NotificationPayload, NotificationType
from app.schemas.reminders import ReminderRule, WEEKDAYS

MEAL_PAYLOAD = NotificationPayload(
    title="Time to log your meal!",
    body="Don't forget to log your meal for today.",
    type=NotificationType.MEAL_REMINDER,
)
WATER_PAYLOAD = NotificationPayload(
    title="Stay Hydrated!",
    body="Time to drink some water.",
    type=NotificationType.WATER_REMINDER,
)
WEIGH_IN_PAYLOAD = NotificationPayload(
    title="Weekly Weigh-In Reminder!",
    body="Time to track your progress.",
    type=NotificationType.WEIGH_IN_REMINDER,
)


class LocalMoment(NamedTuple):
    hour: int
    minute: int
    weekday: str  # lowercase English name, e.g. "monday"


def to_local_moment(instant: datetime, tz: tzinfo = pytz.utc) -> LocalMoment:
    """
    Decompose an instant into the fields reminders are matched on.
    Aware instants are converted to `tz`; naive ones are taken as already local.
    """
    local = instant.astimezone(tz) if instant.tzinfo is not None else instant
    # weekday() instead of strftime("%A"): independent of the process locale
    return LocalMoment(hour=local.hour, minute=local.minute, weekday=WEEKDAYS[local.weekday()])


def _meal_due(rule: ReminderRule, now: LocalMoment) -> bool:
    meal = rule.meal
    return meal is not None and now.hour == meal.time.hour and now.minute == meal.time.minute


def _hydration_due(rule: ReminderRule, now: LocalMoment) -> bool:
    hydration = rule.hydration
    if hydration is None or hydration.frequency <= 0:
        return False
    return now.minute == 0 and now.hour % hydration.frequency == 0


def _weigh_in_due(rule: ReminderRule, now: LocalMoment) -> bool:
    weigh_in = rule.weigh_in
    return (
        weigh_in is not None
        and now.weekday == weigh_in.day_of_week
        and now.hour == weigh_in.time.hour
        and now.minute == weigh_in.time.minute
    )


# Checked in this order; the first match is the only notification for the tick.
_CHECKS = (
    (_meal_due, MEAL_PAYLOAD),
    (_hydration_due, WATER_PAYLOAD),
    (_weigh_in_due, WEIGH_IN_PAYLOAD),
)


def evaluate(rule: ReminderRule, instant: datetime, tz: tzinfo = pytz.utc) -> Optional[NotificationPayload]:
    now = to_local_moment(instant, tz)
    for is_due, payload in _CHECKS:
        if is_due(rule, now):
            return payload
    return None
