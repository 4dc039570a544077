from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.notification_config import NotificationConfig
from app.services.push_transport import PushTransport
from app.services.reminder_dispatcher import ReminderDispatcher, build_sql_dispatcher


def get_notification_config(request: Request) -> NotificationConfig:
    return request.app.state.notification_config


def get_push_transport(request: Request) -> PushTransport:
    return request.app.state.push_transport


def get_dispatcher(
    db: Session = Depends(get_db),
    notification_config: NotificationConfig = Depends(get_notification_config),
    transport: PushTransport = Depends(get_push_transport),
) -> ReminderDispatcher:
    return build_sql_dispatcher(db, notification_config, transport)
