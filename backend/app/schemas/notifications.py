# app/schemas/notifications.py
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum

from app.exceptions import DeliveryErrorKind


class NotificationType(str, Enum):
    MEAL_REMINDER = "meal_reminder"
    WATER_REMINDER = "water_reminder"
    WEIGH_IN_REMINDER = "weigh_in_reminder"
    REMINDER_CONFIRMATION = "reminder_confirmation"
    GENERAL = "general"


class NotificationPayload(BaseModel):
    """The push message body, exactly as the client agent parses it."""
    title: str
    body: str
    type: NotificationType = NotificationType.GENERAL

    class Config:
        frozen = True

    def to_wire(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_wire(cls, raw: str) -> "NotificationPayload":
        return cls.model_validate_json(raw)


class PushEndpoint(BaseModel):
    """A registered push target. `keys` is opaque to everything but the transport."""
    id: Optional[int] = None
    user_id: int
    endpoint: str
    keys: Dict[str, str]

    class Config:
        frozen = True

    @property
    def subscription_info(self) -> dict:
        return {"endpoint": self.endpoint, "keys": dict(self.keys)}


class DeliveryOutcome(BaseModel):
    user_id: int
    endpoint_id: Optional[int] = None
    endpoint: str
    succeeded: bool
    error: Optional[DeliveryErrorKind] = None
    detail: Optional[str] = None


# --- API Schemas ---
class PushSubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionCreate(BaseModel):
    endpoint: str = Field(..., pattern=r"^https://")
    keys: PushSubscriptionKeys
    user_agent: Optional[str] = Field(None, max_length=255)

    class Config:
        json_schema_extra = {
            "example": {
                "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
                "keys": {"p256dh": "BNc...", "auth": "tBH..."},
            }
        }


class PushSubscriptionDelete(BaseModel):
    endpoint: str


class PushSubscriptionResponse(BaseModel):
    id: int
    endpoint: str
    created_at: datetime

    class Config:
        from_attributes = True


class DeliverySummary(BaseModel):
    sent: int
    failed: int
    outcomes: List[DeliveryOutcome] = []


class TickResponse(BaseModel):
    success: bool
    instant: datetime
    notified_users: int
    sent: int
    failed: int
