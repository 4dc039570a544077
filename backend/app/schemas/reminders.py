# app/schemas/reminders.py
from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import time as dtime

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

HHMM_REGX = r"^([01]\d|2[0-3]):[0-5]\d$"
FREQUENCY_REGX = r"^(every_hour|every_\d+_hours|\d+)$"


# --- Domain rules (one optional per reminder kind) ---
class MealRule(BaseModel):
    time: dtime

    class Config:
        frozen = True


class HydrationRule(BaseModel):
    frequency: int  # hours; <= 0 never fires

    class Config:
        frozen = True


class WeighInRule(BaseModel):
    day_of_week: Weekday
    time: dtime

    class Config:
        frozen = True


class ReminderRule(BaseModel):
    user_id: int
    meal: Optional[MealRule] = None
    hydration: Optional[HydrationRule] = None
    weigh_in: Optional[WeighInRule] = None

    class Config:
        frozen = True


# --- API Schemas (flattened, as the settings screen sends them) ---
class ReminderSettingsBase(BaseModel):
    log_meals: bool = True
    log_meals_time: str = Field("19:00", pattern=HHMM_REGX, description="24h HH:MM")
    drink_water: bool = False
    drink_water_frequency: str = Field(
        "every_2_hours",
        pattern=FREQUENCY_REGX,
        description="every_hour, every_N_hours or a number of hours"
    )
    weigh_in: bool = False
    weigh_in_day: Weekday = "monday"
    weigh_in_time: str = Field("08:00", pattern=HHMM_REGX, description="24h HH:MM")


class ReminderSettingsUpdate(ReminderSettingsBase):
    class Config:
        json_schema_extra = {
            "example": {
                "log_meals": True,
                "log_meals_time": "08:30",
                "drink_water": True,
                "drink_water_frequency": "every_2_hours",
                "weigh_in": True,
                "weigh_in_day": "monday",
                "weigh_in_time": "08:00",
            }
        }


class ReminderSettingsResponse(ReminderSettingsBase):
    user_id: int

    class Config:
        from_attributes = True
