from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base

class UserReminder(Base):
    """
    One row per user. Each reminder kind is a flag plus its schedule fields,
    stored exactly as the settings screen writes them.
    """
    __tablename__ = "user_reminders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)

    log_meals = Column(Boolean, default=True)
    log_meals_time = Column(String(5), default="19:00")  # "HH:MM", 24h

    drink_water = Column(Boolean, default=False)
    drink_water_frequency = Column(String(20), default="every_2_hours")

    weigh_in = Column(Boolean, default=False)
    weigh_in_day = Column(String(10), default="monday")
    weigh_in_time = Column(String(5), default="08:00")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="reminders")
