import os
from dotenv import load_dotenv

# Force reload of .env file
load_dotenv(override=False)

SQLALCHEMY_DATABASE_URL = os.getenv("SQLALCHEMY_DATABASE_URL", "sqlite:///./reminders.db")
SECRET_KEY = os.getenv("SECRET_KEY")  # Use a strong random string
ALGORITHM = os.getenv("ALGORITHM", "HS256")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Web Push (VAPID) sender identity
VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY") or os.getenv("NEXT_PUBLIC_VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")
VAPID_CONTACT = os.getenv("VAPID_CONTACT") or os.getenv("VAPID_EMAIL")

# Shared secret for the external cron trigger
CRON_SECRET = os.getenv("CRON_SECRET")

# Reminder times are compared in this zone (no per-user timezone yet)
REMINDER_TIMEZONE = os.getenv("REMINDER_TIMEZONE", "UTC")

PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", "10"))
PUSH_TTL_SECONDS = int(os.getenv("PUSH_TTL_SECONDS", "3600"))
PUSH_MAX_WORKERS = int(os.getenv("PUSH_MAX_WORKERS", "8"))
PUSH_PRUNE_GONE_ENDPOINTS = os.getenv("PUSH_PRUNE_GONE_ENDPOINTS", "false").lower() in ("1", "true", "yes")
