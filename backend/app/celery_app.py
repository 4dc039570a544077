import platform
from celery import Celery
from celery.schedules import crontab
from config import REDIS_URL

# Determine pool type based on OS (macOS fork is unsafe with native extensions)
# Using 'solo' on macOS avoids fork-related SIGSEGV crashes
if platform.system() == "Darwin":
    pool_type = "solo"
else:
    pool_type = "prefork"

# Initialize Celery
celery_app = Celery(
    "calorie_tracker_reminders",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["app.tasks.scheduler"]
)

# Configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    worker_pool=pool_type,
    worker_prefetch_multiplier=1,
    beat_schedule_filename="celery_beat_data/celerybeat-schedule", # Keep root clean
)

# One reminder tick per minute. A tick that waited in the queue past its minute
# is dropped rather than run late; the evaluator would match the wrong minute.
celery_app.conf.beat_schedule = {
    'send-reminders-every-minute': {
        'task': 'app.tasks.scheduler.run_reminder_tick',
        'schedule': crontab(),
        'options': {'expires': 55},
    },
}
