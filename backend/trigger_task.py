import sys
import os
sys.path.append(os.getcwd())
from app.tasks.scheduler import run_reminder_tick

# Usage: python trigger_task.py [ISO instant, e.g. 2024-01-01T08:30:00]
instant_iso = sys.argv[1] if len(sys.argv) > 1 else None

print(f"Triggering run_reminder_tick for {instant_iso or 'now'}...")
try:
    task = run_reminder_tick.delay(instant_iso)
    print(f"Task dispatched successfully. Task ID: {task.id}")
    print("Check the celery worker logs to see delivery results.")
except Exception as e:
    print(f"Error dispatching task: {e}")
