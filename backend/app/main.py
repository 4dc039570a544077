import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.database import engine, Base
import app.models
from app.api import notifications, reminders
from app.services.notification_config import NotificationConfig
from app.services.push_transport import PushTransport

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# Run Alembic migrations on startup (replaces create_all)
def run_migrations():
    """Run pending Alembic migrations automatically on startup."""
    try:
        from alembic.config import Config
        from alembic import command
        alembic_cfg = Config("alembic.ini")
        command.upgrade(alembic_cfg, "head")
        logger.info("[Alembic] Migrations applied successfully")
    except Exception as e:
        logger.warning(f"[Alembic] Migration failed, falling back to create_all: {e}")

    # Ensure all tables exist
    Base.metadata.create_all(bind=engine)


def create_app(notification_config: NotificationConfig = None, migrate: bool = True) -> FastAPI:
    """
    Build the API. Push configuration is resolved here, once; a missing VAPID key
    pair or cron secret stops the process before it serves anything.

    Run with `uvicorn app.main:create_app --factory`.
    """
    notification_config = notification_config or NotificationConfig.from_env()
    notification_config.require_cron_secret()

    if migrate:
        run_migrations()

    api = FastAPI(title="Calorie Tracker Reminders")
    api.state.notification_config = notification_config
    api.state.push_transport = PushTransport(notification_config)

    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api.include_router(reminders.router)
    api.include_router(notifications.router)

    # Health check endpoint
    @api.get("/health")
    def health_check():
        return {"status": "healthy", "message": "API is running"}

    return api
