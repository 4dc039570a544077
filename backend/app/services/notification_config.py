import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional

import pytz

import config
from app.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationConfig:
    """
    Everything the reminder tick and the push transport need, built once at
    process start and passed in explicitly.
    """
    vapid_public_key: str
    vapid_private_key: str
    vapid_contact: str
    cron_secret: Optional[str] = None
    timezone_name: str = "UTC"
    push_timeout_seconds: float = 10.0
    push_ttl_seconds: int = 3600
    max_workers: int = 8
    prune_gone_endpoints: bool = False

    def __post_init__(self):
        missing = [
            name for name in ("vapid_public_key", "vapid_private_key", "vapid_contact")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Web Push is not configured, missing: {', '.join(missing)}")

        contact = self.vapid_contact
        if not contact.startswith(("mailto:", "https:")):
            # A bare address is accepted the way the key-generation script prints it
            object.__setattr__(self, "vapid_contact", f"mailto:{contact}")

        try:
            pytz.timezone(self.timezone_name)
        except pytz.UnknownTimeZoneError:
            raise ConfigurationError(f"Unknown REMINDER_TIMEZONE '{self.timezone_name}'")

        if self.push_timeout_seconds <= 0:
            raise ConfigurationError("PUSH_TIMEOUT_SECONDS must be positive")
        if self.max_workers < 1:
            raise ConfigurationError("PUSH_MAX_WORKERS must be at least 1")

    @property
    def timezone(self) -> tzinfo:
        return pytz.timezone(self.timezone_name)

    @property
    def vapid_claims(self) -> dict:
        # pywebpush adds "aud"/"exp" to the dict it is given, so hand out a fresh one
        return {"sub": self.vapid_contact}

    def require_cron_secret(self) -> str:
        if not self.cron_secret:
            raise ConfigurationError("CRON_SECRET is not set; the cron trigger cannot be authenticated")
        return self.cron_secret

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        notification_config = cls(
            vapid_public_key=config.VAPID_PUBLIC_KEY,
            vapid_private_key=config.VAPID_PRIVATE_KEY,
            vapid_contact=config.VAPID_CONTACT,
            cron_secret=config.CRON_SECRET,
            timezone_name=config.REMINDER_TIMEZONE,
            push_timeout_seconds=config.PUSH_TIMEOUT_SECONDS,
            push_ttl_seconds=config.PUSH_TTL_SECONDS,
            max_workers=config.PUSH_MAX_WORKERS,
            prune_gone_endpoints=config.PUSH_PRUNE_GONE_ENDPOINTS,
        )
        logger.info(
            f"Notification config loaded (timezone={notification_config.timezone_name}, "
            f"timeout={notification_config.push_timeout_seconds}s, "
            f"prune_gone={notification_config.prune_gone_endpoints})"
        )
        return notification_config
