import logging
from typing import Optional

import requests
from pywebpush import webpush, WebPushException

from app.exceptions import DeliveryError, DeliveryErrorKind
from app.schemas.notifications import NotificationPayload, PushEndpoint
from app.services.notification_config import NotificationConfig

logger = logging.getLogger(__name__)

# Push service status -> delivery error kind. Anything unlisted is transient.
_STATUS_KINDS = {
    401: DeliveryErrorKind.UNAUTHORIZED,
    403: DeliveryErrorKind.UNAUTHORIZED,
    404: DeliveryErrorKind.ENDPOINT_GONE,
    410: DeliveryErrorKind.ENDPOINT_GONE,
    413: DeliveryErrorKind.PAYLOAD_TOO_LARGE,
}


def classify_status(status_code: Optional[int]) -> DeliveryErrorKind:
    if status_code is None:
        return DeliveryErrorKind.TRANSIENT_NETWORK_ERROR
    return _STATUS_KINDS.get(status_code, DeliveryErrorKind.TRANSIENT_NETWORK_ERROR)


class PushTransport:
    """
    Sends one VAPID-signed Web Push message to one endpoint.
    Holds no per-call state, so one instance is shared by all delivery threads.
    """

    def __init__(self, notification_config: NotificationConfig):
        self.config = notification_config

    def send(self, endpoint: PushEndpoint, payload: NotificationPayload) -> None:
        """Raises DeliveryError on failure; returns None when the push service accepted the message."""
        try:
            webpush(
                subscription_info=endpoint.subscription_info,
                data=payload.to_wire(),
                vapid_private_key=self.config.vapid_private_key,
                vapid_claims=self.config.vapid_claims,
                timeout=self.config.push_timeout_seconds,
                ttl=self.config.push_ttl_seconds,
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            kind = classify_status(status_code)
            if kind == DeliveryErrorKind.UNAUTHORIZED:
                logger.error(
                    f"Push service rejected VAPID credentials ({status_code}) for endpoint "
                    f"{endpoint.id}; check VAPID_PUBLIC_KEY/VAPID_PRIVATE_KEY"
                )
            raise DeliveryError(kind, detail=str(e), status_code=status_code) from e
        except requests.exceptions.RequestException as e:
            # Timeouts and connection failures
            raise DeliveryError(DeliveryErrorKind.TRANSIENT_NETWORK_ERROR, detail=str(e)) from e

        logger.debug(f"Push accepted for user {endpoint.user_id} endpoint {endpoint.id}")
