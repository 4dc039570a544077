"""
Send a notification to one subscription exported from the browser.

Usage: python scripts/send_test_notification.py subscription.json [type]
"""
import json
import os
import sys

sys.path.append(os.getcwd())

from app.exceptions import ConfigurationError, DeliveryError
from app.schemas.notifications import NotificationPayload, NotificationType, PushEndpoint
from app.services.notification_config import NotificationConfig
from app.services.push_transport import PushTransport


def main():
    if len(sys.argv) < 2 or not os.path.exists(sys.argv[1]):
        print("subscription.json file not found!")
        print("Export your subscription from the browser after enabling notifications.")
        sys.exit(1)

    with open(sys.argv[1]) as f:
        subscription = json.load(f)

    notification_type = NotificationType(sys.argv[2]) if len(sys.argv) > 2 else NotificationType.GENERAL

    try:
        transport = PushTransport(NotificationConfig.from_env())
    except ConfigurationError as e:
        print(f"VAPID keys not found in environment variables: {e}")
        sys.exit(1)

    endpoint = PushEndpoint(user_id=0, endpoint=subscription["endpoint"], keys=subscription["keys"])
    payload = NotificationPayload(
        title="Test Notification",
        body="This is a test notification from the command line!",
        type=notification_type,
    )
    try:
        transport.send(endpoint, payload)
        print("Notification sent successfully!")
    except DeliveryError as e:
        print(f"Error sending notification ({e.kind.value}): {e.detail}")
        sys.exit(2)


if __name__ == "__main__":
    main()
