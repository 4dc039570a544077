import json
import unittest
from unittest.mock import MagicMock, patch

import requests
from pywebpush import WebPushException

from app.exceptions import DeliveryError, DeliveryErrorKind
from app.schemas.notifications import NotificationPayload, NotificationType, PushEndpoint
from app.services.notification_config import NotificationConfig
from app.services.push_transport import PushTransport, classify_status


def push_failure(status_code):
    response = MagicMock()
    response.status_code = status_code
    return WebPushException(f"Push failed: {status_code}", response=response)


class TestPushTransport(unittest.TestCase):

    def setUp(self):
        self.config = NotificationConfig(
            vapid_public_key="BPublicKey",
            vapid_private_key="private-key",
            vapid_contact="ops@example.com",
            push_timeout_seconds=10.0,
            push_ttl_seconds=600,
        )
        self.transport = PushTransport(self.config)
        self.endpoint = PushEndpoint(
            id=7,
            user_id=1,
            endpoint="https://push.example.com/sub/abc",
            keys={"p256dh": "p256", "auth": "secret"},
        )
        self.payload = NotificationPayload(
            title="Stay Hydrated!",
            body="Time to drink some water.",
            type=NotificationType.WATER_REMINDER,
        )

    @patch("app.services.push_transport.webpush")
    def test_send_signs_and_posts_payload(self, mock_webpush):
        self.transport.send(self.endpoint, self.payload)

        kwargs = mock_webpush.call_args.kwargs
        self.assertEqual(kwargs["subscription_info"], {
            "endpoint": "https://push.example.com/sub/abc",
            "keys": {"p256dh": "p256", "auth": "secret"},
        })
        self.assertEqual(json.loads(kwargs["data"]), {
            "title": "Stay Hydrated!",
            "body": "Time to drink some water.",
            "type": "water_reminder",
        })
        self.assertEqual(kwargs["vapid_private_key"], "private-key")
        self.assertEqual(kwargs["vapid_claims"], {"sub": "mailto:ops@example.com"})
        self.assertEqual(kwargs["timeout"], 10.0)
        self.assertEqual(kwargs["ttl"], 600)

    @patch("app.services.push_transport.webpush")
    def test_each_call_gets_fresh_claims(self, mock_webpush):
        self.transport.send(self.endpoint, self.payload)
        # pywebpush writes aud/exp into the claims it receives
        mock_webpush.call_args.kwargs["vapid_claims"]["aud"] = "https://push.example.com"

        self.transport.send(self.endpoint, self.payload)
        self.assertEqual(mock_webpush.call_args.kwargs["vapid_claims"], {"sub": "mailto:ops@example.com"})

    @patch("app.services.push_transport.webpush")
    def test_status_codes_map_to_error_kinds(self, mock_webpush):
        cases = {
            404: DeliveryErrorKind.ENDPOINT_GONE,
            410: DeliveryErrorKind.ENDPOINT_GONE,
            413: DeliveryErrorKind.PAYLOAD_TOO_LARGE,
            401: DeliveryErrorKind.UNAUTHORIZED,
            403: DeliveryErrorKind.UNAUTHORIZED,
            429: DeliveryErrorKind.TRANSIENT_NETWORK_ERROR,
            500: DeliveryErrorKind.TRANSIENT_NETWORK_ERROR,
            503: DeliveryErrorKind.TRANSIENT_NETWORK_ERROR,
        }
        for status_code, kind in cases.items():
            mock_webpush.side_effect = push_failure(status_code)
            with self.assertRaises(DeliveryError) as ctx:
                self.transport.send(self.endpoint, self.payload)
            self.assertEqual(ctx.exception.kind, kind, f"status {status_code}")
            self.assertEqual(ctx.exception.status_code, status_code)

    @patch("app.services.push_transport.webpush")
    def test_push_failure_without_response_is_transient(self, mock_webpush):
        mock_webpush.side_effect = WebPushException("Missing response")
        with self.assertRaises(DeliveryError) as ctx:
            self.transport.send(self.endpoint, self.payload)
        self.assertEqual(ctx.exception.kind, DeliveryErrorKind.TRANSIENT_NETWORK_ERROR)
        self.assertIsNone(ctx.exception.status_code)

    @patch("app.services.push_transport.webpush")
    def test_timeout_is_transient(self, mock_webpush):
        mock_webpush.side_effect = requests.exceptions.Timeout("read timed out")
        with self.assertRaises(DeliveryError) as ctx:
            self.transport.send(self.endpoint, self.payload)
        self.assertEqual(ctx.exception.kind, DeliveryErrorKind.TRANSIENT_NETWORK_ERROR)

    @patch("app.services.push_transport.webpush")
    def test_connection_error_is_transient(self, mock_webpush):
        mock_webpush.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(DeliveryError) as ctx:
            self.transport.send(self.endpoint, self.payload)
        self.assertEqual(ctx.exception.kind, DeliveryErrorKind.TRANSIENT_NETWORK_ERROR)

    def test_classify_status_without_status(self):
        self.assertEqual(classify_status(None), DeliveryErrorKind.TRANSIENT_NETWORK_ERROR)


if __name__ == '__main__':
    unittest.main()
