from enum import Enum
from typing import Optional


class ConfigurationError(RuntimeError):
    """Required push/cron configuration is missing or invalid. Fatal at startup."""


class UpstreamQueryError(RuntimeError):
    """The reminder or endpoint store could not be queried."""


class DeliveryErrorKind(str, Enum):
    ENDPOINT_GONE = "endpoint_gone"
    TRANSIENT_NETWORK_ERROR = "transient_network_error"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UNAUTHORIZED = "unauthorized"


class DeliveryError(Exception):
    """
    A single push to a single endpoint failed.
    Terminal for the current tick: nothing retries it before the next tick.
    """

    def __init__(self, kind: DeliveryErrorKind, detail: str = "", status_code: Optional[int] = None):
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail
        self.status_code = status_code


class PayloadParseError(ValueError):
    """A push message body that is not a usable notification payload."""
