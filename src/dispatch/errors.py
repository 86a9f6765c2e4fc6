"""Error taxonomy for push dispatch.

``ErrorKind`` is the normalized reason attached to every failed delivery
outcome. The exception classes cover the few conditions that surface to
callers or cross the gateway boundary as exceptions.
"""

from enum import Enum

from protean.exceptions import ValidationError


class ErrorKind(Enum):
    INVALID_REQUEST = "InvalidRequest"
    NO_TOKEN = "NoToken"
    UNREGISTERED = "Unregistered"
    REJECTED = "Rejected"
    RATE_LIMITED = "RateLimited"
    TIMEOUT = "Timeout"
    UNAVAILABLE = "Unavailable"
    RETRIES_EXHAUSTED = "RetriesExhausted"


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT, ErrorKind.UNAVAILABLE})


class InvalidRequest(ValidationError):
    """A notification request was rejected before any network call."""

    kind = ErrorKind.INVALID_REQUEST


class GatewayUnavailable(Exception):
    """The gateway could not be reached or returned an unusable response.

    Raised by gateway clients for the whole batch; the engine degrades it to
    a retryable failure for every token in that batch.
    """

    kind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(Exception):
    """Dispatch configuration is missing or malformed."""


class DispatchCancelled(Exception):
    """The caller cancelled the request; its result was discarded."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Dispatch {request_id} was cancelled")
        self.request_id = request_id


class GatewayTimeout(GatewayUnavailable):
    """The gateway call did not complete within the per-call timeout."""

    kind = ErrorKind.TIMEOUT
