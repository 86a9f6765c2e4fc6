"""Delivery outcomes and the aggregate result of one dispatch.

Per-token lifecycle across attempts:
    PENDING → SENT → DELIVERED
    PENDING → SENT → RETRYABLE_FAILURE → PENDING          (attempts remain)
    PENDING → SENT → RETRYABLE_FAILURE → FAILED_TERMINAL  (attempts exhausted)
    PENDING → SENT → PERMANENT_FAILURE → FAILED_TERMINAL
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from dispatch.errors import ErrorKind
from dispatch.registry.store import DeviceToken


class DeliveryStatus(Enum):
    DELIVERED = "Delivered"
    RETRYABLE_FAILURE = "RetryableFailure"
    PERMANENT_FAILURE = "PermanentFailure"


@dataclass(frozen=True)
class DeliveryBatch:
    """Tokens sent together in one gateway call."""

    request_id: str
    attempt: int
    tokens: tuple[DeviceToken, ...]

    def __len__(self) -> int:
        return len(self.tokens)

    @property
    def token_values(self) -> list[str]:
        return [t.token for t in self.tokens]


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one attempt for one token.

    ``token`` is None only for NoToken outcomes, which are per recipient.
    """

    request_id: str
    recipient_id: str
    token: DeviceToken | None
    status: DeliveryStatus
    attempt: int
    reason: ErrorKind | None = None
    detail: str | None = None
    message_id: str | None = None
    canonical_token: str | None = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)

    @property
    def terminal(self) -> bool:
        return self.status != DeliveryStatus.RETRYABLE_FAILURE


@dataclass(frozen=True)
class FailedDelivery:
    recipient_id: str
    token: DeviceToken | None
    reason: ErrorKind
    detail: str | None = field(default=None, compare=False)


@dataclass(frozen=True)
class DispatchResult:
    request_id: str
    delivered: int = 0
    invalidated: frozenset[DeviceToken] = frozenset()
    failed: frozenset[FailedDelivery] = frozenset()
    attempts: int = 0

    @property
    def failed_recipients(self) -> set[str]:
        return {f.recipient_id for f in self.failed}

    def reasons(self) -> dict[str, ErrorKind]:
        """Map failed token (or recipient id for NoToken) to its reason."""
        return {(f.token.token if f.token else f.recipient_id): f.reason for f in self.failed}
