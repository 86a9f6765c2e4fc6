"""Push gateway port (abstract interface).

Defines the contract that all push provider adapters must implement. This
enables swapping between FakeGateway (dev/test) and FcmLegacyGateway
(production) without touching the dispatch engine.

Adapters translate provider responses into ``GatewayReply`` objects once, at
this boundary. They never retry; retry policy belongs to the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from dispatch.delivery.outcome import DeliveryBatch, DeliveryStatus
from dispatch.delivery.request import PushPayload
from dispatch.errors import ErrorKind


@dataclass(frozen=True)
class GatewayReply:
    """Normalized per-token status returned by a gateway."""

    token: str
    status: DeliveryStatus
    reason: ErrorKind | None = None
    detail: str | None = None
    message_id: str | None = None
    canonical_token: str | None = None
    retry_after: float | None = None

    @property
    def rate_limited(self) -> bool:
        return self.reason == ErrorKind.RATE_LIMITED

    @classmethod
    def delivered(cls, token, message_id=None, canonical_token=None):
        return cls(
            token=token,
            status=DeliveryStatus.DELIVERED,
            message_id=message_id,
            canonical_token=canonical_token,
        )

    @classmethod
    def retryable(cls, token, reason, detail=None, retry_after=None):
        return cls(
            token=token,
            status=DeliveryStatus.RETRYABLE_FAILURE,
            reason=reason,
            detail=detail,
            retry_after=retry_after,
        )

    @classmethod
    def permanent(cls, token, reason, detail=None):
        return cls(token=token, status=DeliveryStatus.PERMANENT_FAILURE, reason=reason, detail=detail)


class GatewayClient(ABC):
    """Abstract push gateway interface."""

    @abstractmethod
    async def send_batch(self, batch: DeliveryBatch, payload: PushPayload) -> list[GatewayReply]:
        """Send ``payload`` to every token in ``batch``.

        Returns one reply per token. Raises ``GatewayUnavailable`` (or
        ``GatewayTimeout``) when the provider cannot be reached or answers
        with something unusable.
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
