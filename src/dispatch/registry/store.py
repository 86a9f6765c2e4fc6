"""Token store port and its repository-backed implementation.

The dispatch engine only sees ``TokenStore``: it looks tokens up per
recipient and reports tokens the provider rejected for good. Invalidation
must be idempotent because several dispatch workers may report the same
token.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from protean.utils.globals import current_domain

from dispatch.domain import logger
from dispatch.registry.registration import DeviceRegistration


@dataclass(frozen=True)
class DeviceToken:
    """Read-only view of a registered device token."""

    recipient_id: str
    token: str
    registered_at: datetime | None = None


class InvalidationResult(Enum):
    INVALIDATED = "Invalidated"
    ALREADY_INVALID = "AlreadyInvalid"


class TokenStore(ABC):
    """Abstract interface for device token storage."""

    @abstractmethod
    def lookup(self, recipient_id: str) -> list[DeviceToken]:
        """Return the active tokens registered for a recipient."""
        ...

    @abstractmethod
    def invalidate(self, token: DeviceToken, reason: str = "Unregistered") -> InvalidationResult:
        """Mark a token unusable. Invalidating twice is a no-op."""
        ...

    @abstractmethod
    def register(self, recipient_id: str, token: str) -> DeviceToken:
        """Record a token for a recipient, reactivating it if needed."""
        ...


def _to_device_token(registration: DeviceRegistration) -> DeviceToken:
    return DeviceToken(
        recipient_id=str(registration.recipient_id),
        token=registration.token,
        registered_at=registration.registered_at,
    )


class RepositoryTokenStore(TokenStore):
    """Token store backed by the DeviceRegistration repository.

    Must be used inside an active domain context.
    """

    @staticmethod
    def _repo():
        return current_domain.repository_for(DeviceRegistration)

    def lookup(self, recipient_id: str) -> list[DeviceToken]:
        registrations = self._repo().find_active_for_recipient(str(recipient_id))
        return [_to_device_token(r) for r in registrations]

    def invalidate(self, token: DeviceToken, reason: str = "Unregistered") -> InvalidationResult:
        repo = self._repo()
        registration = repo.find_by_token(token.token)

        if registration is None or not registration.invalidate(reason):
            logger.debug("Token already invalid", token=token.token[:12])
            return InvalidationResult.ALREADY_INVALID

        repo.add(registration)
        logger.info(
            "Device token invalidated",
            recipient_id=str(registration.recipient_id),
            token=token.token[:12],
            reason=reason,
        )
        return InvalidationResult.INVALIDATED

    def register(self, recipient_id: str, token: str) -> DeviceToken:
        repo = self._repo()
        registration = repo.find_by_token(token)

        if registration is None:
            registration = DeviceRegistration.register(recipient_id=recipient_id, token=token)
            repo.add(registration)
        elif not registration.is_active or str(registration.recipient_id) != str(recipient_id):
            registration.reactivate(recipient_id)
            repo.add(registration)

        return _to_device_token(registration)
