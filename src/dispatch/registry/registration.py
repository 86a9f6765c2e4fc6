"""DeviceRegistration aggregate — one device token owned by one recipient.

State Machine (2 states):
    ACTIVE → INVALIDATED       (provider reported the token unregistered)
    INVALIDATED → ACTIVE       (the client registered the same token again)

Registrations are never deleted; invalidated rows stay for audit and are
simply excluded from lookups.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, String

from dispatch.domain import dispatch
from dispatch.registry.events import DeviceInvalidated, DeviceRegistered


class RegistrationStatus(Enum):
    ACTIVE = "Active"
    INVALIDATED = "Invalidated"


@dispatch.aggregate
class DeviceRegistration:
    """A device token registered for push delivery."""

    token: String(identifier=True, required=True, max_length=4096)
    recipient_id: Identifier(required=True)
    status: String(choices=RegistrationStatus, default=RegistrationStatus.ACTIVE.value)

    registered_at: DateTime()
    invalidated_at: DateTime()
    invalidation_reason: String(max_length=100)

    @classmethod
    def register(cls, recipient_id, token, registered_at=None):
        """Create an ACTIVE registration for ``token``."""
        now = registered_at or datetime.now(UTC)

        registration = cls(
            token=token,
            recipient_id=recipient_id,
            status=RegistrationStatus.ACTIVE.value,
            registered_at=now,
        )
        registration.raise_(
            DeviceRegistered(
                token=token,
                recipient_id=str(recipient_id),
                registered_at=now,
            )
        )
        return registration

    @property
    def is_active(self) -> bool:
        return RegistrationStatus(self.status) == RegistrationStatus.ACTIVE

    def reactivate(self, recipient_id, registered_at=None):
        """Bring an invalidated (or reassigned) token back into service."""
        now = registered_at or datetime.now(UTC)

        self.recipient_id = recipient_id
        self.status = RegistrationStatus.ACTIVE.value
        self.registered_at = now
        self.invalidated_at = None
        self.invalidation_reason = None

        self.raise_(
            DeviceRegistered(
                token=self.token,
                recipient_id=str(recipient_id),
                registered_at=now,
            )
        )

    def invalidate(self, reason, invalidated_at=None) -> bool:
        """Mark the token unusable. Returns False if it already was."""
        if not self.is_active:
            return False

        now = invalidated_at or datetime.now(UTC)
        self.status = RegistrationStatus.INVALIDATED.value
        self.invalidated_at = now
        self.invalidation_reason = reason

        self.raise_(
            DeviceInvalidated(
                token=self.token,
                recipient_id=str(self.recipient_id),
                reason=reason,
                invalidated_at=now,
            )
        )
        return True
