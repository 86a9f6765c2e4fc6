"""Repository for the DeviceRegistration aggregate."""

from protean.exceptions import ObjectNotFoundError

from dispatch.domain import dispatch
from dispatch.registry.registration import DeviceRegistration, RegistrationStatus


@dispatch.repository(part_of=DeviceRegistration)
class DeviceRegistrationRepository:
    def find_active_for_recipient(self, recipient_id: str) -> list[DeviceRegistration]:
        """Active registrations of a recipient, oldest first."""
        registrations = (
            self._dao.query.filter(
                recipient_id=recipient_id,
                status=RegistrationStatus.ACTIVE.value,
            )
            .all()
            .items
        )
        return sorted(registrations, key=lambda r: r.registered_at)

    def find_by_token(self, token: str) -> DeviceRegistration | None:
        try:
            return self.get(token)
        except ObjectNotFoundError:
            return None
