"""Domain events for the DeviceRegistration aggregate."""

from protean.fields import DateTime, Identifier, String

from dispatch.domain import dispatch


@dispatch.event(part_of="DeviceRegistration")
class DeviceRegistered:
    """A device token was registered (or re-registered) for a recipient."""

    __version__ = 1

    token: String(required=True, max_length=4096)
    recipient_id: Identifier(required=True)
    registered_at: DateTime(required=True)


@dispatch.event(part_of="DeviceRegistration")
class DeviceInvalidated:
    """The push provider reported the token as permanently unusable."""

    __version__ = 1

    token: String(required=True, max_length=4096)
    recipient_id: Identifier(required=True)
    reason: String(required=True, max_length=100)
    invalidated_at: DateTime(required=True)
