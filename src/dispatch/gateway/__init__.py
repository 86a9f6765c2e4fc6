"""Push gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing
- FcmLegacyGateway when a server key is configured
"""

from dispatch.config import DispatchConfig
from dispatch.gateway.fake_adapter import FakeGateway
from dispatch.gateway.port import GatewayClient

_current_gateway: GatewayClient | None = None


def get_gateway(config: DispatchConfig) -> GatewayClient:
    """Return the current push gateway, building one from ``config`` if needed."""
    global _current_gateway
    if _current_gateway is None:
        if config.server_key:
            from dispatch.gateway.fcm_legacy import FcmLegacyGateway

            _current_gateway = FcmLegacyGateway(config)
        else:
            _current_gateway = FakeGateway()
    return _current_gateway


def set_gateway(gateway: GatewayClient) -> None:
    """Override the active gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
