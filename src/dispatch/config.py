"""Dispatch configuration.

Built explicitly and injected into the engine and gateway at construction.
``DispatchConfig.from_env()`` is the only place environment variables are read.
"""

import os
from dataclasses import dataclass

from dispatch.errors import ConfigurationError

FCM_LEGACY_ENDPOINT = "https://fcm.googleapis.com/fcm/send"

# FCM legacy accepts at most 1000 registration_ids per request
FCM_MAX_BATCH_SIZE = 1000


@dataclass(frozen=True)
class DispatchConfig:
    server_key: str | None = None
    endpoint: str = FCM_LEGACY_ENDPOINT
    max_batch_size: int = 500
    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 60.0
    call_timeout: float = 10.0
    max_concurrency: int = 8

    def __post_init__(self) -> None:
        errors = []
        if not 1 <= self.max_batch_size <= FCM_MAX_BATCH_SIZE:
            errors.append(f"max_batch_size must be between 1 and {FCM_MAX_BATCH_SIZE}")
        if self.max_attempts < 1:
            errors.append("max_attempts must be at least 1")
        if self.base_delay < 0:
            errors.append("base_delay must not be negative")
        if self.max_delay < self.base_delay:
            errors.append("max_delay must not be smaller than base_delay")
        if self.call_timeout <= 0:
            errors.append("call_timeout must be positive")
        if self.max_concurrency < 1:
            errors.append("max_concurrency must be at least 1")
        if errors:
            raise ConfigurationError("; ".join(errors))

    @classmethod
    def from_env(cls, environ=None) -> "DispatchConfig":
        """Build a config from ``FCM_*`` and ``PUSH_*`` environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()

        return cls(
            server_key=env.get("FCM_SERVER_KEY") or None,
            endpoint=env.get("FCM_ENDPOINT", defaults.endpoint),
            max_batch_size=_parse(env, "PUSH_MAX_BATCH_SIZE", int, defaults.max_batch_size),
            max_attempts=_parse(env, "PUSH_MAX_ATTEMPTS", int, defaults.max_attempts),
            base_delay=_parse(env, "PUSH_BASE_DELAY", float, defaults.base_delay),
            max_delay=_parse(env, "PUSH_MAX_DELAY", float, defaults.max_delay),
            call_timeout=_parse(env, "PUSH_CALL_TIMEOUT", float, defaults.call_timeout),
            max_concurrency=_parse(env, "PUSH_MAX_CONCURRENCY", int, defaults.max_concurrency),
        )


def _parse(env, name, cast, default):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name}={raw!r} is not a valid {cast.__name__}") from exc
