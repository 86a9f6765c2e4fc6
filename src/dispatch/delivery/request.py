"""NotificationRequest — one logical notification addressed to recipients."""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from dispatch.errors import InvalidRequest

# FCM legacy limits, measured in UTF-8 bytes
MAX_TITLE_BYTES = 1024
MAX_BODY_BYTES = 4096
MAX_DATA_BYTES = 4096


class Priority(Enum):
    NORMAL = "normal"
    HIGH = "high"


_PRIORITY_VALUES = {p.value for p in Priority}


@dataclass(frozen=True)
class PushPayload:
    """What the gateway sends to every token of a request."""

    title: str
    body: str
    data: dict = field(default_factory=dict)
    priority: Priority = Priority.NORMAL


@dataclass(frozen=True)
class NotificationRequest:
    """A notification for a set of recipients.

    ``recipient_ids`` keeps caller order with duplicates collapsed.
    """

    recipient_ids: tuple
    title: str
    body: str
    data: dict = field(default_factory=dict)
    priority: Priority = Priority.NORMAL
    request_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self):
        # Values that cannot be coerced are left as given for validate() to report
        if _is_id_collection(self.recipient_ids):
            object.__setattr__(self, "recipient_ids", tuple(dict.fromkeys(str(r) for r in self.recipient_ids)))
        if self.data is None or isinstance(self.data, Mapping):
            object.__setattr__(self, "data", dict(self.data or {}))
        if isinstance(self.priority, str) and self.priority.lower() in _PRIORITY_VALUES:
            object.__setattr__(self, "priority", Priority(self.priority.lower()))

    @property
    def payload(self) -> PushPayload:
        return PushPayload(title=self.title, body=self.body, data=dict(self.data), priority=self.priority)

    def validate(self) -> None:
        """Raise InvalidRequest listing every problem with the request."""
        errors: dict[str, list[str]] = {}

        if not isinstance(self.recipient_ids, tuple):
            errors.setdefault("recipient_ids", []).append("Recipient ids must be a list of ids, not a single value")
        elif not self.recipient_ids:
            errors.setdefault("recipient_ids", []).append("At least one recipient is required")
        elif any(not r.strip() for r in self.recipient_ids):
            errors.setdefault("recipient_ids", []).append("Recipient ids must not be blank")

        _check_text(errors, "title", self.title, MAX_TITLE_BYTES)
        _check_text(errors, "body", self.body, MAX_BODY_BYTES)

        if not isinstance(self.data, dict):
            errors.setdefault("data", []).append("Data must be a mapping of strings")
        elif not all(isinstance(k, str) and isinstance(v, str) for k, v in self.data.items()):
            errors.setdefault("data", []).append("Data keys and values must be strings")
        elif len(json.dumps(self.data, ensure_ascii=False).encode("utf-8")) > MAX_DATA_BYTES:
            errors.setdefault("data", []).append(f"Data payload exceeds {MAX_DATA_BYTES} bytes")

        if not isinstance(self.priority, Priority):
            choices = ", ".join(p.value for p in Priority)
            errors.setdefault("priority", []).append(f"Priority must be one of: {choices}")

        if errors:
            raise InvalidRequest(errors)


def _check_text(errors, name, value, limit):
    if not isinstance(value, str) or not value.strip():
        errors.setdefault(name, []).append(f"{name.capitalize()} must be a non-empty string")
    elif len(value.encode("utf-8")) > limit:
        errors.setdefault(name, []).append(f"{name.capitalize()} exceeds {limit} bytes")


def _is_id_collection(value) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping))
