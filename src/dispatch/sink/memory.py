"""In-memory result sink — keeps outcomes for test assertions."""

from dispatch.delivery.outcome import DeliveryOutcome, DeliveryStatus
from dispatch.sink.port import ResultSink


class MemoryResultSink(ResultSink):
    def __init__(self):
        self.outcomes: list[DeliveryOutcome] = []

    def record(self, outcome: DeliveryOutcome) -> None:
        self.outcomes.append(outcome)

    def for_token(self, token: str) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.token is not None and o.token.token == token]

    def with_status(self, status: DeliveryStatus) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def terminal(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if o.terminal]

    def reset(self):
        self.outcomes.clear()
