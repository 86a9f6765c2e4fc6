"""Configurable fake push gateway for development and testing.

Every token is delivered unless a script says otherwise. Scripts are
consumed one entry per attempt, so a token can be made to fail twice and
then succeed. The adapter also records every call and checks that no token
is ever part of two overlapping calls.
"""

import asyncio
from collections import defaultdict, deque
from uuid import uuid4

from dispatch.delivery.outcome import DeliveryBatch
from dispatch.delivery.request import PushPayload
from dispatch.errors import RETRYABLE_KINDS, ErrorKind, GatewayUnavailable
from dispatch.gateway.port import GatewayClient, GatewayReply


class FakeGateway(GatewayClient):
    """Push gateway that answers from in-memory scripts."""

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.calls: list[dict] = []
        self.attempts: dict[str, int] = defaultdict(int)
        self.in_flight: set[str] = set()
        self.overlapping_tokens: list[str] = []
        self.max_concurrent_calls = 0
        self._concurrent_calls = 0
        self._scripts: dict[str, deque] = {}
        self._batch_failures: deque = deque()

    def script(self, token: str, *outcomes: ErrorKind | None) -> None:
        """Queue per-attempt outcomes for ``token``; None means delivered."""
        self._scripts[token] = deque(outcomes)

    def always(self, token: str, outcome: ErrorKind) -> None:
        """Answer every attempt for ``token`` with the same failure."""
        self._scripts[token] = _Forever(outcome)

    def fail_next_batch(self, exc: Exception | None = None) -> None:
        """Make the next call raise instead of answering."""
        self._batch_failures.append(exc or GatewayUnavailable("Simulated outage"))

    def reset(self) -> None:
        """Clear scripts and recorded calls (useful between tests)."""
        self.calls.clear()
        self.attempts.clear()
        self.in_flight.clear()
        self.overlapping_tokens.clear()
        self.max_concurrent_calls = 0
        self._scripts.clear()
        self._batch_failures.clear()

    @property
    def sent_tokens(self) -> list[str]:
        return [token for call in self.calls for token in call["tokens"]]

    async def send_batch(self, batch: DeliveryBatch, payload: PushPayload) -> list[GatewayReply]:
        tokens = batch.token_values
        self.calls.append(
            {
                "request_id": batch.request_id,
                "attempt": batch.attempt,
                "tokens": tokens,
                "title": payload.title,
                "body": payload.body,
                "data": payload.data,
                "priority": payload.priority.value,
            }
        )

        self.overlapping_tokens.extend(t for t in tokens if t in self.in_flight)
        self.in_flight.update(tokens)
        self._concurrent_calls += 1
        self.max_concurrent_calls = max(self.max_concurrent_calls, self._concurrent_calls)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if self._batch_failures:
                raise self._batch_failures.popleft()
            return [self._reply(token) for token in tokens]
        finally:
            self._concurrent_calls -= 1
            self.in_flight.difference_update(tokens)

    def _reply(self, token: str) -> GatewayReply:
        self.attempts[token] += 1
        script = self._scripts.get(token)
        outcome = script.popleft() if script else None

        if outcome is None:
            return GatewayReply.delivered(token, message_id=f"fake-{uuid4().hex[:12]}")
        if outcome in RETRYABLE_KINDS:
            return GatewayReply.retryable(token, outcome, detail=f"Simulated {outcome.value}")
        return GatewayReply.permanent(token, outcome, detail=f"Simulated {outcome.value}")


class _Forever:
    """Script that never runs out."""

    def __init__(self, outcome):
        self.outcome = outcome

    def __bool__(self):
        return True

    def popleft(self):
        return self.outcome
