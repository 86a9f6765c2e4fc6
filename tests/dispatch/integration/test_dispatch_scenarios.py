"""End-to-end dispatch scenarios over the real token store and delivery log."""

import pytest
from protean import current_domain

from dispatch.config import DispatchConfig
from dispatch.delivery.engine import DispatchEngine
from dispatch.delivery.outcome import DeliveryStatus
from dispatch.delivery.request import NotificationRequest
from dispatch.errors import ErrorKind
from dispatch.gateway.fake_adapter import FakeGateway
from dispatch.projections.delivery_log import DeliveryLog, DeliveryLogSink
from dispatch.registry.store import RepositoryTokenStore
from dispatch.sink.buffered import BufferedResultSink
from dispatch.sink.fanout import FanOutResultSink
from dispatch.sink.memory import MemoryResultSink


class TestMixedRecipients:
    """Three recipients: two tokens (one dead), no tokens, one good token."""

    @pytest.mark.asyncio
    async def test_result_reports_delivered_invalidated_and_missing(self, engine, store, gateway, sink):
        store.register("recipient-a", "token-1")
        store.register("recipient-a", "token-2")
        store.register("recipient-b", "token-3")
        gateway.script("token-2", ErrorKind.UNREGISTERED)

        result = await engine.submit(
            NotificationRequest(
                recipient_ids=("recipient-a", "recipient-c", "recipient-b"),
                title="New message",
                body="You have one unread message",
            )
        )

        assert result.delivered == 2
        assert {t.token for t in result.invalidated} == {"token-2"}
        assert {(f.recipient_id, f.token, f.reason) for f in result.failed} == {
            ("recipient-c", None, ErrorKind.NO_TOKEN)
        }
        assert sorted(gateway.sent_tokens) == ["token-1", "token-2", "token-3"]
        assert store.lookup("recipient-a")[0].token == "token-1"
        assert len(store.lookup("recipient-a")) == 1


class TestRateLimitedThenDelivered:
    @pytest.mark.asyncio
    async def test_token_recovers_on_third_attempt(self, engine, store, gateway, sink, sleeper):
        store.register("alice", "tok-busy")
        gateway.script("tok-busy", ErrorKind.RATE_LIMITED, ErrorKind.RATE_LIMITED, None)

        result = await engine.submit(NotificationRequest(recipient_ids=("alice",), title="Hi", body="Ping"))

        assert result.delivered == 1
        assert result.failed == frozenset()
        assert result.attempts == 3

        outcomes = sink.for_token("tok-busy")
        assert [(o.status, o.reason) for o in outcomes] == [
            (DeliveryStatus.RETRYABLE_FAILURE, ErrorKind.RATE_LIMITED),
            (DeliveryStatus.RETRYABLE_FAILURE, ErrorKind.RATE_LIMITED),
            (DeliveryStatus.DELIVERED, None),
        ]
        assert len(sleeper.delays) == 2
        assert sleeper.delays[0] < sleeper.delays[1]


class TestBufferedAuditTrail:
    @pytest.mark.asyncio
    async def test_outcomes_land_in_delivery_log(self, sleeper):
        gateway = FakeGateway()
        store = RepositoryTokenStore()
        memory = MemoryResultSink()
        sink = BufferedResultSink(FanOutResultSink(memory, DeliveryLogSink()))
        engine = DispatchEngine(gateway, store, sink, DispatchConfig(), sleep=sleeper)
        store.register("alice", "tok-log-1")
        gateway.script("tok-log-1", ErrorKind.TIMEOUT, None)

        result = await engine.submit(NotificationRequest(recipient_ids=("alice", "nobody"), title="Hi", body="Ping"))
        await sink.aclose()

        repo = current_domain.repository_for(DeliveryLog)
        delivered = repo.get(f"{result.request_id}:tok-log-1")
        missing = repo.get(f"{result.request_id}:nobody")
        assert delivered.status == DeliveryStatus.DELIVERED.value
        assert delivered.attempts == 2
        assert missing.reason == ErrorKind.NO_TOKEN.value
        assert len(memory.outcomes) == 3
