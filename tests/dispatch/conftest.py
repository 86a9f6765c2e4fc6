import pytest
from protean.integrations.pytest import DomainFixture

from dispatch.config import DispatchConfig
from dispatch.delivery.engine import DispatchEngine
from dispatch.gateway.fake_adapter import FakeGateway
from dispatch.registry.store import RepositoryTokenStore
from dispatch.sink.memory import MemoryResultSink


@pytest.fixture(scope="session")
def dispatch_bed():
    from dispatch.domain import dispatch

    bed = DomainFixture(dispatch)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(dispatch_bed):
    with dispatch_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def config():
    return DispatchConfig(
        max_batch_size=3,
        max_attempts=5,
        base_delay=0.1,
        max_delay=30.0,
        call_timeout=1.0,
        max_concurrency=4,
    )


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def store():
    return RepositoryTokenStore()


@pytest.fixture()
def sink():
    return MemoryResultSink()


@pytest.fixture()
def sleeper():
    return RecordingSleep()


@pytest.fixture()
def engine(gateway, store, sink, config, sleeper):
    return DispatchEngine(gateway, store, sink, config, sleep=sleeper, rng=lambda: 0.5)
