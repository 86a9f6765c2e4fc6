"""Buffered result sink — decouples outcome recording from the dispatch loop.

``record`` only enqueues. A background task drains the queue into the
downstream sink, so a slow downstream (a database, an HTTP audit service)
never stalls delivery. Downstream writes run in a worker thread with a copy
of the current context, so the active domain context comes along.
"""

import asyncio

import structlog

from dispatch.delivery.outcome import DeliveryOutcome
from dispatch.sink.port import ResultSink

logger = structlog.get_logger(__name__)


class BufferedResultSink(ResultSink):
    def __init__(self, downstream: ResultSink, maxsize: int = 10_000) -> None:
        self.downstream = downstream
        self.dropped = 0
        self._queue: asyncio.Queue[DeliveryOutcome] = asyncio.Queue(maxsize=maxsize)
        self._drainer: asyncio.Task | None = None

    def record(self, outcome: DeliveryOutcome) -> None:
        self._ensure_drainer()
        try:
            self._queue.put_nowait(outcome)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Result buffer full, outcome dropped",
                request_id=outcome.request_id,
                status=outcome.status.value,
                dropped=self.dropped,
            )

    def _ensure_drainer(self) -> None:
        if self._drainer is None or self._drainer.done():
            self._drainer = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            outcome = await self._queue.get()
            try:
                await asyncio.to_thread(self.downstream.record, outcome)
            except Exception:
                logger.exception("Downstream sink failed", request_id=outcome.request_id)
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued outcome reached the downstream sink."""
        if self._drainer is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        await self.flush()
        if self._drainer is not None:
            self._drainer.cancel()
            try:
                await self._drainer
            except asyncio.CancelledError:
                pass
            self._drainer = None
        await self.downstream.aclose()
