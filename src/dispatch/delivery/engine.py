"""Dispatch engine — delivers one notification to every token of its recipients.

A request is resolved to device tokens, split into batches no larger than
the gateway accepts, and sent in rounds. Each round sends every pending
token exactly once; tokens that came back with a retryable failure form the
next round after a backoff delay. Because a round finishes before the next
one starts and its batches are disjoint, a token is never part of two
in-flight gateway calls.

Batches of different requests share one concurrency limit per engine.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable

import structlog

from dispatch.config import DispatchConfig
from dispatch.delivery.backoff import BackoffPolicy, Throttle
from dispatch.delivery.outcome import (
    DeliveryBatch,
    DeliveryOutcome,
    DeliveryStatus,
    DispatchResult,
    FailedDelivery,
)
from dispatch.delivery.request import NotificationRequest, PushPayload
from dispatch.errors import DispatchCancelled, ErrorKind, GatewayUnavailable
from dispatch.gateway.port import GatewayClient, GatewayReply
from dispatch.registry.store import DeviceToken, TokenStore
from dispatch.sink.port import ResultSink

logger = structlog.get_logger(__name__)


class DispatchHandle:
    """Caller's grip on a request submitted with ``submit_nowait``."""

    def __init__(self, request_id: str, task: asyncio.Task, cancelled: asyncio.Event) -> None:
        self.request_id = request_id
        self._task = task
        self._cancelled = cancelled

    def cancel(self) -> None:
        """Stop scheduling new batches and retries.

        Calls already in flight still complete and still invalidate tokens,
        but the result is discarded.
        """
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> DispatchResult:
        result = await self._task
        if result is None:
            raise DispatchCancelled(self.request_id)
        return result


class _DispatchRun:
    """Mutable bookkeeping for one request."""

    def __init__(self, request: NotificationRequest, cancelled: asyncio.Event) -> None:
        self.request = request
        self.cancelled = cancelled
        self.delivered = 0
        self.invalidated: dict[str, DeviceToken] = {}
        self.failed: set[FailedDelivery] = set()

    def result(self, attempts: int) -> DispatchResult:
        return DispatchResult(
            request_id=self.request.request_id,
            delivered=self.delivered,
            invalidated=frozenset(self.invalidated.values()),
            failed=frozenset(self.failed),
            attempts=attempts,
        )


class DispatchEngine:
    def __init__(
        self,
        gateway: GatewayClient,
        token_store: TokenStore,
        result_sink: ResultSink,
        config: DispatchConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.gateway = gateway
        self.token_store = token_store
        self.result_sink = result_sink
        self.config = config or DispatchConfig()
        self.backoff = BackoffPolicy(self.config.base_delay, self.config.max_delay, rng=rng)
        self.throttle = Throttle(self.config.base_delay, self.config.max_delay)
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(self.config.max_concurrency)

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    async def submit(self, request: NotificationRequest) -> DispatchResult:
        """Deliver ``request`` and return its aggregate result.

        Raises InvalidRequest before any lookup or network call if the
        request is malformed.
        """
        request.validate()
        return await self._dispatch(request, asyncio.Event())

    def submit_nowait(self, request: NotificationRequest) -> DispatchHandle:
        """Start delivering ``request`` in the background."""
        request.validate()
        cancelled = asyncio.Event()
        task = asyncio.create_task(self._dispatch(request, cancelled))
        return DispatchHandle(request.request_id, task, cancelled)

    # -------------------------------------------------------------------
    # Dispatch loop
    # -------------------------------------------------------------------
    async def _dispatch(self, request: NotificationRequest, cancelled: asyncio.Event) -> DispatchResult | None:
        with structlog.contextvars.bound_contextvars(request_id=request.request_id):
            run = _DispatchRun(request, cancelled)
            payload = request.payload
            pending = self._resolve(run)

            logger.info(
                "Dispatching notification",
                recipients=len(request.recipient_ids),
                tokens=len(pending),
            )

            attempt = 0
            while pending and attempt < self.config.max_attempts and not cancelled.is_set():
                attempt += 1
                delay = self._round_delay(attempt)
                if delay > 0:
                    logger.debug("Backing off before round", attempt=attempt, delay=round(delay, 3))
                    await self._pause(delay, cancelled)
                    if cancelled.is_set():
                        break

                batches = self._partition(request.request_id, attempt, pending)
                replies = await asyncio.gather(*(self._send(batch, payload, cancelled) for batch in batches))

                final = attempt == self.config.max_attempts
                pending = []
                for batch, batch_replies in zip(batches, replies, strict=True):
                    if batch_replies is None:
                        continue
                    pending.extend(self._apply(run, batch, batch_replies, final))

            if cancelled.is_set():
                logger.info("Dispatch cancelled, result discarded", attempts=attempt, abandoned=len(pending))
                return None

            result = run.result(attempts=attempt)
            logger.info(
                "Dispatch finished",
                delivered=result.delivered,
                invalidated=len(result.invalidated),
                failed=len(result.failed),
                attempts=attempt,
            )
            return result

    def _round_delay(self, attempt: int) -> float:
        """Throttle penalty plus backoff, never more than ``max_delay`` in total."""
        delay = self.throttle.penalty
        if attempt > 1:
            delay += self.backoff.delay(attempt - 1)
        return min(delay, self.config.max_delay)

    async def _pause(self, delay: float, cancelled: asyncio.Event) -> None:
        """Sleep for ``delay`` unless the run is cancelled first."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        watcher = asyncio.ensure_future(cancelled.wait())
        _, pending = await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def _resolve(self, run: _DispatchRun) -> list[DeviceToken]:
        """Look up tokens for every recipient; a token shared by recipients is sent once."""
        tokens: dict[str, DeviceToken] = {}

        for recipient_id in run.request.recipient_ids:
            found = self.token_store.lookup(recipient_id)
            if not found:
                run.failed.add(FailedDelivery(recipient_id=recipient_id, token=None, reason=ErrorKind.NO_TOKEN))
                self._record(
                    run,
                    DeliveryOutcome(
                        request_id=run.request.request_id,
                        recipient_id=recipient_id,
                        token=None,
                        status=DeliveryStatus.PERMANENT_FAILURE,
                        attempt=0,
                        reason=ErrorKind.NO_TOKEN,
                    ),
                )
                continue
            for token in found:
                tokens.setdefault(token.token, token)

        return list(tokens.values())

    def _partition(self, request_id: str, attempt: int, tokens: list[DeviceToken]) -> list[DeliveryBatch]:
        size = self.config.max_batch_size
        return [
            DeliveryBatch(request_id=request_id, attempt=attempt, tokens=tuple(tokens[i : i + size]))
            for i in range(0, len(tokens), size)
        ]

    async def _send(
        self,
        batch: DeliveryBatch,
        payload: PushPayload,
        cancelled: asyncio.Event,
    ) -> list[GatewayReply] | None:
        """One gateway call; every failure mode comes back as per-token replies.

        Returns None without calling the gateway if the run was cancelled
        while the batch waited for a concurrency slot.
        """
        tokens = batch.token_values

        async with self._semaphore:
            if cancelled.is_set():
                logger.debug("Batch skipped after cancel", attempt=batch.attempt, tokens=len(tokens))
                return None
            try:
                replies = await asyncio.wait_for(
                    self.gateway.send_batch(batch, payload),
                    timeout=self.config.call_timeout,
                )
            except TimeoutError:
                logger.warning("Gateway call timed out", attempt=batch.attempt, tokens=len(tokens))
                replies = [GatewayReply.retryable(t, ErrorKind.TIMEOUT, detail="Call timed out") for t in tokens]
            except GatewayUnavailable as exc:
                logger.warning("Gateway unavailable", attempt=batch.attempt, tokens=len(tokens), error=str(exc))
                replies = [GatewayReply.retryable(t, exc.kind, detail=str(exc)) for t in tokens]
            except Exception as exc:
                logger.exception("Gateway call failed", attempt=batch.attempt, tokens=len(tokens))
                replies = [GatewayReply.retryable(t, ErrorKind.UNAVAILABLE, detail=str(exc)) for t in tokens]

        by_token = {reply.token: reply for reply in replies}
        replies = [
            by_token.get(t) or GatewayReply.retryable(t, ErrorKind.UNAVAILABLE, detail="Missing from gateway reply")
            for t in tokens
        ]

        throttled = [r for r in replies if r.rate_limited]
        if throttled:
            hint = max((r.retry_after or 0.0 for r in throttled), default=0.0)
            penalty = self.throttle.signal(hint or None)
            logger.warning("Gateway is rate limiting", tokens=len(throttled), penalty=round(penalty, 3))
        else:
            self.throttle.relax()

        return replies

    def _apply(
        self,
        run: _DispatchRun,
        batch: DeliveryBatch,
        replies: list[GatewayReply],
        final: bool,
    ) -> list[DeviceToken]:
        """Classify replies of one batch; return the tokens to retry."""
        retry = []

        for token, reply in zip(batch.tokens, replies, strict=True):
            status, reason, detail = reply.status, reply.reason, reply.detail

            if status == DeliveryStatus.DELIVERED:
                run.delivered += 1
            elif status == DeliveryStatus.PERMANENT_FAILURE:
                if reason == ErrorKind.UNREGISTERED:
                    self._invalidate(run, token, detail)
                else:
                    run.failed.add(FailedDelivery(token.recipient_id, token, reason, detail))
            elif final:
                status, reason = DeliveryStatus.PERMANENT_FAILURE, ErrorKind.RETRIES_EXHAUSTED
                detail = f"Last failure: {reply.reason.value}"
                run.failed.add(FailedDelivery(token.recipient_id, token, reason, detail))
            else:
                retry.append(token)

            self._record(
                run,
                DeliveryOutcome(
                    request_id=batch.request_id,
                    recipient_id=token.recipient_id,
                    token=token,
                    status=status,
                    attempt=batch.attempt,
                    reason=reason,
                    detail=detail,
                    message_id=reply.message_id,
                    canonical_token=reply.canonical_token,
                ),
            )

        return retry

    def _invalidate(self, run: _DispatchRun, token: DeviceToken, detail: str | None) -> None:
        if token.token in run.invalidated:
            return
        run.invalidated[token.token] = token

        try:
            self.token_store.invalidate(token, reason=detail or ErrorKind.UNREGISTERED.value)
        except Exception:
            # The token is still listed in the result so the caller can reconcile
            logger.exception("Token invalidation failed", recipient_id=token.recipient_id)

    def _record(self, run: _DispatchRun, outcome: DeliveryOutcome) -> None:
        if run.cancelled.is_set():
            return
        try:
            self.result_sink.record(outcome)
        except Exception:
            logger.exception("Result sink rejected outcome", status=outcome.status.value)
