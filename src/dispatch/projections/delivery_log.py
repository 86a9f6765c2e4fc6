"""DeliveryLog — latest delivery state per request and token, for audit."""

from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from dispatch.delivery.outcome import DeliveryOutcome
from dispatch.domain import dispatch
from dispatch.sink.port import ResultSink


@dispatch.projection
class DeliveryLog:
    entry_key: String(identifier=True, required=True, max_length=4200)  # "request_id:token" or "request_id:recipient"
    request_id: String(required=True, max_length=64)
    recipient_id: Identifier(required=True)
    token: String(max_length=4096)
    status: String(required=True, max_length=50)
    reason: String(max_length=50)
    detail: String(max_length=500)
    message_id: String(max_length=200)
    attempts: Integer(default=0)
    terminal: Boolean(default=False)
    updated_at: DateTime()


def entry_key(outcome: DeliveryOutcome) -> str:
    suffix = outcome.token.token if outcome.token else outcome.recipient_id
    return f"{outcome.request_id}:{suffix}"


class DeliveryLogSink(ResultSink):
    """Upserts a DeliveryLog row per outcome. Needs an active domain context."""

    def record(self, outcome: DeliveryOutcome) -> None:
        repo = current_domain.repository_for(DeliveryLog)
        key = entry_key(outcome)

        try:
            log = repo.get(key)
        except ObjectNotFoundError:
            log = DeliveryLog(
                entry_key=key,
                request_id=outcome.request_id,
                recipient_id=outcome.recipient_id,
                token=outcome.token.token if outcome.token else None,
                status=outcome.status.value,
            )

        log.status = outcome.status.value
        log.reason = outcome.reason.value if outcome.reason else None
        log.detail = (outcome.detail or "")[:500] or None
        log.message_id = outcome.message_id
        log.attempts = outcome.attempt
        log.terminal = outcome.terminal
        log.updated_at = outcome.recorded_at
        repo.add(log)
