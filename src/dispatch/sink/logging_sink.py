"""Result sink that writes one structured log line per outcome."""

import structlog

from dispatch.delivery.outcome import DeliveryOutcome, DeliveryStatus
from dispatch.sink.port import ResultSink

logger = structlog.get_logger(__name__)


class LoggingResultSink(ResultSink):
    def record(self, outcome: DeliveryOutcome) -> None:
        fields = {
            "request_id": outcome.request_id,
            "recipient_id": outcome.recipient_id,
            "token": outcome.token.token[:12] if outcome.token else None,
            "status": outcome.status.value,
            "reason": outcome.reason.value if outcome.reason else None,
            "attempt": outcome.attempt,
        }
        if outcome.status == DeliveryStatus.DELIVERED:
            logger.info("Push delivered", message_id=outcome.message_id, **fields)
        elif outcome.terminal:
            logger.warning("Push failed", detail=outcome.detail, **fields)
        else:
            logger.debug("Push will be retried", detail=outcome.detail, **fields)

