"""Firebase Cloud Messaging legacy HTTP adapter.

Posts ``{registration_ids|to, notification, data, priority}`` to the legacy
endpoint with an ``Authorization: key=<server key>`` header, then maps the
per-token ``results`` array onto normalized replies.
"""

import httpx
import structlog

from dispatch.config import DispatchConfig
from dispatch.delivery.outcome import DeliveryBatch
from dispatch.delivery.request import PushPayload
from dispatch.errors import ConfigurationError, ErrorKind, GatewayTimeout, GatewayUnavailable
from dispatch.gateway.port import GatewayClient, GatewayReply

logger = structlog.get_logger(__name__)

RATE_LIMIT_ERRORS = {"DeviceMessageRateExceeded", "TopicsMessageRateExceeded", "MessageRateExceeded"}
TRANSIENT_ERRORS = {"Unavailable", "InternalServerError"}
UNREGISTERED_ERRORS = {"NotRegistered", "InvalidRegistration", "MissingRegistration"}


def classify_error(token: str, error: str, retry_after: float | None = None) -> GatewayReply:
    """Translate one FCM ``results[].error`` code into a reply."""
    if error in RATE_LIMIT_ERRORS:
        return GatewayReply.retryable(token, ErrorKind.RATE_LIMITED, detail=error, retry_after=retry_after)
    if error in TRANSIENT_ERRORS:
        return GatewayReply.retryable(token, ErrorKind.UNAVAILABLE, detail=error, retry_after=retry_after)
    if error in UNREGISTERED_ERRORS:
        return GatewayReply.permanent(token, ErrorKind.UNREGISTERED, detail=error)
    # MismatchSenderId, MessageTooBig, InvalidDataKey, InvalidTtl, InvalidPackageName, ...
    return GatewayReply.permanent(token, ErrorKind.REJECTED, detail=error)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        # HTTP-date form is not worth parsing; the engine backs off anyway
        return None


class FcmLegacyGateway(GatewayClient):
    """Production FCM adapter using the legacy server-key HTTP API."""

    def __init__(self, config: DispatchConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.server_key:
            raise ConfigurationError("FCM_SERVER_KEY is required for the FCM gateway")

        self.endpoint = config.endpoint
        self._headers = {
            "Authorization": f"key={config.server_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.AsyncClient(timeout=config.call_timeout)

    @staticmethod
    def build_body(batch: DeliveryBatch, payload: PushPayload) -> dict:
        body = {
            "notification": {"title": payload.title, "body": payload.body},
            "data": dict(payload.data),
            "priority": payload.priority.value,
        }
        tokens = batch.token_values
        if len(tokens) == 1:
            body["to"] = tokens[0]
        else:
            body["registration_ids"] = tokens
        return body

    async def send_batch(self, batch: DeliveryBatch, payload: PushPayload) -> list[GatewayReply]:
        tokens = batch.token_values

        try:
            response = await self._client.post(
                self.endpoint,
                headers=self._headers,
                json=self.build_body(batch, payload),
            )
        except httpx.TimeoutException as exc:
            raise GatewayTimeout(f"FCM call timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise GatewayUnavailable(f"FCM transport error: {exc}") from exc

        status = response.status_code
        if status == 429:
            retry_after = _retry_after(response)
            return [
                GatewayReply.retryable(t, ErrorKind.RATE_LIMITED, detail="HTTP 429", retry_after=retry_after)
                for t in tokens
            ]
        if status == 400:
            # The request itself is malformed; resending it cannot succeed
            detail = f"HTTP 400: {response.text[:200]}"
            return [GatewayReply.permanent(t, ErrorKind.REJECTED, detail=detail) for t in tokens]
        if status == 401:
            logger.error("FCM rejected the server key", endpoint=self.endpoint)
            raise GatewayUnavailable("FCM authentication failed", status_code=status)
        if status != 200:
            raise GatewayUnavailable(f"FCM returned HTTP {status}", status_code=status)

        return self._parse_results(tokens, response)

    def _parse_results(self, tokens: list[str], response: httpx.Response) -> list[GatewayReply]:
        try:
            results = response.json()["results"]
        except (ValueError, KeyError, TypeError) as exc:
            raise GatewayUnavailable("Malformed FCM response", status_code=response.status_code) from exc

        if not isinstance(results, list) or len(results) != len(tokens):
            raise GatewayUnavailable("FCM results do not match the batch", status_code=response.status_code)

        retry_after = _retry_after(response)
        replies = []
        for token, result in zip(tokens, results, strict=True):
            if not isinstance(result, dict):
                raise GatewayUnavailable("Malformed FCM result entry", status_code=response.status_code)
            if "message_id" in result:
                replies.append(
                    GatewayReply.delivered(
                        token,
                        message_id=str(result["message_id"]),
                        canonical_token=result.get("registration_id"),
                    )
                )
            else:
                replies.append(classify_error(token, str(result.get("error", "Unknown")), retry_after))

        logger.debug(
            "FCM batch answered",
            tokens=len(tokens),
            delivered=sum(1 for r in replies if r.message_id),
        )
        return replies

    async def aclose(self) -> None:
        await self._client.aclose()
