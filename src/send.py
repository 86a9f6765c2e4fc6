"""Push dispatch CLI.

Registers device tokens and sends one notification through the configured
gateway (FCM when FCM_SERVER_KEY is set, the fake gateway otherwise).

Usage:
    python src/send.py --register alice=tok-1 --to alice --title Hi --body "Hello"
    python src/send.py --to alice --to bob --title Hi --body Hello --data order_id=42 --priority high
"""

import argparse
import asyncio
import sys


def _pairs(values, option):
    pairs = []
    for value in values or []:
        key, sep, rest = value.partition("=")
        if not sep or not key or not rest:
            raise SystemExit(f"{option} expects KEY=VALUE, got {value!r}")
        pairs.append((key, rest))
    return pairs


async def run(args):
    from dispatch.config import DispatchConfig
    from dispatch.delivery.engine import DispatchEngine
    from dispatch.delivery.request import NotificationRequest
    from dispatch.gateway import get_gateway
    from dispatch.projections.delivery_log import DeliveryLogSink
    from dispatch.registry.store import RepositoryTokenStore
    from dispatch.sink.buffered import BufferedResultSink
    from dispatch.sink.fanout import FanOutResultSink
    from dispatch.sink.logging_sink import LoggingResultSink

    config = DispatchConfig.from_env()
    store = RepositoryTokenStore()
    for recipient_id, token in _pairs(args.register, "--register"):
        store.register(recipient_id, token)

    gateway = get_gateway(config)
    sink = BufferedResultSink(FanOutResultSink(LoggingResultSink(), DeliveryLogSink()))
    engine = DispatchEngine(gateway, store, sink, config)

    request = NotificationRequest(
        recipient_ids=tuple(args.to),
        title=args.title,
        body=args.body,
        data=dict(_pairs(args.data, "--data")),
        priority=args.priority,
    )
    try:
        result = await engine.submit(request)
    finally:
        await sink.aclose()
        await gateway.aclose()

    print(f"Request {result.request_id}: {result.delivered} delivered in {result.attempts} round(s)")
    for token in sorted(result.invalidated, key=lambda t: t.token):
        print(f"  invalidated {token.recipient_id} {token.token}")
    for failure in sorted(result.failed, key=lambda f: (f.recipient_id, f.token.token if f.token else "")):
        token = failure.token.token if failure.token else "-"
        print(f"  failed {failure.recipient_id} {token} {failure.reason.value}")
    return 0 if not result.failed else 1


def main():
    parser = argparse.ArgumentParser(description="Send a push notification")
    parser.add_argument("--to", action="append", required=True, help="Recipient id (repeatable)")
    parser.add_argument("--title", required=True)
    parser.add_argument("--body", required=True)
    parser.add_argument("--data", action="append", help="Data entry KEY=VALUE (repeatable)")
    parser.add_argument("--priority", choices=["normal", "high"], default="normal")
    parser.add_argument("--register", action="append", help="Register RECIPIENT=TOKEN before sending")
    args = parser.parse_args()

    from dispatch.domain import dispatch
    from dispatch.errors import InvalidRequest

    dispatch.init()
    with dispatch.domain_context():
        try:
            return asyncio.run(run(args))
        except InvalidRequest as exc:
            print(f"Invalid request: {exc.messages}", file=sys.stderr)
            return 2


if __name__ == "__main__":
    sys.exit(main())
