"""Result sink that forwards every outcome to several sinks."""

from dispatch.delivery.outcome import DeliveryOutcome
from dispatch.sink.port import ResultSink


class FanOutResultSink(ResultSink):
    def __init__(self, *sinks: ResultSink) -> None:
        self.sinks = sinks

    def record(self, outcome: DeliveryOutcome) -> None:
        for sink in self.sinks:
            sink.record(outcome)

    async def aclose(self) -> None:
        for sink in self.sinks:
            await sink.aclose()
