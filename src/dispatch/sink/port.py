"""Result sink port — where delivery outcomes go for audit and metrics."""

from abc import ABC, abstractmethod

from dispatch.delivery.outcome import DeliveryOutcome


class ResultSink(ABC):
    """Abstract receiver of delivery outcomes.

    ``record`` is called from the dispatch loop and must return quickly;
    anything slow belongs behind a BufferedResultSink.
    """

    @abstractmethod
    def record(self, outcome: DeliveryOutcome) -> None: ...

    async def aclose(self) -> None:
        return None
