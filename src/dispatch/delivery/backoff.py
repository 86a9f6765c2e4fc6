"""Retry delay computation and the global throttle signal."""

import random
from collections.abc import Callable

# Jitter only ever shortens a delay, by at most this fraction, so successive
# delays below the cap keep strictly increasing.
JITTER_RATIO = 0.25


class BackoffPolicy:
    """Exponential backoff with bounded downward jitter.

    The delay before retry round ``n`` (``n`` >= 1) is
    ``base_delay * 2 ** (n - 1)``, capped at ``max_delay``.
    """

    def __init__(self, base_delay: float, max_delay: float, rng: Callable[[], float] = random.random) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._rng = rng

    def delay(self, retry_round: int) -> float:
        ceiling = min(self.base_delay * (2 ** max(retry_round - 1, 0)), self.max_delay)
        return ceiling * (1 - JITTER_RATIO * self._rng())


class Throttle:
    """Global penalty added to delays after the provider rate-limits us.

    Shared by every request of one engine. Each rate-limit signal doubles the
    penalty (starting from ``base_delay``, honouring a provider Retry-After
    hint, capped at ``max_delay``); each batch that comes back without a rate
    limit halves it.
    """

    def __init__(self, base_delay: float, max_delay: float) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.penalty = 0.0

    def signal(self, retry_after: float | None = None) -> float:
        widened = max(self.penalty * 2, self.base_delay, retry_after or 0.0)
        self.penalty = min(widened, self.max_delay)
        return self.penalty

    def relax(self) -> None:
        if not self.penalty:
            return
        self.penalty /= 2
        if self.penalty < self.base_delay / 4:
            self.penalty = 0.0
