"""
Random variate generation for inter-arrival and service durations.
All randomness in the engine flows through one seedable numpy Generator.
"""

import math
from typing import List, Optional, Sequence, TypeVar

import numpy as np

from queue_node.entities import DistributionType
from queue_node.settings import TraceEntry

T = TypeVar("T")


class RandomVariateGenerator:
    """Duration sampler backed by an injected numpy Generator."""

    def __init__(self, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None):
        """Initialize the generator.

        Args:
            rng: Random source to draw from (takes precedence over seed)
            seed: Seed for a fresh default_rng when no rng is given
        """
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def exponential(self, mean: float) -> float:
        """Exponential draw with the given mean (0 for a non-positive mean)."""
        if mean <= 0:
            return 0.0
        if math.isinf(mean):
            return math.inf
        return float(self.rng.exponential(mean))

    def sample(self, kind: DistributionType, mean: float, k: int = 2) -> float:
        """Draw a non-negative duration.

        Args:
            kind: Distribution family
            mean: Mean duration (minutes)
            k: Erlang shape

        Returns:
            Sampled duration
        """
        if kind == DistributionType.DETERMINISTIC:
            value = mean
        elif kind == DistributionType.UNIFORM:
            value = float(self.rng.uniform(0.0, 2.0 * mean)) if mean > 0 else 0.0
        elif kind == DistributionType.ERLANG:
            shape = max(1, int(k))
            value = sum(self.exponential(mean / shape) for _ in range(shape))
        elif kind == DistributionType.TRACE:
            # Literal values come from the trace cursor; fall back to the mean
            value = mean
        else:
            value = self.exponential(mean)
        return max(0.0, value)

    def random(self) -> float:
        return float(self.rng.random())

    def bernoulli(self, p: float) -> bool:
        return self.random() < p

    def integer(self, low: int, high: int) -> int:
        """Uniform integer in [low, high] inclusive."""
        return int(self.rng.integers(low, high + 1))

    def shuffled(self, items: Sequence[T]) -> List[T]:
        """Return a shuffled copy of items."""
        order = self.rng.permutation(len(items))
        return [items[i] for i in order]


class TraceCursor:
    """Ordered replay of an arrival log."""

    def __init__(self, entries: Sequence[TraceEntry] = ()):
        self.entries = list(entries)
        self.index = 0

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.entries)

    def next_arrival_time(self) -> float:
        """Absolute time of the next logged arrival, or inf when done."""
        if self.exhausted:
            return math.inf
        return self.entries[self.index].arrival_time

    def current_service_time(self) -> Optional[float]:
        if self.exhausted:
            return None
        return max(0.0, self.entries[self.index].service_time)

    def advance(self):
        self.index += 1

    def reset(self):
        self.index = 0
