"""RNG sources for wheel spins."""
import secrets
from abc import ABC, abstractmethod


class RNGBase(ABC):
    """Abstract RNG interface."""

    @abstractmethod
    def random(self) -> float:
        """Return random float in [0, 1)."""
        pass

    def uniform(self, a: float, b: float) -> float:
        """Return random float in [a, b)."""
        return a + (b - a) * self.random()


class ProductionRNG(RNGBase):
    """
    Production RNG.

    Uses cryptographically secure source, no fixed seed.
    """

    def random(self) -> float:
        return secrets.randbits(53) / (1 << 53)


class SeededRNG(RNGBase):
    """
    Test/Simulation RNG.

    Deterministic, fully controlled by seed.
    """

    def __init__(self, seed: int):
        import random

        self._rng = random.Random(seed)
        self.seed = seed

    def random(self) -> float:
        return self._rng.random()


class FixedRNG(RNGBase):
    """Replays a fixed sequence of values in [0, 1), cycling when exhausted."""

    def __init__(self, values: list[float]):
        if not values:
            raise ValueError("FixedRNG needs at least one value")
        self._values = list(values)
        self._index = 0

    def random(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value
