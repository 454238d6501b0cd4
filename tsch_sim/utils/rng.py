from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import numpy as np


class SimulationRNG:
    """
    The single sequential random number generator shared by one simulation run.
    Wraps a numpy Generator so that its full state can be snapshotted and restored,
    which keeps simulation draws unaffected by independently seeded sub-tasks.
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize the generator with a seed value.

        Args:
            seed (int): The initial seed value for the generator.
        """
        self.seed(seed)

    def seed(self, seed: Optional[int]) -> None:
        """
        Reset the generator to the sequence determined by `seed`.

        Args:
            seed (int): The new seed value.
        """
        self._generator = np.random.default_rng(seed)

    def random(self) -> float:
        """
        Generate a pseudo-random float between 0 and 1.

        Returns:
            float: A pseudo-random number in the range [0, 1).
        """
        return float(self._generator.random())

    def uniform(self, low: float, high: float) -> float:
        return float(self._generator.uniform(low, high))

    def randint(self, low: int, high: int) -> int:
        """
        Generate a random integer in the closed range [low, high].
        """
        return int(self._generator.integers(low, high, endpoint=True))

    def choice(self, items: list):
        """
        Select a random item from a non-empty list.

        Args:
            items (list): The list of items to choose from.

        Returns:
            Any: A randomly selected item from the list.

        Raises:
            ValueError: If the input list is empty.
        """
        if not items:
            raise ValueError("Cannot choose from an empty list")
        index = int(self.random() * len(items))
        return items[index]

    def get_state(self) -> Dict[str, Any]:
        return self._generator.bit_generator.state

    def set_state(self, state: Dict[str, Any]) -> None:
        self._generator.bit_generator.state = state

    @contextmanager
    def reseeded(self, seed: Optional[int]) -> Iterator["SimulationRNG"]:
        """
        Temporarily reseed the generator, restoring the exact previous state on exit.

        Args:
            seed (int): The temporary seed; None leaves the generator untouched.
        """
        if seed is None:
            yield self
            return
        saved_state = self.get_state()
        self.seed(seed)
        try:
            yield self
        finally:
            self.set_state(saved_state)
