import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

_SEED_SPACE = 2 ** 32


def _normalise(seed: int) -> int:
    return int(seed) % _SEED_SPACE


class RandomStreams:
    """
    The two random streams of a run: ``main`` drives every genetic and
    selection draw, ``goal`` only decides between goal-rational and social
    breeding. Both are reseeded together whenever a new master seed is chosen.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = int(np.random.SeedSequence().entropy % _SEED_SPACE)
        self.seed = int(seed)
        self.main = np.random.default_rng(_normalise(seed))
        self.goal = np.random.default_rng(_normalise(seed))

    def reseed(self, seed: int) -> None:
        self.seed = int(seed)
        self.main = np.random.default_rng(_normalise(seed))
        self.goal = np.random.default_rng(_normalise(seed))
        logger.debug(f"[RNG] reseeded both streams with {seed}")

    def reseed_main(self, seed: int) -> None:
        self.seed = int(seed)
        self.main = np.random.default_rng(_normalise(seed))
        logger.debug(f"[RNG] reseeded main stream with {seed}")

    def new_seed(self) -> int:
        """Draw a fresh master seed from the shared stream and reseed with it."""
        seed = int(self.main.integers(1, 2 ** 31 - 1))
        self.reseed(seed)
        return seed

    def reseed_goal(self, seed: int) -> None:
        self.goal = np.random.default_rng(_normalise(seed))
