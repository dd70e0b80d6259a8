import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from decision_network import DecisionNetwork
from genome import Genome

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    GOAL_RATIONAL = "goal_rational"
    TRADITIONAL = "traditional"
    RANDOM = "random"


@dataclass
class BreedContext:
    """Everything a strategy may draw on to build one replacement genome."""
    parents: Sequence[Genome]
    population: Sequence[Genome]
    rng: np.random.Generator
    use_neuromodulation: bool = False


# ─── Strategies ─────────────────────────────────────────────────────────────

class BreedStrategy:
    name = "base"

    def breed(self, ctx: BreedContext) -> Genome:
        raise NotImplementedError


class CrossoverBreed(BreedStrategy):
    """Goal-rational action: offspring of the two surviving tournament members."""
    name = ActionType.GOAL_RATIONAL.value

    def breed(self, ctx: BreedContext) -> Genome:
        first, second = ctx.parents[0], ctx.parents[1]
        return DecisionNetwork(first).create_offspring(second, ctx.rng, ctx.use_neuromodulation)


class TraditionalBreed(BreedStrategy):
    """Traditional action: the median representative of the whole population."""
    name = ActionType.TRADITIONAL.value

    def breed(self, ctx: BreedContext) -> Genome:
        return DecisionNetwork.common_genome(ctx.population)


class RandomBreed(BreedStrategy):
    """Random action: an immigrant unrelated to any parent."""
    name = ActionType.RANDOM.value

    def breed(self, ctx: BreedContext) -> Genome:
        return Genome.random(ctx.rng, ctx.population[0].layer_sizes)


STRATEGIES: Dict[ActionType, BreedStrategy] = {
    ActionType.GOAL_RATIONAL: CrossoverBreed(),
    ActionType.TRADITIONAL: TraditionalBreed(),
    ActionType.RANDOM: RandomBreed(),
}


def choose_strategy(draw: float, rationality: float, action_type: ActionType) -> BreedStrategy:
    """Goal-rational whenever ``draw < rationality``, else the configured social action."""
    if draw < rationality:
        return STRATEGIES[ActionType.GOAL_RATIONAL]
    return STRATEGIES[ActionType(action_type)]


# ─── Registry ───────────────────────────────────────────────────────────────

class StrategyRegistry:
    """
    Applies breeding strategies and keeps a per-name count of how often each
    one produced a replacement.
    """

    def __init__(self, strategies: Optional[Dict[ActionType, BreedStrategy]] = None):
        self._strategies = dict(strategies or STRATEGIES)
        self.applied: Dict[str, int] = {s.name: 0 for s in self._strategies.values()}

    def get(self, action_type: ActionType) -> BreedStrategy:
        return self._strategies[ActionType(action_type)]

    def get_all(self) -> List[BreedStrategy]:
        return list(self._strategies.values())

    def apply(self, strategy: BreedStrategy, ctx: BreedContext) -> Genome:
        genome = strategy.breed(ctx)
        self.applied[strategy.name] = self.applied.get(strategy.name, 0) + 1
        logger.debug(f"[BREED] {strategy.name} -> {genome!r}")
        return genome
