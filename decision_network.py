"""
The deliberative layer.

A small feed-forward network whose weights come from a Genome. Forward
propagation maps an agent status vector onto discretised sub-goal desires
{-1, 0, +1} for (resource, stone, water). The module also holds the genetic
operators that act on genomes: crossover with mutation, modulation-flag
inheritance, and the median "tradition" aggregate.
"""
import logging
from typing import List, Sequence

import numpy as np

from genome import Genome
from settings import (
    CROSSOVER_RATE,
    LAYER_SIZES,
    MODULATION_RATE,
    MUTATION_RATE,
    OUTPUT_THRESHOLD,
)

logger = logging.getLogger(__name__)


def discretise(values: np.ndarray, threshold: float = OUTPUT_THRESHOLD) -> np.ndarray:
    """Saturate above +threshold to 1, below -threshold to -1, zero otherwise."""
    out = np.zeros_like(values, dtype=np.float64)
    out[values > threshold] = 1.0
    out[values < -threshold] = -1.0
    return out


def modulate(activations: np.ndarray, flags: np.ndarray) -> np.ndarray:
    """Gating units pass positive values and silence negative ones."""
    gated = (flags == 1) & (activations < 0)
    if not gated.any():
        return activations
    out = activations.copy()
    out[gated] = 0.0
    return out


class DecisionNetwork:
    def __init__(self, genome: Genome):
        self.genome = genome

    @classmethod
    def random(cls, rng: np.random.Generator, layer_sizes: Sequence[int] = LAYER_SIZES) -> "DecisionNetwork":
        return cls(Genome.random(rng, layer_sizes))

    @property
    def input_size(self) -> int:
        return self.genome.layer_sizes[0]

    @property
    def output_size(self) -> int:
        return self.genome.layer_sizes[-1]

    # ─── Inference ──────────────────────────────────────────────────────────
    def forward(self, inputs: Sequence[float]) -> np.ndarray:
        """
        Pure function of (inputs, weights, flags): tanh and modulation after
        every product except the last, then symmetric discretisation.
        """
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape != (self.input_size,):
            raise ValueError(f"expected input of length {self.input_size}, got shape {x.shape}")
        weights = self.genome.layer_weights
        z = x @ weights[0]
        for layer in range(1, len(weights)):
            a = modulate(np.tanh(z), self.genome.neuromodulation[layer - 1])
            z = a @ weights[layer]
        return discretise(z)

    # ─── Genetic operators ──────────────────────────────────────────────────
    def create_offspring(
        self,
        other: Genome,
        rng: np.random.Generator,
        use_neuromodulation: bool = True,
    ) -> Genome:
        """
        Column-wise crossover of this genome with ``other`` followed by
        Gaussian mutation of every weight; neither parent is modified.
        """
        mine = self.genome
        if mine.layer_sizes != other.layer_sizes:
            raise ValueError(f"parent shapes differ: {mine.layer_sizes} vs {other.layer_sizes}")

        offspring = []
        for layer, (w_a, w_b) in enumerate(zip(mine.layer_weights, other.layer_weights)):
            rows, cols = w_a.shape
            child = np.empty_like(w_a)
            for col in range(cols):
                if rng.random() > CROSSOVER_RATE:
                    # whole column from one parent
                    source = w_a if rng.random() < 0.5 else w_b
                    child[:, col] = source[:, col]
                else:
                    point = int(rng.integers(rows))
                    first, second = (w_a, w_b) if rng.random() < 0.5 else (w_b, w_a)
                    child[:point, col] = first[:point, col]
                    child[point:, col] = second[point:, col]
                child[:, col] += rng.normal(0.0, MUTATION_RATE, size=rows)
            offspring.append(child)

        if use_neuromodulation:
            flags = inherit_modulation(mine.neuromodulation, other.neuromodulation, rng)
        else:
            flags = [np.zeros_like(n) for n in mine.neuromodulation]
        return Genome(offspring, flags)

    @staticmethod
    def common_genome(genomes: Sequence[Genome]) -> Genome:
        """
        Representative state of a population: elementwise median of every
        weight, and majority vote (strictly more than half) for every flag.
        """
        if not genomes:
            raise ValueError("cannot aggregate an empty population")
        sizes = genomes[0].layer_sizes
        if any(g.layer_sizes != sizes for g in genomes):
            raise ValueError("all genomes must share one layer schedule")

        weights = [
            np.median(np.stack([g.layer_weights[layer] for g in genomes]), axis=0)
            for layer in range(len(sizes) - 1)
        ]
        flags = []
        for layer in range(len(sizes) - 2):
            votes = np.stack([g.neuromodulation[layer] for g in genomes]).sum(axis=0)
            flags.append((votes * 2 > len(genomes)).astype(np.int8))
        logger.debug(f"[TRADITION] median genome over {len(genomes)} individuals")
        return Genome(weights, flags)

    def __str__(self) -> str:
        return self.genome.to_text()


def inherit_modulation(
    flags_a: List[np.ndarray],
    flags_b: List[np.ndarray],
    rng: np.random.Generator,
) -> List[np.ndarray]:
    """Each layer's vector comes en bloc from one parent, then may lose or gain one bit."""
    inherited = []
    for a, b in zip(flags_a, flags_b):
        child = (a if rng.random() < 0.5 else b).copy()
        if child.size and rng.random() < MODULATION_RATE:
            bit = int(rng.integers(child.size))
            child[bit] = 1 - child[bit]
        inherited.append(child)
    return inherited
