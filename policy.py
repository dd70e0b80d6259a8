import logging
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from decision_network import DecisionNetwork
from genome import Genome
from reactive_layer import ReactiveLayer
from settings import COLS, ROWS, layer_schedule

logger = logging.getLogger(__name__)


class Policy:
    """
    One evolving individual: a deliberative DecisionNetwork, a reactive
    lattice, and the fitness bookkeeping the evolutionary loop reads.
    """

    def __init__(
        self,
        genome: Genome,
        rows: int = ROWS,
        cols: int = COLS,
        aware: bool = False,
        repel_agents: bool = False,
    ):
        if not genome.matches(layer_schedule(aware)):
            raise ValueError(f"genome {genome.layer_sizes} does not fit schedule {layer_schedule(aware)}")
        self.rows = rows
        self.cols = cols
        self.aware = aware
        self.repel_agents = repel_agents
        self.network = DecisionNetwork(genome)
        self.reactive_layer = ReactiveLayer(rows, cols, repel_agents)
        self.decision_output = np.zeros(self.network.output_size)
        self.fitness: Optional[float] = None
        self.cumulative_fitness = 0.0
        self.status = ""
        self.last_record = ""

    @classmethod
    def random(cls, rng: np.random.Generator, rows: int = ROWS, cols: int = COLS,
               aware: bool = False, repel_agents: bool = False) -> "Policy":
        return cls(Genome.random(rng, layer_schedule(aware)), rows, cols, aware, repel_agents)

    def spawn(self, genome: Genome) -> "Policy":
        """A new individual with the same setup as this one."""
        return Policy(genome, self.rows, self.cols, self.aware, self.repel_agents)

    @property
    def genome(self) -> Genome:
        return self.network.genome

    # ─── Episode lifecycle ──────────────────────────────────────────────────
    def reset(self, rows: Optional[int] = None, cols: Optional[int] = None) -> None:
        """Fresh lattice for a new episode, resized when the grid shape changes."""
        if rows is not None:
            self.rows = rows
        if cols is not None:
            self.cols = cols
        self.reactive_layer = ReactiveLayer(self.rows, self.cols, self.repel_agents)
        self.decision_output = np.zeros(self.network.output_size)
        self.fitness = None

    def decide(self, status: Sequence[float]) -> np.ndarray:
        self.decision_output = self.network.forward(status)
        return self.decision_output

    def react(self, desire, partial_bridge: bool, grid,
              occupied: Iterable[Tuple[int, int]] = ()) -> np.ndarray:
        return self.reactive_layer.update_activations(desire, partial_bridge, grid, occupied)

    def last_output(self) -> np.ndarray:
        """Snapshot of the last sub-goal output, safe to hand to a partner."""
        return self.decision_output.copy()

    # ─── Fitness bookkeeping ────────────────────────────────────────────────
    def reset_cumulative_fitness(self) -> None:
        self.cumulative_fitness = 0.0
        self.status = ""

    def record_episode(self, fitness: float, record: str) -> None:
        self.fitness = fitness
        self.last_record = record

    def add_episode(self, fitness: float, record: str) -> None:
        self.cumulative_fitness += fitness
        self.status += record + ","

    def set_total_fitness(self) -> float:
        self.fitness = self.cumulative_fitness
        return self.fitness

    def status_record(self, multi_environment: bool = False) -> str:
        if multi_environment:
            return f"{self.status}{self.fitness}"
        return self.last_record

    def __repr__(self) -> str:
        return f"Policy(fitness={self.fitness}, aware={self.aware})"
