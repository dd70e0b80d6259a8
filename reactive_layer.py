"""
Turns chosen sub-goals into a hill-climbing landscape.

Stimulus rules per cell (desire = discretised sub-goal vector):
  - Resource targeted by this agent: +IOTA / -IOTA for desire[0] = 1 / -1
  - Resource targeted by someone else: always -IOTA
  - Stone: +IOTA / -IOTA for desire[1] = 1 / -1
  - Water, desire[2] = 1: +IOTA, except once a partial bridge exists only
    the shallow part (depth <= 1) stays attractive
  - Water, desire[2] = -1: -IOTA
  - Cells occupied by other agents: -IOTA when ``repel_agents`` is enabled
"""
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from cells import Cell, Resource, Stone, Water
from lattice import LatticeField, Neuron
from settings import IOTA

logger = logging.getLogger(__name__)


class ReactiveLayer:
    def __init__(self, rows: int, cols: int, repel_agents: bool = False):
        self.field = LatticeField(rows, cols)
        self.targets: List[Resource] = []
        self.repel_agents = repel_agents

    def set_resource(self, target: Resource) -> None:
        self.targets.append(target)

    def is_target(self, obj) -> bool:
        return any(obj is t for t in self.targets)

    def build_stimulus(
        self,
        desire: Sequence[float],
        partial_bridge: bool,
        grid: Sequence[Sequence[Cell]],
        occupied: Iterable[Tuple[int, int]] = (),
    ) -> np.ndarray:
        rows, cols = len(grid), len(grid[0])
        stimulus = np.zeros((rows, cols), dtype=np.int64)
        for i in range(rows):
            for j in range(cols):
                obj = grid[i][j].obj
                if isinstance(obj, Resource):
                    if not self.is_target(obj):
                        stimulus[i, j] = -IOTA
                    elif desire[0] >= 1:
                        stimulus[i, j] = IOTA
                    elif desire[0] <= -1:
                        stimulus[i, j] = -IOTA
                elif isinstance(obj, Stone):
                    if desire[1] >= 1:
                        stimulus[i, j] = IOTA
                    elif desire[1] <= -1:
                        stimulus[i, j] = -IOTA
                elif isinstance(obj, Water):
                    if desire[2] >= 1:
                        if partial_bridge and obj.depth > 1:
                            stimulus[i, j] = -IOTA
                        else:
                            stimulus[i, j] = IOTA
                    elif desire[2] <= -1:
                        stimulus[i, j] = -IOTA
        if self.repel_agents:
            for i, j in occupied:
                stimulus[i, j] = -IOTA
        return stimulus

    def update_activations(
        self,
        desire: Sequence[float],
        partial_bridge: bool,
        grid: Sequence[Sequence[Cell]],
        occupied: Iterable[Tuple[int, int]] = (),
    ) -> np.ndarray:
        stimulus = self.build_stimulus(desire, partial_bridge, grid, occupied)
        self.field = self.field.step(stimulus)
        return self.field.activations

    def activation_landscape(self) -> np.ndarray:
        return self.field.landscape()

    def neighbour_landscape(self, row: int, col: int) -> List[Optional[Neuron]]:
        """The Moore neighbourhood of (row, col); None where the grid ends."""
        centre = self.field.neuron(row, col)
        return [None if loc is None else self.field.neuron(*loc) for loc in centre.neighbours]
