"""
lattice.py — topologically organised lattice of neurons for the reactive layer.

Every unit is wired to its Moore neighbourhood:

      0 1 2
       \\|/
     3 - x - 4
       /|\\
      5 6 7

with connection distances 1 (orthogonal) or sqrt(2) (diagonal). Activations
follow the shunting equation

    x_i' = min(IOTA, -A x_i + I_i + sum_k [x_k]+ / (6 d_k))

Each ``step`` returns a new immutable snapshot; wiring depends on the grid
shape only and is shared between snapshots.
"""
import math
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np

from settings import ACTIVATION_FLOOR, DECAY_RATE, IOTA, NEIGHBOUR_SCALE

logger = logging.getLogger(__name__)

MOORE_OFFSETS = ((-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1))
NEIGHBOUR_DISTANCES = np.array([math.hypot(di, dj) for di, dj in MOORE_OFFSETS])
NEIGHBOUR_WEIGHTS = 1.0 / (NEIGHBOUR_SCALE * NEIGHBOUR_DISTANCES)


@dataclass(frozen=True)
class Neuron:
    """Read-only view of one lattice unit and its Moore neighbourhood."""
    row: int
    col: int
    activation: float
    neighbours: Tuple[Optional[Tuple[int, int]], ...]
    distances: Tuple[float, ...]


@lru_cache(maxsize=8)
def moore_wiring(rows: int, cols: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Flat neighbour indices, shape (rows*cols, 8), and a mask of which entries
    exist (edges and corners have fewer than eight).
    """
    ii, jj = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
    index = np.zeros((rows * cols, 8), dtype=np.int64)
    present = np.zeros((rows * cols, 8), dtype=bool)
    for k, (di, dj) in enumerate(MOORE_OFFSETS):
        ni, nj = ii + di, jj + dj
        ok = (ni >= 0) & (ni < rows) & (nj >= 0) & (nj < cols)
        index[:, k] = np.where(ok, ni * cols + nj, 0).ravel()
        present[:, k] = ok.ravel()
    index.setflags(write=False)
    present.setflags(write=False)
    return index, present


class LatticeField:
    __slots__ = ("rows", "cols", "_activations", "_index", "_present")

    def __init__(self, rows: int, cols: int, activations: Optional[np.ndarray] = None):
        if rows < 1 or cols < 1:
            raise ValueError(f"lattice needs a positive size, got {rows}x{cols}")
        self.rows = rows
        self.cols = cols
        if activations is None:
            values = np.zeros((rows, cols), dtype=np.float64)
        else:
            values = np.array(activations, dtype=np.float64)
            if values.shape != (rows, cols):
                raise ValueError(f"activations of shape {values.shape} do not fit a {rows}x{cols} lattice")
        values.setflags(write=False)
        self._activations = values
        self._index, self._present = moore_wiring(rows, cols)

    @property
    def activations(self) -> np.ndarray:
        return self._activations

    def step(self, stimulus: np.ndarray) -> "LatticeField":
        """Synchronous update from the previous snapshot; ``self`` is untouched."""
        stim = np.asarray(stimulus, dtype=np.float64)
        if stim.shape != (self.rows, self.cols):
            raise ValueError(f"stimulus of shape {stim.shape} does not fit a {self.rows}x{self.cols} lattice")

        old = self._activations.ravel()
        excitatory = np.where(self._present, np.maximum(old, 0.0)[self._index], 0.0)
        new = -DECAY_RATE * old + stim.ravel() + excitatory @ NEIGHBOUR_WEIGHTS
        new = np.minimum(IOTA, new)
        new[np.abs(new) < ACTIVATION_FLOOR] = 0.0
        return LatticeField(self.rows, self.cols, new.reshape(self.rows, self.cols))

    def landscape(self) -> np.ndarray:
        """A writable copy of the activation landscape."""
        return self._activations.copy()

    def neuron(self, row: int, col: int) -> Neuron:
        flat = row * self.cols + col
        neighbours = tuple(
            divmod(int(self._index[flat, k]), self.cols) if self._present[flat, k] else None
            for k in range(8)
        )
        return Neuron(
            row=row,
            col=col,
            activation=float(self._activations[row, col]),
            neighbours=neighbours,
            distances=tuple(float(d) for d in NEIGHBOUR_DISTANCES),
        )
