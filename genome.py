"""
genome.py — the evolvable tensor behind a DecisionNetwork.

A Genome holds one weight matrix per adjacent layer pair of the layer schedule
(shape ``sizes[i] x sizes[i+1]``) and one binary neuromodulation vector per
hidden layer. Shapes are fixed once built; only values change.
"""
import re
import logging
from typing import List, Sequence

import numpy as np

from settings import LAYER_SIZES

logger = logging.getLogger(__name__)

_WEIGHT_HEADER = re.compile(r"^W(\d+):\s*$")
_FLAG_LINE = re.compile(r"^N(\d+):\s*\[(.*)\]\s*$")


class GenomeParseError(ValueError):
    """Raised when genome text does not match the expected layer schedule."""


class Genome:
    __slots__ = ("layer_weights", "neuromodulation")

    def __init__(self, layer_weights: Sequence[np.ndarray], neuromodulation: Sequence[np.ndarray]):
        self.layer_weights: List[np.ndarray] = [np.asarray(w, dtype=np.float64) for w in layer_weights]
        self.neuromodulation: List[np.ndarray] = [np.asarray(n, dtype=np.int8) for n in neuromodulation]
        if len(self.neuromodulation) != max(len(self.layer_weights) - 1, 0):
            raise ValueError(
                f"expected {len(self.layer_weights) - 1} modulation vectors, got {len(self.neuromodulation)}"
            )

    # ─── Construction ───────────────────────────────────────────────────────
    @classmethod
    def random(cls, rng: np.random.Generator, layer_sizes: Sequence[int] = LAYER_SIZES) -> "Genome":
        """Weights uniform in [-1, 1), every modulation flag cleared."""
        weights = [
            rng.random((layer_sizes[i], layer_sizes[i + 1])) * 2 - 1
            for i in range(len(layer_sizes) - 1)
        ]
        flags = [np.zeros(layer_sizes[i + 1], dtype=np.int8) for i in range(len(layer_sizes) - 2)]
        return cls(weights, flags)

    def copy(self) -> "Genome":
        return Genome([w.copy() for w in self.layer_weights], [n.copy() for n in self.neuromodulation])

    # ─── Shape ──────────────────────────────────────────────────────────────
    @property
    def layer_sizes(self) -> tuple:
        if not self.layer_weights:
            return ()
        return tuple(w.shape[0] for w in self.layer_weights) + (self.layer_weights[-1].shape[1],)

    def matches(self, layer_sizes: Sequence[int]) -> bool:
        sizes = tuple(layer_sizes)
        if self.layer_sizes != sizes:
            return False
        return all(n.shape == (sizes[i + 1],) for i, n in enumerate(self.neuromodulation))

    def same_as(self, other: "Genome") -> bool:
        """Exact equality of every weight and flag."""
        if self.layer_sizes != other.layer_sizes:
            return False
        return (
            all(np.array_equal(a, b) for a, b in zip(self.layer_weights, other.layer_weights))
            and all(np.array_equal(a, b) for a, b in zip(self.neuromodulation, other.neuromodulation))
        )

    # ─── Text format ────────────────────────────────────────────────────────
    def to_text(self) -> str:
        lines = []
        for i, w in enumerate(self.layer_weights):
            lines.append(f"W{i}:")
            for row in w:
                lines.append("[" + ", ".join(repr(float(v)) for v in row) + "]")
        for i, flags in enumerate(self.neuromodulation):
            lines.append(f"N{i}: [" + ", ".join(str(int(b)) for b in flags) + "]")
        return "\n".join(lines) + "\n"

    @classmethod
    def from_text(cls, text: str, layer_sizes: Sequence[int] = LAYER_SIZES) -> "Genome":
        """
        Strict inverse of ``to_text``. Any mismatch against ``layer_sizes``
        (layer count, matrix dimensions, flag length, flag values) raises
        GenomeParseError instead of truncating or padding.
        """
        sizes = tuple(layer_sizes)
        n_weights = len(sizes) - 1
        n_flags = len(sizes) - 2
        weights: List[np.ndarray] = []
        flags: List[np.ndarray] = []

        lines = [ln.strip() for ln in text.splitlines() if ln.strip() and not ln.strip().startswith("--")]
        pos = 0
        while pos < len(lines):
            line = lines[pos]
            header = _WEIGHT_HEADER.match(line)
            flag_line = _FLAG_LINE.match(line)
            if header:
                idx = int(header.group(1))
                if idx != len(weights) or idx >= n_weights or flags:
                    raise GenomeParseError(f"unexpected weight block W{idx} (have {len(weights)} of {n_weights})")
                rows, cols = sizes[idx], sizes[idx + 1]
                body = lines[pos + 1:pos + 1 + rows]
                if len(body) != rows or any(not ln.startswith("[") for ln in body):
                    raise GenomeParseError(f"W{idx}: expected {rows} rows")
                matrix = np.empty((rows, cols), dtype=np.float64)
                for r, row_text in enumerate(body):
                    values = _split_row(row_text)
                    if len(values) != cols:
                        raise GenomeParseError(f"W{idx} row {r}: expected {cols} values, got {len(values)}")
                    try:
                        matrix[r] = [float(v) for v in values]
                    except ValueError as e:
                        raise GenomeParseError(f"W{idx} row {r}: {e}") from e
                weights.append(matrix)
                pos += 1 + rows
            elif flag_line:
                idx = int(flag_line.group(1))
                if idx != len(flags) or idx >= n_flags:
                    raise GenomeParseError(f"unexpected flag vector N{idx} (have {len(flags)} of {n_flags})")
                values = [v.strip() for v in flag_line.group(2).split(",") if v.strip()]
                if len(values) != sizes[idx + 1]:
                    raise GenomeParseError(f"N{idx}: expected {sizes[idx + 1]} flags, got {len(values)}")
                if any(v not in ("0", "1") for v in values):
                    raise GenomeParseError(f"N{idx}: flags must be 0 or 1, got {values}")
                flags.append(np.array([int(v) for v in values], dtype=np.int8))
                pos += 1
            else:
                raise GenomeParseError(f"unrecognised line: {line!r}")

        if len(weights) != n_weights:
            raise GenomeParseError(f"expected {n_weights} weight layers, found {len(weights)}")
        if len(flags) != n_flags:
            raise GenomeParseError(f"expected {n_flags} modulation vectors, found {len(flags)}")
        logger.debug(f"[GENOME] parsed genome with layers {sizes}")
        return cls(weights, flags)

    def __repr__(self) -> str:
        return f"Genome(layers={self.layer_sizes}, gating={[int(n.sum()) for n in self.neuromodulation]})"


def _split_row(row_text: str) -> List[str]:
    return [v.strip() for v in row_text.strip().lstrip("[").rstrip("]").split(",") if v.strip()]
