"""
Recovers genomes from the text logs of earlier runs.

A run log stores each best genome between a ``Weights<n>----`` line and the
matching ``End of Weights<n>----`` line. Every such block is parsed strictly
with ``Genome.from_text``.
"""
import logging
from pathlib import Path
from typing import Iterator, List, Sequence

from genome import Genome, GenomeParseError
from settings import LAYER_SIZES

logger = logging.getLogger(__name__)


def genome_blocks(text: str) -> Iterator[str]:
    block: List[str] = []
    inside = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("End of Weights"):
            if not inside:
                raise GenomeParseError("'End of Weights' without a matching 'Weights' line")
            yield "\n".join(block)
            block, inside = [], False
        elif stripped.startswith("Weights"):
            if inside:
                raise GenomeParseError("nested 'Weights' block")
            inside = True
        elif inside:
            block.append(stripped)
    if inside:
        raise GenomeParseError("unterminated 'Weights' block")


def parse_population_text(text: str, layer_sizes: Sequence[int] = LAYER_SIZES) -> List[Genome]:
    return [Genome.from_text(block, layer_sizes) for block in genome_blocks(text)]


def parse_population_file(path: str, layer_sizes: Sequence[int] = LAYER_SIZES) -> List[Genome]:
    text = Path(path).read_text(encoding="utf-8")
    genomes = parse_population_text(text, layer_sizes)
    logger.info(f"[PARSER] read {len(genomes)} genomes from {path}")
    return genomes
