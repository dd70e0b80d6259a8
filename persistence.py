import os
import datetime
import logging
from typing import Any, Dict, List, Optional

import duckdb
import pandas as pd

from genome import Genome

logger = logging.getLogger(__name__)

# ——— Helpers —————————————————————————————————————————————————

def _now() -> str:
    return datetime.datetime.now().isoformat()

def _placeholders(count: int) -> str:
    """Generate a comma-separated list of '?' placeholders of length `count`."""
    return ", ".join("?" for _ in range(count))

RECORD_FIELDS = (
    "fitness", "movesMade", "isAlive", "hasCarried",
    "hasMadeBridge", "numStones", "targetsFound", "successful",
)


def header_columns(num_environments: int) -> str:
    """CSV header: gen, the eight episode fields per environment, totalFitness if several."""
    cols = ["gen"]
    for env in range(1, num_environments + 1):
        cols += [f"{name}{env}" for name in RECORD_FIELDS]
    if num_environments > 1:
        cols.append("totalFitness")
    return ",".join(cols)


# ——— Generation Log ——————————————————————————————————————————————

class GenerationLog:
    """
    Append-only text sink for one population: a header, buffered
    per-generation records, the best genome and a footer.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._pending: List[str] = []
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def append(self, content: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(content)

    def write_header(self, population: int, seed: int, aware: bool, num_environments: int) -> None:
        self.append(
            f"Agent {population}: {seed}, aware: {str(aware).lower()}\n"
            f"Created: {_now()}; Seed: {seed}\n"
            f"{header_columns(num_environments)}\n"
        )

    def record(self, generation: int, record: str) -> None:
        self._pending.append(f"{generation},{record}\n")

    def flush(self) -> None:
        if not self._pending:
            return
        self.append("".join(self._pending))
        logger.debug(f"[LOG] flushed {len(self._pending)} records to {self.path}")
        self._pending = []

    def write_genome(self, population: int, genome: Genome, seed: int) -> None:
        self.flush()
        self.append(
            f"//\nWeights{population}------------------------\n"
            f"{genome.to_text()}"
            f"\nEnd of Weights{population}------------------------\n//\nSeed: {seed}\n"
        )

    def write_footer(self, elapsed: float) -> None:
        self.flush()
        self.append(
            f"Elapsed time: {elapsed:.3f} seconds//\nEnd of Run ------------------------\n//\n"
        )


# ——— RunDB ——————————————————————————————————————————————————————

class RunDB:
    # Centralized DDL for all tables
    TABLE_SCHEMAS: Dict[str, str] = {
        "generations": (
            "ts TIMESTAMP, population INT, generation INT, "
            "best_fitness DOUBLE, worst_fitness DOUBLE, "
            "mean_fitness DOUBLE, std_fitness DOUBLE, strategy TEXT"
        ),
        "champions": (
            "ts TIMESTAMP, population INT, seed BIGINT, fitness DOUBLE, genome TEXT"
        ),
    }

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self.conn = duckdb.connect(path)
        self.init_tables()

    def init_tables(self) -> None:
        """Create any missing tables and columns based on TABLE_SCHEMAS."""
        for table, schema in self.TABLE_SCHEMAS.items():
            info = self.conn.execute(
                "SELECT column_name FROM information_schema.columns WHERE table_name=?",
                [table],
            ).fetchall()
            if not info:
                self.conn.execute(f"CREATE TABLE {table} ({schema})")
                continue

            existing_cols = {row[0] for row in info}
            for col_def in schema.split(','):
                col_def = col_def.strip()
                col_name = col_def.split()[0]
                if col_name not in existing_cols:
                    self.conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def}")

    def insert(self, table: str, *values: Any) -> None:
        """Insert a single row into `table` with NOW() timestamp + provided values."""
        sql = f"INSERT INTO {table} VALUES (now(), {_placeholders(len(values))})"
        self.conn.execute(sql, values)

    def record_generation(
        self,
        population: int,
        generation: int,
        best: float,
        worst: float,
        mean: float,
        std: float,
        strategy: str,
    ) -> None:
        self.insert("generations", population, generation, best, worst, mean, std, strategy)

    def record_champion(self, population: int, seed: int, fitness: Optional[float], genome: Genome) -> None:
        self.insert("champions", population, seed, fitness, genome.to_text())

    def load_generations(self, population: Optional[int] = None) -> pd.DataFrame:
        sql = "SELECT * FROM generations"
        params: List[Any] = []
        if population is not None:
            sql += " WHERE population = ?"
            params.append(population)
        return self.conn.execute(sql + " ORDER BY population, generation", params).df()

    def close(self) -> None:
        self.conn.close()
