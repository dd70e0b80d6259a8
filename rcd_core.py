'''RIVER CROSSING DILEMMA: evolution runner'''
# Evolve populations of hybrid agents (deliberative network + reactive lattice) on the River Crossing task.
import sys
import time
import logging
import argparse
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from colorama import init as colorama_init, Fore, Style

import settings
from evolution import ConfigurationError, EvolutionEngine, MissingPopulationError
from genome import GenomeParseError
from logging_config import configure_logging
from persistence import RunDB
from random_streams import RandomStreams
from world import RiverCrossingWorld

logger = logging.getLogger(__name__)


class Config(BaseModel):
    # ─── Populations ─────────────────────────────────────────────
    population_count: int  = Field(1, ge=1, le=2, description="Number of co-evolving populations")
    population_size: int   = Field(settings.POPULATION_SIZE, ge=3, description="Members per population")
    tournament_size: int   = Field(settings.TOURNAMENT_SIZE, ge=3, description="Members drawn per tournament")
    aware: List[bool]      = Field(
        default_factory=lambda: [False, False],
        min_length=1, max_length=2,
        description="Per population: read the partner's sub-goal outputs"
    )

    # ─── Initialisation ──────────────────────────────────────────
    from_random: bool                = Field(True, description="Start from fresh random populations")
    seeds: List[int]                 = Field(default_factory=lambda: [0, 0], description="Seed per population, 0 draws a fresh one")
    start_from_parsed_weights: bool  = Field(False, description="Seed population 0 from a run log")
    weights_file: Optional[str]      = Field(None, description="Run log holding Weights blocks")

    # ─── Evolution ───────────────────────────────────────────────
    generations: int         = Field(settings.NUM_GENERATIONS, ge=1, description="Generations to run")
    goal_rationality: float  = Field(1.0, ge=0.0, le=1.0, description="Probability of goal-rational breeding")
    action_type: Literal["goal_rational", "traditional", "random"] = Field(
        "traditional", description="Social action used when not goal-rational"
    )
    use_neuromodulation: bool = Field(False, description="Evolve neuromodulation flags")

    # ─── Evaluation ──────────────────────────────────────────────
    num_environments: int     = Field(1, ge=1, description="Episodes summed into one fitness")
    consistent_partner: bool  = Field(True, description="Pair with the other population, not a stranger")
    repel_agents: bool        = Field(False, description="Other agents repel the reactive lattice")
    time_steps: int           = Field(settings.TIME_STEPS, ge=1, description="Tick budget per episode")

    # ─── Output ──────────────────────────────────────────────────
    flush_interval: int       = Field(settings.FLUSH_INTERVAL, ge=1, description="Generations between log flushes")
    output_dir: Optional[str] = Field("runs", description="Directory for generation logs")
    db_path: Optional[str]    = Field(None, description="Optional duckdb archive")


class ConfigManager:
    """
    Wraps a Pydantic Config model and persists it to disk as JSON.
    Loads existing config or creates defaults, and provides get/set accessors.
    """

    def __init__(self, path: str = "rcd_config.json"):
        self.path = Path(path)
        self.cfg = self._load_or_create()

    def _load_or_create(self) -> Config:
        if not self.path.exists():
            logger.info(f"[CONFIG] No config found at {self.path!r}, creating default.")
            return self._create_default()

        try:
            raw = self.path.read_text(encoding="utf-8")
            return Config.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning(f"[CONFIG] Failed to parse {self.path!r}: {e!r}, resetting to defaults.")
            return self._create_default()

    def _create_default(self) -> Config:
        cfg = Config()
        self._write_config(cfg)
        return cfg

    def _write_config(self, cfg: Config) -> None:
        try:
            self.path.write_text(cfg.model_dump_json(indent=4), encoding="utf-8")
        except OSError as e:
            logger.error(f"[CONFIG] could not write {self.path!r}: {e!r}")

    def save(self) -> None:
        """Persist the current config to disk."""
        self._write_config(self.cfg)

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self.cfg, key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a config value (validated) and immediately persist."""
        data = self.cfg.model_dump()
        data[key] = value
        self.cfg = Config.model_validate(data)
        self._write_config(self.cfg)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="rcd-evolve",
        description="Evolve River Crossing Dilemma agents."
    )
    p.add_argument("--config", default="rcd_config.json", help="JSON config file (created if missing)")
    p.add_argument("--populations", dest="population_count", type=int, choices=[1, 2], help="Number of populations")
    p.add_argument("--generations", type=int, help="Generations to run")
    p.add_argument("--rationality", dest="goal_rationality", type=float, metavar="P",
                   help="Probability of goal-rational breeding (0–1)")
    p.add_argument("--action", dest="action_type", choices=["goal_rational", "traditional", "random"],
                   help="Social action when not goal-rational")
    p.add_argument("--neuromodulation", dest="use_neuromodulation", action="store_true", default=None,
                   help="Evolve neuromodulation flags")
    p.add_argument("--environments", dest="num_environments", type=int, help="Episodes per fitness evaluation")
    p.add_argument("--random-partner", dest="consistent_partner", action="store_false", default=None,
                   help="Pair with a generation-seeded stranger")
    p.add_argument("--aware", type=lambda s: s.lower() in ("1", "true", "t", "yes"), nargs="+",
                   metavar="BOOL", help="Awareness flag per population")
    p.add_argument("--seeds", type=int, nargs="+", help="Seed per population (implies seeded start)")
    p.add_argument("--weights", dest="weights_file", help="Start population 0 from this run log")
    p.add_argument("--repel-agents", dest="repel_agents", action="store_true", default=None,
                   help="Other agents repel the reactive lattice")
    p.add_argument("--output-dir", dest="output_dir", help="Directory for generation logs")
    p.add_argument("--db", dest="db_path", help="duckdb archive of generation statistics")
    p.add_argument("--log-file", default="rcd_evolution.log", help="Rotating log file")
    p.add_argument("--quiet", action="store_true", help="Only warnings on the console")
    return p.parse_args(argv)


OVERRIDES = (
    "population_count", "generations", "goal_rationality", "action_type", "use_neuromodulation",
    "num_environments", "consistent_partner", "aware", "seeds", "weights_file", "repel_agents",
    "output_dir", "db_path",
)


def build_config(args: argparse.Namespace, base: Config) -> Config:
    """Overlay the CLI flags that were given on top of ``base``."""
    data = base.model_dump()
    for key in OVERRIDES:
        value = getattr(args, key, None)
        if value is not None:
            data[key] = value
    if args.seeds:
        data["from_random"] = False
    if args.weights_file:
        data["start_from_parsed_weights"] = True
        data["from_random"] = False
    return Config.model_validate(data)


def print_summary(engine: EvolutionEngine, elapsed: float) -> None:
    print(f"{Fore.CYAN}[SUMMARY] {engine.cfg.generations} generations in {elapsed:.1f}s{Style.RESET_ALL}")
    for pop in range(engine.cfg.population_count):
        stats = engine.population_stats(pop)
        best = engine.current_best[pop]
        print(
            f"{Fore.GREEN}  population {pop}{Style.RESET_ALL} seed={engine.seeds[pop]} "
            f"champion={best.fitness if best else None} "
            f"best={stats['best']:.2f} mean={stats['mean']:.2f} std={stats['std']:.2f}"
        )
    print(f"{Fore.YELLOW}  strategies: {engine.registry.applied}{Style.RESET_ALL}")


def main(argv: Optional[List[str]] = None) -> int:
    colorama_init(autoreset=True)
    args = parse_args(argv)
    configure_logging(
        log_file_path=args.log_file,
        console_level=logging.WARNING if args.quiet else logging.INFO,
    )

    try:
        cfg = build_config(args, ConfigManager(args.config).cfg)
    except ValidationError as e:
        logger.error(f"[CONFIG] invalid settings: {e}")
        return 2

    db = RunDB(cfg.db_path) if cfg.db_path else None
    start = time.time()
    try:
        engine = EvolutionEngine(
            cfg,
            environment=RiverCrossingWorld(time_steps=cfg.time_steps),
            streams=RandomStreams(),
            db=db,
        )
        logger.info(f"[START] {cfg.population_count} population(s), {cfg.generations} generations")
        engine.run()
    except (ConfigurationError, MissingPopulationError, GenomeParseError) as e:
        logger.error(f"[ABORT] {type(e).__name__}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("[EXIT] interrupted, shutting down.")
        return 130
    finally:
        if db is not None:
            db.close()

    print_summary(engine, time.time() - start)
    return 0


if __name__ == "__main__":
    sys.exit(main())
