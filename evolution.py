"""
evolution.py — steady-state genetic algorithm over one or two populations.

Per generation and population: draw a tournament, evaluate its members,
replace the worst member with the output of the breeding strategy chosen for
this generation, and evaluate the replacement.

States: INITIALIZING -> EVALUATING_INITIAL -> (TOURNAMENT_SELECT ->
EVALUATE_TOURNAMENT -> BREED -> EVALUATE_OFFSPRING -> LOG) x generations ->
FINALIZING -> DONE.
"""
import os
import time
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from breeding import ActionType, BreedContext, BreedStrategy, StrategyRegistry, choose_strategy
from genome import GenomeParseError
from persistence import GenerationLog, RunDB
from policy import Policy
from random_streams import RandomStreams
from settings import layer_schedule
from weights_parser import parse_population_file
from world import EpisodeResult, RiverCrossingWorld

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """The run configuration is inconsistent and evolution cannot start."""


class MissingPopulationError(RuntimeError):
    """Asked to continue evolving with no seed and no population to resume."""


class EngineState(str, Enum):
    INITIALIZING = "initializing"
    EVALUATING_INITIAL = "evaluating_initial"
    TOURNAMENT_SELECT = "tournament_select"
    EVALUATE_TOURNAMENT = "evaluate_tournament"
    BREED = "breed"
    EVALUATE_OFFSPRING = "evaluate_offspring"
    LOG = "log"
    FINALIZING = "finalizing"
    DONE = "done"


def check_config(cfg: Any) -> None:
    if cfg.population_count == 2 and not cfg.consistent_partner:
        raise ConfigurationError(
            "Cannot have 2 agent populations as well as a non-consistent partner: use 1 population "
            "for a random partner, or a consistent partner for 2 populations."
        )
    if cfg.tournament_size > cfg.population_size:
        raise ConfigurationError(
            f"tournament_size ({cfg.tournament_size}) exceeds population_size ({cfg.population_size})"
        )
    if cfg.start_from_parsed_weights and not cfg.weights_file:
        raise ConfigurationError("start_from_parsed_weights requires weights_file")
    if len(cfg.aware) < cfg.population_count:
        raise ConfigurationError(f"need an awareness flag for each of {cfg.population_count} populations")


# ─── Tournament helpers ─────────────────────────────────────────────────────

def draw_tournament(rng: np.random.Generator, population_size: int, size: int) -> List[int]:
    """Distinct indices; every draw picks from the candidates still left."""
    candidates = list(range(population_size))
    picks = []
    for _ in range(size):
        picks.append(candidates.pop(int(rng.integers(len(candidates)))))
    return picks


def find_best(fitnesses: Sequence[float]) -> int:
    """Index of the first strictly greatest fitness in a left-to-right scan."""
    best = 0
    for i in range(1, len(fitnesses)):
        if fitnesses[i] > fitnesses[best]:
            best = i
    return best


def find_worst(fitnesses: Sequence[float]) -> int:
    """Index of the first strictly lowest fitness in a left-to-right scan."""
    worst = 0
    for i in range(1, len(fitnesses)):
        if fitnesses[i] < fitnesses[worst]:
            worst = i
    return worst


# ─── Engine ─────────────────────────────────────────────────────────────────

class EvolutionEngine:
    def __init__(
        self,
        cfg: Any,
        environment: Optional[RiverCrossingWorld] = None,
        streams: Optional[RandomStreams] = None,
        db: Optional[RunDB] = None,
        populations: Optional[List[List[Policy]]] = None,
    ):
        check_config(cfg)
        self.cfg = cfg
        self.environment = environment or RiverCrossingWorld(time_steps=cfg.time_steps)
        self.streams = streams or RandomStreams()
        self.db = db
        self.registry = StrategyRegistry()
        self.populations: List[List[Policy]] = populations or []
        self.fitnesses = np.zeros((cfg.population_count, cfg.population_size))
        self.current_best: List[Optional[Policy]] = [None] * cfg.population_count
        self.seeds: List[int] = list(cfg.seeds) + [0] * max(cfg.population_count - len(cfg.seeds), 0)
        self.logs: List[GenerationLog] = []
        self.state = EngineState.INITIALIZING
        self.generation = 0
        self._start = 0.0

    @property
    def multi_environment(self) -> bool:
        return self.cfg.num_environments > 1

    def _enter(self, state: EngineState) -> None:
        self.state = state
        logger.debug(f"[EVOLVE] gen {self.generation}: {state.value}")

    # ─── Run ────────────────────────────────────────────────────────────────
    def run(self) -> List[Policy]:
        """Initialise (or resume), evolve for the configured generations, finalise."""
        self._start = time.time()
        self.initialise()
        self._open_logs()
        for gen in range(1, self.cfg.generations + 1):
            self.run_generation(gen)
            if gen % self.cfg.flush_interval == 0:
                for log in self.logs:
                    log.flush()
        self.finalise()
        return [best for best in self.current_best if best is not None]

    def initialise(self) -> None:
        self._enter(EngineState.INITIALIZING)
        cfg = self.cfg
        if not cfg.from_random and self.seeds[0] == 0 and not self.populations:
            raise MissingPopulationError(
                "Cannot evolve: no seeds specified, from_random is false, "
                "and no current population exists to continue from."
            )

        if cfg.from_random:
            self.seeds[0] = self.streams.new_seed()
            self.populations = [[] for _ in range(cfg.population_count)]
            self._enter(EngineState.EVALUATING_INITIAL)
            for index in range(cfg.population_size):
                for pop in range(cfg.population_count):
                    if pop != 0:
                        self.seeds[pop] = self.streams.new_seed()
                    self.populations[pop].append(self._new_policy(pop))
                self._evaluate_index(index)
        elif self.seeds[0] != 0:
            self.populations = [self._seeded_population(pop) for pop in range(cfg.population_count)]
            self.streams.reseed_goal(self.seeds[0])
            self._enter(EngineState.EVALUATING_INITIAL)
            for index in range(cfg.population_size):
                self._evaluate_index(index)
        else:
            logger.info("[EVOLVE] continuing from the existing population")
            for pop, members in enumerate(self.populations):
                for index, member in enumerate(members):
                    if member.fitness is not None:
                        self.fitnesses[pop][index] = member.fitness
        logger.info(f"[EVOLVE] initialised {cfg.population_count} population(s), seeds={self.seeds}")

    def _seeded_population(self, pop: int) -> List[Policy]:
        cfg = self.cfg
        if cfg.start_from_parsed_weights and pop == 0:
            genomes = parse_population_file(cfg.weights_file, layer_schedule(cfg.aware[pop]))
            if not genomes:
                raise GenomeParseError(f"no genomes found in {cfg.weights_file}")
            return [
                Policy(genomes[i % len(genomes)].copy(), aware=cfg.aware[pop], repel_agents=cfg.repel_agents)
                for i in range(cfg.population_size)
            ]
        if self.seeds[pop] == 0:
            self.seeds[pop] = self.streams.new_seed()
        else:
            self.streams.reseed_main(self.seeds[pop])
        return [self._new_policy(pop) for _ in range(cfg.population_size)]

    def _new_policy(self, pop: int) -> Policy:
        return Policy.random(self.streams.main, aware=self.cfg.aware[pop], repel_agents=self.cfg.repel_agents)

    def _evaluate_index(self, index: int) -> None:
        members = [population[index] for population in self.populations]
        self.evaluate(members, 0)
        for pop, member in enumerate(members):
            self.fitnesses[pop][index] = member.fitness

    # ─── One generation ─────────────────────────────────────────────────────
    def run_generation(self, gen: int) -> BreedStrategy:
        cfg = self.cfg
        self.generation = gen

        self._enter(EngineState.TOURNAMENT_SELECT)
        indexes = [
            draw_tournament(self.streams.main, cfg.population_size, cfg.tournament_size)
            for _ in range(cfg.population_count)
        ]

        self._enter(EngineState.EVALUATE_TOURNAMENT)
        tournament_fitness = [[0.0] * cfg.tournament_size for _ in range(cfg.population_count)]
        for t in range(cfg.tournament_size):
            members = [self.populations[pop][indexes[pop][t]] for pop in range(cfg.population_count)]
            self.evaluate(members, gen)
            for pop, member in enumerate(members):
                tournament_fitness[pop][t] = member.fitness
                self.fitnesses[pop][indexes[pop][t]] = member.fitness

        worst = []
        for pop in range(cfg.population_count):
            best_t = find_best(tournament_fitness[pop])
            self.current_best[pop] = self.populations[pop][indexes[pop][best_t]]
            if self.logs:
                self.logs[pop].record(gen, self.current_best[pop].status_record(self.multi_environment))
            worst.append(find_worst(tournament_fitness[pop]))

        self._enter(EngineState.BREED)
        strategy = choose_strategy(float(self.streams.goal.random()), cfg.goal_rationality, ActionType(cfg.action_type))
        offspring = []
        for pop in range(cfg.population_count):
            parents = [
                self.populations[pop][indexes[pop][t]].genome
                for t in range(cfg.tournament_size) if t != worst[pop]
            ]
            ctx = BreedContext(
                parents=parents,
                population=[member.genome for member in self.populations[pop]],
                rng=self.streams.main,
                use_neuromodulation=cfg.use_neuromodulation,
            )
            replaced = indexes[pop][worst[pop]]
            child = self.populations[pop][replaced].spawn(self.registry.apply(strategy, ctx))
            self.populations[pop][replaced] = child
            offspring.append(child)

        self._enter(EngineState.EVALUATE_OFFSPRING)
        self.evaluate(offspring, gen)
        for pop, child in enumerate(offspring):
            self.fitnesses[pop][indexes[pop][worst[pop]]] = child.fitness

        self._enter(EngineState.LOG)
        for pop in range(cfg.population_count):
            stats = self.population_stats(pop)
            if self.db is not None:
                self.db.record_generation(pop, gen, stats["best"], stats["worst"],
                                          stats["mean"], stats["std"], strategy.name)
        logger.debug(f"[EVOLVE] gen {gen}: strategy={strategy.name} best={self.fitnesses.max():.3f}")
        return strategy

    # ─── Evaluation ─────────────────────────────────────────────────────────
    def evaluate(self, members: Sequence[Policy], gen: int) -> None:
        """
        One fitness evaluation for the members that share a population index.
        With several environments, fitness is the sum over all of them.
        """
        if not self.multi_environment:
            roster = list(members)
            if not self.cfg.consistent_partner:
                roster.append(self._stranger(gen))
            results = self._run_episode(roster)
            for member, result in zip(members, results):
                member.record_episode(result.fitness, result.as_record())
            return

        for member in members:
            member.reset_cumulative_fitness()
        for env in range(self.cfg.num_environments):
            if env % 2 == 0:
                # alone
                for member in members:
                    self._accumulate([member], self._run_episode([member]))
            elif self.cfg.consistent_partner:
                self._accumulate(members, self._run_episode(list(members)))
            else:
                seed = gen if env == 1 else gen + self.cfg.generations * (env // 2)
                stranger = self._stranger(seed)
                self._accumulate(members, self._run_episode([members[0], stranger]))
        for member in members:
            member.set_total_fitness()

    @staticmethod
    def _accumulate(members: Sequence[Policy], results: Sequence[EpisodeResult]) -> None:
        for member, result in zip(members, results):
            member.add_episode(result.fitness, result.as_record())

    def _run_episode(self, roster: Sequence[Policy]) -> List[EpisodeResult]:
        episode = self.environment.reset_episode(roster)
        for _ in range(self.cfg.time_steps):
            _, done = self.environment.step(episode)
            if done:
                break
        return self.environment.evaluate(episode)

    def _stranger(self, seed: int) -> Policy:
        """A partner drawn from its own generator, unrelated to any population."""
        aware = self.cfg.aware[1] if len(self.cfg.aware) > 1 else False
        return Policy.random(np.random.default_rng(seed), aware=aware, repel_agents=self.cfg.repel_agents)

    # ─── Statistics ─────────────────────────────────────────────────────────
    def population_stats(self, pop: int) -> Dict[str, float]:
        values = self.fitnesses[pop]
        return {
            "best": float(values.max()),
            "worst": float(values.min()),
            "mean": float(values.mean()),
            "std": float(values.std()),
        }

    # ─── Output ─────────────────────────────────────────────────────────────
    def run_directory(self) -> str:
        return os.path.join(self.cfg.output_dir, str(self.seeds[0]))

    def _open_logs(self) -> None:
        if self.cfg.output_dir is None:
            return
        directory = self.run_directory()
        self.logs = []
        for pop in range(self.cfg.population_count):
            log = GenerationLog(os.path.join(directory, f"generationStats-agent{pop}.csv"))
            log.write_header(pop, self.seeds[pop], self.cfg.aware[pop], self.cfg.num_environments)
            self.logs.append(log)
        logger.info(f"[EVOLVE] writing generation stats to {directory}")

    def finalise(self) -> None:
        self._enter(EngineState.FINALIZING)
        for pop in range(self.cfg.population_count):
            best = self.current_best[pop]
            if best is None:
                best = self.populations[pop][find_best(self.fitnesses[pop])]
                self.current_best[pop] = best
            if self.logs:
                self.logs[pop].write_genome(pop, best.genome, self.seeds[pop])
                self.logs[pop].write_footer(time.time() - self._start)
            if self.db is not None:
                self.db.record_champion(pop, self.seeds[pop], best.fitness, best.genome)
            logger.info(f"[EVOLVE] population {pop} finished, best fitness {best.fitness}")
        logger.info(f"[EVOLVE] strategies applied: {self.registry.applied}")
        self._enter(EngineState.DONE)
