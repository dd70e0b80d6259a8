import numpy as np
import pytest

import evolution
from evolution import (
    ConfigurationError,
    EngineState,
    EvolutionEngine,
    MissingPopulationError,
    draw_tournament,
    find_best,
    find_worst,
)
from persistence import GenerationLog, RunDB
from policy import Policy
from random_streams import RandomStreams
from rcd_core import Config
from settings import LAYER_SIZES
from weights_parser import parse_population_file
from world import EpisodeResult


class FakeWorld:
    """Scores policies from a lookup table; one tick per episode."""

    def __init__(self):
        self.episodes = []
        self.scores = {}

    def reset_episode(self, policies):
        self.episodes.append(list(policies))
        return list(policies)

    def step(self, episode):
        return [], True

    def evaluate(self, episode):
        return [
            EpisodeResult(self.scores.get(id(p), 0.0), 1, True, False, False, 0, 0, False)
            for p in episode
        ]


def _small(**overrides):
    params = dict(population_size=5, generations=2, time_steps=4, output_dir=None)
    params.update(overrides)
    return Config(**params)


def test_best_and_worst_scan():
    assert find_best([2.0, 5.0, 1.0]) == 1
    assert find_worst([2.0, 5.0, 1.0]) == 2


def test_ties_go_to_first_index():
    assert find_best([3.0, 3.0, 1.0]) == 0
    assert find_worst([1.0, 3.0, 1.0]) == 0


def test_tournament_indices_are_distinct():
    rng = np.random.default_rng(0)
    for _ in range(200):
        picks = draw_tournament(rng, 25, 3)
        assert len(set(picks)) == 3
        assert all(0 <= i < 25 for i in picks)
    assert sorted(draw_tournament(rng, 4, 4)) == [0, 1, 2, 3]


def test_two_populations_need_consistent_partner():
    with pytest.raises(ConfigurationError):
        EvolutionEngine(_small(population_count=2, consistent_partner=False))


def test_tournament_cannot_exceed_population():
    with pytest.raises(ConfigurationError):
        EvolutionEngine(_small(population_size=3, tournament_size=4))


def test_parsed_weights_need_a_file():
    with pytest.raises(ConfigurationError):
        EvolutionEngine(_small(start_from_parsed_weights=True))


def test_resume_without_population_fails():
    engine = EvolutionEngine(_small(from_random=False, seeds=[0, 0]), environment=FakeWorld())
    with pytest.raises(MissingPopulationError):
        engine.initialise()


def test_whole_population_is_evaluated_before_first_tournament():
    world = FakeWorld()
    engine = EvolutionEngine(_small(population_size=25), environment=world, streams=RandomStreams(1))
    engine.initialise()
    assert engine.state == EngineState.EVALUATING_INITIAL
    assert len(world.episodes) == 25
    assert len({id(ep[0]) for ep in world.episodes}) == 25
    assert all(p.fitness is not None for p in engine.populations[0])


def test_generation_replaces_tournament_worst(monkeypatch):
    world = FakeWorld()
    engine = EvolutionEngine(_small(goal_rationality=1.0), environment=world, streams=RandomStreams(2))
    engine.initialise()
    before = list(engine.populations[0])
    for member, score in zip(before[:3], (2.0, 5.0, 1.0)):
        world.scores[id(member)] = score
    monkeypatch.setattr(evolution, "draw_tournament", lambda rng, n, k: [0, 1, 2])

    strategy = engine.run_generation(1)

    assert strategy.name == "goal_rational"
    assert engine.populations[0][0] is before[0]
    assert engine.populations[0][1] is before[1]
    assert engine.populations[0][2] is not before[2]
    assert engine.current_best[0] is before[1]
    assert engine.fitnesses[0][1] == 5.0
    assert engine.fitnesses[0][2] == 0.0
    assert engine.state == EngineState.LOG


def test_population_stats():
    engine = EvolutionEngine(_small(), environment=FakeWorld())
    engine.fitnesses[0] = [1.0, 2.0, 3.0, 4.0, 5.0]
    stats = engine.population_stats(0)
    assert stats["best"] == 5.0 and stats["worst"] == 1.0
    assert stats["mean"] == pytest.approx(3.0)
    assert stats["std"] == pytest.approx(np.std([1, 2, 3, 4, 5]))


def test_seeded_start_is_reproducible():
    cfg = _small(from_random=False, seeds=[42, 0])
    first = EvolutionEngine(cfg, environment=FakeWorld(), streams=RandomStreams(1))
    second = EvolutionEngine(cfg, environment=FakeWorld(), streams=RandomStreams(99))
    first.initialise()
    second.initialise()
    for a, b in zip(first.populations[0], second.populations[0]):
        assert a.genome.same_as(b.genome)


def test_start_from_parsed_weights(tmp_path):
    champion = Policy.random(np.random.default_rng(8)).genome
    path = tmp_path / "previous.csv"
    log = GenerationLog(str(path))
    log.write_genome(0, champion, 8)
    cfg = _small(from_random=False, seeds=[5], start_from_parsed_weights=True, weights_file=str(path))
    engine = EvolutionEngine(cfg, environment=FakeWorld())
    engine.initialise()
    assert len(engine.populations[0]) == 5
    assert all(p.genome.same_as(champion) for p in engine.populations[0])
    engine.populations[0][0].genome.layer_weights[0][0, 0] += 1.0
    assert engine.populations[0][1].genome.same_as(champion)


def test_resume_from_existing_population():
    rng = np.random.default_rng(4)
    population = [Policy.random(rng) for _ in range(5)]
    world = FakeWorld()
    engine = EvolutionEngine(_small(from_random=False, seeds=[0]), environment=world, populations=[population])
    engine.run()
    assert len(engine.populations[0]) == 5
    assert engine.state == EngineState.DONE


def test_random_partner_adds_stranger():
    world = FakeWorld()
    engine = EvolutionEngine(_small(consistent_partner=False), environment=world)
    engine.initialise()
    assert all(len(ep) == 2 for ep in world.episodes)


def test_multi_environment_sums_fitness():
    world = FakeWorld()
    engine = EvolutionEngine(
        _small(num_environments=2, consistent_partner=False), environment=world, streams=RandomStreams(3)
    )
    engine.initialise()
    member = engine.populations[0][0]
    world.scores[id(member)] = 2.5
    engine.evaluate([member], 1)
    assert member.fitness == pytest.approx(5.0)
    record = member.status_record(multi_environment=True)
    assert len(record.split(",")) == 17
    assert record.endswith("5.0")


def test_end_to_end_run(tmp_path):
    cfg = _small(population_size=4, output_dir=str(tmp_path))
    db = RunDB()
    engine = EvolutionEngine(cfg, streams=RandomStreams(7), db=db)
    champions = engine.run()

    assert len(champions) == 1
    log_path = tmp_path / str(engine.seeds[0]) / "generationStats-agent0.csv"
    text = log_path.read_text(encoding="utf-8")
    assert text.startswith(f"Agent 0: {engine.seeds[0]}, aware: false")
    assert "\n1," in text and "\n2," in text
    assert "End of Run" in text

    parsed = parse_population_file(str(log_path), LAYER_SIZES)
    assert len(parsed) == 1
    assert parsed[0].same_as(champions[0].genome)

    df = db.load_generations()
    assert list(df["generation"]) == [1, 2]
    db.close()
