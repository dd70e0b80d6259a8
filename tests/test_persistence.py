import duckdb
import numpy as np

from genome import Genome
from persistence import GenerationLog, RunDB, header_columns


def test_init_tables_adds_missing_columns(tmp_path):
    db_path = tmp_path / "runs.db"
    conn = duckdb.connect(str(db_path))
    conn.execute("CREATE TABLE generations (ts TIMESTAMP, population INT, generation INT)")
    conn.close()

    db = RunDB(path=str(db_path))
    db.record_generation(0, 1, 10.0, 1.0, 5.0, 2.0, "traditional")
    rows = db.conn.execute("SELECT * FROM generations").fetchall()
    assert len(rows) == 1
    assert len(rows[0]) == 8
    db.close()


def test_load_generations_returns_frame():
    db = RunDB()
    db.record_generation(0, 1, 10.0, 1.0, 5.0, 2.0, "goal_rational")
    db.record_generation(1, 1, 8.0, 0.0, 4.0, 1.5, "goal_rational")
    db.record_generation(0, 2, 12.0, 2.0, 6.0, 2.5, "random")

    df = db.load_generations()
    assert len(df) == 3
    assert {"best_fitness", "std_fitness", "strategy"} <= set(df.columns)

    first = db.load_generations(population=0)
    assert list(first["generation"]) == [1, 2]
    assert list(first["strategy"]) == ["goal_rational", "random"]
    db.close()


def test_champion_genome_is_stored_as_text():
    db = RunDB()
    genome = Genome.random(np.random.default_rng(1))
    db.record_champion(0, 1234, 42.5, genome)
    seed, text = db.conn.execute("SELECT seed, genome FROM champions").fetchone()
    assert seed == 1234
    assert Genome.from_text(text).same_as(genome)
    db.close()


def test_header_columns():
    assert header_columns(1).split(",")[:3] == ["gen", "fitness1", "movesMade1"]
    multi = header_columns(2).split(",")
    assert len(multi) == 1 + 16 + 1
    assert "successful2" in multi
    assert multi[-1] == "totalFitness"


def test_generation_log_buffers_until_flush(tmp_path):
    path = tmp_path / "run" / "generationStats-agent0.csv"
    log = GenerationLog(str(path))
    log.write_header(0, 11, False, 1)
    log.record(1, "3.0,4,t,f,f,0,0,f")

    text = path.read_text(encoding="utf-8")
    assert text.startswith("Agent 0: 11, aware: false\n")
    assert "\n1," not in text

    log.flush()
    assert "\n1,3.0,4,t,f,f,0,0,f\n" in path.read_text(encoding="utf-8")


def test_generation_log_genome_block_and_footer(tmp_path):
    path = tmp_path / "log.csv"
    log = GenerationLog(str(path))
    log.record(7, "1.0")
    log.write_genome(1, Genome.random(np.random.default_rng(2)), 99)
    log.write_footer(1.5)

    text = path.read_text(encoding="utf-8")
    assert text.index("7,1.0") < text.index("Weights1---")
    assert "End of Weights1---" in text
    assert "Seed: 99" in text
    assert "Elapsed time: 1.500 seconds" in text
