"""
Tests for checkpoint storage
"""

import json

import pytest

from ca_evolution.exceptions import PersistenceError
from ca_evolution.search import EvolutionState, GeneticSearch
from ca_evolution.storage import JsonStateStore, MemoryStateStore


def test_empty_directory_has_no_checkpoint(tmp_path):
    assert JsonStateStore(str(tmp_path / "missing")).load() is None
    assert JsonStateStore(str(tmp_path)).load() is None


def test_json_store_round_trip(tmp_path, small_config):
    """A resumed run sees the same population, history and best snapshot."""
    store = JsonStateStore(str(tmp_path / "storage"))
    search = GeneticSearch(small_config, store, seed=3)
    search.run_generations(2)

    state = EvolutionState.from_snapshot(store.load())

    assert state.generation == 2
    assert state.population.rules == search.state.population.rules
    assert state.population.fitness == search.state.population.fitness
    assert state.history.averages == search.state.history.averages
    assert state.history.fitness == search.state.history.fitness
    assert state.best.population.rules == search.state.best.population.rules
    assert state.best.population.fitness == search.state.best.population.fitness
    assert state.best.average == search.state.best.average
    assert state.last_scored.fitness == search.state.last_scored.fitness
    assert state.config == search.state.config


def test_one_file_per_blob(tmp_path, small_config):
    directory = tmp_path / "storage"
    GeneticSearch(small_config, JsonStateStore(str(directory)), seed=3).run_generations(1)

    names = {p.name for p in directory.iterdir()}

    assert {"population.json", "fitness.json", "run_config.json", "meta.json",
            "best_population.json", "epoch_history.json", "epoch_averages.json"} <= names
    assert not any(name.endswith(".tmp") for name in names)

    meta = json.loads((directory / "meta.json").read_text())
    assert meta["generation"] == 1
    run_config = json.loads((directory / "run_config.json").read_text())
    assert run_config["max_fitness"] == 8 * 8 * 9


def test_corrupt_file_raises(tmp_path, small_config):
    directory = tmp_path / "storage"
    GeneticSearch(small_config, JsonStateStore(str(directory)), seed=3).initialize_new_population()
    (directory / "fitness.json").write_text("[0.0, 1.0,")

    with pytest.raises(PersistenceError):
        JsonStateStore(str(directory)).load()


def test_partial_checkpoint_raises(tmp_path, small_config):
    """A population without its fitness file is not silently accepted."""
    directory = tmp_path / "storage"
    GeneticSearch(small_config, JsonStateStore(str(directory)), seed=3).initialize_new_population()
    (directory / "fitness.json").unlink()

    with pytest.raises(PersistenceError):
        JsonStateStore(str(directory)).load()


def test_missing_population_file_is_not_a_fresh_start(tmp_path, small_config):
    """Leftover checkpoint files without population.json are reported, never overwritten."""
    directory = tmp_path / "storage"
    GeneticSearch(small_config, JsonStateStore(str(directory)), seed=3).run_generations(2)
    (directory / "population.json").unlink()
    best_before = (directory / "best_population.json").read_text()

    with pytest.raises(PersistenceError):
        JsonStateStore(str(directory)).load()
    with pytest.raises(PersistenceError):
        GeneticSearch(small_config, JsonStateStore(str(directory)), seed=4).resume()

    assert (directory / "best_population.json").read_text() == best_before


def test_interrupted_save_is_detected(tmp_path, small_config):
    """Blobs from a newer save next to an older meta.json do not load as one checkpoint."""
    directory = tmp_path / "storage"
    search = GeneticSearch(small_config, JsonStateStore(str(directory)), seed=3)
    search.run_generations(1)
    old_meta = (directory / "meta.json").read_text()

    search.run_generations(1)
    (directory / "meta.json").write_text(old_meta)

    with pytest.raises(PersistenceError):
        JsonStateStore(str(directory)).load()


def test_meta_records_every_blob(tmp_path, small_config):
    directory = tmp_path / "storage"
    GeneticSearch(small_config, JsonStateStore(str(directory)), seed=3).run_generations(1)

    meta = json.loads((directory / "meta.json").read_text())

    assert "meta.json" not in meta["blobs"]
    assert {"population.json", "fitness.json", "run_config.json", "best_fitness.json"} <= set(meta["blobs"])


def test_clear_keeps_unrelated_files(tmp_path, small_config):
    directory = tmp_path / "storage"
    store = JsonStateStore(str(directory))
    GeneticSearch(small_config, store, seed=3).initialize_new_population()
    (directory / "notes.txt").write_text("keep me")

    store.clear()

    assert store.load() is None
    assert [p.name for p in directory.iterdir()] == ["notes.txt"]


def test_unserializable_snapshot_raises(tmp_path):
    store = JsonStateStore(str(tmp_path))
    with pytest.raises(PersistenceError):
        store.save({"population": [[0]], "fitness": [object()], "generation": 0})
    assert not any(p.name.endswith(".tmp") for p in tmp_path.iterdir())


def test_memory_store_copies_snapshots():
    store = MemoryStateStore()
    snapshot = {"population": [[0, 1]], "generation": 1}
    store.save(snapshot)
    snapshot["population"][0][0] = 1

    assert store.load()["population"] == [[0, 1]]
    store.clear()
    assert store.load() is None


if __name__ == "__main__":
    pytest.main([__file__])
