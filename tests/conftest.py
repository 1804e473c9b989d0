"""Shared fixtures: small configurations so the GA runs in milliseconds."""

import numpy as np
import pytest

from ca_evolution.config import FitnessConfig, RunConfig
from ca_evolution.storage import MemoryStateStore


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def small_config():
    return RunConfig(
        population_size=8,
        width=8,
        height=8,
        iterations=3,
        mutation_rate=50.0,
        max_genes_per_mutation=4,
        fitness=FitnessConfig(min_density=0.0, max_density=1.0),
    )


@pytest.fixture
def store():
    return MemoryStateStore()
