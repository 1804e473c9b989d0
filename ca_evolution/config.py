"""
Run configuration.

Defaults: an 89x89 torus, 50 iterations per evaluation, 200 rules, 20%
mutation chance with up to 32 flipped genes, density-gated symmetry fitness.
"""

import yaml
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List

from .automaton import MIN_GRID_SIZE
from .exceptions import ConfigurationError

STRATEGIES = ("density_symmetry", "pattern_match")
MATCH_MODES = ("total_matches", "best_match")

DEFAULT_PATTERN = [
    [1, 0, 1, 0, 1],
    [0, 0, 1, 0, 0],
    [0, 1, 0, 1, 0],
    [1, 0, 0, 0, 1],
    [1, 0, 1, 0, 1],
]


@dataclass
class FitnessConfig:
    """Selects and parameterizes the fitness strategy."""
    strategy: str = "density_symmetry"
    # density_symmetry
    min_density: float = 0.3
    max_density: float = 0.4
    patch_size: int = 3
    # pattern_match
    pattern: List[List[int]] = field(default_factory=lambda: [row[:] for row in DEFAULT_PATTERN])
    tolerance: int = 1
    mode: str = "total_matches"
    include_mirrors: bool = False
    # Sum the score over this many trailing iterations (1 = final grid only)
    score_last: int = 1

    def validate(self):
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(f"Unknown fitness strategy '{self.strategy}', expected one of {STRATEGIES}")
        if not 0.0 <= self.min_density <= self.max_density <= 1.0:
            raise ConfigurationError(
                f"Density bounds must satisfy 0 <= min <= max <= 1, got [{self.min_density}, {self.max_density}]"
            )
        if self.patch_size < 1 or self.patch_size % 2 == 0:
            raise ConfigurationError(f"Patch size must be a positive odd number, got {self.patch_size}")
        if not self.pattern or not self.pattern[0]:
            raise ConfigurationError("Target pattern must not be empty")
        width = len(self.pattern[0])
        for row in self.pattern:
            if len(row) != width:
                raise ConfigurationError("Target pattern rows must all have the same length")
            if any(cell not in (0, 1) for cell in row):
                raise ConfigurationError("Target pattern cells must be 0 or 1")
        if self.tolerance < 0:
            raise ConfigurationError(f"Match tolerance must be >= 0, got {self.tolerance}")
        if self.mode not in MATCH_MODES:
            raise ConfigurationError(f"Unknown match mode '{self.mode}', expected one of {MATCH_MODES}")
        if self.score_last < 1:
            raise ConfigurationError(f"score_last must be >= 1, got {self.score_last}")


@dataclass
class RunConfig:
    """Everything needed to reproduce a run, persisted next to the population."""
    population_size: int = 200
    width: int = 89
    height: int = 89
    iterations: int = 50
    mutation_rate: float = 20.0  # percent chance that an individual mutates
    max_genes_per_mutation: int = 32
    initial_density: float = 0.5  # live-cell probability of evaluation grids
    rule_density: float = 0.35  # 1-gene probability of freshly created rules
    workers: int = 1
    fitness: FitnessConfig = field(default_factory=FitnessConfig)

    def validate(self) -> "RunConfig":
        """Raise ConfigurationError on the first invalid parameter."""
        if self.width < MIN_GRID_SIZE or self.height < MIN_GRID_SIZE:
            raise ConfigurationError(
                f"Grid must be at least {MIN_GRID_SIZE}x{MIN_GRID_SIZE}, got {self.width}x{self.height}"
            )
        if self.population_size < 4 or self.population_size % 4 != 0:
            raise ConfigurationError(
                f"Population size must be a positive multiple of 4, got {self.population_size}"
            )
        if not 0 < self.mutation_rate <= 100:
            raise ConfigurationError(f"Mutation rate must be in (0, 100], got {self.mutation_rate}")
        if self.max_genes_per_mutation < 1:
            raise ConfigurationError(
                f"Max genes per mutation must be >= 1, got {self.max_genes_per_mutation}"
            )
        if self.iterations < 1:
            raise ConfigurationError(f"Iterations per evaluation must be >= 1, got {self.iterations}")
        if not 0.0 <= self.initial_density <= 1.0:
            raise ConfigurationError(f"Initial density must be in [0, 1], got {self.initial_density}")
        if not 0.0 <= self.rule_density <= 1.0:
            raise ConfigurationError(f"Rule density must be in [0, 1], got {self.rule_density}")
        if self.workers < 1:
            raise ConfigurationError(f"Workers must be >= 1, got {self.workers}")
        self.fitness.validate()
        if self.fitness.score_last > self.iterations:
            raise ConfigurationError(
                f"score_last ({self.fitness.score_last}) cannot exceed iterations ({self.iterations})"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunConfig":
        data = dict(data)
        fitness_data = data.pop("fitness", {}) or {}
        _check_keys(cls, data)
        _check_keys(FitnessConfig, fitness_data)
        return cls(fitness=FitnessConfig(**fitness_data), **data)


def _check_keys(dataclass_type, data: Dict[str, Any]):
    known = {f.name for f in fields(dataclass_type)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {dataclass_type.__name__} keys: {', '.join(unknown)}")


def load_config(config_path: str) -> RunConfig:
    """
    Load and validate a run configuration from a YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Validated RunConfig
    """
    config_file = Path(config_path)
    try:
        with open(config_file, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read configuration {config_file}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration {config_file} must contain a mapping")

    return RunConfig.from_dict(data).validate()


def save_config(config: RunConfig, config_path: str):
    """Write a configuration as YAML."""
    config_file = Path(config_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
