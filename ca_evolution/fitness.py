"""Fitness strategies for scoring the final state of a simulated rule."""

import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Type

from .automaton import Rule, random_grid, step
from .config import FitnessConfig
from .exceptions import ConfigurationError


def _shifted(grid: np.ndarray, dy: int, dx: int) -> np.ndarray:
    """View of the torus where cell [y, x] holds grid[y + dy, x + dx]."""
    return np.roll(grid, (-dy, -dx), axis=(0, 1))


class FitnessStrategy(ABC):
    """
    Pure scoring function over a grid.

    Subclasses implement score(); evaluate_rule() sums it over the last
    `score_last` grid states of a simulation.
    """

    name = "base"

    def __init__(self, score_last: int = 1):
        if score_last < 1:
            raise ConfigurationError(f"score_last must be >= 1, got {score_last}")
        self.score_last = score_last

    @abstractmethod
    def score(self, grid: np.ndarray) -> float:
        """Score a single grid. Must not modify it."""

    @abstractmethod
    def max_score(self, width: int, height: int) -> float:
        """Upper bound of score() for a grid of the given size."""

    def __repr__(self):
        return f"{type(self).__name__}(score_last={self.score_last})"


class DensitySymmetry(FitnessStrategy):
    """
    Density-gated local symmetry.

    Grids whose live-cell density falls outside [min_density, max_density]
    score 0, which rules out the trivial all-dead and all-alive solutions.
    Otherwise every cell is taken as the top-left corner of a K x K patch and
    the symmetric cell pairs of that patch are counted under three mirrors:
    rows (i <-> K-1-i), columns (j <-> K-1-j) and the main diagonal
    ((i, j) <-> (j, i), diagonal cells excluded).
    """

    name = "density_symmetry"

    def __init__(
        self,
        min_density: float = 0.3,
        max_density: float = 0.4,
        patch_size: int = 3,
        score_last: int = 1,
    ):
        super().__init__(score_last)
        if patch_size < 1 or patch_size % 2 == 0:
            raise ConfigurationError(f"Patch size must be a positive odd number, got {patch_size}")
        self.min_density = min_density
        self.max_density = max_density
        self.patch_size = patch_size
        self._pairs = self._symmetric_pairs(patch_size)

    @staticmethod
    def _symmetric_pairs(k: int) -> List[tuple]:
        pairs = []
        for i in range(k // 2):
            for j in range(k):
                pairs.append(((i, j), (k - 1 - i, j)))
        for j in range(k // 2):
            for i in range(k):
                pairs.append(((i, j), (i, k - 1 - j)))
        for i in range(k):
            for j in range(i):
                pairs.append(((i, j), (j, i)))
        return pairs

    def density(self, grid: np.ndarray) -> float:
        return float(np.mean(grid))

    def score(self, grid: np.ndarray) -> float:
        density = self.density(grid)
        if density < self.min_density or density > self.max_density:
            return 0.0

        # On a torus, counting a pair over every patch position equals comparing
        # the grid with itself shifted by the pair's offset.
        total = 0
        for (i1, j1), (i2, j2) in self._pairs:
            total += np.count_nonzero(grid == _shifted(grid, i2 - i1, j2 - j1))
        return float(total)

    def max_score(self, width: int, height: int) -> float:
        return float(width * height * len(self._pairs))

    def __repr__(self):
        return (f"DensitySymmetry(density=[{self.min_density}, {self.max_density}], "
                f"patch={self.patch_size}, score_last={self.score_last})")


class PatternMatch(FitnessStrategy):
    """
    Count occurrences of a target pattern in any of its 90-degree rotations.

    At every toroidal position each orientation is compared cell by cell.
    In "total_matches" mode the score is the number of (position, orientation)
    pairs with at most `tolerance` mismatched cells. In "best_match" mode it is
    the largest number of matching cells seen at any position and orientation.
    """

    name = "pattern_match"

    def __init__(
        self,
        pattern: Sequence[Sequence[int]],
        tolerance: int = 1,
        mode: str = "total_matches",
        include_mirrors: bool = False,
        score_last: int = 1,
    ):
        super().__init__(score_last)
        pattern = np.array(pattern, dtype=np.uint8)
        if pattern.ndim != 2 or pattern.size == 0:
            raise ConfigurationError("Target pattern must be a non-empty 2D array")
        if tolerance < 0:
            raise ConfigurationError(f"Match tolerance must be >= 0, got {tolerance}")
        if mode not in ("total_matches", "best_match"):
            raise ConfigurationError(f"Unknown match mode '{mode}'")
        self.pattern = pattern
        self.tolerance = tolerance
        self.mode = mode
        self.include_mirrors = include_mirrors
        self.orientations = self.build_orientations(pattern, include_mirrors)

    @staticmethod
    def build_orientations(pattern: np.ndarray, include_mirrors: bool = False) -> List[np.ndarray]:
        """The pattern rotated clockwise by 0, 90, 180 and 270 degrees (plus mirror images)."""
        bases = [pattern, np.fliplr(pattern)] if include_mirrors else [pattern]
        return [np.ascontiguousarray(np.rot90(base, -turns)) for base in bases for turns in range(4)]

    def mismatches(self, grid: np.ndarray, orientation: np.ndarray) -> np.ndarray:
        """Mismatched cell count with the orientation's top-left corner at each cell."""
        counts = np.zeros(grid.shape, dtype=np.int32)
        ph, pw = orientation.shape
        for dy in range(ph):
            for dx in range(pw):
                counts += _shifted(grid, dy, dx) != orientation[dy, dx]
        return counts

    def score(self, grid: np.ndarray) -> float:
        if self.mode == "best_match":
            best = 0
            for orientation in self.orientations:
                matched = orientation.size - int(self.mismatches(grid, orientation).min())
                best = max(best, matched)
            return float(best)

        total = 0
        for orientation in self.orientations:
            total += np.count_nonzero(self.mismatches(grid, orientation) <= self.tolerance)
        return float(total)

    def max_score(self, width: int, height: int) -> float:
        if self.mode == "best_match":
            return float(self.pattern.size)
        return float(width * height * len(self.orientations))

    def __repr__(self):
        return (f"PatternMatch(pattern={self.pattern.shape}, tolerance={self.tolerance}, "
                f"mode={self.mode}, orientations={len(self.orientations)}, score_last={self.score_last})")


STRATEGY_TYPES: Dict[str, Type[FitnessStrategy]] = {
    DensitySymmetry.name: DensitySymmetry,
    PatternMatch.name: PatternMatch,
}


def build_strategy(config: FitnessConfig) -> FitnessStrategy:
    """Instantiate the strategy selected by a FitnessConfig."""
    config.validate()
    if config.strategy == DensitySymmetry.name:
        return DensitySymmetry(
            min_density=config.min_density,
            max_density=config.max_density,
            patch_size=config.patch_size,
            score_last=config.score_last,
        )
    return PatternMatch(
        pattern=config.pattern,
        tolerance=config.tolerance,
        mode=config.mode,
        include_mirrors=config.include_mirrors,
        score_last=config.score_last,
    )


def evaluate_rule(
    rule: Rule,
    strategy: FitnessStrategy,
    width: int = 89,
    height: int = 89,
    iterations: int = 50,
    initial_density: float = 0.5,
    rng: Optional[np.random.Generator] = None,
) -> float:
    """
    Simulate a rule from a random grid and score the result.

    Args:
        rule: Transition rule to evaluate
        strategy: Fitness strategy applied to the trailing grid states
        width: Grid width
        height: Grid height
        iterations: Number of steps to simulate
        initial_density: Live-cell probability of the starting grid
        rng: Random generator for the starting grid

    Returns:
        Non-negative fitness score
    """
    grid = random_grid(width, height, initial_density, rng)
    first_scored = iterations - strategy.score_last

    fitness = 0.0
    for i in range(iterations):
        grid = step(grid, rule)
        if i >= first_scored:
            fitness += strategy.score(grid)
    return fitness
