"""
Tests for Fitness Strategies
"""

import pytest
import numpy as np

from ca_evolution.automaton import Rule
from ca_evolution.config import DEFAULT_PATTERN, FitnessConfig
from ca_evolution.exceptions import ConfigurationError
from ca_evolution.fitness import (
    DensitySymmetry,
    PatternMatch,
    STRATEGY_TYPES,
    build_strategy,
    evaluate_rule,
)


def checkerboard(size):
    y, x = np.indices((size, size))
    return ((x + y) % 2).astype(np.uint8)


def test_density_gate_rejects_full_grid():
    """A 10x10 grid of ones (density 1.0) scores 0 with a [0.3, 0.4] window."""
    strategy = DensitySymmetry(min_density=0.3, max_density=0.4)
    grid = np.ones((10, 10), dtype=np.uint8)
    assert strategy.score(grid) == 0


def test_density_gate_rejects_empty_grid():
    strategy = DensitySymmetry(min_density=0.3, max_density=0.4)
    assert strategy.score(np.zeros((10, 10), dtype=np.uint8)) == 0


def test_uniform_grid_is_fully_symmetric():
    """Inside the gate, a uniform grid reaches the maximum score."""
    strategy = DensitySymmetry(min_density=0.0, max_density=1.0, patch_size=3)
    grid = np.ones((7, 9), dtype=np.uint8)

    # 3 row pairs + 3 column pairs + 3 off-diagonal pairs per position
    assert strategy.score(grid) == 7 * 9 * 9
    assert strategy.score(grid) == strategy.max_score(9, 7)


def test_checkerboard_is_fully_symmetric():
    strategy = DensitySymmetry(min_density=0.4, max_density=0.6, patch_size=3)
    assert strategy.score(checkerboard(10)) == strategy.max_score(10, 10)


def test_symmetry_axes_are_counted_independently():
    """Horizontal stripes match every row and column pair but only one diagonal pair."""
    strategy = DensitySymmetry(min_density=0.4, max_density=0.6, patch_size=3)
    grid = np.zeros((10, 10), dtype=np.uint8)
    grid[::2, :] = 1

    # per position: 3 row pairs + 3 column pairs + 1 of 3 diagonal pairs
    assert strategy.score(grid) == 100 * 7


def test_larger_patch_pair_count():
    strategy = DensitySymmetry(min_density=0.0, max_density=1.0, patch_size=5)
    # rows: 2*5, columns: 2*5, diagonal: 10
    assert strategy.max_score(4, 4) == 16 * 30


def test_even_patch_size_rejected():
    with pytest.raises(ConfigurationError):
        DensitySymmetry(patch_size=4)


def test_score_does_not_modify_grid(rng):
    grid = (rng.random((12, 12)) < 0.35).astype(np.uint8)
    before = grid.copy()

    DensitySymmetry(min_density=0.0, max_density=1.0).score(grid)
    PatternMatch(DEFAULT_PATTERN).score(grid)

    assert np.array_equal(grid, before)


def test_orientations_are_clockwise_rotations():
    """Four orientations, each rotated 90 degrees clockwise from the previous."""
    pattern = np.array([[1, 0], [0, 0]])
    orientations = PatternMatch.build_orientations(pattern)

    assert len(orientations) == 4
    assert orientations[1].tolist() == [[0, 1], [0, 0]]
    assert orientations[2].tolist() == [[0, 0], [0, 1]]
    assert orientations[3].tolist() == [[0, 0], [1, 0]]


def test_mirrors_double_orientations():
    pattern = np.array(DEFAULT_PATTERN)
    assert len(PatternMatch.build_orientations(pattern, include_mirrors=True)) == 8


def test_exact_pattern_is_found_at_its_offset():
    """An embedded copy of the pattern yields a zero-mismatch match at that offset."""
    pattern = np.array(DEFAULT_PATTERN, dtype=np.uint8)
    grid = np.zeros((12, 12), dtype=np.uint8)
    x, y = 3, 4
    grid[y:y + 5, x:x + 5] = pattern

    strategy = PatternMatch(pattern, tolerance=1, mode="total_matches")
    mismatches = [strategy.mismatches(grid, o)[y, x] for o in strategy.orientations]

    assert min(mismatches) == 0
    assert strategy.score(grid) >= 1


def test_pattern_found_across_the_wrap():
    """Matches may straddle the grid edge."""
    pattern = np.array(DEFAULT_PATTERN, dtype=np.uint8)
    grid = np.zeros((8, 8), dtype=np.uint8)
    for dy in range(5):
        for dx in range(5):
            grid[(6 + dy) % 8, (5 + dx) % 8] = pattern[dy, dx]

    strategy = PatternMatch(pattern, tolerance=0)
    assert strategy.mismatches(grid, strategy.orientations[0])[6, 5] == 0
    assert strategy.score(grid) >= 1


def test_tolerance_counts_near_misses():
    pattern = np.ones((2, 2), dtype=np.uint8)
    grid = np.zeros((6, 6), dtype=np.uint8)
    grid[1, 1] = grid[1, 2] = grid[2, 1] = 1  # one cell short of the pattern

    strict = PatternMatch(pattern, tolerance=0)
    loose = PatternMatch(pattern, tolerance=1)

    assert strict.score(grid) == 0
    # position (1, 1) matches within tolerance in all four orientations
    assert loose.score(grid) == 4


def test_best_match_mode():
    """best_match reports the most matching cells at any position."""
    pattern = np.array(DEFAULT_PATTERN, dtype=np.uint8)
    grid = np.zeros((12, 12), dtype=np.uint8)
    grid[2:7, 2:7] = pattern

    strategy = PatternMatch(pattern, mode="best_match")
    assert strategy.score(grid) == 25
    assert strategy.max_score(12, 12) == 25

    grid[4, 4] = 1 - grid[4, 4]
    assert strategy.score(grid) == 24


def test_total_matches_max_score():
    strategy = PatternMatch(DEFAULT_PATTERN)
    assert strategy.max_score(10, 10) == 400


def test_invalid_mode_rejected():
    with pytest.raises(ConfigurationError):
        PatternMatch(DEFAULT_PATTERN, mode="sum")


def test_build_strategy_selects_variant():
    """The configured name picks the strategy class."""
    assert isinstance(build_strategy(FitnessConfig()), DensitySymmetry)

    config = FitnessConfig(strategy="pattern_match", tolerance=2, mode="best_match", score_last=3)
    strategy = build_strategy(config)
    assert isinstance(strategy, PatternMatch)
    assert strategy.tolerance == 2
    assert strategy.mode == "best_match"
    assert strategy.score_last == 3
    assert set(STRATEGY_TYPES) == {"density_symmetry", "pattern_match"}


def test_build_strategy_rejects_unknown():
    with pytest.raises(ConfigurationError):
        build_strategy(FitnessConfig(strategy="entropy"))


def test_evaluate_rule_scores_final_grid():
    """The all-zero rule empties the grid; only the final state is scored by default."""
    strategy = DensitySymmetry(min_density=0.0, max_density=1.0)
    fitness = evaluate_rule(Rule.zeros(), strategy, width=6, height=5, iterations=4,
                            rng=np.random.default_rng(0))
    assert fitness == strategy.max_score(6, 5)


def test_evaluate_rule_aggregates_trailing_iterations():
    """score_last sums the score over the last K grid states."""
    strategy = DensitySymmetry(min_density=0.0, max_density=1.0, score_last=3)
    fitness = evaluate_rule(Rule.zeros(), strategy, width=6, height=5, iterations=4,
                            rng=np.random.default_rng(0))
    assert fitness == 3 * strategy.max_score(6, 5)


def test_evaluate_rule_is_reproducible(rng):
    rule = Rule.random(rng)
    strategy = DensitySymmetry(min_density=0.0, max_density=1.0)

    first = evaluate_rule(rule, strategy, 10, 10, 5, rng=np.random.default_rng(7))
    second = evaluate_rule(rule, strategy, 10, 10, 5, rng=np.random.default_rng(7))

    assert first == second
    assert first >= 0


if __name__ == "__main__":
    pytest.main([__file__])
