"""Cellular Automata Rule Evolution - search 512-bit 2D transition rules with a genetic algorithm."""

from .automaton import CellularAutomaton, Rule, run_steps, step
from .config import FitnessConfig, RunConfig, load_config
from .exceptions import ConfigurationError, EvolutionError, IntegrityError, PersistenceError
from .fitness import DensitySymmetry, FitnessStrategy, PatternMatch, build_strategy, evaluate_rule
from .population import Individual, Population
from .search import BestTracker, Breeder, EpochRunner, EvolutionState, GeneticSearch
from .storage import JsonStateStore, MemoryStateStore, StateStore

__all__ = [
    "CellularAutomaton",
    "Rule",
    "step",
    "run_steps",
    "FitnessConfig",
    "RunConfig",
    "load_config",
    "EvolutionError",
    "ConfigurationError",
    "PersistenceError",
    "IntegrityError",
    "FitnessStrategy",
    "DensitySymmetry",
    "PatternMatch",
    "build_strategy",
    "evaluate_rule",
    "Individual",
    "Population",
    "Breeder",
    "BestTracker",
    "EpochRunner",
    "EvolutionState",
    "GeneticSearch",
    "StateStore",
    "JsonStateStore",
    "MemoryStateStore",
]
