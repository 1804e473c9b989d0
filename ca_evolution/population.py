"""Populations of candidate rules and their fitness scores."""

import numpy as np
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .automaton import RULE_SIZE, Rule
from .exceptions import ConfigurationError, IntegrityError


@dataclass
class Individual:
    """A candidate rule with its fitness score."""
    rule: Rule
    fitness: float = 0.0


class Population:
    """Fixed-size ordered collection of individuals."""

    def __init__(self, individuals: Sequence[Individual]):
        self.individuals: List[Individual] = list(individuals)

    @classmethod
    def random(
        cls,
        size: int,
        rng: Optional[np.random.Generator] = None,
        rule_density: float = 0.35,
    ) -> "Population":
        """Create a population of random rules, all with fitness 0."""
        if size < 4 or size % 4 != 0:
            raise ConfigurationError(f"Population size must be a positive multiple of 4, got {size}")
        if rng is None:
            rng = np.random.default_rng()
        return cls([Individual(rule=Rule.random(rng, rule_density)) for _ in range(size)])

    @property
    def size(self) -> int:
        return len(self.individuals)

    @property
    def rules(self) -> List[Rule]:
        return [ind.rule for ind in self.individuals]

    @property
    def fitness(self) -> List[float]:
        return [ind.fitness for ind in self.individuals]

    def assign_fitness(self, scores: Sequence[float]):
        """Store one evaluation result per individual, index-aligned."""
        if len(scores) != self.size:
            raise IntegrityError(f"Expected {self.size} fitness values, got {len(scores)}")
        for ind, score in zip(self.individuals, scores):
            if score < 0:
                raise IntegrityError(f"Fitness must be non-negative, got {score}")
            ind.fitness = float(score)

    def clear_fitness(self):
        for ind in self.individuals:
            ind.fitness = 0.0

    def average_fitness(self) -> float:
        return float(np.mean(self.fitness))

    def best(self) -> Tuple[int, Individual]:
        """Highest-fitness individual; the lowest index wins ties."""
        index = int(np.argmax(self.fitness))
        return index, self.individuals[index]

    def top(self, n: int = 10) -> List[Tuple[int, Individual]]:
        """The n best individuals with their indices, ties by index."""
        order = sorted(range(self.size), key=lambda i: (-self.individuals[i].fitness, i))
        return [(i, self.individuals[i]) for i in order[:n]]

    def copy(self) -> "Population":
        # Rules are read-only so they can be shared
        return Population([Individual(rule=ind.rule, fitness=ind.fitness) for ind in self.individuals])

    def to_payload(self) -> Dict[str, list]:
        """Plain lists suitable for JSON: rules as 0/1 lists, fitness as floats."""
        return {
            "population": [ind.rule.to_list() for ind in self.individuals],
            "fitness": self.fitness,
        }

    @classmethod
    def from_payload(
        cls,
        rules: Sequence[Sequence[int]],
        fitness: Optional[Sequence[float]] = None,
        expected_size: Optional[int] = None,
    ) -> "Population":
        """
        Rebuild a population from stored lists.

        Raises IntegrityError when the lengths disagree with each other, with
        expected_size, or when a rule is not a 512-entry 0/1 sequence.
        """
        if expected_size is not None and len(rules) != expected_size:
            raise IntegrityError(f"Expected {expected_size} rules, found {len(rules)}")
        if fitness is None:
            fitness = [0.0] * len(rules)
        if len(fitness) != len(rules):
            raise IntegrityError(f"Found {len(fitness)} fitness values for {len(rules)} rules")

        individuals = []
        for i, (bits, score) in enumerate(zip(rules, fitness)):
            if len(bits) != RULE_SIZE:
                raise IntegrityError(f"Rule {i} has {len(bits)} genes, expected {RULE_SIZE}")
            if score is None or score < 0:
                raise IntegrityError(f"Rule {i} has invalid fitness {score!r}")
            individuals.append(Individual(rule=Rule(bits), fitness=float(score)))
        return cls(individuals)

    def __len__(self):
        return self.size

    def __iter__(self) -> Iterator[Individual]:
        return iter(self.individuals)

    def __getitem__(self, index: int) -> Individual:
        return self.individuals[index]
