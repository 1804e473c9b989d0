"""Genetic algorithm for evolving 512-bit cellular automaton rules."""

import logging
import math
import numpy as np
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .automaton import RULE_SIZE, Rule
from .config import RunConfig
from .exceptions import ConfigurationError, IntegrityError, PersistenceError
from .fitness import FitnessStrategy, build_strategy, evaluate_rule
from .population import Individual, Population
from .storage import MemoryStateStore, Snapshot, StateStore

logger = logging.getLogger(__name__)


class Breeder:
    """
    Truncation selection, uniform crossover and gene-flip mutation.

    All randomness comes from the generator passed in, so a fixed seed and an
    identical input population always produce the same next generation.
    """

    def __init__(
        self,
        mutation_rate: float = 20.0,
        max_genes: int = 32,
        rng: Optional[np.random.Generator] = None,
    ):
        if not 0 < mutation_rate <= 100:
            raise ConfigurationError(f"Mutation rate must be in (0, 100], got {mutation_rate}")
        if max_genes < 1:
            raise ConfigurationError(f"Max genes per mutation must be >= 1, got {max_genes}")
        self.mutation_rate = mutation_rate
        self.max_genes = max_genes
        self.rng = rng if rng is not None else np.random.default_rng()

    def select(self, population: Population) -> List[Individual]:
        """Keep the top half by fitness; ties go to the lower original index."""
        if population.size % 4 != 0:
            raise ConfigurationError(f"Population size must be divisible by 4, got {population.size}")
        order = sorted(range(population.size), key=lambda i: (-population[i].fitness, i))
        return [population[i] for i in order[:population.size // 2]]

    def pair(self, survivors: List[Individual]) -> List[Tuple[Individual, Individual]]:
        """Draw distinct pairs uniformly at random until the pool is empty."""
        if len(survivors) % 2 != 0:
            raise ConfigurationError(f"Cannot pair an odd number of survivors ({len(survivors)})")
        order = self.rng.permutation(len(survivors))
        return [(survivors[order[i]], survivors[order[i + 1]]) for i in range(0, len(order), 2)]

    def crossover(self, parent1: Rule, parent2: Rule) -> Tuple[Rule, Rule]:
        """Uniform crossover: a fair coin per gene decides which child gets which parent's gene."""
        heads = self.rng.random(RULE_SIZE) < 0.5
        child1 = np.where(heads, parent1.bits, parent2.bits)
        child2 = np.where(heads, parent2.bits, parent1.bits)
        return Rule(child1), Rule(child2)

    def mutate(self, rule: Rule) -> Rule:
        """
        With probability mutation_rate% flip 1..max_genes randomly chosen genes.

        Positions are drawn independently, so a position drawn twice flips back.
        The input rule is returned untouched when no mutation happens.
        """
        if self.rng.random() >= self.mutation_rate / 100.0:
            return rule
        count = int(self.rng.integers(1, self.max_genes + 1))
        positions = self.rng.integers(0, RULE_SIZE, size=count)
        bits = rule.bits.copy()
        np.bitwise_xor.at(bits, positions, 1)
        return Rule(bits)

    def breed(self, population: Population) -> Population:
        """Produce the next generation: select, pair, cross over, then mutate."""
        survivors = self.select(population)

        offspring: List[Individual] = []
        for parent1, parent2 in self.pair(survivors):
            child1, child2 = self.crossover(parent1.rule, parent2.rule)
            offspring.extend([
                Individual(rule=parent1.rule),
                Individual(rule=parent2.rule),
                Individual(rule=child1),
                Individual(rule=child2),
            ])

        for ind in offspring:
            ind.rule = self.mutate(ind.rule)

        return Population(offspring)


@dataclass
class EpochHistory:
    """Append-only record of every scored generation."""
    fitness: List[List[float]] = field(default_factory=list)
    averages: List[float] = field(default_factory=list)

    def append(self, fitness: List[float], average: float):
        self.fitness.append(list(fitness))
        self.averages.append(float(average))

    def __len__(self):
        return len(self.averages)


class BestTracker:
    """Snapshot of the population with the highest average fitness seen so far."""

    def __init__(self, population: Optional[Population] = None, average: float = -math.inf):
        self.population = population
        self.average = average

    def update(self, population: Population, average: float) -> bool:
        """Replace the snapshot only on a strictly better average."""
        if average > self.average:
            self.population = population.copy()
            self.average = average
            return True
        return False

    @property
    def empty(self) -> bool:
        return self.population is None


@dataclass
class EvolutionState:
    """All mutable state of a run, owned by the caller and passed explicitly."""
    config: RunConfig
    population: Population
    generation: int = 0
    history: EpochHistory = field(default_factory=EpochHistory)
    best: BestTracker = field(default_factory=BestTracker)
    last_scored: Optional[Population] = None
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    @classmethod
    def new(cls, config: RunConfig, rng: Optional[np.random.Generator] = None) -> "EvolutionState":
        """Fresh random population for a validated config."""
        config.validate()
        rng = rng if rng is not None else np.random.default_rng()
        population = Population.random(config.population_size, rng, config.rule_density)
        return cls(config=config, population=population, rng=rng)

    def max_fitness(self) -> float:
        strategy = build_strategy(self.config.fitness)
        return strategy.max_score(self.config.width, self.config.height) * strategy.score_last

    def to_snapshot(self) -> Snapshot:
        payload = self.population.to_payload()
        snapshot: Snapshot = {
            "population": payload["population"],
            "fitness": payload["fitness"],
            "best_population": None,
            "best_fitness": None,
            "best_average_fitness": None,
            "epoch_history": self.history.fitness,
            "epoch_averages": self.history.averages,
            "run_config": dict(self.config.to_dict(), max_fitness=self.max_fitness()),
            "generation": self.generation,
        }
        if not self.best.empty:
            best = self.best.population.to_payload()
            snapshot["best_population"] = best["population"]
            snapshot["best_fitness"] = best["fitness"]
            snapshot["best_average_fitness"] = self.best.average
        if self.last_scored is not None:
            scored = self.last_scored.to_payload()
            snapshot["scored_population"] = scored["population"]
            snapshot["scored_fitness"] = scored["fitness"]
        return snapshot

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Snapshot,
        expected_size: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> "EvolutionState":
        """
        Rebuild a state from a stored snapshot.

        The stored run configuration is authoritative. Raises IntegrityError
        when array lengths disagree with the population size.
        """
        try:
            config_data = dict(snapshot["run_config"])
            config_data.pop("max_fitness", None)
            config = RunConfig.from_dict(config_data).validate()
            size = config.population_size
            if expected_size is not None and size != expected_size:
                raise IntegrityError(
                    f"Stored population size {size} does not match configured size {expected_size}"
                )

            population = Population.from_payload(snapshot["population"], snapshot["fitness"], size)

            best = BestTracker()
            if snapshot.get("best_population") is not None:
                best_population = Population.from_payload(
                    snapshot["best_population"], snapshot.get("best_fitness"), size
                )
                best = BestTracker(best_population, float(snapshot["best_average_fitness"]))

            history = EpochHistory(
                fitness=[list(map(float, v)) for v in snapshot.get("epoch_history") or []],
                averages=[float(a) for a in snapshot.get("epoch_averages") or []],
            )
            if len(history.fitness) != len(history.averages):
                raise IntegrityError(
                    f"Epoch history has {len(history.fitness)} fitness vectors "
                    f"but {len(history.averages)} averages"
                )
            for i, vector in enumerate(history.fitness):
                if len(vector) != size:
                    raise IntegrityError(f"Epoch {i} has {len(vector)} fitness values, expected {size}")

            last_scored = None
            if snapshot.get("scored_population") is not None:
                last_scored = Population.from_payload(
                    snapshot["scored_population"], snapshot.get("scored_fitness"), size
                )

            generation = int(snapshot.get("generation") or 0)
        except (KeyError, TypeError) as exc:
            raise PersistenceError(f"Checkpoint is malformed: {exc!r}") from exc

        return cls(
            config=config,
            population=population,
            generation=generation,
            history=history,
            best=best,
            last_scored=last_scored,
            rng=rng if rng is not None else np.random.default_rng(),
        )


def _evaluate_individual(args) -> float:
    """Worker entry point; takes only picklable, immutable inputs."""
    bits, strategy, width, height, iterations, initial_density, seed = args
    return evaluate_rule(
        Rule(bits),
        strategy,
        width=width,
        height=height,
        iterations=iterations,
        initial_density=initial_density,
        rng=np.random.default_rng(seed),
    )


@dataclass
class EpochStats:
    """Summary of one scored generation."""
    generation: int
    best_index: int
    best_fitness: float
    average_fitness: float
    improved: bool


class EpochRunner:
    """Runs one generation: evaluate everyone, record statistics, breed."""

    def __init__(self, executor: Optional[Executor] = None):
        self.executor = executor

    def evaluate(self, state: EvolutionState, strategy: FitnessStrategy) -> List[float]:
        """Score every individual. Each one gets its own seed drawn from the state's generator."""
        config = state.config
        seeds = state.rng.integers(0, 2**63 - 1, size=state.population.size)
        tasks = [
            (ind.rule.bits, strategy, config.width, config.height,
             config.iterations, config.initial_density, int(seed))
            for ind, seed in zip(state.population, seeds)
        ]
        if self.executor is None:
            return [_evaluate_individual(task) for task in tasks]
        # map() keeps results index-aligned and returns only once every task is done
        return list(self.executor.map(_evaluate_individual, tasks))

    def run_epoch(self, state: EvolutionState) -> EpochStats:
        strategy = build_strategy(state.config.fitness)
        scores = self.evaluate(state, strategy)

        state.population.assign_fitness(scores)
        average = state.population.average_fitness()
        state.history.append(state.population.fitness, average)
        improved = state.best.update(state.population, average)
        if improved:
            logger.info("Saved best population with average fitness: %.4f", average)

        best_index, best = state.population.best()
        stats = EpochStats(
            generation=state.generation,
            best_index=best_index,
            best_fitness=best.fitness,
            average_fitness=average,
            improved=improved,
        )
        logger.info(
            "(total epochs: %d) Best fitness=%g (individual %d), Avg fitness=%.2f",
            len(state.history), best.fitness, best_index, average,
        )

        state.last_scored = state.population.copy()
        breeder = Breeder(state.config.mutation_rate, state.config.max_genes_per_mutation, state.rng)
        state.population = breeder.breed(state.population)
        state.generation += 1
        return stats


@dataclass
class SearchResult:
    """Results from a genetic search run."""
    best_individual: Optional[Individual]
    population: Population
    generation: int
    history: List[EpochStats] = field(default_factory=list)


class GeneticSearch:
    """
    Control surface for a resumable search over 512-bit rules.

    The state is checkpointed through the store after every generation, so an
    interrupted run continues from the last completed generation.
    """

    def __init__(
        self,
        config: Optional[RunConfig] = None,
        store: Optional[StateStore] = None,
        seed: Optional[int] = None,
    ):
        self.config = (config or RunConfig()).validate()
        self._explicit_config = config is not None
        self.store = store if store is not None else MemoryStateStore()
        self.rng = np.random.default_rng(seed)
        self.state: Optional[EvolutionState] = None

    def _save(self):
        self.store.save(self.state.to_snapshot())

    def _require_state(self) -> EvolutionState:
        if self.state is None:
            self.resume()
        return self.state

    def initialize_new_population(self) -> EvolutionState:
        """Discard any stored run and start from random rules."""
        self.store.clear()
        self.state = EvolutionState.new(replace(self.config), self.rng)
        logger.info("Created new population of %d rules", self.config.population_size)
        self._save()
        return self.state

    def resume(self) -> bool:
        """
        Load the last checkpoint; create a new population if there is none.

        Returns True when a checkpoint was restored.
        """
        snapshot = self.store.load()
        if snapshot is None:
            logger.info("No checkpoint found, initializing a new population")
            self.initialize_new_population()
            return False

        expected_size = self.config.population_size if self._explicit_config else None
        self.state = EvolutionState.from_snapshot(snapshot, expected_size, self.rng)
        self.config = self.state.config
        logger.info("Resumed at generation %d (%d epochs recorded)", self.state.generation, len(self.state.history))
        return True

    def run_generations(
        self,
        count: int,
        callback: Optional[Callable[[int, EpochStats], None]] = None,
    ) -> SearchResult:
        """Evolve for `count` generations, checkpointing after each one."""
        if count < 0:
            raise ConfigurationError(f"Generation count must be >= 0, got {count}")
        state = self._require_state()

        history: List[EpochStats] = []
        executor = ProcessPoolExecutor(max_workers=state.config.workers) if state.config.workers > 1 else None
        try:
            runner = EpochRunner(executor)
            for _ in range(count):
                stats = runner.run_epoch(state)
                history.append(stats)
                self._save()
                if callback:
                    callback(state.generation, stats)
        finally:
            if executor is not None:
                executor.shutdown()

        return SearchResult(
            best_individual=Individual(*self.get_best_individual()) if state.last_scored is not None else None,
            population=state.population,
            generation=state.generation,
            history=history,
        )

    def _update_config(self, **changes: Any):
        # Load first: resume() replaces self.config with the stored one
        state = self._require_state()
        updated = replace(state.config, **changes).validate()
        self.config = updated
        state.config = replace(updated)
        self._save()

    def resize_grid(self, width: int, height: int):
        """Change the evaluation grid size for subsequent generations."""
        self._update_config(width=width, height=height)
        logger.info("Grid resized to %dx%d", width, height)

    def set_mutation(self, rate: float, max_genes: int):
        """Change mutation chance (percent) and the maximum genes flipped per event."""
        self._update_config(mutation_rate=rate, max_genes_per_mutation=max_genes)
        logger.info("mutation=%s, mutategen=%d", rate, max_genes)

    def clear_fitness(self):
        """Reset every fitness score to 0 and checkpoint."""
        state = self._require_state()
        state.population.clear_fitness()
        self._save()

    def restore_best_checkpoint(self) -> bool:
        """
        Replace the current population with the best one recorded.

        The working population starts with fitness 0 so the restored rules are
        scored afresh; their recorded scores stay available as the last scored
        generation. Returns False when no generation has been scored yet.
        """
        state = self._require_state()
        if state.best.empty:
            logger.info("No best population found to restore")
            return False

        state.last_scored = state.best.population.copy()
        state.population = state.best.population.copy()
        state.population.clear_fitness()
        self._save()
        logger.info("Restored best population (average fitness %.4f)", state.best.average)
        return True

    def get_best_individual(self) -> Tuple[Rule, float]:
        """
        Rule and fitness of the best individual of the most recently scored
        generation (or of the current one if none was scored). Its index is
        reported as best_index by get_population_summary().
        """
        state = self._require_state()
        scored = state.last_scored if state.last_scored is not None else state.population
        _, best = scored.best()
        return best.rule, best.fitness

    def get_population_summary(self) -> Dict[str, Any]:
        state = self._require_state()
        config = state.config
        scored = state.last_scored if state.last_scored is not None else state.population
        best_index, best = scored.best()
        return {
            "generation": state.generation,
            "epochs": len(state.history),
            "population_size": state.population.size,
            "grid": (config.width, config.height),
            "iterations": config.iterations,
            "mutation_rate": config.mutation_rate,
            "max_genes_per_mutation": config.max_genes_per_mutation,
            "strategy": config.fitness.strategy,
            "max_fitness": state.max_fitness(),
            "best_index": best_index,
            "best_fitness": best.fitness,
            "average_fitness": scored.average_fitness(),
            "best_average_fitness": None if state.best.empty else state.best.average,
            "mean_lambda": float(np.mean([rule.lambda_parameter() for rule in state.population.rules])),
        }
