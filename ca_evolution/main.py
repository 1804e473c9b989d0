#!/usr/bin/env python3
"""CLI for evolving cellular automaton rules."""

import argparse
import logging
import sys
from pathlib import Path

from .config import load_config
from .exceptions import EvolutionError
from .search import GeneticSearch
from .storage import JsonStateStore
from .visualize import save_genotype_map, visualize_rule


def make_search(args) -> GeneticSearch:
    config = load_config(args.config) if args.config else None
    return GeneticSearch(config=config, store=JsonStateStore(args.storage), seed=args.seed)


def print_summary(summary):
    width, height = summary["grid"]
    best_avg = summary["best_average_fitness"]
    print(f"Generation:        {summary['generation']} ({summary['epochs']} epochs scored)")
    print(f"Population:        {summary['population_size']}")
    print(f"Grid:              {width}x{height}, {summary['iterations']} iterations")
    print(f"Mutation:          {summary['mutation_rate']}% up to {summary['max_genes_per_mutation']} genes")
    print(f"Fitness strategy:  {summary['strategy']} (max {summary['max_fitness']:g})")
    print(f"Best fitness:      {summary['best_fitness']:g} (individual {summary['best_index']})")
    print(f"Average fitness:   {summary['average_fitness']:.2f}")
    print(f"Best average ever: {'-' if best_avg is None else f'{best_avg:.2f}'}")
    print(f"Mean lambda:       {summary['mean_lambda']:.4f}")


def cmd_new(args):
    """Start a new run from random rules."""
    search = make_search(args)
    state = search.initialize_new_population()
    print(f"Created new population of {state.population.size} rules in {args.storage}")


def cmd_run(args):
    """Evolve for a number of generations, resuming the stored run."""
    search = make_search(args)
    search.resume()
    total = args.generations

    def on_generation(gen, stats):
        print(f"{gen} of {total}: Best={stats.best_fitness:g} (individual {stats.best_index}) "
              f"Avg={stats.average_fitness:.2f}{' *' if stats.improved else ''}")

    result = search.run_generations(total, callback=on_generation)
    if result.best_individual is not None:
        print(f"\nBest fitness: {result.best_individual.fitness:g}")
        print(f"Rule: {result.best_individual.rule.to_string()}")


def cmd_resize(args):
    """Change the evaluation grid size."""
    search = make_search(args)
    search.resume()
    search.resize_grid(args.width, args.height)
    print(f"Grid resized to {args.width}x{args.height}")


def cmd_mutation(args):
    """Show or change mutation parameters."""
    search = make_search(args)
    search.resume()
    if args.rate is None or args.genes is None:
        print(f"mutation={search.config.mutation_rate}, mutategen={search.config.max_genes_per_mutation}")
        return
    search.set_mutation(args.rate, args.genes)
    print(f"mutation={args.rate}, mutategen={args.genes}")


def cmd_restore_best(args):
    """Replace the current population with the best one recorded."""
    search = make_search(args)
    search.resume()
    if search.restore_best_checkpoint():
        print("Restored best population. Ready for further evolution.")
    else:
        print("No best population found to restore.")


def cmd_best(args):
    """Print the highest-fitness rule."""
    search = make_search(args)
    search.resume()
    rule, fitness = search.get_best_individual()
    index = search.get_population_summary()["best_index"]
    print(f"Best individual (index {index}, fitness={fitness:g}):")
    if args.bits:
        print(f"Rule: [{','.join(str(b) for b in rule.to_list())}]")
    else:
        print(f"Rule: {rule.to_string()}")


def cmd_summary(args):
    """Show the state of the stored run."""
    search = make_search(args)
    search.resume()
    print_summary(search.get_population_summary())


def cmd_show(args):
    """Print one rule of the current population, or all of them."""
    search = make_search(args)
    search.resume()
    population = search.state.population
    indices = [args.index] if args.index is not None else range(population.size)
    for i in indices:
        if not 0 <= i < population.size:
            print(f"Error: index {i} out of range 0..{population.size - 1}")
            sys.exit(1)
        print(f"population[{i}]={population[i].rule.to_string()}")


def cmd_export(args):
    """Save a GIF/PNG of a rule's run and a genotype map of the population."""
    search = make_search(args)
    search.resume()
    config = search.config
    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    if args.index is None:
        rule, _ = search.get_best_individual()
        index = search.get_population_summary()["best_index"]
    elif 0 <= args.index < search.state.population.size:
        index, rule = args.index, search.state.population[args.index].rule
    else:
        print(f"Error: index {args.index} out of range 0..{search.state.population.size - 1}")
        sys.exit(1)

    gif_path, png_path = visualize_rule(
        rule,
        width=config.width,
        height=config.height,
        steps=args.steps if args.steps is not None else config.iterations,
        initial_density=config.initial_density,
        output_dir=str(output_dir),
        name=f"rule_{index:03d}",
        cell_size=args.cell_size,
        seed=args.seed,
    )
    genotype_path = str(output_dir / "genotype.png")
    save_genotype_map(search.state.population.rules, genotype_path)

    print("Saved:")
    if gif_path:
        print(f"  Animation: {gif_path}")
    print(f"  Final state: {png_path}")
    print(f"  Genotype map: {genotype_path}")


def add_common_arguments(parser):
    parser.add_argument("--storage", type=str, default="storage", help="Checkpoint directory")
    parser.add_argument("--config", type=str, default=None, help="YAML run configuration")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress")


def main():
    parser = argparse.ArgumentParser(
        description="Evolve 2D cellular automaton rules with a genetic algorithm"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    new_parser = subparsers.add_parser("new", help="Create a new random population")
    add_common_arguments(new_parser)
    new_parser.set_defaults(func=cmd_new)

    run_parser = subparsers.add_parser("run", help="Evolve for a number of generations")
    run_parser.add_argument("-g", "--generations", type=int, default=10, help="Number of generations")
    add_common_arguments(run_parser)
    run_parser.set_defaults(func=cmd_run)

    resize_parser = subparsers.add_parser("resize", help="Change the evaluation grid size")
    resize_parser.add_argument("width", type=int, help="Grid width")
    resize_parser.add_argument("height", type=int, help="Grid height")
    add_common_arguments(resize_parser)
    resize_parser.set_defaults(func=cmd_resize)

    mutation_parser = subparsers.add_parser("mutation", help="Show or set mutation parameters")
    mutation_parser.add_argument("rate", type=float, nargs="?", help="Mutation chance in percent")
    mutation_parser.add_argument("genes", type=int, nargs="?", help="Max genes flipped per mutation")
    add_common_arguments(mutation_parser)
    mutation_parser.set_defaults(func=cmd_mutation)

    restore_parser = subparsers.add_parser("restore-best", help="Restore the best recorded population")
    add_common_arguments(restore_parser)
    restore_parser.set_defaults(func=cmd_restore_best)

    best_parser = subparsers.add_parser("best", help="Show the best rule")
    best_parser.add_argument("--bits", action="store_true", help="Print the rule as a 0/1 list")
    add_common_arguments(best_parser)
    best_parser.set_defaults(func=cmd_best)

    summary_parser = subparsers.add_parser("summary", help="Show run statistics")
    add_common_arguments(summary_parser)
    summary_parser.set_defaults(func=cmd_summary)

    show_parser = subparsers.add_parser("show", help="Print rules of the current population")
    show_parser.add_argument("index", type=int, nargs="?", help="Rule index (all rules if omitted)")
    add_common_arguments(show_parser)
    show_parser.set_defaults(func=cmd_show)

    export_parser = subparsers.add_parser("export", help="Export images of a rule and the population")
    export_parser.add_argument("--index", type=int, default=None, help="Rule index (best rule if omitted)")
    export_parser.add_argument("--steps", type=int, default=None, help="Simulation steps")
    export_parser.add_argument("--cell-size", type=int, default=2, help="Cell size in pixels")
    export_parser.add_argument("-o", "--output", type=str, default="output", help="Output directory")
    add_common_arguments(export_parser)
    export_parser.set_defaults(func=cmd_export)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        args.func(args)
    except EvolutionError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
