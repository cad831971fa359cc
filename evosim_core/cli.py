"""
evosim_core/cli.py - Command-line interface
"""
import copy
import hashlib
import json
import logging
import os
import sys
import time

import click

from .config import default_store
from .population import Population
from .run_context import RunContext
from .snapshot import create_snapshot, parse_snapshot, serialize_snapshot

SCENARIO_ID = 'math'


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )


def _digest(population: Population) -> str:
    return hashlib.sha256(population.serialize().encode('utf-8')).hexdigest()


def build_snapshot(population: Population, store=None) -> dict:
    """Snapshot of a population run, reusing an imported store when given"""
    store = copy.deepcopy(store) if store is not None else default_store()
    store['currentState'] = population.metrics()
    store['bestAgency'] = max(0.0, min(1.0, population.best_fitness))
    store['scenarioConfigs']['math']['populationSize'] = population.size
    return create_snapshot(store, population.serialize(), SCENARIO_ID)


def _write_snapshot(snapshot: dict, out: str) -> None:
    directory = os.path.dirname(out)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(out, 'w') as f:
        f.write(serialize_snapshot(snapshot, indent=2))


def _echo_progress(population: Population, elapsed: float) -> None:
    stats = population.get_stats()
    diversity = population.diversity_stats()
    click.echo(f"Gen {stats['generation']:3d}: "
               f"Best={stats['fitness']['max']:.4f} "
               f"Avg={stats['fitness']['mean']:.4f} "
               f"Complexity={stats['complexity']['mean']:.1f} "
               f"Unique={diversity['unique_structures']} "
               f"Time={elapsed:.1f}s")


@click.group()
def cli():
    """evosim - Deterministic evolution of symbolic program genomes"""
    pass


@cli.command()
@click.option('--seed', '-s', default=42, help='Run seed')
@click.option('--population', '-p', default=20, help='Population size')
@click.option('--generations', '-g', default=30, help='Number of generations to evolve')
@click.option('--crossover-rate', default=0.7, help='Crossover rate (0.0-1.0)')
@click.option('--elite-size', default=2, help='Number of elite individuals to preserve')
@click.option('--no-guide', is_flag=True, help='Evolve genomes without a guidance network')
@click.option('--out', '-o', default='out/snapshot.json', help='Snapshot output file')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def evolve(seed, population, generations, crossover_rate, elite_size, no_guide, out, verbose):
    """Evolve a seeded population and export a snapshot"""
    _configure_logging(verbose)

    click.echo(f"Starting evolution: seed {seed}, {generations} generations, population {population}")

    pop = Population(population, RunContext(seed), with_guide=not no_guide)
    start_time = time.time()

    for gen in range(generations):
        pop.evolve_generation(crossover_rate, elite_size)
        if verbose or gen % 10 == 0 or gen == generations - 1:
            _echo_progress(pop, time.time() - start_time)
    pop.evaluate()

    snapshot = build_snapshot(pop)
    _write_snapshot(snapshot, out)
    click.echo(f"Snapshot saved: {out}")

    if verbose:
        click.echo("\nTOP 3 GENOMES:")
        for genome in pop.get_best(3):
            click.echo(str(genome))


@cli.command()
@click.option('--snapshot', '-i', 'snapshot_path', required=True,
              type=click.Path(exists=True, dir_okay=False), help='Snapshot file to resume')
@click.option('--generations', '-g', default=10, help='Additional generations')
@click.option('--crossover-rate', default=0.7, help='Crossover rate (0.0-1.0)')
@click.option('--elite-size', default=2, help='Number of elite individuals to preserve')
@click.option('--out', '-o', default=None, help='Snapshot output file (defaults to the input file)')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def resume(snapshot_path, generations, crossover_rate, elite_size, out, verbose):
    """Resume a run exactly where a snapshot left it"""
    _configure_logging(verbose)

    with open(snapshot_path, 'r') as f:
        snapshot = parse_snapshot(f.read())
    if snapshot is None:
        click.echo(f"Cannot load snapshot: {snapshot_path}", err=True)
        sys.exit(1)

    try:
        pop = Population.from_payload(snapshot['scenarioData'])
    except (ValueError, KeyError, TypeError) as e:
        click.echo(f"Cannot load snapshot: invalid scenario data ({e})", err=True)
        sys.exit(1)

    click.echo(f"Resuming at generation {pop.generation} (seed {pop.scope.seed})")
    start_time = time.time()
    for gen in range(generations):
        pop.evolve_generation(crossover_rate, elite_size)
        if verbose or gen == generations - 1:
            _echo_progress(pop, time.time() - start_time)
    pop.evaluate()

    out = out or snapshot_path
    _write_snapshot(build_snapshot(pop, snapshot['store']), out)
    click.echo(f"Snapshot saved: {out}")


@cli.command()
@click.option('--snapshot', '-i', 'snapshot_path', required=True,
              type=click.Path(exists=True, dir_okay=False), help='Snapshot file to inspect')
def inspect(snapshot_path):
    """Summarize a snapshot file"""
    with open(snapshot_path, 'r') as f:
        snapshot = parse_snapshot(f.read())
    if snapshot is None:
        click.echo(f"Cannot load snapshot: {snapshot_path}", err=True)
        sys.exit(1)

    meta = snapshot['meta']
    store = snapshot['store']
    click.echo(f"Version: {meta['version']}")
    click.echo(f"Scenario: {meta['scenarioId']}")
    click.echo(f"Timestamp: {meta['timestamp']}")
    click.echo(f"State: {json.dumps(store['currentState'], sort_keys=True)}")
    click.echo(f"Control: U={store['control']['U']}")
    click.echo(f"Best agency: {store['bestAgency']}")

    try:
        pop = Population.from_payload(snapshot['scenarioData'])
    except (ValueError, KeyError, TypeError):
        click.echo("Population: (no population payload)")
        return
    click.echo(f"Population: {len(pop.genomes)} genomes at generation {pop.generation}, "
               f"seed {pop.scope.seed}")
    best = pop.get_best(1)
    if best:
        click.echo(str(best[0]))


@cli.command()
@click.option('--seed', '-s', default=42, help='Run seed')
@click.option('--population', '-p', default=12, help='Population size')
@click.option('--generations', '-g', default=10, help='Total generations')
def verify(seed, population, generations):
    """Check that a checkpointed run replays an uninterrupted one"""
    split = generations // 2

    straight = Population(population, RunContext(seed))
    straight.run(generations)

    first_half = Population(population, RunContext(seed))
    first_half.run(split)
    text = serialize_snapshot(build_snapshot(first_half))
    restored = parse_snapshot(text)
    resumed = Population.from_payload(restored['scenarioData'])
    resumed.run(generations - split)

    expected = _digest(straight)
    actual = _digest(resumed)
    click.echo(f"Uninterrupted: {expected}")
    click.echo(f"Resumed:       {actual}")
    if expected != actual:
        click.echo("FAIL: resumed run diverged", err=True)
        sys.exit(1)
    click.echo("PASS: resumed run is identical")


if __name__ == '__main__':
    cli()
