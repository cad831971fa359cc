"""
evosim_core/population.py - Reference evolution loop over a seeded population

Fitness is supplied by the caller. Every draw and id goes through the
population's RunContext, in a fixed order per generation, so a run can be
serialized mid-way and resumed to the same result.
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .genome import Genome, GenomeFactory, complexity_variance
from .guide import GuidanceNetwork
from .prng import PRNG
from .run_context import RunContext

logger = logging.getLogger(__name__)

FitnessFn = Callable[[Genome], float]

PAYLOAD_VERSION = 1
ALERT_THRESHOLD = 0.7


def default_fitness(genome: Genome) -> float:
    """Guide-predicted interestingness of the solver tree, or its complexity without a guide.

    The network is only read here; the throwaway stream keeps evaluation
    from consuming the run's random draws.
    """
    if genome.guide_weights is None:
        return genome.complexity_score
    guide = GuidanceNetwork.deserialize(genome.guide_weights, PRNG(0))
    return guide.score(genome.solver_tree)


class Population:
    """Manages a population of genomes with genetic operators"""

    def __init__(self, size: int, scope: RunContext, fitness_fn: Optional[FitnessFn] = None,
                 with_guide: bool = True, genomes: Optional[List[Genome]] = None):
        if size < 1:
            raise ValueError("Population size must be at least 1")
        self.size = size
        self.scope = scope
        self.fitness_fn = fitness_fn or default_fitness
        self.with_guide = with_guide
        self.best_fitness = 0.0

        if genomes is None:
            self.genomes = [GenomeFactory.create_random(scope, with_guide) for _ in range(size)]
        else:
            self.genomes = genomes

    @property
    def generation(self) -> int:
        return self.scope.get_tick()

    def evaluate(self) -> None:
        """Score every genome with the injected fitness function"""
        for genome in self.genomes:
            genome.fitness = float(self.fitness_fn(genome))
        if self.genomes:
            self.best_fitness = max(self.best_fitness, max(g.fitness for g in self.genomes))

    def tournament_selection(self, tournament_size: int = 3) -> Genome:
        """Tournament selection; ties go to the earlier contender"""
        prng = self.scope.prng
        contenders = [prng.pick(self.genomes) for _ in range(min(tournament_size, len(self.genomes)))]
        best = contenders[0]
        for genome in contenders[1:]:
            if genome.fitness > best.fitness:
                best = genome
        return best

    def evolve_generation(self, crossover_rate: float = 0.7, elite_size: int = 2) -> None:
        """Evaluate, then breed the next generation and advance the tick.

        Per-generation draw order: for each offspring slot one crossover
        draw, then the tournaments, then the factory operators.
        """
        self.evaluate()

        # Stable sort keeps equal-fitness genomes in population order
        ranked = sorted(self.genomes, key=lambda g: g.fitness, reverse=True)

        new_genomes = []

        # Elite preservation
        for genome in ranked[:min(elite_size, self.size)]:
            elite = genome.copy()
            elite.age += 1
            new_genomes.append(elite)

        # Generate offspring
        while len(new_genomes) < self.size:
            if self.scope.prng.next() < crossover_rate:
                parent1 = self.tournament_selection()
                parent2 = self.tournament_selection()
                offspring = GenomeFactory.crossover(parent1, parent2, self.scope)
                child = GenomeFactory.mutate(offspring, self.scope)
                # Lineage records the selected parents
                child.parent_ids = offspring.parent_ids
            else:
                parent = self.tournament_selection()
                child = GenomeFactory.mutate(parent, self.scope)
            new_genomes.append(child)

        self.genomes = new_genomes[:self.size]
        generation = self.scope.tick()
        logger.debug(f"Generation {generation}: best={ranked[0].fitness:.4f} "
                     f"complexity_var={complexity_variance(self.genomes):.5f}")

    def run(self, generations: int, crossover_rate: float = 0.7, elite_size: int = 2) -> None:
        for _ in range(generations):
            self.evolve_generation(crossover_rate, elite_size)
        self.evaluate()

    def get_best(self, n: int = 1) -> List[Genome]:
        """Get the best n genomes"""
        sorted_genomes = sorted(self.genomes, key=lambda g: g.fitness, reverse=True)
        return sorted_genomes[:n]

    def get_stats(self) -> Dict[str, Any]:
        """Get population statistics"""
        if not self.genomes:
            return {}

        fitnesses = [g.fitness for g in self.genomes]
        complexities = [g.node_count() for g in self.genomes]
        depths = [g.get_depth() for g in self.genomes]

        def summary(values):
            return {
                'min': float(np.min(values)),
                'max': float(np.max(values)),
                'mean': float(np.mean(values)),
                'std': float(np.std(values))
            }

        return {
            'generation': self.generation,
            'population_size': len(self.genomes),
            'fitness': summary(fitnesses),
            'complexity': summary(complexities),
            'depth': summary(depths)
        }

    def diversity_stats(self) -> Dict[str, float]:
        """Calculate population diversity metrics"""
        if len(self.genomes) < 2:
            return {'structural_diversity': 0.0, 'complexity_variance': 0.0, 'unique_structures': len(self.genomes)}

        structures = [f"{g.solver_tree}|{g.template_tree}" for g in self.genomes]
        unique_structures = len(set(structures))

        return {
            'structural_diversity': unique_structures / len(structures),
            'complexity_variance': complexity_variance(self.genomes),
            'unique_structures': unique_structures
        }

    def metrics(self) -> Dict[str, float]:
        """Run state in snapshot-store form: C, D, A, alertRate, generation"""
        if not self.genomes:
            return {'C': 0.0, 'D': 0.0, 'A': 0.0, 'alertRate': 0.0, 'generation': self.generation}
        complexity = float(np.mean([g.complexity_score for g in self.genomes]))
        diversity = self.diversity_stats()['structural_diversity']
        agency = max(0.0, min(1.0, max(g.fitness for g in self.genomes)))
        alert_rate = sum(1 for g in self.genomes if g.fitness >= ALERT_THRESHOLD) / len(self.genomes)
        return {
            'C': complexity,
            'D': diversity,
            'A': agency,
            'alertRate': alert_rate,
            'generation': self.generation
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': PAYLOAD_VERSION,
            'size': self.size,
            'with_guide': self.with_guide,
            'best_fitness': self.best_fitness,
            'run_context': self.scope.get_state(),
            'genomes': [g.to_dict() for g in self.genomes]
        }

    def serialize(self) -> str:
        """Scenario payload for a snapshot"""
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fitness_fn: Optional[FitnessFn] = None) -> 'Population':
        if data.get('version') != PAYLOAD_VERSION:
            raise ValueError(f"Unsupported population payload version: {data.get('version')!r}")
        scope = RunContext.from_state(data['run_context'])
        genomes = [Genome.from_dict(g) for g in data['genomes']]
        population = cls(data['size'], scope, fitness_fn, data.get('with_guide', True), genomes)
        population.best_fitness = data.get('best_fitness', 0.0)
        return population

    @classmethod
    def from_payload(cls, payload: str, fitness_fn: Optional[FitnessFn] = None) -> 'Population':
        return cls.from_dict(json.loads(payload), fitness_fn)
