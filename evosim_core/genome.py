"""
evosim_core/genome.py - Genome representation, JSON serialization and the genome factory
"""
import json
from dataclasses import dataclass, asdict, fields
from typing import Dict, Any, List, Optional, Sequence, Tuple

import numpy as np

from .ast_nodes import ExprNode, OPERATORS, node_from_dict
from .guide import GuidanceNetwork, GuideConfig
from .operators import ASTMutator
from .run_context import RunContext

SOLVER_DEPTH = 4
TEMPLATE_DEPTH = 3
SOLVER_MUTATION_RATE = 0.3
TEMPLATE_MUTATION_RATE = 0.2
BIAS_STEP = 0.1
OPERATOR_WEIGHT_STEP = 0.2
GUIDE_MUTATION_RATE = 0.1
COMPLEXITY_NORMALIZER = 50.0

# Initial operator preference is damped for the numerically unstable operators
OPERATOR_WEIGHT_SCALE = {'ADD': 1.0, 'SUB': 1.0, 'MUL': 1.0, 'DIV': 0.5, 'POW': 0.3, 'MOD': 0.3}


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class MutationBias:
    """Evolvable scalars in [0, 1] that steer future mutation choices"""
    prefer_variables: float = 0.5
    prefer_complex: float = 0.5
    explore_rate: float = 0.5
    crossover_affinity: float = 0.5

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MutationBias':
        return cls(**{f.name: _clamp01(float(data.get(f.name, 0.5))) for f in fields(cls)})

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


class Genome:
    """Evolvable unit: solver strategy tree, conjecture template tree, biases and an optional guide"""

    def __init__(self, genome_id: str, solver_tree: ExprNode, template_tree: ExprNode,
                 mutation_bias: Optional[MutationBias] = None,
                 operator_weights: Optional[Dict[str, float]] = None,
                 guide_weights: Optional[Dict[str, Any]] = None,
                 parent_ids: Sequence[str] = ()):
        self.id = genome_id
        self.solver_tree = solver_tree
        self.template_tree = template_tree
        self.mutation_bias = mutation_bias or MutationBias()
        self.operator_weights = dict(operator_weights) if operator_weights else dict.fromkeys(OPERATORS, 0.5)
        self.guide_weights = guide_weights
        self.parent_ids = tuple(parent_ids)
        self.complexity_score = GenomeFactory.get_complexity(self)

        # Scenario-owned bookkeeping
        self.fitness = 0.0
        self.age = 0

    @property
    def has_guide(self) -> bool:
        return self.guide_weights is not None

    def node_count(self) -> int:
        """Total node count across both trees"""
        return self.solver_tree.count_nodes() + self.template_tree.count_nodes()

    def get_depth(self) -> int:
        return max(self.solver_tree.get_depth(), self.template_tree.get_depth())

    def copy(self) -> 'Genome':
        """Create a deep copy of this genome"""
        new_genome = Genome(
            self.id,
            self.solver_tree.copy(),
            self.template_tree.copy(),
            MutationBias(**self.mutation_bias.to_dict()),
            dict(self.operator_weights),
            json.loads(json.dumps(self.guide_weights)) if self.guide_weights is not None else None,
            self.parent_ids
        )
        new_genome.fitness = self.fitness
        new_genome.age = self.age
        return new_genome

    def to_dict(self) -> Dict[str, Any]:
        """Serialize genome to dictionary"""
        return {
            'id': self.id,
            'solver_tree': self.solver_tree.to_dict(),
            'template_tree': self.template_tree.to_dict(),
            'mutation_bias': self.mutation_bias.to_dict(),
            'operator_weights': dict(self.operator_weights),
            'guide_weights': self.guide_weights,
            'parent_ids': list(self.parent_ids),
            'complexity_score': self.complexity_score,
            'fitness': self.fitness,
            'age': self.age
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Genome':
        """Deserialize genome from dictionary"""
        genome = cls(
            data['id'],
            node_from_dict(data['solver_tree']),
            node_from_dict(data['template_tree']),
            MutationBias.from_dict(data.get('mutation_bias', {})),
            data.get('operator_weights'),
            data.get('guide_weights'),
            data.get('parent_ids', ())
        )
        genome.fitness = data.get('fitness', 0.0)
        genome.age = data.get('age', 0)
        return genome

    def to_json(self, filename: str = None) -> str:
        """Serialize to JSON string or file"""
        json_str = json.dumps(self.to_dict(), indent=2)
        if filename:
            with open(filename, 'w') as f:
                f.write(json_str)
        return json_str

    @classmethod
    def from_json(cls, json_data: str = None, filename: str = None) -> 'Genome':
        """Deserialize from JSON string or file"""
        if filename:
            with open(filename, 'r') as f:
                json_data = f.read()

        data = json.loads(json_data)
        return cls.from_dict(data)

    def __str__(self) -> str:
        """String representation of the genome"""
        lines = [f"Genome {self.id}:"]
        lines.append(f"  Fitness: {self.fitness:.4f}, Age: {self.age}")
        lines.append(f"  Complexity: {self.node_count()} ({self.complexity_score:.3f}), "
                     f"Depth: {self.get_depth()}, Guide: {'yes' if self.has_guide else 'no'}")

        for name, tree in (('solver', self.solver_tree), ('template', self.template_tree)):
            text = str(tree)
            lines.append(f"  {name}: {text[:100]}{'...' if len(text) > 100 else ''}")

        return '\n'.join(lines)


class GenomeFactory:
    """Creates, mutates and recombines genomes.

    All randomness and ids come from the RunContext handed in, so the draw
    order of each method is part of the replay contract.
    """

    @staticmethod
    def create_random(scope: RunContext, with_guide: bool = True,
                      guide_config: Optional[GuideConfig] = None) -> Genome:
        prng = scope.prng
        mutator = ASTMutator(prng)

        solver_tree = mutator.generate_random(SOLVER_DEPTH)
        template_tree = mutator.generate_random(TEMPLATE_DEPTH)
        mutation_bias = MutationBias(**{name: prng.next() for name in MutationBias.field_names()})
        operator_weights = {op: prng.next() * OPERATOR_WEIGHT_SCALE[op] for op in OPERATORS}
        guide_weights = None
        if with_guide:
            guide_weights = GuidanceNetwork(guide_config, prng).serialize()

        return Genome(scope.next_id('ast'), solver_tree, template_tree,
                      mutation_bias, operator_weights, guide_weights)

    @staticmethod
    def mutate(genome: Genome, scope: RunContext) -> Genome:
        """Mutated offspring; the parent genome is not modified"""
        prng = scope.prng
        mutator = ASTMutator(prng)

        solver_tree = mutator.mutate(genome.solver_tree, SOLVER_MUTATION_RATE)
        template_tree = mutator.mutate(genome.template_tree, TEMPLATE_MUTATION_RATE)
        mutation_bias, operator_weights, guide_weights = GenomeFactory.mutate_traits(genome, scope)

        return Genome(scope.next_id('ast'), solver_tree, template_tree,
                      mutation_bias, operator_weights, guide_weights,
                      parent_ids=(genome.id,))

    @staticmethod
    def mutate_traits(genome: Genome, scope: RunContext) -> Tuple[MutationBias, Dict[str, float],
                                                                  Optional[Dict[str, Any]]]:
        """Nudge every bias scalar, one named operator weight, then the guide weights"""
        prng = scope.prng

        bias = genome.mutation_bias.to_dict()
        for name in MutationBias.field_names():
            bias[name] = _clamp01(bias[name] + (prng.next() - 0.5) * BIAS_STEP)

        operator_weights = dict(genome.operator_weights)
        op = prng.pick(sorted(operator_weights))
        operator_weights[op] = _clamp01(operator_weights[op] + (prng.next() - 0.5) * OPERATOR_WEIGHT_STEP)

        guide_weights = None
        if genome.guide_weights is not None:
            guide = GuidanceNetwork.deserialize(genome.guide_weights, prng)
            guide.mutate(GUIDE_MUTATION_RATE)
            guide_weights = guide.serialize()

        return MutationBias(**bias), operator_weights, guide_weights

    @staticmethod
    def crossover(parent1: Genome, parent2: Genome, scope: RunContext) -> Genome:
        """Child with parent1's solver trunk grafted with a parent2 subtree"""
        prng = scope.prng
        mutator = ASTMutator(prng)

        solver_tree = mutator.crossover(parent1.solver_tree, parent2.solver_tree)
        template_source = parent1 if prng.next() < 0.5 else parent2
        template_tree = template_source.template_tree.copy()

        bias1 = parent1.mutation_bias.to_dict()
        bias2 = parent2.mutation_bias.to_dict()
        mutation_bias = MutationBias(**{name: (bias1[name] + bias2[name]) / 2
                                        for name in MutationBias.field_names()})
        operator_weights = {
            op: (parent1.operator_weights.get(op, 0.0) + parent2.operator_weights.get(op, 0.0)) / 2
            for op in sorted(set(parent1.operator_weights) | set(parent2.operator_weights))
        }

        guide_source = parent1 if prng.next() < 0.5 else parent2
        guide_weights = None
        if guide_source.guide_weights is not None:
            guide_weights = json.loads(json.dumps(guide_source.guide_weights))

        return Genome(scope.next_id('ast'), solver_tree, template_tree,
                      mutation_bias, operator_weights, guide_weights,
                      parent_ids=(parent1.id, parent2.id))

    @staticmethod
    def get_complexity(genome: Genome) -> float:
        """Node count of both trees normalized to [0, 1]"""
        return min(1.0, genome.node_count() / COMPLEXITY_NORMALIZER)


def complexity_variance(genomes: Sequence[Genome]) -> float:
    """Variance of complexity scores, a population diversity proxy"""
    if not genomes:
        return 0.0
    return float(np.var([GenomeFactory.get_complexity(g) for g in genomes]))
