"""
evosim_core - Deterministic substrate for evolving symbolic program genomes

A seeded random stream and run scope, expression-tree genetic programming
operators, a small guidance network, a genome factory and a versioned
snapshot codec, so any run can be replayed from its seed or resumed
exactly from a snapshot.
"""

__version__ = "0.1.0"
__author__ = "EvoSim Project"

from .prng import PRNG
from .run_context import RunContext
from .ast_nodes import (
    ExprNode, Atom, Operation, ExpressionParseError,
    generate_random, node_from_dict, parse_expression,
    VARIABLES, OPERATORS
)
from .operators import ASTMutator, OperatorMix
from .guide import GuidanceNetwork, GuideConfig, FeatureSizeMismatch, FEATURE_NAMES
from .genome import Genome, GenomeFactory, MutationBias, complexity_variance
from .snapshot import (
    SNAPSHOT_VERSION, create_snapshot, parse_snapshot, serialize_snapshot,
    normalize_scenario_id
)
from .population import Population, default_fitness
from .llm_mutation import LLMMutationService, LLMMutationConfig, MutationResult, mutate_genome_with_llm

__all__ = [
    'PRNG', 'RunContext',
    'ExprNode', 'Atom', 'Operation', 'ExpressionParseError',
    'generate_random', 'node_from_dict', 'parse_expression',
    'VARIABLES', 'OPERATORS',
    'ASTMutator', 'OperatorMix',
    'GuidanceNetwork', 'GuideConfig', 'FeatureSizeMismatch', 'FEATURE_NAMES',
    'Genome', 'GenomeFactory', 'MutationBias', 'complexity_variance',
    'SNAPSHOT_VERSION', 'create_snapshot', 'parse_snapshot', 'serialize_snapshot',
    'normalize_scenario_id',
    'Population', 'default_fitness',
    'LLMMutationService', 'LLMMutationConfig', 'MutationResult', 'mutate_genome_with_llm'
]
