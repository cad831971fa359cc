"""
evosim_core/operators.py - Structural mutation and crossover operators
"""
from dataclasses import dataclass
from typing import Optional

from .prng import PRNG
from .ast_nodes import (ExprNode, Atom, Operation, OPERATORS, VARIABLES,
                        generate_random, random_leaf)


@dataclass(frozen=True)
class OperatorMix:
    """Relative weights of the structural operators used by ASTMutator.mutate"""
    point: float = 0.3
    subtree: float = 0.2
    grow: float = 0.2
    shrink: float = 0.3
    subtree_depth: int = 3

    def thresholds(self):
        total = self.point + self.subtree + self.grow + self.shrink
        if total <= 0:
            raise ValueError("OperatorMix weights must sum to a positive value")
        point = self.point / total
        subtree = point + self.subtree / total
        grow = subtree + self.grow / total
        return point, subtree, grow


class ASTMutator:
    """Genetic-programming operators over expression trees.

    Nodes are addressed by pre-order index. Every operator returns a new
    tree and leaves its inputs untouched.
    """

    def __init__(self, prng: PRNG, mix: Optional[OperatorMix] = None):
        self.prng = prng
        self.mix = mix or OperatorMix()

    def clone(self, tree: ExprNode) -> ExprNode:
        return tree.copy()

    def count_nodes(self, tree: ExprNode) -> int:
        return tree.count_nodes()

    def get_node(self, tree: ExprNode, index: int) -> Optional[ExprNode]:
        """Node at a pre-order index, or None when out of range"""
        nodes = tree.get_all_nodes()
        if 0 <= index < len(nodes):
            return nodes[index]
        return None

    def replace_node(self, tree: ExprNode, index: int, replacement: ExprNode) -> ExprNode:
        """New tree with the subtree at index swapped for a copy of replacement"""
        counter = [0]

        def rebuild(node: ExprNode) -> ExprNode:
            if counter[0] == index:
                counter[0] += node.count_nodes()
                return replacement.copy()
            counter[0] += 1
            if isinstance(node, Operation):
                left = rebuild(node.left)
                right = rebuild(node.right)
                return Operation(node.op, left, right)
            return node.copy()

        return rebuild(tree)

    def generate_random(self, max_depth: int) -> ExprNode:
        return generate_random(self.prng, max_depth)

    def mutate_point(self, tree: ExprNode) -> ExprNode:
        """Point mutation: redraw one leaf value or one operator"""
        cloned = tree.copy()
        target = self.get_node(cloned, self.prng.next_int(0, cloned.count_nodes()))
        if target is None:
            return cloned

        if isinstance(target, Atom):
            if self.prng.next() < 0.5:
                target.value = self.prng.pick(VARIABLES)
            else:
                target.value = self.prng.next_int(1, 10)
        else:
            target.op = self.prng.pick(OPERATORS)

        return cloned

    def mutate_subtree(self, tree: ExprNode, max_depth: Optional[int] = None) -> ExprNode:
        """Subtree mutation: replace one subtree with a fresh random tree"""
        if max_depth is None:
            max_depth = self.mix.subtree_depth
        target_idx = self.prng.next_int(0, tree.count_nodes())
        new_subtree = self.generate_random(max_depth)
        return self.replace_node(tree, target_idx, new_subtree)

    def mutate_grow(self, tree: ExprNode) -> ExprNode:
        """Grow mutation: wrap one node in a new operator with a leaf sibling"""
        target_idx = self.prng.next_int(0, tree.count_nodes())
        target = self.get_node(tree, target_idx)
        if target is None:
            return tree.copy()

        op = self.prng.pick(OPERATORS)
        sibling = random_leaf(self.prng, variable_probability=0.5)
        wrapper = Operation(op, target.copy(), sibling)
        return self.replace_node(tree, target_idx, wrapper)

    def mutate_shrink(self, tree: ExprNode) -> ExprNode:
        """Shrink mutation: replace a non-root operation with one of its children"""
        node_count = tree.count_nodes()
        if node_count < 2:
            return tree.copy()

        target_idx = self.prng.next_int(1, node_count)  # skip root
        target = self.get_node(tree, target_idx)
        if not isinstance(target, Operation):
            return tree.copy()

        replacement = target.left if self.prng.next() < 0.5 else target.right
        return self.replace_node(tree, target_idx, replacement)

    def crossover(self, parent1: ExprNode, parent2: ExprNode) -> ExprNode:
        """Graft a random subtree of parent2 onto a random position of parent1"""
        target_idx = self.prng.next_int(0, parent1.count_nodes())
        source_idx = self.prng.next_int(0, parent2.count_nodes())

        subtree = self.get_node(parent2, source_idx)
        if subtree is None:
            return parent1.copy()
        return self.replace_node(parent1, target_idx, subtree)

    def mutate(self, tree: ExprNode, mutation_rate: float = 0.2) -> ExprNode:
        """Apply one structural operator with probability mutation_rate"""
        if self.prng.next() > mutation_rate:
            return tree.copy()

        point, subtree, grow = self.mix.thresholds()
        choice = self.prng.next()
        if choice < point:
            return self.mutate_point(tree)
        elif choice < subtree:
            return self.mutate_subtree(tree)
        elif choice < grow:
            return self.mutate_grow(tree)
        else:
            return self.mutate_shrink(tree)
