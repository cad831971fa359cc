"""
evosim_core/ast_nodes.py - Expression tree nodes, text form and safe primitives
"""
import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Union, Tuple

from .prng import PRNG

Number = Union[int, float]
AtomValue = Union[int, float, str]

# Primitive sets
VARIABLES = ('x', 'y', 'z')
OPERATORS = ('ADD', 'SUB', 'MUL', 'DIV', 'POW', 'MOD')

OP_SYMBOLS = {
    'ADD': '+',
    'SUB': '-',
    'MUL': '*',
    'DIV': '/',
    'POW': '^',
    'MOD': '%'
}
SYMBOL_OPS = {symbol: op for op, symbol in OP_SYMBOLS.items()}


class ExpressionParseError(ValueError):
    """Raised when a textual expression cannot be turned into a tree"""


class ExprNode(ABC):
    """Base class for expression tree nodes"""

    is_leaf = True

    @abstractmethod
    def evaluate(self, env: Dict[str, Any]) -> Any:
        """Evaluate the node for the given variable bindings"""
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary"""
        pass

    @abstractmethod
    def copy(self) -> 'ExprNode':
        """Create a deep copy of this node"""
        pass

    def children(self) -> Tuple['ExprNode', ...]:
        return ()

    def get_all_nodes(self) -> List['ExprNode']:
        """Get all nodes in this subtree, in pre-order"""
        nodes = []
        stack = [self]
        while stack:
            node = stack.pop()
            nodes.append(node)
            stack.extend(reversed(node.children()))
        return nodes

    def count_nodes(self) -> int:
        return len(self.get_all_nodes())

    def get_depth(self) -> int:
        """Get maximum depth of this subtree (a lone leaf has depth 1)"""
        kids = self.children()
        if not kids:
            return 1
        return 1 + max(child.get_depth() for child in kids)

    def to_text(self) -> str:
        return str(self)

    @abstractmethod
    def structure_key(self) -> Tuple:
        """Nested tuple identifying the tree; equal trees have equal keys"""
        pass

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExprNode):
            return NotImplemented
        return self.structure_key() == other.structure_key()

    def __hash__(self) -> int:
        return hash(self.structure_key())


class Atom(ExprNode):
    """Leaf: a numeric constant or a variable symbol"""

    def __init__(self, value: AtomValue):
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"Invalid atom value: {value!r}")
        self.value = value

    @property
    def is_variable(self) -> bool:
        return isinstance(self.value, str)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        if self.is_variable:
            return env.get(self.value, 0.0)
        return float(self.value)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': 'ATOM', 'value': self.value}

    def structure_key(self) -> Tuple:
        return ('ATOM', self.value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Atom':
        return cls(data['value'])

    def copy(self) -> 'Atom':
        return Atom(self.value)

    def __str__(self):
        return str(self.value)

    def __repr__(self):
        return f"Atom({self.value!r})"


class Operation(ExprNode):
    """Binary operation: ADD, SUB, MUL, DIV, POW, MOD with numeric guards"""

    is_leaf = False

    def __init__(self, op: str, left: ExprNode, right: ExprNode):
        if op not in OPERATORS:
            raise ValueError(f"Unknown operator: {op}")
        if left is None or right is None:
            raise ValueError("Operation requires two children")
        self.op = op
        self.left = left
        self.right = right

    def children(self) -> Tuple[ExprNode, ExprNode]:
        return (self.left, self.right)

    def evaluate(self, env: Dict[str, Any]) -> Any:
        left_val = self.left.evaluate(env)
        right_val = self.right.evaluate(env)

        # Protected arithmetic
        if self.op == 'ADD':
            result = left_val + right_val
        elif self.op == 'SUB':
            result = left_val - right_val
        elif self.op == 'MUL':
            result = left_val * right_val
        elif self.op == 'DIV':
            divisor = np.where(np.abs(right_val) < 1e-10, 1.0, right_val)
            result = left_val / divisor
        elif self.op == 'MOD':
            divisor = np.where(np.abs(right_val) < 1e-10, 1.0, right_val)
            result = np.mod(left_val, divisor)
        else:  # POW
            base = np.clip(left_val, -100, 100)
            exp = np.clip(right_val, -10, 10)
            with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
                result = np.power(np.abs(base), exp) * np.sign(base)
            result = np.nan_to_num(result, nan=0.0, posinf=1000.0, neginf=-1000.0)

        # Clip to prevent overflow
        result = np.clip(result, -1000, 1000)
        if np.ndim(result) == 0:
            return float(result)
        return result

    def structure_key(self) -> Tuple:
        return ('OP', self.op, self.left.structure_key(), self.right.structure_key())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': 'OP',
            'op': self.op,
            'left': self.left.to_dict(),
            'right': self.right.to_dict()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Operation':
        if 'left' not in data or 'right' not in data:
            raise ValueError("Operation requires two children")
        left = node_from_dict(data['left'])
        right = node_from_dict(data['right'])
        return cls(data['op'], left, right)

    def copy(self) -> 'Operation':
        return Operation(self.op, self.left.copy(), self.right.copy())

    def __str__(self):
        return f"({self.left} {OP_SYMBOLS[self.op]} {self.right})"

    def __repr__(self):
        return f"Operation({self.op!r}, {self.left!r}, {self.right!r})"


# Node creation helpers
def node_from_dict(data: Dict[str, Any]) -> ExprNode:
    """Create node from dictionary representation"""
    if not isinstance(data, dict):
        raise ValueError(f"Expected node dictionary, got {type(data).__name__}")
    node_type = data.get('type')

    if node_type == 'ATOM':
        return Atom.from_dict(data)
    elif node_type == 'OP':
        return Operation.from_dict(data)
    else:
        raise ValueError(f"Unknown node type: {node_type}")


def generate_random(prng: PRNG, max_depth: int, leaf_probability: float = 0.3,
                    variable_probability: float = 0.6) -> ExprNode:
    """Create a random expression tree whose depth never exceeds max_depth"""
    if max_depth <= 1 or prng.next() < leaf_probability:
        return random_leaf(prng, variable_probability)
    op = prng.pick(OPERATORS)
    left = generate_random(prng, max_depth - 1, leaf_probability, variable_probability)
    right = generate_random(prng, max_depth - 1, leaf_probability, variable_probability)
    return Operation(op, left, right)


def random_leaf(prng: PRNG, variable_probability: float = 0.6) -> Atom:
    if prng.next() < variable_probability:
        return Atom(prng.pick(VARIABLES))
    return Atom(prng.next_int(1, 10))


# Text form: fully parenthesised infix, e.g. "((x + 3) * y)"
def parse_expression(text: str) -> ExprNode:
    """Parse the text form produced by str(node)"""
    if not isinstance(text, str):
        raise ExpressionParseError(f"Expected text, got {type(text).__name__}")
    cleaned = ' '.join(text.strip().strip('`').split())
    if not cleaned:
        raise ExpressionParseError("Empty expression")
    try:
        node, pos = _parse_at(cleaned, 0)
    except RecursionError:
        raise ExpressionParseError("Expression is nested too deeply") from None
    pos = _skip_spaces(cleaned, pos)
    if pos != len(cleaned):
        raise ExpressionParseError(f"Unexpected trailing text at position {pos}: {cleaned[pos:]!r}")
    return node


def _skip_spaces(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] == ' ':
        pos += 1
    return pos


def _parse_at(text: str, pos: int) -> Tuple[ExprNode, int]:
    pos = _skip_spaces(text, pos)
    if pos >= len(text):
        raise ExpressionParseError("Unexpected end of expression")

    if text[pos] == '(':
        left, pos = _parse_at(text, pos + 1)
        pos = _skip_spaces(text, pos)
        if pos >= len(text) or text[pos] not in SYMBOL_OPS:
            # "(x)" is accepted as a plain grouping
            if pos < len(text) and text[pos] == ')':
                return left, pos + 1
            found = text[pos] if pos < len(text) else 'end of input'
            raise ExpressionParseError(f"Unknown operator at position {pos}: {found}")
        op = SYMBOL_OPS[text[pos]]
        right, pos = _parse_at(text, pos + 1)
        pos = _skip_spaces(text, pos)
        if pos >= len(text) or text[pos] != ')':
            raise ExpressionParseError(f"Missing closing parenthesis at position {pos}")
        return Operation(op, left, right), pos + 1

    start = pos
    if text[pos] == '-':
        pos += 1
    # Numbers may carry an exponent sign, as in str(1e-05)
    numeric = pos < len(text) and (text[pos].isdigit() or text[pos] == '.')
    while pos < len(text):
        char = text[pos]
        if char.isalnum() or char in '._':
            pos += 1
        elif numeric and char in '+-' and text[pos - 1] in 'eE':
            pos += 1
        else:
            break
    token = text[start:pos]
    if not token or token == '-':
        raise ExpressionParseError(f"Unexpected character at position {start}: {text[start]}")
    return Atom(_parse_atom_value(token)), pos


def _parse_atom_value(token: str) -> AtomValue:
    try:
        return int(token)
    except ValueError:
        pass
    try:
        value = float(token)
    except ValueError:
        if token.isidentifier():
            return token
        raise ExpressionParseError(f"Invalid atom: {token}")
    if not np.isfinite(value):
        raise ExpressionParseError(f"Non-finite constant: {token}")
    return value
