"""
evosim_core/guide.py - Small feed-forward guidance network over tree features

The network estimates how interesting a candidate expression is. It never
computes gradients: learning is a perturbation of its weights, scaled by
the prediction error.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .prng import PRNG
from .ast_nodes import ExprNode, Atom, Operation, OPERATORS

FEATURE_NAMES = ('depth', 'nodes', 'variables') + tuple(f"op_{op.lower()}" for op in OPERATORS)

# Normalizers for featurize(), in FEATURE_NAMES order
_DEPTH_SCALE = 10.0
_NODE_SCALE = 50.0
_VARIABLE_SCALE = 5.0
_OPERATOR_SCALE = 10.0

MUTATION_PROBABILITY = 0.1
TRAIN_TOLERANCE = 0.1


class FeatureSizeMismatch(ValueError):
    """Raised when predict() receives a vector of the wrong width"""


@dataclass
class GuideConfig:
    input_size: int = len(FEATURE_NAMES)
    hidden_sizes: List[int] = field(default_factory=lambda: [8, 4])
    output_size: int = 1
    learning_rate: float = 0.01

    def layer_sizes(self) -> List[int]:
        return [self.input_size, *self.hidden_sizes, self.output_size]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['hidden_sizes'] = list(self.hidden_sizes)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GuideConfig':
        return cls(
            input_size=int(data['input_size']),
            hidden_sizes=[int(size) for size in data['hidden_sizes']],
            output_size=int(data['output_size']),
            learning_rate=float(data['learning_rate'])
        )


class Layer:
    """Dense layer: weights[input][output], biases[output] and an activation tag"""

    def __init__(self, weights: np.ndarray, biases: np.ndarray, activation: str):
        self.weights = weights
        self.biases = biases
        self.activation = activation

    def forward(self, inputs: np.ndarray) -> np.ndarray:
        return activate(inputs @ self.weights + self.biases, self.activation)


def activate(x: np.ndarray, activation: str) -> np.ndarray:
    if activation == 'relu':
        return np.maximum(0.0, x)
    elif activation == 'sigmoid':
        return 1.0 / (1.0 + np.exp(-x))
    elif activation == 'tanh':
        return np.tanh(x)
    return x


class GuidanceNetwork:
    """Multi-layer perceptron with ReLU hidden layers and a sigmoid output"""

    def __init__(self, config: Optional[GuideConfig], prng: PRNG):
        self.config = config or GuideConfig()
        self.prng = prng
        self.layers: List[Layer] = []
        self._initialize_layers()

    def _initialize_layers(self) -> None:
        """Xavier/Glorot uniform weights, zero biases"""
        sizes = self.config.layer_sizes()
        for i in range(len(sizes) - 1):
            fan_in, fan_out = sizes[i], sizes[i + 1]
            limit = np.sqrt(6.0 / (fan_in + fan_out))
            weights = np.empty((fan_in, fan_out), dtype=np.float64)
            for row in range(fan_in):
                for col in range(fan_out):
                    weights[row, col] = self.prng.next() * 2 * limit - limit
            biases = np.zeros(fan_out, dtype=np.float64)
            activation = 'sigmoid' if i == len(sizes) - 2 else 'relu'
            self.layers.append(Layer(weights, biases, activation))

    @staticmethod
    def featurize(tree: ExprNode) -> np.ndarray:
        """Normalized [0, 1] features of a tree, ordered as FEATURE_NAMES"""
        max_depth = 0
        nodes = 0
        variables = 0
        op_counts = dict.fromkeys(OPERATORS, 0)

        stack = [(tree, 1)]
        while stack:
            node, depth = stack.pop()
            max_depth = max(max_depth, depth)
            nodes += 1
            if isinstance(node, Atom):
                if node.is_variable:
                    variables += 1
            elif isinstance(node, Operation):
                op_counts[node.op] += 1
                stack.append((node.right, depth + 1))
                stack.append((node.left, depth + 1))

        features = [
            min(1.0, max_depth / _DEPTH_SCALE),
            min(1.0, nodes / _NODE_SCALE),
            min(1.0, variables / _VARIABLE_SCALE),
        ]
        features.extend(min(1.0, op_counts[op] / _OPERATOR_SCALE) for op in OPERATORS)
        return np.array(features, dtype=np.float64)

    def predict(self, features: Sequence[float]) -> np.ndarray:
        """Forward pass"""
        current = np.asarray(features, dtype=np.float64).reshape(-1)
        if current.shape[0] != self.config.input_size:
            raise FeatureSizeMismatch(
                f"Input size mismatch: expected {self.config.input_size}, got {current.shape[0]}")
        for layer in self.layers:
            current = layer.forward(current)
        return current

    def score(self, tree: ExprNode) -> float:
        """Predicted interestingness of a tree"""
        return float(self.predict(self.featurize(tree))[0])

    def mutate(self, rate: float) -> None:
        """Perturb a random subset of weights and biases (neuro-evolution)"""
        for layer in self.layers:
            rows, cols = layer.weights.shape
            for i in range(rows):
                for j in range(cols):
                    if self.prng.next() < MUTATION_PROBABILITY:
                        layer.weights[i, j] += (self.prng.next() - 0.5) * rate
            for j in range(layer.biases.shape[0]):
                if self.prng.next() < MUTATION_PROBABILITY:
                    layer.biases[j] += (self.prng.next() - 0.5) * rate

    def train(self, features: Sequence[float], target: Sequence[float]) -> float:
        """Single-sample perturbation update; returns the absolute error"""
        prediction = self.predict(features)
        target_arr = np.asarray(target, dtype=np.float64).reshape(-1)
        error = float(np.sum(np.abs(target_arr - prediction)))
        if error > TRAIN_TOLERANCE:
            self.mutate(self.config.learning_rate * error)
        return error

    def serialize(self) -> Dict[str, Any]:
        return {
            'config': self.config.to_dict(),
            'layers': [
                {
                    'weights': layer.weights.tolist(),
                    'biases': layer.biases.tolist(),
                    'activation': layer.activation
                }
                for layer in self.layers
            ]
        }

    @classmethod
    def deserialize(cls, data: Dict[str, Any], prng: PRNG) -> 'GuidanceNetwork':
        """Rebuild a network; weights come from data, later draws from prng"""
        config = GuideConfig.from_dict(data['config'])
        guide = cls.__new__(cls)
        guide.config = config
        guide.prng = prng
        guide.layers = []
        sizes = config.layer_sizes()
        if len(data['layers']) != len(sizes) - 1:
            raise ValueError("Layer count does not match configuration")
        for i, layer_data in enumerate(data['layers']):
            weights = np.array(layer_data['weights'], dtype=np.float64).reshape(sizes[i], sizes[i + 1])
            biases = np.array(layer_data['biases'], dtype=np.float64).reshape(sizes[i + 1])
            guide.layers.append(Layer(weights, biases, layer_data['activation']))
        return guide
