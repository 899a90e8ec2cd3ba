"""
Regression tree stored as an index-addressed node arena.

Nodes live in a flat tuple with the root at index 0; an internal node refers
to its children by position. A row goes left when
``x[feature_index] <= threshold`` and right otherwise, both while training
and at inference.
"""

from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class LeafNode:
    """Terminal node with a constant output."""

    value: float
    n_samples: int = 0
    depth: int = 0


@dataclass(frozen=True)
class InternalNode:
    """Split node; ``left`` / ``right`` are arena indices of the children."""

    feature_index: int
    threshold: float
    left: int
    right: int
    gain: float = 0.0
    n_samples: int = 0
    depth: int = 0


TreeNode = Union[LeafNode, InternalNode]


class DecisionTree:
    """
    Immutable binary regression tree.

    Besides the node tuple, the tree keeps flat numpy views of the arena
    (feature, threshold, children, value) so a whole matrix can be routed
    level by level without Python recursion.
    """

    def __init__(self, nodes: Sequence[TreeNode]):
        if not nodes:
            raise ValueError("A tree needs at least a root node")
        self._nodes: Tuple[TreeNode, ...] = tuple(nodes)

        n = len(self._nodes)
        self._feature = np.full(n, -1, dtype=np.intp)
        self._threshold = np.zeros(n)
        self._left = np.zeros(n, dtype=np.intp)
        self._right = np.zeros(n, dtype=np.intp)
        self._value = np.zeros(n)

        for i, node in enumerate(self._nodes):
            if isinstance(node, InternalNode):
                if not (i < node.left < n and i < node.right < n):
                    raise ValueError(f"Node {i} has out-of-range children ({node.left}, {node.right})")
                self._feature[i] = node.feature_index
                self._threshold[i] = node.threshold
                self._left[i] = node.left
                self._right[i] = node.right
            elif isinstance(node, LeafNode):
                self._value[i] = node.value
            else:
                raise TypeError(f"Unexpected node type {type(node).__name__}")

        for array in (self._feature, self._threshold, self._left, self._right, self._value):
            array.flags.writeable = False

    @property
    def nodes(self) -> Tuple[TreeNode, ...]:
        return self._nodes

    @property
    def root(self) -> TreeNode:
        return self._nodes[0]

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> TreeNode:
        return self._nodes[index]

    def leaves(self) -> Iterator[LeafNode]:
        return (node for node in self._nodes if isinstance(node, LeafNode))

    @property
    def n_leaves(self) -> int:
        return sum(1 for _ in self.leaves())

    @property
    def depth(self) -> int:
        """Depth of the deepest leaf (a single-leaf tree has depth 0)."""
        return max(leaf.depth for leaf in self.leaves())

    def apply_row(self, x: Sequence[float]) -> int:
        """Arena index of the leaf that ``x`` falls into."""
        i = 0
        node = self._nodes[0]
        while isinstance(node, InternalNode):
            i = node.left if x[node.feature_index] <= node.threshold else node.right
            node = self._nodes[i]
        return i

    def predict_row(self, x: Sequence[float]) -> float:
        return self._nodes[self.apply_row(x)].value

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Leaf index per row of ``X`` (shape (n_rows, n_features))."""
        node = np.zeros(X.shape[0], dtype=np.intp)
        active = np.nonzero(self._feature[node] >= 0)[0]
        while active.size:
            current = node[active]
            go_left = X[active, self._feature[current]] <= self._threshold[current]
            node[active] = np.where(go_left, self._left[current], self._right[current])
            active = active[self._feature[node[active]] >= 0]
        return node

    def predict(self, X: np.ndarray) -> np.ndarray:
        return self._value[self.apply(X)]

    def __eq__(self, other) -> bool:
        if not isinstance(other, DecisionTree):
            return NotImplemented
        return self._nodes == other._nodes

    def __hash__(self):
        return hash(self._nodes)

    def __repr__(self) -> str:
        return f"DecisionTree(n_nodes={len(self)}, n_leaves={self.n_leaves}, depth={self.depth})"
