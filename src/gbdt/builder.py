"""
Recursive construction of one regression tree.

Starting from the sampled rows at the root, every node either becomes a leaf
(depth limit, too few rows to honour ``min_leaf_size`` on both sides, or no
acceptable split) or is partitioned by the best split and its children are
built left first, then right. Node slots are reserved in the arena before
recursing so a parent always precedes its children.
"""

import logging
from typing import List, Optional

import numpy as np

from .config import Config
from .data import DataSet
from .losses import LossFunction
from .sampling import sample_features
from .split import SplitFinder
from .tree import DecisionTree, InternalNode, LeafNode, TreeNode

logger = logging.getLogger(__name__)


class TreeBuilder:
    """
    Grows a ``DecisionTree`` on the working residuals of a ``DataSet``.

    Args:
        config: Training configuration (depth limit, leaf size, feature sampling policy).
        split_finder: Split search used at every node.
    """

    def __init__(self, config: Config, split_finder: SplitFinder):
        self.config = config
        self.split_finder = split_finder

    def build(
        self,
        dataset: DataSet,
        indices: np.ndarray,
        predictions: np.ndarray,
        loss: LossFunction,
        features: Optional[np.ndarray] = None,
        rng: Optional[np.random.Generator] = None
    ) -> DecisionTree:
        """
        Build a tree over the rows ``indices`` (ascending).

        Args:
            dataset: Training data with residuals already refreshed for ``indices``.
            indices: Rows covered by the root.
            predictions: Current ensemble prediction for every row of ``dataset``.
            loss: Loss used for leaf values.
            features: Candidate features for every node ("tree" policy). Ignored
                when the policy is "node".
            rng: Generator for per-node feature draws ("node" policy).

        Returns:
            The finished, immutable tree.
        """
        per_node = self.config.feature_sample_policy == "node"
        if per_node and rng is None:
            raise ValueError("Per-node feature sampling needs a random generator")
        if not per_node and features is None:
            features = np.arange(dataset.n_features)

        nodes: List[Optional[TreeNode]] = [None]
        self._grow(nodes, 0, np.asarray(indices), 0, dataset, predictions, loss, features, rng)
        return DecisionTree(nodes)

    def _grow(
        self,
        nodes: List[Optional[TreeNode]],
        slot: int,
        indices: np.ndarray,
        depth: int,
        dataset: DataSet,
        predictions: np.ndarray,
        loss: LossFunction,
        features: Optional[np.ndarray],
        rng: Optional[np.random.Generator]
    ) -> None:
        n = len(indices)
        split = None
        if depth < self.config.max_depth and n >= 2 * self.config.min_leaf_size:
            if self.config.feature_sample_policy == "node":
                features = sample_features(dataset.n_features, self.config, rng)
            split = self.split_finder.find(dataset, indices, features)

        if split is None:
            value = loss.leaf_value(
                dataset.targets[indices],
                predictions[indices],
                dataset.residuals[indices],
                dataset.weights[indices],
            )
            nodes[slot] = LeafNode(value=value, n_samples=n, depth=depth)
            return

        go_left = dataset.features[indices, split.feature_index] <= split.threshold
        left_slot, right_slot = len(nodes), len(nodes) + 1
        nodes.extend([None, None])
        nodes[slot] = InternalNode(
            feature_index=split.feature_index,
            threshold=split.threshold,
            left=left_slot,
            right=right_slot,
            gain=split.gain,
            n_samples=n,
            depth=depth,
        )
        self._grow(nodes, left_slot, indices[go_left], depth + 1, dataset, predictions, loss, features, rng)
        self._grow(nodes, right_slot, indices[~go_left], depth + 1, dataset, predictions, loss, features, rng)
