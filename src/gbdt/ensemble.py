"""
Trained additive model: an ordered sequence of (tree, weight) pairs.

Trees are summed in insertion (training) order on top of a constant
baseline, so batch and single-row predictions perform the same floating-point
additions in the same order.
"""

from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .config import Config, Loss
from .data import check_feature_rows
from .errors import DataError
from .tree import DecisionTree, InternalNode


class Ensemble:
    """
    Gradient boosted ensemble.

    Args:
        n_features: Feature arity every input row must have.
        loss: Loss the ensemble was trained with; predictions are raw scores
            (log-odds for LogLikelihood).
        baseline: Constant prediction of the empty ensemble.
        config: Training configuration, kept for persistence and reporting.
        feature_names: Optional column names.
    """

    def __init__(
        self,
        n_features: int,
        loss=Loss.SQUARED_ERROR,
        baseline: float = 0.0,
        config: Optional[Config] = None,
        feature_names: Optional[Sequence[str]] = None
    ):
        self.n_features = int(n_features)
        self.loss = Loss.parse(loss)
        self.baseline = float(baseline)
        self.config = config
        self.feature_names = list(feature_names) if feature_names is not None else None
        self._trees: List[Tuple[DecisionTree, float]] = []
        self._frozen = False

    def append(self, tree: DecisionTree, weight: float) -> None:
        """Add the next tree. Only valid while training is in progress."""
        if self._frozen:
            raise RuntimeError("Ensemble is frozen; trees can only be added during training")
        for node in tree.nodes:
            if isinstance(node, InternalNode) and not 0 <= node.feature_index < self.n_features:
                raise DataError(
                    f"Tree splits on feature {node.feature_index} but the ensemble has {self.n_features} features"
                )
        self._trees.append((tree, float(weight)))

    def freeze(self) -> "Ensemble":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def trees(self) -> Tuple[Tuple[DecisionTree, float], ...]:
        return tuple(self._trees)

    def __len__(self) -> int:
        return len(self._trees)

    def __iter__(self) -> Iterator[Tuple[DecisionTree, float]]:
        return iter(tuple(self._trees))

    @property
    def n_nodes(self) -> int:
        return sum(len(tree) for tree, _ in self._trees)

    def predict(self, features: Sequence[float]) -> float:
        """Raw prediction for a single feature vector."""
        x = check_feature_rows(features, self.n_features)
        if x.shape[0] != 1:
            raise DataError(f"predict expects a single row, got {x.shape[0]}; use predict_batch")
        row = x[0]
        total = self.baseline
        for tree, weight in self._trees:
            total += weight * tree.predict_row(row)
        return float(total)

    def predict_batch(self, rows, n_trees: Optional[int] = None) -> np.ndarray:
        """
        Raw predictions for a matrix of rows, in input order.

        Args:
            rows: Array-like of shape (n_rows, n_features).
            n_trees: Use only the first ``n_trees`` trees (staged prediction).
        """
        X = check_feature_rows(rows, self.n_features)
        trees = self._trees if n_trees is None else self._trees[:n_trees]
        F = np.full(X.shape[0], self.baseline)
        for tree, weight in trees:
            F += weight * tree.predict(X)
        return F

    def staged_predict(self, rows) -> Iterator[np.ndarray]:
        """Predictions after each tree, in training order."""
        X = check_feature_rows(rows, self.n_features)
        F = np.full(X.shape[0], self.baseline)
        for tree, weight in self._trees:
            F = F + weight * tree.predict(X)
            yield F

    def feature_importances(self, kind: str = "gain") -> np.ndarray:
        """
        Per-feature importance, normalised to sum to 1 (all zeros without splits).

        Args:
            kind: "gain" sums the impurity reduction of every split on a feature
                (scaled by the rows it covered); "split" counts splits.
        """
        if kind not in ("gain", "split"):
            raise ValueError(f"kind must be 'gain' or 'split', got {kind!r}")
        importances = np.zeros(self.n_features)
        for tree, _ in self._trees:
            for node in tree.nodes:
                if isinstance(node, InternalNode):
                    importances[node.feature_index] += node.gain * node.n_samples if kind == "gain" else 1.0
        total = importances.sum()
        return importances / total if total > 0 else importances

    def __repr__(self) -> str:
        return (
            f"Ensemble(n_trees={len(self)}, loss={self.loss.value}, "
            f"baseline={self.baseline:.6g}, n_features={self.n_features})"
        )
