"""
Exhaustive split search over sorted feature values.

For every candidate feature the node's rows are stably sorted by feature
value and each midpoint between consecutive distinct values is scored in
O(1) from prefix sums. The impurity is the weighted variance of the working
residuals (a squared-error proxy, whatever the boosting loss):

    gain = I(parent) - (I(left) * W_left + I(right) * W_right) / W_parent

where W are weight sums (row counts for unit weights).
"""

import logging
from concurrent.futures import Executor
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from .data import DataSet

logger = logging.getLogger(__name__)


class Split(NamedTuple):
    """Winning split of a node."""

    feature_index: int
    threshold: float
    gain: float
    n_left: int
    n_right: int


class _Candidate(NamedTuple):
    gain: float
    threshold: float
    n_left: int


def weighted_impurity(residuals: np.ndarray, weights: np.ndarray) -> float:
    """Weighted variance of ``residuals``; 0.0 for zero total weight."""
    total = np.sum(weights)
    if total <= 0:
        return 0.0
    mean = np.sum(weights * residuals) / total
    centred = residuals - mean
    return float(np.sum(weights * centred * centred) / total)


class SplitFinder:
    """
    Finds the (feature, threshold) pair with the largest impurity reduction.

    Args:
        min_leaf_size: Minimum number of rows on each side of a split.
        min_split_gain: Splits with a smaller gain are rejected.
        executor: Optional executor; when given, features are scanned
            concurrently and reduced in feature order afterwards, so the
            result is the same as a serial scan.
    """

    def __init__(
        self,
        min_leaf_size: int = 1,
        min_split_gain: float = 0.0,
        executor: Optional[Executor] = None
    ):
        self.min_leaf_size = min_leaf_size
        self.min_split_gain = min_split_gain
        self.executor = executor

    def find(
        self,
        dataset: DataSet,
        indices: np.ndarray,
        features: Sequence[int]
    ) -> Optional[Split]:
        """
        Best acceptable split of the rows ``indices`` over ``features``.

        ``indices`` must be in ascending row order; equal feature values keep
        that order after sorting. Ties in gain go to the lowest feature index,
        then the lowest threshold.

        Returns:
            The winning ``Split``, or None when no candidate passes the
            leaf-size and gain constraints (including uniform residuals).
        """
        n = len(indices)
        if n < 2 * self.min_leaf_size or len(features) == 0:
            return None

        residuals = dataset.residuals[indices]
        weights = dataset.weights[indices]
        total_weight = np.sum(weights)
        if total_weight <= 0 or np.all(residuals == residuals[0]):
            return None

        # Centre on the node mean so the running sums of squares do not cancel.
        centred = residuals - np.sum(weights * residuals) / total_weight
        parent_impurity = weighted_impurity(centred, weights)

        def scan(feature: int) -> Optional[_Candidate]:
            return self._scan_feature(
                dataset.features[indices, feature], centred, weights, total_weight, parent_impurity
            )

        features = [int(f) for f in features]
        if self.executor is not None and len(features) > 1:
            candidates: List[Optional[_Candidate]] = list(self.executor.map(scan, features))
        else:
            candidates = [scan(f) for f in features]

        best: Optional[Split] = None
        for feature, candidate in zip(features, candidates):
            if candidate is None:
                continue
            if best is None or candidate.gain > best.gain or (
                candidate.gain == best.gain and feature < best.feature_index
            ):
                best = Split(feature, candidate.threshold, candidate.gain, candidate.n_left, n - candidate.n_left)

        if best is not None:
            logger.debug(
                f"Split on feature {best.feature_index} at {best.threshold:.6g} "
                f"(gain={best.gain:.6g}, left={best.n_left}, right={best.n_right})"
            )
        return best

    def _scan_feature(
        self,
        values: np.ndarray,
        centred: np.ndarray,
        weights: np.ndarray,
        total_weight: float,
        parent_impurity: float
    ) -> Optional[_Candidate]:
        n = values.shape[0]
        order = np.argsort(values, kind="stable")
        xs = values[order]
        rs = centred[order]
        ws = weights[order]

        # Split after sorted position i, between xs[i] and xs[i + 1].
        positions = np.nonzero(xs[1:] > xs[:-1])[0]
        n_left = positions + 1
        allowed = (n_left >= self.min_leaf_size) & (n - n_left >= self.min_leaf_size)
        positions = positions[allowed]
        if positions.size == 0:
            return None

        # Prefix sums in ascending feature order.
        cum_w = np.cumsum(ws)
        cum_r = np.cumsum(ws * rs)
        cum_r2 = np.cumsum(ws * rs * rs)

        w_left = cum_w[positions]
        r_left = cum_r[positions]
        r2_left = cum_r2[positions]
        w_right = cum_w[-1] - w_left
        r_right = cum_r[-1] - r_left
        r2_right = cum_r2[-1] - r2_left

        impurity_left = _variance(w_left, r_left, r2_left)
        impurity_right = _variance(w_right, r_right, r2_right)
        gains = parent_impurity - (impurity_left * w_left + impurity_right * w_right) / total_weight

        k = int(np.argmax(gains))  # first maximum, i.e. lowest threshold
        gain = float(gains[k])
        if not gain > 0.0 or gain < self.min_split_gain:
            return None

        i = int(positions[k])
        lower, upper = xs[i], xs[i + 1]
        threshold = lower + (upper - lower) / 2.0
        if not lower <= threshold < upper:
            # adjacent floats: the midpoint rounds onto a neighbour
            threshold = lower
        return _Candidate(gain, float(threshold), i + 1)


def _variance(w: np.ndarray, s: np.ndarray, s2: np.ndarray) -> np.ndarray:
    """Weighted variance from sufficient statistics; 0 where the weight is 0."""
    safe_w = np.where(w > 0, w, 1.0)
    mean = s / safe_w
    variance = s2 / safe_w - mean * mean
    return np.where(w > 0, np.maximum(variance, 0.0), 0.0)
