"""
Training data container and ingestion.

A ``DataSet`` holds numeric features, targets, per-row weights and the working
residual buffer rewritten by the booster once per iteration. All validation
happens here, at ingestion, so tree construction never meets malformed rows.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from sklearn.datasets import load_svmlight_file

from .errors import DataError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class DataSet:
    """
    Columnar view of the training rows.

    Attributes:
        features: Feature matrix, shape (n_rows, n_features). Read-only.
        targets: Target values, shape (n_rows,). Read-only.
        weights: Non-negative row weights, shape (n_rows,). Read-only.
        residuals: Working residuals, shape (n_rows,). The only mutable field.
        feature_names: Optional column names, used for reporting.
    """

    def __init__(
        self,
        features: np.ndarray,
        targets: np.ndarray,
        weights: Optional[np.ndarray] = None,
        feature_names: Optional[Sequence[str]] = None
    ):
        features = _as_float_array(features, "features", copy=True)
        targets = _as_float_array(targets, "targets", copy=True)

        if features.ndim != 2:
            raise DataError(f"features must be 2-dimensional, got shape {features.shape}")
        if targets.ndim != 1:
            raise DataError(f"targets must be 1-dimensional, got shape {targets.shape}")
        n_rows, n_features = features.shape
        if n_rows == 0:
            raise DataError("DataSet must contain at least one row")
        if targets.shape[0] != n_rows:
            raise DataError(f"features and targets have incompatible shapes: {n_rows} vs {targets.shape[0]}")

        if weights is None:
            weights = np.ones(n_rows)
        else:
            weights = _as_float_array(weights, "weights", copy=True)
            if weights.shape != (n_rows,):
                raise DataError(f"weights must have shape ({n_rows},), got {weights.shape}")

        _check_finite(features, "feature")
        _check_finite(targets, "target")
        _check_finite(weights, "weight")
        if np.any(weights < 0):
            row = int(np.argmax(weights < 0))
            raise DataError(f"Row {row}: weight must be non-negative, got {weights[row]}")

        if feature_names is not None:
            feature_names = [str(name) for name in feature_names]
            if len(feature_names) != n_features:
                raise DataError(f"Expected {n_features} feature names, got {len(feature_names)}")

        self.features = features
        self.targets = targets
        self.weights = weights
        self.residuals = np.zeros(n_rows)
        self.feature_names = feature_names

        for array in (self.features, self.targets, self.weights):
            array.flags.writeable = False

    @classmethod
    def from_arrays(
        cls,
        X,
        y,
        weights=None,
        feature_names: Optional[Sequence[str]] = None
    ) -> "DataSet":
        """Build a DataSet from array-likes (always copied, never aliased)."""
        return cls(X, y, weights, feature_names=feature_names)

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence]) -> "DataSet":
        """
        Build a DataSet from ``(features, target)`` or ``(features, target, weight)`` tuples.

        Raises:
            DataError: On empty input, arity mismatch or non-finite values.
        """
        features: List[List[float]] = []
        targets: List[float] = []
        weights: List[float] = []
        arity = None

        for i, row in enumerate(rows):
            if len(row) not in (2, 3):
                raise DataError(f"Row {i}: expected (features, target[, weight]), got {len(row)} fields")
            try:
                x = [float(v) for v in row[0]]
                y = float(row[1])
                w = float(row[2]) if len(row) == 3 else 1.0
            except (TypeError, ValueError) as exc:
                raise DataError(f"Row {i}: non-numeric value ({exc})") from exc
            if arity is None:
                arity = len(x)
            elif len(x) != arity:
                raise DataError(f"Row {i}: expected {arity} features, got {len(x)}")
            features.append(x)
            targets.append(y)
            weights.append(w)

        if arity is None:
            raise DataError("DataSet must contain at least one row")

        return cls(
            np.array(features, dtype=float).reshape(len(features), arity),
            np.array(targets, dtype=float),
            np.array(weights, dtype=float),
        )

    @property
    def n_rows(self) -> int:
        return self.features.shape[0]

    @property
    def n_features(self) -> int:
        return self.features.shape[1]

    def __len__(self) -> int:
        return self.n_rows

    def __repr__(self) -> str:
        return f"DataSet(n_rows={self.n_rows}, n_features={self.n_features})"


def check_feature_rows(rows, n_features: int) -> np.ndarray:
    """
    Validate inference input and return it as a 2-d float array.

    Arity mismatch is a ``DataError``; rows are never truncated or padded.
    """
    X = _as_float_array(rows, "rows")
    if X.ndim == 1:
        X = X.reshape(1, -1)
    if X.ndim != 2:
        raise DataError(f"rows must be 1- or 2-dimensional, got shape {X.shape}")
    if X.shape[1] != n_features:
        raise DataError(f"Expected {n_features} features per row, got {X.shape[1]}")
    return X


def load_csv(
    path: PathLike,
    target: Optional[str],
    weight: Optional[str] = None,
    features: Optional[Sequence[str]] = None,
    **read_csv_kwargs
) -> DataSet:
    """
    Load a delimited text file with pandas.

    Args:
        path: File to read.
        target: Name of the target column, or None for unlabeled input (targets are 0.0).
        weight: Optional name of the row-weight column.
        features: Feature columns; defaults to every remaining column, in file order.
        **read_csv_kwargs: Passed through to ``pandas.read_csv`` (e.g. ``sep``).

    Returns:
        DataSet with ``feature_names`` set from the column headers.
    """
    try:
        frame = pd.read_csv(path, **read_csv_kwargs)
    except (OSError, UnicodeDecodeError) as exc:
        raise DataError(f"{path}: cannot read input ({exc})") from exc
    missing = [c for c in [target, weight, *(features or [])] if c is not None and c not in frame.columns]
    if missing:
        raise DataError(f"{path}: missing column(s): {', '.join(map(str, missing))}")

    if features is None:
        features = [c for c in frame.columns if c not in (target, weight)]

    try:
        X = frame[list(features)].to_numpy(dtype=float)
        y = frame[target].to_numpy(dtype=float) if target is not None else np.zeros(len(frame))
        w = frame[weight].to_numpy(dtype=float) if weight is not None else None
    except ValueError as exc:
        raise DataError(f"{path}: non-numeric value in input ({exc})") from exc

    logger.info(f"Loaded {X.shape[0]} rows x {X.shape[1]} features from {path}")
    return DataSet(X, y, w, feature_names=list(features))


def load_libsvm(path: PathLike, n_features: Optional[int] = None) -> DataSet:
    """
    Load a LibSVM / SVMlight file (``target index:value ...``) via scikit-learn.

    Absent entries are zeros. Feature indices are used as given (zero-based
    detection is left to scikit-learn's ``zero_based="auto"``).
    """
    try:
        X, y = load_svmlight_file(str(path), n_features=n_features)
    except ValueError as exc:
        raise DataError(f"{path}: malformed LibSVM input ({exc})") from exc
    except OSError as exc:
        raise DataError(f"{path}: cannot read input ({exc})") from exc

    logger.info(f"Loaded {X.shape[0]} rows x {X.shape[1]} features from {path}")
    return DataSet(X.toarray(), y)


def _as_float_array(values, name: str, copy: bool = False) -> np.ndarray:
    try:
        if copy:
            return np.array(values, dtype=float)
        return np.asarray(values, dtype=float)
    except (TypeError, ValueError) as exc:
        raise DataError(f"{name} must be numeric ({exc})") from exc


def _check_finite(values: np.ndarray, what: str) -> None:
    bad = ~np.isfinite(values)
    if np.any(bad):
        position = np.argwhere(bad)[0]
        raise DataError(f"Row {int(position[0])}: non-finite {what} value")
