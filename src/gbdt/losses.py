"""
Loss functions for gradient boosting: values, negative gradients and leaf values.

Each loss supplies the working residual a tree is fit to (the negative
gradient, so a larger residual pushes the prediction up) and the optimal
constant for the rows routed to a leaf.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression:
  a statistical view of boosting (LogitBoost).
"""

from typing import Optional

import numpy as np
from scipy.special import expit

from .config import Loss
from .errors import DataError

# Probabilities are clipped to [EPS, 1 - EPS] before taking logs.
EPS = 1e-15


def _weights(values: np.ndarray, weights: Optional[np.ndarray]) -> np.ndarray:
    return np.ones_like(values, dtype=float) if weights is None else weights


def _weighted_mean(values: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    w = _weights(values, weights)
    total = np.sum(w)
    if total <= 0:
        return 0.0
    return float(np.sum(w * values) / total)


def weighted_median(values: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Weighted median; equals ``np.median`` for unit weights.

    When the cumulative weight hits exactly half of the total, the two
    neighbouring values are averaged. Empty or zero-weight input gives 0.0.
    """
    values = np.asarray(values, dtype=float)
    w = _weights(values, weights)
    total = np.sum(w)
    if values.size == 0 or total <= 0:
        return 0.0

    order = np.argsort(values, kind="stable")
    v = values[order]
    cumulative = np.cumsum(w[order])
    half = 0.5 * total
    k = int(np.searchsorted(cumulative, half, side="left"))
    k = min(k, v.size - 1)
    if cumulative[k] == half and k + 1 < v.size:
        return float(0.5 * (v[k] + v[k + 1]))
    return float(v[k])


# ===========================
# Squared error
# ===========================

def mse_loss(y_true: np.ndarray, y_pred: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """Mean squared error loss: L(y, f) = 0.5 * (y - f)^2."""
    return 0.5 * _weighted_mean((y_true - y_pred) ** 2, weights)


def mse_negative_gradient(y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
    """
    Negative gradient (pseudo-residuals) for MSE loss.

    For L(y, f) = 0.5 * (y - f)^2, the negative gradient is:
    -∂L/∂f = y - f (the residuals).
    """
    return y_true - y_pred


def mse_optimal_gamma(residuals: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Optimal leaf value for MSE loss in a region.

    γ* = argmin_γ Σ w_i (r_i - γ)^2, the weighted mean of the residuals.
    """
    return _weighted_mean(residuals, weights)


# ===========================
# Absolute error (LAD)
# ===========================

def lad_loss(y_true: np.ndarray, y_pred: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """Mean absolute deviation: L(y, f) = |y - f|."""
    return _weighted_mean(np.abs(y_true - y_pred), weights)


def lad_negative_gradient(y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
    """Negative gradient of |y - f|: sign(y - f), 0 where the prediction is exact."""
    return np.sign(y_true - y_pred)


def lad_optimal_gamma(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> float:
    """
    Optimal leaf value for absolute loss (LAD_TreeBoost).

    The tree is grown on sign residuals, but the leaf constant minimising
    Σ w_i |y_i - (f_i + γ)| is the weighted median of y_i - f_i.
    """
    return weighted_median(y_true - y_pred, weights)


# ===========================
# Logistic (binomial deviance)
# ===========================

def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable sigmoid function."""
    return expit(x)


def logistic_loss(y_true: np.ndarray, y_pred_raw: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Binomial deviance for y ∈ {0,1}: L = -y*log(p) - (1-y)*log(1-p),
    where p = sigmoid(F) and F is the raw score.
    """
    p = np.clip(sigmoid(y_pred_raw), EPS, 1 - EPS)
    return _weighted_mean(-(y_true * np.log(p) + (1 - y_true) * np.log(1 - p)), weights)


def logistic_negative_gradient(y_true: np.ndarray, y_pred_raw: np.ndarray) -> np.ndarray:
    """
    Negative gradient for logistic loss.

    L(y, F) = -y*F + log(1 + exp(F)), so -∂L/∂F = y - p with p = sigmoid(F).
    """
    return y_true - sigmoid(y_pred_raw)


def logistic_optimal_gamma(
    y_pred_raw: np.ndarray,
    negative_gradients: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> float:
    """
    Optimal leaf value for logistic loss using one Newton-Raphson step.

    γ* = Σ w_i (y_i - p_i) / Σ w_i p_i(1 - p_i)

    Saturated leaves (Hessian sum ~ 0) get 0.0.

    Reference: Friedman et al. (2000), LogitBoost Algorithm 6.
    """
    p = sigmoid(y_pred_raw)
    w = _weights(negative_gradients, weights)
    denominator = np.sum(w * p * (1 - p))
    if denominator < EPS:
        return 0.0
    return float(np.sum(w * negative_gradients) / denominator)


def log_odds(y_true: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """Initial raw score log(p / (1 - p)) for p = weighted mean of {0,1} targets."""
    p = float(np.clip(_weighted_mean(y_true, weights), EPS, 1 - EPS))
    return float(np.log(p / (1 - p)))


# ===========================
# Dispatcher
# ===========================

class LossFunction:
    """
    Single entry point over the closed set of supported losses.

    Args:
        loss: A ``Loss`` member or its name.
    """

    def __init__(self, loss):
        self.loss = Loss.parse(loss)

    def check_targets(self, targets: np.ndarray) -> None:
        """Raise ``DataError`` if the targets cannot be used with this loss."""
        if self.loss is Loss.LOG_LIKELIHOOD:
            labels = np.unique(targets)
            if not np.all(np.isin(labels, (0.0, 1.0))):
                raise DataError(f"LogLikelihood requires targets in {{0, 1}}, got values {labels[:5]}")

    def value(self, targets: np.ndarray, predictions: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
        if self.loss is Loss.SQUARED_ERROR:
            return mse_loss(targets, predictions, weights)
        if self.loss is Loss.ABSOLUTE_ERROR:
            return lad_loss(targets, predictions, weights)
        return logistic_loss(targets, predictions, weights)

    def negative_gradient(self, targets: np.ndarray, predictions: np.ndarray) -> np.ndarray:
        if self.loss is Loss.SQUARED_ERROR:
            return mse_negative_gradient(targets, predictions)
        if self.loss is Loss.ABSOLUTE_ERROR:
            return lad_negative_gradient(targets, predictions)
        return logistic_negative_gradient(targets, predictions)

    def leaf_value(
        self,
        targets: np.ndarray,
        predictions: np.ndarray,
        residuals: np.ndarray,
        weights: Optional[np.ndarray] = None
    ) -> float:
        """Constant output for the rows of one leaf; 0.0 for empty or zero-weight leaves."""
        if self.loss is Loss.SQUARED_ERROR:
            return mse_optimal_gamma(residuals, weights)
        if self.loss is Loss.ABSOLUTE_ERROR:
            return lad_optimal_gamma(targets, predictions, weights)
        return logistic_optimal_gamma(predictions, residuals, weights)

    def initial_guess(self, targets: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
        """Loss-optimal constant prediction over all rows."""
        if self.loss is Loss.SQUARED_ERROR:
            return _weighted_mean(targets, weights)
        if self.loss is Loss.ABSOLUTE_ERROR:
            return weighted_median(targets, weights)
        return log_odds(targets, weights)

    def __repr__(self) -> str:
        return f"LossFunction({self.loss.value})"
