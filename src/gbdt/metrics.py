"""Evaluation metrics for trained ensembles."""

from typing import Dict, Optional

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    roc_auc_score,
)

from .config import Loss
from .losses import sigmoid


def compute_metrics_regression(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> Dict[str, float]:
    """MSE, RMSE and MAE, optionally weighted per row."""
    mse = mean_squared_error(y_true, y_pred, sample_weight=weights)
    return {
        "mse": float(mse),
        "rmse": float(np.sqrt(mse)),
        "mae": float(mean_absolute_error(y_true, y_pred, sample_weight=weights)),
    }


def compute_metrics_classification(
    y_true: np.ndarray,
    y_pred_proba: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> Dict[str, float]:
    """Log loss, accuracy at 0.5 and ROC AUC (NaN unless both classes are present)."""
    y_pred = (y_pred_proba >= 0.5).astype(int)
    proba = np.clip(y_pred_proba, 1e-15, 1 - 1e-15)

    if len(np.unique(y_true)) == 2:
        auc = float(roc_auc_score(y_true, y_pred_proba, sample_weight=weights))
    else:
        auc = float("nan")

    return {
        "log_loss": float(log_loss(y_true, proba, sample_weight=weights, labels=[0, 1])),
        "accuracy": float(accuracy_score(y_true, y_pred, sample_weight=weights)),
        "roc_auc": auc,
    }


def evaluate(ensemble, dataset) -> Dict[str, float]:
    """
    Score an ensemble on a labelled DataSet with the metrics matching its loss.

    LogLikelihood ensembles are scored on sigmoid(raw score); the others on the
    raw prediction.
    """
    raw = ensemble.predict_batch(dataset.features)
    if ensemble.loss is Loss.LOG_LIKELIHOOD:
        return compute_metrics_classification(dataset.targets, sigmoid(raw), dataset.weights)
    return compute_metrics_regression(dataset.targets, raw, dataset.weights)
