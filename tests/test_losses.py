"""
Tests for loss functions, leaf values and evaluation metrics.

Coverage:
- Pseudo-residuals for squared, absolute and logistic loss
- Leaf value optimisation (mean, weighted median, Newton step)
- Initial constant predictions
- Metric helpers and ``evaluate``
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# ---------- path setup ----------
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from gbdt.config import Config, Loss
from gbdt.core import train
from gbdt.data import DataSet
from gbdt.errors import ConfigError, DataError
from gbdt.losses import (
    LossFunction,
    lad_loss,
    lad_negative_gradient,
    lad_optimal_gamma,
    log_odds,
    logistic_loss,
    logistic_negative_gradient,
    logistic_optimal_gamma,
    mse_loss,
    mse_negative_gradient,
    mse_optimal_gamma,
    sigmoid,
    weighted_median,
)
from gbdt.metrics import compute_metrics_classification, compute_metrics_regression, evaluate


# =============================================================================
# Squared error
# =============================================================================


class TestSquaredError:

    def test_mse_negative_gradient(self):
        """MSE pseudo-residuals match y - F."""
        y_true = np.array([1.0, 2.0, 3.0, 4.0])
        y_pred = np.array([1.5, 1.8, 3.2, 3.5])
        np.testing.assert_allclose(mse_negative_gradient(y_true, y_pred), y_true - y_pred, rtol=1e-10)

    def test_mse_optimal_gamma_is_mean_residual(self):
        residuals = np.array([1.0, 0.5, 1.0, 1.0])
        assert mse_optimal_gamma(residuals) == pytest.approx(np.mean(residuals), rel=1e-12)

    def test_mse_optimal_gamma_weighted(self):
        residuals = np.array([0.0, 10.0])
        assert mse_optimal_gamma(residuals, np.array([3.0, 1.0])) == pytest.approx(2.5)

    def test_mse_optimal_gamma_zero_weight(self):
        assert mse_optimal_gamma(np.array([4.0]), np.array([0.0])) == 0.0

    def test_mse_loss_known_value(self):
        """MSE loss = 0.5 * mean((y - ŷ)²)."""
        y_true = np.array([1.0, 2.0, 3.0])
        assert mse_loss(y_true, y_true) == pytest.approx(0.0, abs=1e-15)

        y_pred = np.array([2.0, 2.0, 2.0])
        expected = 0.5 * np.mean((y_true - y_pred) ** 2)
        assert mse_loss(y_true, y_pred) == pytest.approx(expected, rel=1e-10)

    def test_mse_loss_is_non_negative(self):
        rng = np.random.default_rng(0)
        assert mse_loss(rng.standard_normal(50), rng.standard_normal(50)) >= 0.0


# =============================================================================
# Absolute error
# =============================================================================


class TestAbsoluteError:

    def test_lad_negative_gradient_is_sign(self):
        y_true = np.array([1.0, 2.0, 3.0])
        y_pred = np.array([0.0, 2.0, 5.0])
        np.testing.assert_array_equal(lad_negative_gradient(y_true, y_pred), [1.0, 0.0, -1.0])

    def test_lad_loss_known_value(self):
        assert lad_loss(np.array([1.0, 2.0]), np.array([0.0, 4.0])) == pytest.approx(1.5)

    def test_lad_optimal_gamma_is_median_of_differences(self):
        y_true = np.array([1.0, 5.0, 2.0, 9.0, 4.0])
        y_pred = np.array([0.0, 1.0, 1.0, 1.0, 1.0])
        assert lad_optimal_gamma(y_true, y_pred) == pytest.approx(np.median(y_true - y_pred))

    def test_weighted_median_matches_numpy_for_unit_weights(self):
        rng = np.random.default_rng(3)
        for n in (1, 2, 5, 8):
            values = rng.standard_normal(n)
            assert weighted_median(values) == pytest.approx(np.median(values))

    def test_weighted_median_follows_heavy_rows(self):
        values = np.array([1.0, 2.0, 3.0])
        assert weighted_median(values, np.array([1.0, 1.0, 5.0])) == 3.0
        assert weighted_median(values, np.array([5.0, 1.0, 1.0])) == 1.0

    def test_weighted_median_empty(self):
        assert weighted_median(np.array([])) == 0.0


# =============================================================================
# Logistic loss
# =============================================================================


class TestLogisticLoss:

    def test_logistic_negative_gradient(self):
        y_true = np.array([0, 1, 1, 0])
        F = np.array([-0.5, 1.2, 0.3, -1.0])
        np.testing.assert_allclose(logistic_negative_gradient(y_true, F), y_true - sigmoid(F), rtol=1e-10)

    def test_sigmoid_stability(self):
        """Sigmoid is numerically stable for large inputs."""
        np.testing.assert_allclose(sigmoid(np.array([100.0, 500.0])), 1.0, atol=1e-10)
        np.testing.assert_allclose(sigmoid(np.array([-100.0, -500.0])), 0.0, atol=1e-10)

    def test_logistic_loss_matches_binary_cross_entropy(self):
        """Logistic loss equals sklearn's log_loss."""
        from sklearn.metrics import log_loss as sklearn_log_loss

        rng = np.random.default_rng(7)
        y_true = rng.integers(0, 2, size=80).astype(float)
        raw_scores = rng.standard_normal(80)

        p = np.clip(sigmoid(raw_scores), 1e-15, 1 - 1e-15)
        assert logistic_loss(y_true, raw_scores) == pytest.approx(sklearn_log_loss(y_true, p), rel=1e-6)

    def test_logistic_loss_decreases_with_better_predictions(self):
        y_true = np.array([1.0, 1.0, 0.0, 0.0])
        raw_good = np.array([5.0, 5.0, -5.0, -5.0])
        assert logistic_loss(y_true, raw_good) < logistic_loss(y_true, np.zeros(4))

    def test_logistic_optimal_gamma_newton_step(self):
        """γ* = Σr_i / Σp_i(1−p_i)."""
        rng = np.random.default_rng(42)
        y_true = rng.integers(0, 2, size=20).astype(float)
        F = rng.standard_normal(20)

        neg_grad = logistic_negative_gradient(y_true, F)
        gamma = logistic_optimal_gamma(F, neg_grad)

        p = sigmoid(F)
        assert gamma == pytest.approx(np.sum(neg_grad) / np.sum(p * (1.0 - p)), rel=1e-8)

    def test_logistic_optimal_gamma_zero_denominator(self):
        """Saturated predictions give a zero update."""
        y_true = np.array([1.0, 1.0])
        raw = np.array([1000.0, 1000.0])
        gamma = logistic_optimal_gamma(raw, logistic_negative_gradient(y_true, raw))
        assert np.isfinite(gamma)
        assert gamma == 0.0

    def test_log_odds(self):
        y = np.array([0.0, 1.0, 1.0, 1.0])
        assert log_odds(y) == pytest.approx(np.log(3.0))


# =============================================================================
# Dispatcher
# =============================================================================


class TestLossFunction:

    def test_accepts_names(self):
        assert LossFunction("SquaredError").loss is Loss.SQUARED_ERROR
        assert LossFunction("LOG_LIKELIHOOD").loss is Loss.LOG_LIKELIHOOD

    def test_unknown_loss(self):
        with pytest.raises(ConfigError):
            LossFunction("Quantile")

    def test_check_targets(self):
        LossFunction(Loss.LOG_LIKELIHOOD).check_targets(np.array([0.0, 1.0, 1.0]))
        LossFunction(Loss.SQUARED_ERROR).check_targets(np.array([-3.0, 7.5]))
        with pytest.raises(DataError):
            LossFunction(Loss.LOG_LIKELIHOOD).check_targets(np.array([0.0, 0.5]))

    @pytest.mark.parametrize("loss, expected", [
        (Loss.SQUARED_ERROR, 4.0),
        (Loss.ABSOLUTE_ERROR, 2.0),
    ])
    def test_initial_guess(self, loss, expected):
        assert LossFunction(loss).initial_guess(np.array([1.0, 2.0, 9.0])) == pytest.approx(expected)

    def test_leaf_values_by_loss(self):
        targets = np.array([1.0, 3.0, 8.0])
        predictions = np.zeros(3)
        residuals = np.array([1.0, 3.0, 8.0])
        assert LossFunction(Loss.SQUARED_ERROR).leaf_value(targets, predictions, residuals) == pytest.approx(4.0)
        assert LossFunction(Loss.ABSOLUTE_ERROR).leaf_value(
            targets, predictions, np.sign(residuals)
        ) == pytest.approx(3.0)


# =============================================================================
# Metric utilities
# =============================================================================


class TestMetricUtilities:

    def test_regression_metrics_known_values(self):
        y_true = np.array([1.0, 2.0, 3.0])
        y_pred = np.array([2.0, 2.0, 2.0])
        result = compute_metrics_regression(y_true, y_pred)
        expected_mse = np.mean((y_true - y_pred) ** 2)
        assert result["mse"] == pytest.approx(expected_mse, rel=1e-10)
        assert result["rmse"] == pytest.approx(np.sqrt(expected_mse), rel=1e-10)
        assert result["mae"] == pytest.approx(np.mean(np.abs(y_true - y_pred)), rel=1e-10)

    def test_regression_metrics_weighted(self):
        result = compute_metrics_regression(np.array([0.0, 0.0]), np.array([1.0, 3.0]), np.array([1.0, 0.0]))
        assert result["mse"] == pytest.approx(1.0)

    def test_classification_metrics_perfect_prediction(self):
        y = np.array([0, 1, 0, 1])
        proba = np.array([0.01, 0.99, 0.01, 0.99])
        result = compute_metrics_classification(y, proba)
        assert result["accuracy"] == pytest.approx(1.0, abs=1e-9)
        assert result["roc_auc"] == pytest.approx(1.0, abs=1e-9)

    def test_classification_metrics_single_class(self):
        result = compute_metrics_classification(np.array([1, 1]), np.array([0.7, 0.9]))
        assert np.isnan(result["roc_auc"])
        assert np.isfinite(result["log_loss"])

    def test_evaluate_selects_metrics_by_loss(self):
        regression = DataSet.from_rows([([1.0], 0.0), ([2.0], 0.0), ([10.0], 10.0)])
        ensemble = train(regression, Config(iterations=1, max_depth=1, shrinkage=1.0))
        result = evaluate(ensemble, regression)
        assert set(result) == {"mse", "rmse", "mae"}
        assert result["mse"] == pytest.approx(0.0, abs=1e-12)

        classification = DataSet.from_rows([([0.0], 0.0), ([1.0], 1.0), ([2.0], 1.0)])
        ensemble = train(classification, Config(iterations=5, loss="LogLikelihood"))
        assert set(evaluate(ensemble, classification)) == {"log_loss", "accuracy", "roc_auc"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
