"""
Extended tests for the scikit-learn style estimators.

Coverage:
- Model state invariants after fit (f0_, ensemble_, train_scores_)
- Training loss monotonicity under full-batch boosting
- Subsample stochasticity and reproducibility contracts
- Convergence on controlled toy problems
- Benchmark parity with sklearn GradientBoosting{Regressor,Classifier}
- Staged prediction consistency
- Input–output shape contracts
- Feature importances
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from sklearn.datasets import make_classification, make_regression
from sklearn.ensemble import (
    GradientBoostingClassifier as SklearnGBC,
    GradientBoostingRegressor as SklearnGBR,
)
from sklearn.metrics import accuracy_score, r2_score
from sklearn.model_selection import train_test_split

# ---------- path setup ----------
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from gbdt.core import GradientBoostingClassifier, GradientBoostingRegressor


# =============================================================================
# Model initialisation invariants
# =============================================================================


class TestModelStateAfterFit:
    """Verify internal state attributes after fitting."""

    def test_regressor_f0_equals_mean_of_y(self):
        """f0_ for regression must equal mean(y) (MSE global optimal)."""
        rng = np.random.default_rng(1)
        X = rng.standard_normal((50, 4))
        y = rng.standard_normal(50)

        gbr = GradientBoostingRegressor(n_estimators=5, random_state=0)
        gbr.fit(X, y)

        assert gbr.f0_ == pytest.approx(np.mean(y), rel=1e-10)

    def test_classifier_f0_equals_log_odds(self):
        """f0_ for classification = log(p/(1-p)), p = mean(y in {0,1})."""
        rng = np.random.default_rng(2)
        X = rng.standard_normal((60, 4))
        y = rng.integers(0, 2, size=60).astype(float)

        gbc = GradientBoostingClassifier(n_estimators=5, random_state=0)
        gbc.fit(X, y)

        p = np.mean(y)
        assert gbc.f0_ == pytest.approx(np.log(p / (1.0 - p)), rel=1e-10)

    def test_ensemble_size_equals_n_estimators(self):
        n_est = 8
        X, y = make_regression(n_samples=50, n_features=5, random_state=0)

        gbr = GradientBoostingRegressor(n_estimators=n_est, random_state=0)
        gbr.fit(X, y)

        assert len(gbr.ensemble_) == n_est
        assert all(weight == gbr.learning_rate for _, weight in gbr.ensemble_.trees)

    def test_train_scores_length_equals_n_estimators(self):
        n_est = 12
        X, y = make_regression(n_samples=50, n_features=5, random_state=0)
        gbr = GradientBoostingRegressor(n_estimators=n_est, random_state=0)
        gbr.fit(X, y)
        assert len(gbr.train_scores_) == n_est

    def test_val_scores_empty_without_validation_data(self):
        X, y = make_regression(n_samples=50, n_features=5, random_state=0)
        gbr = GradientBoostingRegressor(n_estimators=5, random_state=0)
        gbr.fit(X, y)
        assert gbr.val_scores_ == []

    def test_classifier_state_after_fit(self):
        X, y = make_classification(n_samples=60, n_features=5, random_state=0)
        n_est = 7
        gbc = GradientBoostingClassifier(n_estimators=n_est, random_state=0)
        gbc.fit(X, y)
        assert len(gbc.ensemble_) == n_est
        assert len(gbc.train_scores_) == n_est

    def test_max_depth_respected(self):
        X, y = make_regression(n_samples=100, n_features=5, random_state=0)
        gbr = GradientBoostingRegressor(n_estimators=5, max_depth=2, random_state=0).fit(X, y)
        assert all(tree.depth <= 2 for tree, _ in gbr.ensemble_.trees)


# =============================================================================
# Training loss monotonicity
# =============================================================================


class TestTrainingLossMonotonicity:
    """
    With full-sample deterministic boosting the training loss must be
    monotonically non-increasing.
    """

    def test_regressor_training_mse_non_increasing(self):
        X, y = make_regression(n_samples=100, n_features=10, random_state=7)
        gbr = GradientBoostingRegressor(
            n_estimators=30, learning_rate=0.3, max_depth=2,
            subsample=1.0, random_state=0
        )
        gbr.fit(X, y)
        scores = gbr.train_scores_
        for i in range(1, len(scores)):
            assert scores[i] <= scores[i - 1] + 1e-10, (
                f"Training MSE increased from step {i-1} to {i}: "
                f"{scores[i-1]:.6f} → {scores[i]:.6f}"
            )

    def test_classifier_training_loss_non_increasing(self):
        X, y = make_classification(n_samples=100, n_features=10, random_state=7)
        gbc = GradientBoostingClassifier(
            n_estimators=30, learning_rate=0.3, max_depth=2,
            subsample=1.0, random_state=0
        )
        gbc.fit(X, y)
        scores = gbc.train_scores_
        for i in range(1, len(scores)):
            assert scores[i] <= scores[i - 1] + 1e-10, (
                f"Training logistic loss increased from step {i-1} to {i}: "
                f"{scores[i-1]:.6f} → {scores[i]:.6f}"
            )

    def test_absolute_error_training_loss_decreases(self):
        X, y = make_regression(n_samples=100, n_features=5, noise=10.0, random_state=3)
        gbr = GradientBoostingRegressor(loss="AbsoluteError", n_estimators=30, random_state=0).fit(X, y)
        assert gbr.train_scores_[-1] < gbr.train_scores_[0]


# =============================================================================
# Subsample contracts
# =============================================================================


class TestSubsampleContracts:
    """Stochastic subsampling must differ across random states and be reproducible."""

    def test_subsample_introduces_variability(self):
        """Different seeds → different predictions when subsample < 1."""
        X, y = make_regression(n_samples=100, n_features=5, random_state=0)

        pred_a = GradientBoostingRegressor(n_estimators=10, subsample=0.5, random_state=1).fit(X, y).predict(X)
        pred_b = GradientBoostingRegressor(n_estimators=10, subsample=0.5, random_state=2).fit(X, y).predict(X)

        assert not np.allclose(pred_a, pred_b), (
            "Different random seeds with subsample<1 should produce different predictions"
        )

    def test_subsample_1_matches_full_batch(self):
        """subsample=1.0 gives the same model whatever the seed."""
        X, y = make_regression(n_samples=100, n_features=5, random_state=0)

        pred_a = GradientBoostingRegressor(n_estimators=10, subsample=1.0, random_state=42).fit(X, y).predict(X)
        pred_b = GradientBoostingRegressor(n_estimators=10, subsample=1.0, random_state=99).fit(X, y).predict(X)

        np.testing.assert_array_equal(pred_a, pred_b)

    def test_max_features_count_and_fraction(self):
        X, y = make_regression(n_samples=100, n_features=6, random_state=0)
        by_count = GradientBoostingRegressor(n_estimators=5, max_features=3, random_state=4).fit(X, y)
        by_fraction = GradientBoostingRegressor(n_estimators=5, max_features=0.5, random_state=4).fit(X, y)
        np.testing.assert_array_equal(by_count.predict(X), by_fraction.predict(X))


# =============================================================================
# Convergence on controlled problems
# =============================================================================


class TestConvergenceOnToyProblems:
    """The models must achieve low error on simple controlled datasets."""

    def test_regressor_low_mse_on_linear_problem(self):
        rng = np.random.default_rng(10)
        X = rng.standard_normal((200, 3))
        y = 2 * X[:, 0] - 3 * X[:, 1] + 1.5 * X[:, 2]

        gbr = GradientBoostingRegressor(
            n_estimators=100, learning_rate=0.1, max_depth=3,
            subsample=1.0, random_state=0
        )
        gbr.fit(X, y)

        train_r2 = r2_score(y, gbr.predict(X))
        assert train_r2 > 0.98, f"Expected R²>0.98 on training, got {train_r2:.4f}"

    def test_classifier_high_accuracy_on_separable_data(self):
        rng = np.random.default_rng(11)
        n = 100
        X = np.vstack([
            rng.standard_normal((n // 2, 2)) + np.array([3.0, 0.0]),
            rng.standard_normal((n // 2, 2)) + np.array([-3.0, 0.0]),
        ])
        y = np.array([1] * (n // 2) + [0] * (n // 2))

        gbc = GradientBoostingClassifier(
            n_estimators=50, learning_rate=0.1, max_depth=2,
            subsample=1.0, random_state=0
        )
        gbc.fit(X, y)
        acc = accuracy_score(y, gbc.predict(X))
        assert acc >= 0.98, f"Expected train accuracy ≥ 0.98, got {acc:.4f}"


# =============================================================================
# Parity with sklearn GradientBoosting{Regressor,Classifier}
# =============================================================================


class TestSklearnParity:
    """
    R²/accuracy should be within a reasonable range of sklearn's
    implementation on the same problem.
    """

    def test_regressor_r2_within_tolerance(self):
        X, y = make_regression(n_samples=300, n_features=10, n_informative=5, random_state=0)
        X_tr, X_te, y_tr, y_te = train_test_split(X, y, test_size=0.3, random_state=0)

        ours = GradientBoostingRegressor(
            n_estimators=100, learning_rate=0.1, max_depth=3,
            subsample=1.0, random_state=0
        ).fit(X_tr, y_tr)

        sk = SklearnGBR(
            n_estimators=100, learning_rate=0.1, max_depth=3,
            subsample=1.0, random_state=0
        ).fit(X_tr, y_tr)

        our_r2 = r2_score(y_te, ours.predict(X_te))
        sk_r2 = r2_score(y_te, sk.predict(X_te))

        assert abs(our_r2 - sk_r2) < 0.10, f"R² gap too large: ours={our_r2:.3f}, sklearn={sk_r2:.3f}"

    def test_classifier_accuracy_within_tolerance(self):
        X, y = make_classification(n_samples=300, n_features=10, n_informative=6, random_state=0)
        X_tr, X_te, y_tr, y_te = train_test_split(X, y, test_size=0.3, random_state=0)

        ours = GradientBoostingClassifier(
            n_estimators=100, learning_rate=0.1, max_depth=3,
            subsample=1.0, random_state=0
        ).fit(X_tr, y_tr)

        sk = SklearnGBC(
            n_estimators=100, learning_rate=0.1, max_depth=3,
            subsample=1.0, random_state=0
        ).fit(X_tr, y_tr)

        our_acc = accuracy_score(y_te, ours.predict(X_te))
        sk_acc = accuracy_score(y_te, sk.predict(X_te))

        assert abs(our_acc - sk_acc) < 0.05, f"Accuracy gap too large: ours={our_acc:.3f}, sklearn={sk_acc:.3f}"


# =============================================================================
# Output shape contracts
# =============================================================================


class TestOutputShapeContracts:
    """predict / predict_proba must produce outputs with correct shapes."""

    def test_regressor_predict_shape(self):
        X_tr, y_tr = make_regression(n_samples=50, n_features=5, random_state=0)
        X_te = np.random.default_rng(0).standard_normal((23, 5))

        gbr = GradientBoostingRegressor(n_estimators=5, random_state=0).fit(X_tr, y_tr)
        assert gbr.predict(X_te).shape == (23,)

    def test_classifier_predict_shape(self):
        X_tr, y_tr = make_classification(n_samples=50, n_features=5, random_state=0)
        X_te = np.random.default_rng(0).standard_normal((17, 5))

        gbc = GradientBoostingClassifier(n_estimators=5, random_state=0).fit(X_tr, y_tr)
        assert gbc.predict(X_te).shape == (17,)
        assert gbc.predict_proba(X_te).shape == (17,)

    def test_classifier_predict_labels_are_binary(self):
        X, y = make_classification(n_samples=60, n_features=4, random_state=0)
        gbc = GradientBoostingClassifier(n_estimators=10, random_state=0).fit(X, y)
        assert set(np.unique(gbc.predict(X))).issubset({0, 1})

    def test_regressor_1d_feature(self):
        """Single-feature input should work without errors."""
        rng = np.random.default_rng(3)
        X = rng.standard_normal((40, 1))
        y = X[:, 0] ** 2 + rng.standard_normal(40) * 0.05
        gbr = GradientBoostingRegressor(n_estimators=10, random_state=0)
        gbr.fit(X, y)
        assert gbr.predict(X).shape == (40,)


# =============================================================================
# Staged prediction consistency
# =============================================================================


class TestStagedPredictionConsistency:
    """
    _predict_raw called with up_to_iteration=k must equal the prediction
    that would be obtained if the model was trained with only k estimators.
    """

    def test_staged_regressor_matches_partial_model(self):
        X, y = make_regression(n_samples=80, n_features=5, random_state=0)

        gbr_full = GradientBoostingRegressor(n_estimators=15, subsample=1.0, random_state=0).fit(X, y)
        staged = gbr_full._predict_raw(X, up_to_iteration=7)

        gbr_partial = GradientBoostingRegressor(n_estimators=7, subsample=1.0, random_state=0).fit(X, y)

        np.testing.assert_allclose(staged, gbr_partial.predict(X), rtol=1e-8)

    def test_staged_regressor_final_matches_predict(self):
        X, y = make_regression(n_samples=80, n_features=5, random_state=0)
        n_est = 10
        gbr = GradientBoostingRegressor(n_estimators=n_est, subsample=1.0, random_state=0).fit(X, y)

        staged_full = gbr._predict_raw(X, up_to_iteration=n_est)
        np.testing.assert_array_equal(staged_full, gbr.predict(X))

    def test_staged_predict_generator(self):
        X, y = make_regression(n_samples=40, n_features=3, random_state=0)
        gbr = GradientBoostingRegressor(n_estimators=6, random_state=0).fit(X, y)
        stages = list(gbr.ensemble_.staged_predict(X))
        assert len(stages) == 6
        np.testing.assert_allclose(stages[-1], gbr.predict(X), rtol=1e-12)


# =============================================================================
# Feature importances
# =============================================================================


class TestFeatureImportances:

    def test_informative_feature_dominates(self):
        rng = np.random.default_rng(5)
        X = rng.standard_normal((200, 4))
        y = 5.0 * X[:, 2] + 0.01 * rng.standard_normal(200)
        gbr = GradientBoostingRegressor(n_estimators=20, random_state=0).fit(X, y)
        importances = gbr.feature_importances_
        assert importances.sum() == pytest.approx(1.0)
        assert int(np.argmax(importances)) == 2

    def test_split_counts(self):
        X, y = make_regression(n_samples=60, n_features=3, random_state=0)
        gbr = GradientBoostingRegressor(n_estimators=4, max_depth=2, random_state=0).fit(X, y)
        counts = gbr.ensemble_.feature_importances("split")
        assert counts.sum() == pytest.approx(1.0)
        with pytest.raises(ValueError):
            gbr.ensemble_.feature_importances("cover")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
