"""
Classification experiment on the Breast Cancer dataset.

LogLikelihood boosting with sweeps over iterations, tree depth and
bootstrap row sampling, a comparison against scikit-learn's
GradientBoostingClassifier and ROC curves of the final model.
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from sklearn.datasets import load_breast_cancer
from sklearn.ensemble import GradientBoostingClassifier as SklearnGBC
from sklearn.metrics import confusion_matrix, roc_curve
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from gbdt import BoostingEngine, Config, DataSet, evaluate
from gbdt.losses import sigmoid
from gbdt.metrics import compute_metrics_classification

logger = logging.getLogger("gbdt.experiments")


def load_and_prepare_data(seed=42):
    """Stratified 60/20/20 split, standardised on the training part."""
    data = load_breast_cancer()
    X, y = data.data, data.target

    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.2, random_state=seed, stratify=y)
    X_train, X_val, y_train, y_val = train_test_split(
        X_train, y_train, test_size=0.25, random_state=seed, stratify=y_train
    )

    scaler = StandardScaler()
    X_train = scaler.fit_transform(X_train)
    X_val = scaler.transform(X_val)
    X_test = scaler.transform(X_test)

    logger.info(f"Train: {X_train.shape}, Val: {X_val.shape}, Test: {X_test.shape}")
    logger.info(f"Class distribution - Train: {np.bincount(y_train)}, Test: {np.bincount(y_test)}")

    names = list(data.feature_names)
    return (
        DataSet.from_arrays(X_train, y_train, feature_names=names),
        DataSet.from_arrays(X_val, y_val, feature_names=names),
        DataSet.from_arrays(X_test, y_test, feature_names=names),
    )


def fit(train, val, **overrides):
    params = dict(iterations=150, shrinkage=0.1, max_depth=3, loss="LogLikelihood", seed=42, initial_guess=True)
    params.update(overrides)
    engine = BoostingEngine(Config(**params))
    return engine.fit(train, eval_set=val), engine


def sweep(name, values, train, val, test, output_dir, **fixed):
    results = []
    fig, axes = plt.subplots(1, len(values), figsize=(5 * len(values), 4), sharey=True)

    for ax, value in zip(np.atleast_1d(axes), values):
        ensemble, engine = fit(train, val, **{**fixed, name: value})
        metrics = evaluate(ensemble, test)
        logger.info(f"{name}={value}: accuracy {metrics['accuracy']:.4f}, AUC {metrics['roc_auc']:.4f}")
        results.append({name: value, **metrics})

        ax.plot(engine.train_scores_, label="Train", linewidth=2)
        ax.plot(engine.val_scores_, label="Validation", linewidth=2)
        ax.set_xlabel("Iteration")
        ax.set_title(f"{name}={value}")
        ax.legend()
        ax.grid(True, alpha=0.3)

    np.atleast_1d(axes)[0].set_ylabel("Log loss")
    plt.tight_layout()
    plt.savefig(output_dir / f"classification_{name}.png", dpi=150)
    plt.close(fig)

    table = pd.DataFrame(results)
    table.to_csv(output_dir / f"classification_{name}_results.csv", index=False)
    return table


def compare_with_sklearn(ensemble, train, test, output_dir):
    sk = SklearnGBC(n_estimators=150, learning_rate=0.1, max_depth=3, random_state=42)
    sk.fit(train.features, train.targets)

    ours_proba = sigmoid(ensemble.predict_batch(test.features))
    sk_proba = sk.predict_proba(test.features)[:, 1]

    fig, ax = plt.subplots(figsize=(7, 6))
    for label, proba in (("gbdt", ours_proba), ("sklearn", sk_proba)):
        fpr, tpr, _ = roc_curve(test.targets, proba)
        ax.plot(fpr, tpr, linewidth=2, label=label)
    ax.plot([0, 1], [0, 1], "k--", alpha=0.5)
    ax.set_xlabel("False positive rate")
    ax.set_ylabel("True positive rate")
    ax.set_title("ROC curve (test set)")
    ax.legend()
    plt.tight_layout()
    plt.savefig(output_dir / "classification_roc_curve.png", dpi=150)
    plt.close(fig)

    return pd.DataFrame([
        {"model": "gbdt", **compute_metrics_classification(test.targets, ours_proba)},
        {"model": "sklearn", **compute_metrics_classification(test.targets, sk_proba)},
    ])


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--output-dir", type=Path, default=Path(__file__).resolve().parent / "results")
    parser.add_argument("--n-jobs", type=int, default=1)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    plt.style.use("seaborn-v0_8-darkgrid")
    args.output_dir.mkdir(parents=True, exist_ok=True)

    train, val, test = load_and_prepare_data()

    for name, values, fixed in (
        ("iterations", [25, 75, 150], {}),
        ("max_depth", [1, 3, 5], {}),
        ("bootstrap", [False, True], {"row_subsample": 0.8}),
    ):
        table = sweep(name, values, train, val, test, args.output_dir, n_jobs=args.n_jobs, **fixed)
        print(f"\nEffect of {name}:")
        print(table.to_string(index=False))

    final, _ = fit(train, val, row_subsample=0.8, feature_subsample=0.5, n_jobs=args.n_jobs)
    comparison = compare_with_sklearn(final, train, test, args.output_dir)
    print("\nFinal model vs scikit-learn:")
    print(comparison.to_string(index=False))

    labels = (sigmoid(final.predict_batch(test.features)) >= 0.5).astype(int)
    print("\nConfusion matrix:")
    print(confusion_matrix(test.targets.astype(int), labels))


if __name__ == "__main__":
    main()
