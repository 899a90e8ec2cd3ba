"""
Command line interface.

    gbdt train --data train.csv --target y --model model.json --iterations 200
    gbdt predict --model model.json --data test.csv --output predictions.csv
    gbdt importance --model model.json
    gbdt show --model model.json --tree 0
"""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np
import pandas as pd

from .config import Config, Loss
from .core import BoostingEngine
from .data import DataSet, load_csv, load_libsvm
from .errors import GBDTError
from .losses import sigmoid
from .metrics import evaluate
from .serialization import load_model, render_tree, save_model

logger = logging.getLogger("gbdt")


def _feature_subsample(value: str):
    """Parse an int count ("3") or a float fraction ("0.5")."""
    try:
        return int(value)
    except ValueError:
        return float(value)


def _load(args, target: Optional[str], features: Optional[List[str]] = None) -> DataSet:
    weight = getattr(args, "weight", None)
    if args.format == "libsvm":
        if weight is not None:
            raise GBDTError("--weight applies to csv input only")
        return load_libsvm(args.data, n_features=args.n_features)
    return load_csv(args.data, target=target, weight=weight, features=features, sep=args.sep)


def _add_data_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data", required=True, help="Input file")
    parser.add_argument("--format", choices=["csv", "libsvm"], default="csv", help="Input format")
    parser.add_argument("--sep", default=",", help="Column separator for csv input")
    parser.add_argument("--n-features", type=int, default=None, help="Feature count for libsvm input")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gbdt", description="Gradient boosted decision trees")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    defaults = Config()
    p_train = sub.add_parser("train", help="Train a model and save it as JSON")
    _add_data_arguments(p_train)
    p_train.add_argument("--target", default="target", help="Target column (csv)")
    p_train.add_argument("--weight", default=None, help="Row weight column (csv only)")
    p_train.add_argument("--model", required=True, help="Output model path")
    p_train.add_argument("--validation", default=None, help="Optional validation file, same format")
    p_train.add_argument("--iterations", type=int, default=defaults.iterations)
    p_train.add_argument("--shrinkage", type=float, default=defaults.shrinkage)
    p_train.add_argument("--max-depth", type=int, default=defaults.max_depth)
    p_train.add_argument("--min-leaf-size", type=int, default=defaults.min_leaf_size)
    p_train.add_argument("--min-split-gain", type=float, default=defaults.min_split_gain)
    p_train.add_argument("--row-subsample", type=float, default=defaults.row_subsample)
    p_train.add_argument("--bootstrap", action="store_true", help="Sample rows with replacement")
    p_train.add_argument("--feature-subsample", type=_feature_subsample, default=defaults.feature_subsample,
                         help="Feature count (int) or fraction (float) per tree/node")
    p_train.add_argument("--feature-sample-policy", choices=["tree", "node"], default=defaults.feature_sample_policy)
    p_train.add_argument("--loss", choices=[loss.value for loss in Loss], default=defaults.loss.value)
    p_train.add_argument("--seed", type=int, default=defaults.seed)
    p_train.add_argument("--initial-guess", action="store_true", help="Start from the loss-optimal constant")
    p_train.add_argument("--n-jobs", type=int, default=defaults.n_jobs, help="Split search threads")

    p_predict = sub.add_parser("predict", help="Predict with a saved model")
    _add_data_arguments(p_predict)
    p_predict.add_argument("--model", required=True)
    p_predict.add_argument("--target", default=None, help="Target column; when given, metrics are reported")
    p_predict.add_argument("--output", default=None, help="Output csv (stdout when omitted)")

    p_importance = sub.add_parser("importance", help="Print feature importances")
    p_importance.add_argument("--model", required=True)
    p_importance.add_argument("--kind", choices=["gain", "split"], default="gain")

    p_show = sub.add_parser("show", help="Print the trees of a model")
    p_show.add_argument("--model", required=True)
    p_show.add_argument("--tree", type=int, default=None, help="Only this tree (index)")

    return parser


def cmd_train(args) -> int:
    config = Config(
        iterations=args.iterations,
        shrinkage=args.shrinkage,
        max_depth=args.max_depth,
        min_leaf_size=args.min_leaf_size,
        min_split_gain=args.min_split_gain,
        row_subsample=args.row_subsample,
        bootstrap=args.bootstrap,
        feature_subsample=args.feature_subsample,
        feature_sample_policy=args.feature_sample_policy,
        loss=args.loss,
        seed=args.seed,
        initial_guess=args.initial_guess,
        n_jobs=args.n_jobs,
        verbose=args.verbose,
    )
    dataset = _load(args, args.target)
    eval_set = None
    if args.validation is not None:
        eval_set = _load(argparse.Namespace(**{**vars(args), "data": args.validation}), args.target)

    ensemble = BoostingEngine(config).fit(dataset, eval_set=eval_set)
    save_model(ensemble, args.model)

    for name, value in evaluate(ensemble, dataset).items():
        logger.info(f"train {name}: {value:.6f}")
    if eval_set is not None:
        for name, value in evaluate(ensemble, eval_set).items():
            logger.info(f"validation {name}: {value:.6f}")
    return 0


def cmd_predict(args) -> int:
    ensemble = load_model(args.model)
    # Columns are matched by name, not by position in the file
    dataset = _load(args, args.target, features=ensemble.feature_names)
    raw = ensemble.predict_batch(dataset.features)

    result = pd.DataFrame({"prediction": raw})
    if ensemble.loss is Loss.LOG_LIKELIHOOD:
        result["probability"] = sigmoid(raw)

    if args.output is None:
        result.to_csv(sys.stdout, index=False)
    else:
        result.to_csv(args.output, index=False)
        logger.info(f"Wrote {len(result)} predictions to {args.output}")

    if args.target is not None or args.format == "libsvm":
        for name, value in evaluate(ensemble, dataset).items():
            logger.info(f"{name}: {value:.6f}")
    return 0


def cmd_importance(args) -> int:
    ensemble = load_model(args.model)
    importances = ensemble.feature_importances(args.kind)
    names = ensemble.feature_names or [f"x[{i}]" for i in range(ensemble.n_features)]
    table = pd.DataFrame({"feature": names, args.kind: importances})
    table = table.iloc[np.argsort(-importances, kind="stable")]
    print(table.to_string(index=False))
    return 0


def cmd_show(args) -> int:
    ensemble = load_model(args.model)
    trees = ensemble.trees
    selected = range(len(trees)) if args.tree is None else [args.tree]
    for i in selected:
        if not 0 <= i < len(trees):
            raise GBDTError(f"Tree index {i} out of range (model has {len(trees)} trees)")
        tree, weight = trees[i]
        print(f"tree {i} (weight={weight:.6g})")
        print(render_tree(tree, ensemble.feature_names))
    return 0


COMMANDS = {
    "train": cmd_train,
    "predict": cmd_predict,
    "importance": cmd_importance,
    "show": cmd_show,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(levelname)s: %(message)s'
    )
    if args.verbose:
        logger.setLevel(logging.INFO)

    try:
        return COMMANDS[args.command](args)
    except GBDTError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
