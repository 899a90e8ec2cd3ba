"""
Gradient boosted decision trees from scratch.

Implements Gradient Tree Boosting (Algorithm 10.4 of "The Elements of
Statistical Learning", Hastie, Tibshirani and Friedman) for squared error,
absolute error and binomial log-likelihood, with shrinkage, row and feature
subsampling and exhaustive-search regression trees.
"""

from .builder import TreeBuilder
from .config import Config, Loss
from .core import (
    BoostingEngine,
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    predict,
    predict_batch,
    train,
)
from .data import DataSet, load_csv, load_libsvm
from .ensemble import Ensemble
from .errors import ConfigError, DataError, GBDTError
from .losses import LossFunction
from .metrics import evaluate
from .serialization import load_model, render_tree, save_model
from .split import Split, SplitFinder
from .tree import DecisionTree, InternalNode, LeafNode

__version__ = "0.1.0"
__all__ = [
    "BoostingEngine",
    "Config",
    "ConfigError",
    "DataError",
    "DataSet",
    "DecisionTree",
    "Ensemble",
    "GBDTError",
    "GradientBoostingClassifier",
    "GradientBoostingRegressor",
    "InternalNode",
    "LeafNode",
    "Loss",
    "LossFunction",
    "Split",
    "SplitFinder",
    "TreeBuilder",
    "evaluate",
    "load_csv",
    "load_libsvm",
    "load_model",
    "predict",
    "predict_batch",
    "render_tree",
    "save_model",
    "train",
]
