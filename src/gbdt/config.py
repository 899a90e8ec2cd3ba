"""
Training configuration.

A ``Config`` is fixed before training starts and validated on construction,
so an invalid option surfaces as a ``ConfigError`` before any tree is built.
"""

import numbers
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Union

from .errors import ConfigError


class Loss(str, Enum):
    """Supported boosting objectives."""

    SQUARED_ERROR = "SquaredError"
    ABSOLUTE_ERROR = "AbsoluteError"
    LOG_LIKELIHOOD = "LogLikelihood"

    @classmethod
    def parse(cls, value: Union[str, "Loss"]) -> "Loss":
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value or value == member.name:
                return member
        supported = ", ".join(member.value for member in cls)
        raise ConfigError(f"Unsupported loss {value!r}; expected one of: {supported}")


FEATURE_SAMPLE_POLICIES = ("tree", "node")


@dataclass(frozen=True)
class Config:
    """
    Hyperparameters for one training run.

    Args:
        iterations: Number of boosting iterations (trees).
        shrinkage: Learning rate ν ∈ (0, 1], the weight of every tree.
        max_depth: Maximum depth of a tree; the root is at depth 0.
        min_leaf_size: Minimum number of rows covered by any leaf.
        min_split_gain: Minimum impurity reduction for a split to be accepted.
        row_subsample: Fraction of rows drawn per iteration, in (0, 1].
        bootstrap: Draw the row subsample with replacement.
        feature_subsample: Either a feature count (int >= 0) or a fraction in (0, 1].
        feature_sample_policy: Draw the feature subset once per "tree" or once per "node".
        loss: Boosting objective.
        seed: Seed of the generator used for row and feature subsampling.
        initial_guess: Start from the loss-optimal constant instead of 0.0.
        n_jobs: Worker threads for the per-node split search.
        verbose: Log training progress at INFO level.
    """

    iterations: int = 100
    shrinkage: float = 0.1
    max_depth: int = 3
    min_leaf_size: int = 1
    min_split_gain: float = 0.0
    row_subsample: float = 1.0
    bootstrap: bool = False
    feature_subsample: Union[int, float] = 1.0
    feature_sample_policy: str = "tree"
    loss: Loss = Loss.SQUARED_ERROR
    seed: int = 0
    initial_guess: bool = False
    n_jobs: int = 1
    verbose: bool = False

    def __post_init__(self):
        # frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "loss", Loss.parse(self.loss))

        _require_int("iterations", self.iterations, minimum=0)
        _require_int("max_depth", self.max_depth, minimum=1)
        _require_int("min_leaf_size", self.min_leaf_size, minimum=1)
        _require_int("seed", self.seed, minimum=0)
        _require_int("n_jobs", self.n_jobs, minimum=1)

        if not _is_real(self.shrinkage) or not 0.0 < self.shrinkage <= 1.0:
            raise ConfigError(f"shrinkage must be in (0, 1], got {self.shrinkage!r}")
        if not _is_real(self.row_subsample) or not 0.0 < self.row_subsample <= 1.0:
            raise ConfigError(f"row_subsample must be in (0, 1], got {self.row_subsample!r}")
        if not _is_real(self.min_split_gain) or not 0.0 <= self.min_split_gain < float("inf"):
            raise ConfigError(f"min_split_gain must be a finite value >= 0, got {self.min_split_gain!r}")

        fs = self.feature_subsample
        if isinstance(fs, bool) or not isinstance(fs, numbers.Real):
            raise ConfigError(f"feature_subsample must be an int count or a float fraction, got {fs!r}")
        if isinstance(fs, numbers.Integral):
            if fs < 0:
                raise ConfigError(f"feature_subsample count must be >= 0, got {fs}")
        elif not 0.0 < fs <= 1.0:
            raise ConfigError(f"feature_subsample fraction must be in (0, 1], got {fs}")

        if self.feature_sample_policy not in FEATURE_SAMPLE_POLICIES:
            raise ConfigError(
                f"feature_sample_policy must be one of {FEATURE_SAMPLE_POLICIES}, "
                f"got {self.feature_sample_policy!r}"
            )

    def n_features_to_sample(self, n_features: int) -> int:
        """Size of the feature subset drawn from ``n_features`` candidates."""
        fs = self.feature_subsample
        if isinstance(fs, numbers.Integral):
            return min(int(fs), n_features)
        return min(n_features, max(1, int(fs * n_features)))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["loss"] = self.loss.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigError(f"Unknown config field(s): {', '.join(unknown)}")
        return cls(**known)


def _is_real(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _require_int(name: str, value, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
