"""
Row and feature subsampling.

All draws go through an explicit ``numpy.random.Generator`` owned by the
booster and seeded from ``Config.seed``; there is no global random state.
"""

import numpy as np

from .config import Config


def sample_rows(n_rows: int, config: Config, rng: np.random.Generator) -> np.ndarray:
    """
    Row indices for one boosting iteration, in ascending order.

    Without replacement and ``row_subsample == 1`` every row is used and the
    generator is not consumed, so full-batch training does not depend on the seed.
    """
    if config.row_subsample >= 1.0 and not config.bootstrap:
        return np.arange(n_rows)
    n_subsample = max(1, int(config.row_subsample * n_rows))
    indices = rng.choice(n_rows, size=n_subsample, replace=config.bootstrap)
    return np.sort(indices, kind="stable")


def sample_features(n_features: int, config: Config, rng: np.random.Generator) -> np.ndarray:
    """Candidate feature indices (without replacement), in ascending order."""
    k = config.n_features_to_sample(n_features)
    if k >= n_features:
        return np.arange(n_features)
    if k == 0:
        return np.empty(0, dtype=np.intp)
    return np.sort(rng.choice(n_features, size=k, replace=False))
