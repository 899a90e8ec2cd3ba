"""
Exception hierarchy for gbdt.

Both concrete errors derive from ``ValueError`` so callers written against
plain numpy/scikit-learn style validation keep working.
"""


class GBDTError(Exception):
    """Base class for all errors raised by gbdt."""


class ConfigError(GBDTError, ValueError):
    """Invalid training configuration. Raised before any training work starts."""


class DataError(GBDTError, ValueError):
    """Malformed input data, such as ragged rows or non-finite values."""
