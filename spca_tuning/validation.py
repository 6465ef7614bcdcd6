"""
Numeric Validation Utilities
============================

Shared checks for the inputs of the tuning core:
1. Data matrices (shape, finiteness, equal-length rows)
2. Component counts (1 <= K <= min(n_samples, n_features))
3. Penalty values and penalty grids (finite, non-negative, distinct)
4. Loadings sparsity (fraction of zero entries)

Checks accumulate problems in a ValidationResult, log them, and then raise
the matching exception from spca_tuning.exceptions.
"""

import logging
import numbers
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from spca_tuning.config import MIN_FEATURES, MIN_SAMPLES, ZERO_TOLERANCE
from spca_tuning.exceptions import InsufficientData, InvalidParameter

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Container for validation results"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict = field(default_factory=dict)

    def log_results(self):
        """Log validation results"""
        if self.errors:
            logger.error(f"Validation failed with {len(self.errors)} errors:")
            for error in self.errors:
                logger.error(f"  - {error}")
        if self.warnings:
            logger.warning(f"Validation completed with {len(self.warnings)} warnings:")
            for warning in self.warnings:
                logger.warning(f"  - {warning}")
        if self.is_valid:
            logger.debug("Validation passed successfully")


def as_data_matrix(data) -> Tuple[np.ndarray, Optional[List[str]]]:
    """
    Convert a DataFrame, ndarray or nested sequence into a read-only float
    matrix.

    Returns
    -------
    X : np.ndarray
        Private, non-writeable float64 copy of the data (n_samples, n_features)
    feature_names : list of str or None
        Column names when the input was a DataFrame
    """
    feature_names = None
    if isinstance(data, pd.DataFrame):
        feature_names = [str(c) for c in data.columns]
        values = data.to_numpy()
    else:
        values = data

    try:
        X = np.array(values, dtype=float, copy=True)
    except (TypeError, ValueError) as e:
        raise InvalidParameter(f"Data matrix must be numeric with equal-length rows: {e}") from e

    if X.ndim == 1:
        # A single observation
        X = X.reshape(1, -1)
    if X.ndim != 2:
        raise InvalidParameter(f"Data matrix must be 2-dimensional, got {X.ndim}-D")

    X.flags.writeable = False
    return X, feature_names


def validate_data_matrix(X: np.ndarray) -> ValidationResult:
    """Check that a matrix can support a PCA decomposition."""
    errors = []
    warnings = []
    n_samples, n_features = X.shape

    if n_samples < MIN_SAMPLES:
        errors.append(f"Need at least {MIN_SAMPLES} rows, got {n_samples}")
    if n_features < MIN_FEATURES:
        errors.append(f"Need at least {MIN_FEATURES} column, got {n_features}")

    n_nonfinite = int(np.size(X) - np.isfinite(X).sum())
    if n_nonfinite > 0:
        errors.append(f"Found {n_nonfinite} missing or infinite values")

    if not errors:
        constant = np.flatnonzero(np.ptp(X, axis=0) == 0)
        if len(constant) == n_features:
            errors.append("All columns are constant (total variance is zero)")
        elif len(constant) > 0:
            warnings.append(f"{len(constant)} constant columns (zero variance)")

    result = ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        metadata={"n_samples": n_samples, "n_features": n_features},
    )
    result.log_results()
    return result


def check_data_matrix(data) -> Tuple[np.ndarray, Optional[List[str]]]:
    """
    Convert and validate a data matrix, raising on the first problem class.

    Raises
    ------
    InsufficientData
        Too few rows/columns or zero total variance
    InvalidParameter
        Non-numeric, ragged or non-finite data
    """
    X, feature_names = as_data_matrix(data)
    result = validate_data_matrix(X)
    if not result.is_valid:
        message = "; ".join(result.errors)
        if not np.all(np.isfinite(X)):
            raise InvalidParameter(f"Data matrix validation failed: {message}")
        raise InsufficientData(f"Data matrix validation failed: {message}")
    return X, feature_names


def check_n_components(n_components, shape: Tuple[int, int]) -> int:
    """Validate K against the data shape and return it as int."""
    if isinstance(n_components, bool) or not isinstance(n_components, numbers.Integral):
        raise InvalidParameter(f"Component count must be an integer, got {n_components!r}")
    upper = min(shape)
    if not 1 <= n_components <= upper:
        raise InvalidParameter(
            f"Component count K={n_components} outside [1, {upper}] "
            f"for data of shape {shape[0]}x{shape[1]}"
        )
    return int(n_components)


def check_penalty(penalty) -> float:
    """Validate a single L1 penalty and return it as float."""
    try:
        value = float(penalty)
    except (TypeError, ValueError) as e:
        raise InvalidParameter(f"Penalty must be a real number, got {penalty!r}") from e
    if not np.isfinite(value):
        raise InvalidParameter(f"Penalty must be finite, got {value}")
    if value < 0:
        raise InvalidParameter(f"Penalty must be non-negative, got {value:g}")
    return value


def check_penalty_grid(grid: Sequence[float]) -> Tuple[float, ...]:
    """
    Validate a penalty grid, preserving its order.

    Empty grids are returned as an empty tuple; the caller decides whether
    that is an error.
    """
    values = tuple(check_penalty(p) for p in grid)
    duplicates = sorted({p for p in values if values.count(p) > 1})
    if duplicates:
        raise InvalidParameter(f"Penalty grid contains duplicate values: {duplicates}")
    return values


def sparsity_ratio(loadings: np.ndarray, zero_tol: float = ZERO_TOLERANCE) -> float:
    """
    Fraction of zero entries over the full loadings matrix.

    An entry counts as zero when |x| <= zero_tol; with the default
    zero_tol=0.0 only exact zeros count.
    """
    loadings = np.asarray(loadings)
    if loadings.size == 0:
        raise InvalidParameter("Cannot compute sparsity of an empty loadings matrix")
    n_zero = int(np.count_nonzero(np.abs(loadings) <= zero_tol))
    return n_zero / loadings.size
