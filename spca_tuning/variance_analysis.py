"""
Variance Analysis
=================

Percentage-of-explained-variance (PEV) spectrum of a data matrix from a full
standard PCA. The spectrum backs two things:

- the scree diagnostics used to pick the component count K
- the PEV_pca baseline (sum of the first K fractions) used by the IS score

Usage:
    from spca_tuning.variance_analysis import VarianceAnalyzer

    spectrum = VarianceAnalyzer().analyze(X)
    pev_pca = spectrum.leading(2)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from spca_tuning.config import PEV_SUM_TOLERANCE
from spca_tuning.exceptions import InsufficientData, InvalidParameter
from spca_tuning.validation import check_data_matrix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VarianceSpectrum:
    """Per-component PEV fractions in descending-eigenvalue order"""
    pev: np.ndarray
    eigenvalues: np.ndarray

    def __len__(self):
        return len(self.pev)

    def cumulative(self) -> np.ndarray:
        return np.cumsum(self.pev)

    def leading(self, k: int) -> float:
        """Sum of the first k PEV fractions (the 'k most important' components)."""
        if not 1 <= k <= len(self.pev):
            raise InvalidParameter(
                f"Cannot take the first {k} components of a {len(self.pev)}-component spectrum"
            )
        return float(np.sum(self.pev[:k]))

    def n_components_for(self, threshold: float) -> int:
        """Smallest number of components whose cumulative PEV reaches threshold."""
        if not 0 < threshold <= 1:
            raise InvalidParameter(f"Variance threshold must be in (0, 1], got {threshold}")
        cumulative = self.cumulative()
        # Guard the final entry against round-off just below 1.0
        hits = np.flatnonzero(cumulative >= threshold - PEV_SUM_TOLERANCE)
        return int(hits[0]) + 1 if len(hits) else len(cumulative)

    def to_frame(self) -> pd.DataFrame:
        """Scree table: component, eigenvalue, pev, cumulative_pev."""
        return pd.DataFrame({
            'component': np.arange(1, len(self.pev) + 1),
            'eigenvalue': self.eigenvalues,
            'pev': self.pev,
            'cumulative_pev': self.cumulative(),
        })


class VarianceAnalyzer:
    """
    Computes the PEV spectrum of a data matrix with a full standard PCA.

    Parameters
    ----------
    standardize : bool, default False
        If True, z-score every column before the decomposition so the
        spectrum reflects the correlation rather than the covariance matrix.
    """

    def __init__(self, standardize: bool = False):
        self.standardize = standardize

    def prepare(self, data) -> np.ndarray:
        """Validate (and optionally standardize) data into a read-only matrix."""
        X, _ = check_data_matrix(data)
        if self.standardize:
            X = StandardScaler().fit_transform(X)
            X.flags.writeable = False
        return X

    def analyze(self, data) -> VarianceSpectrum:
        """
        Full-length PEV spectrum of data.

        Raises
        ------
        InsufficientData
            Fewer than 2 rows, no columns, or zero total variance
        """
        X = self.prepare(data)
        return self.analyze_prepared(X)

    def analyze_prepared(self, X: np.ndarray) -> VarianceSpectrum:
        """Spectrum of a matrix that has already been through prepare()."""
        n_components = min(X.shape)
        pca = PCA(n_components=n_components, svd_solver='full')
        pca.fit(X)

        eigenvalues = np.clip(pca.explained_variance_, 0.0, None)
        total = eigenvalues.sum()
        if not total > 0:
            raise InsufficientData("Total variance is zero; PEV is undefined")

        pev = eigenvalues / total
        _check_spectrum(pev)

        logger.debug(
            f"PEV spectrum over {n_components} components: "
            f"first={pev[0]:.4f}, cumulative(2)={pev[:2].sum():.4f}"
        )
        eigenvalues.flags.writeable = False
        pev.flags.writeable = False
        return VarianceSpectrum(pev=pev, eigenvalues=eigenvalues)


def _check_spectrum(pev: np.ndarray, tol: Optional[float] = None):
    tol = PEV_SUM_TOLERANCE if tol is None else tol
    if np.any(pev < 0):
        raise InsufficientData("Negative PEV entries; decomposition is unstable")
    if abs(pev.sum() - 1.0) > tol:
        raise InsufficientData(f"PEV entries sum to {pev.sum():.8f}, expected 1.0")
    if np.any(np.diff(pev) > tol):
        logger.warning("PEV spectrum is not in descending order; results may be unreliable")
