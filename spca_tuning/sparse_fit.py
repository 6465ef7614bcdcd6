"""
Sparse Fit Adapter
==================

Wraps an L1-penalized sparse-component solver behind a single `fit`
operation and normalizes whatever it returns into a SparseFitRecord:

    loadings            K x n_features matrix (one row per component)
    explained_variance  K per-component contributions, same order as loadings
    penalty             the scalar L1 penalty used for every component

Two solvers ship with the package:

- SklearnSparsePCASolver: scikit-learn's SparsePCA (dictionary-learning form)
- ElasticNetSPCASolver: the alternating elastic-net SPCA of
  Zou, Hastie & Tibshirani (2006), which accepts one penalty per component

Both report the adjusted explained variance of Zou et al.: the component
scores are QR-decomposed so that variance shared between correlated sparse
components is only counted once.

References:
- Zou, H., Hastie, T., Tibshirani, R. (2006). Sparse Principal Component
  Analysis. Journal of Computational and Graphical Statistics 15(2).
"""

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import linalg
from sklearn.decomposition import SparsePCA
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import ElasticNet, Ridge

from spca_tuning.config import (
    ENET_MAX_ITER, ENET_RIDGE, ENET_TOL, RANDOM_SEED, SPCA_MAX_ITER,
    SPCA_METHOD, SPCA_RIDGE_ALPHA, SPCA_TOL, ZERO_TOLERANCE,
)
from spca_tuning.exceptions import InvalidParameter, SPCATuningError, SolverFailure
from spca_tuning.validation import (
    check_data_matrix, check_n_components, check_penalty, sparsity_ratio,
)

logger = logging.getLogger(__name__)


# ============================================================================
# SOLVER CONTRACT
# ============================================================================

@dataclass
class SolverOutput:
    """Raw solver result before normalization"""
    loadings: np.ndarray
    explained_variance: np.ndarray
    n_iter: Optional[int] = None
    converged: bool = True


class SparseSolver(ABC):
    """
    Sparse-component solver capability.

    Given a (read-only) data matrix, a component count and one L1 penalty per
    component, return loadings and per-component explained variance.
    Implementations must not modify X.
    """

    @abstractmethod
    def fit(self, X: np.ndarray, n_components: int, penalties: Sequence[float]) -> SolverOutput:
        ...


def adjusted_explained_variance(X: np.ndarray, loadings: np.ndarray) -> np.ndarray:
    """
    Per-component adjusted variance as a fraction of total variance.

    Scores Z = Xc V^T are QR-decomposed; component k contributes
    R[k, k]^2 / (n - 1), i.e. the variance of its score after removing the
    part already explained by components 1..k-1.
    """
    Xc = X - X.mean(axis=0)
    n_samples = X.shape[0]
    total_variance = np.sum(Xc ** 2) / (n_samples - 1)
    if not total_variance > 0:
        return np.zeros(loadings.shape[0])

    norms = np.linalg.norm(loadings, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    scores = Xc @ (loadings / norms).T

    r = linalg.qr(scores, mode='r')[0]
    diag = np.zeros(loadings.shape[0])
    k = min(r.shape)
    diag[:k] = np.abs(np.diag(r)[:k])
    return diag ** 2 / (n_samples - 1) / total_variance


class SklearnSparsePCASolver(SparseSolver):
    """
    scikit-learn SparsePCA with a single L1 strength shared by all components.

    Parameters
    ----------
    ridge_alpha : float
        Ridge shrinkage used by SparsePCA when projecting onto components
    max_iter, tol : int, float
        Dictionary-learning stopping rule
    method : {'lars', 'cd'}
        Lasso solver used for the sparse-coding step
    random_state : int
        Seed for the dictionary initialisation (fits are deterministic)
    """

    def __init__(
        self,
        ridge_alpha: float = SPCA_RIDGE_ALPHA,
        max_iter: int = SPCA_MAX_ITER,
        tol: float = SPCA_TOL,
        method: str = SPCA_METHOD,
        random_state: int = RANDOM_SEED,
    ):
        self.ridge_alpha = ridge_alpha
        self.max_iter = max_iter
        self.tol = tol
        self.method = method
        self.random_state = random_state

    def fit(self, X, n_components, penalties):
        penalties = np.asarray(penalties, dtype=float)
        if np.any(penalties != penalties[0]):
            raise InvalidParameter(
                "SklearnSparsePCASolver supports a single penalty shared by all "
                f"components, got {penalties.tolist()}"
            )

        spca = SparsePCA(
            n_components=n_components,
            alpha=float(penalties[0]),
            ridge_alpha=self.ridge_alpha,
            # One spare iteration: n_iter_ is max_iter both when the last allowed
            # iteration converges and when none does
            max_iter=self.max_iter + 1,
            tol=self.tol,
            method=self.method,
            random_state=self.random_state,
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always', ConvergenceWarning)
            spca.fit(X)
        for w in caught:
            if issubclass(w.category, ConvergenceWarning):
                logger.debug(f"SparsePCA(alpha={penalties[0]:g}): {w.message}")

        loadings = spca.components_
        return SolverOutput(
            loadings=loadings,
            explained_variance=adjusted_explained_variance(X, loadings),
            n_iter=int(spca.n_iter_),
            converged=int(spca.n_iter_) <= self.max_iter,
        )


class ElasticNetSPCASolver(SparseSolver):
    """
    Alternating elastic-net SPCA (Zou, Hastie & Tibshirani 2006).

    Alternates between
      B-step: for each component j, elastic-net regression of X a_j on X
              with L1 penalty lambda_1j and ridge penalty lambda_2
      A-step: A = U V^T from the SVD of X^T X B
    until the normalized loadings stop changing. Each component may have its
    own L1 penalty.
    """

    def __init__(
        self,
        ridge: float = ENET_RIDGE,
        max_iter: int = ENET_MAX_ITER,
        tol: float = ENET_TOL,
    ):
        self.ridge = ridge
        self.max_iter = max_iter
        self.tol = tol

    def _enet(self, penalty: float, n_samples: int):
        if penalty == 0:
            if self.ridge <= 0:
                raise InvalidParameter("Elastic-net SPCA needs ridge > 0 when the L1 penalty is 0")
            return Ridge(alpha=self.ridge, fit_intercept=False)
        # sklearn minimizes 1/(2n)||y - Xb||^2 + a*r*|b|_1 + a*(1-r)/2*||b||^2
        l1 = penalty / (2 * n_samples)
        l2 = self.ridge / n_samples
        alpha = l1 + l2
        return ElasticNet(
            alpha=alpha,
            l1_ratio=l1 / alpha,
            fit_intercept=False,
            max_iter=10000,
            tol=1e-10,
        )

    def fit(self, X, n_components, penalties):
        penalties = np.asarray(penalties, dtype=float)
        if len(penalties) != n_components:
            raise InvalidParameter(
                f"Expected {n_components} penalties, got {len(penalties)}"
            )

        Xc = X - X.mean(axis=0)
        n_samples, n_features = Xc.shape
        gram = Xc.T @ Xc

        _, _, vt = np.linalg.svd(Xc, full_matrices=False)
        A = vt[:n_components].T.copy()
        B = np.zeros((n_features, n_components))
        previous = B.copy()
        converged = False

        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            for iteration in range(1, self.max_iter + 1):
                for j in range(n_components):
                    model = self._enet(penalties[j], n_samples)
                    model.fit(Xc, Xc @ A[:, j])
                    B[:, j] = model.coef_

                u, _, vt = np.linalg.svd(gram @ B, full_matrices=False)
                A = u @ vt

                current = _normalize_columns(B)
                change = np.max(np.abs(current - previous))
                previous = current
                if change < self.tol:
                    converged = True
                    break

        loadings = _normalize_columns(B).T
        return SolverOutput(
            loadings=loadings,
            explained_variance=adjusted_explained_variance(X, loadings),
            n_iter=iteration,
            converged=converged,
        )


def _normalize_columns(M: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(M, axis=0)
    norms[norms == 0] = 1.0
    return M / norms


# ============================================================================
# FIT RECORD
# ============================================================================

@dataclass(frozen=True)
class SparseFitRecord:
    """Normalized sparse fit for one penalty value"""
    loadings: np.ndarray
    explained_variance: np.ndarray
    penalty: float
    n_iter: Optional[int] = None
    feature_names: Optional[List[str]] = None

    @property
    def n_components(self) -> int:
        return self.loadings.shape[0]

    @property
    def pev(self) -> float:
        """PEV_sparse: total explained-variance fraction of the sparse components."""
        return float(np.sum(self.explained_variance))

    def n_zero(self, zero_tol: float = ZERO_TOLERANCE) -> int:
        return int(np.count_nonzero(np.abs(self.loadings) <= zero_tol))

    def sparsity_ratio(self, zero_tol: float = ZERO_TOLERANCE) -> float:
        return sparsity_ratio(self.loadings, zero_tol)

    def nonzero_per_component(self, zero_tol: float = ZERO_TOLERANCE) -> np.ndarray:
        return np.count_nonzero(np.abs(self.loadings) > zero_tol, axis=1)

    def loadings_frame(self) -> pd.DataFrame:
        """Loadings as features x components, the layout used for heatmaps."""
        index = self.feature_names or [f"x{i+1}" for i in range(self.loadings.shape[1])]
        return pd.DataFrame(
            self.loadings.T,
            index=index,
            columns=[f"SPC{i+1}" for i in range(self.n_components)],
        )


# ============================================================================
# ADAPTER
# ============================================================================

class SparseFitAdapter:
    """
    Fits one penalty value with a uniform per-component penalty and returns a
    validated SparseFitRecord.

    Parameters
    ----------
    solver : SparseSolver, optional
        Defaults to SklearnSparsePCASolver()
    require_convergence : bool, default True
        If True, a solver that stops at its iteration limit is a SolverFailure
    """

    def __init__(self, solver: Optional[SparseSolver] = None, require_convergence: bool = True):
        self.solver = solver if solver is not None else SklearnSparsePCASolver()
        self.require_convergence = require_convergence

    def fit(self, data, n_components: int, penalty: float) -> SparseFitRecord:
        """
        Fit data with K components at the given penalty.

        Raises
        ------
        InvalidParameter
            Negative/non-finite penalty or K out of range
        InsufficientData
            Data matrix too small for a decomposition
        SolverFailure
            Solver error, non-convergence or structurally invalid output
        """
        penalty = check_penalty(penalty)
        X, feature_names = check_data_matrix(data)
        n_components = check_n_components(n_components, X.shape)
        return self.fit_prepared(X, n_components, penalty, feature_names)

    def fit_prepared(
        self,
        X: np.ndarray,
        n_components: int,
        penalty: float,
        feature_names: Optional[List[str]] = None,
    ) -> SparseFitRecord:
        """fit() for a matrix, K and penalty that were already validated."""
        penalties = [penalty] * n_components
        try:
            output = self.solver.fit(X, n_components, penalties)
        except SPCATuningError:
            raise
        except Exception as e:
            raise SolverFailure(
                "Sparse solver raised an error", penalty, n_components, e
            ) from e

        if self.require_convergence and not output.converged:
            raise SolverFailure(
                f"Sparse solver did not converge in {output.n_iter} iterations",
                penalty, n_components,
            )

        loadings, explained = self._normalize(output, X.shape[1], n_components, penalty)
        logger.debug(
            f"penalty={penalty:g}: PEV_sparse={explained.sum():.4f}, "
            f"zeros={np.count_nonzero(loadings == 0)}/{loadings.size}"
        )
        return SparseFitRecord(
            loadings=loadings,
            explained_variance=explained,
            penalty=penalty,
            n_iter=output.n_iter,
            feature_names=feature_names,
        )

    @staticmethod
    def _normalize(output: SolverOutput, n_features: int, n_components: int, penalty: float):
        """Coerce solver output to (K, n_features) loadings and (K,) variances."""
        def fail(reason):
            return SolverFailure(f"Invalid solver output: {reason}", penalty, n_components)

        try:
            loadings = np.array(output.loadings, dtype=float, copy=True)
            explained = np.array(output.explained_variance, dtype=float, copy=True).ravel()
        except (TypeError, ValueError) as e:
            raise fail(f"non-numeric result ({e})") from e

        if loadings.size == 0:
            raise fail("zero-length loadings")
        if loadings.ndim != 2:
            raise fail(f"loadings must be 2-D, got {loadings.ndim}-D")
        if loadings.shape == (n_features, n_components) and n_features != n_components:
            loadings = loadings.T
        if loadings.shape != (n_components, n_features):
            raise fail(
                f"loadings shape {loadings.shape}, expected ({n_components}, {n_features})"
            )
        if explained.shape != (n_components,):
            raise fail(f"{explained.size} explained-variance entries, expected {n_components}")
        if not (np.all(np.isfinite(loadings)) and np.all(np.isfinite(explained))):
            raise fail("NaN or infinite entries")
        if np.any(explained < 0):
            raise fail("negative explained variance")

        loadings.flags.writeable = False
        explained.flags.writeable = False
        return loadings, explained
