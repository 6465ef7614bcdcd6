"""
Pytest configuration and shared fixtures for the sparse PCA tuning tests.

This conftest.py adds the project root to sys.path so that imports of
`spca_tuning.*` modules work without installing the package, and provides
a block-structured data matrix plus deterministic stand-in solvers.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to sys.path so `from spca_tuning.xxx import ...` works
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from spca_tuning.sparse_fit import SolverOutput, SparseSolver, adjusted_explained_variance


def make_block_data(n_samples=10, noise=0.01, seed=0):
    """
    n_samples x 5 matrix with two uncorrelated blocks of features.

    Features 0-2 share latent factor 1 (sd 2), features 3-4 share latent
    factor 2 (sd 1); every entry gets a little independent noise. The leading
    eigenvectors are therefore close to [1,1,1,0,0]/sqrt(3) and
    [0,0,0,1,1]/sqrt(2).
    """
    rng = np.random.default_rng(seed)
    latent = rng.standard_normal((n_samples, 2))
    latent -= latent.mean(axis=0)
    q, _ = np.linalg.qr(latent)
    a = np.array([1.0, 1.0, 1.0, 0.0, 0.0]) / np.sqrt(3)
    b = np.array([0.0, 0.0, 0.0, 1.0, 1.0]) / np.sqrt(2)
    scale = np.sqrt(n_samples - 1)
    X = 2.0 * scale * np.outer(q[:, 0], a) + 1.0 * scale * np.outer(q[:, 1], b)
    return X + noise * rng.standard_normal((n_samples, 5))


class ThresholdSolver(SparseSolver):
    """
    Deterministic stand-in for a sparse solver: soft-thresholds the leading
    PCA eigenvectors by the penalty. More penalty never produces fewer zeros.
    """

    def __init__(self):
        self.calls = []

    def fit(self, X, n_components, penalties):
        self.calls.append(tuple(penalties))
        Xc = X - X.mean(axis=0)
        _, _, vt = np.linalg.svd(Xc, full_matrices=False)
        V = vt[:n_components]
        thresh = np.asarray(penalties, dtype=float)[:, None]
        loadings = np.sign(V) * np.maximum(np.abs(V) - thresh, 0.0)
        return SolverOutput(
            loadings=loadings,
            explained_variance=adjusted_explained_variance(X, loadings),
            n_iter=1,
        )


class FailingSolver(SparseSolver):
    """Raises for penalties listed in `fail_at`, otherwise delegates."""

    def __init__(self, fail_at=(), error=RuntimeError("did not converge")):
        self.fail_at = set(fail_at)
        self.error = error
        self.inner = ThresholdSolver()

    def fit(self, X, n_components, penalties):
        if penalties[0] in self.fail_at:
            raise self.error
        return self.inner.fit(X, n_components, penalties)


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: runs the scikit-learn solvers end to end")


@pytest.fixture
def block_data():
    """10 x 5 matrix with known two-block covariance."""
    return make_block_data()


@pytest.fixture
def block_frame(block_data):
    """Same matrix as a DataFrame with named features."""
    return pd.DataFrame(block_data, columns=["a1", "a2", "a3", "b1", "b2"])


@pytest.fixture
def threshold_solver():
    return ThresholdSolver()


@pytest.fixture
def failing_solver_factory():
    return FailingSolver
