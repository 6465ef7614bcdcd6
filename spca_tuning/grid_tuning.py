"""
Index of Sparseness Grid Search
===============================

Scores every candidate L1 penalty of a sparse PCA with the Index of
Sparseness

    IS = PEV_pca * PEV_sparse * sparsity_ratio

where PEV_pca is the variance explained by the first K standard principal
components (computed once per run), PEV_sparse is the adjusted variance
explained by the K sparse components, and sparsity_ratio is the fraction of
zero loadings. A fully dense fit (e.g. penalty 0) scores 0 by construction.

Usage:
    from spca_tuning.grid_tuning import ISGridTuner, results_to_frame

    tuner = ISGridTuner()
    results = tuner.tune(X, grid=[0.0, 0.5, 1.0], n_components=2)
    results_to_frame(results).to_csv('is_curve.csv', index=False)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from spca_tuning.config import (
    DEFAULT_FAILURE_POLICY, FAILURE_POLICIES, RESULT_COLUMNS, ZERO_TOLERANCE,
)
from spca_tuning.exceptions import EmptyResultSet, InvalidParameter, SolverFailure
from spca_tuning.sparse_fit import SparseFitAdapter, SparseFitRecord
from spca_tuning.validation import check_n_components, check_penalty_grid
from spca_tuning.variance_analysis import VarianceAnalyzer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TuningResult:
    """IS score for one grid point. Sentinels have failed=True and no record."""
    penalty: float
    record: Optional[SparseFitRecord]
    is_score: float
    pev_pca: float
    pev_sparse: float = 0.0
    sparsity_ratio: float = 0.0
    n_zero: Optional[int] = None
    failed: bool = False
    error: Optional[str] = None


def index_of_sparseness(pev_pca: float, pev_sparse: float, sparsity: float) -> float:
    """IS = PEV_pca * PEV_sparse * sparsity_ratio"""
    return pev_pca * pev_sparse * sparsity


class ISGridTuner:
    """
    Grid search over L1 penalties scored by the Index of Sparseness.

    Parameters
    ----------
    adapter : SparseFitAdapter, optional
        Sparse fitter; defaults to SparseFitAdapter() (scikit-learn SparsePCA)
    analyzer : VarianceAnalyzer, optional
        Standard-PCA spectrum provider; its `standardize` setting is applied
        to the matrix used for both PCA and every sparse fit
    on_failure : {'raise', 'sentinel'}, default 'raise'
        'raise' aborts the run on the first SolverFailure; 'sentinel' records
        a failed TuningResult with IS score 0 and continues
    n_jobs : int, optional
        Number of joblib workers for the grid points (None or 1: sequential)
    zero_tol : float, default 0.0
        Loadings with |x| <= zero_tol count as zero
    """

    def __init__(
        self,
        adapter: Optional[SparseFitAdapter] = None,
        analyzer: Optional[VarianceAnalyzer] = None,
        on_failure: str = DEFAULT_FAILURE_POLICY,
        n_jobs: Optional[int] = None,
        zero_tol: float = ZERO_TOLERANCE,
    ):
        if on_failure not in FAILURE_POLICIES:
            raise InvalidParameter(
                f"on_failure must be one of {FAILURE_POLICIES}, got {on_failure!r}"
            )
        if zero_tol < 0:
            raise InvalidParameter(f"zero_tol must be non-negative, got {zero_tol}")
        self.adapter = adapter if adapter is not None else SparseFitAdapter()
        self.analyzer = analyzer if analyzer is not None else VarianceAnalyzer()
        self.on_failure = on_failure
        self.n_jobs = n_jobs
        self.zero_tol = zero_tol

    def tune(self, data, grid: Sequence[float], n_components: int) -> List[TuningResult]:
        """
        Score every penalty in grid, preserving grid order.

        Raises
        ------
        EmptyResultSet
            If grid is empty
        InvalidParameter
            Negative, non-finite or duplicate penalties; K out of range
        InsufficientData
            Data matrix too small for a decomposition
        SolverFailure
            A grid point failed and on_failure='raise'
        """
        penalties = check_penalty_grid(grid)
        if not penalties:
            raise EmptyResultSet("Penalty grid is empty; nothing to tune")

        X = self.analyzer.prepare(data)
        feature_names = list(data.columns.astype(str)) if isinstance(data, pd.DataFrame) else None
        n_components = check_n_components(n_components, X.shape)

        logger.info("=" * 80)
        logger.info(f"Tuning sparse PCA penalty: {len(penalties)} grid points, K={n_components}")
        logger.info("=" * 80)

        # Baseline shared by every grid point
        spectrum = self.analyzer.analyze_prepared(X)
        pev_pca = spectrum.leading(n_components)
        logger.info(f"PEV_pca (first {n_components} components): {pev_pca:.4f}")

        if self.n_jobs is None or self.n_jobs == 1:
            results = [
                self._evaluate(X, n_components, p, pev_pca, feature_names)
                for p in penalties
            ]
        else:
            # joblib returns results in submission order
            results = Parallel(n_jobs=self.n_jobs)(
                delayed(self._evaluate)(X, n_components, p, pev_pca, feature_names)
                for p in penalties
            )

        n_failed = sum(r.failed for r in results)
        if n_failed:
            logger.warning(f"{n_failed}/{len(results)} grid points failed and were recorded as sentinels")
        logger.info(f"Completed {len(results)} grid points")
        return list(results)

    def _evaluate(
        self,
        X: np.ndarray,
        n_components: int,
        penalty: float,
        pev_pca: float,
        feature_names: Optional[List[str]],
    ) -> TuningResult:
        try:
            record = self.adapter.fit_prepared(X, n_components, penalty, feature_names)
        except SolverFailure as e:
            if self.on_failure == 'raise':
                raise
            logger.warning(f"Grid point penalty={penalty:g} failed, recording sentinel: {e}")
            return TuningResult(
                penalty=penalty,
                record=None,
                is_score=0.0,
                pev_pca=pev_pca,
                failed=True,
                error=str(e),
            )

        pev_sparse = record.pev
        if pev_sparse > 1.0:
            logger.warning(
                f"penalty={penalty:g}: PEV_sparse={pev_sparse:.6f} exceeds 1, clipping"
            )
            pev_sparse = 1.0
        sparsity = record.sparsity_ratio(self.zero_tol)
        score = index_of_sparseness(pev_pca, pev_sparse, sparsity)

        logger.debug(
            f"penalty={penalty:g}: PEV_sparse={pev_sparse:.4f}, "
            f"sparsity={sparsity:.3f}, IS={score:.4f}"
        )
        return TuningResult(
            penalty=penalty,
            record=record,
            is_score=score,
            pev_pca=pev_pca,
            pev_sparse=pev_sparse,
            sparsity_ratio=sparsity,
            n_zero=record.n_zero(self.zero_tol),
        )


def results_to_frame(results: Sequence[TuningResult]) -> pd.DataFrame:
    """One row per grid point, in grid order, for IS-vs-penalty plots and CSV export."""
    rows = []
    for r in results:
        rows.append({
            'penalty': r.penalty,
            'is_score': r.is_score,
            'pev_pca': r.pev_pca,
            'pev_sparse': r.pev_sparse if not r.failed else np.nan,
            'sparsity_ratio': r.sparsity_ratio if not r.failed else np.nan,
            'n_zero': r.n_zero,
            'failed': r.failed,
            'error': r.error,
        })
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)
