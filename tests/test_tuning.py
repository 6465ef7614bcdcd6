"""
Tests for the Index of Sparseness grid search and optimal selection.

These tests verify the tuning invariants (one result per grid point, stable
PEV_pca baseline, IS bounded in [0, 1]) and the selection tie-break, using a
deterministic thresholding solver so that the outcome is known in advance.

Dev dependencies: pytest
    Run: pytest tests/test_tuning.py -v
    Run slow tests too: pytest tests/test_tuning.py -v -m slow
"""

import numpy as np
import pandas as pd
import pytest
from joblib import parallel_backend

from spca_tuning.exceptions import (
    EmptyResultSet,
    InsufficientData,
    InvalidParameter,
    SolverFailure,
)
from spca_tuning.grid_tuning import (
    ISGridTuner,
    TuningResult,
    index_of_sparseness,
    results_to_frame,
)
from spca_tuning.selection import OptimalOutcome, OptimalSelector, tune_and_select
from spca_tuning.sparse_fit import (
    SklearnSparsePCASolver,
    SparseFitAdapter,
    SparseFitRecord,
)
from spca_tuning.variance_analysis import VarianceAnalyzer


def make_result(penalty, score, failed=False):
    """TuningResult with a placeholder record."""
    record = None
    if not failed:
        record = SparseFitRecord(
            loadings=np.zeros((1, 2)),
            explained_variance=np.zeros(1),
            penalty=penalty,
        )
    return TuningResult(
        penalty=penalty,
        record=record,
        is_score=score,
        pev_pca=0.9,
        failed=failed,
        error="boom" if failed else None,
    )


@pytest.fixture
def tuner(threshold_solver):
    return ISGridTuner(adapter=SparseFitAdapter(threshold_solver))


# ===================================================================
# test_grid_tuner
# ===================================================================

class TestISGridTuner:
    """Grid search invariants."""

    def test_one_result_per_grid_point_in_order(self, tuner, block_data):
        grid = [1.0, 0.0, 0.3, 0.7]
        results = tuner.tune(block_data, grid, 2)

        assert len(results) == len(grid)
        assert [r.penalty for r in results] == grid

    def test_scores_bounded(self, tuner, block_data):
        results = tuner.tune(block_data, np.linspace(0, 1, 11), 2)
        for r in results:
            assert 0.0 <= r.is_score <= 1.0
            assert 0.0 <= r.sparsity_ratio <= 1.0
            assert 0.0 <= r.pev_sparse <= 1.0

    def test_is_is_product_of_factors(self, tuner, block_data):
        for r in tuner.tune(block_data, [0.2, 0.5], 2):
            assert r.is_score == pytest.approx(
                index_of_sparseness(r.pev_pca, r.pev_sparse, r.sparsity_ratio)
            )
            assert r.pev_sparse == pytest.approx(r.record.pev)

    def test_pev_pca_constant_across_grid(self, tuner, block_data):
        """The standard-PCA baseline is computed once and shared."""
        results = tuner.tune(block_data, [0.0, 0.2, 0.4, 0.6], 2)
        expected = VarianceAnalyzer().analyze(block_data).leading(2)
        assert {r.pev_pca for r in results} == {expected}

    def test_baseline_computed_once(self, threshold_solver, block_data, monkeypatch):
        analyzer = VarianceAnalyzer()
        calls = []
        original = analyzer.analyze_prepared

        def counting(X):
            calls.append(X.shape)
            return original(X)

        monkeypatch.setattr(analyzer, "analyze_prepared", counting)
        tuner = ISGridTuner(adapter=SparseFitAdapter(threshold_solver), analyzer=analyzer)
        tuner.tune(block_data, [0.0, 0.1, 0.2, 0.3, 0.4], 2)
        assert len(calls) == 1

    def test_sparsity_non_decreasing_in_penalty(self, tuner, block_data):
        """More penalty never yields fewer zero loadings."""
        grid = [0.0, 0.05, 0.1, 0.2, 0.3, 0.5, 0.6, 0.75, 1.0]
        ratios = [r.sparsity_ratio for r in tuner.tune(block_data, grid, 2)]
        assert all(b >= a for a, b in zip(ratios, ratios[1:]))

    def test_dense_fit_scores_zero(self, tuner, block_data):
        """Penalty 0 keeps every loading, so IS is 0 by construction."""
        result = tuner.tune(block_data, [0.0], 2)[0]
        assert result.sparsity_ratio == 0.0
        assert result.is_score == 0.0
        assert not result.failed

    def test_data_not_mutated(self, tuner, block_data):
        before = block_data.copy()
        tuner.tune(block_data, [0.0, 0.5], 2)
        np.testing.assert_array_equal(block_data, before)

    def test_empty_grid(self, tuner, block_data):
        with pytest.raises(EmptyResultSet):
            tuner.tune(block_data, [], 2)

    @pytest.mark.parametrize("grid", [[0.1, -0.2], [0.1, 0.1], [0.1, np.nan]])
    def test_invalid_grid_rejected_before_fitting(self, threshold_solver, block_data, grid):
        tuner = ISGridTuner(adapter=SparseFitAdapter(threshold_solver))
        with pytest.raises(InvalidParameter):
            tuner.tune(block_data, grid, 2)
        assert threshold_solver.calls == []

    def test_component_count_out_of_range(self, tuner, block_data):
        with pytest.raises(InvalidParameter):
            tuner.tune(block_data, [0.1], 6)

    def test_single_row(self, tuner):
        with pytest.raises(InsufficientData):
            tuner.tune([[1.0, 2.0, 3.0]], [0.1], 1)

    def test_invalid_failure_policy(self):
        with pytest.raises(InvalidParameter):
            ISGridTuner(on_failure="ignore")

    def test_failure_aborts_by_default(self, block_data, failing_solver_factory):
        solver = failing_solver_factory(fail_at={0.5})
        tuner = ISGridTuner(adapter=SparseFitAdapter(solver))
        with pytest.raises(SolverFailure) as excinfo:
            tuner.tune(block_data, [0.1, 0.5, 0.9], 2)
        assert excinfo.value.penalty == 0.5

    def test_failure_recorded_as_sentinel(self, block_data, failing_solver_factory):
        solver = failing_solver_factory(fail_at={0.5})
        tuner = ISGridTuner(adapter=SparseFitAdapter(solver), on_failure="sentinel")
        results = tuner.tune(block_data, [0.1, 0.5, 0.9], 2)

        assert [r.penalty for r in results] == [0.1, 0.5, 0.9]
        sentinel = results[1]
        assert sentinel.failed
        assert sentinel.is_score == 0.0
        assert sentinel.record is None
        assert "did not converge" in sentinel.error
        assert not results[0].failed and not results[2].failed

    def test_zero_tolerance(self, threshold_solver, block_data):
        """A positive zero_tol counts near-zero loadings as zeros."""
        exact = ISGridTuner(adapter=SparseFitAdapter(threshold_solver))
        loose = ISGridTuner(adapter=SparseFitAdapter(threshold_solver), zero_tol=0.1)
        r_exact = exact.tune(block_data, [0.0], 2)[0]
        r_loose = loose.tune(block_data, [0.0], 2)[0]
        assert r_exact.sparsity_ratio == 0.0
        assert r_loose.sparsity_ratio == pytest.approx(0.5)
        assert r_loose.n_zero == 5

    def test_parallel_matches_sequential(self, threshold_solver, block_data):
        grid = [0.6, 0.0, 0.2, 0.4]
        sequential = ISGridTuner(adapter=SparseFitAdapter(threshold_solver)).tune(block_data, grid, 2)
        with parallel_backend("threading"):
            parallel = ISGridTuner(
                adapter=SparseFitAdapter(threshold_solver), n_jobs=2
            ).tune(block_data, grid, 2)

        assert [r.penalty for r in parallel] == grid
        assert [r.is_score for r in parallel] == [r.is_score for r in sequential]

    def test_dataframe_feature_names_carried(self, tuner, block_frame):
        result = tuner.tune(block_frame, [0.5], 2)[0]
        assert result.record.feature_names == ["a1", "a2", "a3", "b1", "b2"]


# ===================================================================
# test_results_frame
# ===================================================================

class TestResultsFrame:
    """Tabular view for IS-vs-penalty rendering."""

    def test_columns_and_order(self, tuner, block_data):
        grid = [0.9, 0.1, 0.5]
        df = results_to_frame(tuner.tune(block_data, grid, 2))

        assert list(df.columns) == [
            "penalty", "is_score", "pev_pca", "pev_sparse",
            "sparsity_ratio", "n_zero", "failed", "error",
        ]
        assert df["penalty"].tolist() == grid
        assert not df["failed"].any()

    def test_sentinels_distinguishable(self):
        df = results_to_frame([make_result(0.1, 0.3), make_result(0.2, 0.0, failed=True)])
        assert df["failed"].tolist() == [False, True]
        assert pd.isna(df.loc[1, "pev_sparse"])
        assert df.loc[1, "error"] == "boom"


# ===================================================================
# test_optimal_selector
# ===================================================================

class TestOptimalSelector:
    """Maximum-IS selection with a smallest-penalty tie-break."""

    def test_dominant_maximum(self):
        results = [make_result(0.0, 0.0), make_result(0.5, 0.42), make_result(1.0, 0.1)]
        outcome = OptimalSelector().select(results)

        assert isinstance(outcome, OptimalOutcome)
        assert outcome.penalty == 0.5
        assert outcome.is_score == 0.42
        assert outcome.model is results[1].record
        assert outcome.index == 1
        assert not outcome.partial

    def test_tie_goes_to_smallest_penalty(self):
        results = [make_result(0.3, 0.25), make_result(0.1, 0.25), make_result(0.2, 0.1)]
        outcome = OptimalSelector().select(results)
        assert outcome.penalty == 0.1
        assert outcome.index == 1

    def test_tie_within_tolerance(self):
        results = [make_result(0.1, 0.25), make_result(0.3, 0.25 + 1e-12)]
        assert OptimalSelector().select(results).penalty == 0.1

    def test_distinct_scores_not_tied(self):
        results = [make_result(0.1, 0.25), make_result(0.3, 0.25 + 1e-6)]
        assert OptimalSelector().select(results).penalty == 0.3

    def test_empty(self):
        with pytest.raises(EmptyResultSet):
            OptimalSelector().select([])

    def test_sentinels_never_win(self):
        results = [make_result(0.1, 0.0), make_result(0.2, 0.0, failed=True)]
        outcome = OptimalSelector().select(results)
        assert outcome.penalty == 0.1
        assert outcome.n_failed == 1
        assert outcome.partial

    def test_all_failed(self):
        results = [make_result(0.1, 0.0, failed=True), make_result(0.2, 0.0, failed=True)]
        with pytest.raises(EmptyResultSet):
            OptimalSelector().select(results)

    def test_input_not_mutated(self):
        results = [make_result(0.3, 0.2), make_result(0.1, 0.2)]
        snapshot = list(results)
        OptimalSelector().select(results)
        assert len(results) == 2
        assert all(a is b for a, b in zip(results, snapshot))


# ===================================================================
# test_end_to_end
# ===================================================================

class TestEndToEnd:
    """10 x 5 block-covariance data, K=2, grid [0.0, 0.5, 1.0]."""

    def test_interior_penalty_wins(self, threshold_solver, block_data):
        tuner = ISGridTuner(adapter=SparseFitAdapter(threshold_solver))
        outcome, results = tune_and_select(block_data, [0.0, 0.5, 1.0], 2, tuner=tuner)

        dense, interior, heavy = results
        assert dense.sparsity_ratio == 0.0
        assert dense.is_score == pytest.approx(0.0)
        assert heavy.sparsity_ratio == 1.0
        assert heavy.is_score == pytest.approx(0.0)
        assert interior.is_score > 0.4

        assert outcome.penalty == 0.5
        assert outcome.is_score == interior.is_score
        assert outcome.model is interior.record

    def test_single_row_fails(self):
        with pytest.raises(InsufficientData):
            VarianceAnalyzer().analyze(np.array([[1.0, 2.0, 3.0, 4.0, 5.0]]))


@pytest.mark.slow
class TestEndToEndSklearn:
    """Same scenario with scikit-learn SparsePCA as the solver."""

    @pytest.fixture
    def run(self, block_data):
        adapter = SparseFitAdapter(SklearnSparsePCASolver(), require_convergence=False)
        tuner = ISGridTuner(adapter=adapter, on_failure="sentinel")
        return tune_and_select(block_data, [0.0, 0.5, 1.0, 2.0, 4.0], 2, tuner=tuner)

    def test_results_aligned_with_grid(self, run):
        _, results = run
        assert [r.penalty for r in results] == [0.0, 0.5, 1.0, 2.0, 4.0]

    def test_scores_bounded(self, run):
        _, results = run
        for r in results:
            assert 0.0 <= r.is_score <= 1.0

    def test_optimum_is_best_score(self, run):
        outcome, results = run
        assert outcome.is_score == max(r.is_score for r in results if not r.failed)

    def test_interior_penalty_wins_with_defaults(self, block_data):
        """Default adapter, tuner and selector pick the interior penalty."""
        outcome, results = tune_and_select(block_data, [0.0, 0.5, 1.0], 2)

        assert not any(r.failed for r in results)
        assert results[0].sparsity_ratio == 0.0
        assert results[0].is_score == 0.0
        assert outcome.penalty == 0.5
        assert outcome.n_failed == 0

    def test_sparsity_never_decreases(self, block_data):
        grid = np.linspace(0.0, 8.0, 11).tolist()
        adapter = SparseFitAdapter(SklearnSparsePCASolver(), require_convergence=False)
        results = ISGridTuner(adapter=adapter).tune(block_data, grid, 2)

        ratios = [r.sparsity_ratio for r in results]
        assert ratios[0] == 0.0
        assert all(b >= a for a, b in zip(ratios, ratios[1:]))
