"""
SPCA Tuning
===========

Tunes the L1 penalty of Sparse PCA by maximizing the Index of Sparseness

    IS = PEV_pca * PEV_sparse * sparsity_ratio

over a caller-supplied grid of penalty values.

Main Components:
- variance_analysis: PEV spectrum from a full standard PCA (scree, PEV_pca)
- sparse_fit: sparse-component solvers and the SparseFitAdapter
- grid_tuning: ISGridTuner, one TuningResult per grid point
- selection: OptimalSelector with a smallest-penalty tie-break

Example Usage:
    from spca_tuning import tune_and_select

    outcome, results = tune_and_select(X, grid=[0.0, 0.5, 1.0], n_components=2)
    print(outcome.penalty, outcome.is_score)
    print(outcome.model.loadings_frame())
"""

__version__ = '1.0.0'

from .exceptions import (
    SPCATuningError,
    InsufficientData,
    InvalidParameter,
    SolverFailure,
    EmptyResultSet
)

from .variance_analysis import (
    VarianceAnalyzer,
    VarianceSpectrum
)

from .sparse_fit import (
    SparseSolver,
    SolverOutput,
    SklearnSparsePCASolver,
    ElasticNetSPCASolver,
    SparseFitRecord,
    SparseFitAdapter,
    adjusted_explained_variance
)

from .grid_tuning import (
    ISGridTuner,
    TuningResult,
    index_of_sparseness,
    results_to_frame
)

from .selection import (
    OptimalSelector,
    OptimalOutcome,
    tune_and_select
)

__all__ = [
    # Errors
    'SPCATuningError',
    'InsufficientData',
    'InvalidParameter',
    'SolverFailure',
    'EmptyResultSet',

    # Variance analysis
    'VarianceAnalyzer',
    'VarianceSpectrum',

    # Sparse fitting
    'SparseSolver',
    'SolverOutput',
    'SklearnSparsePCASolver',
    'ElasticNetSPCASolver',
    'SparseFitRecord',
    'SparseFitAdapter',
    'adjusted_explained_variance',

    # Grid search
    'ISGridTuner',
    'TuningResult',
    'index_of_sparseness',
    'results_to_frame',

    # Selection
    'OptimalSelector',
    'OptimalOutcome',
    'tune_and_select',
]
