"""
Command-line entry point: tune the sparse PCA penalty of a CSV data set.

    spca-tune data.csv --k 2 --grid 0 0.5 1.0
    spca-tune data.csv --k 3 --grid-range 0 2 21 --standardize --output is.csv
"""

import argparse
import logging
import sys

import numpy as np
import pandas as pd

from spca_tuning.config import FAILURE_POLICIES, LOG_FORMAT
from spca_tuning.exceptions import SPCATuningError
from spca_tuning.grid_tuning import ISGridTuner, results_to_frame
from spca_tuning.selection import OptimalSelector, tune_and_select
from spca_tuning.sparse_fit import (
    ElasticNetSPCASolver, SklearnSparsePCASolver, SparseFitAdapter,
)
from spca_tuning.variance_analysis import VarianceAnalyzer

logger = logging.getLogger(__name__)

SOLVERS = {
    'sklearn': SklearnSparsePCASolver,
    'elasticnet': ElasticNetSPCASolver,
}


def build_parser():
    parser = argparse.ArgumentParser(
        prog='spca-tune',
        description="Tune the sparse PCA penalty by maximizing the Index of Sparseness."
    )
    parser.add_argument("data", help="CSV file, one observation per row.")
    parser.add_argument(
        "--k", dest="n_components", type=int, required=True,
        help="Number of components K (choose it from the scree table)."
    )
    grid = parser.add_mutually_exclusive_group(required=True)
    grid.add_argument(
        "--grid", type=float, nargs="+",
        help="Explicit penalty values, in reporting order."
    )
    grid.add_argument(
        "--grid-range", type=float, nargs=3, metavar=("START", "STOP", "NUM"),
        help="NUM evenly spaced penalties from START to STOP (inclusive)."
    )
    parser.add_argument(
        "--index-col", type=int, default=None,
        help="Column holding row labels, excluded from the data."
    )
    parser.add_argument(
        "--standardize", action="store_true",
        help="Z-score every column before PCA and sparse fitting."
    )
    parser.add_argument(
        "--solver", choices=sorted(SOLVERS), default="sklearn",
        help="Sparse-component solver (default: sklearn)."
    )
    parser.add_argument(
        "--on-failure", choices=FAILURE_POLICIES, default="raise",
        help="Abort on a failed grid point, or record it as a zero-score sentinel."
    )
    parser.add_argument(
        "--n-jobs", type=int, default=None,
        help="Parallel workers for the grid search."
    )
    parser.add_argument("--output", default=None, help="Write the results table to this CSV.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def penalty_grid(args):
    if args.grid is not None:
        return args.grid
    start, stop, num = args.grid_range
    return list(np.linspace(start, stop, int(num)))


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT
    )

    try:
        data = pd.read_csv(args.data, index_col=args.index_col)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read CSV file {args.data}: {e}")
        return 1

    analyzer = VarianceAnalyzer(standardize=args.standardize)
    tuner = ISGridTuner(
        adapter=SparseFitAdapter(SOLVERS[args.solver]()),
        analyzer=analyzer,
        on_failure=args.on_failure,
        n_jobs=args.n_jobs,
    )

    try:
        spectrum = analyzer.analyze(data)
        outcome, results = tune_and_select(
            data, penalty_grid(args), args.n_components,
            tuner=tuner, selector=OptimalSelector()
        )
    except SPCATuningError as e:
        logger.error(str(e))
        return 1

    table = results_to_frame(results)

    print("=" * 70)
    print("  SCREE TABLE")
    print("=" * 70)
    print(spectrum.to_frame().to_string(index=False))
    print()
    print("=" * 70)
    print(f"  INDEX OF SPARSENESS (K={args.n_components})")
    print("=" * 70)
    print(table.drop(columns=["error"]).to_string(index=False))
    print()
    print(f"Optimal penalty: {outcome.penalty:g}")
    print(f"Optimal IS:      {outcome.is_score:.4f}")
    if outcome.partial:
        print(f"Warning: {outcome.n_failed} grid points failed; the search is partial.")
    print()
    print(outcome.model.loadings_frame().to_string())

    if args.output:
        table.to_csv(args.output, index=False)
        print(f"\nResults written to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
