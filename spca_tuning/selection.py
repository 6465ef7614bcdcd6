"""
Optimal penalty selection.

Picks the grid point with the highest Index of Sparseness. Scores within
TIE_TOLERANCE of the maximum are tied, and ties go to the smallest penalty
(the least aggressive sparsification). Failed grid points never win.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from spca_tuning.config import TIE_TOLERANCE
from spca_tuning.exceptions import EmptyResultSet, InvalidParameter
from spca_tuning.grid_tuning import ISGridTuner, TuningResult
from spca_tuning.sparse_fit import SparseFitRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimalOutcome:
    """Best grid point of a tuning run"""
    penalty: float
    is_score: float
    model: SparseFitRecord
    index: int          # Position in the penalty grid
    n_failed: int = 0   # Grid points recorded as failed sentinels

    @property
    def partial(self) -> bool:
        """True if some grid points failed, so the search was incomplete."""
        return self.n_failed > 0


class OptimalSelector:
    """Selects the maximum-IS result with a smallest-penalty tie-break."""

    def __init__(self, tol: float = TIE_TOLERANCE):
        if tol < 0:
            raise InvalidParameter(f"Tie tolerance must be non-negative, got {tol}")
        self.tol = tol

    def select(self, results: Sequence[TuningResult]) -> OptimalOutcome:
        """
        Raises
        ------
        EmptyResultSet
            If results is empty or every result is a failed sentinel
        """
        if len(results) == 0:
            raise EmptyResultSet("Cannot select an optimum from an empty result set")

        candidates = [(i, r) for i, r in enumerate(results) if not r.failed]
        n_failed = len(results) - len(candidates)
        if not candidates:
            raise EmptyResultSet(
                f"All {n_failed} grid points failed; no fitted model to select"
            )

        best_score = max(r.is_score for _, r in candidates)
        tied = [(i, r) for i, r in candidates if best_score - r.is_score <= self.tol]
        index, best = min(tied, key=lambda item: item[1].penalty)

        if len(tied) > 1:
            logger.info(
                f"{len(tied)} penalties tie at IS={best_score:.6g}; "
                f"choosing smallest penalty {best.penalty:g}"
            )
        if n_failed:
            logger.warning(f"Optimum chosen from a partial search ({n_failed} failed grid points)")
        logger.info(f"Optimal penalty: {best.penalty:g} (IS={best.is_score:.4f})")

        return OptimalOutcome(
            penalty=best.penalty,
            is_score=best.is_score,
            model=best.record,
            index=index,
            n_failed=n_failed,
        )


def tune_and_select(
    data,
    grid: Sequence[float],
    n_components: int,
    tuner: Optional[ISGridTuner] = None,
    selector: Optional[OptimalSelector] = None,
):
    """
    Run the grid search and pick the optimum.

    Returns
    -------
    outcome : OptimalOutcome
    results : list of TuningResult
        Full per-penalty results in grid order (for IS-vs-penalty plots)
    """
    tuner = tuner if tuner is not None else ISGridTuner()
    selector = selector if selector is not None else OptimalSelector()
    results = tuner.tune(data, grid, n_components)
    return selector.select(results), results
