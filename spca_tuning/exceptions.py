"""
Exception hierarchy for sparse PCA penalty tuning.

Every error carries a plain message; SolverFailure also keeps the offending
penalty, component count and underlying cause so a failed grid point can be
diagnosed without re-running the search.
"""

from typing import Optional


class SPCATuningError(Exception):
    """Base class for all tuning errors."""


class InsufficientData(SPCATuningError, ValueError):
    """Data matrix too small (or too degenerate) for a stable decomposition."""


class InvalidParameter(SPCATuningError, ValueError):
    """Penalty, component count or option outside its valid range."""


class EmptyResultSet(SPCATuningError, ValueError):
    """Selection attempted over no (successful) results."""


class SolverFailure(SPCATuningError, RuntimeError):
    """
    The sparse-component solver did not converge or returned an unusable
    result for a single grid point.
    """

    def __init__(
        self,
        message: str,
        penalty: Optional[float] = None,
        n_components: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.penalty = penalty
        self.n_components = n_components
        self.cause = cause
        self._message = message
        context = []
        if penalty is not None:
            context.append(f"penalty={penalty:g}")
        if n_components is not None:
            context.append(f"K={n_components}")
        if cause is not None:
            context.append(f"cause={type(cause).__name__}: {cause}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)

    def __reduce__(self):
        # Keep the context when the error crosses a worker-process boundary
        return (
            self.__class__,
            (self._message, self.penalty, self.n_components, self.cause),
        )
