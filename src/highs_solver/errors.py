"""
Error taxonomy for the solver layer.

Every error carries a stable ``code`` so callers can branch without matching
on messages.
"""

from typing import Optional

from .data_models import SolverStatus


CODE_PREFIX = "ERR_HIGHS_"


class SolverError(Exception):
    code = CODE_PREFIX + "SOLVER"


class UnbalancedSparseRow(SolverError, ValueError):
    code = CODE_PREFIX + "UNBALANCED_SPARSE_ROW"

    def __init__(self, index_count: int, value_count: int):
        super().__init__(
            f"Sparse row has {index_count} indices but {value_count} values"
        )
        self.index_count = index_count
        self.value_count = value_count


class InconsistentModel(SolverError, AssertionError):
    """Raised when array lengths disagree with the model's dimensions."""
    code = CODE_PREFIX + "INCONSISTENT_MODEL"


class SolveInProgress(SolverError):
    code = CODE_PREFIX + "SOLVE_IN_PROGRESS"

    def __init__(self):
        super().__init__("No mutations may be performed while a solve is running")


class NativeMethodFailed(SolverError):
    """
    An engine call was rejected. The original error is chained as __cause__.
    """
    code = CODE_PREFIX + "NATIVE_METHOD_FAILED"

    def __init__(self, method: str, cause: BaseException):
        super().__init__(
            f"Native method '{method}' failed (message: {cause}). "
            "Check solver logs for more information."
        )
        self.method = method


class InvalidWarmStart(SolverError):
    code = CODE_PREFIX + "INVALID_WARM_START"

    def __init__(self):
        super().__init__("The solution used to warm-start the model was invalid")


class SolveFailed(SolverError):
    """The engine ended in an error state (load, presolve, unknown, ...)."""
    code = CODE_PREFIX + "SOLVE_FAILED"

    def __init__(self, status: SolverStatus, cause: Optional[BaseException] = None):
        super().__init__(f"Solve failed with status {status.name}")
        self.status = status
        self.__cause__ = cause


class SolveNonOptimal(SolverError):
    code = CODE_PREFIX + "SOLVE_NON_OPTIMAL"

    def __init__(self, status: SolverStatus, cause: Optional[BaseException] = None):
        super().__init__(f"Solve ended with non-optimal status {status.name}")
        self.status = status
        self.__cause__ = cause
