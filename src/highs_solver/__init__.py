"""
HiGHS Solver Package

This package wraps the HiGHS LP/MIP/QP engine behind a guarded controller.

Modules:
    data_models: Models, solutions, statuses and progress records
    modeling: Model validation, Hessian scaling and a model builder
    engine: Engine handle interface and its highspy implementation
    monitor: Log tailing progress tracker
    solver: Solver controller and one-shot solve helper
    errors: Error taxonomy

Main Exports:
    From solver:
        - Solver: Controller owning one engine handle
        - solve: One-shot solve entry point

    From monitor:
        - SolveMonitor: Progress and completion events
"""

from .data_models import (
    SolutionStyle,
    SolutionValues,
    SolveProgress,
    SolverModel,
    SolverSolution,
    SolverStatus,
    SparseMatrix,
    SparseRow,
    VariableType,
)

from .errors import (
    InconsistentModel,
    InvalidWarmStart,
    NativeMethodFailed,
    SolveFailed,
    SolveInProgress,
    SolveNonOptimal,
    SolverError,
    UnbalancedSparseRow,
)

from .modeling import (
    ModelBuilder,
    assert_balanced,
    sparse_row,
)

from .engine import solver_version
from .monitor import SolveMonitor, SolveTracker
from .solver import Solver, solve

__all__ = [
    # Data models
    'SolutionStyle',
    'SolutionValues',
    'SolveProgress',
    'SolverModel',
    'SolverSolution',
    'SolverStatus',
    'SparseMatrix',
    'SparseRow',
    'VariableType',
    # Errors
    'InconsistentModel',
    'InvalidWarmStart',
    'NativeMethodFailed',
    'SolveFailed',
    'SolveInProgress',
    'SolveNonOptimal',
    'SolverError',
    'UnbalancedSparseRow',
    # Modeling
    'ModelBuilder',
    'assert_balanced',
    'sparse_row',
    # Solver
    'Solver',
    'SolveMonitor',
    'SolveTracker',
    'solve',
    'solver_version',
]
