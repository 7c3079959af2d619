"""
Data models shared by the translator, the monitor and the solver controller.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional
import numpy as np


# https://github.com/ERGO-Code/HiGHS/blob/master/src/lp_data/HConst.h
class VariableType(IntEnum):
    CONTINUOUS = 0
    INTEGER = 1
    SEMI_CONTINUOUS = 2
    SEMI_INTEGER = 3
    IMPLICIT_INTEGER = 4


class SolverStatus(IntEnum):
    """
    Model status reported by the engine after a run.
    """
    NOT_SET = 0
    LOAD_ERROR = 1
    MODEL_ERROR = 2
    PRESOLVE_ERROR = 3
    SOLVE_ERROR = 4
    POSTSOLVE_ERROR = 5
    MODEL_EMPTY = 6
    OPTIMAL = 7
    INFEASIBLE = 8
    UNBOUNDED_OR_INFEASIBLE = 9
    UNBOUNDED = 10
    OBJECTIVE_BOUND = 11
    OBJECTIVE_TARGET = 12
    TIME_LIMIT = 13
    ITERATION_LIMIT = 14
    UNKNOWN = 15
    SOLUTION_LIMIT = 16


# Statuses where the engine ran to a well-defined end, optimal or not.
COMPLETED_STATUSES = frozenset({
    SolverStatus.OPTIMAL,
    SolverStatus.INFEASIBLE,
    SolverStatus.UNBOUNDED_OR_INFEASIBLE,
    SolverStatus.UNBOUNDED,
    SolverStatus.OBJECTIVE_BOUND,
    SolverStatus.OBJECTIVE_TARGET,
    SolverStatus.TIME_LIMIT,
    SolverStatus.ITERATION_LIMIT,
    SolverStatus.SOLUTION_LIMIT,
})


def as_solver_status(code: int) -> SolverStatus:
    """Convert a raw engine code, rejecting values outside the known range."""
    try:
        return SolverStatus(int(code))
    except ValueError:
        raise ValueError(f"Invalid status: {code}") from None


class SolutionStyle(IntEnum):
    RAW = 0
    PRETTY = 1
    GLPSOL_RAW = 2
    GLPSOL_PRETTY = 3
    SPARSE = 4


@dataclass
class SparseRow:
    """
    Sparse vector: parallel index and value arrays.
    """
    indices: np.ndarray
    values: np.ndarray

    def __post_init__(self):
        self.indices = np.asarray(self.indices, dtype=np.int32)
        self.values = np.asarray(self.values, dtype=float)

    def __len__(self) -> int:
        return len(self.values)


@dataclass
class SparseMatrix:
    """
    Compressed sparse matrix, row-wise unless stated otherwise.

    offsets[i] is the position in indices/values where row i starts, the last
    row runs to the end of the arrays.
    """
    offsets: np.ndarray
    indices: np.ndarray
    values: np.ndarray

    def __post_init__(self):
        self.offsets = np.asarray(self.offsets, dtype=np.int32)
        self.indices = np.asarray(self.indices, dtype=np.int32)
        self.values = np.asarray(self.values, dtype=float)

    @property
    def nnz(self) -> int:
        return len(self.values)

    def row_bounds(self, row: int):
        """Return the [start, end) slice of a row."""
        start = int(self.offsets[row])
        if row + 1 < len(self.offsets):
            end = int(self.offsets[row + 1])
        else:
            end = len(self.indices)
        return start, end

    def __repr__(self) -> str:
        return f"SparseMatrix(rows={len(self.offsets)}, nnz={self.nnz})"


@dataclass
class SolverModel:
    """
    Inline model passed to the solver.

    min/max  offset + cᵀx + ½xᵀQx
    s.t.     row_lower ≤ Ax ≤ row_upper
             column_lower ≤ x ≤ column_upper

    Q is given as its upper triangle, row-wise. Diagonal entries hold half of
    the effective weight, i.e. an entry d at (i, i) contributes d·xᵢ² to the
    objective.
    """
    column_lower_bounds: np.ndarray
    column_upper_bounds: np.ndarray
    row_lower_bounds: np.ndarray
    row_upper_bounds: np.ndarray
    weights: SparseMatrix  # Constraint matrix
    is_maximization: bool = False
    objective_offset: float = 0.0
    column_types: Optional[np.ndarray] = None
    objective_linear_weights: Optional[np.ndarray] = None  # Omitted if all zero
    objective_quadratic_weights: Optional[SparseMatrix] = None

    def __post_init__(self):
        self.column_lower_bounds = np.asarray(self.column_lower_bounds, dtype=float)
        self.column_upper_bounds = np.asarray(self.column_upper_bounds, dtype=float)
        self.row_lower_bounds = np.asarray(self.row_lower_bounds, dtype=float)
        self.row_upper_bounds = np.asarray(self.row_upper_bounds, dtype=float)
        if self.column_types is not None:
            self.column_types = np.asarray(self.column_types, dtype=np.int32)
        if self.objective_linear_weights is not None:
            self.objective_linear_weights = np.asarray(self.objective_linear_weights, dtype=float)

    @property
    def width(self) -> int:
        return len(self.column_lower_bounds)

    @property
    def height(self) -> int:
        return len(self.row_lower_bounds)

    def __repr__(self) -> str:
        sense = "max" if self.is_maximization else "min"
        quadratic = self.objective_quadratic_weights is not None
        return (f"SolverModel({sense}, columns={self.width}, rows={self.height}, "
                f"nnz={self.weights.nnz}, quadratic={quadratic})")


@dataclass
class FlatModel:
    """
    Engine-facing model: every optional field resolved, Hessian rescaled.
    """
    column_count: int
    row_count: int
    is_maximization: bool
    objective_offset: float
    objective_linear_weights: np.ndarray
    column_lower_bounds: np.ndarray
    column_upper_bounds: np.ndarray
    row_lower_bounds: np.ndarray
    row_upper_bounds: np.ndarray
    weights: SparseMatrix
    column_types: np.ndarray
    hessian: Optional[SparseMatrix] = None


@dataclass
class SolutionValues:
    rows: np.ndarray
    columns: np.ndarray


@dataclass
class SolverSolution:
    """
    Solution extracted after a run.
    """
    objective_value: float
    primal: SolutionValues
    dual: Optional[SolutionValues] = None
    relative_gap: Optional[float] = None  # Only set for MIP runs

    def __repr__(self) -> str:
        gap = f", gap={self.relative_gap:.4g}" if self.relative_gap is not None else ""
        return (f"SolverSolution(obj={self.objective_value:.6g}{gap}, "
                f"columns={len(self.primal.columns)}, rows={len(self.primal.rows)}, "
                f"dual={self.dual is not None})")


@dataclass
class EngineSolution:
    """
    Raw solution arrays as returned by the engine, with validity flags.
    """
    is_value_valid: bool
    is_dual_valid: bool
    column_values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    column_dual_values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    row_values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    row_dual_values: np.ndarray = field(default_factory=lambda: np.zeros(0))


@dataclass(frozen=True)
class PrimalAssessment:
    is_valid: bool
    is_integral: bool
    is_feasible: bool


@dataclass(frozen=True)
class SolveProgress:
    """
    One row of the engine's branch-and-bound table.
    """
    relative_gap: float
    primal_bound: float
    dual_bound: float
    cut_count: int
    lp_iteration_count: int
