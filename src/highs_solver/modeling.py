from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import scipy.sparse as sp

from .data_models import (
    FlatModel,
    SolverModel,
    SolverSolution,
    SparseMatrix,
    SparseRow,
    VariableType,
)
from .errors import InconsistentModel, UnbalancedSparseRow

logger = logging.getLogger(__name__)


def sparse_row(values: Sequence[float], indices: Optional[Sequence[int]] = None) -> SparseRow:
    """
    Build a sparse row from dense values, dropping zeros.

    Args:
        values: Dense values
        indices: Optional index of each value, defaults to its position

    Returns:
        SparseRow with only the non-zero entries
    """
    vals = np.asarray(values, dtype=float)
    if indices is None:
        ixs = np.arange(len(vals), dtype=np.int32)
    else:
        ixs = np.asarray(indices, dtype=np.int32)
        assert_balanced(SparseRow(ixs, vals))
    mask = vals != 0
    return SparseRow(indices=ixs[mask], values=vals[mask])


def assert_balanced(arg: Union[SparseRow, SparseMatrix]) -> None:
    """Raise UnbalancedSparseRow if indices and values differ in length."""
    if len(arg.indices) != len(arg.values):
        raise UnbalancedSparseRow(len(arg.indices), len(arg.values))


def _check(condition: bool, message: str) -> None:
    if not condition:
        raise InconsistentModel(message)


def _check_offsets(matrix: SparseMatrix) -> None:
    offsets = matrix.offsets
    if len(offsets) == 0:
        return
    _check(bool(np.all(np.diff(offsets) >= 0)), "Offsets must be non-decreasing")
    _check(int(offsets[0]) >= 0 and int(offsets[-1]) <= matrix.nnz, "Offsets out of range")


def pad_offsets(matrix: SparseMatrix, height: int) -> np.ndarray:
    """
    Extend offsets to one entry per row. Missing trailing rows are empty.
    """
    offsets = matrix.offsets
    if len(offsets) >= height:
        return offsets
    padding = np.full(height - len(offsets), matrix.nnz, dtype=np.int32)
    return np.concatenate([offsets, padding]).astype(np.int32)


def scale_hessian_diagonal(matrix: SparseMatrix) -> SparseMatrix:
    """
    Double the diagonal entries of a row-wise upper-triangular matrix.

    The engine applies a ½ factor to the quadratic term, doubling the
    diagonal keeps the effective weight equal to the input. Column indices
    within a row must be non-decreasing: the scan of a row stops as soon as it
    goes past the diagonal.
    """
    offsets, indices, values = matrix.offsets, matrix.indices, matrix.values
    scaled = values.copy()
    for row in range(len(offsets)):
        start, end = matrix.row_bounds(row)
        for ix in range(start, end):
            col = indices[ix]
            if col == row:
                scaled[ix] = values[ix] * 2
            elif col > row:
                break
    return SparseMatrix(offsets=offsets.copy(), indices=indices.copy(), values=scaled)


def flatten_model(model: SolverModel) -> FlatModel:
    """
    Validate a model and resolve it into the structure the engine consumes.

    Raises:
        InconsistentModel: if array lengths disagree with the dimensions
        UnbalancedSparseRow: if a sparse matrix has mismatched arrays
    """
    width = model.width
    height = model.height

    lweights = model.objective_linear_weights
    qweights = model.objective_quadratic_weights
    ctypes = model.column_types

    _check(
        len(model.column_upper_bounds) == width
        and (ctypes is None or len(ctypes) == width)
        and (lweights is None or len(lweights) == width)
        and (qweights is None or len(qweights.offsets) == width),
        "Inconsistent width",
    )
    _check(
        len(model.row_upper_bounds) == height
        and len(model.weights.offsets) <= height,
        "Inconsistent height",
    )
    assert_balanced(model.weights)
    _check_offsets(model.weights)

    hessian = None
    if qweights is not None:
        assert_balanced(qweights)
        _check_offsets(qweights)
        hessian = scale_hessian_diagonal(qweights)

    weights = SparseMatrix(
        offsets=pad_offsets(model.weights, height),
        indices=model.weights.indices,
        values=model.weights.values,
    )

    return FlatModel(
        column_count=width,
        row_count=height,
        is_maximization=bool(model.is_maximization),
        objective_offset=float(model.objective_offset or 0.0),
        objective_linear_weights=lweights if lweights is not None else np.zeros(width),
        column_lower_bounds=model.column_lower_bounds,
        column_upper_bounds=model.column_upper_bounds,
        row_lower_bounds=model.row_lower_bounds,
        row_upper_bounds=model.row_upper_bounds,
        weights=weights,
        column_types=ctypes if ctypes is not None else np.zeros(width, dtype=np.int32),
        hessian=hessian,
    )


def to_csr(matrix: SparseMatrix, shape: Tuple[int, int]) -> sp.csr_matrix:
    """Convert a row-wise SparseMatrix into a scipy CSR matrix."""
    indptr = np.append(pad_offsets(matrix, shape[0]), matrix.nnz)
    return sp.csr_matrix((matrix.values, matrix.indices, indptr), shape=shape)


def from_csr(matrix: sp.spmatrix) -> SparseMatrix:
    """Convert a scipy matrix into a row-wise SparseMatrix with sorted indices."""
    csr = sp.csr_matrix(matrix)
    csr.sum_duplicates()
    csr.sort_indices()
    return SparseMatrix(offsets=csr.indptr[:-1], indices=csr.indices, values=csr.data)


class ModelBuilder:
    """
    Incremental construction of a SolverModel from named variables and
    constraints.
    """

    def __init__(self, name: str = "model", is_maximization: bool = False) -> None:
        self.name = name
        self.is_maximization = is_maximization
        self.offset = 0.0
        self.variables: Dict[str, int] = {}
        self.lower_bounds: List[float] = []
        self.upper_bounds: List[float] = []
        self.types: List[int] = []
        self.costs: Dict[int, float] = {}
        self.quadratic: Dict[Tuple[int, int], float] = {}
        self.constraints: List[Tuple[Dict[int, float], float, float]] = []

    def add_variable(
        self,
        name: str,
        lower_bound: float = 0.0,
        upper_bound: float = np.inf,
        var_type: VariableType = VariableType.CONTINUOUS,
    ) -> int:
        if name in self.variables:
            return self.variables[name]
        idx = len(self.variables)
        self.variables[name] = idx
        self.lower_bounds.append(lower_bound)
        self.upper_bounds.append(upper_bound)
        self.types.append(int(var_type))
        return idx

    def set_objective(
        self,
        linear: Dict[int, float],
        offset: float = 0.0,
        is_maximization: Optional[bool] = None,
    ) -> None:
        self.costs = dict(linear)
        self.offset = offset
        if is_maximization is not None:
            self.is_maximization = is_maximization

    def add_quadratic_term(self, i: int, j: int, value: float) -> None:
        """
        Add value·xᵢ·xⱼ to the objective. Terms are folded onto the upper
        triangle, so (i, j) and (j, i) accumulate into the same entry.
        """
        key = (min(i, j), max(i, j))
        self.quadratic[key] = self.quadratic.get(key, 0.0) + value

    def add_constraint(
        self,
        linear: Dict[int, float],
        lower_bound: float = -np.inf,
        upper_bound: float = np.inf,
    ) -> int:
        _check(lower_bound <= upper_bound, "Constraint lower bound exceeds upper bound")
        self.constraints.append((dict(linear), lower_bound, upper_bound))
        return len(self.constraints) - 1

    def to_model(self) -> SolverModel:
        n = len(self.variables)
        m = len(self.constraints)

        rows, cols, vals = [], [], []
        for r, (coefs, _, _) in enumerate(self.constraints):
            for j, v in coefs.items():
                rows.append(r)
                cols.append(j)
                vals.append(v)
        weights = from_csr(sp.coo_matrix((vals, (rows, cols)), shape=(m, n)))

        c = np.zeros(n)
        for j, v in self.costs.items():
            c[j] = v

        hessian = None
        if self.quadratic:
            q_rows = [i for i, _ in self.quadratic]
            q_cols = [j for _, j in self.quadratic]
            q_vals = list(self.quadratic.values())
            hessian = from_csr(sp.coo_matrix((q_vals, (q_rows, q_cols)), shape=(n, n)))

        model = SolverModel(
            column_lower_bounds=self.lower_bounds,
            column_upper_bounds=self.upper_bounds,
            row_lower_bounds=[lb for _, lb, _ in self.constraints],
            row_upper_bounds=[ub for _, _, ub in self.constraints],
            weights=weights,
            is_maximization=self.is_maximization,
            objective_offset=self.offset,
            column_types=self.types if any(self.types) else None,
            objective_linear_weights=c,
            objective_quadratic_weights=hessian,
        )
        logger.debug(f"Built {model!r} from '{self.name}'")
        return model

    def named_values(self, solution: SolverSolution) -> Dict[str, float]:
        """Map variable names to their primal values."""
        columns = solution.primal.columns
        return {name: float(columns[idx]) for name, idx in self.variables.items()}
