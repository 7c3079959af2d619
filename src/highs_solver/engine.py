"""
Engine handle: the narrow interface the solver controller drives, and its
HiGHS implementation.

The controller only talks to an EngineHandle, which keeps its state machine
and error wrapping testable without the native library.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

import highspy
import numpy as np
import scipy.sparse as sp

from .data_models import EngineSolution, FlatModel, PrimalAssessment, VariableType

logger = logging.getLogger(__name__)

OptionValue = Any  # bool, int, float or str

INFO_FIELDS = (
    "valid",
    "basis_validity",
    "simplex_iteration_count",
    "ipm_iteration_count",
    "crossover_iteration_count",
    "qp_iteration_count",
    "primal_solution_status",
    "dual_solution_status",
    "objective_function_value",
    "mip_node_count",
    "mip_dual_bound",
    "mip_gap",
    "max_integrality_violation",
    "num_primal_infeasibilities",
    "max_primal_infeasibility",
    "sum_primal_infeasibilities",
    "num_dual_infeasibilities",
    "max_dual_infeasibility",
    "sum_dual_infeasibilities",
)


class EngineError(RuntimeError):
    """Raised by an engine handle when the native library rejects a call."""

    def __init__(self, method: str, message: str):
        super().__init__(message)
        self.method = method


class EngineHandle(ABC):
    """
    Stateful, single-threaded handle on a solving engine.
    """

    @abstractmethod
    def set_option(self, name: str, value: OptionValue) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_option(self, name: str) -> OptionValue:
        raise NotImplementedError

    @abstractmethod
    def pass_model(self, model: FlatModel) -> None:
        raise NotImplementedError

    @abstractmethod
    def read_model(self, path: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def write_model(self, path: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def run(self) -> None:
        """Run the solve to completion, raising on engine failure."""
        raise NotImplementedError

    @abstractmethod
    def get_model_status(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_info(self) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def get_solution(self) -> EngineSolution:
        raise NotImplementedError

    @abstractmethod
    def set_solution(self, column_values: np.ndarray, row_dual_values: Optional[np.ndarray] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def assess_primal_solution(self) -> PrimalAssessment:
        raise NotImplementedError

    @abstractmethod
    def write_solution(self, path: str, style: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_rows(self, lower_bounds: np.ndarray, upper_bounds: np.ndarray,
                 offsets: np.ndarray, indices: np.ndarray, values: np.ndarray) -> None:
        raise NotImplementedError

    @abstractmethod
    def change_objective_sense(self, is_maximization: bool) -> None:
        raise NotImplementedError

    @abstractmethod
    def change_objective_offset(self, offset: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def change_columns_cost(self, costs: np.ndarray) -> None:
        raise NotImplementedError

    @abstractmethod
    def zero_all_clocks(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_run_time(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_model(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_solver(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def version(self) -> str:
        raise NotImplementedError


def solver_version() -> str:
    """Returns the underlying HiGHS version."""
    return highspy.Highs().version()


class HighsEngine(EngineHandle):
    """
    EngineHandle backed by a highspy.Highs instance.

    Every HiGHS call returning kError raises EngineError. HiGHS writes the
    details of a rejection to its log, not to the returned status.
    """

    def __init__(self, highs: Optional[highspy.Highs] = None):
        self.highs = highs if highs is not None else highspy.Highs()
        self._clock_origin = 0.0

    def _checked(self, method: str, status) -> None:
        if status == highspy.HighsStatus.kError:
            raise EngineError(method, f"HiGHS {method} returned {status}")
        if status == highspy.HighsStatus.kWarning:
            logger.debug(f"HiGHS {method} returned a warning")

    def set_option(self, name: str, value: OptionValue) -> None:
        if isinstance(value, int) and not isinstance(value, bool):
            status, option_type = self.highs.getOptionType(name)
            self._checked("getOptionType", status)
            if option_type == highspy.HighsOptionType.kDouble:
                value = float(value)
        self._checked("setOptionValue", self.highs.setOptionValue(name, value))

    def get_option(self, name: str) -> OptionValue:
        status, value = self.highs.getOptionValue(name)
        self._checked("getOptionValue", status)
        return value

    def pass_model(self, model: FlatModel) -> None:
        sense = highspy.ObjSense.kMaximize if model.is_maximization else highspy.ObjSense.kMinimize
        weights = model.weights
        args = [
            model.column_count,
            model.row_count,
            weights.nnz,
        ]
        lp_args = [
            int(sense),
            float(model.objective_offset),
            np.asarray(model.objective_linear_weights, dtype=np.float64),
            np.asarray(model.column_lower_bounds, dtype=np.float64),
            np.asarray(model.column_upper_bounds, dtype=np.float64),
            np.asarray(model.row_lower_bounds, dtype=np.float64),
            np.asarray(model.row_upper_bounds, dtype=np.float64),
            weights.offsets,
            weights.indices,
            weights.values,
        ]
        integrality = np.asarray(model.column_types, dtype=np.int32)
        a_format = int(highspy.MatrixFormat.kRowwise)

        hessian = model.hessian
        if hessian is None:
            status = self.highs.passModel(*args, a_format, *lp_args, integrality)
        else:
            # A row-wise upper triangle is the column-wise lower triangle HiGHS
            # expects for a symmetric matrix.
            q_format = int(highspy.HessianFormat.kTriangular)
            status = self.highs.passModel(
                *args, hessian.nnz, a_format, q_format, *lp_args,
                hessian.offsets, hessian.indices, hessian.values, integrality,
            )
        self._checked("passModel", status)

    def read_model(self, path: str) -> None:
        self._checked("readModel", self.highs.readModel(path))

    def write_model(self, path: str) -> None:
        self._checked("writeModel", self.highs.writeModel(path))

    def run(self) -> None:
        self._checked("run", self.highs.run())

    def get_model_status(self) -> int:
        return int(self.highs.getModelStatus())

    def get_info(self) -> Dict[str, Any]:
        info = self.highs.getInfo()
        return {name: getattr(info, name) for name in INFO_FIELDS if hasattr(info, name)}

    def get_solution(self) -> EngineSolution:
        sol = self.highs.getSolution()
        return EngineSolution(
            is_value_valid=bool(sol.value_valid),
            is_dual_valid=bool(sol.dual_valid),
            column_values=np.asarray(sol.col_value, dtype=float),
            column_dual_values=np.asarray(sol.col_dual, dtype=float),
            row_values=np.asarray(sol.row_value, dtype=float),
            row_dual_values=np.asarray(sol.row_dual, dtype=float),
        )

    def set_solution(self, column_values: np.ndarray, row_dual_values: Optional[np.ndarray] = None) -> None:
        sol = highspy.HighsSolution()
        sol.col_value = [float(v) for v in column_values]
        if row_dual_values is not None:
            sol.row_dual = [float(v) for v in row_dual_values]
        self._checked("setSolution", self.highs.setSolution(sol))

    def assess_primal_solution(self) -> PrimalAssessment:
        """
        Check the current primal values against bounds, rows and integrality
        using the engine's feasibility tolerances.
        """
        lp = self.highs.getLp()
        n, m = lp.num_col_, lp.num_row_
        x = np.asarray(self.highs.getSolution().col_value, dtype=float)
        if len(x) != n or not np.all(np.isfinite(x)):
            return PrimalAssessment(is_valid=False, is_integral=False, is_feasible=False)

        primal_tol = float(self.get_option("primal_feasibility_tolerance"))
        integer_tol = float(self.get_option("mip_feasibility_tolerance"))

        col_lower = np.asarray(lp.col_lower_, dtype=float)
        col_upper = np.asarray(lp.col_upper_, dtype=float)
        types = np.array([int(t) for t in lp.integrality_], dtype=np.int32)
        if len(types) != n:
            types = np.zeros(n, dtype=np.int32)

        semi = np.isin(types, [VariableType.SEMI_CONTINUOUS, VariableType.SEMI_INTEGER])
        in_bounds = (x >= col_lower - primal_tol) & (x <= col_upper + primal_tol)
        columns_ok = np.all(in_bounds | (semi & (np.abs(x) <= primal_tol)))

        integer = np.isin(types, [VariableType.INTEGER, VariableType.SEMI_INTEGER])
        is_integral = bool(np.all(np.abs(x[integer] - np.round(x[integer])) <= integer_tol))

        rows_ok = True
        if m > 0:
            a = lp.a_matrix_
            data = (np.asarray(a.value_, dtype=float), np.asarray(a.index_), np.asarray(a.start_))
            if a.format_ == highspy.MatrixFormat.kColwise:
                matrix = sp.csc_matrix(data, shape=(m, n))
            else:
                matrix = sp.csr_matrix(data, shape=(m, n))
            activity = matrix @ x
            row_lower = np.asarray(lp.row_lower_, dtype=float)
            row_upper = np.asarray(lp.row_upper_, dtype=float)
            rows_ok = bool(np.all((activity >= row_lower - primal_tol) & (activity <= row_upper + primal_tol)))

        return PrimalAssessment(
            is_valid=True,
            is_integral=is_integral,
            is_feasible=bool(columns_ok) and rows_ok,
        )

    def write_solution(self, path: str, style: int) -> None:
        self._checked("writeSolution", self.highs.writeSolution(path, int(style)))

    def add_rows(self, lower_bounds: np.ndarray, upper_bounds: np.ndarray,
                 offsets: np.ndarray, indices: np.ndarray, values: np.ndarray) -> None:
        status = self.highs.addRows(
            len(lower_bounds),
            np.asarray(lower_bounds, dtype=np.float64),
            np.asarray(upper_bounds, dtype=np.float64),
            len(values),
            np.asarray(offsets, dtype=np.int32),
            np.asarray(indices, dtype=np.int32),
            np.asarray(values, dtype=np.float64),
        )
        self._checked("addRows", status)

    def change_objective_sense(self, is_maximization: bool) -> None:
        sense = highspy.ObjSense.kMaximize if is_maximization else highspy.ObjSense.kMinimize
        self._checked("changeObjectiveSense", self.highs.changeObjectiveSense(sense))

    def change_objective_offset(self, offset: float) -> None:
        self._checked("changeObjectiveOffset", self.highs.changeObjectiveOffset(float(offset)))

    def change_columns_cost(self, costs: np.ndarray) -> None:
        costs = np.asarray(costs, dtype=np.float64)
        cols = np.arange(len(costs), dtype=np.int32)
        self._checked("changeColsCost", self.highs.changeColsCost(len(costs), cols, costs))

    def zero_all_clocks(self) -> None:
        # highspy does not expose zeroAllClocks, run time is measured from here.
        self._clock_origin = self.highs.getRunTime()

    def get_run_time(self) -> float:
        return self.highs.getRunTime() - self._clock_origin

    def clear(self) -> None:
        self._checked("clear", self.highs.clear())

    def clear_model(self) -> None:
        self._checked("clearModel", self.highs.clearModel())

    def clear_solver(self) -> None:
        self._checked("clearSolver", self.highs.clearSolver())

    def version(self) -> str:
        return self.highs.version()
