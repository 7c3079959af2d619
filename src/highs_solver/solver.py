"""
Solver controller.

Owns one engine handle and enforces that nothing mutates it while a solve is
running. Engine failures are funneled through a single wrapping point and
terminal statuses are mapped onto the error taxonomy in errors.py.
"""

import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Union

import numpy as np

from .data_models import (
    COMPLETED_STATUSES,
    SolutionStyle,
    SolutionValues,
    SolverModel,
    SolverSolution,
    SolverStatus,
    SparseMatrix,
    as_solver_status,
)
from .engine import EngineHandle, HighsEngine
from .errors import (
    InconsistentModel,
    InvalidWarmStart,
    NativeMethodFailed,
    SolveFailed,
    SolveInProgress,
    SolveNonOptimal,
)
from .modeling import assert_balanced, flatten_model
from .monitor import SolveMonitor, SolveTracker

SolverOptions = Dict[str, Any]
PathLike = Union[str, os.PathLike]


class Solver:
    """
    Higher level wrapper around an engine handle.

    The solver is Idle or Solving. Mutating methods raise SolveInProgress
    while Solving; read methods are always available.
    """

    def __init__(self, engine: EngineHandle, logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._solving = False
        self._state_lock = threading.Lock()

    @classmethod
    def create(
        cls,
        options: Optional[SolverOptions] = None,
        logger: Optional[logging.Logger] = None,
        engine: Optional[EngineHandle] = None,
    ) -> 'Solver':
        """
        Creates a new solver. Console logging (the `log_to_console` option) is
        disabled unless the options enable it.
        """
        solver = cls(engine if engine is not None else HighsEngine(), logger)
        solver.update_options({'log_to_console': False, **(options or {})})
        return solver

    # ---------- helpers ----------

    def _delegated(self, method: str, *args):
        try:
            return getattr(self.engine, method)(*args)
        except Exception as cause:
            raise NativeMethodFailed(method, cause) from cause

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        with self._state_lock:
            if self._solving:
                raise SolveInProgress()
            yield

    @contextmanager
    def _span(self, name: str) -> Iterator[Dict[str, Any]]:
        attrs: Dict[str, Any] = {}
        start_time = time.time()
        try:
            yield attrs
        finally:
            elapsed = time.time() - start_time
            extra = ''.join(f", {k}={v}" for k, v in attrs.items())
            self.logger.debug(f"{name} took {elapsed:.3f}s{extra}")

    # ---------- options ----------

    def update_options(self, opts: SolverOptions) -> None:
        """Merges options with existing ones. None values are skipped."""
        with self._mutation():
            for name, value in opts.items():
                if value is not None:
                    self._delegated('set_option', name, value)

    def get_option(self, name: str) -> Any:
        """Retrieves an option's current value. Unknown names raise."""
        return self._delegated('get_option', name)

    # ---------- model ----------

    def set_model(self, model: SolverModel) -> None:
        """Sets the model to be solved."""
        with self._mutation():
            self.logger.debug(f"Setting inline model {model!r}.")
            flat = flatten_model(model)
            self._delegated('pass_model', flat)

    def set_model_from_file(self, path: PathLike) -> None:
        """
        Sets the model from a file on disk. Any format accepted by HiGHS is
        permissible (e.g. `.lp`, `.mps`).
        """
        with self._mutation():
            self.logger.debug(f"Setting model from {path}...")
            with self._span('HiGHS read model file'):
                self._delegated('read_model', os.fspath(path))

    def write_model(self, path: PathLike) -> None:
        """Writes the current model, the extension picks the format."""
        with self._mutation():
            self.logger.debug(f"Writing model to {path}...")
            with self._span('HiGHS write model'):
                self._delegated('write_model', os.fspath(path))

    def add_rows(self, weights: SparseMatrix, lower_bounds, upper_bounds) -> None:
        """Adds constraint rows to the loaded model."""
        lbs = np.asarray(lower_bounds, dtype=float)
        ubs = np.asarray(upper_bounds, dtype=float)
        with self._mutation():
            self.logger.debug('Adding rows.')
            height = len(weights.offsets)
            if len(lbs) != height or len(ubs) != height:
                raise InconsistentModel('Inconsistent height')
            assert_balanced(weights)
            self._delegated('add_rows', lbs, ubs, weights.offsets, weights.indices, weights.values)

    def update_objective(
        self,
        is_maximization: Optional[bool] = None,
        offset: Optional[float] = None,
        linear_weights=None,
    ) -> None:
        """
        Updates the model's objective. Fields left as None are unchanged.
        Linear weights, if present, must have one entry per variable.
        """
        with self._mutation():
            self.logger.debug('Updating objective.')
            if is_maximization is not None:
                self._delegated('change_objective_sense', is_maximization)
            if offset is not None:
                self._delegated('change_objective_offset', offset)
            if linear_weights is not None:
                self._delegated('change_columns_cost', np.asarray(linear_weights, dtype=float))

    def warm_start(self, primal_columns, dual_rows=None, allow_invalid: bool = False) -> None:
        """
        Warm-starts the solver with a solution. Unless `allow_invalid` is set,
        the solution is assessed and InvalidWarmStart raised if it is not
        valid, feasible and integral. Rejected values stay in place.
        """
        with self._mutation():
            self.logger.debug('Adding warm-start solution.')
            duals = np.asarray(dual_rows, dtype=float) if dual_rows is not None else None
            self._delegated('set_solution', np.asarray(primal_columns, dtype=float), duals)
            if not allow_invalid:
                assessment = self._delegated('assess_primal_solution')
                if not (assessment.is_valid and assessment.is_feasible and assessment.is_integral):
                    raise InvalidWarmStart()

    def clear(self) -> None:
        """Resets model, solver state and options."""
        with self._mutation():
            self._delegated('clear')

    def clear_model(self) -> None:
        with self._mutation():
            self._delegated('clear_model')

    def clear_solver(self) -> None:
        with self._mutation():
            self._delegated('clear_solver')

    # ---------- solve ----------

    def solve(
        self,
        monitor: Optional[SolveMonitor] = None,
        allow_non_optimal: bool = False,
        keep_clocks: bool = False,
    ) -> None:
        """
        Runs the engine on the current model and options. No mutating method
        may be called until this returns.

        Args:
            monitor: Receives progress events while the engine runs
            allow_non_optimal: Do not raise if the run ends with a well-defined
                non-optimal status (infeasible, unbounded, limit reached)
            keep_clocks: Do not reset the engine's clocks before running

        Raises:
            SolveFailed: if the engine ended in an error status
            SolveNonOptimal: if the status is not optimal and
                allow_non_optimal is false
        """
        with self._state_lock:
            if self._solving:
                raise SolveInProgress()
            self._solving = True

        self.logger.debug('Starting solve...')
        err: Optional[BaseException] = None
        temp_log: Optional[str] = None
        tracker: Optional[SolveTracker] = None
        try:
            if not keep_clocks:
                self._delegated('zero_all_clocks')

            log_path = self._delegated('get_option', 'log_file')
            if not isinstance(log_path, str):
                raise TypeError(f"Unexpected log_file value: {log_path!r}")
            if monitor is not None:
                if not log_path:
                    # Progress is only available through the log file.
                    fd, temp_log = tempfile.mkstemp(prefix='highs-', suffix='.log')
                    os.close(fd)
                    log_path = temp_log
                    self._delegated('set_option', 'log_file', log_path)
                with open(log_path, 'a'):
                    pass
                tracker = SolveTracker.create(monitor=monitor, log_path=log_path)

            with self._span('HiGHS solve') as span:
                try:
                    self._delegated('run')
                except NativeMethodFailed as e:
                    err = e
                span['run_time'] = f"{self.get_run_time():.3f}s"
        finally:
            # Idle only once the tracker and any temporary log are released.
            try:
                self._release_log(tracker, temp_log)
            finally:
                self._solving = False

        status = self.get_status()
        if status not in COMPLETED_STATUSES:
            raise SolveFailed(status, err)

        self.logger.info(f"Solve ended with status {status.name}.")
        if status != SolverStatus.OPTIMAL and not allow_non_optimal:
            raise SolveNonOptimal(status, err)
        if err is not None:
            self.logger.warning(f"Solve reported an error despite status {status.name}: {err}")

    def _release_log(self, tracker: Optional[SolveTracker], temp_log: Optional[str]) -> None:
        try:
            if tracker is not None:
                tracker.shutdown()
            if temp_log is not None:
                self._delegated('set_option', 'log_file', '')
        finally:
            if temp_log is not None and os.path.exists(temp_log):
                os.remove(temp_log)

    def is_solving(self) -> bool:
        """Returns True if the solver is currently solving the model."""
        return self._solving

    # ---------- results ----------

    def get_run_time(self) -> float:
        """Returns the wall-clock time spent in solves since the last reset."""
        return self._delegated('get_run_time')

    def zero_all_clocks(self) -> None:
        self._delegated('zero_all_clocks')

    def get_status(self) -> SolverStatus:
        """Returns the status set by the last solve."""
        return as_solver_status(self._delegated('get_model_status'))

    def get_info(self) -> Dict[str, Any]:
        return self._delegated('get_info')

    def get_solution(self) -> Optional[SolverSolution]:
        """
        Returns the current solution, or None if the engine has no valid
        primal values (e.g. the model was proven infeasible).
        """
        sol = self._delegated('get_solution')
        if not sol.is_value_valid:
            return None
        info = self._delegated('get_info')
        # Pure LP runs report a negative node count.
        is_mip = info.get('mip_node_count', -1) >= 0
        return SolverSolution(
            objective_value=info['objective_function_value'],
            relative_gap=info['mip_gap'] if is_mip else None,
            primal=SolutionValues(rows=sol.row_values, columns=sol.column_values),
            dual=SolutionValues(rows=sol.row_dual_values, columns=sol.column_dual_values)
            if sol.is_dual_valid else None,
        )

    def write_solution(self, path: PathLike, style: Optional[SolutionStyle] = None) -> None:
        """Writes the current solution to the given path."""
        with self._mutation():
            self.logger.debug(f"Writing solution to {path}...")
            with self._span('HiGHS write solution'):
                self._delegated(
                    'write_solution',
                    os.fspath(path),
                    int(style if style is not None else SolutionStyle.RAW),
                )

    def __repr__(self) -> str:
        return f"<Solver HiGHS {self.engine.version()}>"


def solve(
    model: Union[SolverModel, PathLike],
    options: Optional[SolverOptions] = None,
    monitor: Optional[SolveMonitor] = None,
    style: Optional[SolutionStyle] = None,
    allow_non_optimal: bool = False,
) -> Union[SolverSolution, str, None]:
    """
    One-shot helper: load a model (inline or from a file), solve it and return
    the solution. With a `style`, the solution is written in that format and
    its text returned instead.
    """
    solver = Solver.create(options=options)
    if isinstance(model, SolverModel):
        solver.set_model(model)
    else:
        solver.set_model_from_file(model)
    solver.solve(monitor=monitor, allow_non_optimal=allow_non_optimal)

    if style is None:
        return solver.get_solution()
    return solution_text(solver, style)


def solution_text(solver: Solver, style: SolutionStyle) -> str:
    """Render the solver's current solution in the given HiGHS format."""
    fd, sol_path = tempfile.mkstemp(prefix='highs-', suffix='.sol')
    os.close(fd)
    try:
        solver.write_solution(sol_path, style)
        with open(sol_path, 'r') as f:
            return f.read()
    finally:
        os.remove(sol_path)
