"""
End-to-end tests against the real HiGHS engine.
"""

import math

import numpy as np
import pytest
import scipy.sparse as sp

from conftest import resource_path
from highs_solver import solve, solver_version
from highs_solver.data_models import SolutionStyle, SolverModel, SolverStatus, SparseMatrix
from highs_solver.errors import InvalidWarmStart, NativeMethodFailed, SolveNonOptimal
from highs_solver.modeling import ModelBuilder, from_csr
from highs_solver.monitor import SolveMonitor
from highs_solver.solver import Solver


def trivial_model() -> SolverModel:
    """max x s.t. 0 <= x <= 1, 0 <= x <= 2"""
    return SolverModel(
        is_maximization=True,
        objective_linear_weights=[1],
        column_lower_bounds=[0],
        column_upper_bounds=[2],
        row_lower_bounds=[0],
        row_upper_bounds=[1],
        weights=SparseMatrix(offsets=[0], indices=[0], values=[1]),
    )


def multi_knapsack_model(seed=7, items=60, rows=5) -> SolverModel:
    """Random binary knapsack with several capacity rows, large enough to branch."""
    rng = np.random.default_rng(seed)
    values = rng.integers(10, 100, items)
    weights = rng.integers(5, 50, (rows, items))
    return SolverModel(
        is_maximization=True,
        objective_linear_weights=values,
        column_lower_bounds=np.zeros(items),
        column_upper_bounds=np.ones(items),
        column_types=np.ones(items, dtype=np.int32),
        row_lower_bounds=np.full(rows, -math.inf),
        row_upper_bounds=weights.sum(axis=1) // 2,
        weights=from_csr(sp.csr_matrix(weights.astype(float))),
    )


def bounded_max_model(upper_bound=math.inf) -> SolverModel:
    """max x s.t. x <= 1, 0 <= x <= upper_bound"""
    return SolverModel(
        is_maximization=True,
        objective_linear_weights=[1],
        column_lower_bounds=[0],
        column_upper_bounds=[upper_bound],
        row_lower_bounds=[-math.inf],
        row_upper_bounds=[1],
        weights=SparseMatrix(offsets=[0], indices=[0], values=[1]),
    )


@pytest.fixture
def highs():
    return Solver.create()


def test_version():
    assert '.' in solver_version()


class TestOptions:
    def test_round_trip(self, highs):
        highs.update_options({'time_limit': 123, 'random_seed': 48})
        assert highs.get_option('time_limit') == 123
        assert highs.get_option('random_seed') == 48

    def test_console_logging_disabled(self, highs):
        assert highs.get_option('log_to_console') is False

    def test_unknown_option(self, highs):
        with pytest.raises(NativeMethodFailed):
            highs.update_options({'not_an_option': 1})


class TestInlineModels:
    def test_trivial_max(self, highs):
        highs.set_model(trivial_model())
        highs.solve()
        assert highs.get_status() == SolverStatus.OPTIMAL
        sol = highs.get_solution()
        assert sol.objective_value == pytest.approx(1)
        assert sol.relative_gap is None
        np.testing.assert_allclose(sol.primal.columns, [1])
        np.testing.assert_allclose(sol.primal.rows, [1])
        np.testing.assert_allclose(sol.dual.rows, [1])

    def test_lp(self, highs):
        highs.set_model(SolverModel(
            is_maximization=True,
            objective_offset=10,
            objective_linear_weights=[1, 2, 4, 1],
            column_lower_bounds=[0, -math.inf, -math.inf, 2],
            column_upper_bounds=[40, math.inf, math.inf, 3],
            row_lower_bounds=[-math.inf, -math.inf, 0],
            row_upper_bounds=[20, 30, 0],
            weights=SparseMatrix(
                offsets=[0, 4, 7],
                indices=[0, 1, 2, 3, 0, 1, 2, 1, 3],
                values=[-1, 1, 1, 10, 1, -4, 1, 1, -0.5],
            ),
        ))
        highs.solve()
        sol = highs.get_solution()
        assert sol.objective_value == pytest.approx(97.5)
        np.testing.assert_allclose(sol.primal.columns, [17.5, 1, 16.5, 2], atol=1e-7)
        np.testing.assert_allclose(sol.primal.rows, [20, 30, 0], atol=1e-7)
        np.testing.assert_allclose(sol.dual.columns, [0, 0, 0, -8.75], atol=1e-7)
        np.testing.assert_allclose(sol.dual.rows, [1.5, 2.5, 10.5], atol=1e-7)

    def test_qp(self, highs):
        highs.set_model(SolverModel(
            column_lower_bounds=[0, 0],
            column_upper_bounds=[1, 1],
            row_lower_bounds=[1],
            row_upper_bounds=[1],
            weights=SparseMatrix(offsets=[0], indices=[0, 1], values=[1, 1]),
            objective_quadratic_weights=SparseMatrix(
                offsets=[0, 2],
                indices=[0, 1, 1],
                values=[0.5, -0.5, 0.5],
            ),
        ))
        highs.solve()
        sol = highs.get_solution()
        assert sol.objective_value == pytest.approx(0.125, abs=1e-6)
        np.testing.assert_allclose(sol.primal.columns, [0.5, 0.5], atol=1e-5)

    def test_builder_model(self, highs):
        builder = ModelBuilder('knapsack', is_maximization=True)
        items = {'a': (8, 5), 'b': (11, 7), 'c': (6, 4), 'd': (4, 3)}
        ixs = {name: builder.add_variable(name, upper_bound=1, var_type=1) for name in items}
        builder.set_objective({ixs[n]: value for n, (value, _) in items.items()})
        builder.add_constraint({ixs[n]: weight for n, (_, weight) in items.items()}, upper_bound=14)
        highs.set_model(builder.to_model())
        highs.solve()
        sol = highs.get_solution()
        assert sol.objective_value == pytest.approx(21)
        assert sol.relative_gap is not None
        assert builder.named_values(sol) == pytest.approx({'a': 0, 'b': 1, 'c': 1, 'd': 1})

    def test_update_objective_and_add_rows(self, highs):
        highs.set_model(bounded_max_model())
        highs.update_objective(linear_weights=[2], offset=1)
        highs.add_rows(SparseMatrix(offsets=[0], indices=[0], values=[2]), [-math.inf], [1])
        highs.solve()
        sol = highs.get_solution()
        assert sol.objective_value == pytest.approx(2)
        np.testing.assert_allclose(sol.primal.columns, [0.5])

    def test_minimize_after_sense_change(self, highs):
        highs.set_model(bounded_max_model())
        highs.update_objective(is_maximization=False)
        highs.solve()
        assert highs.get_solution().objective_value == pytest.approx(0)


class TestWarmStart:
    def test_valid(self, highs):
        highs.set_model(bounded_max_model(upper_bound=1))
        highs.warm_start([0.5])

    def test_violated_bound(self, highs):
        highs.set_model(bounded_max_model(upper_bound=1))
        with pytest.raises(InvalidWarmStart):
            highs.warm_start([5])

    def test_violated_row(self, highs):
        highs.set_model(bounded_max_model())
        with pytest.raises(InvalidWarmStart):
            highs.warm_start([2])

    def test_allow_invalid(self, highs):
        highs.set_model(bounded_max_model(upper_bound=1))
        highs.warm_start([5], allow_invalid=True)
        np.testing.assert_allclose(highs.get_solution().primal.columns, [5])
        highs.solve()
        np.testing.assert_allclose(highs.get_solution().primal.columns, [1])


class TestFiles:
    def test_missing_model(self, highs, tmp_path):
        with pytest.raises(NativeMethodFailed):
            highs.set_model_from_file(tmp_path / 'missing.lp')

    def test_quadratic_file(self, highs):
        highs.set_model_from_file(resource_path('quadratic.lp'))
        highs.solve()
        assert highs.get_solution().objective_value == pytest.approx(-0.1875, abs=1e-6)

    def test_unbounded(self, highs):
        highs.set_model_from_file(resource_path('unbounded.lp'))
        with pytest.raises(SolveNonOptimal) as exc_info:
            highs.solve()
        assert exc_info.value.status == SolverStatus.UNBOUNDED
        highs.solve(allow_non_optimal=True)

    def test_write_model_and_solution(self, highs, tmp_path):
        highs.set_model(bounded_max_model())
        model_path = tmp_path / 'model.lp'
        highs.write_model(model_path)
        highs.clear_model()
        highs.set_model_from_file(model_path)
        highs.solve()
        sol_path = tmp_path / 'model.sol'
        highs.write_solution(sol_path, SolutionStyle.PRETTY)
        assert sol_path.read_text()
        assert highs.get_run_time() >= 0

    def test_one_shot_solve(self):
        sol = solve(resource_path('knapsack.lp'))
        assert sol.objective_value == pytest.approx(21)
        text = solve(resource_path('knapsack.lp'), style=SolutionStyle.RAW)
        assert 'Optimal' in text

    def test_monitored_small_mip(self):
        done = []
        monitor = SolveMonitor().on('done', done.append)
        sol = solve(resource_path('knapsack.lp'), options={'presolve': 'off'}, monitor=monitor)
        assert sol.objective_value == pytest.approx(21)
        assert len(done) == 1


class TestMonitoredSolve:
    def test_branch_and_bound_progress(self):
        done = []
        progress = []
        monitor = SolveMonitor().on('done', done.append).on('progress', progress.append)
        highs = Solver.create(options={'presolve': 'off', 'time_limit': 60})
        highs.set_model(multi_knapsack_model())
        highs.solve(monitor=monitor, allow_non_optimal=True)

        assert progress
        iterations = [p.lp_iteration_count for p in progress]
        assert iterations == sorted(iterations)
        assert done == [True]
        assert highs.get_option('log_file') == ''
