import math
import os
import threading
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from highs_solver.data_models import EngineSolution, PrimalAssessment, SolverStatus
from highs_solver.engine import EngineError, EngineHandle

RESOURCES = os.path.join(os.path.dirname(__file__), 'resources')


def resource_path(name: str) -> str:
    return os.path.join(RESOURCES, name)


class FakeEngine(EngineHandle):
    """
    In-memory engine. A run ends with `status`, optionally raising
    `run_error`, writing `log_lines` to the configured log file and blocking
    on `gate` when one is set.
    """

    def __init__(self):
        self.options: Dict[str, Any] = {
            'log_file': '',
            'log_to_console': True,
            'time_limit': math.inf,
            'random_seed': 0,
        }
        self.calls: List[tuple] = []
        self.status = SolverStatus.OPTIMAL
        self.run_error: Optional[Exception] = None
        self.log_lines: List[str] = []
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()
        self.seen_log_file: Optional[str] = None
        self.solution = EngineSolution(is_value_valid=False, is_dual_valid=False)
        self.info: Dict[str, Any] = {
            'objective_function_value': 0.0,
            'mip_node_count': -1,
            'mip_gap': math.inf,
        }
        self.assessment = PrimalAssessment(is_valid=True, is_integral=True, is_feasible=True)
        self.run_time = 0.0
        self.model = None

    def _record(self, *call):
        self.calls.append(call)

    def set_option(self, name, value):
        self._record('set_option', name, value)
        if name not in self.options:
            raise EngineError('setOptionValue', f"Unknown option {name}")
        self.options[name] = value

    def get_option(self, name):
        if name not in self.options:
            raise EngineError('getOptionValue', f"Unknown option {name}")
        return self.options[name]

    def pass_model(self, model):
        self._record('pass_model', model)
        self.model = model

    def read_model(self, path):
        self._record('read_model', path)
        if not os.path.exists(path):
            raise EngineError('readModel', f"Cannot read {path}")

    def write_model(self, path):
        self._record('write_model', path)

    def run(self):
        self._record('run')
        self.seen_log_file = self.options['log_file']
        self.started.set()
        if self.seen_log_file and self.log_lines:
            with open(self.seen_log_file, 'a') as f:
                for line in self.log_lines:
                    f.write(line + '\n')
        if self.gate is not None:
            self.gate.wait(timeout=10)
        self.run_time += 1.5
        if self.run_error is not None:
            raise self.run_error

    def get_model_status(self):
        return int(self.status)

    def get_info(self):
        return dict(self.info)

    def get_solution(self):
        return self.solution

    def set_solution(self, column_values, row_dual_values=None):
        self._record('set_solution', list(column_values), row_dual_values)

    def assess_primal_solution(self):
        return self.assessment

    def write_solution(self, path, style):
        self._record('write_solution', path, style)
        with open(path, 'w') as f:
            f.write(f"style {style}\n")

    def add_rows(self, lower_bounds, upper_bounds, offsets, indices, values):
        self._record('add_rows', list(lower_bounds), list(upper_bounds),
                     list(offsets), list(indices), list(values))

    def change_objective_sense(self, is_maximization):
        self._record('change_objective_sense', is_maximization)

    def change_objective_offset(self, offset):
        self._record('change_objective_offset', offset)

    def change_columns_cost(self, costs):
        self._record('change_columns_cost', list(costs))

    def zero_all_clocks(self):
        self._record('zero_all_clocks')
        self.run_time = 0.0

    def get_run_time(self):
        return self.run_time

    def clear(self):
        self._record('clear')

    def clear_model(self):
        self._record('clear_model')

    def clear_solver(self):
        self._record('clear_solver')

    def version(self):
        return '0.0.0-fake'

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def solver(fake_engine):
    from highs_solver.solver import Solver
    return Solver.create(engine=fake_engine)


@pytest.fixture
def optimal_solution():
    return EngineSolution(
        is_value_valid=True,
        is_dual_valid=True,
        column_values=np.array([1.0, 2.0]),
        column_dual_values=np.array([0.0, 0.5]),
        row_values=np.array([3.0]),
        row_dual_values=np.array([1.0]),
    )
