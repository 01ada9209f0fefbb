import logging
from types import SimpleNamespace
import pytest
import pyomo.environ as pyo

from consensus import OptSettings, PyomoSolver
from consensus.constraints import decision_model
from consensus.solver import PROBLEM_CODES, TIME_LIMIT_CODE


class TerminatingSolver:
    """Stands for a pyomo solver stopping with ``termination_condition``."""

    def __init__(self, termination_condition):
        self.termination_condition = termination_condition

    def solve(self, model, tee, load_solutions):
        return SimpleNamespace(
            solver=SimpleNamespace(termination_condition=self.termination_condition)
        )


class TestStatusCodes:
    @pytest.fixture(autouse=True)
    def setup_solver(self):
        self.solver = PyomoSolver(OptSettings(solver_name="no_such_solver"))

    def status(self, termination_condition):
        self.solver.solver = TerminatingSolver(termination_condition)
        model = decision_model(1)
        status, _ = self.solver.solve(model, [model.x[0] >= 0], model.x[0] ** 2)
        return status

    @pytest.mark.parametrize(
        "termination_condition",
        [
            pyo.TerminationCondition.solverFailure,
            pyo.TerminationCondition.internalSolverError,
            pyo.TerminationCondition.error,
        ],
    )
    def test_numerical_failures(self, termination_condition):
        assert PROBLEM_CODES[termination_condition] == 4
        assert self.status(termination_condition).problem == 4

    def test_infeasible(self):
        status = self.status(pyo.TerminationCondition.infeasible)
        assert status.problem == 1
        assert "infeasible" in status.info

    def test_time_limit(self):
        status = self.status(pyo.TerminationCondition.maxTimeLimit)
        assert status.problem == TIME_LIMIT_CODE

    def test_unknown_condition(self):
        assert self.status(pyo.TerminationCondition.userInterrupt).problem == 9


class TestSolverOutput:
    def test_gurobi_quiet_by_default(self):
        solver = PyomoSolver(OptSettings(solver_name="gurobi_direct"))
        assert solver.solver.options["OutputFlag"] == 0
        assert logging.getLogger("gurobipy").getEffectiveLevel() >= logging.WARNING

    def test_gurobi_output_with_tee(self):
        solver = PyomoSolver(OptSettings(solver_name="gurobi_direct", tee=True))
        assert "OutputFlag" not in solver.solver.options

    def test_time_limit_forwarded(self):
        solver = PyomoSolver(OptSettings(solver_name="gurobi_direct", time_limit=5))
        assert solver.solver.options["TimeLimit"] == 5
