"""
Pytest configuration and shared fixtures for the test suite.
"""

import numpy as np
import pytest
import pyomo.environ as pyo

from pyomo_utility import extract_vector
from consensus.solver import SolveStatus
from formulation import DCNetwork, DCDispatchProblem


def pytest_collection_modifyitems(config, items):
    """Skip the tests needing a QP solver when gurobi is not installed or licensed."""
    if pyo.SolverFactory("gurobi_direct").available(exception_flag=False):
        return
    skip = pytest.mark.skip(reason="gurobi_direct is not available")
    for item in items:
        if "requires_solver" in item.keywords:
            item.add_marker(skip)


class ConstantSolver:
    """Returns the same solution whatever the restricted problem, counts the calls."""

    def __init__(self, value):
        self.value = np.asarray(value, dtype=float)
        self.calls = []

    def solve(self, model, constraints, objective):
        self.calls.append(len(constraints))
        return SolveStatus(0, "optimal"), lambda: self.value


class ShiftSolver:
    """Moves away from the consensus point by ``step``, so the objective never settles."""

    def __init__(self, step: float = 1.0):
        self.step = step

    def solve(self, model, constraints, objective):
        z = extract_vector(model.x)
        return SolveStatus(0, "optimal"), lambda: z + self.step


class FailingSolver:
    def __init__(self, problem: int = 1, info: str = "infeasible"):
        self.status = SolveStatus(problem, info)

    def solve(self, model, constraints, objective):
        def no_values():
            raise AssertionError("values requested from a failed solve")

        return self.status, no_values


@pytest.fixture
def constant_solver():
    return ConstantSolver


@pytest.fixture
def shift_solver():
    return ShiftSolver


@pytest.fixture
def failing_solver():
    return FailingSolver


@pytest.fixture(scope="session")
def interval_deltas() -> np.ndarray:
    """20 scalar scenarios, the intersection of ``[d - 1, d + 1]`` is ``[-0.5, 0.5]``."""
    return np.linspace(-0.5, 0.5, 20).reshape(-1, 1)


@pytest.fixture(scope="session")
def interval_problem():
    """``min x^2`` with two constraint families ``x >= d - 1`` and ``x <= d + 1``."""

    def objective_fcn(x):
        return x[0] ** 2

    def constraints_fcn(x, delta):
        return [x[0] >= float(delta[0]) - 1, x[0] <= float(delta[0]) + 1]

    def residuals(x, delta):
        return np.array([x[0] - delta[0] + 1, delta[0] + 1 - x[0]])

    return objective_fcn, constraints_fcn, residuals


@pytest.fixture(scope="session")
def ring_connectivity() -> np.ndarray:
    """Directed ring 0 -> 1 -> 2 -> 3 -> 0, diameter 3."""
    return np.array(
        [
            [0, 1, 0, 0],
            [0, 0, 1, 0],
            [0, 0, 0, 1],
            [1, 0, 0, 0],
        ]
    )


@pytest.fixture(scope="session")
def test_dc_network() -> DCNetwork:
    """Three buses, two generators, one wind farm at bus 2 and two lines."""
    return DCNetwork(
        c_qu=[0.1, 0.2],
        c_li=[1.0, 1.5],
        c_us=[0.5, 0.6],
        c_ds=[0.3, 0.3],
        P_Gmin=[0.0, 0.0],
        P_Gmax=[2.0, 2.0],
        P_D=[0.0, 0.5, 1.0],
        C_G=[[1.0, 0.0], [0.0, 1.0], [0.0, 0.0]],
        C_w=[[0.0], [0.0], [1.0]],
        P_wf=[0.5],
        ptdf=[[0.5, -0.2, 0.0], [0.3, 0.4, 0.0]],
        P_fmax=[2.0, 2.0],
    )


@pytest.fixture(scope="session")
def test_dc_problem(test_dc_network) -> DCDispatchProblem:
    return DCDispatchProblem(test_dc_network)


@pytest.fixture(scope="session")
def wind_deltas() -> np.ndarray:
    """Forecast errors of the wind farm, one scenario per row."""
    return np.random.default_rng(42).uniform(-0.3, 0.3, size=(20, 1))
