import logging
from typing import Callable, NamedTuple, Protocol
import numpy as np
import pyomo.environ as pyo

from helpers import generate_log
from pyomo_utility import extract_vector
from consensus.configs import OptSettings

log = generate_log(name=__name__)

PROBLEM_CODES = {
    pyo.TerminationCondition.optimal: 0,
    pyo.TerminationCondition.locallyOptimal: 0,
    pyo.TerminationCondition.globallyOptimal: 0,
    pyo.TerminationCondition.infeasible: 1,
    pyo.TerminationCondition.infeasibleOrUnbounded: 1,
    pyo.TerminationCondition.unbounded: 2,
    pyo.TerminationCondition.maxTimeLimit: 3,
    pyo.TerminationCondition.maxIterations: 3,
    pyo.TerminationCondition.maxEvaluations: 3,
    pyo.TerminationCondition.solverFailure: 4,
    pyo.TerminationCondition.internalSolverError: 4,
    pyo.TerminationCondition.error: 4,
}
TIME_LIMIT_CODE = 3
UNKNOWN_CODE = 9


class SolveStatus(NamedTuple):
    """``problem`` is 0 on success, ``info`` a human readable diagnostic."""

    problem: int
    info: str


class Solver(Protocol):
    def solve(
        self, model: pyo.ConcreteModel, constraints: list, objective
    ) -> tuple[SolveStatus, Callable[[], np.ndarray]]: ...


class PyomoSolver:
    """
    Solve call used by the agents: attaches the constraints and the objective to the model
    holding ``x`` and solves it with a pyomo solver.
    """

    def __init__(self, opt_settings: OptSettings) -> None:
        self.opt_settings = opt_settings
        self.solver = pyo.SolverFactory(opt_settings.solver_name)
        for key, value in opt_settings.options.items():
            self.solver.options[key] = value
        if opt_settings.time_limit is not None and opt_settings.solver_name.startswith(
            "gurobi"
        ):
            self.solver.options["TimeLimit"] = opt_settings.time_limit
        if not opt_settings.tee and opt_settings.solver_name.startswith("gurobi"):
            self.solver.options["OutputFlag"] = 0
            logging.getLogger("gurobipy").setLevel(logging.WARNING)

    def available(self) -> bool:
        return bool(self.solver.available(exception_flag=False))

    def solve(
        self, model: pyo.ConcreteModel, constraints: list, objective
    ) -> tuple[SolveStatus, Callable[[], np.ndarray]]:
        model.restricted = pyo.ConstraintList()
        for constraint in constraints:
            model.restricted.add(constraint)
        model.objective = pyo.Objective(expr=objective, sense=pyo.minimize)

        try:
            results = self.solver.solve(
                model, tee=self.opt_settings.tee, load_solutions=False
            )
        except Exception as e:
            log.error(f"Error solving model: {e}")
            return SolveStatus(UNKNOWN_CODE, f"Solver error: {e}"), _no_values

        termination_condition = results.solver.termination_condition
        problem = PROBLEM_CODES.get(termination_condition, UNKNOWN_CODE)
        if problem != 0:
            return SolveStatus(problem, str(termination_condition)), _no_values

        model.solutions.load_from(results)
        return SolveStatus(0, str(termination_condition)), lambda: extract_vector(model.x)


def _no_values() -> np.ndarray:
    raise RuntimeError("No solution available")
