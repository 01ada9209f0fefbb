from abc import ABC, abstractmethod
import numpy as np
import pyomo.environ as pyo

from data_model import ConsensusProblem
from pyomo_utility import assign_vector
from consensus.constraints import (
    ConstraintBuilder,
    ScenarioConstraint,
    constraint_kind,
    decision_model,
)

FEASIBILITY_TOLERANCE = 1e-6


class FeasibilityEvaluator(ABC):
    """
    Signed residual of a delta at a candidate decision vector.

    ``residual >= 0`` means the constraint of the delta is satisfied, ``residual < 0`` that
    it is violated and ``|residual| <= 1e-6`` that it is active. Residuals are memoised per
    ``(x, delta)`` until :meth:`reset` is called, once per round.
    """

    def __init__(self, problem: ConsensusProblem) -> None:
        self.problem = problem
        self._memo: dict[tuple[bytes, bytes], float] = {}

    @abstractmethod
    def _residual(self, x: np.ndarray, row: np.ndarray) -> float:
        pass

    def evaluate(self, x: np.ndarray, row: np.ndarray) -> float:
        x = np.asarray(x, dtype=float)
        row = np.asarray(row, dtype=float)
        key = (x.tobytes(), row.tobytes())
        if key not in self._memo:
            self._memo[key] = float(self._residual(x, row))
        return self._memo[key]

    def residuals(self, x: np.ndarray, rows: np.ndarray) -> np.ndarray:
        return np.array([self.evaluate(x, row) for row in rows], dtype=float)

    def all_satisfied(self, x: np.ndarray, rows: np.ndarray) -> bool:
        """Stops at the first violated delta."""
        return all(self.evaluate(x, row) >= -FEASIBILITY_TOLERANCE for row in rows)

    def violated(self, x: np.ndarray, rows: np.ndarray) -> np.ndarray:
        if len(rows) == 0:
            return rows
        return rows[self.residuals(x, rows) < -FEASIBILITY_TOLERANCE]

    def active(self, x: np.ndarray, rows: np.ndarray) -> np.ndarray:
        if len(rows) == 0:
            return rows
        return rows[np.abs(self.residuals(x, rows)) <= FEASIBILITY_TOLERANCE]

    def reset(self) -> None:
        self._memo.clear()


class SymbolicEvaluator(FeasibilityEvaluator):
    """
    Build-and-check: the constraint of each delta is built once on a private check model,
    the candidate value is assigned to its variable and the constraint slack is read.
    """

    def __init__(self, problem: ConsensusProblem) -> None:
        super().__init__(problem)
        self.builder = ConstraintBuilder(problem)
        self.model = decision_model(problem.x_dim)
        self.model.checks = pyo.ConstraintList()
        self.constraints: dict[bytes, ScenarioConstraint] = {}

    def scenario_constraint(self, row: np.ndarray) -> ScenarioConstraint:
        key = row.tobytes()
        if key not in self.constraints:
            data = self.model.checks.add(self.builder.build(self.model.x, row))
            data.deactivate()
            self.constraints[key] = ScenarioConstraint(
                constraint_id=int(row[0]), kind=constraint_kind(data), data=data
            )
        return self.constraints[key]

    def evaluate(self, x: np.ndarray, row: np.ndarray) -> float:
        row = np.asarray(row, dtype=float)
        self.scenario_constraint(row)
        return super().evaluate(x, row)

    def _residual(self, x: np.ndarray, row: np.ndarray) -> float:
        assign_vector(self.model.x, x)
        return self.constraints[row.tobytes()].residual()


class SelectorResidualEvaluator(FeasibilityEvaluator):
    """Residual function with selector ``h(x, delta, constraint_id) -> float``."""

    def _residual(self, x: np.ndarray, row: np.ndarray) -> float:
        return float(np.squeeze(self.problem.residuals(x, row[1:], int(row[0]))))


class VectorResidualEvaluator(FeasibilityEvaluator):
    """Residual function without selector ``h(x, delta) -> vector``, indexed by id."""

    def _residual(self, x: np.ndarray, row: np.ndarray) -> float:
        residuals = np.asarray(self.problem.residuals(x, row[1:]), dtype=float)
        return float(residuals.reshape(-1)[int(row[0])])


def make_evaluator(problem: ConsensusProblem) -> FeasibilityEvaluator:
    """Pick the evaluation strategy once for the whole run."""
    if problem.residuals is None:
        return SymbolicEvaluator(problem)
    if problem.use_selector:
        return SelectorResidualEvaluator(problem)
    return VectorResidualEvaluator(problem)
