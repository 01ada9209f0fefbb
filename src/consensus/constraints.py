from dataclasses import dataclass
from typing import Any
from enum import Enum
import numpy as np
import pyomo.environ as pyo
from pyomo.core.expr.visitor import polynomial_degree

from data_model import ConsensusProblem
from consensus.errors import ConfigurationError


class ConstraintKind(Enum):
    """Kind of a scenario constraint, from the polynomial degree of its body"""

    LINEAR = "linear"
    QUADRATIC = "quadratic"
    NONLINEAR = "nonlinear"


def constraint_kind(constraint) -> ConstraintKind:
    degree = polynomial_degree(constraint.body)
    if degree is None:
        return ConstraintKind.NONLINEAR
    if degree <= 1:
        return ConstraintKind.LINEAR
    if degree == 2:
        return ConstraintKind.QUADRATIC
    return ConstraintKind.NONLINEAR


@dataclass(frozen=True)
class ScenarioConstraint:
    """A constraint instantiated for one delta, bound to the variable of its model."""

    constraint_id: int
    kind: ConstraintKind
    data: Any

    def residual(self) -> float:
        """Signed slack at the current variable values, >= 0 when satisfied."""
        return float(self.data.slack())


def decision_model(x_dim: int, x0: np.ndarray | None = None) -> pyo.ConcreteModel:
    """Empty pyomo model holding the decision vector ``x``."""
    model = pyo.ConcreteModel()
    model.I = pyo.RangeSet(0, x_dim - 1)
    if x0 is None:
        model.x = pyo.Var(model.I, domain=pyo.Reals)
    else:
        model.x = pyo.Var(
            model.I, domain=pyo.Reals, initialize=lambda m, i: float(x0[i])
        )
    return model


class ConstraintBuilder:
    """Builds the pyomo constraint expressions of deltas for a given decision variable."""

    def __init__(self, problem: ConsensusProblem) -> None:
        self.problem = problem

    def build(self, x: pyo.Var, row: np.ndarray):
        """Relational expression of the constraint family ``row[0]`` for ``row[1:]``."""
        constraint_id = int(row[0])
        delta = row[1:]
        if self.problem.use_selector:
            return self.problem.constraints_fcn(x, delta, constraint_id)
        return self.problem.constraints_fcn(x, delta)[constraint_id]

    def default(self, x: pyo.Var) -> list:
        """Deterministic constraints, always part of the restricted problems."""
        if self.problem.default_constraint is None:
            return []
        constraints = self.problem.default_constraint(x)
        if isinstance(constraints, (list, tuple)):
            return list(constraints)
        return [constraints]


def infer_n_constraints(constraints_fcn, x_dim: int, delta: np.ndarray) -> int:
    """Number of constraint families returned by a builder without selector."""
    model = decision_model(x_dim)
    try:
        return len(constraints_fcn(model.x, delta))
    except TypeError as e:
        raise ConfigurationError(
            "The constraint function should return a sequence of constraints, "
            "use use_selector=True for single constraints"
        ) from e
