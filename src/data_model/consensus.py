from dataclasses import dataclass, field
from typing import Callable, Optional
import numpy as np
import polars as pl
import patito as pt


@dataclass(frozen=True)
class ConsensusProblem:
    """
    Scenario program ``min f(x) s.t. g_j(x, delta_i) >= 0`` solved by the agents.

    ``objective_fcn`` and ``constraints_fcn`` receive the pyomo variable of the local model;
    ``objective_fcn`` is also evaluated on plain numpy vectors.
    """

    x_dim: int
    objective_fcn: Callable
    constraints_fcn: Callable
    n_constraints: int = 1
    default_constraint: Optional[Callable] = None
    residuals: Optional[Callable] = None
    use_selector: bool = False

    def objective_value(self, x: np.ndarray) -> float:
        return float(np.squeeze(self.objective_fcn(np.asarray(x, dtype=float))))


@dataclass(frozen=True, eq=False)
class Iteration:
    """Immutable state of one agent after one round."""

    x: np.ndarray
    J: float
    active_deltas: np.ndarray
    time: float = 0.0
    info: Optional[dict] = field(default=None, compare=False)


class IterationRecord(pt.Model):
    agent: int = pt.Field(dtype=pl.Int32)
    k: int = pt.Field(dtype=pl.Int32)
    J: float = pt.Field(dtype=pl.Float64)
    time: float = pt.Field(dtype=pl.Float64)
    n_active: int = pt.Field(dtype=pl.Int32)
    optimized: Optional[bool] = pt.Field(dtype=pl.Boolean, default=None)
    num_cons: Optional[int] = pt.Field(dtype=pl.Int32, default=None)
