from dataclasses import dataclass
from typing import List, Optional
import numpy as np
import polars as pl
from pydantic import BaseModel, Field, model_validator

from helpers import generate_log
from consensus import ACCA, ACCAConfig, ACCAResult, OptSettings, PyomoSolver
from consensus.constraints import decision_model

log = generate_log(name=__name__)

DEGENERATE_TOLERANCE = 1e-9


class DCNetwork(BaseModel):
    """DC network data of a single dispatch period"""

    c_qu: List[float] = Field(description="Quadratic generation cost per generator.")
    c_li: List[float] = Field(description="Linear generation cost per generator.")
    c_us: List[float] = Field(description="Up-spinning reserve cost per generator.")
    c_ds: List[float] = Field(description="Down-spinning reserve cost per generator.")
    P_Gmin: List[float] = Field(description="Minimum generation per generator.")
    P_Gmax: List[float] = Field(description="Maximum generation per generator.")
    P_D: List[float] = Field(description="Demand per bus.")
    C_G: List[List[float]] = Field(description="Bus x generator incidence matrix.")
    C_w: List[List[float]] = Field(description="Bus x wind farm incidence matrix.")
    P_wf: List[float] = Field(description="Wind power forecast per wind farm.")
    ptdf: Optional[List[List[float]]] = Field(
        default=None,
        description="Line x bus power transfer distribution factors, no line limits "
        "when unset.",
    )
    P_fmax: Optional[List[float]] = Field(
        default=None, description="Thermal limit per line."
    )

    @model_validator(mode="after")
    def _check_dimensions(self):
        n_g = len(self.c_qu)
        for name in ["c_li", "c_us", "c_ds", "P_Gmin", "P_Gmax"]:
            if len(getattr(self, name)) != n_g:
                raise ValueError(f"{name} should have one entry per generator ({n_g})")
        if np.shape(self.C_G) != (self.N_b, n_g):
            raise ValueError(f"C_G should be a {self.N_b} x {n_g} matrix")
        if np.shape(self.C_w) != (self.N_b, len(self.P_wf)):
            raise ValueError(f"C_w should be a {self.N_b} x {len(self.P_wf)} matrix")
        if (self.ptdf is None) != (self.P_fmax is None):
            raise ValueError("ptdf and P_fmax should be given together")
        if self.ptdf is not None and np.shape(self.ptdf) != (
            len(self.P_fmax),
            self.N_b,
        ):
            raise ValueError(f"ptdf should be a {len(self.P_fmax)} x {self.N_b} matrix")
        return self

    @property
    def N_G(self) -> int:
        return len(self.c_qu)

    @property
    def N_b(self) -> int:
        return len(self.P_D)

    @property
    def N_w(self) -> int:
        return len(self.P_wf)

    @property
    def N_l(self) -> int:
        return 0 if self.P_fmax is None else len(self.P_fmax)


@dataclass
class Dispatch:
    """Dispatch decisions split out of the stacked decision vector."""

    P_G: np.ndarray
    R_us: np.ndarray
    R_ds: np.ndarray
    d_us: np.ndarray
    d_ds: np.ndarray
    degenerate_us: bool
    degenerate_ds: bool


class DCDispatchProblem:
    """
    Economic dispatch with spinning reserves under wind forecast errors.

    The decision vector stacks ``[P_G, R_us, R_ds, d_us, d_ds]``, each of length ``N_G``.
    A scenario ``delta`` holds the forecast error of every wind farm; the total mismatch
    ``P_m`` is covered by the reserve ``R = d_us * max(0, -P_m) - d_ds * max(0, P_m)``.
    Constraint families of one scenario, in order: generator upper and lower limits,
    up and down reserve bounds (one per generator each), then line upper and lower limits
    (one per line each).
    """

    def __init__(self, network: DCNetwork) -> None:
        self.network = network
        n_g = network.N_G
        self.P_G_idx = range(0, n_g)
        self.R_us_idx = range(n_g, 2 * n_g)
        self.R_ds_idx = range(2 * n_g, 3 * n_g)
        self.d_us_idx = range(3 * n_g, 4 * n_g)
        self.d_ds_idx = range(4 * n_g, 5 * n_g)
        self.C_G = np.asarray(network.C_G, dtype=float)
        self.C_w = np.asarray(network.C_w, dtype=float)
        self.P_D = np.asarray(network.P_D, dtype=float)
        self.P_wf = np.asarray(network.P_wf, dtype=float)
        self.ptdf = None if network.ptdf is None else np.asarray(network.ptdf, dtype=float)

    @property
    def x_dim(self) -> int:
        return 5 * self.network.N_G

    @property
    def n_constraints(self) -> int:
        return 4 * self.network.N_G + 2 * self.network.N_l

    def objective(self, x):
        net = self.network
        return sum(
            float(net.c_qu[g]) * x[self.P_G_idx[g]] ** 2
            + float(net.c_li[g]) * x[self.P_G_idx[g]]
            + float(net.c_us[g]) * x[self.R_us_idx[g]]
            + float(net.c_ds[g]) * x[self.R_ds_idx[g]]
            for g in range(net.N_G)
        )

    def _injections(self, generation: list, wind: np.ndarray) -> list:
        return [
            sum(float(self.C_G[b, g]) * generation[g] for g in range(self.network.N_G))
            + float(self.C_w[b] @ wind)
            - float(self.P_D[b])
            for b in range(self.network.N_b)
        ]

    def _flows(self, injections: list) -> list:
        return [
            sum(float(self.ptdf[l, b]) * injections[b] for b in range(self.network.N_b))
            for l in range(self.network.N_l)
        ]

    def deterministic_constraints(self, x) -> list:
        """Forecast operating point: balance, generator and line limits, reserve rules."""
        net = self.network
        P_G = [x[i] for i in self.P_G_idx]
        injections = self._injections(P_G, self.P_wf)
        constraints = [sum(injections) == 0]
        for g in range(net.N_G):
            constraints += [
                x[self.P_G_idx[g]] >= float(net.P_Gmin[g]),
                x[self.P_G_idx[g]] <= float(net.P_Gmax[g]),
                x[self.R_us_idx[g]] >= 0,
                x[self.R_ds_idx[g]] >= 0,
            ]
        for l, flow in enumerate(self._flows(injections)):
            constraints += [
                flow <= float(net.P_fmax[l]),
                flow >= -float(net.P_fmax[l]),
            ]
        constraints += [
            sum(x[i] for i in self.d_us_idx) == 1,
            sum(x[i] for i in self.d_ds_idx) == 1,
        ]
        return constraints

    def reserve(self, x, delta) -> list:
        """Reserve activated by each generator for the wind mismatch of ``delta``."""
        P_m = float(np.sum(delta))
        up, down = max(0.0, -P_m), max(0.0, P_m)
        return [
            x[self.d_us_idx[g]] * up - x[self.d_ds_idx[g]] * down
            for g in range(self.network.N_G)
        ]

    def scenario_margins(self, x, delta) -> list:
        """Margins ``g_j(x, delta)``, non-negative when the scenario is feasible."""
        net = self.network
        delta = np.asarray(delta, dtype=float).reshape(-1)
        R = self.reserve(x, delta)
        generation = [x[self.P_G_idx[g]] + R[g] for g in range(net.N_G)]
        margins = (
            [float(net.P_Gmax[g]) - generation[g] for g in range(net.N_G)]
            + [generation[g] - float(net.P_Gmin[g]) for g in range(net.N_G)]
            + [x[self.R_us_idx[g]] - R[g] for g in range(net.N_G)]
            + [R[g] + x[self.R_ds_idx[g]] for g in range(net.N_G)]
        )
        if net.N_l:
            flows = self._flows(self._injections(generation, self.P_wf + delta))
            margins += [float(net.P_fmax[l]) - flows[l] for l in range(net.N_l)]
            margins += [flows[l] + float(net.P_fmax[l]) for l in range(net.N_l)]
        return margins

    def scenario_constraints(self, x, delta) -> list:
        return [margin >= 0 for margin in self.scenario_margins(x, delta)]

    def scenario_residuals(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray:
        return np.array(self.scenario_margins(np.asarray(x, dtype=float), delta))

    def acca_config(self, **options) -> ACCAConfig:
        options.setdefault("default_constraint", self.deterministic_constraints)
        options.setdefault("residuals", self.scenario_residuals)
        options.setdefault("n_constraints", self.n_constraints)
        return ACCAConfig.from_options(**options)

    def solve_scenarios(self, deltas, **options) -> ACCAResult:
        """Dispatch robust to all the wind scenarios ``deltas`` (one row per scenario)."""
        return ACCA(
            self.x_dim,
            deltas,
            self.objective,
            self.scenario_constraints,
            self.acca_config(**options),
        ).solve()

    def solve_centralised(
        self, deltas, opt_settings: OptSettings | None = None
    ) -> np.ndarray:
        """Reference solution with every scenario constraint in a single model."""
        model = decision_model(self.x_dim)
        constraints = self.deterministic_constraints(model.x)
        for delta in np.atleast_2d(np.asarray(deltas, dtype=float)):
            constraints += self.scenario_constraints(model.x, delta)

        solver = PyomoSolver(opt_settings or OptSettings())
        status, value = solver.solve(model, constraints, self.objective(model.x))
        if status.problem:
            raise RuntimeError(f"Centralised dispatch failed: {status.info}")
        return value()

    def extract_dispatch(self, x) -> Dispatch:
        """
        Split the decision vector and normalise the reserve distribution vectors.

        A distribution vector summing to zero (no reserve needed in that direction)
        can not be normalised; it is returned as it is and flagged as degenerate.
        """
        x = np.asarray(x, dtype=float).reshape(-1)
        d_us, degenerate_us = self._normalise(x[self.d_us_idx], "up-spinning")
        d_ds, degenerate_ds = self._normalise(x[self.d_ds_idx], "down-spinning")
        return Dispatch(
            P_G=x[self.P_G_idx],
            R_us=x[self.R_us_idx],
            R_ds=x[self.R_ds_idx],
            d_us=d_us,
            d_ds=d_ds,
            degenerate_us=degenerate_us,
            degenerate_ds=degenerate_ds,
        )

    @staticmethod
    def _normalise(d: np.ndarray, direction: str) -> tuple[np.ndarray, bool]:
        total = d.sum()
        if abs(total) <= DEGENERATE_TOLERANCE:
            log.warning(f"Degenerate {direction} distribution vector {d}")
            return d, True
        return d / total, False

    def reserve_schedule(self, x, deltas) -> pl.DataFrame:
        """Activated reserve of each generator in each scenario."""
        x = np.asarray(x, dtype=float).reshape(-1)
        deltas = np.atleast_2d(np.asarray(deltas, dtype=float))
        return pl.DataFrame(
            [
                {"scenario": i, "generator": g, "R": float(R)}
                for i, delta in enumerate(deltas)
                for g, R in enumerate(self.reserve(x, delta))
            ],
            schema={"scenario": pl.Int32, "generator": pl.Int32, "R": pl.Float64},
        )
