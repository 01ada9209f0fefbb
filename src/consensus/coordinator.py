import itertools
import math
import warnings
from dataclasses import dataclass
from typing import Callable
import numpy as np
import polars as pl
import patito as pt
import ray
import tqdm

from konfig import settings
from helpers import generate_log, all_close
from data_model import ConsensusProblem, Iteration, IterationRecord
from api.ray_utils import init_ray, shutdown_ray, check_ray
from consensus.agent import Agent, agent_round
from consensus.configs import ACCAConfig
from consensus.connectivity import ConnectivityGraph
from consensus.constraints import infer_n_constraints
from consensus.errors import ConfigurationError, ConvergenceWarning, SolverError
from consensus.partition import as_scenario_matrix, partition_deltas
from consensus.residuals import FeasibilityEvaluator, make_evaluator
from consensus.solver import PyomoSolver

log = generate_log(name=__name__)

CONSENSUS_TOLERANCE = 1e-3
HISTORY_SCHEMA = {
    "agent": pl.Int32,
    "k": pl.Int32,
    "J": pl.Float64,
    "time": pl.Float64,
    "n_active": pl.Int32,
    "optimized": pl.Boolean,
    "num_cons": pl.Int32,
}


@dataclass
class ACCAResult:
    """Consensus value and per-agent iteration history of an ACCA run."""

    xstar: np.ndarray
    agents: list[Agent]
    rounds: int
    converged: bool
    diameter: int

    def history(self) -> pt.DataFrame[IterationRecord]:
        """One row per agent and iteration (round 0 is the seed state)."""
        rows = [
            {
                "agent": agent.index,
                "k": k,
                "J": iteration.J,
                "time": iteration.time,
                "n_active": int(iteration.active_deltas.shape[0]),
                "optimized": (iteration.info or {}).get("optimized"),
                "num_cons": (iteration.info or {}).get("num_cons"),
            }
            for agent in self.agents
            for k, iteration in enumerate(agent.iterations)
        ]
        history = (
            pt.DataFrame(pl.DataFrame(rows, schema=HISTORY_SCHEMA))
            .set_model(IterationRecord)
            .cast(strict=True)
        )
        history.validate()
        return history


class ACCA:
    """
    Active Constraint Consensus Agreement.

    Solves ``min f(x) s.t. constraints(x, delta_i), i = 1..N`` by dividing the scenarios
    among agents that exchange their candidate solutions and active constraints over a
    fixed connectivity graph until every agent's objective stays unchanged for
    ``2 * diameter + 1`` rounds.
    """

    def __init__(
        self,
        x_dim: int,
        deltas,
        objective_fcn: Callable,
        constraints_fcn: Callable,
        config: ACCAConfig | None = None,
    ) -> None:
        self.config = config or ACCAConfig()
        if not callable(objective_fcn):
            raise ConfigurationError("objective_fcn should be a function")
        if not callable(constraints_fcn):
            raise ConfigurationError("constraints_fcn should be a function")
        if int(x_dim) < 1:
            raise ConfigurationError("The decision vector needs at least one entry")

        self.deltas = as_scenario_matrix(deltas)
        self.problem = ConsensusProblem(
            x_dim=int(x_dim),
            objective_fcn=objective_fcn,
            constraints_fcn=constraints_fcn,
            n_constraints=self._n_constraints(int(x_dim), constraints_fcn),
            default_constraint=self.config.default_constraint,
            residuals=self.config.residuals,
            use_selector=self.config.use_selector,
        )

        n_scenarios = self.deltas.shape[0]
        self.n_agents = (
            self.config.n_agents
            if self.config.n_agents is not None
            else math.ceil(n_scenarios / settings.acca.scenarios_per_agent)
        )
        self.partitions = partition_deltas(
            self.deltas, self.n_agents, self.problem.n_constraints
        )
        self.x0 = self._x0()
        self.connectivity = ConnectivityGraph.from_config(
            n_agents=self.n_agents,
            diameter=self.config.diameter,
            connectivity=self.config.connectivity,
            seed=self.config.seed,
        )
        self.solver = self.config.solver or self._default_solver()
        self.agents: list[Agent] = []
        self.ngc = np.ones(self.n_agents, dtype=int)
        self._shared: tuple = ()

    def _n_constraints(self, x_dim: int, constraints_fcn: Callable) -> int:
        if self.config.n_constraints is not None:
            return self.config.n_constraints
        if self.config.use_selector:
            return 1
        return infer_n_constraints(constraints_fcn, x_dim, self.deltas[0])

    def _x0(self) -> np.ndarray:
        if self.config.x0 is None:
            return np.zeros(self.problem.x_dim)
        if self.config.x0.shape[0] != self.problem.x_dim:
            raise ConfigurationError(
                f"x0 has {self.config.x0.shape[0]} entries, expected {self.problem.x_dim}"
            )
        return self.config.x0

    def _default_solver(self) -> PyomoSolver:
        solver = PyomoSolver(self.config.opt_settings)
        if not solver.available():
            raise ConfigurationError(
                f"Solver {self.config.opt_settings.solver_name} is not available"
            )
        return solver

    @property
    def stopping_threshold(self) -> int:
        return ConnectivityGraph.stopping_threshold(self.config.diameter)

    def initialise_agents(self) -> list[Agent]:
        J0 = self.problem.objective_value(self.x0)
        self.agents = [
            Agent(index=i, initial_deltas=partition, x0=self.x0, J0=J0)
            for i, partition in enumerate(self.partitions)
        ]
        self.ngc = np.ones(self.n_agents, dtype=int)
        return self.agents

    def solve(self) -> ACCAResult:
        """Run the rounds until consensus or ``max_its`` rounds."""
        self.initialise_agents()
        evaluators = [make_evaluator(self.problem) for _ in self.agents]
        started_ray = self.config.with_ray and init_ray()
        try:
            check_ray(self.config.with_ray)
            if self.config.with_ray:
                self._shared = (ray.put(self.problem), ray.put(self.config))
            rounds, converged = self._iterate(evaluators)
        except SolverError as e:
            if self.config.debug:
                log.exception(
                    f"ACCA aborted in round {e.round} by agent {e.agent}: {e.info} "
                    f"(violated constraints {e.constraint_ids})"
                )
            raise
        finally:
            if started_ray:
                shutdown_ray()

        self.check_agreement()
        return ACCAResult(
            xstar=self.agents[0].latest.x,
            agents=self.agents,
            rounds=rounds,
            converged=converged,
            diameter=self.config.diameter,
        )

    def _iterate(self, evaluators: list[FeasibilityEvaluator]) -> tuple[int, bool]:
        k = 0
        for k in range(1, self.config.max_its + 1):
            snapshots = [agent.latest for agent in self.agents]
            if self.config.with_ray:
                iterations = self._ray_round(k, snapshots)
            else:
                iterations = self._sequential_round(k, snapshots, evaluators)

            for i, (agent, iteration) in enumerate(zip(self.agents, iterations)):
                agent.append(iteration)
                self.ngc[i] = self.ngc[i] + 1 if agent.has_stagnated() else 1
            self._log_round(k)

            if np.all(self.ngc >= self.stopping_threshold):
                log.info(f"ACCA converged in {k} rounds.")
                return k, True

        message = (
            f"Maximum iterations ({self.config.max_its}) is reached, "
            "might not have convergence"
        )
        log.warning(message)
        warnings.warn(message, ConvergenceWarning)
        return k, False

    def _neighbours(self, i: int, snapshots: list[Iteration]) -> list[Iteration]:
        return [snapshots[j] for j in self.connectivity.in_neighbours(i)]

    def _sequential_round(
        self,
        k: int,
        snapshots: list[Iteration],
        evaluators: list[FeasibilityEvaluator],
    ) -> list[Iteration]:
        return [
            agent.update(
                k=k,
                neighbours=self._neighbours(i, snapshots),
                problem=self.problem,
                config=self.config,
                evaluator=evaluators[i],
                solver=self.solver,
                previous=snapshots[i],
            )
            for i, agent in enumerate(
                tqdm.tqdm(
                    self.agents, desc=f"Iteration {k}", disable=not self.config.verbose
                )
            )
        ]

    def _ray_round(self, k: int, snapshots: list[Iteration]) -> list[Iteration]:
        remote_round = ray.remote(agent_round)
        problem_ref, config_ref = self._shared
        futures = [
            remote_round.remote(
                index=agent.index,
                initial_deltas=agent.initial_deltas,
                previous=snapshots[i],
                neighbours=self._neighbours(i, snapshots),
                k=k,
                problem=problem_ref,
                config=config_ref,
            )
            for i, agent in enumerate(self.agents)
        ]
        try:
            return ray.get(futures)
        except ray.exceptions.RayTaskError as e:
            if isinstance(e.cause, SolverError):
                raise e.cause from None
            raise

    def _log_round(self, k: int) -> None:
        optimized = sum(
            bool((agent.latest.info or {}).get("optimized")) for agent in self.agents
        )
        message = (
            f"[ACCA {k}] J={[round(agent.latest.J, 6) for agent in self.agents]} "
            f"stagnation={int(self.ngc.min())}/{self.stopping_threshold}"
            + (f" optimized={optimized}/{self.n_agents}" if self.config.debug else "")
        )
        if self.config.verbose:
            log.info(message)
        else:
            log.debug(message)

    def check_agreement(self) -> bool:
        """Warn when two agents ended further apart than the consensus tolerance."""
        disagreeing = [
            (i, j)
            for i, j in itertools.combinations(range(len(self.agents)), 2)
            if not all_close(
                self.agents[i].latest.x, self.agents[j].latest.x, CONSENSUS_TOLERANCE
            )
        ]
        if disagreeing:
            message = (
                f"Agents not close, xstar may not be optimal (pairs {disagreeing[:5]})"
            )
            log.warning(message)
            warnings.warn(message, ConvergenceWarning)
        return not disagreeing


def acca(
    x_dim: int,
    deltas,
    objective_fcn: Callable,
    constraints_fcn: Callable,
    *options,
    **kw_options,
) -> tuple[np.ndarray, list[Agent]]:
    """
    Run the Active Constraint Consensus Agreement algorithm.

    Args:
        x_dim (int): Size of the decision vector ``x``.
        deltas: N x d matrix with one scenario realisation per row.
        objective_fcn (Callable): ``f(x)``, evaluated on the pyomo variable and on numpy
            vectors.
        constraints_fcn (Callable): ``constraints(x, delta)`` returning one constraint per
            family, or ``constraints(x, delta, j)`` with ``use_selector``.
        *options: Key-value pairs of :class:`ACCAConfig` fields.
        **kw_options: :class:`ACCAConfig` fields as keyword arguments.

    Returns:
        tuple[np.ndarray, list[Agent]]: The consensus value ``xstar`` and the agents with
        their iterations.

    Raises:
        ConfigurationError: Invalid options, raised before the first round.
        SolverError: A restricted problem could not be solved.
    """
    config = ACCAConfig.from_options(*options, **kw_options)
    result = ACCA(x_dim, deltas, objective_fcn, constraints_fcn, config).solve()
    return result.xstar, result.agents
