import time
import numpy as np

from helpers import generate_log, all_close, unique_rows, read_only
from data_model import ConsensusProblem, Iteration
from consensus.configs import ACCAConfig
from consensus.constraints import ConstraintBuilder, decision_model
from consensus.errors import SolverError, SolverTimeout
from consensus.residuals import FeasibilityEvaluator, make_evaluator
from consensus.solver import PyomoSolver, Solver, TIME_LIMIT_CODE

log = generate_log(name=__name__)

STAGNATION_TOLERANCE = 1e-6


class Agent:
    """
    One ACCA agent: a fixed share of the deltas and an append-only history of iterations.

    ``iterations[0]`` is the seed state; round ``k`` appends ``iterations[k]``.
    """

    def __init__(
        self, index: int, initial_deltas: np.ndarray, x0: np.ndarray, J0: float
    ) -> None:
        self.index = index
        self.initial_deltas = read_only(initial_deltas)
        self.iterations: list[Iteration] = [
            Iteration(
                x=read_only(x0),
                J=float(J0),
                active_deltas=read_only(np.empty((0, self.initial_deltas.shape[1]))),
            )
        ]

    @property
    def latest(self) -> Iteration:
        return self.iterations[-1]

    @property
    def n_rounds(self) -> int:
        return len(self.iterations) - 1

    def append(self, iteration: Iteration) -> None:
        self.iterations.append(iteration)

    def has_stagnated(self) -> bool:
        """Objective of the last round unchanged with respect to the round before."""
        if self.n_rounds == 0:
            return False
        return all_close(
            self.iterations[-2].J, self.iterations[-1].J, STAGNATION_TOLERANCE
        )

    def update(
        self,
        k: int,
        neighbours: list[Iteration],
        problem: ConsensusProblem,
        config: ACCAConfig,
        evaluator: FeasibilityEvaluator,
        solver: Solver,
        previous: Iteration | None = None,
    ) -> Iteration:
        """Compute (without storing) the iteration of round ``k``."""
        return agent_round(
            index=self.index,
            initial_deltas=self.initial_deltas,
            previous=previous if previous is not None else self.latest,
            neighbours=neighbours,
            k=k,
            problem=problem,
            config=config,
            evaluator=evaluator,
            solver=solver,
        )


def agent_round(
    index: int,
    initial_deltas: np.ndarray,
    previous: Iteration,
    neighbours: list[Iteration],
    k: int,
    problem: ConsensusProblem,
    config: ACCAConfig,
    evaluator: FeasibilityEvaluator | None = None,
    solver: Solver | None = None,
) -> Iteration:
    """
    Round ``k`` of agent ``index``.

    1. Local view: own deltas, own active deltas and the active deltas of the in-neighbours.
    2. Consensus point ``z``: mean of the own and the in-neighbours' previous ``x``.
    3. If the previous ``x`` satisfies the whole local view the iterate is kept.
    4. Otherwise minimise ``f(x) + ||x - z||^2 / (2 alpha_k)`` subject to the default
       constraints, the deltas of the local view violated at ``z`` and the own deltas.
    5. The active deltas of the new iterate are extracted from the local view.

    Args:
        index (int): Agent index, only used for diagnostics.
        initial_deltas (np.ndarray): The agent's own deltas.
        previous (Iteration): The agent's iteration of round ``k - 1``.
        neighbours (list[Iteration]): Iterations of round ``k - 1`` of the in-neighbours.
        k (int): Round index, starting at 1.
        problem (ConsensusProblem): Objective and constraints.
        config (ACCAConfig): Algorithm configuration.
        evaluator (FeasibilityEvaluator, optional): Residual evaluator, built when missing.
        solver (Solver, optional): Solve call, a pyomo solver when missing.

    Returns:
        Iteration: The iteration of round ``k``.

    Raises:
        SolverError: If the restricted problem can not be solved.
    """
    start = time.perf_counter()
    if evaluator is None:
        evaluator = make_evaluator(problem)
    if solver is None:
        solver = config.solver or PyomoSolver(config.opt_settings)
    evaluator.reset()

    local_view = unique_rows(
        initial_deltas,
        previous.active_deltas,
        *[neighbour.active_deltas for neighbour in neighbours],
        n_columns=initial_deltas.shape[1],
    )
    z = (previous.x + sum(neighbour.x for neighbour in neighbours)) / (
        len(neighbours) + 1
    )

    forced = k == 1 and config.optimize_first_round
    if forced or not evaluator.all_satisfied(previous.x, local_view):
        violated = evaluator.violated(z, local_view)
        restricted = unique_rows(violated, initial_deltas, n_columns=local_view.shape[1])
        x, J = _solve_restricted(
            index, k, problem, config, solver, z, restricted, violated
        )
        info = {
            "optimized": True,
            "num_cons": int(restricted.shape[0]),
            "num_violated": int(violated.shape[0]),
        }
    else:
        x, J = previous.x, previous.J
        info = {
            "optimized": False,
            "num_cons": int(local_view.shape[0]),
            "num_violated": 0,
        }

    active_deltas = evaluator.active(x, local_view)
    return Iteration(
        x=read_only(x),
        J=float(J),
        active_deltas=read_only(active_deltas),
        time=time.perf_counter() - start,
        info=info if config.debug else None,
    )


def _solve_restricted(
    index: int,
    k: int,
    problem: ConsensusProblem,
    config: ACCAConfig,
    solver: Solver,
    z: np.ndarray,
    restricted: np.ndarray,
    violated: np.ndarray,
) -> tuple[np.ndarray, float]:
    builder = ConstraintBuilder(problem)
    model = decision_model(problem.x_dim, x0=z)
    constraints = builder.default(model.x) + [
        builder.build(model.x, row) for row in restricted
    ]
    alpha = config.stepsize(k)
    objective = problem.objective_fcn(model.x) + 1 / (2 * alpha) * sum(
        (model.x[i] - float(z[i])) ** 2 for i in model.I
    )

    solve = solver.solve if hasattr(solver, "solve") else solver
    status, value = solve(model, constraints, objective)
    if status.problem:
        error = SolverTimeout if status.problem == TIME_LIMIT_CODE else SolverError
        raise error(
            status.info,
            round=k,
            agent=index,
            constraint_ids=[int(row[0]) for row in violated],
            problem=status.problem,
        )
    x = np.asarray(value(), dtype=float).reshape(-1)
    return x, problem.objective_value(x)
