import warnings
import numpy as np
import polars as pl
import pytest

from data_model import Iteration
from consensus import (
    ACCA,
    ACCAConfig,
    ConfigurationError,
    ConvergenceWarning,
    OptSettings,
    SolverError,
    SolveStatus,
    acca,
)

PAIR_CONNECTIVITY = np.array([[0, 1], [1, 0]])


def always(value: float):
    return lambda x, delta, j: value


class ScriptedSolver:
    """Every agent gets ``values[k - 1]`` in round ``k``."""

    def __init__(self, values, n_agents: int = 2):
        self.values = values
        self.n_agents = n_agents
        self.n_calls = 0

    def solve(self, model, constraints, objective):
        value = self.values[self.n_calls // self.n_agents]
        self.n_calls += 1
        return SolveStatus(0, "optimal"), lambda: np.array([value])


class TestCoordinator:
    @pytest.fixture(autouse=True)
    def setup_problem(self, interval_problem, interval_deltas):
        self.objective_fcn, self.constraints_fcn, _ = interval_problem
        self.deltas = interval_deltas

    def build(self, **options) -> ACCA:
        options.setdefault("connectivity", PAIR_CONNECTIVITY)
        options.setdefault("diameter", 1)
        options.setdefault("n_agents", 2)
        options.setdefault("use_selector", True)
        options.setdefault("n_constraints", 2)
        return ACCA(
            1,
            self.deltas,
            self.objective_fcn,
            lambda x, delta, j: self.constraints_fcn(x, delta)[j],
            ACCAConfig(**options),
        )

    def run(self, **options):
        return self.build(**options).solve()

    def test_terminates_after_stagnation(self, constant_solver):
        solver = constant_solver([0.0])
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            result = self.run(residuals=always(1.0), solver=solver)
        # first round is optimised, then the counters need 2 * diameter + 1
        assert result.converged
        assert result.rounds == 2
        assert len(solver.calls) == 2
        assert all(agent.n_rounds == 2 for agent in result.agents)
        np.testing.assert_allclose(result.xstar, [0.0])

    def test_max_iterations(self, shift_solver):
        with pytest.warns(ConvergenceWarning, match="Maximum iterations"):
            result = self.run(
                residuals=always(-1.0), solver=shift_solver(1.0), max_its=5
            )
        assert not result.converged
        assert result.rounds == 5
        assert all(len(agent.iterations) == 6 for agent in result.agents)
        np.testing.assert_allclose(result.xstar, [5.0])

    def test_stagnation_counters(self):
        coordinator = self.build(
            residuals=always(-1.0), solver=ScriptedSolver([0.0, 1.0, 1.0]), max_its=3
        )
        counters = []
        coordinator._log_round = lambda k: counters.append(coordinator.ngc.tolist())
        with pytest.warns(ConvergenceWarning, match="Maximum iterations"):
            coordinator.solve()
        # J unchanged from the seed, then changed, then unchanged again
        assert counters == [[2, 2], [1, 1], [2, 2]]

    def test_ray_shut_down_when_setup_fails(self, monkeypatch, constant_solver):
        calls = []

        def unreachable(with_ray):
            raise RuntimeError("no workers")

        monkeypatch.setattr("consensus.coordinator.init_ray", lambda: True)
        monkeypatch.setattr("consensus.coordinator.check_ray", unreachable)
        monkeypatch.setattr(
            "consensus.coordinator.shutdown_ray", lambda: calls.append("shutdown")
        )
        with pytest.raises(RuntimeError, match="no workers"):
            self.run(
                residuals=always(1.0), solver=constant_solver([0.0]), with_ray=True
            )
        assert calls == ["shutdown"]

    def test_fixed_point(self, failing_solver):
        result = self.run(
            residuals=always(1.0),
            solver=failing_solver(),
            x0=[0.3],
            optimize_first_round=False,
        )
        assert result.converged
        assert result.rounds == 2
        np.testing.assert_allclose(result.xstar, [0.3])

    def test_solver_error_aborts(self, failing_solver):
        with pytest.raises(SolverError) as error:
            self.run(residuals=always(1.0), solver=failing_solver(), debug=True)
        assert error.value.round == 1

    def test_disagreement_warning(self, constant_solver):
        coordinator = self.build(residuals=always(1.0), solver=constant_solver([0.0]))
        result = coordinator.solve()
        assert coordinator.check_agreement()
        result.agents[1].append(
            Iteration(x=np.array([1.0]), J=1.0, active_deltas=np.empty((0, 2)))
        )
        with pytest.warns(ConvergenceWarning, match="not close"):
            assert not coordinator.check_agreement()

    def test_history(self, constant_solver):
        result = self.run(
            residuals=always(1.0), solver=constant_solver([0.0]), debug=True
        )
        history = result.history()
        assert history.height == 2 * (result.rounds + 1)
        assert history.schema["agent"] == pl.Int32
        first_round = history.filter((pl.col("k") == 1) & (pl.col("agent") == 0))
        assert first_round["optimized"].to_list() == [True]
        assert history.filter(pl.col("k") == 0)["optimized"].null_count() == 2


class TestConfiguration:
    @pytest.fixture(autouse=True)
    def setup_problem(self, interval_problem, interval_deltas, constant_solver):
        self.objective_fcn, self.constraints_fcn, self.residuals = interval_problem
        self.deltas = interval_deltas
        self.solver = constant_solver([0.0])

    def test_more_agents_than_scenarios(self):
        with pytest.raises(ConfigurationError):
            acca(
                1,
                self.deltas,
                self.objective_fcn,
                self.constraints_fcn,
                "n_agents",
                21,
                "solver",
                self.solver,
            )

    def test_odd_options(self):
        with pytest.raises(ConfigurationError):
            acca(1, self.deltas, self.objective_fcn, self.constraints_fcn, "verbose")

    def test_non_string_key(self):
        with pytest.raises(ConfigurationError):
            ACCAConfig.from_options(1, 2)

    def test_unknown_option(self):
        with pytest.warns(UserWarning, match='Field "verbos" is unknown'):
            config = ACCAConfig.from_options("verbos", True, "max_its", 7)
        assert config.max_its == 7
        assert not config.verbose

    def test_invalid_value(self):
        with pytest.raises(ConfigurationError):
            ACCAConfig.from_options(max_its=0)

    def test_wrong_x0(self):
        with pytest.raises(ConfigurationError):
            ACCA(
                1,
                self.deltas,
                self.objective_fcn,
                self.constraints_fcn,
                ACCAConfig(x0=[0.0, 1.0], solver=self.solver),
            )

    def test_not_a_function(self):
        with pytest.raises(ConfigurationError):
            ACCA(1, self.deltas, self.objective_fcn, None, ACCAConfig())

    def test_unknown_solver(self):
        with pytest.raises(ConfigurationError):
            ACCA(
                1,
                self.deltas,
                self.objective_fcn,
                self.constraints_fcn,
                ACCAConfig(opt_settings=OptSettings(solver_name="no_such_solver")),
            )

    def test_defaults(self):
        problem = ACCA(
            1,
            self.deltas,
            self.objective_fcn,
            self.constraints_fcn,
            ACCAConfig(solver=self.solver),
        )
        assert problem.n_agents == 2
        assert problem.problem.n_constraints == 2
        assert problem.stopping_threshold == 7
        np.testing.assert_array_equal(problem.x0, [0.0])


@pytest.mark.requires_solver
class TestEndToEnd:
    @pytest.fixture(autouse=True)
    def setup_problem(self, interval_problem, interval_deltas, ring_connectivity):
        self.objective_fcn, self.constraints_fcn, self.residuals = interval_problem
        self.deltas = interval_deltas
        self.connectivity = ring_connectivity

    def test_interval(self):
        xstar, agents = acca(
            1,
            self.deltas,
            self.objective_fcn,
            self.constraints_fcn,
            "n_agents",
            4,
            "diameter",
            2,
            "seed",
            0,
        )
        assert len(agents) == 4
        np.testing.assert_allclose(xstar, [0.0], atol=1e-5)

    def test_binding_scenario(self):
        deltas = np.linspace(0.0, 1.0, 20).reshape(-1, 1)
        xstar, agents = acca(
            1,
            deltas,
            lambda x: (x[0] - 3) ** 2,
            lambda x, delta: [x[0] <= float(delta[0]) + 1],
            n_agents=4,
            connectivity=self.connectivity,
            diameter=3,
        )
        np.testing.assert_allclose(xstar, [1.0], atol=1e-4)
        for agent in agents:
            np.testing.assert_allclose(agent.latest.x, xstar, atol=1e-3)

    def test_residual_functions(self):
        xstar, _ = acca(
            1,
            self.deltas,
            self.objective_fcn,
            self.constraints_fcn,
            n_agents=4,
            connectivity=self.connectivity,
            residuals=self.residuals,
        )
        np.testing.assert_allclose(xstar, [0.0], atol=1e-5)

    def test_infeasible(self):
        with pytest.raises(SolverError) as error:
            acca(
                1,
                np.zeros((3, 1)),
                self.objective_fcn,
                lambda x, delta: [x[0] >= 5, x[0] <= 0],
                n_agents=1,
            )
        assert error.value.round == 1
        assert error.value.agent == 0

    def test_with_ray(self):
        xstar, agents = acca(
            1,
            self.deltas,
            self.objective_fcn,
            self.constraints_fcn,
            n_agents=4,
            connectivity=self.connectivity,
            with_ray=True,
        )
        assert len(agents) == 4
        np.testing.assert_allclose(xstar, [0.0], atol=1e-5)
