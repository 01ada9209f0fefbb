from consensus.errors import (
    ConfigurationError,
    SolverError,
    SolverTimeout,
    ConvergenceWarning,
)
from consensus.configs import ACCAConfig, OptSettings, default_stepsize
from consensus.partition import partition_deltas, expand_constraint_ids
from consensus.connectivity import ConnectivityGraph
from consensus.constraints import ConstraintBuilder, ConstraintKind, ScenarioConstraint
from consensus.residuals import (
    FEASIBILITY_TOLERANCE,
    FeasibilityEvaluator,
    SymbolicEvaluator,
    SelectorResidualEvaluator,
    VectorResidualEvaluator,
    make_evaluator,
)
from consensus.solver import PyomoSolver, SolveStatus
from consensus.agent import Agent, agent_round
from consensus.coordinator import ACCA, ACCAResult, acca

__all__ = [
    "ConfigurationError",
    "SolverError",
    "SolverTimeout",
    "ConvergenceWarning",
    "ACCAConfig",
    "OptSettings",
    "default_stepsize",
    "partition_deltas",
    "expand_constraint_ids",
    "ConnectivityGraph",
    "ConstraintBuilder",
    "ConstraintKind",
    "ScenarioConstraint",
    "FEASIBILITY_TOLERANCE",
    "FeasibilityEvaluator",
    "SymbolicEvaluator",
    "SelectorResidualEvaluator",
    "VectorResidualEvaluator",
    "make_evaluator",
    "PyomoSolver",
    "SolveStatus",
    "Agent",
    "agent_round",
    "ACCA",
    "ACCAResult",
    "acca",
]
