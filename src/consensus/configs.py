import warnings
from typing import Any, Callable
import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from konfig import settings
from consensus.errors import ConfigurationError


def default_stepsize(k: int) -> float:
    return 1.0 / (k + 1)


class OptSettings(BaseModel):
    """Settings of the solver used for the local optimisation of each agent"""

    solver_name: str = Field(
        default=settings.solver.name,
        description="Name of the pyomo solver used for the restricted problems.",
    )
    tee: bool = Field(
        default=False, description="Stream the solver output (quiet by default)."
    )
    time_limit: float | None = Field(
        default=settings.solver.time_limit,
        description="Maximum wall-clock time allowed for one solve in seconds.",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional solver-specific options passed as they are.",
    )


class ACCAConfig(BaseModel):
    """Configuration of the Active Constraint Consensus Agreement algorithm"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    verbose: bool = Field(
        default=False, description="Show the progress of every round."
    )
    opt_settings: OptSettings = Field(
        default_factory=OptSettings,
        description="Solver settings for the local optimisation problems.",
    )
    x0: Any = Field(
        default=None,
        description="Initial value of the decision vector, zeros when unset.",
    )
    default_constraint: Callable | None = Field(
        default=None,
        description="Deterministic constraints x -> list of constraints, always enforced.",
    )
    diameter: int = Field(
        default=settings.acca.diameter,
        ge=0,
        description="Diameter bound of the connectivity graph, sets the stopping rule.",
    )
    n_agents: int | None = Field(
        default=None,
        ge=1,
        description="Number of agents, ceil(N / scenarios_per_agent) when unset.",
    )
    max_its: int = Field(
        default=settings.acca.max_its, ge=1, description="Maximum number of rounds."
    )
    residuals: Callable | None = Field(
        default=None,
        description="Residual function h(x, delta) >= 0 (or h(x, delta, j) with a "
        "selector); the symbolic constraints are checked when unset.",
    )
    use_selector: bool = Field(
        default=False,
        description="The constraint and residual functions accept the constraint "
        "identifier as third argument.",
    )
    connectivity: Any = Field(
        default=None,
        description="Adjacency matrix of the connectivity graph, random when unset.",
    )
    stepsize: Callable[[int], float] = Field(
        default=default_stepsize,
        description="Step size alpha_k as a function of the round index.",
    )
    debug: bool = Field(
        default=False,
        description="Store solve diagnostics in every iteration and log fatal errors "
        "with their full context.",
    )
    n_constraints: int | None = Field(
        default=None,
        ge=1,
        description="Number of constraint families per scenario, inferred when unset.",
    )
    optimize_first_round: bool = Field(
        default=True,
        description="Solve the local problem in the first round even when the initial "
        "value is feasible.",
    )
    with_ray: bool = Field(
        default=False, description="Run the agents of a round as parallel ray tasks."
    )
    seed: int | None = Field(
        default=None, description="Seed of the random connectivity graph."
    )
    solver: Any = Field(
        default=None,
        description="Custom solve call replacing the pyomo solver.",
    )

    @field_validator("x0")
    @classmethod
    def _flatten_x0(cls, value):
        if value is None:
            return None
        return np.asarray(value, dtype=float).reshape(-1)

    @field_validator("connectivity")
    @classmethod
    def _cast_connectivity(cls, value):
        if value is None:
            return None
        return np.asarray(value)

    @classmethod
    def from_options(cls, *pairs, **kwargs) -> "ACCAConfig":
        """
        Build the configuration from key-value pairs and keyword arguments.

        Unknown keys are ignored with a warning.

        Raises:
            ConfigurationError: If the pairs are malformed or a value is invalid.
        """
        if len(pairs) % 2 != 0:
            raise ConfigurationError("Please provide key-value pairs")
        keys = pairs[0::2]
        if not all(isinstance(key, str) for key in keys):
            raise ConfigurationError("Option keys should be strings")
        options = dict(zip(keys, pairs[1::2]))
        options.update(kwargs)

        known = {}
        for key, value in options.items():
            if key in cls.model_fields:
                known[key] = value
            else:
                warnings.warn(f'Field "{key}" is unknown. Typo?', UserWarning)
        try:
            return cls(**known)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
