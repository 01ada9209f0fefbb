import math
import numpy as np

from helpers import generate_log
from consensus.errors import ConfigurationError

log = generate_log(name=__name__)


def as_scenario_matrix(deltas) -> np.ndarray:
    """Cast the scenario realisations to a float matrix with one scenario per row."""
    matrix = np.asarray(deltas, dtype=float)
    if matrix.ndim == 1:
        matrix = matrix.reshape(-1, 1)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        raise ConfigurationError("deltas should be a non-empty N x d matrix")
    return matrix


def expand_constraint_ids(deltas: np.ndarray, n_constraints: int) -> np.ndarray:
    """
    Tag every scenario with every constraint family identifier.

    Each row ``delta`` becomes ``n_constraints`` rows ``(j, *delta)`` for
    ``j = 0, ..., n_constraints - 1``, keeping the scenario order.

    Example:
    >>> expand_constraint_ids(np.array([[0.1], [0.2]]), 2)
    array([[0. , 0.1],
           [1. , 0.1],
           [0. , 0.2],
           [1. , 0.2]])
    """
    identifiers = np.tile(np.arange(n_constraints), deltas.shape[0]).reshape(-1, 1)
    return np.hstack([identifiers, np.repeat(deltas, n_constraints, axis=0)])


def partition_deltas(
    deltas, n_agents: int, n_constraints: int = 1
) -> list[np.ndarray]:
    """
    Divide the scenarios among the agents.

    Contiguous shares of ``ceil(N / n_agents)`` scenarios are handed out in order, the last
    share(s) possibly smaller, and each share is expanded over the constraint families.

    Args:
        deltas: N x d matrix of scenario realisations.
        n_agents (int): Number of agents.
        n_constraints (int): Number of constraint families per scenario.

    Returns:
        list[np.ndarray]: One ``(n_i * n_constraints) x (1 + d)`` matrix per agent.

    Raises:
        ConfigurationError: If there are more agents than scenarios.
    """
    matrix = as_scenario_matrix(deltas)
    n_scenarios = matrix.shape[0]
    if n_agents < 1:
        raise ConfigurationError("At least one agent is needed")
    if n_agents > n_scenarios:
        raise ConfigurationError(
            "Number of agents can not be larger than number of scenarios "
            f"({n_agents} > {n_scenarios})"
        )
    if n_constraints < 1:
        raise ConfigurationError("At least one constraint family is needed")

    share = math.ceil(n_scenarios / n_agents)
    partitions = []
    for i in range(n_agents):
        delta_slice = matrix[i * share : min((i + 1) * share, n_scenarios)]
        if delta_slice.shape[0] == 0:
            log.warning(f"Agent {i} receives no scenario")
        partitions.append(expand_constraint_ids(delta_slice, n_constraints))
    return partitions
