import numpy as np
import networkx as nx

from helpers import (
    generate_log,
    adjacency_to_digraph,
    digraph_to_adjacency,
    digraph_diameter,
    random_strongly_connected_graph,
)
from consensus.errors import ConfigurationError

log = generate_log(name=__name__)


class ConnectivityGraph:
    """
    Fixed communication graph between the agents.

    ``adjacency[j, i] == 1`` means that agent ``i`` receives the candidate solution and the
    active constraints of agent ``j``.
    """

    def __init__(self, adjacency) -> None:
        adjacency = np.asarray(adjacency)
        if adjacency.ndim != 2 or adjacency.shape[0] != adjacency.shape[1]:
            raise ConfigurationError("The connectivity graph should be a square matrix")
        if np.any(np.diag(adjacency) != 0):
            raise ConfigurationError("The connectivity graph should not have self loops")
        self.adjacency: np.ndarray = (adjacency != 0).astype(int)
        self.adjacency.setflags(write=False)
        self.graph: nx.DiGraph = adjacency_to_digraph(self.adjacency)
        try:
            self.diameter: int = digraph_diameter(self.graph)
        except ValueError as e:
            raise ConfigurationError(f"Invalid connectivity graph: {e}") from e
        self._in_neighbours = [
            [int(j) for j in np.flatnonzero(self.adjacency[:, i])]
            for i in range(self.n_agents)
        ]

    @classmethod
    def random(
        cls, n_agents: int, diameter: int, seed: int | None = None
    ) -> "ConnectivityGraph":
        """Random strongly connected graph whose diameter is at most ``diameter``."""
        try:
            graph = random_strongly_connected_graph(n_agents, diameter, seed=seed)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return cls(digraph_to_adjacency(graph))

    @classmethod
    def from_config(
        cls,
        n_agents: int,
        diameter: int,
        connectivity=None,
        seed: int | None = None,
    ) -> "ConnectivityGraph":
        """Use the supplied adjacency matrix or generate a random one."""
        if connectivity is None:
            return cls.random(n_agents, diameter, seed=seed)
        graph = cls(connectivity)
        if graph.n_agents != n_agents:
            raise ConfigurationError(
                f"Connectivity graph has {graph.n_agents} nodes for {n_agents} agents"
            )
        if graph.diameter > diameter:
            log.warning(
                f"Connectivity graph diameter {graph.diameter} exceeds the configured "
                f"bound {diameter}, consensus might be declared too early"
            )
        return graph

    @property
    def n_agents(self) -> int:
        return self.adjacency.shape[0]

    def in_neighbours(self, i: int) -> list[int]:
        return self._in_neighbours[i]

    def in_degree(self, i: int) -> int:
        return len(self._in_neighbours[i])

    @staticmethod
    def stopping_threshold(diameter: int) -> int:
        # rounds needed to cross the graph twice and confirm
        return 2 * diameter + 1
