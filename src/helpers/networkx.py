import random
import numpy as np
import networkx as nx

from helpers.general import generate_log


# Global variable
log = generate_log(name=__name__)


def adjacency_to_digraph(adjacency: np.ndarray) -> nx.DiGraph:
    """
    Build a directed graph from an adjacency matrix.

    Args:
        adjacency (np.ndarray): Square matrix where ``adjacency[j, i] != 0`` is an edge j -> i.

    Returns:
        nx.DiGraph: The directed graph, one node per row of the matrix.
    """
    graph = nx.from_numpy_array(
        (np.asarray(adjacency) != 0).astype(int), create_using=nx.DiGraph
    )
    graph.add_nodes_from(range(np.shape(adjacency)[0]))
    return graph


def digraph_to_adjacency(graph: nx.DiGraph) -> np.ndarray:
    """
    Convert a directed graph with nodes ``0..m-1`` into a 0/1 adjacency matrix.

    Args:
        graph (nx.DiGraph): The directed graph.

    Returns:
        np.ndarray: Integer matrix where entry ``[j, i]`` is 1 for an edge j -> i.
    """
    nodes = sorted(graph.nodes)
    return (nx.to_numpy_array(graph, nodelist=nodes, weight=None) != 0).astype(int)


def digraph_diameter(graph: nx.DiGraph) -> int:
    """
    Longest shortest path of a strongly connected directed graph.

    Args:
        graph (nx.DiGraph): The directed graph.

    Returns:
        int: The diameter, 0 for a graph with a single node.

    Raises:
        ValueError: If the graph is empty or not strongly connected.
    """
    if graph.number_of_nodes() == 0:
        raise ValueError("The graph is empty")
    if graph.number_of_nodes() == 1:
        return 0
    if not nx.is_strongly_connected(graph):
        raise ValueError("The graph is not strongly connected")
    return int(nx.diameter(graph))


def random_strongly_connected_graph(
    n_nodes: int, diameter: int, seed: int | None = None
) -> nx.DiGraph:
    """
    Generate a random strongly connected directed graph whose diameter does not exceed
    ``diameter``.

    A random Hamiltonian cycle makes the graph strongly connected, then random extra edges
    are added until the diameter bound holds (the complete graph has diameter 1).

    Args:
        n_nodes (int): Number of nodes.
        diameter (int): Upper bound on the diameter.
        seed (int, optional): Seed of the random generator.

    Returns:
        nx.DiGraph: The generated graph without self loops.

    Raises:
        ValueError: If the bound cannot be met (``diameter < 1`` with more than one node).

    Example:
    >>> graph = random_strongly_connected_graph(5, 2, seed=42)
    >>> digraph_diameter(graph) <= 2
    True
    """
    if n_nodes < 1:
        raise ValueError("A graph needs at least one node")
    graph = nx.DiGraph()
    graph.add_nodes_from(range(n_nodes))
    if n_nodes == 1:
        return graph
    if diameter < 1:
        raise ValueError(f"No graph with {n_nodes} nodes has a diameter below 1")

    rng = random.Random(seed)
    order = list(range(n_nodes))
    rng.shuffle(order)
    graph.add_edges_from(zip(order, order[1:] + order[:1]))

    missing_edges = [
        (u, v) for u in range(n_nodes) for v in range(n_nodes) if u != v
    ]
    missing_edges = [edge for edge in missing_edges if not graph.has_edge(*edge)]
    rng.shuffle(missing_edges)
    while digraph_diameter(graph) > diameter:
        graph.add_edge(*missing_edges.pop())
    log.debug(
        f"Random graph with {n_nodes} nodes, {graph.number_of_edges()} edges "
        f"and diameter {digraph_diameter(graph)}"
    )
    return graph
