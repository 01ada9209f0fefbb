from helpers.general import generate_log, all_close, unique_rows, read_only
from helpers.networkx import (
    adjacency_to_digraph,
    digraph_to_adjacency,
    digraph_diameter,
    random_strongly_connected_graph,
)

__all__ = [
    "generate_log",
    "all_close",
    "unique_rows",
    "read_only",
    "adjacency_to_digraph",
    "digraph_to_adjacency",
    "digraph_diameter",
    "random_strongly_connected_graph",
]
