import numpy as np
import pyomo.environ as pyo


def extract_vector(variable: pyo.Var) -> np.ndarray:
    """Values of an indexed variable as a numpy vector, in index order."""
    values = variable.extract_values()
    if None in values.values():
        raise ValueError(f"{variable.name} contains None values: {values}")
    return np.array([values[index] for index in variable.index_set()], dtype=float)


def assign_vector(variable: pyo.Var, values: np.ndarray) -> None:
    """Set the value of every entry of an indexed variable from a numpy vector."""
    for index, value in zip(variable.index_set(), np.asarray(values).reshape(-1)):
        variable[index].set_value(float(value))

