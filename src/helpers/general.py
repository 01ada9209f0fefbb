"""
Auxiliary functions
"""

import logging
import coloredlogs
import numpy as np
from konfig import settings


def generate_log(name: str, log_level: str | None = None) -> logging.Logger:
    """
    Generate a logger with the specified name and log level.

    Args:
        name (str): The name of the logger.
        log_level (str, optional): The log level. Defaults to the ``log_level`` entry of
            the settings.

    Returns:
        logging.Logger: The generated logger.
    """
    log = logging.getLogger(name)
    coloredlogs.install(level=log_level or settings.log_level)
    return log


def all_close(a, b, tol: float) -> bool:
    """
    Check that two scalars or arrays are element-wise equal up to an absolute tolerance.

    Args:
        a: First value (scalar or array-like).
        b: Second value, broadcastable against ``a``.
        tol (float): Absolute tolerance.

    Returns:
        bool: True if every ``|a - b| <= tol``.

    Example:
    >>> all_close([1.0, 2.0], [1.0, 2.0 + 1e-9], 1e-6)
    True
    """
    difference = np.abs(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))
    return bool(np.all(difference <= tol))


def unique_rows(*blocks: np.ndarray, n_columns: int | None = None) -> np.ndarray:
    """
    Stack row blocks and drop duplicated rows (exact match). Empty blocks are skipped.

    Args:
        *blocks (np.ndarray): 2-D arrays sharing the same number of columns.
        n_columns (int, optional): Width of the result when every block is empty.

    Returns:
        np.ndarray: The unique rows, sorted lexicographically.
    """
    non_empty = [np.atleast_2d(block) for block in blocks if np.size(block) > 0]
    if not non_empty:
        width = n_columns if n_columns is not None else 0
        for block in blocks:
            if np.ndim(block) == 2:
                width = np.shape(block)[1]
                break
        return np.empty((0, width))
    return np.unique(np.vstack(non_empty), axis=0)


def read_only(array) -> np.ndarray:
    """Return a float copy of ``array`` that cannot be written to."""
    frozen = np.array(array, dtype=float, copy=True)
    frozen.setflags(write=False)
    return frozen
