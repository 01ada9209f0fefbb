import os

os.chdir(os.getcwd() + "/src")
import numpy as np
import polars as pl
from polars import col as c

from consensus import (
    ACCA,
    ACCAConfig,
    OptSettings,
    ConnectivityGraph,
    ConvergenceWarning,
    acca,
)
from formulation import DCNetwork, DCDispatchProblem
