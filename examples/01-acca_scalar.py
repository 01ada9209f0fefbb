# %%
import os

os.chdir(os.getcwd().replace("/src", ""))
# %% import libraries
from examples import *

# %% set parameters
rng = np.random.default_rng(0)
deltas = rng.uniform(0.0, 1.0, size=(60, 1))


def objective_fcn(x):
    return (x[0] - 3) ** 2 + (x[1] - 1) ** 2


def constraints_fcn(x, delta):
    # one family per scenario: a rotating half-plane
    return [x[0] + float(delta[0]) * x[1] <= 1 + float(delta[0])]


# %% solve with a random connectivity graph of diameter 2
xstar, agents = acca(
    2,
    deltas,
    objective_fcn,
    constraints_fcn,
    "n_agents",
    6,
    "diameter",
    2,
    "seed",
    1,
    "verbose",
    True,
    "debug",
    True,
)
print(f"xstar = {xstar}")

# %% inspect the rounds
config = ACCAConfig(n_agents=6, diameter=2, seed=1, debug=True)
result = ACCA(2, deltas, objective_fcn, constraints_fcn, config).solve()
history = result.history()
print(
    history.group_by("k")
    .agg(c("J").max().alias("J_max"), c("optimized").sum().alias("n_optimized"))
    .sort("k")
)
