# %%
import os

os.chdir(os.getcwd().replace("/src", ""))
# %% import libraries
from examples import *

# %% set parameters
network = DCNetwork(
    c_qu=[0.1, 0.2, 0.15],
    c_li=[1.0, 1.5, 1.2],
    c_us=[0.5, 0.6, 0.4],
    c_ds=[0.3, 0.3, 0.2],
    P_Gmin=[0.0, 0.0, 0.0],
    P_Gmax=[2.0, 2.0, 1.0],
    P_D=[0.0, 0.5, 1.0, 0.8],
    C_G=[[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 0.0]],
    C_w=[[0.0], [0.0], [0.0], [1.0]],
    P_wf=[0.6],
    ptdf=[[0.5, -0.2, 0.1, 0.0], [0.3, 0.4, -0.1, 0.0], [0.2, 0.1, 0.4, 0.0]],
    P_fmax=[1.0, 1.0, 1.0],
)
dc = DCDispatchProblem(network)
wind_errors = np.random.default_rng(7).normal(0.0, 0.1, size=(200, 1))

# %% solve the scenario program with ACCA
result = dc.solve_scenarios(wind_errors, diameter=3, seed=0, verbose=True)
dispatch = dc.extract_dispatch(result.xstar)
print(f"converged in {result.rounds} rounds: {result.converged}")
print(f"P_G = {dispatch.P_G}\nR_us = {dispatch.R_us}\nR_ds = {dispatch.R_ds}")

# %% compare with the centralised scenario program
# agents keep any iterate feasible for their local view, so the ACCA cost can sit above
# the centralised optimum and the agents may hold different dispatches
reference = dc.solve_centralised(wind_errors)
print(f"cost centralised {dc.objective(reference):.6f}")
history = result.history()
print(history.filter(c("k") == result.rounds).select("agent", "J", "n_active"))

# %% reserve activated per scenario
schedule = dc.reserve_schedule(result.xstar, wind_errors)
print(schedule.group_by("generator").agg(c("R").min(), c("R").max()).sort("generator"))
