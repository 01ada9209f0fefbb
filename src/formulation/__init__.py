from formulation.dc_dispatch import DCNetwork, DCDispatchProblem, Dispatch

__all__ = ["DCNetwork", "DCDispatchProblem", "Dispatch"]
