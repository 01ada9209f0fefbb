from data_model.consensus import ConsensusProblem, Iteration, IterationRecord

__all__ = [
    "ConsensusProblem",
    "Iteration",
    "IterationRecord",
]
