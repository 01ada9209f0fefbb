from typing import Sequence


class ConfigurationError(ValueError):
    """Invalid ACCA configuration, raised before the first round."""


class SolverError(RuntimeError):
    """
    The restricted optimisation of an agent failed (infeasible problem or solver issue).

    Carries the context needed to diagnose the failure offline: the round, the agent,
    the constraint identifiers that were violated at the consensus point and the solver
    diagnostic message.
    """

    def __init__(
        self,
        info: str,
        round: int | None = None,
        agent: int | None = None,
        constraint_ids: Sequence[int] = (),
        problem: int | None = None,
    ) -> None:
        self.info = info
        self.round = round
        self.agent = agent
        self.constraint_ids = list(constraint_ids)
        self.problem = problem
        super().__init__(self._message())

    def _message(self) -> str:
        context = []
        if self.round is not None:
            context.append(f"round {self.round}")
        if self.agent is not None:
            context.append(f"agent {self.agent}")
        if self.problem is not None:
            context.append(f"status {self.problem}")
        if self.constraint_ids:
            context.append(f"violated constraints {sorted(set(self.constraint_ids))}")
        return f"{self.info} ({', '.join(context)})" if context else self.info

    def __reduce__(self):
        return (
            self.__class__,
            (self.info, self.round, self.agent, self.constraint_ids, self.problem),
        )


class SolverTimeout(SolverError):
    """The restricted optimisation of an agent hit the solver time limit."""


class ConvergenceWarning(UserWarning):
    """ACCA stopped without reaching a reliable consensus."""
