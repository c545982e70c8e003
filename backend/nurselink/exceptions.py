"""Exceptions raised inside the matching engine."""


class MatchingError(Exception):
    """Base class for matching engine failures."""


class StepTimeoutError(MatchingError):
    """An I/O step (candidate fetch or a write) exceeded its time bound."""

    def __init__(self, step: str, timeout: float):
        super().__init__(f"{step} timed out after {timeout:.1f}s")
        self.step = step
        self.timeout = timeout


class PersistenceUnavailableError(MatchingError):
    """The persistence collaborator could not serve the request."""
