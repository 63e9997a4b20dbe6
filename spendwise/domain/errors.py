"""Error types shared across the selection store, query keys and services."""


class ValidationError(ValueError):
    """Raised when an action payload or service input is malformed.

    The store rejects the action synchronously and keeps its current state.
    """

    pass


class InvariantViolation(Exception):
    """Raised when a selection snapshot breaks one of its invariants.

    Only reachable through a bug in an action handler or a hand-built state.
    """

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))
