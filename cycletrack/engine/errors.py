"""Exceptions raised by the cycle engine."""


class CycleEngineError(Exception):
    """Base exception for cycle engine errors."""
    pass


class InvalidConfigError(CycleEngineError, ValueError):
    """
    Recurrence parameters cannot produce a schedule.

    Carries every problem found, not just the first one, so the caller
    can show them all at once.
    """

    def __init__(self, issues: list[str]):
        self.issues = list(issues)
        super().__init__("Invalid recurrence config: " + "; ".join(self.issues))
