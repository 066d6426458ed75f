"""Test doubles shared across the klaw-promise test suite."""

from klaw_promise import AsyncValue


class Recorder:
    """Completion callback that records every Outcome it receives."""

    def __init__(self):
        self.outcomes = []

    def __call__(self, outcome):
        self.outcomes.append(outcome)

    @property
    def only(self):
        """The single Outcome received; fails if there were zero or several."""
        assert len(self.outcomes) == 1, self.outcomes
        return self.outcomes[0]


class Deferred:
    """Hand-resolved task: records starts and delivers when the test says so."""

    def __init__(self):
        self.starts = 0
        self.deliveries = []

    def task(self, deliver):
        self.starts += 1
        self.deliveries.append(deliver)

    @property
    def value(self):
        return AsyncValue(self.task)

    def resolve(self, outcome, run=-1):
        self.deliveries[run](outcome)
