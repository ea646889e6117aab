"""
Fault injection for the simulated kitchen printer.

The printer service asks its policy two questions before and after each
simulated print. Production uses RandomFaultPolicy so staff can see the
offline and retry paths; tests script exact outcomes.
"""
import random


class FaultPolicy:
    def should_go_offline(self) -> bool:
        """Asked once per job, before its first attempt starts printing."""
        raise NotImplementedError

    def should_fail(self, attempt: int) -> bool:
        """Asked after the simulated print for ``attempt`` (zero-based)."""
        raise NotImplementedError

    @classmethod
    def from_settings(cls, settings):
        return cls()


class RandomFaultPolicy(FaultPolicy):
    def __init__(self, offline_probability=0.1, failure_probability=0.15,
                 failing_attempts=3, rng=None):
        self.offline_probability = offline_probability
        self.failure_probability = failure_probability
        self.failing_attempts = failing_attempts
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            offline_probability=settings.PRINTER_OFFLINE_PROBABILITY,
            failure_probability=settings.PRINTER_FAILURE_PROBABILITY,
            failing_attempts=settings.PRINTER_MAX_RETRIES,
        )

    def should_go_offline(self) -> bool:
        return self.rng.random() < self.offline_probability

    def should_fail(self, attempt: int) -> bool:
        # The last attempt always goes through.
        return attempt < self.failing_attempts and self.rng.random() < self.failure_probability


class NeverFailPolicy(FaultPolicy):
    def should_go_offline(self) -> bool:
        return False

    def should_fail(self, attempt: int) -> bool:
        return False


class ScriptedFaultPolicy(FaultPolicy):
    """
    Replays scripted outcomes, then behaves like NeverFailPolicy.

    ScriptedFaultPolicy(failures=[True, True]) fails the first two attempts
    it is asked about and lets everything after that print.
    """

    def __init__(self, offline=(), failures=()):
        self.offline = list(offline)
        self.failures = list(failures)
        self.offline_calls = 0
        self.failure_calls = []

    def should_go_offline(self) -> bool:
        self.offline_calls += 1
        return self.offline.pop(0) if self.offline else False

    def should_fail(self, attempt: int) -> bool:
        self.failure_calls.append(attempt)
        return self.failures.pop(0) if self.failures else False
