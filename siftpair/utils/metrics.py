"""Timing of pair processing stages."""

from contextlib import contextmanager
from time import perf_counter
from typing import Dict


class PerformanceMetrics:
    """Named stage timers in milliseconds."""

    def __init__(self):
        self.start_times = {}
        self.durations = {}

    def start_timer(self, name: str):
        self.start_times[name] = perf_counter()

    def stop_timer(self, name: str) -> float:
        """Stop timing and return duration in milliseconds."""
        if name not in self.start_times:
            return 0.0
        duration = (perf_counter() - self.start_times.pop(name)) * 1000
        self.durations[name] = self.durations.get(name, 0.0) + duration
        return duration

    @contextmanager
    def measure(self, name: str):
        """Time the enclosed block, accumulating repeated stages."""
        self.start_timer(name)
        try:
            yield
        finally:
            self.stop_timer(name)

    def total(self) -> float:
        return sum(self.durations.values())

    def get_summary(self) -> Dict[str, float]:
        return self.durations.copy()
