"""
Periodic trigger interface for recurring jobs (ingest, scoring).

Any external workflow scheduler can drive the jobs directly; IntervalTrigger is
the in-process fallback used by the CLIs' --every flag.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTrigger(ABC):
    @abstractmethod
    def run(self, callback: Callable[[], object], *, max_runs: Optional[int] = None) -> int:
        """Invoke callback on the trigger's cadence. Returns the number of runs."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError


class IntervalTrigger(PeriodicTrigger):
    def __init__(self, interval_seconds: float, *, sleep: Callable[[float], None] = time.sleep):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._stopped = threading.Event()

    def run(self, callback: Callable[[], object], *, max_runs: Optional[int] = None) -> int:
        runs = 0
        while not self._stopped.is_set():
            runs += 1
            try:
                callback()
            except Exception:
                # a failed tick is retried on the next one
                logger.exception("Scheduled run %d failed", runs)
            if max_runs is not None and runs >= max_runs:
                break
            if self._stopped.is_set():
                break
            self._sleep(self.interval_seconds)
        return runs

    def stop(self) -> None:
        self._stopped.set()
