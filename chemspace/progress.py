"""Progress events, throttling and cooperative cancellation."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import ReductionCancelledError


@dataclass(frozen=True)
class ProgressEvent:
    """Reducer-level progress: ``current`` out of ``total`` steps of ``stage``."""

    stage: str
    current: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0
        return min(1.0, self.current / self.total)

    @property
    def is_final(self) -> bool:
        return self.current >= self.total


@dataclass(frozen=True)
class PipelineProgress:
    """Pipeline-level progress on a 0-100 scale.

    ``event`` carries the reducer event that produced this update, if any.
    """

    percent: float
    message: str
    event: Optional[ProgressEvent] = None


ProgressCallback = Callable[[ProgressEvent], None]
PipelineProgressCallback = Callable[[PipelineProgress], None]


class CancellationToken:
    """Thread-safe cancellation flag observed at step boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str, step: int) -> None:
        if self._event.is_set():
            raise ReductionCancelledError(stage, step)


class ProgressThrottle:
    """Forward progress events no more often than ``min_interval`` seconds.

    The final event of a stage (``current == total``) is always forwarded.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        min_interval: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._last_emit: Optional[float] = None
        self._last_current = {}

    def __call__(self, event: ProgressEvent) -> None:
        if self._callback is None:
            return
        # Drop regressions so consumers always see a non-decreasing stream
        previous = self._last_current.get(event.stage)
        if previous is not None and event.current < previous:
            return
        now = self._clock()
        due = (
            self._last_emit is None
            or event.is_final
            or now - self._last_emit >= self._min_interval
        )
        if not due:
            return
        self._last_emit = now
        self._last_current[event.stage] = event.current
        self._callback(event)


__all__ = [
    "CancellationToken",
    "PipelineProgress",
    "PipelineProgressCallback",
    "ProgressCallback",
    "ProgressEvent",
    "ProgressThrottle",
]
