"""Abstract base classes for dimensionality reduction strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

import numpy as np

from ...errors import InvalidInputError
from ...progress import CancellationToken, ProgressCallback, ProgressEvent

N_COMPONENTS = 2

Summary = Dict[str, object]


def as_feature_matrix(features) -> np.ndarray:
    """Return ``features`` as a read-only 2D float64 matrix.

    Raises:
        InvalidInputError: if the input is not 2D or holds NaN/Inf.
    """

    matrix = np.array(features, dtype=np.float64, copy=True)
    if matrix.ndim == 1 and matrix.size == 0:
        matrix = matrix.reshape(0, 0)
    if matrix.ndim != 2:
        raise InvalidInputError(
            f"Feature matrix must be 2-dimensional, got shape {matrix.shape}"
        )
    if matrix.size and not np.all(np.isfinite(matrix)):
        raise InvalidInputError("Feature matrix contains NaN or infinite values")
    matrix.flags.writeable = False
    return matrix


class DimensionalityReducer(ABC):
    """Shared interface for dimensionality reduction strategies.

    Reducers operate on fully-prepared numeric feature matrices and return a
    ``(n_samples, 2)`` embedding, row-aligned with the input, along with
    auxiliary summary metadata.
    """

    #: Canonical string identifier for the reducer. Subclasses must override.
    method: str

    def __init__(self, *, random_state: Optional[int] = None, **kwargs) -> None:
        self.n_components = N_COMPONENTS
        self.random_state = random_state
        self.extra_params = kwargs

    @abstractmethod
    def fit_transform(
        self,
        features: np.ndarray,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[np.ndarray, Summary]:
        """Return the low-dimensional embedding and optional summary metrics."""


class ReducerState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    RUNNING = "running"
    DONE = "done"


class IterativeReducer(DimensionalityReducer):
    """Reducer whose optimisation is split into discrete, resumable steps.

    Lifecycle: ``UNINITIALIZED -> INITIALIZED -> RUNNING -> DONE``.
    :meth:`initialize` prepares the optimisation problem, each :meth:`step`
    advances it by one unit of work and returns a :class:`ProgressEvent`, and
    :meth:`result` hands back the finished embedding. Step boundaries are the
    only places a driver may yield, observe cancellation or report progress.
    """

    def __init__(self, *, random_state: Optional[int] = None, **kwargs) -> None:
        super().__init__(random_state=random_state, **kwargs)
        self.state = ReducerState.UNINITIALIZED
        self._embedding: Optional[np.ndarray] = None
        self._summary: Summary = {}
        self._steps_done = 0

    # Subclass hooks -------------------------------------------------------

    @property
    @abstractmethod
    def total_steps(self) -> int:
        """Units of work (iterations or epochs) requested for the run."""

    @abstractmethod
    def _initialize(self, features: np.ndarray) -> None:
        """Build the optimisation problem for at least two samples."""

    @abstractmethod
    def _advance(self) -> int:
        """Perform one step and return the number of units now completed."""

    @abstractmethod
    def _finalize(self) -> Tuple[np.ndarray, Summary]:
        """Return the final embedding once all units are complete."""

    # Public API -----------------------------------------------------------

    @property
    def is_done(self) -> bool:
        return self.state is ReducerState.DONE

    @property
    def steps_done(self) -> int:
        return self._steps_done

    def initialize(self, features: np.ndarray) -> None:
        if self.state is not ReducerState.UNINITIALIZED:
            raise RuntimeError(f"{self.method} reducer has already been initialised")
        matrix = as_feature_matrix(features)
        n_samples = matrix.shape[0]
        if n_samples <= 1:
            # Nothing to optimise: empty input stays empty, one point sits at the origin
            self._embedding = np.zeros((n_samples, self.n_components))
            self._summary = {"n_samples": n_samples}
            self.state = ReducerState.DONE
            return
        self._initialize(matrix)
        self.state = ReducerState.INITIALIZED

    def step(self) -> ProgressEvent:
        if self.state not in (ReducerState.INITIALIZED, ReducerState.RUNNING):
            raise RuntimeError(
                f"Cannot step {self.method} reducer in state '{self.state.value}'"
            )
        self.state = ReducerState.RUNNING
        completed = self._advance()
        self._steps_done += 1
        event = ProgressEvent(self.method, completed, self.total_steps)
        if completed >= self.total_steps:
            self._embedding, self._summary = self._finalize()
            self.state = ReducerState.DONE
        return event

    def iter_steps(self) -> Iterator[ProgressEvent]:
        """Yield one event per step until the reducer is done."""

        while not self.is_done:
            yield self.step()

    def result(self) -> Tuple[np.ndarray, Summary]:
        if not self.is_done or self._embedding is None:
            raise RuntimeError(f"{self.method} reducer has not finished")
        return self._embedding.copy(), dict(self._summary)

    def fit_transform(
        self,
        features: np.ndarray,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[np.ndarray, Summary]:
        self.initialize(features)
        if self.is_done and progress_callback is not None:
            # Fewer than two rows finish without stepping
            progress_callback(ProgressEvent(self.method, self.total_steps, self.total_steps))
        while not self.is_done:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(self.method, self.steps_done)
            event = self.step()
            if progress_callback is not None:
                progress_callback(event)
        return self.result()


__all__ = [
    "DimensionalityReducer",
    "IterativeReducer",
    "N_COMPONENTS",
    "ReducerState",
    "Summary",
    "as_feature_matrix",
]
