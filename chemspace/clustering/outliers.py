"""Per-axis z-score outlier detection over embedded coordinates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from ..errors import InvalidInputError
from ..params import validate_threshold
from ..types import Point2D, points_to_array

DEFAULT_THRESHOLD = 3.0


@dataclass(frozen=True)
class OutlierResult:
    """Outlier flags plus the kept/removed partition, all index-aligned to the input."""

    flags: np.ndarray
    kept_indices: np.ndarray
    removed_indices: np.ndarray
    z_scores: np.ndarray
    threshold: float

    @property
    def n_outliers(self) -> int:
        return int(self.removed_indices.size)


def _axis_z_scores(X: np.ndarray) -> np.ndarray:
    mean = X.mean(axis=0)
    std = X.std(axis=0)  # population std (ddof=0)
    std = np.where(std == 0, 1.0, std)
    return np.abs((X - mean) / std)


def _as_points(points) -> np.ndarray:
    X = points_to_array(points)
    if X.ndim != 2:
        raise InvalidInputError(f"Points must form a 2-dimensional array, got shape {X.shape}")
    if X.size and not np.all(np.isfinite(X)):
        raise InvalidInputError("Points contain NaN or infinite coordinates")
    return X


def compute_z_scores(points: Union[Sequence[Point2D], np.ndarray]) -> np.ndarray:
    """Largest absolute per-axis z-score of each point."""

    X = _as_points(points)
    if X.shape[0] == 0:
        return np.zeros(0)
    return _axis_z_scores(X).max(axis=1)


def detect_outliers(
    points: Union[Sequence[Point2D], np.ndarray],
    threshold: float = DEFAULT_THRESHOLD,
) -> OutlierResult:
    """Flag points whose z-score on either axis reaches ``threshold``.

    Axes with zero spread use a standard deviation of 1, so constant
    coordinates never produce outliers on that axis.
    """

    tau = validate_threshold(threshold)
    X = _as_points(points)
    if X.shape[0] == 0:
        empty = np.zeros(0, dtype=np.int64)
        return OutlierResult(
            flags=np.zeros(0, dtype=bool),
            kept_indices=empty,
            removed_indices=empty.copy(),
            z_scores=np.zeros(0),
            threshold=tau,
        )

    z = _axis_z_scores(X)
    flags = np.any(z >= tau, axis=1)
    return OutlierResult(
        flags=flags,
        kept_indices=np.flatnonzero(~flags),
        removed_indices=np.flatnonzero(flags),
        z_scores=z.max(axis=1),
        threshold=tau,
    )


def partition_points(
    points: Sequence[Point2D], result: OutlierResult
) -> Tuple[list, list]:
    """Split ``points`` into (kept, removed) lists using a detection result."""

    kept = [points[i] for i in result.kept_indices]
    removed = [points[i] for i in result.removed_indices]
    return kept, removed


__all__ = [
    "DEFAULT_THRESHOLD",
    "OutlierResult",
    "compute_z_scores",
    "detect_outliers",
    "partition_points",
]
