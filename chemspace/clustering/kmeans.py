"""K-means clustering of embedded coordinates."""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Union

import numpy as np
from sklearn.cluster import KMeans, kmeans_plusplus
from sklearn.exceptions import ConvergenceWarning
from sklearn.utils import check_random_state

from ..errors import InvalidInputError
from ..params import validate_n_clusters
from ..types import Point2D, points_to_array
from ..utils.logging.logging_manager import get_logger

logger = get_logger("chemspace.kmeans")

DEFAULT_N_CLUSTERS = 5
DEFAULT_MAX_ITERATIONS = 100

# Category10 palette, cycled for cluster indices beyond its length
CLUSTER_COLORS = (
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
)


def get_cluster_color(cluster_index: int) -> str:
    return CLUSTER_COLORS[cluster_index % len(CLUSTER_COLORS)]


@dataclass(frozen=True)
class KMeansResult:
    """Cluster labels (in input order), centroids and per-label share in percent."""

    labels: np.ndarray
    centroids: np.ndarray
    percentages: Dict[int, float] = field(default_factory=dict)
    n_iter: int = 0
    converged: bool = True

    @property
    def n_clusters(self) -> int:
        return int(self.centroids.shape[0])




def compute_kmeans(
    points: Union[Sequence[Point2D], np.ndarray],
    n_clusters: int = DEFAULT_N_CLUSTERS,
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    random_state: Optional[Union[int, np.random.RandomState]] = None,
) -> KMeansResult:
    """Partition points into ``min(n_clusters, n)`` groups.

    Seeds with :func:`sklearn.cluster.kmeans_plusplus` using a single trial
    per centroid, so each new centroid is drawn with probability proportional
    to its squared distance from the nearest one chosen so far. Lloyd
    iterations then run in :class:`sklearn.cluster.KMeans` until assignments
    stop changing.

    Args:
        points: Point2D sequence or an ``(n, d)`` array (2D layout or raw features).
        n_clusters: Requested number of clusters (>= 1); clamped to the number of points.
        max_iterations: Upper bound on Lloyd iterations.
        random_state: Seed for k-means++ seeding. ``None`` is non-deterministic.

    Returns:
        KMeansResult with one label per input point. An empty input yields
        empty labels and centroids.
    """

    k = validate_n_clusters(n_clusters)
    X = points_to_array(points)
    if X.ndim != 2:
        raise InvalidInputError(f"Points must form a 2-dimensional array, got shape {X.shape}")
    n_samples = X.shape[0]
    if n_samples == 0:
        return KMeansResult(
            labels=np.zeros(0, dtype=np.int64),
            centroids=np.zeros((0, X.shape[1])),
        )
    if not np.all(np.isfinite(X)):
        raise InvalidInputError("Points contain NaN or infinite coordinates")

    k = min(k, n_samples)
    max_iter = max(1, int(max_iterations))
    rng = check_random_state(random_state)
    initial_centroids, _ = kmeans_plusplus(X, k, random_state=rng, n_local_trials=1)

    kmeans = KMeans(
        n_clusters=k,
        init=initial_centroids,
        n_init=1,
        max_iter=max_iter,
        tol=0.0,
        algorithm="lloyd",
        random_state=rng,
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        kmeans.fit(X)
    for warning in caught:
        # Duplicate points can leave fewer distinct clusters than requested
        logger.warning("k-means: %s", warning.message)

    labels = kmeans.labels_.astype(np.int64)
    n_iter = int(kmeans.n_iter_)
    converged = n_iter < max_iter
    if not converged:
        logger.warning("k-means did not converge within %d iterations", max_iter)

    counts = np.bincount(labels, minlength=k)
    percentages = {
        int(label): 100.0 * float(count) / n_samples
        for label, count in enumerate(counts)
        if count > 0
    }
    logger.debug("k-means: %d points, k=%d, %d iterations", n_samples, k, n_iter)
    return KMeansResult(
        labels=labels,
        centroids=kmeans.cluster_centers_,
        percentages=percentages,
        n_iter=n_iter,
        converged=converged,
    )


__all__ = [
    "CLUSTER_COLORS",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_N_CLUSTERS",
    "KMeansResult",
    "compute_kmeans",
    "get_cluster_color",
]
