"""UMAP dimensionality reduction strategy."""

from __future__ import annotations

import warnings
from typing import Dict, Optional, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors
from sklearn.utils import check_random_state
from umap.umap_ import find_ab_params, fuzzy_simplicial_set, make_epochs_per_sample

from ...errors import NumericInstabilityError
from ...params import DEFAULT_MIN_DIST, UMAP_SPREAD, effective_n_neighbors
from ...utils.logging.logging_manager import get_logger
from ..registry import register_reducer
from .base import IterativeReducer

logger = get_logger("chemspace.umap")

NEGATIVE_SAMPLE_RATE = 5
INITIAL_ALPHA = 1.0
INIT_RANGE = 10.0
GRADIENT_CLIP = 4.0


def _scatter_add(n_rows: int, indices: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Sum ``values`` rows into an ``(n_rows, d)`` array at ``indices``."""

    return np.column_stack(
        [
            np.bincount(indices, weights=values[:, dim], minlength=n_rows)
            for dim in range(values.shape[1])
        ]
    )


@register_reducer("umap")
class UMAPReducer(IterativeReducer):
    """Apply UMAP to a numeric feature matrix, one epoch per step.

    The exact k-nearest-neighbour graph (``n_neighbors`` including the point
    itself) is turned into a fuzzy simplicial set with umap-learn's
    ``fuzzy_simplicial_set``. The layout then starts from a uniform random
    placement and is optimised by sampling graph edges on the schedule given
    by their weights: each sampled edge pulls its endpoints together and
    pushes the head away from :data:`NEGATIVE_SAMPLE_RATE` random points.
    ``min_dist`` shapes the low-dimensional similarity curve through the
    fitted ``a, b`` parameters.

    Datasets with ``n_samples <= n_neighbors`` use ``max(2, n_samples - 1)``
    neighbours instead.
    """

    method = "umap"

    def __init__(
        self,
        *,
        n_neighbors: int = 15,
        min_dist: float = DEFAULT_MIN_DIST,
        n_epochs: int = 200,
        metric: str = "euclidean",
        random_state: Optional[int] = None,
        negative_sample_rate: int = NEGATIVE_SAMPLE_RATE,
        **kwargs,
    ) -> None:
        """Initialize the UMAP reducer.

        Args:
            n_neighbors: Size of the local neighbourhood used to build the graph.
                Larger values preserve more global structure.
            min_dist: Minimum distance between points in the embedding. Smaller
                values give tighter clusters.
            n_epochs: Number of optimisation epochs (one per step).
            metric: Any metric accepted by :class:`sklearn.neighbors.NearestNeighbors`.
            random_state: Seed for initialisation and negative sampling.
                ``None`` draws fresh entropy.
            negative_sample_rate: Negative samples per positive edge sample.
        """
        super().__init__(random_state=random_state, **kwargs)
        self.n_neighbors = int(n_neighbors)
        self.min_dist = float(min_dist)
        self.n_epochs = int(n_epochs)
        self.metric = str(metric)
        self.negative_sample_rate = int(negative_sample_rate)

        self._rng: Optional[np.random.RandomState] = None
        self._head: Optional[np.ndarray] = None
        self._tail: Optional[np.ndarray] = None
        self._epochs_per_sample: Optional[np.ndarray] = None
        self._epoch_of_next_sample: Optional[np.ndarray] = None
        self._epochs_per_negative_sample: Optional[np.ndarray] = None
        self._epoch_of_next_negative_sample: Optional[np.ndarray] = None
        self._Y: Optional[np.ndarray] = None
        self._a = 0.0
        self._b = 0.0
        self._epoch = 0
        self._effective_neighbors = self.n_neighbors

    @property
    def total_steps(self) -> int:
        return self.n_epochs

    def _initialize(self, features: np.ndarray) -> None:
        n_samples = features.shape[0]
        n_neighbors = effective_n_neighbors(self.n_neighbors, n_samples)
        if n_neighbors != self.n_neighbors:
            logger.warning(
                "n_neighbors=%d too large for %d samples; using %d",
                self.n_neighbors,
                n_samples,
                n_neighbors,
            )
        self._effective_neighbors = n_neighbors
        self._rng = check_random_state(self.random_state)

        knn = NearestNeighbors(n_neighbors=n_neighbors, metric=self.metric).fit(features)
        knn_dists, knn_indices = knn.kneighbors(features)

        with warnings.catch_warnings():
            # umap-learn warns about numba parallelism when a seed is fixed; irrelevant here
            warnings.filterwarnings("ignore", category=UserWarning, module="umap")
            graph, _, _ = fuzzy_simplicial_set(
                features,
                n_neighbors,
                self._rng,
                self.metric,
                knn_indices=knn_indices.astype(np.int64),
                knn_dists=knn_dists.astype(np.float32),
            )

        graph = graph.tocoo()
        graph.sum_duplicates()
        if graph.data.size:
            graph.data[graph.data < graph.data.max() / float(self.n_epochs)] = 0.0
            graph.eliminate_zeros()

        self._head = graph.row.astype(np.int64)
        self._tail = graph.col.astype(np.int64)
        if graph.data.size:
            self._epochs_per_sample = make_epochs_per_sample(graph.data, self.n_epochs)
        else:
            self._epochs_per_sample = np.zeros(0, dtype=np.float64)
        self._epoch_of_next_sample = self._epochs_per_sample.copy()
        self._epochs_per_negative_sample = self._epochs_per_sample / self.negative_sample_rate
        self._epoch_of_next_negative_sample = self._epochs_per_negative_sample.copy()

        self._a, self._b = find_ab_params(UMAP_SPREAD, self.min_dist)
        self._Y = self._rng.uniform(
            low=-INIT_RANGE, high=INIT_RANGE, size=(n_samples, self.n_components)
        )
        self._epoch = 0

        logger.info(
            "UMAP initialised: %d samples, %d neighbours, %d edges, %d epochs",
            n_samples,
            n_neighbors,
            self._head.size,
            self.n_epochs,
        )

    def _attraction(self, diff: np.ndarray, sq_dist: np.ndarray) -> np.ndarray:
        coeff = np.zeros_like(sq_dist)
        pos = sq_dist > 0.0
        d2 = sq_dist[pos]
        coeff[pos] = (-2.0 * self._a * self._b * np.power(d2, self._b - 1.0)) / (
            self._a * np.power(d2, self._b) + 1.0
        )
        return np.clip(coeff[:, None] * diff, -GRADIENT_CLIP, GRADIENT_CLIP)

    def _repulsion(self, diff: np.ndarray, sq_dist: np.ndarray) -> np.ndarray:
        coeff = np.zeros_like(sq_dist)
        pos = sq_dist > 0.0
        d2 = sq_dist[pos]
        coeff[pos] = (2.0 * self._b) / ((0.001 + d2) * (self._a * np.power(d2, self._b) + 1.0))
        return np.clip(coeff[:, None] * diff, -GRADIENT_CLIP, GRADIENT_CLIP)

    def _advance(self) -> int:
        epoch = self._epoch
        alpha = INITIAL_ALPHA * (1.0 - epoch / float(self.n_epochs))
        n_samples = self._Y.shape[0]

        # Edge schedules are counted in completed epochs, so the first step already samples
        due = np.flatnonzero(self._epoch_of_next_sample <= epoch + 1)
        if due.size:
            Y = self._Y
            heads = self._head[due]
            tails = self._tail[due]

            diff = Y[heads] - Y[tails]
            grad = self._attraction(diff, np.sum(diff ** 2, axis=1)) * alpha
            delta = _scatter_add(n_samples, heads, grad) - _scatter_add(n_samples, tails, grad)
            self._epoch_of_next_sample[due] += self._epochs_per_sample[due]

            n_negative = np.floor(
                (epoch + 1 - self._epoch_of_next_negative_sample[due])
                / self._epochs_per_negative_sample[due]
            ).astype(np.int64)
            n_negative = np.maximum(n_negative, 0)
            if n_negative.sum():
                neg_heads = np.repeat(heads, n_negative)
                neg_tails = self._rng.randint(0, n_samples, size=neg_heads.size)
                neg_diff = Y[neg_heads] - Y[neg_tails]
                neg_grad = self._repulsion(neg_diff, np.sum(neg_diff ** 2, axis=1)) * alpha
                neg_grad[neg_heads == neg_tails] = 0.0
                delta += _scatter_add(n_samples, neg_heads, neg_grad)
            self._epoch_of_next_negative_sample[due] += (
                n_negative * self._epochs_per_negative_sample[due]
            )

            self._Y = Y + delta

        self._epoch += 1
        if not np.all(np.isfinite(self._Y)):
            raise NumericInstabilityError(self.method, self._epoch, "embedding")
        return self._epoch

    def _finalize(self) -> Tuple[np.ndarray, Dict[str, object]]:
        embedding = self._Y.copy()
        summary = {
            "n_neighbors": self._effective_neighbors,
            "min_dist": self.min_dist,
            "metric": self.metric,
            "n_epochs": self._epoch,
            "a": float(self._a),
            "b": float(self._b),
            "n_edges": int(self._head.size),
            "embedding_min": float(np.min(embedding)),
            "embedding_max": float(np.max(embedding)),
            "embedding_mean": float(np.mean(embedding)),
            "embedding_std": float(np.std(embedding)),
        }
        logger.info("UMAP finished after %d epochs", self._epoch)
        return embedding, summary


__all__ = ["UMAPReducer"]
