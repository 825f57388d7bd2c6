"""t-SNE dimensionality reduction strategy.

Exact (O(n^2)) t-SNE split into fixed-size batches of gradient-descent
iterations so a driver can report progress and observe cancellation between
batches.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np
from scipy.spatial.distance import pdist, squareform
from sklearn.utils import check_random_state

from ...errors import NumericInstabilityError
from ...params import (
    DEFAULT_TSNE_ITERATIONS,
    DEFAULT_TSNE_LEARNING_RATE,
    effective_perplexity,
)
from ...utils.logging.logging_manager import get_logger
from ..registry import register_reducer
from .base import IterativeReducer

logger = get_logger("chemspace.tsne")

BATCH_SIZE = 10
EARLY_EXAGGERATION = 4.0
EXAGGERATION_FRACTION = 0.25
INITIAL_MOMENTUM = 0.5
FINAL_MOMENTUM = 0.8
MIN_GAIN = 0.01
MACHINE_EPSILON = 1e-12

PERPLEXITY_TOLERANCE = 1e-5
PERPLEXITY_SEARCH_STEPS = 50


def joint_probabilities(distances: np.ndarray, perplexity: float) -> np.ndarray:
    """Symmetric affinity matrix P for squared distances at a target perplexity.

    Each row's Gaussian precision is found by bisection so that the entropy
    of the conditional distribution equals ``log(perplexity)``. All rows are
    searched together.
    """

    n_samples = distances.shape[0]
    off_diagonal = ~np.eye(n_samples, dtype=bool)

    # Shifting each row by its nearest distance leaves P unchanged but keeps exp() from underflowing
    row_min = np.where(off_diagonal, distances, np.inf).min(axis=1)
    shifted = np.where(off_diagonal, distances - row_min[:, None], 0.0)

    target_entropy = np.log(perplexity)
    beta = np.ones(n_samples)
    beta_min = np.full(n_samples, -np.inf)
    beta_max = np.full(n_samples, np.inf)
    conditional = np.zeros_like(shifted)

    for _ in range(PERPLEXITY_SEARCH_STEPS):
        conditional = np.exp(-shifted * beta[:, None]) * off_diagonal
        sum_p = np.maximum(conditional.sum(axis=1), MACHINE_EPSILON)
        entropy = np.log(sum_p) + beta * (shifted * conditional).sum(axis=1) / sum_p
        conditional /= sum_p[:, None]

        diff = entropy - target_entropy
        active = np.abs(diff) > PERPLEXITY_TOLERANCE
        if not active.any():
            break

        too_flat = active & (diff > 0)
        beta_min = np.where(too_flat, beta, beta_min)
        grow = np.where(np.isinf(beta_max), beta * 2.0, (beta + beta_max) / 2.0)

        too_peaked = active & (diff <= 0)
        beta_max = np.where(too_peaked, beta, beta_max)
        shrink = np.where(np.isinf(beta_min), beta / 2.0, (beta + beta_min) / 2.0)

        beta = np.where(too_flat, grow, np.where(too_peaked, shrink, beta))

    joint = conditional + conditional.T
    joint /= max(joint.sum(), MACHINE_EPSILON)
    return np.maximum(joint, MACHINE_EPSILON) * off_diagonal


def rescale_embedding(embedding: np.ndarray) -> np.ndarray:
    """Map each axis linearly onto ``[-1, 1]``; constant axes map to 0."""

    low = embedding.min(axis=0)
    span = embedding.max(axis=0) - low
    scaled = np.zeros_like(embedding)
    varying = span > 0
    scaled[:, varying] = 2.0 * (embedding[:, varying] - low[varying]) / span[varying] - 1.0
    return scaled


@register_reducer("tsne")
class TSNEReducer(IterativeReducer):
    """Apply exact t-SNE to a numeric feature matrix.

    Each :meth:`step` runs ``batch_size`` gradient-descent iterations with
    momentum and adaptive gains. P is exaggerated by
    :data:`EARLY_EXAGGERATION` during the first
    :data:`EXAGGERATION_FRACTION` of the iterations. The run stops after
    exactly ``iterations`` iterations; the embedding is then rescaled to
    ``[-1, 1]`` per axis.
    """

    method = "tsne"

    def __init__(
        self,
        *,
        perplexity: float = 30.0,
        iterations: int = DEFAULT_TSNE_ITERATIONS,
        learning_rate: float = DEFAULT_TSNE_LEARNING_RATE,
        random_state: Optional[int] = None,
        batch_size: int = BATCH_SIZE,
        **kwargs,
    ) -> None:
        super().__init__(random_state=random_state, **kwargs)
        self.perplexity = float(perplexity)
        self.iterations = int(iterations)
        self.learning_rate = float(learning_rate)
        self.batch_size = max(1, int(batch_size))

        self._P: Optional[np.ndarray] = None
        self._Y: Optional[np.ndarray] = None
        self._update: Optional[np.ndarray] = None
        self._gains: Optional[np.ndarray] = None
        self._iteration = 0
        self._exaggeration_iterations = 0
        self._computed_perplexity = self.perplexity

    @property
    def total_steps(self) -> int:
        return self.iterations

    def _initialize(self, features: np.ndarray) -> None:
        n_samples = features.shape[0]
        perplexity = effective_perplexity(self.perplexity, n_samples)
        if perplexity != self.perplexity:
            logger.warning(
                "Perplexity %.2f too large for %d samples; using %.2f",
                self.perplexity,
                n_samples,
                perplexity,
            )
        self._computed_perplexity = perplexity

        distances = squareform(pdist(features, metric="sqeuclidean"))
        self._P = joint_probabilities(distances, perplexity)

        rng = check_random_state(self.random_state)
        self._Y = 1e-4 * rng.standard_normal((n_samples, self.n_components))
        self._update = np.zeros_like(self._Y)
        self._gains = np.ones_like(self._Y)
        self._iteration = 0
        self._exaggeration_iterations = int(round(self.iterations * EXAGGERATION_FRACTION))

        logger.info(
            "t-SNE initialised: %d samples, perplexity %.2f, %d iterations",
            n_samples,
            perplexity,
            self.iterations,
        )

    def _kl_gradient(
        self, P: np.ndarray, Y: np.ndarray, exaggeration: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Gradient of KL(P || Q) with respect to ``Y``, plus Q."""

        sum_y = np.sum(Y ** 2, axis=1)
        sq_dist = np.maximum(sum_y[:, None] + sum_y[None, :] - 2.0 * (Y @ Y.T), 0.0)
        num = 1.0 / (1.0 + sq_dist)
        np.fill_diagonal(num, 0.0)
        Q = np.maximum(num / max(num.sum(), MACHINE_EPSILON), MACHINE_EPSILON)

        weights = (exaggeration * P - Q) * num
        grad = 4.0 * (weights.sum(axis=1)[:, None] * Y - weights @ Y)
        return grad, Q

    def _advance(self) -> int:
        end = min(self._iteration + self.batch_size, self.iterations)
        while self._iteration < end:
            early = self._iteration < self._exaggeration_iterations
            exaggeration = EARLY_EXAGGERATION if early else 1.0
            momentum = INITIAL_MOMENTUM if early else FINAL_MOMENTUM

            grad, _ = self._kl_gradient(self._P, self._Y, exaggeration)
            self._iteration += 1
            if not np.all(np.isfinite(grad)):
                raise NumericInstabilityError(self.method, self._iteration, "gradient")

            same_sign = (grad > 0) == (self._update > 0)
            self._gains = np.where(same_sign, self._gains * 0.8, self._gains + 0.2)
            np.clip(self._gains, MIN_GAIN, None, out=self._gains)

            self._update = momentum * self._update - self.learning_rate * self._gains * grad
            self._Y = self._Y + self._update
            self._Y -= self._Y.mean(axis=0)
            if not np.all(np.isfinite(self._Y)):
                raise NumericInstabilityError(self.method, self._iteration, "embedding")

        logger.debug("t-SNE iteration %d/%d", self._iteration, self.iterations)
        return self._iteration

    def _finalize(self) -> Tuple[np.ndarray, Dict[str, object]]:
        _, Q = self._kl_gradient(self._P, self._Y, 1.0)
        mask = self._P > MACHINE_EPSILON
        kl = float(np.sum(self._P[mask] * np.log(self._P[mask] / Q[mask])))
        embedding = rescale_embedding(self._Y)
        summary = {
            "computed_perplexity": self._computed_perplexity,
            "kl_divergence": kl,
            "n_iter": self._iteration,
            "learning_rate": self.learning_rate,
        }
        logger.info("t-SNE finished after %d iterations (KL %.4f)", self._iteration, kl)
        # Drop the O(n^2) affinity matrix once the embedding is final
        self._P = None
        return embedding, summary


__all__ = ["TSNEReducer", "joint_probabilities", "rescale_embedding"]
