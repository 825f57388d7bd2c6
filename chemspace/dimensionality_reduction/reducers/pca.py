"""PCA dimensionality reduction strategy."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np
from sklearn.decomposition import PCA

from ...progress import CancellationToken, ProgressCallback, ProgressEvent
from ...utils.logging.logging_manager import get_logger
from ..registry import register_reducer
from .base import DimensionalityReducer, as_feature_matrix

logger = get_logger("chemspace.pca")


@register_reducer("pca")
class PCAReducer(DimensionalityReducer):
    """Project mean-centred features onto their two leading principal axes.

    Wraps :class:`sklearn.decomposition.PCA` with the full LAPACK solver, which
    fixes component signs, so identical input always produces identical
    output. No scaling is applied. Inputs with fewer than two rows or columns
    are zero-padded to two output columns.
    """

    method = "pca"

    def __init__(self, *, random_state: Optional[int] = None, **kwargs) -> None:
        super().__init__(random_state=random_state, **kwargs)

    def fit_transform(
        self,
        features: np.ndarray,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[np.ndarray, Dict[str, object]]:
        matrix = as_feature_matrix(features)
        if progress_callback is not None:
            progress_callback(ProgressEvent(self.method, 0, 1))

        embedding, summary = self._project(matrix)

        if progress_callback is not None:
            progress_callback(ProgressEvent(self.method, 1, 1))
        return embedding, summary

    def _project(self, matrix: np.ndarray) -> Tuple[np.ndarray, Dict[str, object]]:
        n_samples, n_features = matrix.shape
        embedding = np.zeros((n_samples, self.n_components))
        summary: Dict[str, object] = {
            "explained_variance": [0.0] * self.n_components,
            "explained_variance_ratio": [0.0] * self.n_components,
            "singular_values": [0.0] * self.n_components,
        }
        if n_samples <= 1 or n_features == 0:
            return embedding, summary

        n_kept = min(self.n_components, n_samples, n_features)
        pca = PCA(n_components=n_kept, svd_solver="full")
        # Identical rows have zero total variance; sklearn divides by it for the ratio
        with np.errstate(divide="ignore", invalid="ignore"):
            embedding[:, :n_kept] = pca.fit_transform(matrix)
        ratio = np.nan_to_num(pca.explained_variance_ratio_, nan=0.0, posinf=0.0, neginf=0.0)

        for idx in range(n_kept):
            summary["explained_variance"][idx] = float(pca.explained_variance_[idx])
            summary["explained_variance_ratio"][idx] = float(ratio[idx])
            summary["singular_values"][idx] = float(pca.singular_values_[idx])

        logger.debug(
            "PCA on %d x %d matrix, explained variance ratio %s",
            n_samples,
            n_features,
            summary["explained_variance_ratio"],
        )
        return embedding, summary


def get_explained_variance(features: np.ndarray) -> list:
    """Explained-variance ratio of the two leading components."""

    _, summary = PCAReducer().fit_transform(features)
    return list(summary["explained_variance_ratio"])


__all__ = ["PCAReducer", "get_explained_variance"]
