"""Reducer implementations for dimensionality reduction."""

from .base import DimensionalityReducer, IterativeReducer, ReducerState  # noqa: F401
from .pca import PCAReducer, get_explained_variance  # noqa: F401
from .tsne import TSNEReducer  # noqa: F401
from .umap import UMAPReducer  # noqa: F401

__all__ = [
    "DimensionalityReducer",
    "IterativeReducer",
    "PCAReducer",
    "ReducerState",
    "TSNEReducer",
    "UMAPReducer",
    "get_explained_variance",
]
