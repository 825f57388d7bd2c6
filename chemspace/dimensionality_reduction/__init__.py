"""Dimensionality reduction strategies for fingerprint matrices."""

from .registry import global_reducer_registry, register_reducer
from .reducers import (
    DimensionalityReducer,
    IterativeReducer,
    PCAReducer,
    ReducerState,
    TSNEReducer,
    UMAPReducer,
    get_explained_variance,
)

__all__ = [
    "DimensionalityReducer",
    "IterativeReducer",
    "PCAReducer",
    "ReducerState",
    "TSNEReducer",
    "UMAPReducer",
    "get_explained_variance",
    "global_reducer_registry",
    "register_reducer",
]
