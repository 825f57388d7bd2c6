"""Shared value types passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Point2D:
    """A single embedded coordinate."""

    x: float
    y: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class ItemInput:
    """One upstream item: its feature vector and whether extraction succeeded.

    ``value`` is an opaque scalar used downstream for colouring; it is passed
    through untouched.
    """

    vector: Optional[Sequence[float]]
    is_valid: bool = True
    value: Optional[float] = None


ItemLike = Union[ItemInput, Mapping[str, Any], Tuple[Any, ...]]


def coerce_item(item: ItemLike) -> ItemInput:
    """Accept ``ItemInput``, ``{"vector", "is_valid", "value"}`` mappings or tuples."""

    if isinstance(item, ItemInput):
        return item
    if isinstance(item, Mapping):
        return ItemInput(
            vector=item.get("vector"),
            is_valid=bool(item.get("is_valid", True)),
            value=item.get("value"),
        )
    if isinstance(item, tuple):
        return ItemInput(*item)
    raise TypeError(f"Unsupported item type: {type(item).__name__}")


@dataclass(frozen=True)
class ItemResult:
    """Per-item output aligned with the original (unfiltered) item list."""

    index: int
    is_valid: bool
    value: Optional[float] = None
    coordinates: Optional[Point2D] = None
    cluster: Optional[int] = None
    is_outlier: Optional[bool] = None

    def to_record(self) -> Dict[str, Any]:
        """Plain dict; keys for absent fields are omitted."""

        record: Dict[str, Any] = {
            "index": self.index,
            "is_valid": self.is_valid,
            "value": self.value,
        }
        if self.coordinates is not None:
            record["x"] = self.coordinates.x
            record["y"] = self.coordinates.y
        if self.cluster is not None:
            record["cluster"] = self.cluster
        if self.is_outlier is not None:
            record["is_outlier"] = self.is_outlier
        return record


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run. Never mutated after construction."""

    method: str
    items: Tuple[ItemResult, ...]
    valid_indices: Tuple[int, ...]
    reduction_summary: Dict[str, Any] = field(default_factory=dict)
    clustering: Optional[Any] = None
    outliers: Optional[Any] = None

    @property
    def coordinates(self) -> List[Point2D]:
        """Coordinates of the valid items in dense row order."""

        return [
            item.coordinates for item in self.items if item.coordinates is not None
        ]

    def to_records(self) -> List[Dict[str, Any]]:
        return [item.to_record() for item in self.items]

    def to_frame(self) -> pd.DataFrame:
        """Tabular view with one row per original item."""

        coords = [item.coordinates for item in self.items]
        return pd.DataFrame(
            {
                "index": [item.index for item in self.items],
                "is_valid": [item.is_valid for item in self.items],
                "value": pd.array([item.value for item in self.items], dtype="Float64"),
                "x": [c.x if c is not None else np.nan for c in coords],
                "y": [c.y if c is not None else np.nan for c in coords],
                "cluster": pd.array([item.cluster for item in self.items], dtype="Int64"),
                "is_outlier": pd.array(
                    [item.is_outlier for item in self.items], dtype="boolean"
                ),
            }
        )


def points_to_array(points: Union[Sequence[Point2D], np.ndarray]) -> np.ndarray:
    """Convert a Point2D sequence (or an existing array) into an ``(n, d)`` array."""

    if isinstance(points, np.ndarray):
        array = np.asarray(points, dtype=np.float64)
        if array.ndim == 1:
            array = array.reshape(-1, 1) if array.size else array.reshape(0, 2)
        return array
    if len(points) == 0:
        return np.zeros((0, 2), dtype=np.float64)
    return np.array([[p.x, p.y] for p in points], dtype=np.float64)


def array_to_points(embedding: np.ndarray) -> List[Point2D]:
    return [Point2D(float(row[0]), float(row[1])) for row in embedding]


__all__ = [
    "ItemInput",
    "ItemLike",
    "ItemResult",
    "PipelineResult",
    "Point2D",
    "array_to_points",
    "coerce_item",
    "points_to_array",
]
