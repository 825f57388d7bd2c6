"""Orchestration of reduction, clustering and outlier detection.

Valid items are gathered into a dense feature matrix, reduced to 2D, and
every stage result is scattered back onto the original item order through
an explicit ``valid_indices`` array.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .clustering.kmeans import KMeansResult, compute_kmeans
from .clustering.outliers import OutlierResult, detect_outliers
from .dimensionality_reduction import global_reducer_registry
from .dimensionality_reduction.reducers.base import (
    DimensionalityReducer,
    IterativeReducer,
    Summary,
    as_feature_matrix,
)
from .errors import InvalidInputError, ParameterOutOfRangeError
from .params import ParamOverrides, resolve_params, validate_n_clusters, validate_threshold
from .pipeline_config import (
    DEFAULT_FEATURE_EXTRACTION_SHARE,
    ClusteringConfig,
    OutlierConfig,
)
from .progress import (
    CancellationToken,
    PipelineProgress,
    PipelineProgressCallback,
    ProgressCallback,
    ProgressEvent,
    ProgressThrottle,
)
from .types import ItemLike, ItemResult, PipelineResult, Point2D, array_to_points, coerce_item
from .utils.logging.logging_manager import get_logger

logger = get_logger("chemspace.pipeline")

REDUCTION_END_PERCENT = 95.0
CLUSTERING_PERCENT = 95.0
OUTLIER_PERCENT = 98.0
DONE_PERCENT = 100.0


# Reduction ----------------------------------------------------------------


def _create_reducer(
    method: str,
    n_samples: int,
    params: ParamOverrides,
    random_state: Optional[int],
) -> Tuple[DimensionalityReducer, Dict[str, Any]]:
    resolved = resolve_params(method, n_samples, params)
    resolved_dict = resolved.to_dict() if resolved is not None else {}
    reducer = global_reducer_registry.create(
        method, random_state=random_state, **resolved_dict
    )
    return reducer, resolved_dict


def _empty_summary(method: str) -> Summary:
    return {"method": method, "n_samples": 0, "params": {}}


def run_reducer(
    reducer: DimensionalityReducer,
    features: np.ndarray,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Tuple[np.ndarray, Summary]:
    """Drive a reducer to completion on the calling thread.

    Stepped reducers check cancellation before each step and report progress
    after it; nothing else ever observes a reducer mid-step.
    """

    return reducer.fit_transform(
        features, progress_callback=progress_callback, cancel_token=cancel_token
    )


def reduce_with_summary(
    features,
    method: str = "umap",
    params: ParamOverrides = None,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    random_state: Optional[int] = None,
    progress_interval: float = 0.0,
) -> Tuple[np.ndarray, Summary]:
    """Like :func:`reduce` but returns the raw ``(n, 2)`` embedding and summary."""

    key = global_reducer_registry.resolve(method)
    matrix = as_feature_matrix(features)
    n_samples = matrix.shape[0]
    if n_samples == 0:
        logger.info("No valid rows for %s; returning an empty embedding", key)
        return np.zeros((0, 2)), _empty_summary(key)

    reducer, resolved = _create_reducer(key, n_samples, params, random_state)
    logger.info(
        "Running %s on %d samples x %d features with %s",
        key,
        n_samples,
        matrix.shape[1],
        resolved or "no parameters",
    )
    throttle = ProgressThrottle(progress_callback, progress_interval)
    embedding, summary = run_reducer(
        reducer, matrix, progress_callback=throttle, cancel_token=cancel_token
    )
    logger.info("Finished %s reduction", key)
    return embedding, {"method": key, "n_samples": n_samples, "params": resolved, **summary}


def reduce(
    features,
    method: str = "umap",
    params: ParamOverrides = None,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    random_state: Optional[int] = None,
    progress_interval: float = 0.0,
) -> List[Point2D]:
    """Reduce a feature matrix to one 2D point per row, in row order.

    Args:
        features: ``(n, d)`` numeric matrix; rows are items.
        method: ``"pca"``, ``"tsne"`` or ``"umap"`` (case-insensitive).
        params: Overrides merged over the adaptive defaults for ``n``.
        progress_callback: Receives a ProgressEvent at every step boundary.
        cancel_token: Checked before every step.
        random_state: Seed for stochastic reducers; ``None`` is non-deterministic.
        progress_interval: Minimum seconds between forwarded events.

    Raises:
        InvalidInputError: Non-2D or non-finite input.
        ParameterOutOfRangeError: Unknown method or rejected override.
        NumericInstabilityError: Optimisation produced NaN/Inf.
        ReductionCancelledError: ``cancel_token`` was cancelled mid-run.
    """

    embedding, _ = reduce_with_summary(
        features,
        method,
        params,
        progress_callback=progress_callback,
        cancel_token=cancel_token,
        random_state=random_state,
        progress_interval=progress_interval,
    )
    return array_to_points(embedding)


async def reduce_async(
    features,
    method: str = "umap",
    params: ParamOverrides = None,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    random_state: Optional[int] = None,
    progress_interval: float = 0.0,
) -> List[Point2D]:
    """Awaitable :func:`reduce` that yields to the event loop between steps."""

    key = global_reducer_registry.resolve(method)
    matrix = as_feature_matrix(features)
    n_samples = matrix.shape[0]
    if n_samples == 0:
        return []

    reducer, _ = _create_reducer(key, n_samples, params, random_state)
    throttle = ProgressThrottle(progress_callback, progress_interval)
    if not isinstance(reducer, IterativeReducer):
        embedding, _ = reducer.fit_transform(
            matrix, progress_callback=throttle, cancel_token=cancel_token
        )
        return array_to_points(embedding)

    reducer.initialize(matrix)
    if reducer.is_done:
        throttle(ProgressEvent(key, reducer.total_steps, reducer.total_steps))
    while not reducer.is_done:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(key, reducer.steps_done)
        throttle(reducer.step())
        await asyncio.sleep(0)
    embedding, _ = reducer.result()
    return array_to_points(embedding)


# Pipeline -----------------------------------------------------------------


class _ProgressReporter:
    """Maps stage progress onto one non-decreasing 0-100 scale."""

    def __init__(
        self, callback: Optional[PipelineProgressCallback], reduction_start: float
    ) -> None:
        self._callback = callback
        self._start = reduction_start
        self._last = reduction_start

    def emit(self, percent: float, message: str, event: Optional[ProgressEvent] = None) -> None:
        percent = max(self._last, min(DONE_PERCENT, percent))
        self._last = percent
        if self._callback is not None:
            self._callback(PipelineProgress(percent, message, event))

    def on_reduction_event(self, event: ProgressEvent) -> None:
        span = REDUCTION_END_PERCENT - self._start
        self.emit(
            self._start + span * event.fraction,
            f"{event.stage.upper()}: {event.current}/{event.total}",
            event,
        )


def _build_feature_matrix(items: Sequence[Any], valid_indices: np.ndarray) -> np.ndarray:
    if valid_indices.size == 0:
        return np.zeros((0, 0))
    rows = []
    width = None
    for original in valid_indices:
        vector = items[original].vector
        if vector is None:
            raise InvalidInputError(f"Item {original} is marked valid but has no vector")
        row = np.asarray(vector, dtype=np.float64)
        if row.ndim != 1:
            raise InvalidInputError(
                f"Item {original} vector must be 1-dimensional, got shape {row.shape}"
            )
        if width is None:
            width = row.shape[0]
        elif row.shape[0] != width:
            raise InvalidInputError(
                f"Item {original} vector has length {row.shape[0]}, expected {width}"
            )
        if not np.all(np.isfinite(row)):
            raise InvalidInputError(f"Item {original} vector contains NaN or infinite values")
        rows.append(row)
    return as_feature_matrix(np.vstack(rows))


def scatter(n_items: int, valid_indices: np.ndarray, values: Sequence[Any]) -> List[Any]:
    """Place dense per-row ``values`` at their original item positions."""

    if len(values) != len(valid_indices):
        raise InvalidInputError(
            f"Cannot scatter {len(values)} values onto {len(valid_indices)} valid items"
        )
    out: List[Any] = [None] * n_items
    for dense, original in enumerate(valid_indices):
        out[int(original)] = values[dense]
    return out


def _as_config(request, config_cls):
    if request is None or isinstance(request, config_cls):
        return request
    if isinstance(request, Mapping):
        return config_cls(**request)
    raise TypeError(f"Expected {config_cls.__name__} or mapping, got {type(request).__name__}")


def run_pipeline(
    items: Sequence[ItemLike],
    method: str = "umap",
    *,
    params: ParamOverrides = None,
    clustering: Optional[ClusteringConfig] = None,
    outliers: Optional[OutlierConfig] = None,
    progress_callback: Optional[PipelineProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    random_state: Optional[int] = None,
    feature_extraction_share: float = DEFAULT_FEATURE_EXTRACTION_SHARE,
    progress_interval: float = 0.0,
) -> PipelineResult:
    """Reduce valid items to 2D and optionally cluster and flag outliers.

    Invalid items are kept in the output, aligned with the input order, but
    carry no coordinates, cluster or outlier flag. Progress is reported on a
    0-100 scale starting at ``feature_extraction_share``.

    Args:
        items: ``ItemInput`` objects, ``(vector, is_valid[, value])`` tuples
            or mappings with ``vector``/``is_valid``/``value`` keys.
        method: Reduction method name.
        params: Reducer overrides merged over adaptive defaults.
        clustering: K-means request; skipped when None or disabled.
        outliers: Outlier request; skipped when None or disabled.
        progress_callback: Receives PipelineProgress updates.
        cancel_token: Checked at every reduction step.
        random_state: Seed for the reducer and, unless the clustering request
            carries its own, for k-means.
        feature_extraction_share: Percent reserved for upstream work.
        progress_interval: Minimum seconds between reduction progress events.

    Returns:
        A new PipelineResult; nothing passed in is mutated.
    """

    key = global_reducer_registry.resolve(method)
    clustering = _as_config(clustering, ClusteringConfig)
    outliers = _as_config(outliers, OutlierConfig)
    # Validate stage requests up front so bad input never costs a reduction
    if clustering is not None and clustering.enabled:
        validate_n_clusters(clustering.n_clusters)
    if outliers is not None and outliers.enabled:
        validate_threshold(outliers.threshold)
    start = float(feature_extraction_share)
    if not 0.0 <= start <= REDUCTION_END_PERCENT:
        raise ParameterOutOfRangeError(
            "feature_extraction_share",
            feature_extraction_share,
            f"feature_extraction_share must lie in [0, {REDUCTION_END_PERCENT:g}]",
        )

    coerced = [coerce_item(item) for item in items]
    n_items = len(coerced)
    valid_indices = np.array(
        [index for index, item in enumerate(coerced) if item.is_valid], dtype=np.int64
    )
    features = _build_feature_matrix(coerced, valid_indices)
    logger.info("Pipeline: %d items, %d valid, method=%s", n_items, valid_indices.size, key)

    reporter = _ProgressReporter(progress_callback, start)
    reporter.emit(start, f"Running {key.upper()}...")
    embedding, summary = reduce_with_summary(
        features,
        key,
        params,
        progress_callback=reporter.on_reduction_event,
        cancel_token=cancel_token,
        random_state=random_state,
        progress_interval=progress_interval,
    )
    points = array_to_points(embedding)
    coordinates = scatter(n_items, valid_indices, points)

    cluster_result: Optional[KMeansResult] = None
    labels: List[Optional[int]] = [None] * n_items
    if clustering is not None and clustering.enabled and points:
        reporter.emit(CLUSTERING_PERCENT, "Computing clusters...")
        seed = clustering.random_state if clustering.random_state is not None else random_state
        cluster_result = compute_kmeans(
            embedding,
            clustering.n_clusters,
            max_iterations=clustering.max_iterations,
            random_state=seed,
        )
        labels = scatter(n_items, valid_indices, [int(label) for label in cluster_result.labels])

    outlier_result: Optional[OutlierResult] = None
    flags: List[Optional[bool]] = [None] * n_items
    if outliers is not None and outliers.enabled and points:
        reporter.emit(OUTLIER_PERCENT, "Detecting outliers...")
        outlier_result = detect_outliers(embedding, outliers.threshold)
        flags = scatter(n_items, valid_indices, [bool(flag) for flag in outlier_result.flags])
        logger.info(
            "Flagged %d of %d points at threshold %.2f",
            outlier_result.n_outliers,
            len(points),
            outlier_result.threshold,
        )

    results = tuple(
        ItemResult(
            index=index,
            is_valid=item.is_valid,
            value=item.value,
            coordinates=coordinates[index],
            cluster=labels[index],
            is_outlier=flags[index],
        )
        for index, item in enumerate(coerced)
    )
    reporter.emit(DONE_PERCENT, "Done!")
    return PipelineResult(
        method=key,
        items=results,
        valid_indices=tuple(int(i) for i in valid_indices),
        reduction_summary=summary,
        clustering=cluster_result,
        outliers=outlier_result,
    )


__all__ = [
    "CLUSTERING_PERCENT",
    "DONE_PERCENT",
    "OUTLIER_PERCENT",
    "REDUCTION_END_PERCENT",
    "reduce",
    "reduce_async",
    "reduce_with_summary",
    "run_pipeline",
    "run_reducer",
    "scatter",
]
