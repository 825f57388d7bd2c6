"""Reduction hyperparameters and their size-adaptive defaults.

Parameter policy
----------------
Explicit overrides are checked against static bounds and rejected with
:class:`~chemspace.errors.ParameterOutOfRangeError` before any computation
starts:

* ``perplexity`` in ``[5, 50]``; ``iterations`` >= 1; ``learning_rate`` > 0
* ``n_neighbors`` in ``[2, 100]``; ``min_dist`` in ``[0, 1)``; ``n_epochs`` >= 1

Constraints that depend on the number of samples (perplexity below ``n/3``,
``n_neighbors`` below ``n``) are clamped by the reducers at run time and the
adjustment is logged. The adaptive defaults below already respect them for
all but the smallest datasets.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ParameterOutOfRangeError

PERPLEXITY_RANGE = (5.0, 50.0)
N_NEIGHBORS_RANGE = (2, 100)
UMAP_SPREAD = 1.0

DEFAULT_TSNE_ITERATIONS = 1000
DEFAULT_TSNE_LEARNING_RATE = 200.0
DEFAULT_MIN_DIST = 0.1
UMAP_EPOCHS_RANGE = (200, 500)


@dataclass(frozen=True)
class TSNEParams:
    perplexity: float
    iterations: int = DEFAULT_TSNE_ITERATIONS
    learning_rate: float = DEFAULT_TSNE_LEARNING_RATE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UMAPParams:
    n_neighbors: int
    min_dist: float = DEFAULT_MIN_DIST
    n_epochs: int = UMAP_EPOCHS_RANGE[0]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


ReductionParams = Optional[Union[TSNEParams, UMAPParams]]
ParamOverrides = Optional[Union[TSNEParams, UMAPParams, Mapping[str, Any]]]


def _clamp(value, low, high):
    return max(low, min(high, value))


def adaptive_tsne_params(n_samples: int) -> TSNEParams:
    """t-SNE defaults: perplexity ~5% of the samples, capped at a third of them."""

    n = max(0, int(n_samples))
    perplexity = _clamp(math.floor(n * 0.05), 5, 50)
    perplexity = min(perplexity, n // 3)
    return TSNEParams(
        perplexity=float(perplexity),
        iterations=DEFAULT_TSNE_ITERATIONS,
        learning_rate=DEFAULT_TSNE_LEARNING_RATE,
    )


def adaptive_umap_params(n_samples: int) -> UMAPParams:
    """UMAP defaults: ``sqrt(n)`` neighbours and between 200 and 500 epochs."""

    n = max(0, int(n_samples))
    n_neighbors = _clamp(math.floor(math.sqrt(n)), *N_NEIGHBORS_RANGE)
    return UMAPParams(
        n_neighbors=int(n_neighbors),
        min_dist=DEFAULT_MIN_DIST,
        n_epochs=int(_clamp(n, *UMAP_EPOCHS_RANGE)),
    )


def get_adaptive_params(n_samples: int) -> Dict[str, Union[TSNEParams, UMAPParams]]:
    return {
        "tsne": adaptive_tsne_params(n_samples),
        "umap": adaptive_umap_params(n_samples),
    }


# Validation -----------------------------------------------------------------


def _require_finite_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ParameterOutOfRangeError(name, value, f"'{name}' must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise ParameterOutOfRangeError(name, value, f"'{name}' must be finite")
    return value


def _require_int(name: str, value: Any, minimum: int, maximum: Optional[int] = None) -> int:
    number = _require_finite_number(name, value)
    if not number.is_integer():
        raise ParameterOutOfRangeError(name, value, f"'{name}' must be an integer, got {value!r}")
    number = int(number)
    if number < minimum or (maximum is not None and number > maximum):
        bound = f">= {minimum}" if maximum is None else f"in [{minimum}, {maximum}]"
        raise ParameterOutOfRangeError(name, value, f"'{name}' must be {bound}, got {value!r}")
    return number


def validate_perplexity(value: Any) -> float:
    number = _require_finite_number("perplexity", value)
    low, high = PERPLEXITY_RANGE
    if not low <= number <= high:
        raise ParameterOutOfRangeError(
            "perplexity", value, f"'perplexity' must be in [{low:g}, {high:g}], got {value!r}"
        )
    return number


def validate_learning_rate(value: Any) -> float:
    number = _require_finite_number("learning_rate", value)
    if number <= 0:
        raise ParameterOutOfRangeError(
            "learning_rate", value, f"'learning_rate' must be > 0, got {value!r}"
        )
    return number


def validate_min_dist(value: Any) -> float:
    number = _require_finite_number("min_dist", value)
    if not 0.0 <= number < UMAP_SPREAD:
        raise ParameterOutOfRangeError(
            "min_dist", value, f"'min_dist' must be in [0, {UMAP_SPREAD:g}), got {value!r}"
        )
    return number


def validate_threshold(value: Any) -> float:
    number = _require_finite_number("threshold", value)
    if number <= 0:
        raise ParameterOutOfRangeError("threshold", value, f"'threshold' must be > 0, got {value!r}")
    return number


def validate_n_clusters(value: Any) -> int:
    return _require_int("n_clusters", value, 1)


_TSNE_VALIDATORS = {
    "perplexity": validate_perplexity,
    "iterations": lambda v: _require_int("iterations", v, 1),
    "learning_rate": validate_learning_rate,
}

_UMAP_VALIDATORS = {
    "n_neighbors": lambda v: _require_int("n_neighbors", v, *N_NEIGHBORS_RANGE),
    "min_dist": validate_min_dist,
    "n_epochs": lambda v: _require_int("n_epochs", v, 1),
}


def _apply_overrides(defaults, validators, overrides: ParamOverrides, method: str):
    if overrides is None:
        return defaults
    if isinstance(overrides, (TSNEParams, UMAPParams)):
        if not isinstance(overrides, type(defaults)):
            raise ParameterOutOfRangeError(
                "params",
                type(overrides).__name__,
                f"{type(overrides).__name__} cannot configure method '{method}'",
            )
        overrides = {f.name: getattr(overrides, f.name) for f in fields(overrides)}
    unknown = sorted(set(overrides) - set(validators))
    if unknown:
        raise ParameterOutOfRangeError(
            unknown[0],
            overrides[unknown[0]],
            f"Unknown {method} parameter(s): {', '.join(unknown)}. "
            f"Expected: {', '.join(sorted(validators))}.",
        )
    validated = {key: validators[key](value) for key, value in overrides.items()}
    return replace(defaults, **validated)


def resolve_params(method: str, n_samples: int, overrides: ParamOverrides = None) -> ReductionParams:
    """Return the parameters a reducer should run with.

    Adaptive defaults for ``n_samples`` are merged with validated overrides.
    PCA takes no parameters and returns ``None``; passing overrides for it is
    an error.
    """

    key = method.lower()
    if key == "tsne":
        return _apply_overrides(adaptive_tsne_params(n_samples), _TSNE_VALIDATORS, overrides, key)
    if key == "umap":
        return _apply_overrides(adaptive_umap_params(n_samples), _UMAP_VALIDATORS, overrides, key)
    if key == "pca":
        if overrides:
            raise ParameterOutOfRangeError(
                "params", overrides, "PCA does not accept any parameters"
            )
        return None
    raise ParameterOutOfRangeError("method", method, f"Unknown reduction method '{method}'")


def effective_perplexity(perplexity: float, n_samples: int) -> float:
    """Clamp perplexity below ``(n - 1) / 3``, never below 1."""

    if n_samples <= 1:
        return float(perplexity)
    value = min(float(perplexity), (n_samples - 1) / 3.0)
    if value < 1.0:
        value = max(1.0, min(float(perplexity), float(n_samples - 1)))
    return value


def effective_n_neighbors(n_neighbors: int, n_samples: int) -> int:
    """Shrink the neighbourhood for datasets no larger than ``n_neighbors``."""

    if n_samples <= n_neighbors:
        return max(2, n_samples - 1)
    return int(n_neighbors)


__all__ = [
    "N_NEIGHBORS_RANGE",
    "PERPLEXITY_RANGE",
    "ParamOverrides",
    "ReductionParams",
    "TSNEParams",
    "UMAPParams",
    "adaptive_tsne_params",
    "adaptive_umap_params",
    "effective_n_neighbors",
    "effective_perplexity",
    "get_adaptive_params",
    "resolve_params",
    "validate_n_clusters",
    "validate_threshold",
]
