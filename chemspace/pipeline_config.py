"""Configuration dataclasses for pipeline runs.

Classes:
    ReductionStageConfig: Reduction method, seed and per-method overrides.
    ClusteringConfig: Optional k-means stage.
    OutlierConfig: Optional z-score outlier stage.
    LoggingConfig: Logging level, log file and optional tracking.
    PipelineConfig: Root configuration tying the stages together.

Example:
    >>> config = PipelineConfig.from_yaml("configs/pipeline.yaml")
    >>> result = run_pipeline(items, **config.run_kwargs())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .clustering.kmeans import DEFAULT_MAX_ITERATIONS, DEFAULT_N_CLUSTERS
from .clustering.outliers import DEFAULT_THRESHOLD
from .utils.config.config_loader import load_config_file, validate_config

DEFAULT_FEATURE_EXTRACTION_SHARE = 50.0


@dataclass
class ReductionStageConfig:
    """Dimensionality reduction stage configuration.

    Attributes:
        method: Reduction method name ("pca", "tsne" or "umap").
        random_state: Seed for stochastic reducers (None = non-deterministic).
        progress_interval: Minimum seconds between forwarded progress events.
        tsne: t-SNE overrides (perplexity, iterations, learning_rate).
        umap: UMAP overrides (n_neighbors, min_dist, n_epochs).
    """

    method: str = "umap"
    random_state: Optional[int] = None
    progress_interval: float = 0.0
    tsne: Dict[str, Any] = field(default_factory=dict)
    umap: Dict[str, Any] = field(default_factory=dict)

    def overrides_for(self, method: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Overrides for ``method`` (defaults to the configured one), or None."""
        key = (method or self.method).lower()
        section = {"tsne": self.tsne, "umap": self.umap}.get(key)
        return dict(section) if section else None


@dataclass
class ClusteringConfig:
    """K-means stage configuration.

    Attributes:
        enabled: Run k-means on the embedded coordinates.
        n_clusters: Requested cluster count (clamped to the number of points).
        max_iterations: Upper bound on Lloyd iterations.
        random_state: Seed for k-means++; falls back to the pipeline seed.
    """

    enabled: bool = False
    n_clusters: int = DEFAULT_N_CLUSTERS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    random_state: Optional[int] = None


@dataclass
class OutlierConfig:
    """Outlier stage configuration.

    Attributes:
        enabled: Flag points by per-axis z-score.
        threshold: z-score at or above which a point is an outlier.
    """

    enabled: bool = False
    threshold: float = DEFAULT_THRESHOLD

    def __post_init__(self) -> None:
        """YAML may parse scientific notation as strings."""
        if isinstance(self.threshold, str):
            self.threshold = float(self.threshold)


@dataclass
class LoggingConfig:
    """Pipeline logging configuration.

    Attributes:
        level: Logging level (CRITICAL, ERROR, WARNING, INFO, DEBUG).
        log_file: Optional file receiving DEBUG-level records.
        enable_wandb: Mirror metrics to Weights & Biases when installed.
        wandb_project: Weights & Biases project name.
    """

    level: str = "INFO"
    log_file: Optional[Path] = None
    enable_wandb: bool = False
    wandb_project: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.level.upper(), logging.INFO)


@dataclass
class PipelineConfig:
    """Root configuration for a pipeline run.

    Attributes:
        feature_extraction_share: Percent of the progress scale reserved for
            upstream feature extraction.
        reduction: Reduction stage config.
        clustering: Clustering stage config.
        outliers: Outlier stage config.
        logging: Logging configuration.
    """

    feature_extraction_share: float = DEFAULT_FEATURE_EXTRACTION_SHARE
    reduction: ReductionStageConfig = field(default_factory=ReductionStageConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    outliers: OutlierConfig = field(default_factory=OutlierConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, raw_config: Optional[Mapping[str, Any]]) -> PipelineConfig:
        """Build a validated configuration from a plain mapping.

        Raises:
            ParameterOutOfRangeError: If the mapping violates the config schema.
        """
        raw_config = validate_config(dict(raw_config or {}))
        return cls(
            feature_extraction_share=float(
                raw_config.get("feature_extraction_share", DEFAULT_FEATURE_EXTRACTION_SHARE)
            ),
            reduction=ReductionStageConfig(**raw_config.get("reduction", {})),
            clustering=ClusteringConfig(**raw_config.get("clustering", {})),
            outliers=OutlierConfig(**raw_config.get("outliers", {})),
            logging=LoggingConfig(**raw_config.get("logging", {})),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> PipelineConfig:
        """Load configuration from a YAML (or JSON) file.

        Raises:
            FileNotFoundError: If config file does not exist.
            ParameterOutOfRangeError: If the file violates the config schema.
        """
        return cls.from_dict(load_config_file(path))

    def run_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for :func:`chemspace.pipeline.run_pipeline`."""
        return {
            "method": self.reduction.method,
            "params": self.reduction.overrides_for(),
            "clustering": self.clustering,
            "outliers": self.outliers,
            "random_state": self.reduction.random_state,
            "feature_extraction_share": self.feature_extraction_share,
            "progress_interval": self.reduction.progress_interval,
        }

    def to_serialisable_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary.

        Returns:
            Dictionary representation with Paths converted to strings.
        """

        def _convert_value(value: Any) -> Any:
            if isinstance(value, Path):
                return str(value)
            elif isinstance(value, dict):
                return {k: _convert_value(v) for k, v in value.items()}
            elif isinstance(value, (list, tuple)):
                return [_convert_value(v) for v in value]
            elif hasattr(value, "__dict__"):
                # Dataclass instance
                return {k: _convert_value(v) for k, v in value.__dict__.items()}
            else:
                return value

        return _convert_value(self.__dict__)


__all__ = [
    "ClusteringConfig",
    "DEFAULT_FEATURE_EXTRACTION_SHARE",
    "LoggingConfig",
    "OutlierConfig",
    "PipelineConfig",
    "ReductionStageConfig",
]
