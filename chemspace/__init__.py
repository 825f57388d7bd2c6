"""Two-dimensional chemical-space maps from molecular fingerprint matrices."""

from .clustering import (  # noqa: F401
    CLUSTER_COLORS,
    KMeansResult,
    OutlierResult,
    compute_kmeans,
    compute_z_scores,
    detect_outliers,
    get_cluster_color,
)
from .errors import (  # noqa: F401
    ChemSpaceError,
    InvalidInputError,
    NumericInstabilityError,
    ParameterOutOfRangeError,
    ReductionCancelledError,
)
from .params import (  # noqa: F401
    TSNEParams,
    UMAPParams,
    get_adaptive_params,
    resolve_params,
)
from .pipeline import reduce, reduce_async, run_pipeline  # noqa: F401
from .pipeline_config import (  # noqa: F401
    ClusteringConfig,
    LoggingConfig,
    OutlierConfig,
    PipelineConfig,
    ReductionStageConfig,
)
from .progress import (  # noqa: F401
    CancellationToken,
    PipelineProgress,
    ProgressEvent,
    ProgressThrottle,
)
from .types import ItemInput, ItemResult, PipelineResult, Point2D  # noqa: F401

__version__ = "0.1.0"
