"""Clustering and outlier detection on embedded coordinates."""

from .kmeans import (  # noqa: F401
    CLUSTER_COLORS,
    KMeansResult,
    compute_kmeans,
    get_cluster_color,
)
from .outliers import (  # noqa: F401
    OutlierResult,
    compute_z_scores,
    detect_outliers,
    partition_points,
)
