"""
Exploratory analysis of expression samples.
"""

from .unsupervised import (
    DISTANCE_METRICS,
    LINKAGE_METHODS,
    hierarchical_clustering,
    principal_components,
    sample_distances,
)

__all__ = [
    "DISTANCE_METRICS",
    "LINKAGE_METHODS",
    "sample_distances",
    "hierarchical_clustering",
    "principal_components",
]
