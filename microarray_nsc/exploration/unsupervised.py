"""
Unsupervised exploration of expression samples.

Distances, hierarchical clustering and principal components are computed
between samples (columns of the expression matrix). Each operation is a
plain function over an ExpressionDataset so that another distance, linkage
or projection can be dropped in without touching the callers.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from ..data_loaders.dataset import ExpressionDataset

logger = logging.getLogger(__name__)

DISTANCE_METRICS = (
    "euclidean",
    "sqeuclidean",
    "cityblock",
    "correlation",
    "cosine",
    "chebyshev",
)
LINKAGE_METHODS = ("single", "complete", "average", "weighted", "ward", "centroid", "median")

# These linkages are only defined for Euclidean geometry
_EUCLIDEAN_ONLY = ("ward", "centroid", "median")


def _check_metric(metric: str) -> None:
    if metric not in DISTANCE_METRICS:
        raise ValueError(f"Unknown distance metric: {metric}. Available: {DISTANCE_METRICS}")


def _sample_matrix(dataset: ExpressionDataset) -> np.ndarray:
    dataset.validate_finite()
    if dataset.n_samples < 2:
        raise ValueError(f"Need at least 2 samples, got {dataset.n_samples}")
    return dataset.X


def sample_distances(dataset: ExpressionDataset, metric: str = "euclidean") -> pd.DataFrame:
    """
    Pairwise distances between samples.

    Args:
        dataset: Expression dataset without missing values
        metric: Distance metric name (see DISTANCE_METRICS)

    Returns:
        Symmetric samples x samples DataFrame with a zero diagonal
    """
    _check_metric(metric)
    condensed = pdist(_sample_matrix(dataset), metric=metric)
    ids = [str(s) for s in dataset.sample_ids]
    return pd.DataFrame(squareform(condensed), index=ids, columns=ids)


def hierarchical_clustering(
    dataset: ExpressionDataset,
    method: str = "average",
    metric: str = "euclidean",
    n_clusters: int = 2
) -> Tuple[np.ndarray, pd.Series]:
    """
    Agglomerative clustering of samples, cut into a fixed number of clusters.

    Args:
        dataset: Expression dataset without missing values
        method: Linkage method (see LINKAGE_METHODS)
        metric: Distance metric name (see DISTANCE_METRICS)
        n_clusters: Number of flat clusters to cut the tree into

    Returns:
        Tuple of (scipy linkage matrix, cluster number per sample starting at 1)
    """
    if method not in LINKAGE_METHODS:
        raise ValueError(f"Unknown linkage method: {method}. Available: {LINKAGE_METHODS}")
    _check_metric(metric)
    if method in _EUCLIDEAN_ONLY and metric != "euclidean":
        raise ValueError(f"'{method}' linkage requires the euclidean metric, got '{metric}'")
    if n_clusters < 1 or n_clusters > dataset.n_samples:
        raise ValueError(
            f"n_clusters must be between 1 and {dataset.n_samples}, got {n_clusters}"
        )

    condensed = pdist(_sample_matrix(dataset), metric=metric)
    tree = linkage(condensed, method=method)
    clusters = fcluster(tree, t=n_clusters, criterion="maxclust")

    assignment = pd.Series(
        clusters, index=[str(s) for s in dataset.sample_ids], name="cluster"
    )
    logger.info(
        f"Hierarchical clustering ({method}/{metric}): "
        f"{assignment.nunique()} clusters over {dataset.n_samples} samples"
    )
    return tree, assignment


def principal_components(
    dataset: ExpressionDataset,
    n_components: int = 2,
    scale: bool = False,
    random_state: Optional[int] = None
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Project samples onto their leading principal components.

    Component signs are whatever the SVD returns and carry no meaning.

    Args:
        dataset: Expression dataset without missing values
        n_components: Number of components to keep
        scale: Standardize every feature to unit variance first
        random_state: Seed for randomized solvers

    Returns:
        Tuple of (samples x components score table, explained variance ratio
        per component)
    """
    X = _sample_matrix(dataset)
    max_components = min(X.shape)
    if n_components < 1 or n_components > max_components:
        raise ValueError(
            f"n_components must be between 1 and {max_components}, got {n_components}"
        )
    if scale:
        X = StandardScaler().fit_transform(X)

    pca = PCA(n_components=n_components, random_state=random_state)
    coords = pca.fit_transform(X)

    names = [f"PC{i + 1}" for i in range(n_components)]
    scores = pd.DataFrame(coords, index=[str(s) for s in dataset.sample_ids], columns=names)
    explained = pd.Series(pca.explained_variance_ratio_, index=names, name="explained_variance")
    logger.info(
        "PCA explained variance: "
        + ", ".join(f"{n}={v * 100:.1f}%" for n, v in explained.items())
    )
    return scores, explained
